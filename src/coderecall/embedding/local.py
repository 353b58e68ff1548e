"""Local embedding backend on fastembed (ONNX Runtime).

The model is loaded lazily on first use, once per process even under
concurrent first calls. Loading and inference run in the default executor
so the event loop keeps serving other work.
"""

from __future__ import annotations

import asyncio
import math
import os
import time
from collections.abc import Callable
from typing import Any

import numpy as np
import structlog

from coderecall.config.constants import CHARS_PER_TOKEN
from coderecall.config.models import EmbeddingConfig
from coderecall.core.errors import ProviderError
from coderecall.embedding.models import (
    EmbeddingCost,
    EmbeddingResult,
    EmbedOptions,
    resolve_dimensions,
)

log = structlog.get_logger()

ModelFactory = Callable[[str], Any]


def _detect_providers() -> list[str]:
    """Detect available ONNX Runtime execution providers."""
    try:
        import onnxruntime as ort  # type: ignore[import-not-found]

        available = set(ort.get_available_providers())
    except Exception:
        return []

    providers: list[str] = []
    if "CUDAExecutionProvider" in available:
        providers.append("CUDAExecutionProvider")
    providers.append("CPUExecutionProvider")
    return providers


def load_fastembed_model(model_name: str) -> Any:
    """Build a fastembed TextEmbedding with GPU auto-detect."""
    from fastembed import TextEmbedding  # type: ignore[import-not-found]

    kwargs: dict[str, Any] = {
        "model_name": model_name,
        "threads": max(1, (os.cpu_count() or 4) // 2),
    }
    providers = _detect_providers()
    if providers:
        kwargs["providers"] = providers
    return TextEmbedding(**kwargs)


class LocalEmbeddingBackend:
    """Zero-cost embeddings computed in-process."""

    name = "local"

    def __init__(
        self,
        config: EmbeddingConfig,
        *,
        model_factory: ModelFactory | None = None,
    ) -> None:
        self.model_id = config.local_model
        self.dimensions = resolve_dimensions(config.local_model, config.dimensions)
        self._batch_size = config.local_batch_size
        self._factory = model_factory or load_fastembed_model
        self._model: Any | None = None
        self._load_lock = asyncio.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    async def _ensure_model(self) -> Any:
        if self._model is not None:
            return self._model

        async with self._load_lock:
            if self._model is None:
                loop = asyncio.get_running_loop()
                start = time.monotonic()
                try:
                    model = await loop.run_in_executor(None, self._factory, self.model_id)
                except ImportError as e:
                    raise ProviderError.model_load_failed(
                        self.model_id, "fastembed is not installed"
                    ) from e
                except Exception as e:
                    log.warning("embedding.model_load_failed", model=self.model_id, exc_info=True)
                    raise ProviderError.model_load_failed(self.model_id, str(e)) from e
                self._model = model
                log.info(
                    "embedding.model_loaded",
                    model=self.model_id,
                    elapsed_s=round(time.monotonic() - start, 2),
                )
        return self._model

    def _infer(self, model: Any, texts: list[str]) -> list[list[float]]:
        raw = list(model.embed(texts, batch_size=self._batch_size))
        return [np.asarray(v, dtype=np.float32).tolist() for v in raw]

    async def embed_batch(
        self,
        texts: list[str],
        options: EmbedOptions | None = None,  # noqa: ARG002
    ) -> list[EmbeddingResult]:
        if not texts:
            return []

        model = await self._ensure_model()
        loop = asyncio.get_running_loop()
        try:
            vectors = await loop.run_in_executor(None, self._infer, model, texts)
        except Exception as e:
            raise ProviderError.bad_response(f"local inference failed: {e}") from e

        results: list[EmbeddingResult] = []
        for text, vector in zip(texts, vectors, strict=True):
            if len(vector) != self.dimensions:
                raise ProviderError.bad_response(
                    "dimension mismatch", expected=self.dimensions, received=len(vector)
                )
            tokens = math.ceil(len(text) / CHARS_PER_TOKEN)
            results.append(
                EmbeddingResult(
                    vector=vector,
                    token_count=tokens,
                    model_id=self.model_id,
                    cost=EmbeddingCost(amount=0.0, input_tokens=tokens),
                )
            )
        return results

    async def aclose(self) -> None:
        self._model = None
