"""Remote embedding backend for OpenAI-compatible HTTP APIs.

One request per sub-batch, retried with exponential backoff on transient
failures. Authentication and request errors are never retried.
"""

from __future__ import annotations

import asyncio
import math
from typing import Any

import httpx
import structlog

from coderecall.config.constants import CHARS_PER_TOKEN
from coderecall.config.models import EmbeddingConfig
from coderecall.core.errors import (
    ConfigurationError,
    ProviderError,
    TransientProviderError,
)
from coderecall.embedding.models import (
    EmbeddingResult,
    EmbedOptions,
    estimate_cost,
    resolve_dimensions,
)

log = structlog.get_logger()

_ERROR_BODY_CHARS = 500


def _estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def _split_tokens(total: int, texts: list[str]) -> list[int]:
    """Apportion a batch's reported token usage across its texts by length."""
    if len(texts) == 1:
        return [total]
    lengths = [max(len(t), 1) for t in texts]
    whole = sum(lengths)
    return [max(1, round(total * n / whole)) for n in lengths]


class RemoteEmbeddingBackend:
    """Embeds text through ``POST {base_url}/embeddings``."""

    name = "api"

    def __init__(self, config: EmbeddingConfig, *, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self.model_id = config.model
        self.dimensions = resolve_dimensions(config.model, config.dimensions)
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._config.base_url,
                timeout=self._config.request_timeout_sec,
            )
        return self._client

    def _api_key(self) -> str:
        key = self._config.api_key.get_secret_value() if self._config.api_key else ""
        if not key:
            raise ConfigurationError.missing_credentials("embedding.api_key")
        return key

    async def embed_batch(
        self, texts: list[str], options: EmbedOptions | None = None
    ) -> list[EmbeddingResult]:
        """Embed texts in sub-batches of ``batch_size``, sequentially.

        Any sub-batch failure aborts the call; nothing partial is returned.
        """
        if not texts:
            return []

        api_key = self._api_key()
        model = (options.model if options else None) or self.model_id
        requested_dims = options.dimensions if options else None
        if requested_dims is not None:
            dims = requested_dims
        elif model == self.model_id:
            dims = self.dimensions
        else:
            dims = resolve_dimensions(model)

        results: list[EmbeddingResult] = []
        size = self._config.batch_size
        for start in range(0, len(texts), size):
            batch = texts[start : start + size]
            results.extend(
                await self._embed_with_retry(batch, model, dims, requested_dims, api_key)
            )
        return results

    async def _embed_with_retry(
        self,
        texts: list[str],
        model: str,
        dims: int,
        requested_dims: int | None,
        api_key: str,
    ) -> list[EmbeddingResult]:
        attempt = 0
        while True:
            try:
                return await self._request(texts, model, dims, requested_dims, api_key)
            except TransientProviderError as e:
                if attempt >= self._config.max_retries:
                    log.error(
                        "embedding.retries_exhausted",
                        model=model,
                        attempts=attempt + 1,
                        error=e.error_name,
                    )
                    raise
                delay = self._config.retry_base_delay_sec * (2**attempt)
                attempt += 1
                log.warning(
                    "embedding.retry",
                    model=model,
                    attempt=attempt,
                    delay_s=delay,
                    error=e.error_name,
                )
                await asyncio.sleep(delay)

    async def _request(
        self,
        texts: list[str],
        model: str,
        dims: int,
        requested_dims: int | None,
        api_key: str,
    ) -> list[EmbeddingResult]:
        payload: dict[str, Any] = {"model": model, "input": texts}
        if requested_dims is not None:
            payload["dimensions"] = requested_dims

        try:
            response = await self._get_client().post(
                "/embeddings",
                json=payload,
                headers={"Authorization": f"Bearer {api_key}"},
            )
        except httpx.TransportError as e:
            raise TransientProviderError.unavailable(f"{type(e).__name__}: {e}") from e

        status = response.status_code
        if status in (401, 403):
            raise ProviderError.auth_failed(status)
        if status == 429:
            raise TransientProviderError.rate_limited(response.text[:_ERROR_BODY_CHARS])
        if status >= 500:
            raise TransientProviderError.server_error(status, response.text[:_ERROR_BODY_CHARS])
        if status >= 400:
            raise ProviderError.bad_request(status, response.text[:_ERROR_BODY_CHARS])

        vectors, total_tokens = self._parse(response, len(texts), dims)
        if total_tokens is None:
            token_counts = [_estimate_tokens(t) for t in texts]
        else:
            token_counts = _split_tokens(total_tokens, texts)

        return [
            EmbeddingResult(
                vector=vector,
                token_count=tokens,
                model_id=model,
                cost=estimate_cost(model, tokens),
            )
            for vector, tokens in zip(vectors, token_counts, strict=True)
        ]

    @staticmethod
    def _parse(
        response: httpx.Response, expected: int, dims: int
    ) -> tuple[list[list[float]], int | None]:
        try:
            body = response.json()
        except ValueError as e:
            raise ProviderError.bad_response("body is not JSON") from e

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list) or len(data) != expected:
            raise ProviderError.bad_response(
                "unexpected number of embeddings",
                expected=expected,
                received=len(data) if isinstance(data, list) else None,
            )

        try:
            ordered = sorted(data, key=lambda item: item.get("index", 0))
            vectors = [[float(x) for x in item["embedding"]] for item in ordered]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ProviderError.bad_response(f"invalid embedding entry: {e}") from e

        for vector in vectors:
            if len(vector) != dims:
                raise ProviderError.bad_response(
                    "dimension mismatch", expected=dims, received=len(vector)
                )

        usage = body.get("usage") or {}
        total = usage.get("total_tokens") or usage.get("prompt_tokens")
        return vectors, int(total) if total else None

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
