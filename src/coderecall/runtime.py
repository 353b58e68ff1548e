"""Composition root: builds and owns every long-lived component."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path

import structlog

from coderecall.config.constants import CHUNKS_DB_NAME, EXAMPLES_DB_NAME
from coderecall.config.loader import resolve_data_dir
from coderecall.config.models import CodeRecallConfig
from coderecall.embedding.gateway import EmbeddingGateway
from coderecall.indexer.ignore import IgnoreChecker
from coderecall.indexer.indexer import IncrementalIndexer
from coderecall.indexer.store import ChunkStore
from coderecall.ledger.ledger import ExampleLedger
from coderecall.retrieval.engine import RetrievalEngine
from coderecall.vector.index import VectorIndex

logger = structlog.get_logger()

SHUTDOWN_TIMEOUT_SEC = 10.0


@dataclass
class Runtime:
    """
    Wires the engine together for one repository.

    Components:
    - EmbeddingGateway: dense and sparse vectors
    - VectorIndex: projection of the ledger for similarity search
    - ExampleLedger: source of truth for code examples
    - RetrievalEngine: similarity queries and prompt augmentation
    - IncrementalIndexer: codebase chunk index and file watching
    """

    config: CodeRecallConfig
    repo_root: Path
    data_dir: Path
    gateway: EmbeddingGateway
    vector_index: VectorIndex
    ledger: ExampleLedger
    retrieval: RetrievalEngine
    indexer: IncrementalIndexer

    async def start(self) -> None:
        """Full index pass plus file watching, when enabled in config."""
        if not self.config.indexer.enabled:
            logger.info("runtime.indexer_disabled")
            return
        await self.indexer.index_codebase()
        await self.indexer.start_watching()

    async def aclose(self) -> None:
        """Stop watching and release every connection."""
        logger.info("runtime.stopping")
        try:
            async with asyncio.timeout(SHUTDOWN_TIMEOUT_SEC):
                await self.indexer.close()
        except TimeoutError:
            logger.warning("runtime.stop_timeout", timeout_sec=SHUTDOWN_TIMEOUT_SEC)
        self.ledger.close()
        await self.vector_index.close()
        await self.gateway.aclose()
        logger.info("runtime.stopped")


async def build_runtime(config: CodeRecallConfig, repo_root: Path) -> Runtime:
    """Create the data directory and every component for ``repo_root``.

    The vector collection is prepared best-effort: when the vector store is
    unreachable the failure is logged and the ledger keeps working.
    """
    repo_root = repo_root.resolve()
    data_dir = resolve_data_dir(config, repo_root)
    data_dir.mkdir(parents=True, exist_ok=True)

    gateway = EmbeddingGateway.from_config(config.embedding)
    vector_index = VectorIndex(config.vector, gateway.dimensions)
    try:
        await vector_index.ensure_collection()
    except Exception as e:
        logger.warning(
            "runtime.vector_index_unavailable",
            collection=config.vector.collection,
            error=str(e),
        )

    ledger = ExampleLedger.open(
        data_dir / EXAMPLES_DB_NAME,
        gateway,
        vector_index,
        db_config=config.database,
    )
    retrieval = RetrievalEngine(gateway, ledger, vector_index, config.retrieval)

    store = ChunkStore.open(data_dir / CHUNKS_DB_NAME, config.database)
    indexer = IncrementalIndexer(
        repo_root,
        store,
        gateway,
        config.indexer,
        ignore_checker=IgnoreChecker(repo_root),
    )

    logger.info(
        "runtime.ready",
        repo_root=str(repo_root),
        data_dir=str(data_dir),
        backend=gateway.backend_name,
        model=gateway.model_id,
        dimensions=gateway.dimensions,
    )
    return Runtime(
        config=config,
        repo_root=repo_root,
        data_dir=data_dir,
        gateway=gateway,
        vector_index=vector_index,
        ledger=ledger,
        retrieval=retrieval,
        indexer=indexer,
    )
