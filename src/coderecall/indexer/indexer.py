"""Incremental codebase indexer.

Keeps the chunk store in step with the source tree through two channels:

- ``index_codebase``: one full pass over every supported file. Only one pass
  runs at a time; a second call while one is active returns current stats.
  A pass and a drain never overlap: the pass waits for a running drain and
  drains wait for the pass.
- ``queue_paths``: change notifications collected into a pending set. Each
  notification restarts the debounce timer; on expiry the set is swapped for
  an empty one and the snapshot drained in bounded batches.

A file is skipped when its mtime is not newer than the stored one. Otherwise
its chunks are embedded first and then swapped in a single SQLite
transaction, so readers never see a half-replaced file.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import time
from collections import Counter
from collections.abc import Iterable
from pathlib import Path

import structlog

from coderecall.config.constants import PROGRESS_LOG_EVERY
from coderecall.config.models import IndexerConfig
from coderecall.core.errors import NotFoundError
from coderecall.embedding.gateway import EmbeddingGateway
from coderecall.embedding.similarity import rank_by_similarity
from coderecall.indexer.chunker import Chunker, LineWindowChunker
from coderecall.indexer.ignore import IgnoreChecker
from coderecall.indexer.models import (
    LANGUAGE_BY_EXTENSION,
    ChunkMatch,
    FileOutcome,
    IndexStats,
)
from coderecall.indexer.store import ChunkStore, encode_embedding
from coderecall.indexer.watcher import FileWatcher

log = structlog.get_logger()


def _now_ms() -> int:
    return int(time.time() * 1000)


class IncrementalIndexer:
    """Indexes source files into a ``ChunkStore`` and keeps them current."""

    def __init__(
        self,
        root: Path,
        store: ChunkStore,
        gateway: EmbeddingGateway,
        config: IndexerConfig | None = None,
        *,
        chunker: Chunker | None = None,
        ignore_checker: IgnoreChecker | None = None,
    ) -> None:
        self._root = root.resolve()
        self._store = store
        self._gateway = gateway
        self._config = config or IndexerConfig()
        self._chunker = chunker or LineWindowChunker()
        self._ignore = ignore_checker or IgnoreChecker(self._root)
        self._languages = {
            ext: LANGUAGE_BY_EXTENSION.get(ext, ext.lstrip("."))
            for ext in self._config.extensions
        }

        self._indexing = False
        self._pending: set[Path] = set()
        self._debounce_task: asyncio.Task[None] | None = None
        self._drain_tasks: set[asyncio.Task[list[FileOutcome]]] = set()
        self._drain_lock = asyncio.Lock()
        self._watcher: FileWatcher | None = None

    @property
    def root(self) -> Path:
        return self._root

    @property
    def is_indexing(self) -> bool:
        return self._indexing

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def is_watching(self) -> bool:
        return self._watcher is not None and self._watcher.is_running

    # ------------------------------------------------------------------
    # Single file
    # ------------------------------------------------------------------

    def _resolve(self, path: Path) -> Path:
        return path if path.is_absolute() else self._root / path

    def language_for(self, path: Path) -> str | None:
        return self._languages.get(path.suffix.lower())

    async def index_file(self, path: Path) -> FileOutcome:
        """Bring one file's chunks up to date. Never raises for file-level problems."""
        path = self._resolve(path)
        language = self.language_for(path)
        if language is None or self._ignore.should_ignore(path):
            return FileOutcome.UNSUPPORTED

        file_path = str(path)
        try:
            try:
                stat = path.stat()
            except FileNotFoundError:
                raise NotFoundError.file(file_path) from None

            mtime_ms = stat.st_mtime_ns / 1_000_000
            stored = self._store.file_mtime(file_path)
            if stored is not None and mtime_ms <= stored:
                return FileOutcome.UNCHANGED

            if stat.st_size > self._config.max_file_size_mb * 1024 * 1024:
                log.debug("indexer.file_too_large", path=file_path, size=stat.st_size)
                return FileOutcome.UNSUPPORTED

            try:
                content = path.read_text(encoding="utf-8", errors="replace")
            except FileNotFoundError:
                raise NotFoundError.file(file_path) from None

            specs = self._chunker.chunk(content, language)
            embeddings = await self._gateway.embed_batch([s.code for s in specs]) if specs else []

            relative = path.relative_to(self._root).as_posix()
            created = time.time() * 1000
            rows = [
                {
                    "id": f"{relative}:{spec.start_line}-{spec.end_line}:{spec.type}",
                    "file_path": file_path,
                    "relative_path": relative,
                    "content": spec.code,
                    "start_line": spec.start_line,
                    "end_line": spec.end_line,
                    "chunk_type": spec.type,
                    "chunk_name": spec.name,
                    "language": language,
                    "embedding": encode_embedding(result.vector),
                    "last_modified": mtime_ms,
                    "created_at": created,
                }
                for spec, result in zip(specs, embeddings, strict=True)
            ]
            # No await from here on: delete and insert share one transaction
            replaced = self._store.replace_file(
                file_path=file_path,
                relative_path=relative,
                language=language,
                last_modified=mtime_ms,
                chunks=rows,
            )
            if not replaced:
                return FileOutcome.UNCHANGED
            log.debug("indexer.file_indexed", path=relative, chunks=len(rows))
            return FileOutcome.INDEXED

        except NotFoundError as e:
            removed = self._store.remove_file(file_path)
            log.warning("indexer.file_missing", removed=removed, **e.to_dict())
            return FileOutcome.REMOVED if removed else FileOutcome.MISSING
        except Exception as e:
            log.warning("indexer.file_failed", path=file_path, error=str(e), error_type=type(e).__name__)
            return FileOutcome.FAILED

    def remove_file(self, path: Path) -> bool:
        """Drop a file's chunks. Returns True if it was indexed."""
        removed = self._store.remove_file(str(self._resolve(path)))
        if removed:
            log.info("indexer.file_removed", path=str(path))
        return removed

    # ------------------------------------------------------------------
    # Full pass
    # ------------------------------------------------------------------

    def discover_files(self) -> list[Path]:
        """All supported, non-ignored files under the root, sorted."""
        found: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(self._root):
            dirnames[:] = [d for d in dirnames if not self._ignore.should_prune_dir(d)]
            for filename in filenames:
                path = Path(dirpath) / filename
                if path.suffix.lower() in self._languages and not self._ignore.should_ignore(path):
                    found.append(path)
        return sorted(found)

    async def _index_many(self, paths: list[Path], *, report_progress: bool = False) -> list[FileOutcome]:
        batch_size = max(1, self._config.batch_size)
        outcomes: list[FileOutcome] = []
        for start in range(0, len(paths), batch_size):
            batch = paths[start : start + batch_size]
            outcomes.extend(await asyncio.gather(*(self.index_file(p) for p in batch)))
            done = len(outcomes)
            if report_progress and (done // PROGRESS_LOG_EVERY) > ((done - len(batch)) // PROGRESS_LOG_EVERY):
                log.info("indexer.progress", processed=done, total=len(paths))
        return outcomes

    async def index_codebase(self) -> IndexStats:
        """Run one full pass. A call while a pass is active returns current stats."""
        if self._indexing:
            log.warning("indexer.full_pass_rejected", reason="already_indexing")
            return self.get_stats()

        self._indexing = True
        try:
            # A drain already in flight finishes first; none starts until the pass ends
            async with self._drain_lock:
                return await self._full_pass()
        finally:
            self._indexing = False

    async def _full_pass(self) -> IndexStats:
        started = time.perf_counter()
        files = self.discover_files()
        log.info("indexer.full_pass_started", root=str(self._root), files=len(files))
        outcomes = await self._index_many(files, report_progress=True)

        discovered = {str(p) for p in files}
        for stale in sorted(self._store.tracked_files() - discovered):
            self._store.remove_file(stale)
            log.debug("indexer.stale_file_purged", path=stale)

        duration_ms = int((time.perf_counter() - started) * 1000)
        stats = self._store.write_stats(
            total_files=self._store.count_files(),
            total_chunks=self._store.count_chunks(),
            last_indexed=_now_ms(),
            index_duration=duration_ms,
        )
        counts = Counter(o.value for o in outcomes)
        log.info(
            "indexer.full_pass_complete",
            total_files=stats.total_files,
            total_chunks=stats.total_chunks,
            duration_ms=duration_ms,
            **counts,
        )
        return stats

    # ------------------------------------------------------------------
    # Debounced incremental updates
    # ------------------------------------------------------------------

    def queue_paths(self, paths: Iterable[Path]) -> None:
        """Record changed paths and restart the debounce window."""
        self._pending.update(self._resolve(Path(p)) for p in paths)
        log.debug("indexer.paths_queued", pending=len(self._pending))
        self._schedule_drain()

    def _schedule_drain(self) -> None:
        # Only the sleeping timer is cancelled; a running drain is its own task
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = asyncio.get_running_loop().create_task(self._debounce_timer())

    async def _debounce_timer(self) -> None:
        await asyncio.sleep(self._config.debounce_sec)
        self._debounce_task = None
        if self._indexing:
            log.debug("indexer.drain_deferred", reason="full_pass_active")
            self._schedule_drain()
            return
        task = asyncio.create_task(self.drain_pending())
        self._drain_tasks.add(task)
        task.add_done_callback(self._drain_tasks.discard)

    async def drain_pending(self) -> list[FileOutcome]:
        """Index every queued path once. Drains never overlap."""
        async with self._drain_lock:
            paths, self._pending = sorted(self._pending), set()
            if not paths:
                return []
            outcomes = await self._index_many(paths)
            self._store.write_stats(
                total_files=self._store.count_files(),
                total_chunks=self._store.count_chunks(),
            )
            counts = Counter(o.value for o in outcomes)
            log.info("indexer.drain_complete", paths=len(paths), **counts)
            return outcomes

    async def wait_idle(self) -> None:
        """Wait for the debounce timer and any running drains to finish."""
        while self._debounce_task is not None or self._drain_tasks:
            if self._debounce_task is not None:
                with contextlib.suppress(asyncio.CancelledError):
                    await self._debounce_task
            if self._drain_tasks:
                await asyncio.gather(*self._drain_tasks, return_exceptions=True)

    async def start_watching(self) -> None:
        if self._watcher is not None:
            return
        self._watcher = FileWatcher(
            repo_root=self._root,
            on_change=self.queue_paths,
            ignore_checker=self._ignore,
            extensions=frozenset(self._languages),
            poll_interval=self._config.poll_interval_sec,
        )
        await self._watcher.start()

    async def stop_watching(self) -> None:
        if self._watcher is not None:
            await self._watcher.stop()
            self._watcher = None
        if self._debounce_task is not None:
            self._debounce_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._debounce_task
            self._debounce_task = None
        if self._drain_tasks:
            await asyncio.gather(*self._drain_tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def search_similar_chunks(
        self,
        query: str,
        *,
        top_k: int | None = None,
        threshold: float | None = None,
        language: str | None = None,
    ) -> list[ChunkMatch]:
        """Brute-force cosine search over stored chunks. Returns [] on failure."""
        top_k = self._config.search_top_k if top_k is None else top_k
        threshold = self._config.search_threshold if threshold is None else threshold
        try:
            result = await self._gateway.embed(query)
            candidates = self._store.load_embeddings(language)
            ranked = rank_by_similarity(result.vector, candidates, top_k=top_k, threshold=threshold)
        except Exception as e:
            log.warning("indexer.search_failed", error=str(e), error_type=type(e).__name__)
            return []
        return [ChunkMatch(chunk=chunk, similarity=score) for chunk, score in ranked]

    def get_stats(self) -> IndexStats:
        """Stored timing of the last full pass with live file and chunk counts."""
        stored = self._store.read_stats()
        return IndexStats(
            total_files=self._store.count_files(),
            total_chunks=self._store.count_chunks(),
            last_indexed=stored.last_indexed,
            index_duration=stored.index_duration,
        )

    def clear_index(self) -> None:
        self._pending.clear()
        self._store.clear()

    async def close(self) -> None:
        await self.stop_watching()
        self._store.close()
