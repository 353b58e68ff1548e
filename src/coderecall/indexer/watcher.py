"""Filesystem change feed for the indexer.

Native mode gives watchfiles an explicit, pruned directory list with
``recursive=False`` so dependency trees never receive inotify watches. A new
directory inside the repo restarts the watch with a fresh list. Roots on
cross-filesystem mounts (WSL ``/mnt/<drive>``, removable media, network
shares) fall back to comparing mtime snapshots.

No debouncing happens here: each filtered batch goes straight to
``on_change`` and the indexer collapses bursts.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import re
from collections import Counter
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

import structlog
from watchfiles import Change, awatch

from coderecall.indexer.ignore import IgnoreChecker

log = structlog.get_logger()

_LANGUAGE_LABELS: dict[str, str] = {
    ".py": "Python",
    ".js": "JavaScript",
    ".ts": "TypeScript",
    ".jsx": "JSX",
    ".tsx": "TSX",
}

_WSL_DRIVE = re.compile(r"^/mnt/[A-Za-z]/")
_REMOTE_PREFIXES = ("/run/user/", "/media/", "/net/")

WATCH_STEP_MS = 500
WATCH_RUST_TIMEOUT_MS = 10_000
WATCH_ERROR_BACKOFF_SEC = 1.0
STOP_TIMEOUT_SEC = 2.0


def _walk_pruned(root: Path, ignore_checker: IgnoreChecker) -> Iterator[tuple[Path, list[str]]]:
    """``os.walk`` that never descends into pruned directories."""
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if not ignore_checker.should_prune_dir(d)]
        yield Path(dirpath), filenames


def _collect_watch_dirs(repo_root: Path, ignore_checker: IgnoreChecker) -> list[Path]:
    """Root first, then every directory that survives pruning."""
    dirs = [repo_root]
    with contextlib.suppress(OSError):
        dirs.extend(d for d, _ in _walk_pruned(repo_root, ignore_checker) if d != repo_root)
    return dirs


def _is_cross_filesystem(path: Path) -> bool:
    resolved = f"{path.resolve()}/"
    return bool(_WSL_DRIVE.match(resolved)) or resolved.startswith(_REMOTE_PREFIXES)


def summarize_changes(paths: list[Path]) -> str:
    """Short description such as "2 Python files, 1 TypeScript file"."""
    by_ext = Counter(p.suffix.lower() for p in paths)
    top = by_ext.most_common(3)
    parts = []
    for ext, count in top:
        label = _LANGUAGE_LABELS.get(ext) or (ext.lstrip(".").upper() if ext else "other")
        parts.append(f"{count} {label} file{'' if count == 1 else 's'}")

    rest = len(paths) - sum(count for _, count in top)
    if rest:
        parts.append(f"{rest} {'other' if rest == 1 else 'others'}")
    return ", ".join(parts)


@dataclass
class FileWatcher:
    """Forwards filtered, absolute paths of changed source files to ``on_change``."""

    repo_root: Path
    on_change: Callable[[list[Path]], None]
    ignore_checker: IgnoreChecker | None = None
    extensions: frozenset[str] | None = None
    poll_interval: float = 1.0  # seconds, polling mode only

    _task: asyncio.Task[None] | None = field(default=None, init=False)
    _stop_event: asyncio.Event = field(default_factory=asyncio.Event, init=False)
    _watched_dirs: set[Path] = field(default_factory=set, init=False)
    _polling: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        self.repo_root = self.repo_root.resolve()
        if self.ignore_checker is None:
            self.ignore_checker = IgnoreChecker(self.repo_root)
        self._polling = _is_cross_filesystem(self.repo_root)

    @property
    def _checker(self) -> IgnoreChecker:
        assert self.ignore_checker is not None
        return self.ignore_checker

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self._task is not None:
            return
        self._stop_event.clear()
        loop = self._poll_loop() if self._polling else self._watch_loop()
        self._task = asyncio.create_task(loop)
        log.info(
            "watcher.started",
            repo_root=str(self.repo_root),
            mode="polling" if self._polling else "native_nonrecursive",
        )

    async def stop(self) -> None:
        self._stop_event.set()
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError, TimeoutError):
                await asyncio.wait_for(task, timeout=STOP_TIMEOUT_SEC)
        log.info("watcher.stopped")

    def _accepts(self, path: Path) -> bool:
        if self.extensions is not None and path.suffix.lower() not in self.extensions:
            return False
        return not self._checker.should_ignore(path)

    def _emit(self, paths: Iterable[Path]) -> None:
        batch = sorted({p for p in paths if self._accepts(p)})
        if not batch:
            return
        log.info("watcher.changes_detected", count=len(batch), summary=summarize_changes(batch))
        self.on_change(batch)

    # ------------------------------------------------------------------
    # Native mode
    # ------------------------------------------------------------------

    async def _watch_loop(self) -> None:
        with contextlib.suppress(asyncio.CancelledError):
            while not self._stop_event.is_set():
                dirs = _collect_watch_dirs(self.repo_root, self._checker)
                self._watched_dirs = set(dirs)
                log.debug("watcher.dirs_collected", count=len(dirs))
                try:
                    await self._watch_until_restart(dirs)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    if self._stop_event.is_set():
                        return
                    log.error("watcher.error", error=str(e))
                    await asyncio.sleep(WATCH_ERROR_BACKOFF_SEC)

    async def _watch_until_restart(self, dirs: list[Path]) -> None:
        async for changes in awatch(
            *dirs,
            recursive=False,
            step=WATCH_STEP_MS,
            rust_timeout=WATCH_RUST_TIMEOUT_MS,
            stop_event=self._stop_event,
            ignore_permission_denied=True,
        ):
            if self._handle_changes(changes):
                log.info("watcher.restart", reason="new_directories")
                return

    def _handle_changes(self, changes: set[tuple[Change, str]]) -> bool:
        """Forward file changes from one batch; True when a new directory needs a watch."""
        files: list[Path] = []
        new_dir = False
        for change, raw in changes:
            path = Path(raw)
            if not path.is_relative_to(self.repo_root):
                continue
            if change == Change.added and path.is_dir():
                new_dir = new_dir or (
                    path not in self._watched_dirs and not self._checker.should_prune_dir(path.name)
                )
                continue
            files.append(path)
        self._emit(files)
        return new_dir

    # ------------------------------------------------------------------
    # Polling mode
    # ------------------------------------------------------------------

    def _scan_mtimes(self) -> dict[Path, float]:
        snapshot: dict[Path, float] = {}
        for dirpath, filenames in _walk_pruned(self.repo_root, self._checker):
            for name in filenames:
                path = dirpath / name
                with contextlib.suppress(OSError):
                    snapshot[path] = path.stat().st_mtime
        return snapshot

    async def _poll_loop(self) -> None:
        previous = self._scan_mtimes()
        with contextlib.suppress(asyncio.CancelledError):
            while not self._stop_event.is_set():
                await asyncio.sleep(self.poll_interval)
                try:
                    current = self._scan_mtimes()
                except OSError as e:
                    log.error("watcher.poll_error", error=str(e))
                    continue
                touched = [p for p, mtime in current.items() if previous.get(p, -1.0) < mtime]
                touched.extend(p for p in previous if p not in current)
                previous = current
                self._emit(touched)
