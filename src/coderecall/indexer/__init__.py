"""Codebase indexing: discovery, chunking, embedding and change tracking."""

from coderecall.indexer.chunker import Chunker, LineWindowChunker
from coderecall.indexer.ignore import IgnoreChecker
from coderecall.indexer.indexer import IncrementalIndexer
from coderecall.indexer.models import (
    LANGUAGE_BY_EXTENSION,
    ChunkMatch,
    ChunkRecord,
    ChunkSpec,
    FileOutcome,
    IndexStats,
)
from coderecall.indexer.store import ChunkStore
from coderecall.indexer.watcher import FileWatcher

__all__ = [
    "LANGUAGE_BY_EXTENSION",
    "ChunkMatch",
    "ChunkRecord",
    "ChunkSpec",
    "ChunkStore",
    "Chunker",
    "FileOutcome",
    "FileWatcher",
    "IgnoreChecker",
    "IncrementalIndexer",
    "IndexStats",
    "LineWindowChunker",
]
