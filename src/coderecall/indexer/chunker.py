"""Chunk boundary detection.

Syntax-aware chunkers plug in through the ``Chunker`` protocol. The default
splits files into fixed line windows so every supported language indexes.
"""

from __future__ import annotations

from typing import Protocol

from coderecall.indexer.models import ChunkSpec

DEFAULT_WINDOW_LINES = 120


class Chunker(Protocol):
    def chunk(self, content: str, language: str) -> list[ChunkSpec]: ...


class LineWindowChunker:
    """Whole file as one chunk when short, otherwise consecutive line windows."""

    def __init__(self, window_lines: int = DEFAULT_WINDOW_LINES) -> None:
        if window_lines < 1:
            raise ValueError(f"window_lines must be >= 1, got {window_lines}")
        self._window = window_lines

    def chunk(self, content: str, language: str) -> list[ChunkSpec]:  # noqa: ARG002
        if not content.strip():
            return []

        lines = content.splitlines()
        if len(lines) <= self._window:
            return [ChunkSpec(code=content, start_line=1, end_line=len(lines), type="file")]

        specs: list[ChunkSpec] = []
        for start in range(0, len(lines), self._window):
            window = lines[start : start + self._window]
            text = "\n".join(window)
            if not text.strip():
                continue
            specs.append(
                ChunkSpec(
                    code=text,
                    start_line=start + 1,
                    end_line=start + len(window),
                    type="block",
                )
            )
        return specs
