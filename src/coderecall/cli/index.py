"""coderecall index / search / stats commands."""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from coderecall.cli.utils import run_with_runtime
from coderecall.indexer.models import ChunkMatch, IndexStats
from coderecall.runtime import Runtime


def _format_ms(epoch_ms: int | None) -> str:
    if epoch_ms is None:
        return "never"
    return datetime.fromtimestamp(epoch_ms / 1000, tz=UTC).strftime("%Y-%m-%d %H:%M:%S UTC")


@click.command()
@click.option("--watch", is_flag=True, help="Keep watching for changes after the full pass")
@click.pass_context
def index_command(ctx: click.Context, watch: bool) -> None:
    """Index the codebase, skipping files that are already up to date."""
    console = Console(stderr=True)

    async def _work(runtime: Runtime) -> IndexStats:
        with console.status("[cyan]Indexing codebase...[/cyan]", spinner="dots"):
            stats = await runtime.indexer.index_codebase()
        console.print(
            f"  [green]✓[/green] {stats.total_files} files, {stats.total_chunks} chunks "
            f"in {stats.index_duration / 1000:.2f}s"
        )
        if watch:
            await runtime.indexer.start_watching()
            console.print(f"[dim]Watching {runtime.repo_root} (Ctrl+C to stop)[/dim]")
            await asyncio.Event().wait()
        return stats

    try:
        run_with_runtime(ctx, _work)
    except KeyboardInterrupt:
        console.print("[dim]Stopped[/dim]")


@click.command()
@click.argument("query")
@click.option("--top-k", type=int, default=None, help="Maximum results")
@click.option("--threshold", type=float, default=None, help="Minimum similarity (0-1)")
@click.option("--language", default=None, help="Restrict to one language")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def search_command(
    ctx: click.Context,
    query: str,
    top_k: int | None,
    threshold: float | None,
    language: str | None,
    as_json: bool,
) -> None:
    """Find indexed code chunks similar to QUERY."""

    async def _work(runtime: Runtime) -> list[ChunkMatch]:
        return await runtime.indexer.search_similar_chunks(
            query, top_k=top_k, threshold=threshold, language=language
        )

    matches = run_with_runtime(ctx, _work)

    if as_json:
        click.echo(
            json.dumps(
                [
                    {
                        "path": m.chunk.relative_path,
                        "start_line": m.chunk.start_line,
                        "end_line": m.chunk.end_line,
                        "type": m.chunk.chunk_type,
                        "language": m.chunk.language,
                        "similarity": round(m.similarity, 4),
                    }
                    for m in matches
                ],
                indent=2,
            )
        )
        return

    console = Console()
    if not matches:
        console.print("[yellow]No matching chunks[/yellow]")
        return
    for m in matches:
        console.print(
            f"[cyan]{m.chunk.relative_path}[/cyan]:{m.chunk.start_line}-{m.chunk.end_line} "
            f"[dim]({m.chunk.chunk_type}, {m.similarity * 100:.1f}%)[/dim]"
        )


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def stats_command(ctx: click.Context, as_json: bool) -> None:
    """Show codebase index and example ledger statistics."""

    async def _work(runtime: Runtime) -> dict[str, Any]:
        data: dict[str, Any] = {
            "index": runtime.indexer.get_stats().to_dict(),
            "examples": runtime.ledger.stats(),
            "errors": runtime.ledger.error_stats(),
        }
        try:
            data["vector"] = await runtime.vector_index.stats()
        except Exception as e:
            data["vector"] = {"error": str(e)}
        return data

    data = run_with_runtime(ctx, _work)

    if as_json:
        click.echo(json.dumps(data, indent=2, default=str))
        return

    console = Console()
    index = data["index"]
    table = Table(title="Codebase index", show_header=False)
    table.add_row("Files", str(index["total_files"]))
    table.add_row("Chunks", str(index["total_chunks"]))
    table.add_row("Last full pass", _format_ms(index["last_indexed"]))
    table.add_row("Duration", f"{index['index_duration'] / 1000:.2f}s")
    console.print(table)

    examples = data["examples"]
    errors = data["errors"]
    table = Table(title="Example ledger", show_header=False)
    table.add_row("Successful examples", str(examples["total"]))
    table.add_row("Failures", str(errors["total_errors"]))
    for tool, count in examples["by_tool"].items():
        table.add_row(f"  tool: {tool}", str(count))
    for language, count in examples["by_language"].items():
        table.add_row(f"  language: {language}", str(count))
    console.print(table)

    vector = data["vector"]
    if "error" in vector:
        console.print(f"[yellow]Vector index unavailable:[/yellow] {vector['error']}")
    else:
        console.print(
            f"Vector index [cyan]{vector['collection']}[/cyan]: {vector['points_count']} points"
        )
