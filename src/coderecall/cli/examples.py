"""coderecall examples commands - manage the code example ledger."""

from __future__ import annotations

import json
from pathlib import Path

import click
from rich.console import Console
from rich.syntax import Syntax

from coderecall.cli.utils import run_with_runtime
from coderecall.ledger.models import NewExample
from coderecall.retrieval.models import RetrievalResult
from coderecall.runtime import Runtime


@click.group()
def examples_group() -> None:
    """Store and query code examples."""


@examples_group.command("add")
@click.option("--task", required=True, help="Natural-language task description")
@click.option(
    "--code-file",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="File holding the generated code",
)
@click.option("--language", required=True)
@click.option("--tool", required=True, help="Tool that produced the code")
@click.option("--framework", default=None)
@click.option("--failed", is_flag=True, help="Record the example as a failure")
@click.option("--error-type", default=None)
@click.option("--error-message", default=None)
@click.pass_context
def add_command(
    ctx: click.Context,
    task: str,
    code_file: Path,
    language: str,
    tool: str,
    framework: str | None,
    failed: bool,
    error_type: str | None,
    error_message: str | None,
) -> None:
    """Store one example in the ledger."""
    example = NewExample(
        task=task,
        code=code_file.read_text(encoding="utf-8"),
        language=language,
        tool=tool,
        success=not failed,
        framework=framework,
        error_message=error_message,
        error_type=error_type,
    )

    async def _work(runtime: Runtime) -> int:
        return await runtime.ledger.insert(example)

    example_id = run_with_runtime(ctx, _work)
    Console(stderr=True).print(f"  [green]✓[/green] Stored example {example_id}")


@examples_group.command("similar")
@click.argument("query")
@click.option("--tool", default=None)
@click.option("--language", default=None)
@click.option("--top-k", type=int, default=None, help="Maximum results")
@click.option("--threshold", type=float, default=None, help="Minimum similarity (0-1)")
@click.option("--failures", is_flag=True, help="Search past failures instead of successes")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def similar_command(
    ctx: click.Context,
    query: str,
    tool: str | None,
    language: str | None,
    top_k: int | None,
    threshold: float | None,
    failures: bool,
    as_json: bool,
) -> None:
    """Find stored examples similar to QUERY."""

    async def _work(runtime: Runtime) -> list[RetrievalResult]:
        if failures:
            return await runtime.retrieval.retrieve_similar_failures(
                query, tool=tool, language=language, top_k=top_k, threshold=threshold
            )
        return await runtime.retrieval.retrieve_similar(
            query, tool=tool, language=language, top_k=top_k, threshold=threshold
        )

    results = run_with_runtime(ctx, _work)

    if as_json:
        click.echo(
            json.dumps(
                [
                    {
                        "id": r.example.id,
                        "task": r.example.task,
                        "language": r.example.language,
                        "tool": r.example.tool,
                        "success": r.example.success,
                        "error_type": r.example.error_type,
                        "similarity": round(r.similarity, 4),
                    }
                    for r in results
                ],
                indent=2,
            )
        )
        return

    console = Console()
    if not results:
        console.print("[yellow]No similar examples[/yellow]")
        return
    for r in results:
        label = "[red]failed[/red]" if not r.example.success else "[green]ok[/green]"
        console.print(
            f"[bold]#{r.example.id}[/bold] {label} {r.example.task} "
            f"[dim]({r.example.language}, {r.similarity * 100:.1f}%)[/dim]"
        )
        console.print(Syntax(r.example.code, r.example.language, line_numbers=False))


@examples_group.command("prune")
@click.option("--days", type=int, default=30, show_default=True, help="Delete examples older than this")
@click.pass_context
def prune_command(ctx: click.Context, days: int) -> None:
    """Delete old examples from the ledger and the vector index."""

    async def _work(runtime: Runtime) -> int:
        return await runtime.ledger.delete_older_than(days)

    deleted = run_with_runtime(ctx, _work)
    Console(stderr=True).print(f"  [green]✓[/green] Deleted {deleted} example(s) older than {days} days")


@examples_group.command("rebuild-vectors")
@click.pass_context
def rebuild_vectors_command(ctx: click.Context) -> None:
    """Replay every ledger row into the vector index."""

    async def _work(runtime: Runtime) -> int:
        return await runtime.ledger.rebuild_vector_index()

    count = run_with_runtime(ctx, _work)
    Console(stderr=True).print(f"  [green]✓[/green] Re-synced {count} example(s)")
