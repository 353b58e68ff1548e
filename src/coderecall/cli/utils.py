"""CLI utilities."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import click

from coderecall.config.loader import load_config
from coderecall.core.errors import CodeRecallError
from coderecall.core.logging import configure_logging, get_log_file_path
from coderecall.runtime import Runtime, build_runtime

T = TypeVar("T")


def repo_root_from(ctx: click.Context) -> Path:
    root: Path = ctx.obj.get("root") or Path.cwd()
    return root.resolve()


def error_message(error: CodeRecallError) -> str:
    """Error text for the terminal, pointing at the log file when one is configured."""
    log_file = get_log_file_path()
    if log_file is None:
        return str(error)
    return f"{error}\nSee {log_file} for details"


def run_with_runtime(ctx: click.Context, work: Callable[[Runtime], Awaitable[T]]) -> T:
    """Build a runtime for the selected repo, run ``work`` and always close it.

    The repo's logging configuration replaces the bootstrap one unless
    ``--verbose`` was given. Engine errors surface as ``click.ClickException``
    with the error code.
    """
    repo_root = repo_root_from(ctx)

    async def _run() -> T:
        config = load_config(repo_root)
        if not ctx.obj.get("verbose"):
            configure_logging(config=config.logging)
        runtime = await build_runtime(config, repo_root)
        try:
            return await work(runtime)
        finally:
            await runtime.aclose()

    try:
        return asyncio.run(_run())
    except CodeRecallError as e:
        raise click.ClickException(error_message(e)) from e
