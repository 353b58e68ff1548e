"""CodeRecall CLI - coderecall command."""

from pathlib import Path

import click

from coderecall import __version__
from coderecall.cli.examples import examples_group
from coderecall.cli.index import index_command, search_command, stats_command
from coderecall.core.logging import configure_logging


@click.group()
@click.version_option(version=__version__, prog_name="coderecall")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Repository root (default: current directory)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, root: Path | None) -> None:
    """CodeRecall - semantic memory of code examples and the codebase."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["root"] = root
    configure_logging(level="DEBUG" if verbose else "INFO")


cli.add_command(index_command, name="index")
cli.add_command(search_command, name="search")
cli.add_command(stats_command, name="stats")
cli.add_command(examples_group, name="examples")


if __name__ == "__main__":
    cli()
