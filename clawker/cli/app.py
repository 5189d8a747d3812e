"""Main Typer application — imports and registers all CLI commands.

Entry point: ``clawker`` (configured via pyproject.toml ``[project.scripts]``).

Commands: build, demo.
"""

from __future__ import annotations

from typing import Optional

import typer

from clawker import __version__
from clawker.cli.commands.build import build_cmd
from clawker.cli.commands.demo import demo_cmd
from clawker.config import configure_logging, settings

app = typer.Typer(
    name="clawker",
    help="clawker: Docker image builds with live step progress.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="build", help="Build an image from a Dockerfile.")(build_cmd)
app.command(name="demo", help="Replay a build scenario through the progress display.")(demo_cmd)


def _show_version(value: bool) -> None:
    if value:
        typer.echo(f"clawker {__version__}")
        raise typer.Exit()


@app.callback()
def root(
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Logging level for diagnostics on stderr (default: $CLAWKER_LOG_LEVEL or WARNING).",
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging."),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_show_version,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """Bootstrap logging before any command runs."""
    if debug:
        level = "DEBUG"
    elif log_level:
        level = log_level
    else:
        level = settings.effective_log_level
    configure_logging(level)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
