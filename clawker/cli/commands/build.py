"""``clawker build`` — build an image with live step progress.

Resolves Docker-compatible flags into ``BuildOptions``, picks BuildKit or
the legacy builder, and runs the build through the progress pipeline.
Progress goes to stderr; the built image reference goes to stdout.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape

from clawker import __version__
from clawker.config import settings
from clawker.engine.docker import DockerBuilder, detect_buildkit
from clawker.models.options import BuildOptions, ProgressMode
from clawker.progress.display import ProgressDisplayConfig
from clawker.progress.driver import run_build_pipeline

logger = logging.getLogger(__name__)

console = Console(stderr=True)
out = Console()

LABEL_PREFIX = "com.clawker"

BUILD_NEXT_STEPS: tuple[str, ...] = (
    "Check your Dockerfile for syntax errors",
    "Ensure the base image exists and is accessible",
    "Run 'clawker build --no-cache' to rebuild from scratch",
    "Use '--progress=plain' for detailed build output",
)

EXIT_FAILURE = 1
EXIT_CANCELLED = 130


# ---------------------------------------------------------------------------
# Flag resolution
# ---------------------------------------------------------------------------


def parse_build_args(values: list[str] | None) -> dict[str, str | None]:
    """Parse ``KEY=VALUE`` build args; a bare ``KEY`` maps to ``None``.

    A bare key tells the engine to take the value from its environment.
    """
    args: dict[str, str | None] = {}
    for raw in values or []:
        key, sep, value = raw.partition("=")
        key = key.strip()
        if not key:
            logger.warning("Ignoring build arg with empty name: %r", raw)
            continue
        args[key] = value if sep else None
    return args


def parse_key_value_pairs(values: list[str] | None) -> dict[str, str]:
    """Parse ``KEY=VALUE`` pairs; entries without ``=`` are logged and ignored."""
    pairs: dict[str, str] = {}
    invalid: list[str] = []
    for raw in values or []:
        key, sep, value = raw.partition("=")
        if not sep or not key.strip():
            invalid.append(raw)
            continue
        pairs[key.strip()] = value
    if invalid:
        logger.warning(
            "Labels without '=' were ignored (use KEY=VALUE): %s", ", ".join(invalid)
        )
    return pairs


def clawker_labels(project: str, version: str = __version__) -> dict[str, str]:
    """Labels clawker stamps on every image it builds."""
    return {
        f"{LABEL_PREFIX}.managed": "true",
        f"{LABEL_PREFIX}.project": project,
        f"{LABEL_PREFIX}.version": version,
    }


def merge_labels(user: dict[str, str], managed: dict[str, str]) -> dict[str, str]:
    """Merge labels; clawker's own labels override user labels."""
    return {**user, **managed}


def project_name(context: Path) -> str:
    """Image-safe project name derived from the context directory."""
    name = context.resolve().name.lower()
    name = re.sub(r"[^a-z0-9._-]+", "-", name).strip("-._")
    return name or "image"


def default_image_tag(context: Path) -> str:
    return f"clawker-{project_name(context)}:latest"


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------


def build_cmd(
    context: Path = typer.Argument(
        Path("."),
        help="Build context directory.",
        exists=True,
        file_okay=False,
        dir_okay=True,
    ),
    file: Optional[str] = typer.Option(
        None, "--file", "-f", help="Path to the Dockerfile (default: CONTEXT/Dockerfile)."
    ),
    tags: Optional[List[str]] = typer.Option(
        None, "--tag", "-t", help="Image name and tag (name:tag). Repeatable."
    ),
    no_cache: bool = typer.Option(False, "--no-cache", help="Do not use cache when building."),
    pull: bool = typer.Option(False, "--pull", help="Always attempt to pull newer base images."),
    build_args: Optional[List[str]] = typer.Option(
        None, "--build-arg", help="Set a build-time variable (KEY=VALUE or KEY). Repeatable."
    ),
    labels: Optional[List[str]] = typer.Option(
        None, "--label", help="Set image metadata (KEY=VALUE). Repeatable."
    ),
    target: str = typer.Option("", "--target", help="Build stage to stop at."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress build output."),
    progress: Optional[ProgressMode] = typer.Option(
        None,
        "--progress",
        help="Progress output: auto, plain, tty or none (default: $CLAWKER_PROGRESS or auto).",
        case_sensitive=False,
    ),
    network: str = typer.Option("", "--network", help="Networking mode for RUN instructions."),
) -> None:
    """Build an image from a Dockerfile with live step progress."""
    mode = progress or ProgressMode(settings.progress)
    if quiet:
        mode = ProgressMode.NONE

    tag_list = [t for t in (tags or []) if t.strip()]
    image_ref = tag_list[0] if tag_list else default_image_tag(context)
    project = project_name(context)

    options = BuildOptions(
        context_dir=context,
        dockerfile=file,
        no_cache=no_cache,
        pull=pull,
        target=target,
        tags=tag_list[1:],
        build_args=parse_build_args(build_args),
        labels=merge_labels(parse_key_value_pairs(labels), clawker_labels(project)),
        network_mode=network,
        buildkit_enabled=detect_buildkit(settings.docker_bin),
    )
    display = ProgressDisplayConfig(
        title="Building",
        subtitle=image_ref,
        completion_verb="Built",
        max_visible=settings.max_visible,
        log_lines=settings.log_lines,
        refresh_hz=settings.refresh_hz,
    )

    result = run_build_pipeline(
        DockerBuilder(settings.docker_bin),
        image_ref,
        options,
        display=display,
        mode=mode,
        console=console,
        capacity=settings.channel_capacity,
        next_steps=BUILD_NEXT_STEPS,
    )

    if result.cancelled:
        console.print("[yellow]Build cancelled.[/yellow]")
        raise typer.Exit(code=EXIT_CANCELLED)
    if not result.ok:
        if result.diagnostic:
            console.print(result.diagnostic, markup=False, highlight=False)
        console.print(f"[bold red]Error:[/bold red] {escape(str(result.error))}", highlight=False)
        raise typer.Exit(code=EXIT_FAILURE)

    out.print(image_ref, markup=False, highlight=False)
