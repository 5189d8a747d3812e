"""``clawker demo`` — replay a canned or recorded build through the pipeline.

Runs the real renderers and driver against ``ReplayBuilder``, so the
progress display can be reviewed without Docker.  ``--record`` saves the
events as they pass through, producing a scenario file that ``--file``
can replay later.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from clawker.config import settings
from clawker.engine.replay import EventRecorder, RecordedBuildScenario, ReplayBuilder
from clawker.engine.scenarios import ALL_SCENARIOS, get_scenario
from clawker.models.options import BuildOptions, ProgressMode
from clawker.progress.display import ProgressDisplayConfig
from clawker.progress.driver import run_build_pipeline

console = Console(stderr=True)

DEMO_NEXT_STEPS: tuple[str, ...] = (
    "This was a replay; no image was built",
    "Run 'clawker demo --scenario simple' for a successful build",
)


def _load_scenario(scenario: str, file: Optional[Path]) -> RecordedBuildScenario:
    if file is not None:
        try:
            return RecordedBuildScenario.load(file)
        except OSError as exc:
            console.print(f"[bold red]Cannot read scenario file:[/bold red] {escape(str(exc))}")
            raise typer.Exit(code=1)
        except ValidationError as exc:
            console.print(
                f"[bold red]Invalid scenario file {escape(str(file))}:[/bold red] "
                f"{exc.error_count()} validation error(s)"
            )
            raise typer.Exit(code=1)
    try:
        return get_scenario(scenario)
    except KeyError:
        known = ", ".join(ALL_SCENARIOS)
        console.print(f"[bold red]Unknown scenario:[/bold red] {escape(scenario)} (known: {known})")
        raise typer.Exit(code=1)


def demo_cmd(
    scenario: str = typer.Option(
        "multi-stage",
        "--scenario",
        "-s",
        help=f"Canned scenario to replay ({', '.join(ALL_SCENARIOS)}).",
    ),
    file: Optional[Path] = typer.Option(
        None,
        "--file",
        "-f",
        help="Replay a recorded scenario JSON file instead of a canned one.",
        dir_okay=False,
    ),
    progress: Optional[ProgressMode] = typer.Option(
        None,
        "--progress",
        help="Progress output: auto, plain, tty or none.",
        case_sensitive=False,
    ),
    speed: float = typer.Option(
        1.0,
        "--speed",
        min=0.0,
        help="Playback speed multiplier (0 replays without delays).",
    ),
    record: Optional[Path] = typer.Option(
        None,
        "--record",
        help="Save the replayed events as a scenario JSON file.",
        dir_okay=False,
    ),
) -> None:
    """Replay a build scenario through the progress display."""
    recorded = _load_scenario(scenario, file)
    mode = progress or ProgressMode(settings.progress)

    recorder = EventRecorder(recorded.name, recorded.description) if record else None
    options = BuildOptions(on_progress=recorder)

    display = ProgressDisplayConfig(
        title="Building",
        subtitle=f"demo/{recorded.name}:latest",
        max_visible=settings.max_visible,
        log_lines=settings.log_lines,
        refresh_hz=settings.refresh_hz,
    )

    result = run_build_pipeline(
        ReplayBuilder(recorded, speed=speed),
        display.subtitle,
        options,
        display=display,
        mode=mode,
        console=console,
        capacity=settings.channel_capacity,
        next_steps=DEMO_NEXT_STEPS,
    )

    if recorder is not None and record is not None:
        captured = recorder.scenario()
        path = captured.save(record)
        console.print(f"[green]Recorded {len(captured.events)} events to[/green] {escape(str(path))}")

    if result.cancelled:
        raise typer.Exit(code=130)
    if not result.ok:
        raise typer.Exit(code=1)
