"""Pipeline driver — wires a builder, the progress channel and a renderer.

Threads
-------
- producer : runs ``builder.build`` and closes the channel with its outcome
- consumer : the calling thread, running the selected renderer

The driver joins the producer before returning, so no thread outlives a
call to ``run_build_pipeline``.

Outcome precedence: ``BuildError`` > ``BuildCancelledError`` >
``RenderError`` > success.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Sequence

from pydantic import BaseModel, ConfigDict
from rich.console import Console
from rich.text import Text

from clawker.engine.base import Builder
from clawker.errors import BuildCancelledError, BuildError, ClawkerError, RenderError
from clawker.models.events import BuildProgressFunc, LogLineEvent, StatusEvent
from clawker.models.options import BuildOptions, ProgressMode
from clawker.progress.base import ProgressRenderer, RenderResult
from clawker.progress.channel import DEFAULT_CAPACITY, ProgressChannel
from clawker.progress.display import ProgressDisplayConfig
from clawker.progress.plain import PlainRenderer
from clawker.progress.tty import TTYRenderer

logger = logging.getLogger(__name__)

_JOIN_SLICE = 0.1


class PipelineResult(BaseModel):
    """Composed outcome of one pipeline run.

    ``error`` follows the precedence above.  A ``RenderError`` is reported
    but does not make the build unsuccessful.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    error: ClawkerError | None = None
    render_error: RenderError | None = None
    diagnostic: str = ""
    interrupted: bool = False

    @property
    def ok(self) -> bool:
        """True unless the build failed or was cancelled."""
        return self.error is None or isinstance(self.error, RenderError)

    @property
    def cancelled(self) -> bool:
        return isinstance(self.error, BuildCancelledError)

    def raise_for_error(self) -> None:
        """Re-raise a build failure or cancellation."""
        if not self.ok and self.error is not None:
            raise self.error


def compose_outcome(
    build_outcome: BaseException | None,
    render_error: RenderError | None,
) -> ClawkerError | None:
    """Pick the pipeline error: build failure, then cancellation, then render."""
    if isinstance(build_outcome, BuildError):
        return build_outcome
    if isinstance(build_outcome, BuildCancelledError):
        return build_outcome
    return render_error


def select_renderer(
    mode: ProgressMode | str,
    console: Console,
    display: ProgressDisplayConfig | None = None,
    *,
    clock: Callable[[], float] = time.monotonic,
    on_interrupt: Callable[[], None] | None = None,
) -> ProgressRenderer | None:
    """Return the renderer for *mode*, or ``None`` when display is disabled.

    ``auto`` picks the TTY renderer when *console* writes to a terminal
    that supports cursor movement, else the plain renderer.
    """
    mode = ProgressMode(mode)
    if mode == ProgressMode.NONE:
        return None
    if mode == ProgressMode.AUTO:
        interactive = console.is_terminal and not console.is_dumb_terminal
        mode = ProgressMode.TTY if interactive else ProgressMode.PLAIN
    renderer_cls = TTYRenderer if mode == ProgressMode.TTY else PlainRenderer
    return renderer_cls(console, display, clock=clock, on_interrupt=on_interrupt)


def _invoke_builder(
    builder: Builder,
    image_ref: str,
    options: BuildOptions,
    cancel: threading.Event,
) -> BuildError | BuildCancelledError | None:
    """Run the builder, normalising every failure into the error taxonomy."""
    try:
        builder.build(image_ref, options, cancel=cancel)
    except (BuildError, BuildCancelledError) as exc:
        return exc
    except Exception as exc:
        logger.debug("Builder raised %s; reporting as build error", type(exc).__name__)
        wrapped = BuildError(str(exc) or type(exc).__name__)
        wrapped.__cause__ = exc
        return wrapped
    if cancel.is_set():
        logger.debug("Builder returned normally after cancellation")
    return None


def _tee(
    first: BuildProgressFunc | None,
    second: Callable[[StatusEvent | LogLineEvent], object],
) -> BuildProgressFunc:
    if first is None:
        return second  # type: ignore[return-value]

    def forward(event: StatusEvent | LogLineEvent) -> None:
        first(event)
        second(event)

    return forward


def _join(thread: threading.Thread, cancel: threading.Event) -> None:
    while thread.is_alive():
        try:
            thread.join(_JOIN_SLICE)
        except KeyboardInterrupt:
            cancel.set()


def print_next_steps(console: Console, next_steps: Sequence[str]) -> None:
    """Print the caller's numbered "Next steps" block."""
    if not next_steps:
        return
    block = Text("\nNext steps:\n", style="bold")
    for index, line in enumerate(next_steps, start=1):
        block.append(f"  {index}. {line}\n")
    try:
        console.print(block, end="", highlight=False)
    except (OSError, ValueError) as exc:
        logger.debug("Could not print next steps: %s", exc)


def run_build_pipeline(
    builder: Builder,
    image_ref: str,
    options: BuildOptions | None = None,
    *,
    display: ProgressDisplayConfig | None = None,
    mode: ProgressMode | str = ProgressMode.AUTO,
    console: Console | None = None,
    cancel: threading.Event | None = None,
    capacity: int = DEFAULT_CAPACITY,
    next_steps: Sequence[str] = (),
    clock: Callable[[], float] = time.monotonic,
) -> PipelineResult:
    """Run one build with live progress and return the composed outcome.

    Parameters
    ----------
    builder:
        Adapter that performs the build and reports events.
    image_ref:
        Primary image reference handed to the builder.
    options:
        Resolved build options.  ``on_progress`` is replaced by the
        channel (a caller callback, if any, still sees every event first).
    display:
        Renderer options and injected capabilities.
    mode:
        ``auto``, ``plain``, ``tty`` or ``none``.
    console:
        Console bound to the error stream; defaults to stderr.
    cancel:
        Cancellation token shared with the builder.  Set on Ctrl+C.
    capacity:
        Progress channel size; at least 64.
    next_steps:
        Lines printed under "Next steps:" when the build fails or is
        cancelled.
    clock:
        Monotonic time source for the summary duration.
    """
    if capacity < DEFAULT_CAPACITY:
        raise ValueError(f"channel capacity must be at least {DEFAULT_CAPACITY}, got {capacity}")

    options = options or BuildOptions()
    console = console or Console(stderr=True)
    cancel = cancel or threading.Event()
    mode = ProgressMode(mode)

    renderer = select_renderer(mode, console, display, clock=clock, on_interrupt=cancel.set)

    if renderer is None:
        quiet = options.model_copy(update={"suppress_output": True, "on_progress": None})
        try:
            build_outcome = _invoke_builder(builder, image_ref, quiet, cancel)
        except KeyboardInterrupt:
            cancel.set()
            build_outcome = BuildCancelledError()
        return _finish(console, build_outcome, None, False, next_steps)

    channel = ProgressChannel(capacity)
    wired = options.model_copy(
        update={
            "suppress_output": False,
            "on_progress": _tee(options.on_progress, channel.send),
        }
    )
    holder: dict[str, BaseException | None] = {"outcome": None}

    def produce() -> None:
        outcome = _invoke_builder(builder, image_ref, wired, cancel)
        holder["outcome"] = outcome
        channel.close(outcome)

    producer = threading.Thread(target=produce, name="clawker-build", daemon=True)
    logger.debug("Starting build of %s with %s renderer", image_ref, type(renderer).__name__)
    producer.start()

    render: RenderResult | None = None
    try:
        render = renderer.run(channel)
    finally:
        channel.finish()
        if render is None:
            # Renderer crashed; stop the build rather than orphan it.
            cancel.set()
        _join(producer, cancel)

    if channel.dropped:
        logger.debug("%d progress events dropped after the display finished", channel.dropped)

    return _finish(console, holder["outcome"], render.error, render.interrupted, next_steps)


def _finish(
    console: Console,
    build_outcome: BaseException | None,
    render_error: RenderError | None,
    interrupted: bool,
    next_steps: Sequence[str],
) -> PipelineResult:
    if render_error is not None:
        logger.warning("Progress display failed: %s", render_error)
    error = compose_outcome(build_outcome, render_error)
    result = PipelineResult(
        error=error,
        render_error=render_error,
        diagnostic=getattr(error, "diagnostic", "") or "",
        interrupted=interrupted,
    )
    if not result.ok:
        print_next_steps(console, next_steps)
    return result
