"""Renderer template shared by the plain and TTY displays.

Both renderers drain the same ``ProgressChannel`` through a private
``StepAggregator`` and differ only in how they emit.  Subclasses implement
the capability set ``on_update`` / ``on_tick`` / ``on_complete``; the
drain loop, interrupt handling and render-error bookkeeping live here.

Unless the user interrupted, the ``("progress", "before_complete")``
lifecycle hook runs before the summary and may skip it.
"""

from __future__ import annotations

import abc
import logging
import time
from typing import Callable

from pydantic import BaseModel, ConfigDict
from rich.console import Console

from clawker.errors import BuildCancelledError, RenderError
from clawker.models.steps import StepUpdate
from clawker.progress.aggregator import StepAggregator
from clawker.progress.channel import ChannelClosed, ProgressChannel
from clawker.progress.display import HookResult, ProgressDisplayConfig

logger = logging.getLogger(__name__)


class RenderResult(BaseModel):
    """What a renderer reports once the channel is drained.

    ``error`` is the first write failure, if any.  ``outcome`` is the
    builder outcome delivered with the close marker.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    error: RenderError | None = None
    interrupted: bool = False
    outcome: BaseException | None = None


class ProgressRenderer(abc.ABC):
    """Base class for progress renderers.

    Parameters
    ----------
    console:
        Rich Console bound to the error stream.
    display:
        Shared display options and injected capabilities.
    clock:
        Monotonic time source; tests pass a fake one.
    aggregator:
        Existing step table to continue from.  A fresh one is built when
        omitted.
    on_interrupt:
        Called when the user interrupts rendering (Ctrl+C).  The driver
        uses it to set the cancel token.
    started_at:
        Clock reading the summary duration is measured from.
    """

    def __init__(
        self,
        console: Console,
        display: ProgressDisplayConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        aggregator: StepAggregator | None = None,
        on_interrupt: Callable[[], None] | None = None,
        started_at: float | None = None,
    ) -> None:
        self.console = console
        self.display = display or ProgressDisplayConfig()
        self.clock = clock
        self.aggregator = aggregator if aggregator is not None else StepAggregator(
            self.display.log_lines,
            is_internal=self.display.is_internal,
            parse_group=self.display.parse_group,
        )
        self.on_interrupt = on_interrupt
        self.started_at = clock() if started_at is None else started_at
        self._render_error: RenderError | None = None
        self._interrupted = False

    # ------------------------------------------------------------------
    # Drain loop
    # ------------------------------------------------------------------

    def run(self, channel: ProgressChannel) -> RenderResult:
        """Consume *channel* until the producer closes it."""
        self.on_start()
        outcome: BaseException | None = None
        while True:
            try:
                try:
                    event = channel.receive(timeout=self.display.tick_interval)
                except ChannelClosed as closed:
                    outcome = closed.outcome
                    break
                if event is not None:
                    update = self.aggregator.on_event(event)
                    if update is not None:
                        self.on_update(update)
                self.on_tick()
            except KeyboardInterrupt:
                self._handle_interrupt()
        if self._interrupted:
            self.on_complete(outcome)
            return self.result(outcome)

        # The live display is still up while the hook runs.
        hook = self.display.fire_hook("progress", "before_complete")
        if hook.continue_:
            self.on_complete(outcome)
        else:
            self._record_hook_stop(hook)
            self.on_close()
        return self.result(outcome)

    def result(self, outcome: BaseException | None) -> RenderResult:
        return RenderResult(
            error=self._render_error,
            interrupted=self._interrupted,
            outcome=outcome,
        )

    def _handle_interrupt(self) -> None:
        if not self._interrupted:
            logger.debug("Interrupted; cancelling build and draining remaining events")
        self._interrupted = True
        if self.on_interrupt is not None:
            self.on_interrupt()

    def _record_hook_stop(self, hook: HookResult) -> None:
        logger.debug("Lifecycle hook stopped the summary: %s", hook.message or hook.error)
        if isinstance(hook.error, RenderError):
            self._render_error = hook.error
        elif hook.error is not None:
            self._render_error = RenderError(str(hook.error))
            self._render_error.__cause__ = hook.error
        elif hook.message:
            self._render_error = RenderError(hook.message)

    def record_render_error(self, exc: BaseException) -> None:
        """Keep the first write failure; later ones are only logged."""
        logger.debug("Progress output failed: %s", exc)
        if self._render_error is None:
            self._render_error = RenderError(f"progress output failed: {exc}")
            self._render_error.__cause__ = exc

    # ------------------------------------------------------------------
    # Shared summary helpers
    # ------------------------------------------------------------------

    def elapsed(self) -> str:
        return self.display.format_duration(max(self.clock() - self.started_at, 0.0))

    def step_label(self, name: str, step_id: str) -> str:
        """Display name for a step, falling back to its id while nameless."""
        return self.display.clean_name(name) if name else step_id

    @staticmethod
    def is_aborted(outcome: BaseException | None) -> bool:
        return isinstance(outcome, BuildCancelledError)

    def is_failed(self, outcome: BaseException | None) -> bool:
        """A build failed if the builder said so or any step errored."""
        if self.is_aborted(outcome):
            return False
        return outcome is not None or self.aggregator.completion_accounting().errored > 0

    def failure_reason(self, outcome: BaseException | None) -> str:
        """First errored step's message, else the builder error text."""
        failed_step = self.aggregator.first_error()
        if failed_step is not None and failed_step.last_error:
            return failed_step.last_error
        if outcome is not None:
            return str(outcome) or type(outcome).__name__
        return "unknown error"

    # ------------------------------------------------------------------
    # Capability set
    # ------------------------------------------------------------------

    def on_start(self) -> None:
        """Hook run before the first receive."""

    @abc.abstractmethod
    def on_update(self, update: StepUpdate) -> None:
        """Emit whatever a single step-table change requires."""

    def on_tick(self) -> None:
        """Hook run after every receive attempt, event or timeout."""

    def on_close(self) -> None:
        """Hook run instead of ``on_complete`` when the summary is skipped."""

    @abc.abstractmethod
    def on_complete(self, outcome: BaseException | None) -> None:
        """Emit the final summary for *outcome*."""
