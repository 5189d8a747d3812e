"""Plain-text progress renderer.

One line per observable transition, in event order, no colour, no cursor
movement.  The output is stable enough for golden-file comparison::

    #1 FROM node:20-slim
    #1 FROM node:20-slim DONE (0.4s)
    #2 RUN apt-get update
    #2 Reading package lists...
    #2 RUN apt-get update CACHED
    Built 2 steps in 1.2s
"""

from __future__ import annotations

from clawker.models.steps import Step, StepStatus, StepUpdate
from clawker.progress.base import ProgressRenderer


class PlainRenderer(ProgressRenderer):
    """Line-oriented renderer for pipes, CI logs and ``--progress=plain``."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._announced: set[str] = set()

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def emit(self, line: str) -> None:
        """Write one line; a failed write is recorded and rendering goes on."""
        try:
            self.console.out(line, highlight=False)
        except (OSError, ValueError) as exc:
            self.record_render_error(exc)

    def _prefix(self, step: Step) -> str:
        return f"#{step.ordinal}"

    def _label(self, step: Step) -> str:
        return self.step_label(step.name, step.step_id)

    # ------------------------------------------------------------------
    # Capability set
    # ------------------------------------------------------------------

    def on_update(self, update: StepUpdate) -> None:
        step = update.step
        if step.is_internal or not step.classified:
            return

        announced_now = step.step_id not in self._announced
        if announced_now:
            self._announced.add(step.step_id)
            self.emit(f"{self._prefix(step)} {self._label(step)}")
            for line in update.released_lines:
                self.emit(f"{self._prefix(step)} {line}")

        if update.log_line is not None:
            self.emit(f"{self._prefix(step)} {update.log_line}")
        elif step.is_terminal and (update.status_changed or announced_now):
            self.emit(self._completion_line(step))

    def _completion_line(self, step: Step) -> str:
        head = f"{self._prefix(step)} {self._label(step)}"
        if step.status == StepStatus.CACHED:
            return f"{head} CACHED"
        if step.status == StepStatus.ERROR:
            return f"{head} ERROR: {step.last_error}"
        # ended_at is set on every terminal step, so ``now`` is unused here
        duration = self.display.format_duration(step.duration(step.started_at))
        return f"{head} DONE ({duration})"

    def on_complete(self, outcome: BaseException | None) -> None:
        if self.is_aborted(outcome):
            self.emit("Build aborted")
        elif self.is_failed(outcome):
            self.emit(f"Build failed: {self.failure_reason(outcome)}")
        else:
            accounting = self.aggregator.completion_accounting()
            self.emit(
                f"{self.display.completion_verb} {accounting.done} steps in {self.elapsed()}"
            )
