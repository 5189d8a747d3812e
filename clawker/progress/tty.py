"""Rich live renderer for interactive terminals.

Redraws a bounded window of build steps in place using ``rich.live.Live``
on a cooperative tick, then erases the live region and prints a static
summary.

Glyphs
------
- spinner : RUNNING (cycles through ``spinner_frames``)
- ✓ green : COMPLETE
- ◇ blue  : CACHED
- ✗ red   : ERROR
- ○ dim   : PENDING

Any failure of the terminal calls demotes the renderer to
``PlainRenderer`` for the rest of the build.  TTY failures never surface
as render errors.
"""

from __future__ import annotations

import logging

from rich.console import Group, RenderableType
from rich.live import Live
from rich.table import Table
from rich.text import Text

from clawker.models.steps import Step, StepStatus, StepUpdate
from clawker.progress.base import ProgressRenderer, RenderResult
from clawker.progress.plain import PlainRenderer

logger = logging.getLogger(__name__)

# Heading for steps without a stage label, drawn first when stages exist.
UNGROUPED_LABEL = "ungrouped"


# ---------------------------------------------------------------------------
# Status -> Rich style mapping
# ---------------------------------------------------------------------------

_STATUS_STYLES: dict[StepStatus, str] = {
    StepStatus.PENDING: "dim",
    StepStatus.RUNNING: "bold yellow",
    StepStatus.COMPLETE: "green",
    StepStatus.CACHED: "blue",
    StepStatus.ERROR: "bold red",
}

_STATUS_GLYPHS: dict[StepStatus, str] = {
    StepStatus.PENDING: "○",
    StepStatus.COMPLETE: "✓",
    StepStatus.CACHED: "◇",
    StepStatus.ERROR: "✗",
}


def select_window(steps: list[Step], max_visible: int) -> tuple[list[Step], list[Step]]:
    """Split *steps* into (visible, hidden), keeping first-observation order.

    Running and errored steps are kept first; remaining slots go to the
    most recently observed steps, so old completed steps scroll off.
    """
    if len(steps) <= max_visible:
        return list(steps), []

    positions = {step.step_id: index for index, step in enumerate(steps)}
    active = [s for s in steps if s.status in (StepStatus.RUNNING, StepStatus.ERROR)]
    chosen = active[-max_visible:]
    chosen_ids = {s.step_id for s in chosen}
    for step in reversed(steps):
        if len(chosen) >= max_visible:
            break
        if step.step_id not in chosen_ids:
            chosen.append(step)
            chosen_ids.add(step.step_id)

    visible = sorted(chosen, key=lambda s: positions[s.step_id])
    hidden = [s for s in steps if s.step_id not in chosen_ids]
    return visible, hidden


def order_by_group(steps: list[Step]) -> list[Step]:
    """Stable-sort so ungrouped steps come first, then each group contiguously."""
    first_seen: dict[str, int] = {}
    for step in steps:
        first_seen.setdefault(step.group, len(first_seen))
    return sorted(steps, key=lambda s: (s.group != "", first_seen[s.group]))


class TTYRenderer(ProgressRenderer):
    """Redrawable step list for a terminal error stream."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._live: Live | None = None
        self._fallback: PlainRenderer | None = None
        self._frame = 0
        self._last_draw: float | None = None

    @property
    def demoted(self) -> bool:
        """Whether rendering has fallen back to plain text."""
        return self._fallback is not None

    # ------------------------------------------------------------------
    # Failure isolation
    # ------------------------------------------------------------------

    def _demote(self, exc: BaseException) -> None:
        logger.debug("Terminal rendering failed (%s); falling back to plain output", exc)
        live, self._live = self._live, None
        if live is not None:
            try:
                live.stop()
            except Exception as stop_exc:  # noqa: BLE001
                logger.debug("Could not stop live display: %s", stop_exc)
        self._fallback = PlainRenderer(
            self.console,
            self.display,
            clock=self.clock,
            aggregator=self.aggregator,
            on_interrupt=self.on_interrupt,
            started_at=self.started_at,
        )

    # ------------------------------------------------------------------
    # Capability set
    # ------------------------------------------------------------------

    def on_start(self) -> None:
        try:
            self._live = Live(
                console=self.console,
                auto_refresh=False,
                transient=True,
                redirect_stdout=False,
                redirect_stderr=False,
            )
            self._live.start()
        except Exception as exc:  # noqa: BLE001
            self._demote(exc)

    def on_update(self, update: StepUpdate) -> None:
        if self._fallback is not None:
            self._fallback.on_update(update)

    def on_tick(self) -> None:
        if self._live is None:
            return
        now = self.clock()
        due = self._last_draw is None or now - self._last_draw >= self.display.tick_interval
        if not due:
            return
        # The spinner and running durations move even without new events.
        self._frame += 1
        self._last_draw = now
        try:
            self._live.update(self.render_frame(now), refresh=True)
        except Exception as exc:  # noqa: BLE001
            self._demote(exc)

    def on_complete(self, outcome: BaseException | None) -> None:
        if self._live is not None:
            live, self._live = self._live, None
            try:
                live.stop()
            except Exception as exc:  # noqa: BLE001
                self._live = live
                self._demote(exc)
        if self._fallback is not None:
            self._fallback.on_complete(outcome)
            return
        try:
            self.console.print(self.render_summary(outcome), highlight=False)
        except Exception as exc:  # noqa: BLE001
            self._demote(exc)
            self._fallback.on_complete(outcome)

    def on_close(self) -> None:
        if self._live is None:
            return
        live, self._live = self._live, None
        try:
            live.stop()
        except Exception as exc:  # noqa: BLE001
            logger.debug("Could not stop live display: %s", exc)

    def result(self, outcome: BaseException | None) -> RenderResult:
        base = super().result(outcome)
        if self._fallback is None:
            return base
        fallback = self._fallback.result(outcome)
        return RenderResult(
            error=base.error or fallback.error,
            interrupted=base.interrupted,
            outcome=outcome,
        )

    # ------------------------------------------------------------------
    # Frame rendering
    # ------------------------------------------------------------------

    def render_frame(self, now: float) -> RenderableType:
        """Build the live region: header, hidden count, grouped step rows."""
        parts: list[RenderableType] = [self._render_header()]

        steps = [s for s in self.aggregator.snapshot() if s.classified and not s.is_internal]
        visible, hidden = select_window(steps, self.display.max_visible)

        if hidden:
            parts.append(Text(self._hidden_summary(hidden), style="dim"))

        grid = Table.grid(padding=(0, 1), expand=True)
        grid.add_column(width=1, no_wrap=True)
        grid.add_column(ratio=1, no_wrap=True, overflow="ellipsis")
        grid.add_column(justify="right", no_wrap=True)

        ordered = order_by_group(visible)
        draw_groups = any(step.group for step in ordered)
        current_group: str | None = None
        for step in ordered:
            if draw_groups and step.group != current_group:
                current_group = step.group
                heading = f"─ {step.group or UNGROUPED_LABEL}"
                grid.add_row("", Text(heading, style="bold cyan"), "")
            self._add_step_rows(grid, step, now)

        parts.append(grid)
        return Group(*parts)

    def _render_header(self) -> Text:
        header = Text("━━ ", style="blue")
        header.append(self.display.title, style="bold")
        if self.display.subtitle:
            header.append(" ━━━ ", style="blue")
            header.append(self.display.subtitle, style="dim")
        header.append(" ━━", style="blue")
        return header

    @staticmethod
    def _hidden_summary(hidden: list[Step]) -> str:
        completed = sum(1 for s in hidden if s.is_terminal)
        waiting = len(hidden) - completed
        noun = "step" if completed == 1 else "steps"
        text = f"{completed} {noun} completed"
        if waiting:
            text += f", {waiting} pending"
        return text

    def _glyph(self, step: Step) -> Text:
        if step.status == StepStatus.RUNNING:
            frames = self.display.spinner_frames or ("●",)
            glyph = frames[self._frame % len(frames)]
        else:
            glyph = _STATUS_GLYPHS[step.status]
        return Text(glyph, style=_STATUS_STYLES[step.status])

    def _add_step_rows(self, grid: Table, step: Step, now: float) -> None:
        name_style = "" if step.status != StepStatus.PENDING else "dim"
        name = Text(self.step_label(step.name, step.step_id), style=name_style)

        if step.status == StepStatus.PENDING:
            timing = Text("")
        elif step.status == StepStatus.CACHED:
            timing = Text("cached", style="blue")
        else:
            timing = Text(self.display.format_duration(step.duration(now)), style="dim")

        grid.add_row(self._glyph(step), name, timing)

        if step.status == StepStatus.ERROR and step.last_error:
            grid.add_row("", Text(step.last_error, style="red"), "")
        if step.status in (StepStatus.RUNNING, StepStatus.ERROR):
            for line in step.log_tail[-self.display.log_lines:]:
                grid.add_row("", Text(f"  {line}", style="dim"), "")

    # ------------------------------------------------------------------
    # Final summary
    # ------------------------------------------------------------------

    def render_summary(self, outcome: BaseException | None) -> RenderableType:
        """Static block printed once the live region is erased."""
        if self.is_aborted(outcome):
            return Text("✗ Build aborted", style="bold yellow")

        if self.is_failed(outcome):
            lines: list[RenderableType] = [
                Text(f"✗ Build failed: {self.failure_reason(outcome)}", style="bold red"),
            ]
            failed_step = self.aggregator.first_error()
            if failed_step is not None:
                lines.append(Text(f"  step: {self.step_label(failed_step.name, failed_step.step_id)}"))
                if failed_step.last_error:
                    lines.append(Text(f"  error: {failed_step.last_error}", style="red"))
                for line in failed_step.log_tail:
                    lines.append(Text(f"    {line}", style="dim"))
            return Group(*lines)

        accounting = self.aggregator.completion_accounting()
        target = self.display.subtitle or f"{accounting.done} steps"
        summary = Text("✓ ", style="bold green")
        summary.append(f"{self.display.completion_verb} {target} in {self.elapsed()}")
        if accounting.cached:
            summary.append(f" ({accounting.cached}/{accounting.total} cached)", style="dim")
        return summary
