"""Unit tests for the TTYRenderer.

Tests the visible-window selection, group ordering, frame and summary
content, and demotion to plain output when the terminal fails.
"""

from __future__ import annotations

import io

import pytest
from rich.console import Console
from rich.live import Live

from clawker.errors import BuildCancelledError, BuildError, RenderError
from clawker.models.events import LogLineEvent, StatusEvent
from clawker.models.steps import Step, StepStatus
from clawker.progress.channel import ProgressChannel
from clawker.progress.display import HookResult, ProgressDisplayConfig
from clawker.progress.tty import (
    _STATUS_GLYPHS,
    _STATUS_STYLES,
    TTYRenderer,
    order_by_group,
    select_window,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _terminal_console(buffer: io.StringIO) -> Console:
    return Console(
        file=buffer,
        force_terminal=True,
        color_system=None,
        width=100,
        _environ={"TERM": "xterm-256color"},
    )


def _text(renderable) -> str:
    """Render *renderable* to plain text."""
    console = Console(file=io.StringIO(), color_system=None, width=100)
    with console.capture() as capture:
        console.print(renderable)
    return capture.get()


def _status(step_id: str, name: str, status: StepStatus, at: float = 100.0, **kw) -> StatusEvent:
    return StatusEvent(step_id=step_id, step_name=name, status=status, observed_at=at, **kw)


def _step(step_id: str, status: StepStatus, group: str = "") -> Step:
    return Step(step_id=step_id, name=f"RUN {step_id}", status=status, group=group)


def _drain(renderer: TTYRenderer, events, outcome=None):
    channel = ProgressChannel(64)
    for event in events:
        channel.send(event)
    channel.close(outcome)
    return renderer.run(channel)


@pytest.fixture
def tty_output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def renderer(tty_output, display, clock) -> TTYRenderer:
    return TTYRenderer(_terminal_console(tty_output), display, clock=clock)


# ---------------------------------------------------------------------------
# Test: Mappings
# ---------------------------------------------------------------------------


class TestStatusMappings:
    def test_all_statuses_have_styles(self):
        for status in StepStatus:
            assert status in _STATUS_STYLES, f"Missing style for {status}"

    def test_non_running_statuses_have_glyphs(self):
        for status in StepStatus:
            if status != StepStatus.RUNNING:
                assert status in _STATUS_GLYPHS, f"Missing glyph for {status}"


# ---------------------------------------------------------------------------
# Test: Window selection
# ---------------------------------------------------------------------------


class TestSelectWindow:
    def test_everything_fits(self):
        steps = [_step("a", StepStatus.COMPLETE), _step("b", StepStatus.RUNNING)]
        visible, hidden = select_window(steps, 5)
        assert visible == steps
        assert hidden == []

    def test_old_completed_scroll_off(self):
        steps = [_step(c, StepStatus.COMPLETE) for c in "abcd"] + [_step("e", StepStatus.RUNNING)]
        visible, hidden = select_window(steps, 3)
        assert [s.step_id for s in visible] == ["c", "d", "e"]
        assert [s.step_id for s in hidden] == ["a", "b"]

    def test_running_never_hidden_while_room(self):
        steps = [
            _step("a", StepStatus.RUNNING),
            _step("b", StepStatus.COMPLETE),
            _step("c", StepStatus.COMPLETE),
            _step("d", StepStatus.COMPLETE),
        ]
        visible, _ = select_window(steps, 2)
        assert [s.step_id for s in visible] == ["a", "d"]

    def test_errored_kept(self):
        steps = [_step("a", StepStatus.ERROR)] + [_step(c, StepStatus.COMPLETE) for c in "bcd"]
        visible, _ = select_window(steps, 2)
        assert "a" in [s.step_id for s in visible]

    def test_order_preserved(self):
        steps = [_step(c, StepStatus.RUNNING if c in "bd" else StepStatus.COMPLETE) for c in "abcde"]
        visible, _ = select_window(steps, 3)
        assert [s.step_id for s in visible] == ["b", "d", "e"]


class TestOrderByGroup:
    def test_ungrouped_first_then_contiguous(self):
        steps = [
            _step("a", StepStatus.COMPLETE, "builder"),
            _step("b", StepStatus.COMPLETE, ""),
            _step("c", StepStatus.COMPLETE, "runtime"),
            _step("d", StepStatus.COMPLETE, "builder"),
        ]
        assert [s.step_id for s in order_by_group(steps)] == ["b", "a", "d", "c"]


# ---------------------------------------------------------------------------
# Test: Frame
# ---------------------------------------------------------------------------


class TestRenderFrame:
    def test_header_and_groups(self, renderer):
        agg = renderer.aggregator
        agg.on_event(_status("i", "[internal] load build definition", StepStatus.COMPLETE))
        agg.on_event(_status("b1", "[builder 1/2] FROM golang:1.22", StepStatus.COMPLETE, at=101.0))
        agg.on_event(_status("b2", "[builder 2/2] RUN go build", StepStatus.RUNNING))
        agg.on_event(LogLineEvent(step_id="b2", log_line="go: downloading x"))

        text = _text(renderer.render_frame(now=102.5))

        assert "━━ Building ━━━ app:latest ━━" in text
        assert "─ builder" in text
        assert "FROM golang:1.22" in text
        assert "RUN go build" in text
        assert "go: downloading x" in text
        assert "2.5s" in text
        assert "load build definition" not in text

    def test_hidden_steps_summarised(self, clock, tty_output):
        display = ProgressDisplayConfig(max_visible=2)
        renderer = TTYRenderer(_terminal_console(tty_output), display, clock=clock)
        for n in range(1, 4):
            renderer.aggregator.on_event(_status(f"s{n}", f"RUN step_{n}", StepStatus.COMPLETE))
        renderer.aggregator.on_event(_status("s4", "RUN step_4", StepStatus.PENDING))

        text = _text(renderer.render_frame(now=100.0))

        assert "2 steps completed" in text
        assert "RUN step_1" not in text
        assert "RUN step_4" in text

    def test_no_group_headers_without_groups(self, renderer):
        renderer.aggregator.on_event(_status("s1", "RUN make", StepStatus.RUNNING))
        text = _text(renderer.render_frame(now=100.0))
        assert "─ " not in text

    def test_ungrouped_heading_drawn_first(self, renderer):
        agg = renderer.aggregator
        agg.on_event(_status("b1", "[builder 1/2] FROM golang:1.22", StepStatus.RUNNING))
        agg.on_event(_status("s1", "RUN make", StepStatus.RUNNING))

        lines = _text(renderer.render_frame(now=100.0)).splitlines()
        headings = [line.strip() for line in lines if line.strip().startswith("─ ")]

        assert headings == ["─ ungrouped", "─ builder"]

    def test_unnamed_step_hidden_until_named(self, renderer):
        agg = renderer.aggregator
        agg.on_event(LogLineEvent(step_id="sha256:abc", log_line="early output"))
        assert "sha256:abc" not in _text(renderer.render_frame(now=100.0))

        agg.on_event(_status("sha256:abc", "RUN make", StepStatus.RUNNING))
        text = _text(renderer.render_frame(now=100.0))
        assert "RUN make" in text
        assert "early output" in text

    def test_error_row_shows_message(self, renderer):
        renderer.aggregator.on_event(_status("s1", "RUN false", StepStatus.ERROR, error="exit code: 1"))
        text = _text(renderer.render_frame(now=100.0))
        assert "✗" in text
        assert "exit code: 1" in text

    def test_cached_row(self, renderer):
        renderer.aggregator.on_event(_status("s1", "RUN npm ci", StepStatus.CACHED))
        text = _text(renderer.render_frame(now=100.0))
        assert "◇" in text
        assert "cached" in text


# ---------------------------------------------------------------------------
# Test: Summary
# ---------------------------------------------------------------------------


class TestRenderSummary:
    def test_success_uses_subtitle(self, renderer):
        renderer.aggregator.on_event(_status("s1", "FROM alpine", StepStatus.COMPLETE))
        renderer.aggregator.on_event(_status("s2", "RUN apk add git", StepStatus.CACHED))
        text = _text(renderer.render_summary(None))
        assert "✓ Built app:latest in 0.0s (1/2 cached)" in text

    def test_success_without_subtitle_counts_steps(self, clock, tty_output):
        renderer = TTYRenderer(_terminal_console(tty_output), clock=clock)
        renderer.aggregator.on_event(_status("s1", "FROM alpine", StepStatus.COMPLETE))
        assert "✓ Built 1 steps in 0.0s" in _text(renderer.render_summary(None))

    def test_failure_block(self, renderer):
        agg = renderer.aggregator
        agg.on_event(_status("s1", "[stage-0 1/1] RUN npm install", StepStatus.RUNNING))
        agg.on_event(LogLineEvent(step_id="s1", log_line="npm ERR! code ERESOLVE"))
        agg.on_event(_status("s1", "", StepStatus.ERROR, error="exit code: 1"))

        text = _text(renderer.render_summary(BuildError("exit code: 1")))

        assert "✗ Build failed: exit code: 1" in text
        assert "step: RUN npm install" in text
        assert "npm ERR! code ERESOLVE" in text

    def test_aborted(self, renderer):
        assert "✗ Build aborted" in _text(renderer.render_summary(BuildCancelledError()))


# ---------------------------------------------------------------------------
# Test: Full run and failure isolation
# ---------------------------------------------------------------------------


class TestRun:
    def test_run_prints_summary(self, renderer, tty_output, linear_build_events):
        result = _drain(renderer, linear_build_events)
        assert result.error is None
        assert renderer.demoted is False
        assert "✓ Built app:latest in" in tty_output.getvalue()

    def test_live_start_failure_demotes_to_plain(
        self, renderer, tty_output, linear_build_events, scrub_durations, monkeypatch
    ):
        def _boom(self, refresh=False):
            raise OSError("terminal went away")

        monkeypatch.setattr(Live, "start", _boom)
        result = _drain(renderer, linear_build_events)

        assert renderer.demoted is True
        assert result.error is None
        lines = scrub_durations(tty_output.getvalue()).splitlines()
        assert "#1 FROM node:20-slim" in lines
        assert lines[-1] == "Built 3 steps in 0.0s"

    def test_update_failure_demotes(self, renderer, tty_output, linear_build_events, monkeypatch):
        def _boom(self, renderable, *, refresh=False):
            raise ValueError("bad frame")

        monkeypatch.setattr(Live, "update", _boom)
        result = _drain(renderer, linear_build_events)

        assert renderer.demoted is True
        assert result.error is None
        assert tty_output.getvalue().rstrip().endswith("Built 3 steps in 0.0s")

    def test_hook_sees_live_display_before_summary(self, clock, tty_output, linear_build_events):
        seen: list[bool] = []
        renderer: TTYRenderer

        def hook(component: str, event: str) -> HookResult:
            seen.append(renderer._live is not None)
            return HookResult()

        display = ProgressDisplayConfig(subtitle="app:latest", on_lifecycle=hook)
        renderer = TTYRenderer(_terminal_console(tty_output), display, clock=clock)
        _drain(renderer, linear_build_events)

        assert seen == [True]
        assert "✓ Built app:latest in" in tty_output.getvalue()

    def test_hook_stop_closes_live_without_summary(self, clock, tty_output, linear_build_events):
        display = ProgressDisplayConfig(
            on_lifecycle=lambda component, event: HookResult(continue_=False, message="handed off"),
        )
        renderer = TTYRenderer(_terminal_console(tty_output), display, clock=clock)

        result = _drain(renderer, linear_build_events)

        assert renderer._live is None
        assert renderer.demoted is False
        assert "Built" not in tty_output.getvalue()
        assert isinstance(result.error, RenderError)
        assert str(result.error) == "handed off"

    def test_hook_stop_after_demotion(self, clock, tty_output, linear_build_events, monkeypatch):
        def _boom(self, renderable, *, refresh=False):
            raise ValueError("bad frame")

        monkeypatch.setattr(Live, "update", _boom)
        display = ProgressDisplayConfig(
            on_lifecycle=lambda component, event: HookResult(continue_=False, message="handed off"),
        )
        renderer = TTYRenderer(_terminal_console(tty_output), display, clock=clock)

        result = _drain(renderer, linear_build_events)

        assert renderer.demoted is True
        assert "Built" not in tty_output.getvalue()
        assert str(result.error) == "handed off"
