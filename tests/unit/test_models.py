"""Unit tests for step and event models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from clawker.models.events import (
    PROGRESS_EVENT_ADAPTER,
    EventKind,
    LogLineEvent,
    StatusEvent,
    parse_event,
)
from clawker.models.options import BuildOptions, ProgressMode
from clawker.models.steps import STATUS_RANK, TERMINAL_STATUSES, Step, StepStatus


# ---------------------------------------------------------------------------
# Test: Status lattice
# ---------------------------------------------------------------------------


class TestStatusLattice:
    def test_every_status_ranked(self):
        for status in StepStatus:
            assert status in STATUS_RANK, f"Missing rank for {status}"

    def test_terminals_share_top_rank(self):
        ranks = {STATUS_RANK[s] for s in TERMINAL_STATUSES}
        assert ranks == {max(STATUS_RANK.values())}

    def test_pending_below_running(self):
        assert STATUS_RANK[StepStatus.PENDING] < STATUS_RANK[StepStatus.RUNNING]


class TestStep:
    def test_duration_uses_ended_at(self):
        step = Step(step_id="s1", started_at=10.0, ended_at=12.5, status=StepStatus.COMPLETE)
        assert step.duration(now=99.0) == pytest.approx(2.5)

    def test_duration_running_uses_now(self):
        step = Step(step_id="s1", started_at=10.0, status=StepStatus.RUNNING)
        assert step.duration(now=11.0) == pytest.approx(1.0)

    def test_duration_never_negative(self):
        step = Step(step_id="s1", started_at=10.0)
        assert step.duration(now=5.0) == 0.0

    def test_is_terminal(self):
        assert Step(step_id="a", status=StepStatus.CACHED).is_terminal is True
        assert Step(step_id="a", status=StepStatus.RUNNING).is_terminal is False

    def test_frozen(self):
        step = Step(step_id="s1")
        with pytest.raises(ValidationError):
            step.status = StepStatus.ERROR  # type: ignore[misc]


# ---------------------------------------------------------------------------
# Test: Events
# ---------------------------------------------------------------------------


class TestStatusEvent:
    def test_cached_complete_normalized(self):
        event = StatusEvent(step_id="s1", status=StepStatus.COMPLETE, cached=True)
        assert event.status == StepStatus.CACHED

    def test_cached_flag_on_running_kept(self):
        event = StatusEvent(step_id="s1", status=StepStatus.RUNNING, cached=True)
        assert event.status == StepStatus.RUNNING

    def test_defaults(self):
        event = StatusEvent(step_id="s1")
        assert event.kind == EventKind.STATUS.value
        assert event.status == StepStatus.PENDING
        assert event.error == ""
        assert event.observed_at > 0

    def test_step_id_required(self):
        with pytest.raises(ValidationError):
            StatusEvent()  # type: ignore[call-arg]


class TestLogLineEvent:
    def test_trailing_newline_stripped(self):
        assert LogLineEvent(step_id="s1", log_line="done\r\n").log_line == "done"

    def test_inner_whitespace_kept(self):
        assert LogLineEvent(step_id="s1", log_line="  indented\n").log_line == "  indented"

    def test_log_line_required(self):
        with pytest.raises(ValidationError):
            LogLineEvent(step_id="s1")  # type: ignore[call-arg]


class TestEventUnion:
    """The union is discriminated on ``kind``."""

    def test_parse_status(self):
        event = parse_event({"kind": "status", "step_id": "s1", "status": "running"})
        assert isinstance(event, StatusEvent)
        assert event.status == StepStatus.RUNNING

    def test_parse_log(self):
        event = parse_event({"kind": "log", "step_id": "s1", "log_line": "hi"})
        assert isinstance(event, LogLineEvent)
        assert event.kind == EventKind.LOG

    def test_kind_is_enum_member(self):
        assert StatusEvent(step_id="s1").kind is EventKind.STATUS
        assert LogLineEvent(step_id="s1", log_line="x").kind is EventKind.LOG

    def test_kind_serialized_as_string(self):
        data = StatusEvent(step_id="s1", observed_at=1.0).model_dump(mode="json")
        assert data["kind"] == "status"

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            parse_event({"kind": "progress", "step_id": "s1"})

    def test_json_round_trip_keeps_variant(self):
        original = LogLineEvent(step_id="s9", log_line="x", observed_at=1.5)
        restored = PROGRESS_EVENT_ADAPTER.validate_json(PROGRESS_EVENT_ADAPTER.dump_json(original))
        assert restored == original


# ---------------------------------------------------------------------------
# Test: Options
# ---------------------------------------------------------------------------


class TestBuildOptions:
    def test_defaults(self):
        options = BuildOptions()
        assert options.suppress_output is False
        assert options.buildkit_enabled is True
        assert options.on_progress is None
        assert options.tags == []

    def test_accepts_callback(self):
        seen = []
        options = BuildOptions(on_progress=seen.append)
        options.on_progress(StatusEvent(step_id="s1"))
        assert len(seen) == 1

    def test_progress_mode_values(self):
        assert {m.value for m in ProgressMode} == {"auto", "plain", "tty", "none"}
