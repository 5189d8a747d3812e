"""Shared test fixtures for clawker."""

from __future__ import annotations

import io
import re
import threading
from collections.abc import Callable
from typing import Any

import pytest
from rich.console import Console

from clawker.errors import BuildCancelledError
from clawker.models.events import LogLineEvent, StatusEvent
from clawker.models.options import BuildOptions
from clawker.models.steps import StepStatus
from clawker.progress.display import ProgressDisplayConfig

_DURATION_RE = re.compile(r"\b(?:\d+h \d{2}m|\d+m \d+s|\d+\.\d+s)")


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class ScriptedBuilder:
    """Builder double that reports a fixed list of events, then ends.

    ``outcome`` is raised after the last event.  ``on_done`` runs after
    the events are reported, before the outcome, and receives the cancel
    token (tests use it to simulate a user interrupt).
    """

    def __init__(
        self,
        events: list[StatusEvent | LogLineEvent] | None = None,
        outcome: BaseException | None = None,
        on_done: Callable[[threading.Event], None] | None = None,
        wait_for_cancel: float | None = None,
    ) -> None:
        self.events = list(events or [])
        self.outcome = outcome
        self.on_done = on_done
        self.wait_for_cancel = wait_for_cancel
        self.calls: list[BuildOptions] = []

    def build(
        self,
        image_ref: str,
        options: BuildOptions,
        cancel: threading.Event | None = None,
    ) -> None:
        cancel = cancel if cancel is not None else threading.Event()
        self.calls.append(options)
        if not options.suppress_output and options.on_progress is not None:
            for event in self.events:
                options.on_progress(event)
        if self.on_done is not None:
            self.on_done(cancel)
        if self.wait_for_cancel is not None and cancel.wait(self.wait_for_cancel):
            raise BuildCancelledError()
        if self.outcome is not None:
            raise self.outcome


@pytest.fixture
def make_builder() -> type[ScriptedBuilder]:
    """Provide the scripted builder double."""
    return ScriptedBuilder


@pytest.fixture
def clock() -> FakeClock:
    """Provide a fake monotonic clock starting at t=100."""
    return FakeClock()


@pytest.fixture
def scrub_durations() -> Callable[[str], str]:
    """Replace every rendered duration with ``0.0s`` for golden comparison."""

    def _scrub(text: str) -> str:
        return _DURATION_RE.sub("0.0s", text)

    return _scrub


@pytest.fixture
def output() -> io.StringIO:
    """Buffer standing in for the error stream."""
    return io.StringIO()


@pytest.fixture
def plain_console(output: io.StringIO) -> Console:
    """Non-terminal console writing to the ``output`` buffer, no colour."""
    return Console(file=output, force_terminal=False, color_system=None, width=200)


@pytest.fixture
def display() -> ProgressDisplayConfig:
    """Display options with the default capabilities."""
    return ProgressDisplayConfig(title="Building", subtitle="app:latest")


# ---------------------------------------------------------------------------
# Event factories shared across test modules
# ---------------------------------------------------------------------------


@pytest.fixture
def make_status_event() -> Callable[..., StatusEvent]:
    """Factory fixture: build a StatusEvent with sensible defaults."""

    def _factory(
        step_id: str = "s1",
        step_name: str = "RUN make",
        status: StepStatus = StepStatus.RUNNING,
        **overrides: Any,
    ) -> StatusEvent:
        defaults: dict[str, Any] = {
            "step_id": step_id,
            "step_name": step_name,
            "status": status,
            "observed_at": 0.0,
        }
        defaults.update(overrides)
        return StatusEvent(**defaults)

    return _factory


@pytest.fixture
def make_log_event() -> Callable[..., LogLineEvent]:
    """Factory fixture: build a LogLineEvent with sensible defaults."""

    def _factory(
        step_id: str = "s1",
        log_line: str = "compiling...",
        **overrides: Any,
    ) -> LogLineEvent:
        defaults: dict[str, Any] = {
            "step_id": step_id,
            "log_line": log_line,
            "observed_at": 0.0,
        }
        defaults.update(overrides)
        return LogLineEvent(**defaults)

    return _factory


@pytest.fixture
def linear_build_events() -> list[StatusEvent | LogLineEvent]:
    """One internal step, then FROM, RUN (with one log line) and COPY."""
    return [
        StatusEvent(step_id="s1", step_name="[internal] load build context", status=StepStatus.RUNNING),
        StatusEvent(step_id="s1", step_name="[internal] load build context", status=StepStatus.COMPLETE),
        StatusEvent(step_id="s2", step_name="FROM node:20-slim", status=StepStatus.RUNNING),
        StatusEvent(step_id="s2", step_name="FROM node:20-slim", status=StepStatus.COMPLETE),
        StatusEvent(step_id="s3", step_name="RUN apt-get update", status=StepStatus.RUNNING),
        LogLineEvent(step_id="s3", log_line="Reading package lists..."),
        StatusEvent(step_id="s3", step_name="RUN apt-get update", status=StepStatus.COMPLETE),
        StatusEvent(step_id="s4", step_name="COPY . /app", status=StepStatus.RUNNING),
        StatusEvent(step_id="s4", step_name="COPY . /app", status=StepStatus.COMPLETE),
    ]
