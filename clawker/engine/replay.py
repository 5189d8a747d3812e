"""Recorded build scenarios — capture, persist and replay progress events.

A scenario is a named list of events, each with the delay since the
previous one, stored as JSON::

    {
      "name": "simple",
      "description": "FROM + RUN + COPY",
      "events": [
        {"delay_ms": 40, "event": {"kind": "status", "step_id": "…", …}},
        …
      ]
    }

``ReplayBuilder`` plays a scenario back through the ``Builder`` contract,
so the whole pipeline can run without Docker.  ``EventRecorder`` wraps a
live build's ``on_progress`` callback to produce new scenarios.
"""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Iterable

from pydantic import BaseModel, ConfigDict, Field

from clawker.engine.base import BuildProgressFunc, emit_progress
from clawker.errors import BuildCancelledError, BuildError
from clawker.models.events import LogLineEvent, ProgressEvent, StatusEvent
from clawker.models.options import BuildOptions
from clawker.models.steps import StepStatus
from clawker.progress.classifier import is_internal_step

logger = logging.getLogger(__name__)

# observed_at is a monotonic reading; it is meaningless outside the
# process that took it and is re-stamped on replay.
_SERIALIZE_EXCLUDE = {"events": {"__all__": {"event": {"observed_at"}}}}


class RecordedBuildEvent(BaseModel):
    """One event plus the delay since the previous event."""

    model_config = ConfigDict(frozen=True)

    delay_ms: int = Field(default=0, ge=0)
    event: ProgressEvent

    @property
    def delay(self) -> float:
        """Delay in seconds."""
        return self.delay_ms / 1000.0


class RecordedBuildScenario(BaseModel):
    """A named, timed sequence of progress events."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    events: list[RecordedBuildEvent] = Field(default_factory=list)

    def flat_events(self) -> list[StatusEvent | LogLineEvent]:
        """The events without timing."""
        return [recorded.event for recorded in self.events]

    def first_error(self) -> str | None:
        """Error text of the first error status in the scenario, if any."""
        for event in self.flat_events():
            if isinstance(event, StatusEvent) and event.status == StepStatus.ERROR:
                return event.error or "build step failed"
        return None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_json(self) -> str:
        return self.model_dump_json(indent=2, exclude=_SERIALIZE_EXCLUDE) + "\n"

    def save(self, path: Path | str) -> Path:
        """Write the scenario as JSON, creating parent directories."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.to_json(), encoding="utf-8")
        logger.debug("Saved scenario %r (%d events) to %s", self.name, len(self.events), target)
        return target

    @classmethod
    def from_json(cls, text: str | bytes) -> RecordedBuildScenario:
        return cls.model_validate_json(text)

    @classmethod
    def load(cls, path: Path | str) -> RecordedBuildScenario:
        """Read a scenario from a JSON file."""
        return cls.from_json(Path(path).read_text(encoding="utf-8"))

    @classmethod
    def from_events(
        cls,
        name: str,
        description: str,
        events: Iterable[StatusEvent | LogLineEvent],
        delay_ms: int = 0,
    ) -> RecordedBuildScenario:
        """Wrap untimed *events* with a uniform delay."""
        return cls(
            name=name,
            description=description,
            events=[RecordedBuildEvent(delay_ms=delay_ms, event=event) for event in events],
        )

    @classmethod
    def from_events_with_timing(
        cls,
        name: str,
        description: str,
        events: Iterable[StatusEvent | LogLineEvent],
        *,
        internal_ms: int,
        running_ms: int,
        log_ms: int,
        complete_ms: int,
        is_internal: Callable[[str], bool] = is_internal_step,
    ) -> RecordedBuildScenario:
        """Wrap untimed *events* with a delay chosen by event type.

        Internal steps get *internal_ms*, log lines *log_ms*, running
        statuses *running_ms* and everything else *complete_ms*.
        """
        recorded = []
        for event in events:
            if isinstance(event, LogLineEvent):
                delay = log_ms
            elif is_internal(event.step_name):
                delay = internal_ms
            elif event.status == StepStatus.RUNNING:
                delay = running_ms
            else:
                delay = complete_ms
            recorded.append(RecordedBuildEvent(delay_ms=delay, event=event))
        return cls(name=name, description=description, events=recorded)


class ReplayBuilder:
    """``Builder`` that replays a recorded scenario.

    Parameters
    ----------
    scenario:
        Events to replay.
    speed:
        Playback rate; 2.0 halves every delay.  ``0`` replays without
        delays.
    error:
        Raised after the last event.  When omitted, a ``BuildError`` is
        raised if the scenario contains an error status.
    clock:
        Source of the ``observed_at`` stamp given to replayed events.
    """

    def __init__(
        self,
        scenario: RecordedBuildScenario,
        *,
        speed: float = 1.0,
        error: BaseException | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if speed < 0:
            raise ValueError(f"speed must not be negative, got {speed}")
        self.scenario = scenario
        self.speed = speed
        self.error = error
        self.clock = clock
        self.calls: list[BuildOptions] = []

    def _delay(self, recorded: RecordedBuildEvent) -> float:
        if self.speed == 0:
            return 0.0
        return recorded.delay / self.speed

    def build(
        self,
        image_ref: str,
        options: BuildOptions,
        cancel: threading.Event | None = None,
    ) -> None:
        cancel = cancel if cancel is not None else threading.Event()
        self.calls.append(options)
        emit = emit_progress(options)
        logger.debug("Replaying scenario %r for %s", self.scenario.name, image_ref)

        for recorded in self.scenario.events:
            delay = self._delay(recorded)
            cancelled = cancel.wait(delay) if delay > 0 else cancel.is_set()
            if cancelled:
                raise BuildCancelledError()
            if emit is not None:
                emit(recorded.event.model_copy(update={"observed_at": self.clock()}))

        if cancel.is_set():
            raise BuildCancelledError()
        if self.error is not None:
            raise self.error
        message = self.scenario.first_error()
        if message is not None:
            raise BuildError(message)


class EventRecorder:
    """Records events passing through an ``on_progress`` callback.

    Thread-safe.  Delays are measured between consecutive calls; the first
    event gets a delay of zero.
    """

    def __init__(
        self,
        name: str,
        description: str = "",
        inner: BuildProgressFunc | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.description = description
        self.inner = inner
        self._clock = clock
        self._lock = threading.Lock()
        self._events: list[RecordedBuildEvent] = []
        self._last_at: float | None = None

    def on_progress(self, event: StatusEvent | LogLineEvent) -> None:
        """Record *event*, then forward it to the wrapped callback."""
        with self._lock:
            now = self._clock()
            delay_ms = 0 if self._last_at is None else max(int((now - self._last_at) * 1000), 0)
            self._last_at = now
            self._events.append(RecordedBuildEvent(delay_ms=delay_ms, event=event))
        if self.inner is not None:
            self.inner(event)

    __call__ = on_progress

    def scenario(self) -> RecordedBuildScenario:
        """Snapshot of everything recorded so far."""
        with self._lock:
            events = list(self._events)
        return RecordedBuildScenario(
            name=self.name,
            description=self.description,
            events=events,
        )
