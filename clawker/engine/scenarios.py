"""Canned build scenarios for demos and tests.

Each factory returns a fresh ``RecordedBuildScenario`` with realistic
timing.  Step ids are deterministic ``sha256:`` digests.
"""

from __future__ import annotations

from typing import Callable

from clawker.engine.replay import RecordedBuildScenario
from clawker.models.events import LogLineEvent, StatusEvent
from clawker.models.steps import StepStatus

_TIMING = {"internal_ms": 30, "running_ms": 250, "log_ms": 60, "complete_ms": 120}

_LOAD_DEFINITION = "[internal] load build definition from Dockerfile"
_LOAD_DOCKERIGNORE = "[internal] load .dockerignore"

Event = StatusEvent | LogLineEvent


def step_digest(n: int) -> str:
    """Deterministic digest-shaped step id for step *n*."""
    return f"sha256:{n:064d}"


def _status(n: int, name: str, status: StepStatus, error: str = "") -> StatusEvent:
    return StatusEvent(
        step_id=step_digest(n),
        step_name=name,
        status=status,
        cached=status == StepStatus.CACHED,
        error=error,
    )


def _run(n: int, name: str, *logs: str) -> list[Event]:
    """Running, optional log lines, complete."""
    events: list[Event] = [_status(n, name, StepStatus.RUNNING)]
    events += [LogLineEvent(step_id=step_digest(n), log_line=line) for line in logs]
    events.append(_status(n, name, StepStatus.COMPLETE))
    return events


def _timed(name: str, description: str, events: list[Event]) -> RecordedBuildScenario:
    return RecordedBuildScenario.from_events_with_timing(name, description, events, **_TIMING)


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


def simple_build() -> RecordedBuildScenario:
    events: list[Event] = [
        _status(1, _LOAD_DEFINITION, StepStatus.COMPLETE),
        _status(2, _LOAD_DOCKERIGNORE, StepStatus.COMPLETE),
        *_run(3, "[stage-0 1/3] FROM node:20-slim"),
        *_run(
            4,
            "[stage-0 2/3] RUN apt-get update && apt-get install -y git",
            "Reading package lists...",
        ),
        *_run(5, "[stage-0 3/3] COPY . /app"),
    ]
    return _timed("simple", "Three visible steps: FROM, RUN and COPY", events)


def cached_build() -> RecordedBuildScenario:
    events: list[Event] = [
        _status(1, _LOAD_DEFINITION, StepStatus.COMPLETE),
        _status(2, _LOAD_DOCKERIGNORE, StepStatus.COMPLETE),
        _status(3, "[stage-0 1/5] FROM node:20-slim", StepStatus.CACHED),
        _status(4, "[stage-0 2/5] RUN apt-get update", StepStatus.CACHED),
        _status(5, "[stage-0 3/5] RUN npm install -g pnpm", StepStatus.CACHED),
        _status(6, "[stage-0 4/5] COPY package.json /app/", StepStatus.CACHED),
        *_run(7, "[stage-0 5/5] COPY . /app"),
    ]
    return _timed("cached", "Incremental rebuild: four cached steps, one re-run", events)


def multi_stage_build() -> RecordedBuildScenario:
    events: list[Event] = [
        _status(1, _LOAD_DEFINITION, StepStatus.COMPLETE),
        _status(2, "[internal] load metadata for docker.io/library/golang:1.22", StepStatus.COMPLETE),
        *_run(3, "[builder 1/4] FROM golang:1.22 AS builder"),
        *_run(4, "[builder 2/4] COPY go.mod go.sum /src/"),
        *_run(
            5,
            "[builder 3/4] RUN go mod download",
            "go: downloading github.com/example/lib v1.0.0",
        ),
        *_run(6, "[builder 4/4] RUN go build -o /bin/app"),
        *_run(7, "[assets 1/2] FROM node:20-slim AS assets"),
        *_run(8, "[assets 2/2] RUN npm run build"),
        *_run(9, "[runtime 1/2] FROM alpine:3.19 AS runtime"),
        *_run(10, "[runtime 2/2] COPY --from=builder /bin/app /usr/local/bin/"),
    ]
    return _timed("multi-stage", "Eight steps across builder, assets and runtime stages", events)


def error_build() -> RecordedBuildScenario:
    npm = "[stage-0 3/3] RUN npm install"
    events: list[Event] = [
        _status(1, _LOAD_DEFINITION, StepStatus.COMPLETE),
        _status(2, "[stage-0 1/3] FROM node:20-slim", StepStatus.CACHED),
        *_run(3, "[stage-0 2/3] COPY package.json /app/"),
        _status(4, npm, StepStatus.RUNNING),
        LogLineEvent(step_id=step_digest(4), log_line="npm ERR! code ERESOLVE"),
        LogLineEvent(
            step_id=step_digest(4),
            log_line="npm ERR! ERESOLVE unable to resolve dependency tree",
        ),
        _status(
            4,
            npm,
            StepStatus.ERROR,
            error='process "npm install" did not complete successfully: exit code: 1',
        ),
    ]
    return _timed("error", "The final RUN step fails with npm output", events)


def large_log_build() -> RecordedBuildScenario:
    name = "[stage-0 1/1] RUN make build"
    lines = [f"[{i}/50] Compiling source file_{i}.go" for i in range(1, 51)]
    events: list[Event] = [
        _status(1, _LOAD_DEFINITION, StepStatus.COMPLETE),
        *_run(2, name, *lines),
    ]
    return _timed("large-log", "One step emitting fifty log lines", events)


def many_steps_build() -> RecordedBuildScenario:
    events: list[Event] = [
        _status(1, _LOAD_DEFINITION, StepStatus.COMPLETE),
        _status(2, _LOAD_DOCKERIGNORE, StepStatus.COMPLETE),
    ]
    for i in range(1, 11):
        events += _run(i + 2, f"[stage-0 {i}/10] RUN step_{i}")
    return _timed("many-steps", "Ten steps, more than the visible window", events)


def internal_only_build() -> RecordedBuildScenario:
    events: list[Event] = [
        _status(1, _LOAD_DEFINITION, StepStatus.COMPLETE),
        _status(2, _LOAD_DOCKERIGNORE, StepStatus.COMPLETE),
        _status(3, "[internal] load metadata for docker.io/library/node:20-slim", StepStatus.COMPLETE),
    ]
    return _timed("internal-only", "Only engine-internal steps; nothing visible", events)


ALL_SCENARIOS: dict[str, Callable[[], RecordedBuildScenario]] = {
    "simple": simple_build,
    "cached": cached_build,
    "multi-stage": multi_stage_build,
    "error": error_build,
    "large-log": large_log_build,
    "many-steps": many_steps_build,
    "internal-only": internal_only_build,
}


def get_scenario(name: str) -> RecordedBuildScenario:
    """Return a fresh copy of the scenario called *name*.

    Raises
    ------
    KeyError
        If no scenario has that name.
    """
    try:
        factory = ALL_SCENARIOS[name]
    except KeyError:
        known = ", ".join(ALL_SCENARIOS)
        raise KeyError(f"unknown scenario {name!r} (known: {known})") from None
    return factory()
