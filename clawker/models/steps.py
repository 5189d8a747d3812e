"""Build step models — status lattice and read-only step snapshots."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class StepStatus(str, Enum):
    """Lifecycle of a single build step (a BuildKit vertex)."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    CACHED = "cached"
    ERROR = "error"


# Position in the status DAG.  A step only ever moves to a strictly higher
# rank; every terminal status shares the top rank so the first one wins.
STATUS_RANK: dict[StepStatus, int] = {
    StepStatus.PENDING: 0,
    StepStatus.RUNNING: 1,
    StepStatus.COMPLETE: 2,
    StepStatus.CACHED: 2,
    StepStatus.ERROR: 2,
}

TERMINAL_STATUSES: frozenset[StepStatus] = frozenset(
    {StepStatus.COMPLETE, StepStatus.CACHED, StepStatus.ERROR}
)


class StepClassification(BaseModel):
    """Result of classifying a raw step name."""

    model_config = ConfigDict(frozen=True)

    internal: bool
    clean_name: str
    group: str = ""


class Step(BaseModel):
    """Point-in-time view of one step in the step table.

    ``classified`` is False while the step has only been seen through log
    lines; such a step has no ordinal and is not displayed.

    Produced by ``StepAggregator.snapshot()``.  Renderers only ever see
    these frozen copies; the live table stays inside the aggregator.
    """

    model_config = ConfigDict(frozen=True)

    step_id: str
    name: str = ""
    group: str = ""
    status: StepStatus = StepStatus.PENDING
    cached: bool = False
    is_internal: bool = False
    classified: bool = True
    ordinal: int | None = None
    started_at: float = 0.0
    ended_at: float | None = None
    last_error: str = ""
    log_tail: tuple[str, ...] = ()
    log_count: int = 0

    @property
    def is_terminal(self) -> bool:
        """Whether the step reached complete, cached or error."""
        return self.status in TERMINAL_STATUSES

    def duration(self, now: float) -> float:
        """Elapsed seconds; uses ``ended_at`` once terminal.  Never negative."""
        end = self.ended_at if self.ended_at is not None else now
        return max(end - self.started_at, 0.0)


class CompletionAccounting(BaseModel):
    """Counts across all non-internal steps.

    ``done`` counts successful terminals (complete or cached); ``cached``
    is the subset of ``done`` satisfied from cache.
    """

    model_config = ConfigDict(frozen=True)

    total: int = 0
    done: int = 0
    errored: int = 0
    cached: int = 0


class StepUpdate(BaseModel):
    """What a single event changed in the step table.

    ``released_lines`` are log lines held back while the step had no name,
    delivered with the update that names it.
    """

    model_config = ConfigDict(frozen=True)

    step: Step
    is_new: bool = False
    status_changed: bool = False
    log_line: str | None = None
    released_lines: tuple[str, ...] = ()
