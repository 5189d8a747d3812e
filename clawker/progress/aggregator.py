"""Step aggregator — the ordered step table and its status lattice.

Enforces:
- Statuses only move forward along pending -> running -> terminal
- The first terminal status wins; later status events are discarded
- Log lines are accepted at any time, bounded per step
- Insertion order is the first observation of a step id
- A step is classified by the first event that names it; until then it
  has no ordinal and its log lines are held back
- Ordinals go to non-internal steps when they are classified, starting at 1

The table is owned by the consuming thread.  Renderers receive frozen
``Step`` snapshots and never touch the live records.
"""

from __future__ import annotations

import collections
import logging
from typing import Callable

from clawker.models.events import LogLineEvent, StatusEvent
from clawker.models.steps import (
    STATUS_RANK,
    TERMINAL_STATUSES,
    CompletionAccounting,
    Step,
    StepStatus,
    StepUpdate,
)
from clawker.progress.classifier import is_internal_step, parse_build_stage

logger = logging.getLogger(__name__)

# Lines kept for a step that has not been named yet.
MAX_HELD_LINES = 1000


class LogTail:
    """Fixed-size window over a step's most recent log lines."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"log tail capacity must be positive, got {capacity}")
        self._lines: collections.deque[str] = collections.deque(maxlen=capacity)
        self._count = 0

    def push(self, line: str) -> None:
        self._lines.append(line)
        self._count += 1

    @property
    def lines(self) -> tuple[str, ...]:
        return tuple(self._lines)

    @property
    def count(self) -> int:
        """Total lines ever pushed, including evicted ones."""
        return self._count

    def __len__(self) -> int:
        return len(self._lines)


class _StepRecord:
    """Mutable per-step state, private to the aggregator."""

    __slots__ = (
        "step_id", "name", "group", "status", "cached", "is_internal",
        "ordinal", "started_at", "ended_at", "last_error", "tail",
        "classified", "held",
    )

    def __init__(self, step_id: str, log_lines: int) -> None:
        self.step_id = step_id
        self.name = ""
        self.group = ""
        self.status = StepStatus.PENDING
        self.cached = False
        self.is_internal = False
        self.ordinal: int | None = None
        self.started_at = 0.0
        self.ended_at: float | None = None
        self.last_error = ""
        self.tail = LogTail(log_lines)
        self.classified = False
        self.held: collections.deque[str] = collections.deque(maxlen=MAX_HELD_LINES)

    def freeze(self) -> Step:
        return Step(
            step_id=self.step_id,
            name=self.name,
            group=self.group,
            status=self.status,
            cached=self.cached,
            is_internal=self.is_internal,
            classified=self.classified,
            ordinal=self.ordinal,
            started_at=self.started_at,
            ended_at=self.ended_at,
            last_error=self.last_error,
            log_tail=self.tail.lines,
            log_count=self.tail.count,
        )


class StepAggregator:
    """Applies progress events to the ordered step table.

    Parameters
    ----------
    log_lines:
        Number of log lines retained per step.
    is_internal:
        Classifier for engine-synthetic steps.
    parse_group:
        Extracts the stage label used to group steps.
    """

    def __init__(
        self,
        log_lines: int = 3,
        *,
        is_internal: Callable[[str], bool] = is_internal_step,
        parse_group: Callable[[str], str] = parse_build_stage,
    ) -> None:
        self._log_lines = log_lines
        self._is_internal = is_internal
        self._parse_group = parse_group
        self._steps: dict[str, _StepRecord] = {}
        self._next_ordinal = 1

    # ------------------------------------------------------------------
    # Event application
    # ------------------------------------------------------------------

    def on_event(self, event: StatusEvent | LogLineEvent) -> StepUpdate | None:
        """Apply one event; return what changed, or ``None`` if discarded."""
        if isinstance(event, LogLineEvent):
            return self._apply_log(event)
        return self._apply_status(event)

    def _register(self, step_id: str, name: str, observed_at: float) -> _StepRecord:
        record = _StepRecord(step_id, self._log_lines)
        record.started_at = observed_at
        self._steps[step_id] = record
        if name:
            self._classify(record, name)
        return record

    def _classify(self, record: _StepRecord, name: str) -> tuple[str, ...]:
        """Name *record*, fix its internal flag and ordinal, release held lines."""
        record.name = name
        record.group = self._parse_group(name)
        record.is_internal = self._is_internal(name)
        record.classified = True
        if not record.is_internal:
            record.ordinal = self._next_ordinal
            self._next_ordinal += 1
        released = tuple(record.held)
        record.held.clear()
        return released

    def _apply_status(self, event: StatusEvent) -> StepUpdate | None:
        record = self._steps.get(event.step_id)
        if record is None:
            record = self._register(event.step_id, event.step_name, event.observed_at)
            self._enter(record, event)
            return StepUpdate(step=record.freeze(), is_new=True, status_changed=True)

        released: tuple[str, ...] = ()
        named_now = not record.classified and bool(event.step_name)
        if named_now:
            # Step first seen through a log line; the name arrives late.
            released = self._classify(record, event.step_name)

        if record.status in TERMINAL_STATUSES:
            logger.debug(
                "Step %s already %s; ignoring %s",
                record.step_id, record.status.value, event.status.value,
            )
            return StepUpdate(step=record.freeze(), released_lines=released) if named_now else None

        if STATUS_RANK[event.status] <= STATUS_RANK[record.status]:
            return StepUpdate(step=record.freeze(), released_lines=released) if named_now else None

        if record.status == StepStatus.PENDING:
            record.started_at = event.observed_at
        self._enter(record, event)
        return StepUpdate(step=record.freeze(), status_changed=True, released_lines=released)

    def _enter(self, record: _StepRecord, event: StatusEvent) -> None:
        record.status = event.status
        record.cached = event.cached or event.status == StepStatus.CACHED
        if event.status in TERMINAL_STATUSES:
            record.ended_at = max(event.observed_at, record.started_at)
        if event.status == StepStatus.ERROR:
            record.last_error = event.error

    def _apply_log(self, event: LogLineEvent) -> StepUpdate:
        record = self._steps.get(event.step_id)
        is_new = record is None
        if record is None:
            record = self._register(event.step_id, "", event.observed_at)
            record.status = StepStatus.RUNNING
        if not record.classified:
            record.held.append(event.log_line)
        record.tail.push(event.log_line)
        return StepUpdate(step=record.freeze(), is_new=is_new, log_line=event.log_line)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def snapshot(self) -> list[Step]:
        """All steps in first-observation order."""
        return [record.freeze() for record in self._steps.values()]

    def get(self, step_id: str) -> Step | None:
        record = self._steps.get(step_id)
        return record.freeze() if record else None

    def completion_accounting(self) -> CompletionAccounting:
        """Return (total, done, errored, cached) over named, non-internal steps."""
        total = done = errored = cached = 0
        for record in self._steps.values():
            if record.is_internal or not record.classified:
                continue
            total += 1
            if record.status == StepStatus.ERROR:
                errored += 1
            elif record.status in TERMINAL_STATUSES:
                done += 1
                if record.status == StepStatus.CACHED:
                    cached += 1
        return CompletionAccounting(total=total, done=done, errored=errored, cached=cached)

    def first_error(self) -> Step | None:
        """The earliest-registered step that ended in error."""
        for record in self._steps.values():
            if record.status == StepStatus.ERROR:
                return record.freeze()
        return None

    def __len__(self) -> int:
        return len(self._steps)

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._steps
