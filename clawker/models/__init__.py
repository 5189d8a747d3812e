"""clawker data models — all Pydantic v2, all frozen (immutable)."""

from clawker.models.steps import (
    STATUS_RANK,
    TERMINAL_STATUSES,
    CompletionAccounting,
    Step,
    StepClassification,
    StepStatus,
    StepUpdate,
)
from clawker.models.events import (
    BuildProgressFunc,
    EventKind,
    LogLineEvent,
    ProgressEvent,
    StatusEvent,
    parse_event,
)
from clawker.models.options import BuildOptions, ProgressMode

__all__ = [
    # steps
    "StepStatus",
    "STATUS_RANK",
    "TERMINAL_STATUSES",
    "Step",
    "StepClassification",
    "StepUpdate",
    "CompletionAccounting",
    # events
    "EventKind",
    "StatusEvent",
    "LogLineEvent",
    "ProgressEvent",
    "BuildProgressFunc",
    "parse_event",
    # options
    "BuildOptions",
    "ProgressMode",
]
