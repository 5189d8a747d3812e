"""Progress events emitted by builder adapters.

Events form a tagged union on ``kind``: a ``StatusEvent`` moves a step
through its lifecycle, a ``LogLineEvent`` carries one line of step output.
The two variants have disjoint required fields.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Annotated, Any, Callable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from clawker.models.steps import StepStatus


class EventKind(str, Enum):
    """Discriminator values for the event variants."""

    STATUS = "status"
    LOG = "log"


class StatusEvent(BaseModel):
    """A status transition (or announcement) for a step.

    ``cached=True`` on a ``complete`` status is normalized to ``cached``.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal[EventKind.STATUS] = EventKind.STATUS
    step_id: str
    step_name: str = ""
    status: StepStatus = StepStatus.PENDING
    cached: bool = False
    error: str = ""
    observed_at: float = Field(default_factory=time.monotonic)

    @model_validator(mode="before")
    @classmethod
    def _normalize_cached(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("cached"):
            status = data.get("status", StepStatus.PENDING)
            if StepStatus(status) == StepStatus.COMPLETE:
                data = {**data, "status": StepStatus.CACHED}
        return data


class LogLineEvent(BaseModel):
    """A single line of output for a step."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[EventKind.LOG] = EventKind.LOG
    step_id: str
    log_line: str
    observed_at: float = Field(default_factory=time.monotonic)

    @field_validator("log_line")
    @classmethod
    def _strip_newline(cls, value: str) -> str:
        return value.rstrip("\r\n")


ProgressEvent = Annotated[Union[StatusEvent, LogLineEvent], Field(discriminator="kind")]

PROGRESS_EVENT_ADAPTER: TypeAdapter[StatusEvent | LogLineEvent] = TypeAdapter(ProgressEvent)


def parse_event(data: dict[str, Any]) -> StatusEvent | LogLineEvent:
    """Validate a raw mapping into the matching event variant."""
    return PROGRESS_EVENT_ADAPTER.validate_python(data)


# Callback installed on a builder; invoked once per translated engine event.
BuildProgressFunc = Callable[[Union[StatusEvent, LogLineEvent]], None]
