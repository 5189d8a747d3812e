"""Progress display configuration.

Domain knowledge flows into the display through the injected callables;
the renderers themselves know nothing about Docker or BuildKit.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Callable

from pydantic import BaseModel, ConfigDict, Field

from clawker.progress.classifier import clean_step_name, is_internal_step, parse_build_stage
from clawker.progress.duration import format_duration

DEFAULT_SPINNER_FRAMES: tuple[str, ...] = ("●", "○")


class HookResult(BaseModel):
    """Answer from a lifecycle hook.

    ``continue_=False`` skips the final summary.  A ``message`` or
    ``error`` given alongside it is reported as the render error.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    continue_: bool = True
    message: str = ""
    error: BaseException | None = None


# Called as hook(component, event), e.g. ("progress", "before_complete").
LifecycleHook = Callable[[str, str], HookResult]


class ProgressDisplayConfig(BaseModel):
    """Options shared by the plain and TTY renderers."""

    model_config = ConfigDict(frozen=True)

    title: str = "Building"
    subtitle: str = ""
    completion_verb: str = "Built"
    max_visible: int = Field(default=5, ge=1)
    log_lines: int = Field(default=3, ge=1)
    refresh_hz: float = Field(default=10.0, gt=0)
    spinner_frames: tuple[str, ...] = DEFAULT_SPINNER_FRAMES

    is_internal: Callable[[str], bool] = Field(default=is_internal_step)
    clean_name: Callable[[str], str] = Field(default=clean_step_name)
    parse_group: Callable[[str], str] = Field(default=parse_build_stage)
    format_duration: Callable[[float | timedelta], str] = Field(default=format_duration)
    on_lifecycle: LifecycleHook | None = None

    @property
    def tick_interval(self) -> float:
        """Seconds between redraws; the rate is capped at 30 Hz."""
        return 1.0 / min(max(self.refresh_hz, 1.0), 30.0)

    def fire_hook(self, component: str, event: str) -> HookResult:
        """Run the lifecycle hook, if any; no hook means continue."""
        if self.on_lifecycle is None:
            return HookResult()
        return self.on_lifecycle(component, event)
