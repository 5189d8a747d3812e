"""Builder options and progress mode selection."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from clawker.models.events import BuildProgressFunc


class ProgressMode(str, Enum):
    """How build progress is displayed.

    ``auto`` picks TTY when stderr is a terminal, plain otherwise.
    ``none`` disables the display and suppresses builder output.
    """

    AUTO = "auto"
    PLAIN = "plain"
    TTY = "tty"
    NONE = "none"


class BuildOptions(BaseModel):
    """Already-resolved inputs for a single image build.

    Tags, labels and build args arrive computed by the caller; the
    builder only maps them onto the engine.
    """

    model_config = ConfigDict(frozen=True)

    context_dir: Path = Path(".")
    dockerfile: str | None = None
    no_cache: bool = False
    pull: bool = False
    target: str = ""
    tags: list[str] = Field(default_factory=list)
    build_args: dict[str, str | None] = Field(default_factory=dict)
    labels: dict[str, str] = Field(default_factory=dict)
    network_mode: str = ""
    suppress_output: bool = False
    buildkit_enabled: bool = True
    on_progress: BuildProgressFunc | None = None
