"""Runtime configuration — env-driven settings for the clawker CLI.

Centralized config using pydantic-settings.  Reads from a ``.env`` file and
``CLAWKER_*`` environment variables.
"""

from __future__ import annotations

import logging
import sys
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ProgressModeName = Literal["auto", "plain", "tty", "none"]


class ClawkerSettings(BaseSettings):
    """Settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export CLAWKER_PROGRESS=plain
        export CLAWKER_LOG_LEVEL=DEBUG
        export CLAWKER_DOCKER_BIN=/usr/local/bin/docker

    Or via .env file::

        CLAWKER_MAX_VISIBLE=8
        CLAWKER_REFRESH_HZ=20
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CLAWKER_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = "WARNING"
    debug: bool = False

    # Build engine
    docker_bin: str = "docker"

    # Progress display
    progress: ProgressModeName = "auto"
    max_visible: int = Field(default=5, ge=1)
    log_lines: int = Field(default=3, ge=1)
    refresh_hz: float = Field(default=10.0, gt=0, le=30)
    channel_capacity: int = Field(default=64, ge=64)

    @property
    def effective_log_level(self) -> str:
        """``DEBUG`` when debug mode is on, else the configured level."""
        return "DEBUG" if self.debug else self.log_level.upper()


def configure_logging(level: str = "WARNING") -> None:
    """Route stdlib logging to stderr at *level*.

    Progress output owns stderr too, so the default level stays quiet.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )


# Module-level singleton; import as `from clawker.config import settings`
settings = ClawkerSettings()
