"""Legacy builder adapter — ``docker build`` with BuildKit disabled.

The classic builder prints a linear transcript::

    Step 2/4 : RUN apt-get update
     ---> Running in 3f2a1c
    Reading package lists...
     ---> 9b1d2e
    Step 3/4 : COPY . /app
     ---> Using cache

Each ``Step N/M`` header opens step ``step-<N-1>`` and completes the
previous one; ``---> Using cache`` marks the current step cached; other
output lines become log lines of the current step.  Lines may also arrive
as Engine API JSON messages (``{"stream": …}`` / ``{"error": …}``).
"""

from __future__ import annotations

import logging
import re
import threading

from pydantic import BaseModel, ConfigDict, ValidationError

from clawker.engine.base import BuildProgressFunc, build_flags, emit_progress
from clawker.engine.process import run_streaming
from clawker.errors import BuildCancelledError, BuildError
from clawker.models.events import LogLineEvent, StatusEvent
from clawker.models.options import BuildOptions
from clawker.models.steps import StepStatus

logger = logging.getLogger(__name__)

_STEP_RE = re.compile(r"^Step (\d+)/(\d+) ?: (.+)$")
_FAILED_RUN_RE = re.compile(r"returned a non-zero code: \d+")

# Builder chatter that belongs to no step.
_NOISE_PREFIXES: tuple[str, ...] = (
    "---> ",
    "Removing intermediate container",
    "Sending build context to Docker daemon",
    "Successfully built ",
    "Successfully tagged ",
    "DEPRECATED: The legacy builder",
    "BuildKit is currently disabled",
    "Install the buildx component",
    "https://docs.docker.com/go/buildx",
)


class _ErrorDetail(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str = ""


class _StreamMessage(BaseModel):
    """One Engine API build-stream message."""

    model_config = ConfigDict(extra="ignore")

    stream: str = ""
    error: str = ""
    errorDetail: _ErrorDetail | None = None

    @property
    def error_text(self) -> str:
        if self.error:
            return self.error
        return self.errorDetail.message if self.errorDetail else ""


def step_id_for(number: int) -> str:
    """Stable id for the 1-based step *number*."""
    return f"step-{number - 1}"


class LegacyStreamTranslator:
    """Turns a classic-builder transcript into progress events."""

    def __init__(self, on_progress: BuildProgressFunc | None = None) -> None:
        self._on_progress = on_progress
        self._current: str | None = None
        self._current_cached = False
        self._current_done = False
        self._first_error = ""
        self.total_steps = 0

    @property
    def first_error(self) -> str:
        return self._first_error

    @property
    def current_step(self) -> str | None:
        return self._current

    def _emit(self, event: StatusEvent | LogLineEvent) -> None:
        if self._on_progress is not None:
            self._on_progress(event)

    def feed_line(self, line: str) -> None:
        """Consume one line of ``docker build`` output."""
        text = line.strip()
        if not text:
            return
        if text.startswith("{"):
            try:
                message = _StreamMessage.model_validate_json(text)
            except ValidationError:
                logger.debug("Treating non-JSON line as text: %.200s", text)
            else:
                if message.error_text:
                    self.fail(message.error_text)
                    return
                for part in message.stream.splitlines():
                    self._feed_text(part.strip())
                return
        self._feed_text(text)

    def _feed_text(self, text: str) -> None:
        if not text:
            return

        match = _STEP_RE.match(text)
        if match is not None:
            self._complete_current()
            number, total, instruction = match.groups()
            self.total_steps = int(total)
            self._current = step_id_for(int(number))
            self._current_cached = False
            self._current_done = False
            self._emit(
                StatusEvent(step_id=self._current, step_name=instruction, status=StepStatus.RUNNING)
            )
            return

        if self._current is None:
            logger.debug("Build output before first step: %s", text)
            return

        if text.startswith("---> Using cache"):
            if not self._current_done:
                self._current_cached = True
                self._current_done = True
                self._emit(
                    StatusEvent(step_id=self._current, status=StepStatus.CACHED, cached=True)
                )
            return

        if _FAILED_RUN_RE.search(text):
            self.fail(text)
            return

        if text.startswith(_NOISE_PREFIXES):
            return

        self._emit(LogLineEvent(step_id=self._current, log_line=text))

    def _complete_current(self) -> None:
        if self._current is None or self._current_done:
            return
        self._current_done = True
        status = StepStatus.CACHED if self._current_cached else StepStatus.COMPLETE
        self._emit(StatusEvent(step_id=self._current, status=status, cached=self._current_cached))

    def fail(self, message: str) -> None:
        """Record a build failure and mark the current step errored."""
        if not self._first_error:
            self._first_error = message
        if self._current is not None and not self._current_done:
            self._current_done = True
            self._emit(StatusEvent(step_id=self._current, status=StepStatus.ERROR, error=message))

    def finish(self) -> None:
        """Complete the final step after a successful build."""
        self._complete_current()


class LegacyBuilder:
    """Builds images with the classic ``docker build`` (``DOCKER_BUILDKIT=0``)."""

    def __init__(self, docker_bin: str = "docker") -> None:
        self.docker_bin = docker_bin

    def build_command(self, image_ref: str, options: BuildOptions) -> list[str]:
        return [self.docker_bin, "build", *build_flags(image_ref, options), str(options.context_dir)]

    def build(
        self,
        image_ref: str,
        options: BuildOptions,
        cancel: threading.Event | None = None,
    ) -> None:
        cancel = cancel if cancel is not None else threading.Event()
        translator = LegacyStreamTranslator(emit_progress(options))

        returncode = run_streaming(
            self.build_command(image_ref, options),
            translator.feed_line,
            stream="stdout",
            cancel=cancel,
            env={"DOCKER_BUILDKIT": "0"},
        )

        if cancel.is_set():
            raise BuildCancelledError()
        if returncode != 0 or translator.first_error:
            message = translator.first_error or f"docker build exited with status {returncode}"
            translator.fail(message)
            raise BuildError(message)
        translator.finish()
        logger.debug("Legacy build of %s complete", image_ref)
