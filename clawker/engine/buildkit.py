"""BuildKit adapter — ``docker buildx build --progress=rawjson``.

With ``rawjson`` progress, buildx writes one JSON-encoded ``SolveStatus``
per line to stderr::

    {"vertexes": [{"digest": "sha256:…", "name": "[2/3] RUN make",
                   "started": "…", "completed": "…", "cached": false}],
     "logs": [{"vertex": "sha256:…", "stream": 1, "data": "<base64>"}]}

``SolveStatusTranslator`` turns that stream into progress events:

- vertex status precedence: error > cached > complete > running > pending
- a status is emitted only when it changed for that digest
- log chunks are base64-decoded, split into lines (partial lines are held
  until completed; ``\\r`` redraws keep the last segment) and flushed
  before the vertex's terminal status
- lines that are not JSON are kept as diagnostics
"""

from __future__ import annotations

import base64
import binascii
import collections
import logging
import threading

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from clawker.engine.base import BuildProgressFunc, build_flags, emit_progress
from clawker.engine.process import run_streaming
from clawker.errors import BuildCancelledError, BuildError
from clawker.models.events import LogLineEvent, StatusEvent
from clawker.models.options import BuildOptions
from clawker.models.steps import TERMINAL_STATUSES, StepStatus

logger = logging.getLogger(__name__)

_MAX_DIAGNOSTICS = 50


# ---------------------------------------------------------------------------
# Wire models (subset of moby/buildkit client.SolveStatus)
# ---------------------------------------------------------------------------


class _Wire(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class Vertex(_Wire):
    digest: str
    name: str = ""
    started: str | None = None
    completed: str | None = None
    cached: bool = False
    error: str = ""

    @property
    def status(self) -> StepStatus:
        if self.error:
            return StepStatus.ERROR
        if self.cached:
            return StepStatus.CACHED
        if self.completed:
            return StepStatus.COMPLETE
        if self.started:
            return StepStatus.RUNNING
        return StepStatus.PENDING


class VertexLog(_Wire):
    vertex: str
    stream: int = 0
    data: str = ""


class VertexWarning(_Wire):
    vertex: str = ""
    level: int = 0
    short: str = ""


class SolveStatus(_Wire):
    vertexes: list[Vertex] | None = Field(default=None)
    logs: list[VertexLog] | None = Field(default=None)
    warnings: list[VertexWarning] | None = Field(default=None)


def _decode(data: str) -> str:
    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        return data
    return raw.decode("utf-8", errors="replace")


# ---------------------------------------------------------------------------
# Translator
# ---------------------------------------------------------------------------


class SolveStatusTranslator:
    """Translates rawjson ``SolveStatus`` lines into progress events.

    Parameters
    ----------
    on_progress:
        Callback receiving translated events, or ``None`` to only track
        errors and diagnostics (suppressed output).
    """

    def __init__(self, on_progress: BuildProgressFunc | None = None) -> None:
        self._on_progress = on_progress
        self._statuses: dict[str, StepStatus] = {}
        self._names: dict[str, str] = {}
        self._partial: dict[str, str] = {}
        self._diagnostics: collections.deque[str] = collections.deque(maxlen=_MAX_DIAGNOSTICS)
        self._first_error = ""

    @property
    def first_error(self) -> str:
        """Error text of the first vertex that failed."""
        return self._first_error

    @property
    def diagnostics(self) -> list[str]:
        """Most recent non-JSON stderr lines."""
        return list(self._diagnostics)

    def _emit(self, event: StatusEvent | LogLineEvent) -> None:
        if self._on_progress is not None:
            self._on_progress(event)

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def feed_line(self, line: str) -> None:
        """Consume one line of buildx stderr."""
        text = line.strip()
        if not text:
            return
        if not text.startswith("{"):
            self._diagnostics.append(text)
            return
        try:
            status = SolveStatus.model_validate_json(text)
        except ValidationError as exc:
            logger.debug("Unparseable progress line (%d errors): %.200s", exc.error_count(), text)
            self._diagnostics.append(text)
            return
        self.feed(status)

    def feed(self, status: SolveStatus) -> None:
        """Apply one decoded ``SolveStatus``.

        Within one update, vertices that start are applied before the logs
        and vertices that finish after them, so a step is named before its
        first line and its output precedes its terminal status.
        """
        vertexes = status.vertexes or []
        finishing = [v for v in vertexes if v.status in TERMINAL_STATUSES]
        for vertex in vertexes:
            if vertex.status not in TERMINAL_STATUSES:
                self._on_vertex(vertex)
        for entry in status.logs or ():
            self._on_log(entry)
        for vertex in finishing:
            self._on_vertex(vertex)
        for warning in status.warnings or ():
            logger.warning("BuildKit warning: %s", _decode(warning.short).strip())

    def flush(self) -> None:
        """Emit every buffered partial log line."""
        for digest in list(self._partial):
            self._flush_partial(digest)

    # ------------------------------------------------------------------
    # Vertices
    # ------------------------------------------------------------------

    def _on_vertex(self, vertex: Vertex) -> None:
        if vertex.name:
            self._names[vertex.digest] = vertex.name
        status = vertex.status
        if self._statuses.get(vertex.digest) == status:
            return
        self._statuses[vertex.digest] = status

        if status == StepStatus.ERROR and not self._first_error:
            self._first_error = vertex.error
        if status in TERMINAL_STATUSES:
            self._flush_partial(vertex.digest)

        self._emit(
            StatusEvent(
                step_id=vertex.digest,
                step_name=self._names.get(vertex.digest, ""),
                status=status,
                cached=vertex.cached,
                error=vertex.error,
            )
        )

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------

    def _on_log(self, entry: VertexLog) -> None:
        chunk = self._partial.pop(entry.vertex, "") + _decode(entry.data)
        *complete, rest = chunk.split("\n")
        for line in complete:
            self._emit_line(entry.vertex, line)
        if rest:
            self._partial[entry.vertex] = rest

    def _flush_partial(self, digest: str) -> None:
        rest = self._partial.pop(digest, "")
        if rest:
            self._emit_line(digest, rest)

    def _emit_line(self, digest: str, line: str) -> None:
        # Progress bars redraw with carriage returns; keep the final frame.
        segments = [s for s in line.split("\r") if s.strip()]
        if not segments:
            return
        self._emit(LogLineEvent(step_id=digest, log_line=segments[-1].rstrip()))


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class BuildKitBuilder:
    """Builds images with ``docker buildx build``.

    Parameters
    ----------
    docker_bin:
        Docker CLI executable.
    """

    def __init__(self, docker_bin: str = "docker") -> None:
        self.docker_bin = docker_bin

    def build_command(self, image_ref: str, options: BuildOptions) -> list[str]:
        """Return the ``docker buildx build`` argv for *options*."""
        return [
            self.docker_bin, "buildx", "build", "--progress=rawjson", "--load",
            *build_flags(image_ref, options),
            str(options.context_dir),
        ]

    def build(
        self,
        image_ref: str,
        options: BuildOptions,
        cancel: threading.Event | None = None,
    ) -> None:
        cancel = cancel if cancel is not None else threading.Event()
        translator = SolveStatusTranslator(emit_progress(options))

        returncode = run_streaming(
            self.build_command(image_ref, options),
            translator.feed_line,
            stream="stderr",
            cancel=cancel,
        )
        translator.flush()

        if cancel.is_set():
            raise BuildCancelledError()
        if returncode != 0:
            tail = translator.diagnostics[-10:]
            message = (
                translator.first_error
                or (tail[-1] if tail else "")
                or f"docker buildx build exited with status {returncode}"
            )
            raise BuildError(message, diagnostic="\n".join(tail))
        logger.debug("BuildKit build of %s complete", image_ref)
