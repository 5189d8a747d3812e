"""Error taxonomy for the build progress pipeline.

Three kinds cross the pipeline boundary:

- ``BuildError``          : any non-cancellation failure from the builder.
- ``BuildCancelledError`` : the build was aborted by the caller or the user.
- ``RenderError``         : the progress display could not write its output.

A failed step is *not* an exception.  It is recorded on the step table and
only becomes a pipeline error when the builder itself raises ``BuildError``.
"""

from __future__ import annotations


class ClawkerError(RuntimeError):
    """Base class for clawker errors."""


class BuildError(ClawkerError):
    """Raised when the build engine reports a failure.

    ``diagnostic`` carries engine output that could not be translated into
    progress events (for example the tail of a non-JSON stderr stream).
    """

    def __init__(self, message: str, *, diagnostic: str = "") -> None:
        super().__init__(message)
        self.diagnostic = diagnostic


class BuildCancelledError(ClawkerError):
    """Raised when a build is aborted by cancellation."""

    def __init__(self, message: str = "build cancelled") -> None:
        super().__init__(message)


class RenderError(ClawkerError):
    """Raised (or recorded) when progress output cannot be emitted."""
