"""clawker: Docker image builds with live, failure-isolated step progress.

Pipeline:
  - Builder adapters (BuildKit rawjson, legacy ``docker build``, replay)
    translate engine output into typed progress events
  - A bounded channel hands events from the build thread to the renderer
  - ``StepAggregator`` folds events into an ordered step table
  - Plain (golden-file stable) and TTY (``rich.live``) renderers
  - ``run_build_pipeline`` composes build, cancel and render outcomes
"""

__version__ = "0.1.0"

from clawker.errors import BuildCancelledError, BuildError, ClawkerError, RenderError
from clawker.models.options import BuildOptions, ProgressMode
from clawker.progress.display import ProgressDisplayConfig
from clawker.progress.driver import PipelineResult, run_build_pipeline
from clawker.cli.app import app as cli

__all__ = [
    "BuildCancelledError",
    "BuildError",
    "BuildOptions",
    "ClawkerError",
    "PipelineResult",
    "ProgressDisplayConfig",
    "ProgressMode",
    "RenderError",
    "run_build_pipeline",
    "cli",
    "__version__",
]
