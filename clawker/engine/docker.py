"""Docker builder facade — routes a build to BuildKit or the legacy builder."""

from __future__ import annotations

import logging
import os
import subprocess
import threading
from typing import Mapping

from clawker.engine.base import merge_tags
from clawker.engine.buildkit import BuildKitBuilder
from clawker.engine.legacy import LegacyBuilder
from clawker.models.options import BuildOptions

logger = logging.getLogger(__name__)

__all__ = ["DockerBuilder", "detect_buildkit", "merge_tags"]

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def detect_buildkit(
    docker_bin: str = "docker",
    env: Mapping[str, str] | None = None,
    *,
    timeout: float = 10.0,
) -> bool:
    """Return whether builds should go through BuildKit.

    ``DOCKER_BUILDKIT`` wins when set to a recognised boolean; otherwise
    BuildKit is used when ``docker buildx version`` succeeds.
    """
    env = os.environ if env is None else env
    setting = env.get("DOCKER_BUILDKIT", "").strip().lower()
    if setting in _FALSY:
        return False
    if setting in _TRUTHY:
        return True
    if setting:
        logger.warning("Ignoring unrecognised DOCKER_BUILDKIT=%r", setting)

    try:
        version = subprocess.run(
            [docker_bin, "buildx", "version"],
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug("buildx version check failed: %s", exc)
        return False
    available = version.returncode == 0
    logger.debug("buildx available: %s", available)
    return available


class DockerBuilder:
    """``Builder`` that picks the engine from ``options.buildkit_enabled``.

    Parameters
    ----------
    docker_bin:
        Docker CLI executable shared by both engines.
    """

    def __init__(self, docker_bin: str = "docker") -> None:
        self.docker_bin = docker_bin
        self.buildkit = BuildKitBuilder(docker_bin)
        self.legacy = LegacyBuilder(docker_bin)

    def build(
        self,
        image_ref: str,
        options: BuildOptions,
        cancel: threading.Event | None = None,
    ) -> None:
        engine = self.buildkit if options.buildkit_enabled else self.legacy
        logger.debug(
            "Building %s with %s (tags: %s)",
            image_ref,
            type(engine).__name__,
            ", ".join(merge_tags(image_ref, options.tags)),
        )
        engine.build(image_ref, options, cancel=cancel)
