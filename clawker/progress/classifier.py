"""Step classification — internal detection, display names, stage groups.

All functions here are pure and deterministic.  They are the default
capabilities injected into ``ProgressDisplayConfig``; callers targeting a
different engine version can swap any of them out.
"""

from __future__ import annotations

import re

from clawker.models.steps import StepClassification

# BuildKit scaffolding that has no Dockerfile directive behind it.
INTERNAL_PREFIXES: tuple[str, ...] = (
    "[internal]",
    "[auth]",
    "exporting ",
    "writing image",
    "naming to ",
    "unpacking to ",
    "resolve image config",
    "load build definition",
    "load .dockerignore",
    "load metadata for",
    "transferring context",
    "transferring dockerfile",
)

_BRACKET_PREFIX_RE = re.compile(r"^\s*\[[^\]]*\]\s*")
_STAGE_RE = re.compile(r"^\s*\[\s*([^\]\s]+)\s+\d+/\d+\s*\]")


def is_internal_step(name: str) -> bool:
    """Return ``True`` for engine-synthetic steps that users never wrote."""
    lowered = name.strip().lower()
    return lowered.startswith(INTERNAL_PREFIXES)


def clean_step_name(name: str) -> str:
    """Strip leading whitespace and every leading ``[...]`` prefix.

    Idempotent.  A name made only of brackets is returned stripped rather
    than emptied, so the display never shows a blank step.

    >>> clean_step_name("[builder 2/4] RUN go mod download")
    'RUN go mod download'
    """
    stripped = name.strip()
    cleaned = stripped
    while True:
        match = _BRACKET_PREFIX_RE.match(cleaned)
        if match is None:
            break
        cleaned = cleaned[match.end():]
    return cleaned or stripped


def parse_build_stage(name: str) -> str:
    """Extract the build stage label from a ``[stage N/M]`` prefix.

    >>> parse_build_stage("[builder 1/4] FROM golang:1.22 AS builder")
    'builder'
    >>> parse_build_stage("[internal] load .dockerignore")
    ''
    """
    match = _STAGE_RE.match(name)
    return match.group(1) if match else ""


def classify(name: str) -> StepClassification:
    """Classify a raw step name in one call."""
    return StepClassification(
        internal=is_internal_step(name),
        clean_name=clean_step_name(name),
        group=parse_build_stage(name),
    )
