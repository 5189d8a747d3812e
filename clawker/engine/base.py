"""Builder protocol — the contract between the pipeline and a build engine.

A builder runs one image build and reports what the engine does through
``options.on_progress``.  Every adapter in ``clawker.engine`` implements
it, as do test doubles and the scenario replayer.
"""

from __future__ import annotations

import threading
from typing import Protocol, runtime_checkable

from clawker.models.events import BuildProgressFunc
from clawker.models.options import BuildOptions

__all__ = ["Builder", "BuildProgressFunc", "build_flags", "emit_progress", "merge_tags"]


@runtime_checkable
class Builder(Protocol):
    """Protocol that every image builder must implement.

    Contract
    --------
    - When ``options.suppress_output`` is true, ``on_progress`` is never
      invoked.  Otherwise it is invoked for every engine event the adapter
      can translate, from a single thread, in engine order.
    - Step ids are stable for the duration of one build.
    - Cache hits are reported as ``cached``; a step that fails after
      partial output is reported as ``error``.
    - Returns ``None`` on success.  Raises ``BuildError`` on failure and
      ``BuildCancelledError`` once *cancel* is set and the engine stopped.
    """

    def build(
        self,
        image_ref: str,
        options: BuildOptions,
        cancel: threading.Event | None = None,
    ) -> None:
        """Build *image_ref* from *options*.

        Parameters
        ----------
        image_ref:
            Primary image reference (``name:tag``).
        options:
            Resolved build options, including the progress callback.
        cancel:
            Cancellation token.  The builder stops the engine and raises
            ``BuildCancelledError`` once it is set.
        """
        ...


def emit_progress(options: BuildOptions) -> BuildProgressFunc | None:
    """Return the callback an adapter should report to, or ``None``."""
    if options.suppress_output:
        return None
    return options.on_progress


def merge_tags(primary: str, extra: list[str] | tuple[str, ...] = ()) -> list[str]:
    """Primary tag first, then *extra* in order, without duplicates or blanks."""
    merged: list[str] = []
    for tag in (primary, *extra):
        tag = tag.strip()
        if tag and tag not in merged:
            merged.append(tag)
    return merged


def build_flags(image_ref: str, options: BuildOptions) -> list[str]:
    """Docker CLI flags shared by ``docker build`` and ``docker buildx build``.

    Labels are emitted in sorted order so the command line is deterministic.
    """
    flags: list[str] = []
    if options.dockerfile:
        flags += ["-f", options.dockerfile]
    if options.no_cache:
        flags.append("--no-cache")
    if options.pull:
        flags.append("--pull")
    if options.target:
        flags += ["--target", options.target]
    for tag in merge_tags(image_ref, options.tags):
        flags += ["-t", tag]
    for key, value in options.build_args.items():
        flags += ["--build-arg", key if value is None else f"{key}={value}"]
    for key in sorted(options.labels):
        flags += ["--label", f"{key}={options.labels[key]}"]
    if options.network_mode:
        flags += ["--network", options.network_mode]
    return flags
