"""Line-streaming subprocess runner with cooperative cancellation.

The Docker adapters drive the ``docker`` CLI.  Output is consumed line by
line on the calling (producer) thread; a watcher thread terminates the
process once the cancel token is set and is always joined before
``run_streaming`` returns.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import threading
from typing import Callable, Literal, Mapping, Sequence

from clawker.errors import BuildError

logger = logging.getLogger(__name__)

_WATCH_INTERVAL = 0.1


def _watch(
    process: subprocess.Popen,
    cancel: threading.Event,
    finished: threading.Event,
    terminate_timeout: float,
) -> None:
    while not finished.is_set():
        if not cancel.wait(timeout=_WATCH_INTERVAL):
            continue
        if process.poll() is None:
            logger.debug("Cancellation requested; terminating pid %s", process.pid)
            process.terminate()
            try:
                process.wait(timeout=terminate_timeout)
            except subprocess.TimeoutExpired:
                logger.debug("pid %s ignored SIGTERM; killing", process.pid)
                process.kill()
        return


def run_streaming(
    command: Sequence[str],
    on_line: Callable[[str], None],
    *,
    stream: Literal["stdout", "stderr"] = "stderr",
    cancel: threading.Event | None = None,
    env: Mapping[str, str] | None = None,
    terminate_timeout: float = 5.0,
) -> int:
    """Run *command*, feeding each line of *stream* to *on_line*.

    With ``stream="stdout"`` the process's stderr is merged into stdout.

    Returns
    -------
    int
        The process exit status.

    Raises
    ------
    BuildError
        If the executable cannot be started.
    """
    merged_env = {**os.environ, **env} if env else None
    if stream == "stdout":
        pipes = {"stdout": subprocess.PIPE, "stderr": subprocess.STDOUT}
    else:
        pipes = {"stdout": subprocess.DEVNULL, "stderr": subprocess.PIPE}

    logger.debug("Running: %s", shlex.join(command))
    try:
        process = subprocess.Popen(
            list(command),
            stdin=subprocess.DEVNULL,
            env=merged_env,
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
            **pipes,
        )
    except FileNotFoundError as exc:
        raise BuildError(f"{command[0]} not found; is Docker installed and on PATH?") from exc
    except OSError as exc:
        raise BuildError(f"could not start {command[0]}: {exc}") from exc

    finished = threading.Event()
    watcher: threading.Thread | None = None
    if cancel is not None:
        watcher = threading.Thread(
            target=_watch,
            args=(process, cancel, finished, terminate_timeout),
            name="clawker-cancel-watch",
            daemon=True,
        )
        watcher.start()

    output = process.stdout if stream == "stdout" else process.stderr
    try:
        for line in output:
            on_line(line)
        return process.wait()
    finally:
        finished.set()
        if watcher is not None:
            watcher.join()
        if process.poll() is None:
            process.kill()
            process.wait()
        output.close()
