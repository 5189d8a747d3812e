"""ProgressChannel — bounded hand-off from the builder to the renderer.

Exactly one producer (the builder thread) sends events and finally closes
the channel; exactly one consumer (the renderer) receives until the close
marker arrives, then signals ``done``.

The ``done`` signal takes precedence over enqueueing: once the consumer
has finished, every further ``send`` is dropped instead of blocking, so a
builder's late cleanup callbacks can never deadlock on a full queue.
"""

from __future__ import annotations

import logging
import queue
import threading

from clawker.models.events import LogLineEvent, StatusEvent

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 64


class ChannelClosed(Exception):
    """Raised by ``receive`` once the producer has closed the channel.

    Carries the builder outcome handed over by ``close``.
    """

    def __init__(self, outcome: BaseException | None = None) -> None:
        super().__init__("progress channel closed")
        self.outcome = outcome


class _CloseMarker:
    __slots__ = ("outcome",)

    def __init__(self, outcome: BaseException | None) -> None:
        self.outcome = outcome


class ProgressChannel:
    """Bounded FIFO of progress events plus a one-shot done signal.

    Parameters
    ----------
    capacity:
        Maximum number of queued events.  The producer blocks (in short
        slices that re-check ``done``) while the queue is full.
    poll_interval:
        Length of each blocking slice in seconds.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        *,
        poll_interval: float = 0.05,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._queue: queue.Queue[StatusEvent | LogLineEvent | _CloseMarker] = queue.Queue(
            maxsize=capacity
        )
        self._capacity = capacity
        self._poll_interval = poll_interval
        self._done = threading.Event()
        self._close_requested = threading.Event()
        self._closed_marker: _CloseMarker | None = None
        self._dropped = 0

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def done(self) -> bool:
        """Whether the consumer has signalled it no longer reads."""
        return self._done.is_set()

    @property
    def closed(self) -> bool:
        """Whether the consumer has received the close marker."""
        return self._closed_marker is not None

    @property
    def outcome(self) -> BaseException | None:
        """Builder outcome delivered with the close marker (None on success)."""
        return self._closed_marker.outcome if self._closed_marker else None

    @property
    def dropped(self) -> int:
        """Number of events discarded because the consumer had finished."""
        return self._dropped

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def send(self, event: StatusEvent | LogLineEvent) -> bool:
        """Enqueue *event*; return ``False`` if it was dropped.

        Events are dropped once ``done`` is signalled or after the
        producer has closed the channel.
        """
        if self._close_requested.is_set():
            logger.debug("Send after close dropped: step %s", event.step_id)
            self._dropped += 1
            return False
        if not self._put(event):
            logger.debug("Consumer finished; dropped event for step %s", event.step_id)
            self._dropped += 1
            return False
        return True

    def close(self, outcome: BaseException | None = None) -> None:
        """Mark the end of events, handing over the builder *outcome*.

        Only the producer calls this, after the builder has returned.
        Calling it twice is a no-op.
        """
        if self._close_requested.is_set():
            return
        self._close_requested.set()
        if not self._put(_CloseMarker(outcome)):
            logger.debug("Consumer finished before close; close marker dropped")

    def _put(self, item: StatusEvent | LogLineEvent | _CloseMarker) -> bool:
        while not self._done.is_set():
            try:
                self._queue.put(item, timeout=self._poll_interval)
                return True
            except queue.Full:
                continue
        return False

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def receive(self, timeout: float | None = None) -> StatusEvent | LogLineEvent | None:
        """Return the next event, or ``None`` if *timeout* elapsed first.

        Raises
        ------
        ChannelClosed
            When the close marker is reached, and on every call after.
        """
        if self._closed_marker is not None:
            raise ChannelClosed(self._closed_marker.outcome)
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if isinstance(item, _CloseMarker):
            self._closed_marker = item
            raise ChannelClosed(item.outcome)
        return item

    def finish(self) -> None:
        """Signal ``done``: the consumer will not read any more events."""
        self._done.set()
