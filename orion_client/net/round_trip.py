from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable

from orion_client.config import ClientSettings
from orion_client.protocol.models import ProcessingMode

logger = logging.getLogger(__name__)


class RoundTripTracker:
    """
    Correlates outbound frame ids with ``frame_processed`` acknowledgments.

    Entries live in a bounded registry: ids older than
    ``pending_frame_ttl`` are expired whenever the registry is touched, and
    the oldest id is evicted once ``max_pending_frames`` is reached.
    """

    def __init__(
        self,
        settings: ClientSettings,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialise an empty registry.

        Args:
            settings (ClientSettings): Supplies the processing mode and the
                registry bounds.
            clock (Callable[[], float]): Monotonic clock in seconds.
        """
        self.settings = settings
        self._clock = clock
        self._pending: OrderedDict[str, float] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        """Round trips are only acknowledged by the server in ``full`` mode."""
        return self.settings.processing_mode is ProcessingMode.FULL

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def __contains__(self, frame_id: object) -> bool:
        with self._lock:
            return frame_id in self._pending

    def record(self, frame_id: str, sent_at: float | None = None) -> None:
        """
        Register the send time of a frame.

        Args:
            frame_id (str): Identifier of the outbound frame.
            sent_at (float | None): Send time, defaults to ``clock()``.
        """
        now = self._clock() if sent_at is None else sent_at
        with self._lock:
            self._expire_locked(now)
            self._pending.pop(frame_id, None)
            self._pending[frame_id] = now
            while len(self._pending) > self.settings.max_pending_frames:
                evicted, _ = self._pending.popitem(last=False)
                logger.debug('Evicted pending frame %s', evicted)

    def complete(
        self, frame_id: str, received_at: float | None = None,
    ) -> float | None:
        """
        Remove a frame from the registry and compute its round-trip time.

        Args:
            frame_id (str): Identifier from the ``frame_processed`` message.
            received_at (float | None): Receive time, defaults to
                ``clock()``.

        Returns:
            float | None: Elapsed milliseconds, or ``None`` if the id was not
                pending (never recorded, expired, or already completed).
        """
        now = self._clock() if received_at is None else received_at
        with self._lock:
            sent_at = self._pending.pop(frame_id, None)
            self._expire_locked(now)
        if sent_at is None:
            return None
        return max(0.0, (now - sent_at) * 1000.0)

    def discard(self, frame_id: str) -> None:
        with self._lock:
            self._pending.pop(frame_id, None)

    def expire(self, now: float | None = None) -> int:
        """
        Drop entries older than ``pending_frame_ttl``.

        Args:
            now (float | None): Reference time, defaults to ``clock()``.

        Returns:
            int: Number of entries removed.
        """
        now = self._clock() if now is None else now
        with self._lock:
            return self._expire_locked(now)

    def clear(self) -> None:
        with self._lock:
            self._pending.clear()

    def _expire_locked(self, now: float) -> int:
        cutoff = now - self.settings.pending_frame_ttl
        removed = 0
        # Insertion order is send order, so stop at the first fresh entry
        while self._pending:
            frame_id, sent_at = next(iter(self._pending.items()))
            if sent_at > cutoff:
                break
            del self._pending[frame_id]
            removed += 1
        if removed:
            logger.debug('Expired %d unacknowledged frames', removed)
        return removed
