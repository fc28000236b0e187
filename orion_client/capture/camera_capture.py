from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncGenerator

import cv2
import numpy as np

logger = logging.getLogger(__name__)


class CameraCapture:
    """
    A class to capture frames from a camera or video source.
    """

    def __init__(
        self,
        source: int | str = 0,
        max_fps: int = 30,
        max_failures: int = 5,
        reopen_delay: float = 1.0,
    ) -> None:
        """
        Initialises the CameraCapture with the given source.

        Args:
            source (int | str): Camera index or video URL / path.
            max_fps (int): Upper bound on frames yielded per second.
            max_failures (int): Consecutive failed reads before giving up.
            reopen_delay (float): Seconds to wait before reopening the
                source after a failed read.
        """
        self.source = source
        self.max_fps = max_fps
        self.max_failures = max_failures
        self.reopen_delay = reopen_delay
        # Video capture object
        self.cap: cv2.VideoCapture | None = None

    @property
    def frame_interval(self) -> float:
        return 1.0 / self.max_fps

    def initialise_stream(self) -> None:
        """
        Opens the capture source with a single-frame buffer.
        """
        self.cap = cv2.VideoCapture(self.source)
        self.cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        if not self.cap.isOpened():
            logger.warning('Could not open capture source %r', self.source)

    def release_resources(self) -> None:
        """
        Releases resources like the capture object.
        """
        if self.cap:
            self.cap.release()
            self.cap = None

    def read_frame(self) -> tuple[bool, np.ndarray | None]:
        """
        Blocking read of one frame.

        Returns:
            tuple[bool, np.ndarray | None]: Success flag and frame.
        """
        if self.cap is None:
            self.initialise_stream()
        if self.cap is None:
            return False, None
        return self.cap.read()

    async def frames(self) -> AsyncGenerator[tuple[np.ndarray, float]]:
        """
        Yield frames no faster than ``max_fps``.

        Reads run on a worker thread so the event loop stays responsive.

        Yields:
            tuple[np.ndarray, float]: The frame and its Unix timestamp.
        """
        fail_count = 0
        next_due = time.monotonic()
        try:
            while True:
                ret, frame = await asyncio.to_thread(self.read_frame)
                if not ret or frame is None:
                    fail_count += 1
                    logger.warning(
                        'Failed to read frame, reopening source. '
                        'Fail count: %d', fail_count,
                    )
                    if fail_count >= self.max_failures:
                        logger.error(
                            'Giving up on capture source %r', self.source,
                        )
                        return
                    self.release_resources()
                    await asyncio.sleep(self.reopen_delay)
                    continue

                fail_count = 0
                now = time.monotonic()
                if now < next_due:
                    # Too early, drop the frame
                    await asyncio.sleep(next_due - now)
                    continue
                next_due = now + self.frame_interval
                yield frame, time.time()
        finally:
            self.release_resources()
