from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import Any
from typing import Protocol

import numpy as np

from orion_client.config import ClientSettings
from orion_client.detection.detector import DetectionLogEntry
from orion_client.detection.detector import Describer
from orion_client.detection.detector import Detector
from orion_client.errors import ConnectionNotReadyError
from orion_client.errors import MessageEncodeError
from orion_client.events import EventHub
from orion_client.pipeline.frames import FramePayloadBuilder
from orion_client.protocol.models import FrameDataMessage
from orion_client.protocol.models import ProcessingMode

logger = logging.getLogger(__name__)


class AdmissionState(str, Enum):
    IDLE = 'idle'
    PROCESSING = 'processing'
    SENT = 'sent'
    WAITING_FOR_SERVER = 'waiting_for_server'


class FrameAdmissionSignal(Protocol):
    """Capability handed to the network layer to free the in-flight slot."""

    def release(self) -> None: ...


class FrameAdmissionController:
    """
    Admits at most one camera frame into the pipeline at a time.

    Frames offered while another one is in flight are dropped, never
    buffered. In ``split`` mode the slot frees up as soon as the detections
    are dispatched; in ``full`` mode it stays taken until :meth:`release` is
    called for the server's ``frame_processed`` acknowledgment, the write
    fails, or ``pending_frame_ttl`` passes without an acknowledgment.
    """

    def __init__(
        self,
        settings: ClientSettings,
        send: Callable[[FrameDataMessage], Any],
        builder: FramePayloadBuilder,
        hub: EventHub,
        detector: Detector | None = None,
        describer: Describer | None = None,
    ) -> None:
        """
        Initialise the controller in the ``idle`` state.

        Args:
            settings (ClientSettings): Supplies the active processing mode.
            send (Callable[[FrameDataMessage], Any]): Outbound dispatch,
                usually ``OrionSession.send``.
            builder (FramePayloadBuilder): Builds the mode-specific payload.
            hub (EventHub): Hub for ``detections``, ``detection_log`` and
                ``errors`` events.
            detector (Detector | None): On-device detector, required in
                ``split`` mode.
            describer (Describer | None): Optional best-effort scene
                description.
        """
        self.settings = settings
        self.state = AdmissionState.IDLE
        self.dropped_frames = 0

        self._send = send
        self._builder = builder
        self._detector = detector
        self._describer = describer
        self._detections = hub.channel('detections')
        self._detection_log = hub.channel('detection_log')
        self._errors = hub.channel('errors')
        self._task: asyncio.Task | None = None
        self._waiting_for: str | None = None
        self._expiry: asyncio.TimerHandle | None = None

    @property
    def idle(self) -> bool:
        return self.state is AdmissionState.IDLE

    def offer(
        self, frame: np.ndarray, captured_at: float | None = None,
    ) -> bool:
        """
        Admit a captured frame if nothing is in flight.

        Args:
            frame (np.ndarray): The captured image.
            captured_at (float | None): Unix capture time, defaults to now.

        Returns:
            bool: ``True`` if the frame was admitted, ``False`` if dropped.
        """
        if self.state is not AdmissionState.IDLE:
            self.dropped_frames += 1
            return False

        self._set_state(AdmissionState.PROCESSING)
        captured_at = time.time() if captured_at is None else captured_at
        self._task = asyncio.get_running_loop().create_task(
            self._process(frame, captured_at, self.settings.processing_mode),
        )
        return True

    def release(self) -> None:
        """Free the slot held by a frame awaiting ``frame_processed``."""
        if self.state is AdmissionState.WAITING_FOR_SERVER:
            self._stop_waiting()
            self._set_state(AdmissionState.IDLE)

    async def wait_idle(self) -> None:
        """Wait for the current frame's processing task, if any."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def _process(
        self, frame: np.ndarray, captured_at: float, mode: ProcessingMode,
    ) -> None:
        try:
            if mode is ProcessingMode.FULL:
                await self._process_full(frame, captured_at)
            else:
                await self._process_split(frame, captured_at)
        except asyncio.CancelledError:
            self._stop_waiting()
            self._set_state(AdmissionState.IDLE)
            raise
        except Exception:
            logger.exception('Frame processing failed')
            self._stop_waiting()
            self._set_state(AdmissionState.IDLE)

    async def _process_full(
        self, frame: np.ndarray, captured_at: float,
    ) -> None:
        try:
            message = await asyncio.to_thread(
                self._builder.full_frame, frame, captured_at,
            )
        except MessageEncodeError as e:
            logger.warning('Dropping frame: %s', e)
            self._errors.publish(e)
            self._set_state(AdmissionState.IDLE)
            return

        write = self._dispatch(message)
        if write is None:
            self._set_state(AdmissionState.IDLE)
            return
        self._wait_for_server(message.frame_id)
        if isinstance(write, asyncio.Future):
            delivered, = await asyncio.gather(write, return_exceptions=True)
            if delivered is not True:
                self._release_frame(message.frame_id, 'was not delivered')

    async def _process_split(
        self, frame: np.ndarray, captured_at: float,
    ) -> None:
        if self._detector is None:
            logger.warning('No on-device detector configured, dropping frame')
            self._set_state(AdmissionState.IDLE)
            return

        started = time.perf_counter()
        detections = await asyncio.to_thread(self._detector.detect, frame)
        elapsed_ms = (time.perf_counter() - started) * 1000.0

        self._detections.publish(detections)
        self._detection_log.publish(
            DetectionLogEntry.from_detections(detections, elapsed_ms),
        )

        description = None
        if self._describer is not None and detections:
            try:
                description = await asyncio.to_thread(
                    self._describer.describe, detections,
                )
            except Exception as e:
                logger.warning('Scene description failed: %s', e)

        text, confidence = description if description else (None, None)
        message = self._builder.split_frame(
            detections, captured_at, text, confidence,
        )
        if self._dispatch(message) is not None:
            self._set_state(AdmissionState.SENT)
        self._set_state(AdmissionState.IDLE)

    def _dispatch(self, message: FrameDataMessage) -> Any:
        """Hand a message to ``send``. Returns its result, ``None`` if
        the message was rejected."""
        try:
            return self._send(message)
        except ConnectionNotReadyError as e:
            logger.debug('Frame %s not sent: %s', message.frame_id, e)
        except MessageEncodeError as e:
            logger.warning('Frame %s not sent: %s', message.frame_id, e)
            self._errors.publish(e)
        return None

    def _wait_for_server(self, frame_id: str) -> None:
        self._waiting_for = frame_id
        self._expiry = asyncio.get_running_loop().call_later(
            self.settings.pending_frame_ttl,
            self._release_frame, frame_id, 'was never acknowledged',
        )
        self._set_state(AdmissionState.WAITING_FOR_SERVER)

    def _release_frame(self, frame_id: str, reason: str) -> None:
        if self._waiting_for != frame_id:
            return
        logger.warning('Frame %s %s, releasing slot', frame_id, reason)
        self.release()

    def _stop_waiting(self) -> None:
        self._waiting_for = None
        if self._expiry is not None:
            self._expiry.cancel()
            self._expiry = None

    def _set_state(self, state: AdmissionState) -> None:
        if state is not self.state:
            logger.debug('Admission %s -> %s', self.state.value, state.value)
            self.state = state
