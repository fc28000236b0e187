from __future__ import annotations

import base64
import uuid
from collections.abc import Callable
from collections.abc import Sequence

import cv2
import numpy as np

from orion_client.config import ClientSettings
from orion_client.errors import MessageEncodeError
from orion_client.protocol.models import Detection
from orion_client.protocol.models import FrameDataMessage


class FramePayloadBuilder:
    """
    Builds ``frame_data`` messages in the shape the processing mode needs.
    """

    def __init__(
        self,
        settings: ClientSettings,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        """
        Initialise the builder.

        Args:
            settings (ClientSettings): Supplies ``jpeg_quality`` and
                ``device_id``.
            id_factory (Callable[[], str] | None): Frame id generator,
                defaults to random UUID strings.
        """
        self.settings = settings
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))

    def encode_image(self, frame: np.ndarray) -> str:
        """
        JPEG-encode a frame and return it as base64 text.

        Args:
            frame (np.ndarray): BGR image.

        Returns:
            str: Base64 of the JPEG bytes.

        Raises:
            MessageEncodeError: If the frame is empty or cannot be encoded.
        """
        if frame is None or frame.size == 0:
            raise MessageEncodeError('Cannot encode an empty frame')
        encode_params = [cv2.IMWRITE_JPEG_QUALITY, self.settings.jpeg_quality]
        try:
            success, buffer = cv2.imencode('.jpg', frame, encode_params)
        except cv2.error as e:
            raise MessageEncodeError(f"JPEG encoding failed: {e}") from e
        if not success:
            raise MessageEncodeError('JPEG encoding failed')
        return base64.b64encode(buffer.tobytes()).decode('ascii')

    def full_frame(
        self, frame: np.ndarray, captured_at: float,
    ) -> FrameDataMessage:
        """Raw image only, the server does detection and description."""
        return FrameDataMessage(
            frame_id=self._new_id(),
            timestamp=captured_at,
            image_data=self.encode_image(frame),
            device_id=self.settings.device_id,
        )

    def split_frame(
        self,
        detections: Sequence[Detection],
        captured_at: float,
        description: str | None = None,
        description_confidence: float | None = None,
    ) -> FrameDataMessage:
        """On-device detections (possibly empty) and no image."""
        return FrameDataMessage(
            frame_id=self._new_id(),
            timestamp=captured_at,
            detections=list(detections),
            device_id=self.settings.device_id,
            vlm_description=description,
            vlm_confidence=description_confidence,
        )
