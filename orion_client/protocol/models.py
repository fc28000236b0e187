from __future__ import annotations

from enum import Enum
from typing import Annotated
from typing import Literal
from typing import Union

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field


class ProcessingMode(str, Enum):
    """
    Where object detection runs.

    ``split`` detects on the device and ships structured detections only,
    ``full`` ships the raw image and lets the server do everything.
    """

    SPLIT = 'split'
    FULL = 'full'


class ConnectionStatus(str, Enum):
    """Lifecycle state of the server connection."""

    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'


BBox = tuple[float, float, float, float]


# ──────────────────────────────────────────────────────────
#  Shared value types
# ──────────────────────────────────────────────────────────
class Detection(BaseModel):
    """
    A single on-device detection as sent to the server.

    Attributes:
        label (str): Class label reported by the detector.
        confidence (float): Detection score in [0, 1].
        bbox (BBox): Normalised ``[minX, minY, maxX, maxY]``.
        track_id (int | None): Tracker identity, when available.
        contextual_label (str | None): Spatial region such as
            ``"top left"`` derived from the box centroid.
    """

    model_config = ConfigDict(frozen=True)

    label: str
    confidence: float = Field(ge=0.0, le=1.0)
    bbox: BBox
    track_id: int | None = None
    contextual_label: str | None = None


class EnhancedDetection(BaseModel):
    """A detection enriched by the server with category and motion."""

    model_config = ConfigDict(frozen=True)

    label: str
    confidence: float
    bbox: BBox
    track_id: int | None = None
    category: str
    is_moving: bool


class SceneAnalysis(BaseModel):
    """
    The server's enriched understanding of one frame.

    Attributes:
        scene_description (str): Narrative description of the scene.
        contextual_insights (tuple[str, ...]): Ordered insight strings.
        enhanced_detections (tuple[EnhancedDetection, ...]): Objects the
            server recognised, with category and motion flags.
        confidence (float): Overall confidence of the analysis.
    """

    model_config = ConfigDict(frozen=True)

    scene_description: str
    contextual_insights: tuple[str, ...] = ()
    enhanced_detections: tuple[EnhancedDetection, ...] = ()
    confidence: float


# ──────────────────────────────────────────────────────────
#  Client -> server
# ──────────────────────────────────────────────────────────
class ConfigurationMessage(BaseModel):
    """Selects the processing mode the server should expect."""

    type: Literal['configuration'] = 'configuration'
    processing_mode: ProcessingMode


class FrameDataMessage(BaseModel):
    """
    One camera frame worth of data.

    In ``full`` mode only ``image_data`` is populated, in ``split`` mode only
    ``detections`` (plus the optional description fields).
    """

    type: Literal['frame_data'] = 'frame_data'
    frame_id: str
    timestamp: float
    image_data: str | None = None
    detections: list[Detection] | None = None
    device_id: str | None = None
    vlm_description: str | None = None
    vlm_confidence: float | None = None


class UserPromptMessage(BaseModel):
    """A free-text question about the current scene."""

    type: Literal['user_prompt'] = 'user_prompt'
    prompt_id: str
    question: str
    timestamp: float
    device_id: str | None = None


ClientToServerMessage = Annotated[
    Union[ConfigurationMessage, FrameDataMessage, UserPromptMessage],
    Field(discriminator='type'),
]


# ──────────────────────────────────────────────────────────
#  Server -> client
# ──────────────────────────────────────────────────────────
class ConnectionAck(BaseModel):
    """Handshake confirmation. Extra fields are deployment specific."""

    model_config = ConfigDict(frozen=True, extra='allow')

    type: Literal['connection_ack']
    client_id: str | None = None


class ServerStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    queue_size: int | None = None


class LiveUpdateData(BaseModel):
    model_config = ConfigDict(frozen=True)

    server_status: ServerStatus | None = None


class LiveUpdate(BaseModel):
    """Scene analysis for a frame plus the server's queue gauge."""

    model_config = ConfigDict(frozen=True)

    type: Literal['live_update']
    frame_id: str
    analysis: SceneAnalysis | None = None
    timestamp: float
    error: str | None = None
    data: LiveUpdateData | None = None

    @property
    def queue_size(self) -> int | None:
        """
        Depth of the server's processing queue, if reported.

        Returns:
            int | None: ``data.server_status.queue_size`` or ``None``.
        """
        if self.data is None or self.data.server_status is None:
            return None
        return self.data.server_status.queue_size


class FrameProcessed(BaseModel):
    """Acknowledges that the server finished with a frame."""

    model_config = ConfigDict(frozen=True)

    type: Literal['frame_processed']
    frame_id: str


class UserPromptResponse(BaseModel):
    """The server's answer to a :class:`UserPromptMessage`."""

    model_config = ConfigDict(frozen=True)

    type: Literal['user_prompt_response']
    response_id: str
    question: str
    answer: str
    timestamp: float
    error: str | None = None


class ServerErrorMessage(BaseModel):
    """A server-side failure description."""

    model_config = ConfigDict(frozen=True)

    type: Literal['error']
    message: str


ServerToClientMessage = Annotated[
    Union[
        ConnectionAck,
        LiveUpdate,
        FrameProcessed,
        UserPromptResponse,
        ServerErrorMessage,
    ],
    Field(discriminator='type'),
]

INBOUND_TYPES: frozenset[str] = frozenset({
    'connection_ack',
    'live_update',
    'frame_processed',
    'user_prompt_response',
    'error',
})
