from __future__ import annotations

from .codec import decode
from .codec import DecodeFailure
from .codec import encode
from .models import ConfigurationMessage
from .models import ConnectionAck
from .models import ConnectionStatus
from .models import Detection
from .models import EnhancedDetection
from .models import FrameDataMessage
from .models import FrameProcessed
from .models import LiveUpdate
from .models import ProcessingMode
from .models import SceneAnalysis
from .models import ServerErrorMessage
from .models import UserPromptMessage
from .models import UserPromptResponse

__all__ = [
    'decode',
    'encode',
    'DecodeFailure',
    'ConfigurationMessage',
    'ConnectionAck',
    'ConnectionStatus',
    'Detection',
    'EnhancedDetection',
    'FrameDataMessage',
    'FrameProcessed',
    'LiveUpdate',
    'ProcessingMode',
    'SceneAnalysis',
    'ServerErrorMessage',
    'UserPromptMessage',
    'UserPromptResponse',
]
