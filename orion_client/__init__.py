from __future__ import annotations

from .config import ClientSettings
from .errors import ErrorKind
from .errors import SessionError
from .events import EventHub
from .net.session import OrionSession
from .protocol.models import ConnectionStatus
from .protocol.models import ProcessingMode

__all__ = [
    'ClientSettings',
    'ConnectionStatus',
    'ErrorKind',
    'EventHub',
    'OrionSession',
    'ProcessingMode',
    'SessionError',
]
