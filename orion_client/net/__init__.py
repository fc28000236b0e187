from __future__ import annotations

from .connection import ConnectionStateMachine
from .dispatcher import OutboundDispatcher
from .reachability import ReachabilityMonitor
from .round_trip import RoundTripTracker
from .router import InboundRouter
from .session import OrionSession
from .transport import WebSocketTransport

__all__ = [
    'ConnectionStateMachine',
    'InboundRouter',
    'OrionSession',
    'OutboundDispatcher',
    'ReachabilityMonitor',
    'RoundTripTracker',
    'WebSocketTransport',
]
