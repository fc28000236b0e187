from __future__ import annotations

from .admission import AdmissionState
from .admission import FrameAdmissionController
from .admission import FrameAdmissionSignal
from .frames import FramePayloadBuilder

__all__ = [
    'AdmissionState',
    'FrameAdmissionController',
    'FrameAdmissionSignal',
    'FramePayloadBuilder',
]
