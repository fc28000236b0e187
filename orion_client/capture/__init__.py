from __future__ import annotations

from .camera_capture import CameraCapture

__all__ = ['CameraCapture']
