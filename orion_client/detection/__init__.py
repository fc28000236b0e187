from __future__ import annotations

from .detector import DetectionLogEntry
from .detector import DetectionSummaryDescriber
from .detector import Describer
from .detector import Detector
from .detector import YoloDetector
from .spatial import category_for
from .spatial import spatial_label

__all__ = [
    'DetectionLogEntry',
    'DetectionSummaryDescriber',
    'Describer',
    'Detector',
    'YoloDetector',
    'category_for',
    'spatial_label',
]
