from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any
from typing import Protocol

import numpy as np

from orion_client.detection.spatial import spatial_label
from orion_client.protocol.models import Detection

logger = logging.getLogger(__name__)


class Detector(Protocol):
    def detect(self, frame: np.ndarray) -> list[Detection]: ...


class Describer(Protocol):
    def describe(
        self, detections: Sequence[Detection],
    ) -> tuple[str, float] | None: ...


@dataclass(frozen=True)
class DetectionLogEntry:
    """
    Summary of one on-device detection pass.

    Attributes:
        detection_count (int): Number of detections kept.
        average_confidence (float): Mean score, ``0.0`` when empty.
        processing_time_ms (float): Wall time spent detecting.
        timestamp (float): Unix time the entry was created.
    """

    detection_count: int
    average_confidence: float
    processing_time_ms: float
    timestamp: float

    @classmethod
    def from_detections(
        cls,
        detections: Sequence[Detection],
        processing_time_ms: float,
        timestamp: float | None = None,
    ) -> DetectionLogEntry:
        count = len(detections)
        average = (
            sum(d.confidence for d in detections) / count if count else 0.0
        )
        return cls(
            detection_count=count,
            average_confidence=average,
            processing_time_ms=processing_time_ms,
            timestamp=time.time() if timestamp is None else timestamp,
        )


class YoloDetector:
    """
    On-device detector backed by an Ultralytics YOLO model with tracking.
    """

    def __init__(
        self,
        model_path: str = 'models/yolo11n.pt',
        confidence_threshold: float = 0.5,
        max_detections: int = 20,
        model: Any | None = None,
    ) -> None:
        """
        Initialise the detector.

        Args:
            model_path (str): Weights file passed to ``ultralytics.YOLO``.
            confidence_threshold (float): Detections scoring below this are
                discarded.
            max_detections (int): Upper bound on detections per frame.
            model (Any | None): Preloaded model, skips loading ``model_path``.
        """
        self.confidence_threshold = confidence_threshold
        self.max_detections = max_detections
        if model is None:
            from ultralytics import YOLO

            logger.info('Loading YOLO model from %s', model_path)
            model = YOLO(model_path)
        self.model = model

    def detect(self, frame: np.ndarray) -> list[Detection]:
        """
        Run the model on a frame and post-process its boxes.

        Args:
            frame (np.ndarray): BGR image.

        Returns:
            list[Detection]: Detections sorted by descending confidence,
                with normalised boxes and spatial labels.
        """
        results = self.model.track(
            frame,
            persist=True,
            verbose=False,
            conf=self.confidence_threshold,
        )
        if not results:
            return []
        boxes = results[0].boxes
        if boxes is None or len(boxes) == 0:
            return []

        names = results[0].names
        xyxyn_batch = boxes.xyxyn.tolist()
        conf_batch = boxes.conf.tolist()
        cls_batch = boxes.cls.tolist()
        ids = boxes.id.tolist() if boxes.id is not None else [None] * len(
            boxes,
        )

        detections = []
        for xyxyn, conf, cls, tid in zip(
            xyxyn_batch, conf_batch, cls_batch, ids,
        ):
            conf = float(conf)
            if conf < self.confidence_threshold:
                continue
            bbox = tuple(min(1.0, max(0.0, float(v))) for v in xyxyn)
            detections.append(
                Detection(
                    label=names.get(int(cls), str(int(cls))),
                    confidence=min(1.0, conf),
                    bbox=bbox,
                    track_id=int(tid) if tid is not None else None,
                    contextual_label=spatial_label(bbox),
                ),
            )

        detections.sort(key=lambda d: d.confidence, reverse=True)
        return detections[:self.max_detections]


class DetectionSummaryDescriber:
    """
    Placeholder description that lists the detected labels.

    Stands in for an on-device vision-language model; the fixed confidence
    tells the server the text carries no visual understanding.
    """

    confidence = 0.5

    def describe(
        self, detections: Sequence[Detection],
    ) -> tuple[str, float] | None:
        if not detections:
            return None
        labels = ', '.join(d.label for d in detections)
        return (
            f"FastVLM model not implemented yet. Detected: {labels}",
            self.confidence,
        )
