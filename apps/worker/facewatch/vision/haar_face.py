from __future__ import annotations

import math
from pathlib import Path

import cv2
import numpy as np

from facewatch.pipeline.errors import AcquisitionFailed

from .detect_base import Detection, Detector

DEFAULT_CASCADE = "haarcascade_frontalface_default.xml"


def default_cascade_path() -> str:
    return str(Path(cv2.data.haarcascades) / DEFAULT_CASCADE)


def _weight_to_confidence(weight: float) -> float:
    # Cascade level weights are unbounded margins; squash into [0, 1].
    clamped = max(-50.0, min(50.0, float(weight)))
    return 1.0 / (1.0 + math.exp(-clamped))


class HaarFaceDetector(Detector):
    def __init__(
        self,
        scale_factor: float = 1.1,
        min_neighbors: int = 5,
        min_size: tuple[int, int] = (30, 30),
    ) -> None:
        self.scale_factor = scale_factor
        self.min_neighbors = min_neighbors
        self.min_size = min_size
        self.model_ref = ""
        self._classifier: cv2.CascadeClassifier | None = None

    def open(self, model_ref: str) -> None:
        path = model_ref or default_cascade_path()
        classifier = cv2.CascadeClassifier(path)
        if classifier.empty():
            raise AcquisitionFailed(f"failed to initialize face detector: {path}")
        self._classifier = classifier
        self.model_ref = path

    def detect(self, frame: np.ndarray) -> list[Detection]:
        if self._classifier is None:
            raise RuntimeError("face detector is not open")

        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY) if frame.ndim == 3 else frame
        gray = cv2.equalizeHist(gray)
        rects, _levels, weights = self._classifier.detectMultiScale3(
            gray,
            scaleFactor=self.scale_factor,
            minNeighbors=self.min_neighbors,
            minSize=self.min_size,
            outputRejectLevels=True,
        )

        detections: list[Detection] = []
        for (x, y, w, h), weight in zip(rects, np.ravel(weights)):
            detections.append(
                Detection(
                    bbox=(int(x), int(y), int(x + w), int(y + h)),
                    confidence=_weight_to_confidence(weight),
                )
            )
        return detections

    def close(self) -> None:
        self._classifier = None
