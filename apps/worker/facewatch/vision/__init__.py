"""Face detection adapters for facewatch."""

from .detect_base import Detection, Detector
from .haar_face import HaarFaceDetector, default_cascade_path

__all__ = [
    "Detection",
    "Detector",
    "HaarFaceDetector",
    "default_cascade_path",
]
