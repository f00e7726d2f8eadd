from __future__ import annotations

import threading
from typing import Any

import cv2

from facewatch.pipeline.errors import AcquisitionFailed
from facewatch.util.security import sanitize_rtsp_url
from facewatch.util.time import monotonic_ns, now_utc_iso

from .base import FramePacket, FrameSource


def _normalize_locator(value: object) -> int | str:
    locator = str(value).strip()
    if locator.isdigit():
        return int(locator)
    return locator


class OpenCVFrameSource(FrameSource):
    """Frame source backed by ``cv2.VideoCapture`` (RTSP URLs, files or webcam indices)."""

    def __init__(self, options: dict[str, Any] | None = None) -> None:
        self.options = options or {}
        self.capture: cv2.VideoCapture | None = None
        self.safe_locator = ""
        self.failures = 0
        self._lock = threading.Lock()

    def open(self, locator: str) -> None:
        normalized = _normalize_locator(locator)
        safe_locator = sanitize_rtsp_url(str(locator))
        capture = self._open_capture(normalized)
        if hasattr(cv2, "CAP_PROP_OPEN_TIMEOUT_MSEC"):
            capture.set(cv2.CAP_PROP_OPEN_TIMEOUT_MSEC, int(self.options.get("open_timeout_ms", 5000)))
        if hasattr(cv2, "CAP_PROP_READ_TIMEOUT_MSEC"):
            capture.set(cv2.CAP_PROP_READ_TIMEOUT_MSEC, int(self.options.get("read_timeout_ms", 5000)))
        capture.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        if not capture.isOpened():
            capture.release()
            raise AcquisitionFailed(f"failed to open video capture: {safe_locator}")
        with self._lock:
            if self.capture is not None:
                self.capture.release()
            self.capture = capture
            self.safe_locator = safe_locator
            self.failures = 0

    def read_frame(self) -> FramePacket | None:
        with self._lock:
            capture = self.capture
        if capture is None:
            return None
        ok, frame = capture.read()
        if not ok or frame is None:
            with self._lock:
                self.failures += 1
            return None
        return FramePacket(frame=frame, wall_time_iso=now_utc_iso(), monotonic_ns=monotonic_ns())

    def health(self) -> dict[str, object]:
        with self._lock:
            return {
                "connected": self.capture is not None,
                "failures": self.failures,
                "source": self.safe_locator,
            }

    def close(self) -> None:
        with self._lock:
            if self.capture is not None:
                self.capture.release()
            self.capture = None

    @staticmethod
    def _open_capture(locator: int | str) -> cv2.VideoCapture:
        if isinstance(locator, str) and locator.lower().startswith(("rtsp://", "rtsps://")):
            return cv2.VideoCapture(locator, cv2.CAP_FFMPEG)
        return cv2.VideoCapture(locator)
