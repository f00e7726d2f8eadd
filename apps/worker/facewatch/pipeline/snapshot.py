from __future__ import annotations

from collections.abc import Callable

import cv2
import numpy as np

from facewatch.util.logging import get_logger
from facewatch.util.time import unix_seconds

logger = get_logger(__name__)

# Receives (file name, JPEG bytes); may return the URL the snapshot is served at.
SnapshotSink = Callable[[str, bytes], str | None]


class SnapshotEncoder:
    """JPEG-encodes alert frames and resolves the URL alerts carry as ``imageUrl``.

    The collector only accepts absolute URLs, so a snapshot is referenced when
    the sink returns one or ``base_url`` is configured. Otherwise the frame is
    still handed to the sink but the alert goes out without an image.
    """

    def __init__(
        self,
        quality: int = 80,
        sink: SnapshotSink | None = None,
        base_url: str | None = None,
    ) -> None:
        self.quality = min(100, max(1, quality))
        self.sink = sink
        self.base_url = base_url.rstrip("/") if base_url else None

    def encode(self, camera_id: str, frame: np.ndarray) -> str | None:
        try:
            ok, encoded = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, self.quality])
        except cv2.error:
            logger.exception("snapshot encode failed: %s", camera_id)
            return None
        if not ok:
            logger.warning("snapshot encode returned no data: %s", camera_id)
            return None

        file_name = f"snapshot_{camera_id}_{unix_seconds()}.jpg"
        served_url: str | None = None
        if self.sink is not None:
            try:
                served_url = self.sink(file_name, encoded.tobytes())
            except Exception:
                logger.exception("snapshot sink failed: %s", camera_id)
                return None
        if served_url:
            return served_url
        if self.base_url:
            return f"{self.base_url}/{file_name}"
        logger.debug("snapshot %s has no public URL, alert sent without image", file_name)
        return None
