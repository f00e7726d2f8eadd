from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from facewatch.vision.detect_base import Detection


class BoundingBox(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: int
    y: int
    width: int = Field(ge=0)
    height: int = Field(ge=0)


class Alert(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    camera_id: str = Field(alias="cameraId")
    confidence: float = Field(ge=0.0, le=1.0)
    bounding_box: BoundingBox = Field(alias="boundingBox")
    image_url: str | None = Field(default=None, alias="imageUrl")

    @classmethod
    def from_detection(cls, camera_id: str, detection: Detection, image_url: str | None = None) -> "Alert":
        x1, y1, _x2, _y2 = detection.bbox
        return cls(
            camera_id=camera_id,
            confidence=min(1.0, max(0.0, float(detection.confidence))),
            bounding_box=BoundingBox(x=x1, y=y1, width=detection.width, height=detection.height),
            image_url=image_url,
        )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
