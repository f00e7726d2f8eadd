from __future__ import annotations

import httpx
from pydantic import TypeAdapter, ValidationError

from facewatch.config.schema import Camera
from facewatch.util.logging import get_logger

logger = get_logger(__name__)

_CAMERA_LIST = TypeAdapter(list[Camera])


class CatalogError(Exception):
    """The camera catalog could not be read."""


class CameraNotFound(CatalogError):
    def __init__(self, camera_id: str) -> None:
        super().__init__(f"camera {camera_id} not found")
        self.camera_id = camera_id


class CameraCatalog:
    """Read-only client for the backend's camera list."""

    def __init__(
        self,
        cameras_url: str,
        timeout: float = 10.0,
        token: str | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.cameras_url = cameras_url
        headers = {"Authorization": f"Bearer {token}"} if token else None
        self._client = client or httpx.Client(timeout=timeout, headers=headers)
        self._owns_client = client is None

    def list_cameras(self) -> list[Camera]:
        try:
            response = self._client.get(self.cameras_url)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise CatalogError(f"failed to fetch cameras: {exc}") from exc
        except ValueError as exc:
            raise CatalogError("camera catalog returned invalid JSON") from exc

        try:
            return _CAMERA_LIST.validate_python(payload)
        except ValidationError as exc:
            logger.warning("camera catalog payload rejected: %s", exc)
            raise CatalogError("camera catalog returned malformed cameras") from exc

    def get(self, camera_id: str) -> Camera:
        for camera in self.list_cameras():
            if camera.id == camera_id:
                return camera
        raise CameraNotFound(camera_id)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
