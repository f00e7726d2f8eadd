from __future__ import annotations


class SupervisorError(Exception):
    """Base class for errors surfaced to callers of the supervisor."""


class AlreadyRunning(SupervisorError):
    def __init__(self, camera_id: str) -> None:
        super().__init__(f"camera {camera_id} is already being processed")
        self.camera_id = camera_id


class NotRunning(SupervisorError):
    def __init__(self, camera_id: str) -> None:
        super().__init__(f"camera {camera_id} is not being processed")
        self.camera_id = camera_id


class AcquisitionFailed(SupervisorError):
    """A frame source or detector could not be opened."""


class ResourceReleaseFailed(SupervisorError):
    def __init__(self, camera_id: str, errors: list[str]) -> None:
        super().__init__(f"camera {camera_id} stopped but releasing resources failed: {'; '.join(errors)}")
        self.camera_id = camera_id
        self.errors = list(errors)
