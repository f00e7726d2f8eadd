from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .defaults import (
    DEFAULT_ALERTS_PATH,
    DEFAULT_BACKEND_URL,
    DEFAULT_BIND,
    DEFAULT_CAMERAS_PATH,
    DEFAULT_CATALOG_TIMEOUT_SECONDS,
    DEFAULT_DISPATCH_QUEUE_SIZE,
    DEFAULT_DISPATCH_TIMEOUT_SECONDS,
    DEFAULT_DISPATCH_WORKERS,
    DEFAULT_FRAME_SKIP,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MODEL_REF,
    DEFAULT_PORT,
    DEFAULT_READ_BACKOFF_SECONDS,
    DEFAULT_SNAPSHOT_EVERY,
    DEFAULT_SNAPSHOT_QUALITY,
    DEFAULT_TARGET_FPS,
)


class Camera(BaseModel):
    """A camera as published by the catalog service."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1)
    name: str = "Camera"
    rtsp_url: str = Field(alias="rtspUrl", min_length=1)
    location: str | None = None
    is_enabled: bool = Field(default=True, alias="isEnabled")
    is_streaming: bool = Field(default=False, alias="isStreaming")


class PipelineOptions(BaseModel):
    target_fps: float = DEFAULT_TARGET_FPS
    frame_skip: int = DEFAULT_FRAME_SKIP
    snapshot_every: int = DEFAULT_SNAPSHOT_EVERY
    snapshot_quality: int = DEFAULT_SNAPSHOT_QUALITY
    read_backoff_seconds: float = DEFAULT_READ_BACKOFF_SECONDS

    @field_validator("target_fps")
    @classmethod
    def clamp_target_fps(cls, value: float) -> float:
        return min(240.0, max(0.1, value))

    @field_validator("frame_skip", "snapshot_every")
    @classmethod
    def at_least_one(cls, value: int) -> int:
        return max(1, value)

    @field_validator("snapshot_quality")
    @classmethod
    def clamp_quality(cls, value: int) -> int:
        return min(100, max(1, value))

    @field_validator("read_backoff_seconds")
    @classmethod
    def non_negative_backoff(cls, value: float) -> float:
        return max(0.0, value)

    @property
    def frame_interval(self) -> float:
        return 1.0 / self.target_fps


class WorkerSettings(BaseModel):
    backend_url: str = DEFAULT_BACKEND_URL
    backend_token: str | None = None
    cameras_path: str = DEFAULT_CAMERAS_PATH
    alerts_path: str = DEFAULT_ALERTS_PATH
    bind: str = DEFAULT_BIND
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    log_level: str = DEFAULT_LOG_LEVEL
    log_dir: str | None = None
    snapshot_base_url: str | None = None
    model_ref: str = DEFAULT_MODEL_REF
    pipeline: PipelineOptions = Field(default_factory=PipelineOptions)
    dispatch_timeout_seconds: float = DEFAULT_DISPATCH_TIMEOUT_SECONDS
    dispatch_queue_size: int = DEFAULT_DISPATCH_QUEUE_SIZE
    dispatch_workers: int = DEFAULT_DISPATCH_WORKERS
    catalog_timeout_seconds: float = DEFAULT_CATALOG_TIMEOUT_SECONDS

    @field_validator("backend_url")
    @classmethod
    def backend_url_not_empty(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value:
            msg = "backend_url cannot be empty"
            raise ValueError(msg)
        return value

    @field_validator("snapshot_base_url")
    @classmethod
    def snapshot_base_url_absolute(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        value = value.strip().rstrip("/")
        if not value.lower().startswith(("http://", "https://")):
            msg = "snapshot_base_url must be an http(s) URL"
            raise ValueError(msg)
        return value

    @field_validator("log_level")
    @classmethod
    def known_log_level(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in {"critical", "error", "warning", "info", "debug"}:
            msg = f"unknown log level: {value}"
            raise ValueError(msg)
        return value

    @field_validator("dispatch_timeout_seconds", "catalog_timeout_seconds")
    @classmethod
    def positive_timeout(cls, value: float) -> float:
        return max(0.1, value)

    @field_validator("dispatch_queue_size", "dispatch_workers")
    @classmethod
    def positive_count(cls, value: int) -> int:
        return max(1, value)

    @property
    def cameras_url(self) -> str:
        return f"{self.backend_url}{self.cameras_path}"

    @property
    def alerts_url(self) -> str:
        return f"{self.backend_url}{self.alerts_path}"
