from __future__ import annotations

APP_VERSION = "0.1.0"
DEFAULT_BACKEND_URL = "http://localhost:8000"
DEFAULT_BIND = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_LOG_LEVEL = "info"
DEFAULT_CAMERAS_PATH = "/api/cameras"
DEFAULT_ALERTS_PATH = "/api/alerts"

DEFAULT_TARGET_FPS = 30.0
DEFAULT_FRAME_SKIP = 1
DEFAULT_SNAPSHOT_EVERY = 30
DEFAULT_READ_BACKOFF_SECONDS = 1.0
DEFAULT_SNAPSHOT_QUALITY = 80

DEFAULT_DISPATCH_TIMEOUT_SECONDS = 10.0
DEFAULT_DISPATCH_QUEUE_SIZE = 256
DEFAULT_DISPATCH_WORKERS = 4
DEFAULT_CATALOG_TIMEOUT_SECONDS = 10.0

# Empty model reference resolves to the frontal face cascade bundled with OpenCV.
DEFAULT_MODEL_REF = ""
