from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import ValidationError

from .schema import PipelineOptions, WorkerSettings

# Environment variable -> (settings field, parser)
_WORKER_ENV: dict[str, tuple[str, Callable[[str], Any]]] = {
    "BACKEND_URL": ("backend_url", str),
    "BACKEND_TOKEN": ("backend_token", str),
    "BIND": ("bind", str),
    "PORT": ("port", int),
    "LOG_LEVEL": ("log_level", str),
    "FACEWATCH_LOG_DIR": ("log_dir", str),
    "FACEWATCH_SNAPSHOT_BASE_URL": ("snapshot_base_url", str),
    "FACEWATCH_MODEL_REF": ("model_ref", str),
    "FACEWATCH_DISPATCH_TIMEOUT": ("dispatch_timeout_seconds", float),
    "FACEWATCH_DISPATCH_QUEUE_SIZE": ("dispatch_queue_size", int),
    "FACEWATCH_DISPATCH_WORKERS": ("dispatch_workers", int),
    "FACEWATCH_CATALOG_TIMEOUT": ("catalog_timeout_seconds", float),
}

_PIPELINE_ENV: dict[str, tuple[str, Callable[[str], Any]]] = {
    "FACEWATCH_TARGET_FPS": ("target_fps", float),
    "FACEWATCH_FRAME_SKIP": ("frame_skip", int),
    "FACEWATCH_SNAPSHOT_EVERY": ("snapshot_every", int),
    "FACEWATCH_SNAPSHOT_QUALITY": ("snapshot_quality", int),
    "FACEWATCH_READ_BACKOFF": ("read_backoff_seconds", float),
}


def _collect(environ: Mapping[str, str], table: dict[str, tuple[str, Callable[[str], Any]]]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for env_name, (field_name, parse) in table.items():
        raw = environ.get(env_name)
        if raw is None or not raw.strip():
            continue
        try:
            values[field_name] = parse(raw.strip())
        except ValueError as exc:
            raise ValueError(f"{env_name}: invalid value {raw!r}") from exc
    return values


def load_settings(environ: Mapping[str, str] | None = None, **overrides: Any) -> WorkerSettings:
    """Build worker settings from environment variables.

    Unset or blank variables fall back to the documented defaults. Keyword
    overrides (e.g. values from CLI flags) win over the environment.
    """
    env = os.environ if environ is None else environ
    values = _collect(env, _WORKER_ENV)
    pipeline_values = _collect(env, _PIPELINE_ENV)
    values.update({key: value for key, value in overrides.items() if value is not None})
    try:
        values.setdefault("pipeline", PipelineOptions(**pipeline_values))
        return WorkerSettings(**values)
    except ValidationError as exc:
        raise ValueError(f"invalid worker settings: {exc}") from exc
