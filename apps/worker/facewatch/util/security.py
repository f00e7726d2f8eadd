from __future__ import annotations

import re
from typing import Any
from urllib.parse import SplitResult, urlsplit, urlunsplit

RTSP_PASSWORD_RE = re.compile(r"(rtsp://[^:@/]+:)([^@/]+)(@)", re.IGNORECASE)
PASSWORD_PAIR_RE = re.compile(r"(password\s*[=:]\s*)([^\s,;]+)", re.IGNORECASE)
TOKEN_RE = re.compile(r"(token\s*[=:]\s*)([^\s,;]+)", re.IGNORECASE)
BEARER_RE = re.compile(r"(bearer\s+)([^\s,;]+)", re.IGNORECASE)
CAMERA_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,63}$")


def sanitize_rtsp_url(url: str) -> str:
    try:
        parts: SplitResult = urlsplit(url)
        if parts.scheme.lower() not in {"rtsp", "rtsps"}:
            return url
        hostname = parts.hostname or ""
        user = parts.username
        redacted_user = user if user else "user"
        port = f":{parts.port}" if parts.port else ""
        netloc = f"{redacted_user}:***@{hostname}{port}" if user or parts.password else f"{hostname}{port}"
        return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
    except Exception:
        return RTSP_PASSWORD_RE.sub(r"\1***\3", url)


def validate_camera_id(camera_id: str) -> str:
    value = str(camera_id)
    if not CAMERA_ID_RE.fullmatch(value):
        raise ValueError("Invalid camera id")
    return value


def redact_secrets(text: str) -> str:
    text = RTSP_PASSWORD_RE.sub(r"\1***\3", text)
    text = PASSWORD_PAIR_RE.sub(r"\1***", text)
    text = TOKEN_RE.sub(r"\1***", text)
    text = BEARER_RE.sub(r"\1***", text)
    return text


def scrub_sensitive(obj: Any) -> Any:
    if isinstance(obj, dict):
        out: dict[str, Any] = {}
        for key, value in obj.items():
            lowered = str(key).lower()
            if "password" in lowered or "token" in lowered or "secret" in lowered:
                out[key] = "***" if value else value
            elif lowered in {"source", "rtsp_url", "rtspurl"} and isinstance(value, str):
                out[key] = sanitize_rtsp_url(value)
            else:
                out[key] = scrub_sensitive(value)
        return out
    if isinstance(obj, list):
        return [scrub_sensitive(v) for v in obj]
    if isinstance(obj, str):
        return redact_secrets(obj)
    return obj
