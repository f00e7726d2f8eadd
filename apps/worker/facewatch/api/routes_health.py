from __future__ import annotations

from fastapi import APIRouter, Request

from facewatch.util.security import scrub_sensitive
from facewatch.util.time import now_utc_iso

router = APIRouter(tags=["health"])


@router.get("/health")
def get_health() -> dict[str, object]:
    return {"status": "ok", "timestamp": now_utc_iso()}


@router.get("/status")
def get_status(request: Request) -> dict[str, object]:
    return scrub_sensitive(request.app.state.worker.status())
