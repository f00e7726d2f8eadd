from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from facewatch.camera.catalog import CameraNotFound, CatalogError
from facewatch.pipeline.errors import ResourceReleaseFailed, SupervisorError
from facewatch.util.security import validate_camera_id

router = APIRouter(prefix="/cameras", tags=["cameras"])


def _camera_id(raw: str) -> str:
    try:
        return validate_camera_id(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/start-all")
def start_all(request: Request) -> dict[str, object]:
    state = request.app.state.worker
    try:
        result = state.start_all()
    except CatalogError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {"message": f"Started {result['started']} cameras", **result}


@router.post("/stop-all")
def stop_all(request: Request) -> dict[str, object]:
    result = request.app.state.worker.stop_all()
    return {"message": f"Stopped {result['stopped']} cameras", **result}


@router.post("/{camera_id}/start")
def start_camera(camera_id: str, request: Request) -> dict[str, object]:
    state = request.app.state.worker
    camera_id = _camera_id(camera_id)
    try:
        state.start_camera(camera_id)
    except CameraNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except CatalogError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except SupervisorError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"message": "Camera streaming started", "camera_id": camera_id}


@router.post("/{camera_id}/stop")
def stop_camera(camera_id: str, request: Request) -> dict[str, object]:
    state = request.app.state.worker
    camera_id = _camera_id(camera_id)
    try:
        state.stop_camera(camera_id)
    except ResourceReleaseFailed as exc:
        return {"message": "Camera streaming stopped", "camera_id": camera_id, "warnings": exc.errors}
    except SupervisorError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"message": "Camera streaming stopped", "camera_id": camera_id}
