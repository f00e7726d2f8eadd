from __future__ import annotations

import threading
from collections.abc import Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from facewatch.api import routes_cameras, routes_health
from facewatch.camera.base import FrameSource
from facewatch.camera.catalog import CameraCatalog
from facewatch.camera.opencv_cam import OpenCVFrameSource
from facewatch.config.defaults import APP_VERSION
from facewatch.config.loader import load_settings
from facewatch.config.schema import Camera, WorkerSettings
from facewatch.pipeline.dispatcher import AlertDispatcher
from facewatch.pipeline.errors import SupervisorError
from facewatch.pipeline.runtime import Supervisor
from facewatch.pipeline.snapshot import SnapshotEncoder
from facewatch.util.logging import get_logger, setup_logging
from facewatch.vision.detect_base import Detector
from facewatch.vision.haar_face import HaarFaceDetector

logger = get_logger(__name__)


@dataclass
class WorkerState:
    settings: WorkerSettings
    catalog: CameraCatalog
    dispatcher: AlertDispatcher
    supervisor: Supervisor
    _shutdown_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _shutdown_started: bool = field(default=False, init=False, repr=False)
    _shutdown_complete: bool = field(default=False, init=False, repr=False)

    @classmethod
    def create(
        cls,
        settings: WorkerSettings | None = None,
        *,
        source_factory: Callable[[], FrameSource] = OpenCVFrameSource,
        detector_factory: Callable[[], Detector] = HaarFaceDetector,
        catalog: CameraCatalog | None = None,
        dispatcher: AlertDispatcher | None = None,
        configure_logging: bool = True,
    ) -> "WorkerState":
        settings = settings or load_settings()
        if configure_logging:
            setup_logging(settings.log_level, Path(settings.log_dir) if settings.log_dir else None)

        catalog = catalog or CameraCatalog(
            settings.cameras_url,
            timeout=settings.catalog_timeout_seconds,
            token=settings.backend_token,
        )
        dispatcher = dispatcher or AlertDispatcher(
            settings.alerts_url,
            timeout=settings.dispatch_timeout_seconds,
            max_pending=settings.dispatch_queue_size,
            workers=settings.dispatch_workers,
            token=settings.backend_token,
        )
        supervisor = Supervisor(
            source_factory=source_factory,
            detector_factory=detector_factory,
            dispatch=dispatcher.submit,
            options=settings.pipeline,
            model_ref=settings.model_ref,
            snapshots=SnapshotEncoder(
                quality=settings.pipeline.snapshot_quality,
                base_url=settings.snapshot_base_url,
            ),
        )
        logger.info("worker configured for backend %s", settings.backend_url)
        return cls(settings=settings, catalog=catalog, dispatcher=dispatcher, supervisor=supervisor)

    def start_camera(self, camera_id: str) -> Camera:
        camera = self.catalog.get(camera_id)
        self.supervisor.start(camera)
        return camera

    def stop_camera(self, camera_id: str) -> None:
        self.supervisor.stop(camera_id)

    def start_all(self) -> dict[str, Any]:
        started: list[str] = []
        failed: dict[str, str] = {}
        for camera in self.catalog.list_cameras():
            if not camera.is_enabled or camera.is_streaming:
                continue
            try:
                self.supervisor.start(camera)
            except SupervisorError as exc:
                logger.warning("failed to start camera %s: %s", camera.id, exc)
                failed[camera.id] = str(exc)
                continue
            started.append(camera.id)
        return {"started": len(started), "camera_ids": started, "failed": failed}

    def stop_all(self) -> dict[str, Any]:
        before = self.supervisor.active_count()
        failures = self.supervisor.stop_all()
        return {
            "stopped": max(0, before - self.supervisor.active_count()),
            "failed": {camera_id: str(exc) for camera_id, exc in failures.items()},
        }

    def status(self) -> dict[str, Any]:
        snapshot = self.supervisor.status_snapshot()
        return {
            "status": snapshot,
            "active_cameras": len(snapshot),
            "dispatch": self.dispatcher.stats(),
        }

    def begin_shutdown(self) -> None:
        with self._shutdown_lock:
            if self._shutdown_started:
                return
            self._shutdown_started = True
        logger.info("shutting down worker")
        self.supervisor.stop_all()

    def shutdown(self) -> None:
        self.begin_shutdown()
        with self._shutdown_lock:
            if self._shutdown_complete:
                return
            self._shutdown_complete = True
        # Sweep again for cameras started after begin_shutdown.
        self.supervisor.stop_all()
        self.dispatcher.close()
        self.catalog.close()
        logger.info("worker stopped")


def create_app(settings: WorkerSettings | None = None, state: WorkerState | None = None) -> FastAPI:
    state = state or WorkerState.create(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.worker.dispatcher.start()
        try:
            yield
        finally:
            app.state.worker.shutdown()

    app = FastAPI(title="facewatch worker", version=APP_VERSION, lifespan=lifespan)
    app.state.worker = state

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.include_router(routes_health.router)
    app.include_router(routes_cameras.router)
    return app
