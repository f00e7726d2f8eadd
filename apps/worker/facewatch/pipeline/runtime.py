from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import cv2
import numpy as np

from facewatch.camera.base import FrameSource
from facewatch.config.schema import Camera, PipelineOptions
from facewatch.pipeline.alerts import Alert
from facewatch.pipeline.errors import AcquisitionFailed, AlreadyRunning, NotRunning, ResourceReleaseFailed, SupervisorError
from facewatch.pipeline.snapshot import SnapshotEncoder
from facewatch.util.logging import get_logger
from facewatch.util.security import sanitize_rtsp_url
from facewatch.vision.detect_base import Detection, Detector

logger = get_logger(__name__)

AlertSink = Callable[[Alert], Any]

_OVERLAY_COLOR = (0, 255, 0)


def _usable_frame(frame: object) -> bool:
    return isinstance(frame, np.ndarray) and frame.ndim in (2, 3) and frame.size > 0


@dataclass
class PipelineStatus:
    camera_id: str
    name: str
    target_fps: float
    frame_skip: int
    running: bool = False
    frame_count: int = 0
    processed_frames: int = 0
    alerts_emitted: int = 0
    read_failures: int = 0
    last_error: str | None = None
    safe_source: str = ""


@dataclass
class CameraPipeline:
    """Acquire -> detect -> alert loop for one camera.

    The loop owns the frame source and detector handed to ``launch`` and
    releases both before its thread exits, whatever the exit reason.
    """

    camera: Camera
    options: PipelineOptions
    dispatch: AlertSink
    snapshots: SnapshotEncoder | None = None
    source: FrameSource | None = field(default=None, init=False)
    detector: Detector | None = field(default=None, init=False)
    _thread: threading.Thread | None = field(default=None, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)
    _wake: threading.Event = field(default_factory=threading.Event, init=False)
    _launched: threading.Event = field(default_factory=threading.Event, init=False)
    _stop_requested: bool = field(default=False, init=False)
    _release_errors: list[str] = field(default_factory=list, init=False)
    _status: PipelineStatus = field(init=False)

    def __post_init__(self) -> None:
        self._status = PipelineStatus(
            camera_id=self.camera.id,
            name=self.camera.name,
            target_fps=self.options.target_fps,
            frame_skip=self.options.frame_skip,
            safe_source=sanitize_rtsp_url(self.camera.rtsp_url),
        )

    @property
    def camera_id(self) -> str:
        return self.camera.id

    @property
    def launched(self) -> bool:
        return self._thread is not None

    @property
    def release_errors(self) -> list[str]:
        with self._lock:
            return list(self._release_errors)

    def launch(self, source: FrameSource, detector: Detector) -> None:
        self.source = source
        self.detector = detector
        try:
            thread = threading.Thread(
                target=self._run_loop,
                name=f"camera-{self.camera.id}",
                daemon=True,
            )
            thread.start()
            self._thread = thread
        except Exception:
            self._release()
            raise
        finally:
            self._launched.set()

    def abandon(self) -> None:
        """Mark a pipeline whose resources were never acquired."""
        self._launched.set()

    def request_stop(self) -> None:
        with self._lock:
            self._stop_requested = True
            self._status.running = False
        self._wake.set()

    def wait_launched(self, timeout: float | None = None) -> bool:
        return self._launched.wait(timeout)

    def wait_stopped(self, timeout: float | None = None) -> bool:
        thread = self._thread
        if thread is not None and thread.is_alive():
            thread.join(timeout=timeout)
        return thread is None or not thread.is_alive()

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "camera_id": self._status.camera_id,
                "name": self._status.name,
                "running": self._status.running,
                "fps": self._status.target_fps,
                "frame_skip": self._status.frame_skip,
                "frame_count": self._status.frame_count,
                "processed_frames": self._status.processed_frames,
                "alerts_emitted": self._status.alerts_emitted,
                "read_failures": self._status.read_failures,
                "last_error": self._status.last_error,
                "source": self._status.safe_source,
            }

    def _set_error(self, message: str) -> None:
        with self._lock:
            self._status.last_error = message

    def _increment_read_failures(self) -> None:
        with self._lock:
            self._status.read_failures += 1

    def _next_frame_count(self) -> int:
        with self._lock:
            self._status.frame_count += 1
            return self._status.frame_count

    def _next_processed_count(self) -> int:
        with self._lock:
            self._status.processed_frames += 1
            return self._status.processed_frames

    def _increment_alerts(self) -> None:
        with self._lock:
            self._status.alerts_emitted += 1

    def _should_continue(self) -> bool:
        with self._lock:
            return self._status.running

    def _interruptible_sleep(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns True when a stop was requested meanwhile."""
        if seconds <= 0:
            return False
        return self._wake.wait(seconds)

    @staticmethod
    def _annotate(frame: np.ndarray, detections: list[Detection], caption: str) -> np.ndarray:
        out = frame.copy()
        for detection in detections:
            x1, y1, x2, y2 = detection.bbox
            cv2.rectangle(out, (x1, y1), (x2, y2), _OVERLAY_COLOR, 2)
        cv2.putText(out, caption, (10, 30), cv2.FONT_HERSHEY_PLAIN, 1.2, _OVERLAY_COLOR, 2)
        return out

    def _detect(self, frame: np.ndarray) -> list[Detection]:
        if self.detector is None:
            raise RuntimeError("camera pipeline has no detector")
        try:
            return list(self.detector.detect(frame))
        except Exception as exc:
            self._set_error(f"detection_failed:{type(exc).__name__}")
            logger.exception("face detection failed: %s", self.camera.id)
            return []

    def _emit(self, alert: Alert) -> None:
        try:
            accepted = self.dispatch(alert)
        except Exception:
            logger.exception("alert dispatch rejected: %s", self.camera.id)
            return
        if accepted is False:
            logger.warning("alert dispatch refused: %s", self.camera.id)
            return
        self._increment_alerts()

    def _process_frame(self, frame: np.ndarray) -> None:
        processed = self._next_processed_count()
        detections = self._detect(frame)
        if not detections:
            return

        try:
            alerts = self._build_alerts(frame, detections, processed)
        except Exception as exc:
            self._set_error(f"alert_failed:{type(exc).__name__}")
            logger.exception("alert preparation failed: %s", self.camera.id)
            return
        for alert in alerts:
            self._emit(alert)

    def _build_alerts(self, frame: np.ndarray, detections: list[Detection], processed: int) -> list[Alert]:
        caption = f"Camera: {self.camera.id}, FPS: {self.options.target_fps:g}"
        annotated = self._annotate(frame, detections, caption)
        image_url: str | None = None
        if self.snapshots is not None and processed % self.options.snapshot_every == 0:
            image_url = self.snapshots.encode(self.camera.id, annotated)
        return [Alert.from_detection(self.camera.id, detection, image_url=image_url) for detection in detections]

    def _release(self) -> None:
        for label, handle in (("frame source", self.source), ("detector", self.detector)):
            if handle is None:
                continue
            try:
                handle.close()
            except Exception as exc:
                with self._lock:
                    self._release_errors.append(f"{label}: {exc}")
                logger.exception("%s close failed: %s", label, self.camera.id)

    def _run_loop(self) -> None:
        if self.source is None:
            raise RuntimeError("camera pipeline has no frame source")
        camera_id = self.camera.id
        frame_interval = self.options.frame_interval
        frame_skip = self.options.frame_skip
        backoff = self.options.read_backoff_seconds

        with self._lock:
            if not self._stop_requested:
                self._status.running = True
        logger.info("camera pipeline running: %s", camera_id)

        last_tick = time.perf_counter()
        try:
            while self._should_continue():
                packet = None
                try:
                    packet = self.source.read_frame()
                except Exception as exc:
                    self._set_error(f"read_exception:{type(exc).__name__}")
                    logger.exception("camera source read failed: %s", camera_id)

                if packet is None:
                    self._increment_read_failures()
                    logger.warning("failed to read frame from camera %s, retrying in %.1fs", camera_id, backoff)
                    if self._interruptible_sleep(backoff):
                        break
                    continue

                frame = packet.frame
                if not _usable_frame(frame):
                    continue

                frame_count = self._next_frame_count()
                if frame_count % frame_skip == 0:
                    self._process_frame(frame)

                remaining = frame_interval - (time.perf_counter() - last_tick)
                if self._interruptible_sleep(remaining):
                    break
                last_tick = time.perf_counter()
        except Exception as exc:
            self._set_error(f"pipeline_crash:{type(exc).__name__}")
            logger.exception("camera pipeline crashed: %s", camera_id)
        finally:
            self._release()
            with self._lock:
                self._status.running = False
            logger.info("camera pipeline exited: %s", camera_id)


class Supervisor:
    """Registry of camera pipelines; the only place pipelines are created or torn down."""

    def __init__(
        self,
        source_factory: Callable[[], FrameSource],
        detector_factory: Callable[[], Detector],
        dispatch: AlertSink,
        options: PipelineOptions | None = None,
        model_ref: str = "",
        snapshots: SnapshotEncoder | None = None,
    ) -> None:
        self.source_factory = source_factory
        self.detector_factory = detector_factory
        self.dispatch = dispatch
        self.options = options or PipelineOptions()
        self.model_ref = model_ref
        self.snapshots = snapshots
        self._pipelines: dict[str, CameraPipeline] = {}
        self._lock = threading.Lock()

    def start(self, camera: Camera) -> None:
        pipeline = CameraPipeline(
            camera=camera,
            options=self.options,
            dispatch=self.dispatch,
            snapshots=self.snapshots,
        )
        with self._lock:
            if camera.id in self._pipelines:
                raise AlreadyRunning(camera.id)
            self._pipelines[camera.id] = pipeline

        try:
            source, detector = self._acquire(camera)
        except AcquisitionFailed:
            self._unregister(pipeline)
            pipeline.abandon()
            raise

        try:
            pipeline.launch(source, detector)
        except Exception as exc:
            self._unregister(pipeline)
            raise AcquisitionFailed(f"camera {camera.id}: failed to launch pipeline: {exc}") from exc
        logger.info("camera pipeline started: %s", camera.id)

    def stop(self, camera_id: str) -> None:
        with self._lock:
            pipeline = self._pipelines.get(camera_id)
        if pipeline is None:
            raise NotRunning(camera_id)

        pipeline.request_stop()
        pipeline.wait_launched()
        if not pipeline.launched:
            raise NotRunning(camera_id)
        pipeline.wait_stopped()
        self._unregister(pipeline)
        logger.info("camera pipeline stopped: %s", camera_id)

        errors = pipeline.release_errors
        if errors:
            raise ResourceReleaseFailed(camera_id, errors)

    def stop_all(self) -> dict[str, SupervisorError]:
        with self._lock:
            pipelines = list(self._pipelines.values())

        # Signal everything first so pipelines wind down in parallel.
        for pipeline in pipelines:
            pipeline.request_stop()

        failures: dict[str, SupervisorError] = {}
        for pipeline in pipelines:
            try:
                self.stop(pipeline.camera_id)
            except NotRunning:
                continue
            except SupervisorError as exc:
                logger.warning("failed to stop camera %s: %s", pipeline.camera_id, exc)
                failures[pipeline.camera_id] = exc
        return failures

    def status_snapshot(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            pipelines = list(self._pipelines.values())
        return {pipeline.camera_id: pipeline.snapshot() for pipeline in pipelines}

    def is_registered(self, camera_id: str) -> bool:
        with self._lock:
            return camera_id in self._pipelines

    def active_count(self) -> int:
        with self._lock:
            return len(self._pipelines)

    def _unregister(self, pipeline: CameraPipeline) -> None:
        with self._lock:
            if self._pipelines.get(pipeline.camera_id) is pipeline:
                del self._pipelines[pipeline.camera_id]

    def _acquire(self, camera: Camera) -> tuple[FrameSource, Detector]:
        source = self.source_factory()
        try:
            source.open(camera.rtsp_url)
        except Exception as exc:
            raise AcquisitionFailed(f"camera {camera.id}: {exc}") from exc

        detector = self.detector_factory()
        try:
            detector.open(self.model_ref)
        except Exception as exc:
            try:
                source.close()
            except Exception:
                logger.exception("frame source close failed after detector error: %s", camera.id)
            raise AcquisitionFailed(f"camera {camera.id}: {exc}") from exc
        return source, detector
