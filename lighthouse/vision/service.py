"""
Lighthouse service: catalog, persistence and the task executor wired together.

Construction loads the catalog synchronously and only then starts the worker
thread, so the very first Identify already sees every recorded object.

Usage:
    from lighthouse.vision.service import Lighthouse

    with Lighthouse() as lighthouse:
        lighthouse.request_record()     # point the camera at an object
        ...
        lighthouse.request_identify()
        lighthouse.request_stop()
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

import numpy as np

from lighthouse.config import CaptureSettings, MatchingSettings, get_config
from lighthouse.vision import storage
from lighthouse.vision.camera import Camera, OpenCVCamera
from lighthouse.vision.description import Description
from lighthouse.vision.extractor import Extractor, OrbExtractor
from lighthouse.vision.feedback import (
    FeedbackHandler,
    FeedbackManager,
    LogFeedback,
    VoiceRecorder,
    WebhookFeedback,
)
from lighthouse.vision.matcher import Match, MatchingStore
from lighthouse.vision.pipeline import CapturePipeline, PipelineResult
from lighthouse.vision.tasks import TaskExecutor

logger = logging.getLogger(__name__)


def default_feedback(webhook_url: str = "") -> FeedbackManager:
    manager = FeedbackManager([LogFeedback()])
    if webhook_url:
        manager.add_handler(WebhookFeedback(url=webhook_url))
    return manager


class Lighthouse:
    """Record and identify objects from camera frames.

    ``request_*`` methods may be called from any thread and never block on
    the pipeline. Everything else that touches the camera runs on the
    executor's worker thread.
    """

    def __init__(
        self,
        settings: MatchingSettings | None = None,
        data_dir: str | Path | None = None,
        camera: Camera | None = None,
        extractor: Extractor | None = None,
        feedback: FeedbackHandler | None = None,
        recorder: VoiceRecorder | None = None,
        capture_settings: CaptureSettings | None = None,
        start: bool = True,
    ):
        cfg = get_config()
        self.settings = settings or cfg.matching
        self.data_dir = storage.ensure_dir(data_dir or cfg.data_dir)
        logger.info("Data folder is at %s", self.data_dir)

        self.extractor = extractor or OrbExtractor(self.settings)
        self.camera = camera or OpenCVCamera(capture_settings or cfg.capture)
        self.feedback = feedback or default_feedback(cfg.webhook_url)
        self.store = MatchingStore(self.settings, self.extractor)

        self.loaded_count = self.store.load_catalog(self.data_dir)

        self.pipeline = CapturePipeline(
            store=self.store,
            camera=self.camera,
            feedback=self.feedback,
            data_dir=self.data_dir,
            recorder=recorder,
        )
        self.executor = TaskExecutor(
            run=self.pipeline.run,
            on_complete=self.feedback.operation_complete,
        )
        self.start_time: str | None = None
        if start:
            self.start()

    # ── Lifecycle ────────────────────────────────────────────────

    def start(self) -> None:
        self.start_time = datetime.now().isoformat()
        self.executor.start()

    def shutdown(self, timeout: float | None = 10.0) -> None:
        """Cancel any running capture, join the worker, release the camera."""
        self.executor.shutdown(timeout)
        release = getattr(self.camera, "release", None)
        if release is not None and not self.executor.running:
            release()

    def __enter__(self) -> Lighthouse:
        return self

    def __exit__(self, *exc: object) -> None:
        self.shutdown()

    # ── Requests ─────────────────────────────────────────────────

    def request_record(self) -> int:
        """Start recording a new object."""
        return self.executor.request_record()

    def request_identify(self) -> int:
        """Start identifying an existing object."""
        return self.executor.request_identify()

    def request_stop(self) -> int:
        """Stop recording/identifying."""
        return self.executor.request_stop()

    @property
    def last_result(self) -> PipelineResult | None:
        return self.executor.last_result  # type: ignore[no-any-return]

    # ── Catalog access ───────────────────────────────────────────

    def get_description(self, key: str | np.ndarray) -> Description:
        """Look up by id (``NotFoundError``) or describe a frame (``QualityError``)."""
        if isinstance(key, str):
            return self.store.get(key)
        return self.store.describe(key)

    def find_matches(self, query: Description | np.ndarray) -> list[Match]:
        if isinstance(query, Description):
            return self.store.find_matches(query)
        return self.store.find_matches_in_frame(query)

    def draw_keypoints(self, frame: np.ndarray) -> np.ndarray:
        draw = getattr(self.extractor, "draw_keypoints", None)
        if draw is None:
            raise TypeError(f"{type(self.extractor).__name__} cannot draw keypoints")
        return draw(frame)  # type: ignore[no-any-return]

    def play_voice_label(self, description: Description) -> None:
        self.feedback.play_voice_label(description.id)

    def voice_label_path(self, description_id: str) -> Path:
        return storage.asset_path(self.data_dir, description_id, storage.Asset.VOICE_LABEL)

    def status(self) -> dict:
        result = self.last_result
        return {
            "running": self.executor.running,
            "started_at": self.start_time,
            "task": self.executor.cell.current_task.name.lower(),
            "busy": not self.executor.idle,
            "descriptions": len(self.store),
            "loaded_at_startup": self.loaded_count,
            "data_dir": str(self.data_dir),
            "last_result": result.as_dict() if result is not None else None,
        }
