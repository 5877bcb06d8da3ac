"""
Capture pipeline: frame -> description -> (persist + insert | match).

Every run returns a ``PipelineResult`` so callers can tell a cancelled run
from a blurry frame from a failed disk write. Only a fully persisted record
is inserted into the catalog.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from lighthouse.vision import storage
from lighthouse.vision.camera import Camera
from lighthouse.vision.description import Description
from lighthouse.vision.errors import CaptureCancelled, CaptureError, QualityError
from lighthouse.vision.feedback import FeedbackHandler, VoiceRecorder
from lighthouse.vision.matcher import MatchingStore
from lighthouse.vision.tasks import Checkpoint, Task

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    RECORDED = "recorded"
    IDENTIFIED = "identified"
    NO_MATCH = "no_match"
    CANCELLED = "cancelled"
    CAPTURE_FAILED = "capture_failed"
    QUALITY_FAILED = "quality_failed"
    IO_FAILED = "io_failed"


@dataclass(frozen=True)
class PipelineResult:
    outcome: Outcome
    description_id: str | None = None
    score: float | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome in (Outcome.RECORDED, Outcome.IDENTIFIED, Outcome.NO_MATCH)

    def as_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "description_id": self.description_id,
            "score": None if self.score is None else round(self.score, 4),
            "error": self.error,
        }


class CapturePipeline:
    """Record and Identify flows, run on the task executor's worker thread."""

    def __init__(
        self,
        store: MatchingStore,
        camera: Camera,
        feedback: FeedbackHandler,
        data_dir: str | Path,
        recorder: VoiceRecorder | None = None,
    ):
        self.store = store
        self.camera = camera
        self.feedback = feedback
        self.data_dir = Path(data_dir)
        self.recorder = recorder

    def run(self, task: Task, checkpoint: Checkpoint) -> PipelineResult | None:
        """Entry point for ``TaskExecutor``."""
        if task is Task.RECORD:
            result = self.record(checkpoint)
        elif task is Task.IDENTIFY:
            result = self.identify(checkpoint)
        else:
            return None
        self.feedback.report(result)
        return result

    def _describe(self, capture, checkpoint: Checkpoint) -> Description | PipelineResult:
        try:
            frame = capture(checkpoint)
        except CaptureCancelled:
            logger.info("Capture cancelled")
            return PipelineResult(Outcome.CANCELLED)
        except CaptureError as e:
            logger.warning("Capture failed: %s", e)
            return PipelineResult(Outcome.CAPTURE_FAILED, error=str(e))

        try:
            return self.store.describe(frame)
        except QualityError as e:
            logger.warning("Frame rejected: %s", e)
            return PipelineResult(Outcome.QUALITY_FAILED, error=str(e))

    # ── Record ───────────────────────────────────────────────────

    def record(self, checkpoint: Checkpoint) -> PipelineResult:
        described = self._describe(self.camera.capture_for_record, checkpoint)
        if isinstance(described, PipelineResult):
            return described
        if checkpoint.cancelled:
            return PipelineResult(Outcome.CANCELLED)

        try:
            self.save_description(described)
        except OSError as e:
            logger.error("Failed to persist description %s: %s", described.id, e)
            self.feedback.play_sound("error")
            return PipelineResult(Outcome.IO_FAILED, described.id, error=str(e))

        self.feedback.play_sound("registered")
        self.feedback.play_voice_label(described.id)
        logger.info("Recorded description %s (%d keypoints)", described.id, len(described))
        return PipelineResult(Outcome.RECORDED, described.id)

    def save_description(self, description: Description) -> None:
        """Persist a description with its voice label, then add it to the catalog."""
        folder = storage.ensure_dir(storage.folder_for(self.data_dir, description.id))

        try:
            if self.recorder is not None:
                self.feedback.play_sound("after-the-tone")
                self.feedback.play_sound("beep")
                self.recorder.record(folder / storage.Asset.VOICE_LABEL.value)
                self.feedback.play_sound("beep")
            storage.save(description, folder)
        except OSError:
            # Leave no record-less folder behind for the next startup scan.
            shutil.rmtree(folder, ignore_errors=True)
            raise
        self.store.insert(description)

    # ── Identify ─────────────────────────────────────────────────

    def identify(self, checkpoint: Checkpoint) -> PipelineResult:
        described = self._describe(self.camera.capture_for_identification, checkpoint)
        if isinstance(described, PipelineResult):
            return described

        matches = self.store.find_matches(described)
        if checkpoint.cancelled:
            return PipelineResult(Outcome.CANCELLED)

        if not matches:
            logger.info("No match among %d description(s)", len(self.store))
            self.feedback.play_sound("no-item")
            result = PipelineResult(Outcome.NO_MATCH)
        else:
            score, match = matches[0]
            logger.info("Best match %s (score=%.3f)", match.id, score)
            self.feedback.show_label(f"{match.id} ({score:.2f})")
            self.feedback.play_voice_label(match.id)
            result = PipelineResult(Outcome.IDENTIFIED, match.id, score)
        return result
