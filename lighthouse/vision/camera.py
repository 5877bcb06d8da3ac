"""
Camera capture for the Record and Identify pipelines.

Captures block on the worker thread, so they poll the run's ``Checkpoint``
between frames and raise ``CaptureCancelled`` as soon as a newer request
arrives. ``CaptureSettings.poll_interval`` is the upper bound on that
cancellation latency.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import numpy as np

from lighthouse.config import CaptureSettings
from lighthouse.vision.errors import CaptureCancelled, CaptureError
from lighthouse.vision.extractor import _get_cv2
from lighthouse.vision.tasks import Checkpoint

logger = logging.getLogger(__name__)


class Camera(Protocol):
    def capture_for_record(self, checkpoint: Checkpoint) -> np.ndarray: ...

    def capture_for_identification(self, checkpoint: Checkpoint) -> np.ndarray: ...


def sharpness(frame: np.ndarray) -> float:
    """Variance of the Laplacian: low values mean a blurry frame."""
    cv2 = _get_cv2()
    gray = frame if frame.ndim == 2 else cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    return float(cv2.Laplacian(gray, cv2.CV_64F).var())


class OpenCVCamera:
    """OpenCV ``VideoCapture`` with reconnection and cancellable captures.

    Access only from the task executor's worker thread.
    """

    def __init__(self, settings: CaptureSettings | None = None):
        self.settings = settings or CaptureSettings()
        self.cap: Any = None

    def _connect(self) -> None:
        if self.cap is not None:
            self.cap.release()
        cv2 = _get_cv2()
        self.cap = cv2.VideoCapture(self.settings.device)
        self.cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        if self.cap.isOpened():
            logger.info("Camera connected: %s", self.settings.source)
        else:
            logger.warning("Camera failed to connect: %s", self.settings.source)

    def read(self) -> np.ndarray | None:
        """Read a single frame, reconnecting if necessary."""
        if self.cap is None or not self.cap.isOpened():
            self._connect()
            if not self.cap.isOpened():
                return None
        ret, frame = self.cap.read()
        if not ret:
            logger.warning("Frame read failed, reconnecting...")
            self._connect()
            return None
        return frame  # type: ignore[no-any-return]

    def release(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None

    def capture_for_record(self, checkpoint: Checkpoint) -> np.ndarray:
        return self._capture(checkpoint, self.settings.record_attempts, "record")

    def capture_for_identification(self, checkpoint: Checkpoint) -> np.ndarray:
        return self._capture(checkpoint, self.settings.identify_attempts, "identify")

    def _capture(self, checkpoint: Checkpoint, attempts: int, mode: str) -> np.ndarray:
        """Return the first sharp frame after warmup.

        Raises:
            CaptureCancelled: a newer task was requested.
            CaptureError: no usable frame within ``attempts`` reads.
        """
        warmup = self.settings.warmup_frames
        best = 0.0
        for attempt in range(warmup + attempts):
            if checkpoint.cancelled:
                raise CaptureCancelled(f"{mode} capture cancelled")

            frame = self.read()
            if frame is not None and attempt >= warmup:
                score = sharpness(frame)
                best = max(best, score)
                if score >= self.settings.min_sharpness:
                    logger.info("Captured frame for %s (sharpness=%.1f)", mode, score)
                    return frame

            if checkpoint.wait(self.settings.poll_interval):
                raise CaptureCancelled(f"{mode} capture cancelled")

        raise CaptureError(
            f"No sharp frame for {mode} after {attempts} attempts (best sharpness={best:.1f})"
        )
