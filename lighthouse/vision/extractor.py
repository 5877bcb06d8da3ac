"""
Feature extraction: turn a camera frame into a Description.

The matching core only depends on the ``Extractor`` protocol. The default
``OrbExtractor`` uses OpenCV ORB keypoints/descriptors plus an HSV colour
histogram. OpenCV is imported lazily so the rest of the package (storage,
matching, the task executor) works without it.

Usage:
    from lighthouse.vision.extractor import OrbExtractor

    extractor = OrbExtractor()
    description = extractor.describe(frame)   # raises QualityError
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import numpy as np

from lighthouse.config import MatchingSettings
from lighthouse.vision.description import Description
from lighthouse.vision.errors import QualityError

logger = logging.getLogger(__name__)


def _get_cv2() -> Any:
    """Lazy-import cv2 so the vision core can be imported without opencv installed."""
    try:
        import cv2

        return cv2
    except ImportError:
        raise ImportError(
            "opencv-python-headless is required for feature extraction. "
            "Install with: pip install lighthouse[vision]"
        ) from None


class Extractor(Protocol):
    def describe(self, frame: np.ndarray) -> Description: ...


def _to_bgr(cv2: Any, frame: np.ndarray) -> np.ndarray:
    if frame.ndim == 3 and frame.shape[2] == 1:
        frame = np.ascontiguousarray(frame[:, :, 0])
    if frame.ndim == 2:
        return cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
    if frame.ndim != 3 or frame.shape[2] not in (3, 4):
        raise QualityError(f"Unsupported frame shape {frame.shape}")
    if frame.shape[2] == 4:
        return cv2.cvtColor(frame, cv2.COLOR_BGRA2BGR)
    return frame


class OrbExtractor:
    """ORB + HSV histogram extractor."""

    def __init__(self, settings: MatchingSettings | None = None):
        self.settings = settings or MatchingSettings()
        self._orb: Any = None

    def _ensure_loaded(self) -> Any:
        cv2 = _get_cv2()
        if self._orb is None:
            self._orb = cv2.ORB_create(nfeatures=self.settings.n_features)
            logger.info("ORB extractor ready (n_features=%d)", self.settings.n_features)
        return cv2

    def histogram(self, bgr: np.ndarray) -> np.ndarray:
        """L1-normalised HSV histogram with ``histogram_bins`` bins per channel."""
        cv2 = _get_cv2()
        bins = self.settings.histogram_bins
        hsv = cv2.cvtColor(bgr, cv2.COLOR_BGR2HSV)
        hist = cv2.calcHist([hsv], [0, 1, 2], None, [bins] * 3, [0, 180, 0, 256, 0, 256])
        hist = hist.flatten().astype(np.float32)
        total = float(hist.sum())
        if total > 0:
            hist /= total
        return hist

    def describe(self, frame: np.ndarray) -> Description:
        """Extract a description from a BGR, BGRA or grayscale frame.

        Raises:
            QualityError: unsupported channel count, too few keypoints or a
                degenerate histogram.
        """
        if frame is None or frame.size == 0:
            raise QualityError("Empty frame")

        cv2 = self._ensure_loaded()
        bgr = _to_bgr(cv2, frame)
        gray = cv2.cvtColor(bgr, cv2.COLOR_BGR2GRAY)

        keypoints, descriptors = self._orb.detectAndCompute(gray, None)
        count = 0 if descriptors is None else len(keypoints)
        if count < self.settings.min_keypoints:
            raise QualityError(
                f"Found {count} keypoints, need at least {self.settings.min_keypoints}"
            )

        hist = self.histogram(bgr)
        if float(hist.sum()) <= 0.0 or float(hist.max()) >= 0.999:
            raise QualityError("Degenerate colour histogram")

        rows = np.array(
            [
                (kp.pt[0], kp.pt[1], kp.size, kp.angle, kp.response, kp.octave, kp.class_id)
                for kp in keypoints
            ],
            dtype=np.float32,
        )
        source = np.array(frame, copy=True) if self.settings.keep_source_image else None
        return Description.create(rows, descriptors, hist, source_image=source)

    def draw_keypoints(self, frame: np.ndarray) -> np.ndarray:
        """Return a BGR copy of ``frame`` with the detected keypoints drawn on it."""
        description = self.describe(frame)
        cv2 = _get_cv2()
        # Keypoints cannot be drawn on a BGRA image.
        bgr = _to_bgr(cv2, frame).copy()
        keypoints = [
            cv2.KeyPoint(
                float(x), float(y), float(size), float(angle), float(response),
                int(octave), int(class_id),
            )
            for x, y, size, angle, response, octave, class_id in description.keypoints
        ]
        return cv2.drawKeypoints(
            bgr, keypoints, None, (-1, -1, -1, -1), cv2.DRAW_MATCHES_FLAGS_DRAW_RICH_KEYPOINTS
        )
