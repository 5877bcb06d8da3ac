"""Tests for lighthouse.vision.camera — cancellable captures."""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from lighthouse.config import CaptureSettings
from lighthouse.vision.camera import OpenCVCamera, sharpness
from lighthouse.vision.errors import CaptureCancelled, CaptureError
from lighthouse.vision.tasks import Task, TaskCell


@pytest.fixture
def settings():
    return CaptureSettings(
        poll_interval=0.001,
        warmup_frames=2,
        min_sharpness=50.0,
        record_attempts=5,
        identify_attempts=3,
    )


@pytest.fixture
def frame():
    return np.zeros((10, 10, 3), dtype=np.uint8)


def _checkpoint():
    cell = TaskCell()
    return cell, cell.checkpoint(cell.request(Task.RECORD))


# ─── CaptureSettings ─────────────────────────────────────────────


class TestCaptureSettings:
    def test_index_source_is_int(self):
        assert CaptureSettings(source="2").device == 2

    def test_url_source_is_str(self):
        url = "rtsp://localhost:8554/cam"
        assert CaptureSettings(source=url).device == url


# ─── Capture loop ────────────────────────────────────────────────


class TestCapture:
    def test_skips_warmup_then_returns_sharp_frame(self, settings, frame):
        camera = OpenCVCamera(settings)
        camera.read = MagicMock(return_value=frame)
        _, checkpoint = _checkpoint()

        with patch("lighthouse.vision.camera.sharpness", return_value=120.0) as sharp:
            assert camera.capture_for_record(checkpoint) is frame

        assert camera.read.call_count == 3
        sharp.assert_called_once()

    def test_blurry_frames_then_sharp(self, settings, frame):
        camera = OpenCVCamera(settings)
        camera.read = MagicMock(return_value=frame)
        _, checkpoint = _checkpoint()

        with patch("lighthouse.vision.camera.sharpness", side_effect=[10.0, 20.0, 80.0]):
            assert camera.capture_for_record(checkpoint) is frame
        assert camera.read.call_count == 5

    def test_gives_up_after_attempts(self, settings, frame):
        camera = OpenCVCamera(settings)
        camera.read = MagicMock(return_value=frame)
        _, checkpoint = _checkpoint()

        with patch("lighthouse.vision.camera.sharpness", return_value=1.0):
            with pytest.raises(CaptureError, match="after 3 attempts"):
                camera.capture_for_identification(checkpoint)
        assert camera.read.call_count == settings.warmup_frames + 3

    def test_missing_frames_count_as_attempts(self, settings):
        camera = OpenCVCamera(settings)
        camera.read = MagicMock(return_value=None)
        _, checkpoint = _checkpoint()
        with pytest.raises(CaptureError):
            camera.capture_for_identification(checkpoint)

    def test_cancelled_before_read(self, settings):
        camera = OpenCVCamera(settings)
        camera.read = MagicMock()
        cell, checkpoint = _checkpoint()
        cell.request(Task.WAIT)

        with pytest.raises(CaptureCancelled):
            camera.capture_for_record(checkpoint)
        camera.read.assert_not_called()

    def test_cancelled_while_waiting(self, settings, frame):
        camera = OpenCVCamera(settings)
        cell, checkpoint = _checkpoint()

        def read():
            cell.request(Task.IDENTIFY)
            return frame

        camera.read = read
        with patch("lighthouse.vision.camera.sharpness", return_value=0.0):
            with pytest.raises(CaptureCancelled):
                camera.capture_for_record(checkpoint)


# ─── VideoCapture handling ───────────────────────────────────────


class TestRead:
    def test_connects_lazily(self, settings, frame):
        cap = MagicMock()
        cap.isOpened.return_value = True
        cap.read.return_value = (True, frame)
        cv2 = MagicMock()
        cv2.VideoCapture.return_value = cap

        camera = OpenCVCamera(settings)
        with patch("lighthouse.vision.camera._get_cv2", return_value=cv2):
            assert camera.read() is frame
        cv2.VideoCapture.assert_called_once_with(0)

    def test_failed_read_reconnects(self, settings):
        cap = MagicMock()
        cap.isOpened.return_value = True
        cap.read.return_value = (False, None)
        cv2 = MagicMock()
        cv2.VideoCapture.return_value = cap

        camera = OpenCVCamera(settings)
        with patch("lighthouse.vision.camera._get_cv2", return_value=cv2):
            assert camera.read() is None
        assert cv2.VideoCapture.call_count == 2

    def test_unopened_device_returns_none(self, settings):
        cap = MagicMock()
        cap.isOpened.return_value = False
        cv2 = MagicMock()
        cv2.VideoCapture.return_value = cap

        camera = OpenCVCamera(settings)
        with patch("lighthouse.vision.camera._get_cv2", return_value=cv2):
            assert camera.read() is None
        cap.read.assert_not_called()

    def test_release(self, settings):
        camera = OpenCVCamera(settings)
        cap = MagicMock()
        camera.cap = cap
        camera.release()
        cap.release.assert_called_once()
        assert camera.cap is None
        camera.release()


class TestSharpness:
    def test_textured_sharper_than_flat(self):
        pytest.importorskip("cv2")
        rng = np.random.RandomState(0)
        noisy = rng.randint(0, 256, size=(64, 64, 3)).astype(np.uint8)
        flat = np.full((64, 64, 3), 90, dtype=np.uint8)
        assert sharpness(noisy) > 50.0
        assert sharpness(flat) == 0.0
