"""
Root-level shared test fixtures.

Fake collaborators (camera, extractor, feedback, recorder) let the task
executor and pipeline run for real without a camera or OpenCV.
"""

from __future__ import annotations

import os
import threading
import uuid
from pathlib import Path

import numpy as np
import pytest

from lighthouse.config import reset_config
from lighthouse.vision.description import Description
from lighthouse.vision.errors import CaptureCancelled, QualityError
from lighthouse.vision.feedback import FeedbackHandler


def make_description(
    seed: int = 42,
    n: int = 60,
    description_id: str | None = None,
    with_image: bool = False,
) -> Description:
    rng = np.random.RandomState(seed)
    keypoints = rng.rand(n, 7).astype(np.float32) * 100
    descriptors = rng.randint(0, 256, size=(n, 32)).astype(np.uint8)
    histogram = rng.rand(512).astype(np.float32)
    histogram /= histogram.sum()
    image = rng.randint(0, 256, size=(24, 32, 3)).astype(np.uint8) if with_image else None
    return Description(
        id=description_id or uuid.uuid4().hex,
        keypoints=keypoints,
        descriptors=descriptors,
        histogram=histogram,
        source_image=image,
    )


class FakeCamera:
    """Returns a frame immediately, or blocks until the run is cancelled."""

    def __init__(self, block: bool = False):
        self.block = block
        self.frame = np.zeros((8, 8, 3), dtype=np.uint8)
        self.calls: list[str] = []
        self.started = threading.Event()
        self.released = False

    def _capture(self, checkpoint, mode: str) -> np.ndarray:
        self.calls.append(mode)
        self.started.set()
        if self.block:
            while not checkpoint.wait(0.01):
                pass
            raise CaptureCancelled(f"{mode} capture cancelled")
        return self.frame

    def capture_for_record(self, checkpoint) -> np.ndarray:
        return self._capture(checkpoint, "record")

    def capture_for_identification(self, checkpoint) -> np.ndarray:
        return self._capture(checkpoint, "identify")

    def release(self) -> None:
        self.released = True


class FakeExtractor:
    """Hands out queued descriptions; an empty queue means a blurry frame."""

    def __init__(self, descriptions: list[Description] | None = None):
        self.queue = list(descriptions or [])

    def describe(self, frame: np.ndarray) -> Description:
        if not self.queue:
            raise QualityError("Found 0 keypoints, need at least 20")
        return self.queue.pop(0)


class RecordingFeedback(FeedbackHandler):
    """Remembers every feedback event in order."""

    def __init__(self) -> None:
        self.events: list[tuple] = []
        self.completed = threading.Event()

    def play_sound(self, name: str) -> None:
        self.events.append(("sound", name))

    def play_voice_label(self, description_id: str) -> None:
        self.events.append(("voice_label", description_id))

    def show_label(self, info: str) -> None:
        self.events.append(("label", info))

    def operation_complete(self) -> None:
        self.events.append(("complete",))
        self.completed.set()

    def report(self, result) -> None:
        self.events.append(("result", result))

    @property
    def sounds(self) -> list[str]:
        return [e[1] for e in self.events if e[0] == "sound"]

    @property
    def results(self) -> list:
        return [e[1] for e in self.events if e[0] == "result"]


class FakeRecorder:
    def __init__(self) -> None:
        self.paths: list[Path] = []

    def record(self, path: Path) -> None:
        self.paths.append(path)
        path.write_bytes(b"RIFF")


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Reset config singleton and drop LIGHTHOUSE_* env vars between tests."""
    for key in list(os.environ):
        if key.startswith("LIGHTHOUSE_"):
            monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "Data"
    path.mkdir()
    return path


@pytest.fixture
def description_factory():
    """Build deterministic random descriptions: ``description_factory(seed=1)``."""
    return make_description


@pytest.fixture
def camera():
    return FakeCamera()


@pytest.fixture
def blocking_camera():
    return FakeCamera(block=True)


@pytest.fixture
def extractor_factory():
    return FakeExtractor


@pytest.fixture
def feedback():
    return RecordingFeedback()


@pytest.fixture
def recorder():
    return FakeRecorder()
