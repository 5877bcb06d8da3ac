"""
Image description: the persisted feature representation of a captured image.

A description holds ORB keypoints, their binary descriptor vectors, a global
HSV histogram and, when image retention is enabled, the source frame. It is
never mutated after creation; all arrays are frozen read-only copies.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime

import numpy as np

# x, y, size, angle, response, octave, class_id
KEYPOINT_FIELDS = 7
# Bytes per binary descriptor (ORB).
DESCRIPTOR_WIDTH = 32


def _frozen(array: np.ndarray, dtype: type) -> np.ndarray:
    frozen = np.array(array, dtype=dtype, copy=True)
    frozen.setflags(write=False)
    return frozen


@dataclass(frozen=True, eq=False)
class Description:
    """Immutable value describing one recorded or queried image."""

    id: str
    keypoints: np.ndarray
    descriptors: np.ndarray
    histogram: np.ndarray
    source_image: np.ndarray | None = None
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Description id must not be empty")
        descriptors = _frozen(self.descriptors, np.uint8)
        if descriptors.ndim != 2 or descriptors.shape[0] == 0:
            raise ValueError("Description requires a non-empty (N, W) descriptor matrix")
        keypoints = _frozen(self.keypoints, np.float32).reshape(-1, KEYPOINT_FIELDS)
        if keypoints.shape[0] != descriptors.shape[0]:
            raise ValueError(
                f"{keypoints.shape[0]} keypoints do not match {descriptors.shape[0]} descriptors"
            )
        histogram = _frozen(self.histogram, np.float32).ravel()
        if histogram.size == 0:
            raise ValueError("Description requires a non-empty histogram")

        # Frozen dataclass: bypass __setattr__ to store the normalised arrays.
        object.__setattr__(self, "descriptors", descriptors)
        object.__setattr__(self, "keypoints", keypoints)
        object.__setattr__(self, "histogram", histogram)
        if self.source_image is not None:
            object.__setattr__(self, "source_image", _frozen(self.source_image, np.uint8))

    @classmethod
    def create(
        cls,
        keypoints: np.ndarray,
        descriptors: np.ndarray,
        histogram: np.ndarray,
        source_image: np.ndarray | None = None,
    ) -> Description:
        """Build a description with a freshly assigned id."""
        return cls(
            id=uuid.uuid4().hex,
            keypoints=keypoints,
            descriptors=descriptors,
            histogram=histogram,
            source_image=source_image,
        )

    def __len__(self) -> int:
        return int(self.descriptors.shape[0])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Description):
            return NotImplemented
        if self.id != other.id or self.created_at != other.created_at:
            return False
        if (self.source_image is None) != (other.source_image is None):
            return False
        if self.source_image is not None and not np.array_equal(
            self.source_image, other.source_image
        ):
            return False
        return (
            np.array_equal(self.keypoints, other.keypoints)
            and np.array_equal(self.descriptors, other.descriptors)
            and np.array_equal(self.histogram, other.histogram)
        )

    __hash__ = None  # type: ignore[assignment]

    def without_image(self) -> Description:
        """Return a copy that does not carry the source frame."""
        return replace(self, source_image=None)

    def __repr__(self) -> str:
        image = "" if self.source_image is None else f", image={self.source_image.shape}"
        return f"Description(id={self.id!r}, keypoints={len(self)}{image})"
