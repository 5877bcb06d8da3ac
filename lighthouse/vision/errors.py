"""
Error kinds raised by the vision core.

Per-entry errors (a corrupt record) are isolated at catalog load, per-run
errors (quality, capture, cancellation) end only the current pipeline run.
"""

from __future__ import annotations


class LighthouseError(Exception):
    """Base class for all Lighthouse errors."""


class QualityError(LighthouseError):
    """The frame does not carry enough features to be described."""


class CorruptRecordError(LighthouseError):
    """A persisted description could not be deserialized."""

    def __init__(self, path: object, reason: str):
        super().__init__(f"Corrupt description record at {path}: {reason}")
        self.path = path
        self.reason = reason


class NotFoundError(LighthouseError, KeyError):
    """No description with the requested id is in the catalog."""

    def __init__(self, description_id: str):
        super().__init__(description_id)
        self.description_id = description_id

    def __str__(self) -> str:
        return f"Description not found: {self.description_id}"


class CaptureCancelled(LighthouseError):
    """Capture was preempted by a newer task request. Not a failure."""


class CaptureError(LighthouseError):
    """The camera could not produce a usable frame."""
