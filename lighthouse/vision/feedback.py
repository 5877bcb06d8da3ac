"""
Feedback to the user: sounds, voice labels, on-screen labels.

Pluggable handlers, all fire-and-forget. A failing handler is logged and
never interrupts the pipeline or the other handlers.

Usage:
    from lighthouse.vision.feedback import FeedbackManager, LogFeedback, WebhookFeedback

    feedback = FeedbackManager()
    feedback.add_handler(LogFeedback())
    feedback.add_handler(WebhookFeedback(url="http://localhost:9000/events"))
    feedback.play_sound("registered")
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import httpx

if TYPE_CHECKING:
    from lighthouse.vision.pipeline import PipelineResult

logger = logging.getLogger(__name__)


class FeedbackHandler(ABC):
    """Base class for feedback handlers."""

    @abstractmethod
    def play_sound(self, name: str) -> None:
        """Play a named sound (beep, registered, no-item, error...)."""

    @abstractmethod
    def play_voice_label(self, description_id: str) -> None:
        """Play the voice label recorded for a description."""

    def show_label(self, info: str) -> None:
        """Display a short text label."""

    def operation_complete(self) -> None:
        """A Record or Identify run has finished, whatever its outcome."""

    def report(self, result: PipelineResult) -> None:
        """Structured outcome of a pipeline run."""


class LogFeedback(FeedbackHandler):
    """Feedback through the application log (headless devices, tests)."""

    def play_sound(self, name: str) -> None:
        logger.info("Sound: %s", name)

    def play_voice_label(self, description_id: str) -> None:
        logger.info("Voice label: %s", description_id)

    def show_label(self, info: str) -> None:
        logger.info("Label: %s", info)

    def operation_complete(self) -> None:
        logger.info("Operation complete")

    def report(self, result: PipelineResult) -> None:
        if result.ok:
            logger.info("Result: %s", result.outcome.value)
        else:
            logger.warning("Result: %s (%s)", result.outcome.value, result.error or "no detail")


class WebhookFeedback(FeedbackHandler):
    """POST every feedback event as JSON to an HTTP endpoint."""

    def __init__(self, url: str, headers: dict | None = None, timeout: float = 5.0):
        self.url = url
        self.headers = headers or {}
        self.timeout = timeout

    def _post(self, event_type: str, payload: dict) -> bool:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(
                    self.url,
                    json={"event_type": event_type, **payload},
                    headers=self.headers,
                )
                return 200 <= resp.status_code < 300
        except Exception as e:
            logger.error("Webhook feedback failed: %s", e)
            return False

    def play_sound(self, name: str) -> None:
        self._post("sound", {"name": name})

    def play_voice_label(self, description_id: str) -> None:
        self._post("voice_label", {"id": description_id})

    def show_label(self, info: str) -> None:
        self._post("label", {"info": info})

    def operation_complete(self) -> None:
        self._post("operation_complete", {})

    def report(self, result: PipelineResult) -> None:
        self._post("result", result.as_dict())


class FeedbackManager(FeedbackHandler):
    """Dispatches every feedback event to all registered handlers."""

    def __init__(self, handlers: list[FeedbackHandler] | None = None) -> None:
        self.handlers: list[FeedbackHandler] = list(handlers or [])

    def add_handler(self, handler: FeedbackHandler) -> None:
        """Register a feedback handler."""
        self.handlers.append(handler)

    def _dispatch(self, call: Callable[[FeedbackHandler], None]) -> int:
        success_count = 0
        for handler in self.handlers:
            try:
                call(handler)
                success_count += 1
            except Exception as e:
                logger.error("Feedback handler %s failed: %s", type(handler).__name__, e)
        return success_count

    def play_sound(self, name: str) -> None:
        self._dispatch(lambda h: h.play_sound(name))

    def play_voice_label(self, description_id: str) -> None:
        self._dispatch(lambda h: h.play_voice_label(description_id))

    def show_label(self, info: str) -> None:
        self._dispatch(lambda h: h.show_label(info))

    def operation_complete(self) -> None:
        self._dispatch(lambda h: h.operation_complete())

    def report(self, result: PipelineResult) -> None:
        self._dispatch(lambda h: h.report(result))


class VoiceRecorder(Protocol):
    """Records a voice label into the given file (blocking)."""

    def record(self, path: Path) -> None: ...
