"""
Task cell and single-worker task executor.

Requests never queue: the cell holds only the latest intent
(``WAIT``/``RECORD``/``IDENTIFY``) plus a stamp bumped on every request. The
worker snapshots ``(stamp, task)``, runs the matching pipeline, and the
pipeline's capture step watches the stamp through a ``Checkpoint`` to abort
as soon as a newer request arrives. Requests made while the worker is busy
coalesce; only the last one is observed.

Usage:
    executor = TaskExecutor(run=pipeline.run, on_complete=feedback.operation_complete)
    executor.start()
    executor.request_identify()   # any thread, never blocks on the pipeline
    executor.request_stop()
    executor.shutdown()           # cancel, join
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import IntEnum
from typing import Any

logger = logging.getLogger(__name__)


class Task(IntEnum):
    # Nothing to do.
    WAIT = 0
    # Record a new object.
    RECORD = 1
    # Identify an existing object.
    IDENTIFY = 2


class TaskCell:
    """Synchronized ``(stamp, task)`` pair shared by requesters and the worker.

    ``current_task`` is a single attribute read and may be inspected without
    the lock. ``stamp`` is only changed under the condition's lock.
    """

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._task = Task.WAIT
        self._stamp = 0
        self._closed = False

    @property
    def current_task(self) -> Task:
        return self._task

    @property
    def stamp(self) -> int:
        with self._condition:
            return self._stamp

    @property
    def closed(self) -> bool:
        return self._closed

    def request(self, task: Task) -> int:
        """Replace the current task and wake the worker. Returns the new stamp."""
        with self._condition:
            if self._closed:
                logger.debug("Ignoring %s request: task cell closed", task.name)
                return self._stamp
            self._task = task
            self._stamp += 1
            self._condition.notify_all()
            return self._stamp

    def snapshot(self) -> tuple[int, Task]:
        with self._condition:
            return self._stamp, self._task

    def wait_for_change(
        self, last_stamp: int, timeout: float | None = None
    ) -> tuple[int, Task] | None:
        """Block until the stamp moves past ``last_stamp``.

        Returns the new ``(stamp, task)``, or None on timeout.
        """
        with self._condition:
            changed = self._condition.wait_for(lambda: self._stamp != last_stamp, timeout)
            if not changed:
                return None
            return self._stamp, self._task

    def checkpoint(self, stamp: int) -> Checkpoint:
        return Checkpoint(self, stamp)

    def close(self) -> None:
        """Cancel whatever is running and refuse further requests."""
        with self._condition:
            self._closed = True
            self._task = Task.WAIT
            self._stamp += 1
            self._condition.notify_all()

    def _sleep(self, stamp: int, timeout: float) -> bool:
        with self._condition:
            return self._condition.wait_for(lambda: self._stamp != stamp, timeout)


class Checkpoint:
    """Cancellation token for one pipeline run, bound to the stamp it started with."""

    def __init__(self, cell: TaskCell, stamp: int):
        self.cell = cell
        self.stamp = stamp

    @property
    def cancelled(self) -> bool:
        return self.cell.stamp != self.stamp

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds, waking early on a new request.

        Returns True if the run has been cancelled.
        """
        return self.cell._sleep(self.stamp, timeout)


Runner = Callable[[Task, Checkpoint], Any]


class TaskExecutor:
    """Runs every camera/vision operation on one dedicated thread.

    Only one pipeline invocation is active at a time: the loop is the sole
    caller of ``run`` and does not take the next task until it returns.
    """

    def __init__(
        self,
        run: Runner,
        on_complete: Callable[[], None] | None = None,
        on_result: Callable[[Any], None] | None = None,
        cell: TaskCell | None = None,
        name: str = "lighthouse-video",
    ):
        self.cell = cell or TaskCell()
        self._run = run
        self._on_complete = on_complete
        self._on_result = on_result
        self._thread = threading.Thread(target=self._loop, name=name)
        self._idle = threading.Event()
        self._idle.set()
        self.last_result: Any = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    @property
    def idle(self) -> bool:
        return self._idle.is_set()

    def start(self) -> None:
        self._thread.start()
        logger.info("Task executor started (thread=%s)", self._thread.name)

    def request_record(self) -> int:
        return self._send(Task.RECORD)

    def request_identify(self) -> int:
        return self._send(Task.IDENTIFY)

    def request_stop(self) -> int:
        return self._send(Task.WAIT)

    def _send(self, task: Task) -> int:
        logger.debug("Sending %s to loop", task.name)
        return self.cell.request(task)

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no pipeline is running (for callers that need to sync)."""
        return self._idle.wait(timeout)

    def shutdown(self, timeout: float | None = None) -> None:
        """Cancel any in-flight operation and join the worker thread.

        This is the only teardown path; the catalog and storage must outlive
        the worker.
        """
        self.cell.close()
        if self._thread.is_alive():
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.error("Task executor did not stop within %.1fs", timeout or 0.0)
                return
        logger.info("Task executor stopped")

    def _loop(self) -> None:
        # Stamp of the latest request acted upon.
        stamp = 0
        while True:
            change = self.cell.wait_for_change(stamp)
            if change is None:
                continue
            stamp, task = change
            if self.cell.closed:
                break
            if task is Task.WAIT:
                continue

            self._idle.clear()
            try:
                self._dispatch(task, stamp)
            finally:
                self._idle.set()

    def _dispatch(self, task: Task, stamp: int) -> None:
        logger.debug("Running %s (stamp=%d)", task.name, stamp)
        result = None
        try:
            result = self._run(task, self.cell.checkpoint(stamp))
        except Exception as e:
            logger.error("%s run failed: %s", task.name, e, exc_info=True)
        self.last_result = result
        self.runs += 1
        if self._on_result is not None and result is not None:
            try:
                self._on_result(result)
            except Exception as e:
                logger.error("Result callback failed: %s", e, exc_info=True)
        if self._on_complete is not None:
            try:
                self._on_complete()
            except Exception as e:
                logger.error("Completion callback failed: %s", e, exc_info=True)
