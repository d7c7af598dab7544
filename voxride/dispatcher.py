"""
Rate-limited action dispatch.

``submit`` executes an action at once when the rate window since the last
execution has elapsed. Otherwise the action joins a FIFO queue that a single
drain task works through, one execution per window. A full queue drops the
action and reports it as ``rate_limited``. In test mode nothing reaches the
executor; the action is only recorded.

All state here belongs to one event loop. Callers outside the loop must hop
onto it (``loop.call_soon_threadsafe``) before calling in.
"""
import time
import asyncio
import contextlib
from collections import deque
from dataclasses import dataclass, asdict
from typing import Callable

from .config import COMMAND_DESCRIPTIONS
from .executor import ExecutionResult
from .history import (
    ExecutionHistory,
    HistoryEntry,
    METHOD_DIRECT,
    METHOD_QUEUED,
    METHOD_TEST_MODE,
    METHOD_DROPPED,
)
from .settings import SessionSettings
from .logui import debug, info, warn, error


STATUS_IMMEDIATE = "immediate"
STATUS_QUEUED = "queued"
STATUS_DROPPED = "dropped"
STATUS_TEST_MODE = "test-mode"
STATUS_FAILED = "failed"

REASON_RATE_LIMITED = "rate_limited"
REASON_EXECUTOR_FAILURE = "executor_failure"

QUEUE_FULL_ERROR = "Rate limit exceeded, queue full"


@dataclass
class QueuedAction:
    action: str
    description: str
    enqueued_at: float


@dataclass
class DispatchResult:
    success: bool
    action: str
    description: str
    status: str
    queue_position: int | None = None
    error: str | None = None
    reason: str | None = None

    @property
    def queued(self) -> bool:
        return self.status == STATUS_QUEUED

    def to_dict(self) -> dict:
        return asdict(self)


class Dispatcher:
    def __init__(
        self,
        executor: Callable[[str], ExecutionResult],
        settings: SessionSettings | None = None,
        history: ExecutionHistory | None = None,
        on_result: Callable[[DispatchResult], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.executor = executor
        self.settings = settings or SessionSettings()
        self.history = history or ExecutionHistory(max_entries=self.settings.history_size)
        self.on_result = on_result
        self._clock = clock
        self._queue: deque[QueuedAction] = deque()
        self._last_executed_at: float | None = None
        self._drain_task: asyncio.Task | None = None
        self.is_processing = False

    # ------------------- Submission -------------------
    async def submit(self, action: str, description: str | None = None) -> DispatchResult:
        action = (action or "").strip().lower()
        desc = description or COMMAND_DESCRIPTIONS.get(action, action)

        if self.settings.test_mode:
            self.history.push(HistoryEntry(action, desc, True, METHOD_TEST_MODE))
            info(f"TEST MODE: would press {action} ({desc})")
            return self._report(DispatchResult(True, action, desc, STATUS_TEST_MODE))

        if not self._queue and self._remaining_window() <= 0:
            return self._execute(action, desc, METHOD_DIRECT)

        if len(self._queue) >= self.settings.max_queue_size:
            self.history.push(HistoryEntry(action, desc, False, METHOD_DROPPED, error=QUEUE_FULL_ERROR))
            warn(f"Dropped {action}: queue full ({len(self._queue)}/{self.settings.max_queue_size})")
            return self._report(
                DispatchResult(False, action, desc, STATUS_DROPPED, error=QUEUE_FULL_ERROR, reason=REASON_RATE_LIMITED)
            )

        self._queue.append(QueuedAction(action, desc, self._clock()))
        position = len(self._queue)
        debug(f"Queued {action} (queue size: {position})")
        self._schedule_drain()
        return DispatchResult(True, action, desc, STATUS_QUEUED, queue_position=position)

    async def test_key(self, action: str) -> DispatchResult:
        # one press now, ahead of any queue; the window restarts after it
        action = (action or "").strip().lower()
        if self.settings.test_mode:
            return await self.submit(action)
        desc = COMMAND_DESCRIPTIONS.get(action, action)
        return self._execute(action, desc, METHOD_DIRECT)

    def _execute(self, action: str, description: str, method: str) -> DispatchResult:
        try:
            outcome = self.executor(action)
        except Exception as e:
            error(f"Executor raised for {action}: {e}")
            outcome = ExecutionResult(False, str(e) or e.__class__.__name__)

        self._last_executed_at = self._clock()

        if outcome.success:
            self.history.push(HistoryEntry(action, description, True, method))
            info(f"Pressed {action} ({description}) [{method}]")
            status = STATUS_IMMEDIATE if method == METHOD_DIRECT else STATUS_QUEUED
            return self._report(DispatchResult(True, action, description, status))

        err = outcome.error or f"Failed to press {action}"
        self.history.push(HistoryEntry(action, description, False, method, error=err))
        warn(f"Failed to press {action}: {err}")
        return self._report(
            DispatchResult(False, action, description, STATUS_FAILED, error=err, reason=REASON_EXECUTOR_FAILURE)
        )

    def _report(self, result: DispatchResult) -> DispatchResult:
        if self.on_result is not None:
            try:
                self.on_result(result)
            except Exception as e:
                error(f"Dispatch observer failed: {e}")
        return result

    # ------------------- Queue draining -------------------
    def _remaining_window(self) -> float:
        if self._last_executed_at is None:
            return 0.0
        elapsed = self._clock() - self._last_executed_at
        return self.settings.rate_limit_seconds - elapsed

    def _schedule_drain(self):
        if self.is_processing or (self._drain_task is not None and not self._drain_task.done()):
            return
        self._drain_task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self):
        if self.is_processing:
            return
        self.is_processing = True
        try:
            while self._queue:
                wait = self._remaining_window()
                if wait > 0:
                    await asyncio.sleep(wait)
                    continue
                item = self._queue.popleft()
                self._execute(item.action, item.description, METHOD_QUEUED)
        finally:
            self.is_processing = False

    async def wait_idle(self):
        task = self._drain_task
        if task is not None and not task.done():
            await task

    async def close(self, drain: bool = True):
        task = self._drain_task
        if drain:
            await self.wait_idle()
            return
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        while self._queue:
            item = self._queue.popleft()
            self.history.push(HistoryEntry(item.action, item.description, False, METHOD_DROPPED, error="Dispatcher closed"))
        self.is_processing = False

    # ------------------- Queries -------------------
    def queue_status(self) -> dict:
        return {
            "size": len(self._queue),
            "max_size": self.settings.max_queue_size,
            "is_processing": self.is_processing,
        }

    def pending(self) -> list[str]:
        return [q.action for q in self._queue]

    def get_history(self) -> list[HistoryEntry]:
        return self.history.entries()

    def clear_history(self):
        self.history.clear()

    def config(self) -> dict:
        return {
            "rate_limit_ms": self.settings.rate_limit_ms,
            "max_queue_size": self.settings.max_queue_size,
            "test_mode": self.settings.test_mode,
            "key_press_delay_ms": self.settings.key_press_delay_ms,
        }
