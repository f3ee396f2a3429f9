"""Severity-tagged error reporting shared by the engine and its collaborators."""

import asyncio
import inspect
import json
import logging
import traceback
import uuid
from collections import deque
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    """Error severity."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_LOG_LEVELS = {
    Severity.LOW: logging.INFO,
    Severity.MEDIUM: logging.WARNING,
    Severity.HIGH: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
}

CriticalHandler = Callable[[str, Dict[str, Any]], Optional[Awaitable[Any]]]


async def _await(awaitable: Awaitable[Any]) -> Any:
    return await awaitable


@dataclass
class ErrorLog:
    """A reported error or status message."""
    id: str
    timestamp: datetime
    message: str
    severity: Severity
    context: Dict[str, Any] = field(default_factory=dict)
    stack: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        data["severity"] = self.severity.value
        return data


class ErrorReporter:
    """Collects severity-tagged reports.

    Keeps the most recent ``max_entries`` reports, newest first. Critical
    reports run the registered critical handlers (connection teardown and the
    like) and store an error snapshot.
    """

    def __init__(
        self,
        max_entries: int = 100,
        max_snapshots: int = 10,
        snapshot_file: Optional[Path] = None,
    ):
        self._errors: Deque[ErrorLog] = deque(maxlen=max_entries)
        self._snapshots: Deque[dict] = deque(maxlen=max_snapshots)
        self._critical_handlers: List[CriticalHandler] = []
        self._handler_tasks: Set[asyncio.Task] = set()
        self.snapshot_file = snapshot_file

    def on_critical(self, handler: CriticalHandler) -> None:
        """Register a handler invoked for every critical report.

        A handler may return an awaitable, which is run as a task on the
        current event loop.
        """
        self._critical_handlers.append(handler)

    def report(
        self,
        error,
        severity: Severity = Severity.MEDIUM,
        context: Optional[Dict[str, Any]] = None,
    ) -> ErrorLog:
        """Record an error or status message.

        Args:
            error: Message string or exception
            severity: Report severity
            context: Extra structured context

        Returns:
            The stored ErrorLog
        """
        severity = Severity(severity)
        if isinstance(error, BaseException):
            message = str(error) or type(error).__name__
            stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        else:
            message = str(error)
            stack = None

        entry = ErrorLog(
            id=uuid.uuid4().hex[:8],
            timestamp=datetime.now(timezone.utc),
            message=message,
            severity=severity,
            context=dict(context or {}),
            stack=stack,
        )
        self._errors.appendleft(entry)

        logger.log(_LOG_LEVELS[severity], f"[{severity.value.upper()}] {message}")

        if severity == Severity.CRITICAL:
            self._handle_critical(entry)

        return entry

    def _handle_critical(self, entry: ErrorLog) -> None:
        for handler in self._critical_handlers:
            try:
                result = handler(entry.message, entry.context)
            except Exception as e:
                logger.error(f"Critical error handler failed: {e}")
                continue
            if inspect.isawaitable(result):
                self._schedule(result)

        snapshot = {
            "timestamp": entry.timestamp.isoformat(),
            "message": entry.message,
            "context": {k: repr(v) for k, v in entry.context.items()},
        }
        self._snapshots.appendleft(snapshot)

        if self.snapshot_file:
            try:
                self.snapshot_file.parent.mkdir(parents=True, exist_ok=True)
                with open(self.snapshot_file, "w", encoding="utf-8") as f:
                    json.dump(list(self._snapshots), f, indent=2)
            except Exception as e:
                logger.error(f"Failed to save error snapshot: {e}")

    @property
    def pending_tasks(self) -> Set[asyncio.Task]:
        """Critical handler tasks that have not finished yet."""
        return set(self._handler_tasks)

    def _schedule(self, awaitable: Awaitable) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error("Critical error handler returned an awaitable outside an event loop")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        task = loop.create_task(_await(awaitable))
        self._handler_tasks.add(task)
        task.add_done_callback(self._handler_done)

    def _handler_done(self, task: asyncio.Task) -> None:
        self._handler_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Critical error handler failed: {task.exception()}")

    def recent(self, limit: Optional[int] = None, min_severity: Optional[Severity] = None) -> List[ErrorLog]:
        """Most recent reports, newest first."""
        order = list(Severity)
        entries = list(self._errors)
        if min_severity is not None:
            floor = order.index(Severity(min_severity))
            entries = [e for e in entries if order.index(e.severity) >= floor]
        return entries[:limit] if limit else entries

    def snapshots(self) -> List[dict]:
        return list(self._snapshots)

    def remove(self, error_id: str) -> bool:
        for entry in self._errors:
            if entry.id == error_id:
                self._errors.remove(entry)
                return True
        return False

    def clear(self) -> None:
        self._errors.clear()
