"""Tests for the severity-tagged error reporter."""

import asyncio
import json
from unittest.mock import AsyncMock, Mock

import pytest

from autotrader.services import ErrorReporter, ExecutionFailure, Severity


class TestErrorReporter:
    """Test report storage and critical handling."""

    def test_report_message(self):
        reporter = ErrorReporter()

        entry = reporter.report("Bot started", Severity.LOW, {"bot_id": "abc"})

        assert entry.message == "Bot started"
        assert entry.severity == Severity.LOW
        assert entry.context == {"bot_id": "abc"}
        assert entry.stack is None
        assert reporter.recent() == [entry]

    def test_report_exception_keeps_stack(self):
        reporter = ErrorReporter()
        try:
            raise ExecutionFailure("order rejected")
        except ExecutionFailure as e:
            entry = reporter.report(e, Severity.HIGH)

        assert entry.message == "order rejected"
        assert "ExecutionFailure" in entry.stack

    def test_newest_first_and_bounded(self):
        reporter = ErrorReporter(max_entries=3)
        for i in range(5):
            reporter.report(f"error {i}")

        assert [e.message for e in reporter.recent()] == ["error 4", "error 3", "error 2"]
        assert len(reporter.recent(limit=2)) == 2

    def test_filter_by_min_severity(self):
        reporter = ErrorReporter()
        reporter.report("low", Severity.LOW)
        reporter.report("medium", Severity.MEDIUM)
        reporter.report("high", Severity.HIGH)

        assert [e.message for e in reporter.recent(min_severity=Severity.MEDIUM)] == ["high", "medium"]

    def test_critical_runs_handlers_and_snapshots(self, tmp_path):
        snapshot_file = tmp_path / "snapshots" / "errors.json"
        reporter = ErrorReporter(snapshot_file=snapshot_file)
        handler = Mock()
        reporter.on_critical(handler)

        reporter.report("ledger corrupted", Severity.CRITICAL, {"bot_id": "abc"})

        handler.assert_called_once_with("ledger corrupted", {"bot_id": "abc"})
        assert reporter.snapshots()[0]["message"] == "ledger corrupted"
        assert json.loads(snapshot_file.read_text())[0]["context"] == {"bot_id": "'abc'"}

    def test_failing_handler_does_not_break_report(self):
        reporter = ErrorReporter()
        reporter.on_critical(Mock(side_effect=RuntimeError("boom")))
        second = Mock()
        reporter.on_critical(second)

        reporter.report("disk full", Severity.CRITICAL)

        second.assert_called_once()
        assert reporter.recent()[0].severity == Severity.CRITICAL

    @pytest.mark.asyncio
    async def test_async_handler_task_is_tracked(self):
        reporter = ErrorReporter()
        disconnect = AsyncMock()
        reporter.on_critical(lambda message, context: disconnect(message))

        reporter.report("feed corrupted", Severity.CRITICAL)

        pending = reporter.pending_tasks
        assert len(pending) == 1
        await asyncio.gather(*pending)
        await asyncio.sleep(0)

        disconnect.assert_awaited_once_with("feed corrupted")
        assert reporter.pending_tasks == set()

    @pytest.mark.asyncio
    async def test_failing_async_handler_is_released(self):
        reporter = ErrorReporter()
        reporter.on_critical(AsyncMock(side_effect=RuntimeError("boom")))

        reporter.report("disk full", Severity.CRITICAL)

        await asyncio.gather(*reporter.pending_tasks, return_exceptions=True)
        await asyncio.sleep(0)

        assert reporter.pending_tasks == set()
        assert reporter.recent()[0].severity == Severity.CRITICAL

    def test_non_critical_skips_handlers(self):
        reporter = ErrorReporter()
        handler = Mock()
        reporter.on_critical(handler)

        reporter.report("slow tick", Severity.HIGH)

        handler.assert_not_called()
        assert reporter.snapshots() == []

    def test_remove_and_clear(self):
        reporter = ErrorReporter()
        entry = reporter.report("one")
        reporter.report("two")

        assert reporter.remove(entry.id) is True
        assert reporter.remove(entry.id) is False
        assert [e.message for e in reporter.recent()] == ["two"]

        reporter.clear()
        assert reporter.recent() == []

    def test_to_dict(self):
        entry = ErrorReporter().report("msg", Severity.MEDIUM)

        data = entry.to_dict()
        assert data["severity"] == "medium"
        assert data["timestamp"] == entry.timestamp.isoformat()
