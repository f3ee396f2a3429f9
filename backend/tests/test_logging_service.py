"""Tests for per-bot log files."""

import csv
import logging
from datetime import datetime, timezone

from autotrader.models import TradeSide
from autotrader.services import BotLoggingService, TradeRecord, configure_logging


def make_trade(side=TradeSide.BUY, pnl=0.0):
    return TradeRecord(
        time=datetime(2024, 1, 1, tzinfo=timezone.utc),
        type=side,
        symbol="BTC/USDT",
        price=100.0,
        amount=2.0,
        pnl=pnl,
        strategy="ma_cross",
    )


class TestBotLoggingService:
    """Test trade journal and activity log."""

    def test_creates_bot_directory(self, tmp_path):
        service = BotLoggingService("bot1", "Test Bot", base_dir=tmp_path)

        assert (tmp_path / "bot1").is_dir()
        assert service.trade_log_file.name == "trades_simulated.csv"

    def test_live_trade_file(self, tmp_path):
        service = BotLoggingService("bot1", is_simulated=False, base_dir=tmp_path)

        assert service.trade_log_file.name == "trades.csv"

    def test_log_trade_writes_header_once(self, tmp_path):
        service = BotLoggingService("bot1", "Test Bot", base_dir=tmp_path)

        service.log_trade(make_trade())
        service.log_trade(make_trade(TradeSide.SELL, pnl=12.5))

        with open(service.trade_log_file, newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))

        assert rows[0][0] == "timestamp"
        assert len(rows) == 3
        assert rows[2][4] == "sell"
        assert rows[2][7] == "12.50"
        assert rows[2][9] == "True"

    def test_log_activity(self, tmp_path):
        service = BotLoggingService("bot1", base_dir=tmp_path)

        service.log_activity("Bot started", "WARNING")

        content = (tmp_path / "bot1" / "activity.log").read_text()
        assert "[WARNING] [DEMO] Bot started" in content


class TestConfigureLogging:
    """Test root logger setup."""

    def test_sets_level_without_duplicate_handlers(self):
        root = logging.getLogger()
        previous = root.level
        try:
            configure_logging("DEBUG")
            configure_logging("WARNING")

            ours = [h for h in root.handlers if getattr(h, "_autotrader", False)]
            assert len(ours) == 1
            assert root.level == logging.WARNING
        finally:
            for handler in [h for h in root.handlers if getattr(h, "_autotrader", False)]:
                root.removeHandler(handler)
            root.setLevel(previous)
