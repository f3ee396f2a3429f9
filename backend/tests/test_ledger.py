"""Unit tests for the balance ledger and position tracker."""

import asyncio

import pytest

from autotrader.services import InvalidState, Ledger, Position, TradingMode
from autotrader.services.ledger import split_symbol


@pytest.fixture
def ledger():
    return Ledger(demo_initial_balance=10000.0)


# ============================================================================
# Balances
# ============================================================================


class TestBalances:
    """Test balance bookkeeping."""

    def test_initial_balances(self, ledger):
        assert ledger.mode == TradingMode.DEMO
        assert ledger.get_balance("USDT") == 10000.0
        assert ledger.get_balance("BTC") == 0.0
        assert ledger.get_balance("USDT", TradingMode.LIVE) == 0.0

    @pytest.mark.asyncio
    async def test_update_balance(self, ledger):
        assert await ledger.update_balance(TradingMode.DEMO, "USDT", -2500.0) == 7500.0
        assert await ledger.update_balance(TradingMode.DEMO, "ETH", 3.0) == 3.0

    @pytest.mark.asyncio
    async def test_balance_clamps_at_zero(self, ledger):
        assert await ledger.update_balance(TradingMode.DEMO, "USDT", -20000.0) == 0.0
        assert ledger.get_balance("USDT") == 0.0

    @pytest.mark.asyncio
    async def test_modes_are_separate(self, ledger):
        await ledger.update_balance(TradingMode.LIVE, "USDT", 500.0)

        assert ledger.get_balance("USDT", TradingMode.LIVE) == 500.0
        assert ledger.get_balance("USDT", TradingMode.DEMO) == 10000.0

    @pytest.mark.asyncio
    async def test_reset_demo(self, ledger):
        await ledger.update_balance(TradingMode.DEMO, "BTC", 1.0)
        await ledger.update_balance(TradingMode.LIVE, "USDT", 500.0)

        ledger.reset_demo(2000.0)

        assert ledger.balances(TradingMode.DEMO) == {"USDT": 2000.0}
        assert ledger.get_balance("USDT", TradingMode.LIVE) == 500.0

    def test_set_mode(self, ledger):
        ledger.set_mode("live")
        assert ledger.mode == TradingMode.LIVE

    @pytest.mark.asyncio
    async def test_concurrent_updates_are_not_lost(self, ledger):
        await asyncio.gather(*(ledger.update_balance(TradingMode.DEMO, "USDT", 1.0) for _ in range(100)))
        assert ledger.get_balance("USDT") == 10100.0


# ============================================================================
# Positions
# ============================================================================


class TestPositions:
    """Test position tracking."""

    @pytest.mark.asyncio
    async def test_open_and_close(self, ledger):
        await ledger.open_position("bot", Position(symbol="BTC/USDT", entry_price=100.0, amount=2))

        assert ledger.has_position("bot")
        assert ledger.has_position("bot", "BTC/USDT")
        assert not ledger.has_position("bot", "ETH/USDT")
        assert ledger.position_count("bot") == 1

        closed = await ledger.close_position("bot", "BTC/USDT")
        assert closed.amount == 2
        assert not ledger.has_position("bot")
        assert ledger.positions("bot") == []

    @pytest.mark.asyncio
    async def test_duplicate_position_rejected(self, ledger):
        await ledger.open_position("bot", Position(symbol="BTC/USDT", entry_price=100.0, amount=1))

        with pytest.raises(InvalidState):
            await ledger.open_position("bot", Position(symbol="BTC/USDT", entry_price=110.0, amount=1))

    @pytest.mark.asyncio
    async def test_close_missing_position_is_noop(self, ledger):
        assert await ledger.close_position("bot", "BTC/USDT") is None

    @pytest.mark.asyncio
    async def test_positions_are_per_bot(self, ledger):
        await ledger.open_position("a", Position(symbol="BTC/USDT", entry_price=100.0, amount=1))
        await ledger.open_position("b", Position(symbol="BTC/USDT", entry_price=100.0, amount=1))

        assert ledger.position_count("a") == 1
        assert ledger.position_count("b") == 1

    def test_position_pnl(self):
        position = Position(symbol="BTC/USDT", entry_price=100.0, amount=10)
        assert position.cost == 1000.0
        assert position.unrealized_pnl(95.0) == -50.0
        assert position.pnl_percent(95.0) == pytest.approx(-5.0)


# ============================================================================
# Settlement
# ============================================================================


class TestSettlement:
    """Test buy and sell settlement."""

    @pytest.mark.asyncio
    async def test_settle_buy(self, ledger):
        position = await ledger.settle_buy(TradingMode.DEMO, "bot", "ETH/USDT", 2000.0, 2)

        assert position.entry_price == 2000.0
        assert ledger.get_balance("USDT") == 6000.0
        assert ledger.get_balance("ETH") == 2
        assert ledger.get_position("bot", "ETH/USDT") is position

    @pytest.mark.asyncio
    async def test_settle_buy_insufficient_balance(self, ledger):
        assert await ledger.settle_buy(TradingMode.DEMO, "bot", "ETH/USDT", 2000.0, 6) is None

        assert ledger.get_balance("USDT") == 10000.0
        assert not ledger.has_position("bot")

    @pytest.mark.asyncio
    async def test_settle_buy_whole_balance_with_rounding(self):
        ledger = Ledger(demo_initial_balance=0.7)
        amount = 0.7 / 0.3

        position = await ledger.settle_buy(TradingMode.DEMO, "bot", "ETH/USDT", 0.3, amount)

        assert position is not None
        assert position.amount == amount
        assert ledger.get_balance("USDT") == pytest.approx(0.0, abs=1e-12)
        assert ledger.get_balance("ETH") == amount

    @pytest.mark.asyncio
    async def test_settle_sell(self, ledger):
        await ledger.settle_buy(TradingMode.DEMO, "bot", "ETH/USDT", 2000.0, 2)

        closed = await ledger.settle_sell(TradingMode.DEMO, "bot", "ETH/USDT", 2100.0)

        assert closed.pnl == 200.0
        assert closed.exit_price == 2100.0
        assert ledger.get_balance("USDT") == 10200.0
        assert ledger.get_balance("ETH") == 0.0
        assert not ledger.has_position("bot")

    @pytest.mark.asyncio
    async def test_settle_sell_without_position(self, ledger):
        assert await ledger.settle_sell(TradingMode.DEMO, "bot", "ETH/USDT", 2100.0) is None
        assert ledger.get_balance("USDT") == 10000.0

    @pytest.mark.asyncio
    async def test_concurrent_buys_never_overspend(self, ledger):
        results = await asyncio.gather(*(
            ledger.settle_buy(TradingMode.DEMO, f"bot-{i}", "BTC/USDT", 1000.0, 3)
            for i in range(5)
        ))

        assert sum(1 for r in results if r is not None) == 3
        assert ledger.get_balance("USDT") == 1000.0
        assert ledger.get_balance("BTC") == 9


class TestSplitSymbol:
    """Test symbol parsing."""

    def test_pair(self):
        assert split_symbol("BTC/USDT") == ("BTC", "USDT")

    def test_bare_symbol_uses_default_quote(self):
        assert split_symbol("BTC", "EUR") == ("BTC", "EUR")
