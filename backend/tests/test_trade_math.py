"""Unit tests for trade sizing, win rate and P&L helpers."""

import pytest

from autotrader.services import calculate_pnl, calculate_trade_amount, calculate_win_rate


class TestCalculateTradeAmount:
    """Test position sizing."""

    def test_whole_units_from_cap(self):
        assert calculate_trade_amount(1000, 300, 100000) == 3

    def test_cap_below_price_buys_one_unit(self):
        assert calculate_trade_amount(50, 100, 100000) == 1

    def test_limited_by_balance(self):
        assert calculate_trade_amount(1000, 100, 250) == pytest.approx(2.5)

    def test_one_unit_limited_by_balance(self):
        assert calculate_trade_amount(50, 100, 40) == pytest.approx(0.4)

    def test_negative_balance_buys_nothing(self):
        assert calculate_trade_amount(1000, 100, -10) == 0

    @pytest.mark.parametrize("price", [0, -5])
    def test_invalid_price(self, price):
        assert calculate_trade_amount(1000, price, 100000) == 0


class TestCalculateWinRate:
    """Test the running win rate."""

    def test_first_win(self):
        assert calculate_win_rate(0.0, 0, True) == 100.0

    def test_first_loss(self):
        assert calculate_win_rate(0.0, 0, False) == 0.0

    def test_folds_into_history(self):
        assert calculate_win_rate(50.0, 2, True) == pytest.approx(66.67)

    def test_rounded_to_two_decimals(self):
        assert calculate_win_rate(100.0, 2, False) == 66.67


class TestCalculatePnl:
    """Test realized P&L."""

    def test_profit(self):
        assert calculate_pnl(100, 110, 2) == 20

    def test_loss(self):
        assert calculate_pnl(100, 90, 2) == -20
