"""Deterministic indicator strategies: moving average cross, RSI and grid."""

import math
from typing import List

from ...models import StrategyKind
from ..market_data import MarketSnapshot
from .base import Signal, Strategy, validate_snapshot
from .params import GridParams, MACrossParams, RSIParams


def simple_moving_average(values: List[float], period: int) -> float:
    """Mean of the last ``period`` values."""
    window = values[-period:]
    return sum(window) / period


def relative_strength_index(closes: List[float]) -> float:
    """RSI from summed gains and losses over consecutive closes.

    Returns 100 when there are no losses.
    """
    gains = 0.0
    losses = 0.0
    for previous, current in zip(closes, closes[1:]):
        difference = current - previous
        if difference >= 0:
            gains += difference
        else:
            losses -= difference

    if losses == 0:
        return 100.0

    relative_strength = gains / losses
    return 100 - (100 / (1 + relative_strength))


class MACrossStrategy(Strategy):
    """Buy while the fast average is above the slow one, sell while below."""

    kind = StrategyKind.MA_CROSS

    def __init__(self, params: MACrossParams):
        super().__init__(params)

    async def analyze(self, snapshot: MarketSnapshot) -> Signal:
        validate_snapshot(snapshot)
        closes = snapshot.closes
        if len(closes) < self.params.slow_period:
            return Signal.NONE

        fast = simple_moving_average(closes, self.params.fast_period)
        slow = simple_moving_average(closes, self.params.slow_period)

        if fast > slow:
            return Signal.BUY
        if fast < slow:
            return Signal.SELL
        return Signal.NONE


class RSIStrategy(Strategy):
    """Buy when oversold, sell when overbought."""

    kind = StrategyKind.RSI

    def __init__(self, params: RSIParams):
        super().__init__(params)

    async def analyze(self, snapshot: MarketSnapshot) -> Signal:
        validate_snapshot(snapshot)
        closes = snapshot.closes
        window = self.params.period + 1
        if len(closes) < window:
            return Signal.NONE

        rsi = relative_strength_index(closes[-window:])

        if rsi <= self.params.oversold:
            return Signal.BUY
        if rsi >= self.params.overbought:
            return Signal.SELL
        return Signal.NONE


class GridStrategy(Strategy):
    """Alternate buy and sell by grid band: even bands buy, odd bands sell.

    Prices outside [lower_price, upper_price] keep counting bands, so the
    index can be negative or beyond ``grid_lines``.
    """

    kind = StrategyKind.GRID

    def __init__(self, params: GridParams):
        super().__init__(params)

    def grid_position(self, price: float) -> int:
        return math.floor((price - self.params.lower_price) / self.params.grid_size)

    async def analyze(self, snapshot: MarketSnapshot) -> Signal:
        validate_snapshot(snapshot)
        if self.grid_position(snapshot.price) % 2 == 0:
            return Signal.BUY
        return Signal.SELL
