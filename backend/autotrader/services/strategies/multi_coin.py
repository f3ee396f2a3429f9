"""Recommendation-driven strategy trading a universe of symbols."""

import logging
import time
from typing import Callable, Optional, Set

from ...models import StrategyKind
from ..market_data import MarketSnapshot
from ..recommendations import RecommendationProvider
from .base import MultiSignal, Signal, SignalEntry, Strategy, StrategyResult, validate_snapshot
from .params import MultiCoinParams

logger = logging.getLogger(__name__)


class MultiCoinStrategy(Strategy):
    """Buys highly rated symbols and sells held symbols that lost their rating.

    Recommendations are requested at most once per ``update_interval_seconds``;
    in between, analyze returns Signal.NONE. The set of held symbols is kept
    by the engine through update_active_symbols.
    """

    kind = StrategyKind.MULTI_COIN

    def __init__(
        self,
        params: MultiCoinParams,
        provider: RecommendationProvider,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(params)
        self.provider = provider
        self.clock = clock
        self.active_symbols: Set[str] = set()
        self.last_update: Optional[float] = None

    def update_active_symbols(self, symbol: str, active: bool) -> None:
        if active:
            self.active_symbols.add(symbol)
        else:
            self.active_symbols.discard(symbol)

    def _interval_elapsed(self) -> bool:
        if self.last_update is None:
            return True
        return self.clock() - self.last_update >= self.params.update_interval_seconds

    async def analyze(self, snapshot: MarketSnapshot) -> StrategyResult:
        validate_snapshot(snapshot)
        if not self._interval_elapsed():
            return Signal.NONE

        threshold = self.params.confidence_threshold
        ranked = await self.provider.recommendations(self.params.symbols)
        ranked = sorted(ranked, key=lambda r: r.confidence, reverse=True)

        buys = [
            SignalEntry(symbol=r.symbol, price=r.price, confidence=r.confidence)
            for r in ranked
            if r.is_buy and r.confidence >= threshold and r.symbol not in self.active_symbols
        ]
        sells = [
            SignalEntry(symbol=r.symbol, price=r.price, confidence=r.confidence)
            for r in ranked
            if r.symbol in self.active_symbols and (r.is_sell or r.confidence < threshold)
        ]

        self.last_update = self.clock()

        slots = max(0, self.params.max_positions - len(self.active_symbols))
        signal = MultiSignal(buy=buys[:slots], sell=sells)
        logger.debug(
            f"Multi-coin analysis: {len(ranked)} recommendations, "
            f"{len(signal.buy)} buys, {len(signal.sell)} sells"
        )
        return signal
