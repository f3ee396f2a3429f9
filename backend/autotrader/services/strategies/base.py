"""Strategy contract and signal types."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Union

from ...models import StrategyKind
from ..errors import InvalidMarketData
from ..market_data import MarketSnapshot


class Signal(str, Enum):
    """Single-symbol strategy decision."""
    BUY = "buy"
    SELL = "sell"
    NONE = "none"


@dataclass
class SignalEntry:
    """One symbol selected by a multi-symbol strategy."""
    symbol: str
    price: float
    confidence: float


@dataclass
class MultiSignal:
    """Symbols to sell and symbols to buy, in that order of execution."""
    buy: List[SignalEntry] = field(default_factory=list)
    sell: List[SignalEntry] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_empty(self) -> bool:
        return not self.buy and not self.sell


StrategyResult = Union[Signal, MultiSignal]


def validate_snapshot(snapshot: Optional[MarketSnapshot]) -> MarketSnapshot:
    """Reject snapshots without a positive price or a klines sequence.

    Raises:
        InvalidMarketData: if the snapshot cannot be analyzed
    """
    if snapshot is None:
        raise InvalidMarketData("No market snapshot available")
    price = snapshot.price
    if isinstance(price, bool) or not isinstance(price, (int, float)) or price <= 0:
        raise InvalidMarketData(f"Invalid price for {snapshot.symbol}: {price!r}")
    if snapshot.klines is None or not isinstance(snapshot.klines, (list, tuple)):
        raise InvalidMarketData(f"Missing klines for {snapshot.symbol}")
    return snapshot


class Strategy(ABC):
    """Maps a market snapshot to a signal."""

    kind: StrategyKind
    # Simulated strategies emit random signals and carry no real model
    simulated: bool = False

    def __init__(self, params):
        self.params = params

    @abstractmethod
    async def analyze(self, snapshot: MarketSnapshot) -> StrategyResult:
        """Evaluate ``snapshot``.

        Raises:
            InvalidMarketData: if the snapshot lacks a positive price or klines
        """

    def __repr__(self):
        return f"<{type(self).__name__}(params={self.params!r})>"
