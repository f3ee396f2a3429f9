"""Market data feeds consumed by the bot engine as read-only snapshots.

Provides:
- MarketDataFeed: the contract the engine depends on
- SimulatedMarketDataFeed: in-memory feed driven by pushed prices and klines
- CcxtMarketDataFeed: polls tickers and OHLCV candles from an exchange via ccxt
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Deque, Dict, Iterable, List, Optional

import ccxt.async_support as ccxt

logger = logging.getLogger(__name__)


@dataclass
class Kline:
    """Candlestick."""
    open_time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass
class MarketSnapshot:
    """Point-in-time market view handed to strategies."""
    symbol: str
    price: float
    klines: List[Kline] = field(default_factory=list)
    volume: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def closes(self) -> List[float]:
        return [k.close for k in self.klines]


class MarketDataFeed(ABC):
    """Market data collaborator contract."""

    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the feed currently delivers data."""

    @abstractmethod
    async def connect(self) -> bool:
        """Open the connection. Returns True on success."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection."""

    @abstractmethod
    async def subscribe(self, symbols: Iterable[str], interval: str = "1m") -> None:
        """Start delivering data for ``symbols``."""

    @abstractmethod
    async def unsubscribe(self, symbols: Iterable[str]) -> None:
        """Stop delivering data for ``symbols``."""

    @abstractmethod
    def snapshot(self, symbol: str) -> MarketSnapshot:
        """Latest snapshot for ``symbol``; price is 0 when nothing arrived yet."""

    def last_price(self, symbol: str) -> Optional[float]:
        price = self.snapshot(symbol).price
        return price if price and price > 0 else None


class _SymbolState:
    """Latest price, volume and a bounded kline history for one symbol."""

    def __init__(self, kline_limit: int):
        self.price: float = 0.0
        self.volume: float = 0.0
        self.klines: Deque[Kline] = deque(maxlen=kline_limit)
        self.updated_at: Optional[datetime] = None


class _CachingFeed(MarketDataFeed):
    """Shared subscription bookkeeping and per-symbol caches."""

    def __init__(self, kline_limit: int = 500):
        self.kline_limit = kline_limit
        self._states: Dict[str, _SymbolState] = {}
        # Reference counts: several bots may subscribe to the same symbol
        self._subscriptions: Counter = Counter()

    def _state(self, symbol: str) -> _SymbolState:
        if symbol not in self._states:
            self._states[symbol] = _SymbolState(self.kline_limit)
        return self._states[symbol]

    def subscribed_symbols(self) -> List[str]:
        return [s for s, count in self._subscriptions.items() if count > 0]

    def is_subscribed(self, symbol: str) -> bool:
        return self._subscriptions[symbol] > 0

    async def subscribe(self, symbols: Iterable[str], interval: str = "1m") -> None:
        for symbol in symbols:
            self._subscriptions[symbol] += 1
            if self._subscriptions[symbol] == 1:
                await self._on_first_subscription(symbol, interval)
            logger.debug(f"Subscribed to {symbol} ({interval}), refs={self._subscriptions[symbol]}")

    async def unsubscribe(self, symbols: Iterable[str]) -> None:
        for symbol in symbols:
            if self._subscriptions[symbol] <= 0:
                continue
            self._subscriptions[symbol] -= 1
            if self._subscriptions[symbol] == 0:
                del self._subscriptions[symbol]
                await self._on_last_unsubscription(symbol)
            logger.debug(f"Unsubscribed from {symbol}")

    async def _on_first_subscription(self, symbol: str, interval: str) -> None:
        pass

    async def _on_last_unsubscription(self, symbol: str) -> None:
        pass

    def snapshot(self, symbol: str) -> MarketSnapshot:
        state = self._state(symbol)
        return MarketSnapshot(
            symbol=symbol,
            price=state.price,
            klines=list(state.klines),
            volume=state.volume,
            timestamp=datetime.now(timezone.utc),
        )


class SimulatedMarketDataFeed(_CachingFeed):
    """In-memory feed for demo trading and tests."""

    def __init__(self, kline_limit: int = 500, connect_succeeds: bool = True):
        super().__init__(kline_limit)
        self.connect_succeeds = connect_succeeds
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        self._connected = self.connect_succeeds
        if not self._connected:
            logger.warning("Simulated market data feed refused connection")
        return self._connected

    async def disconnect(self) -> None:
        self._connected = False

    def push_price(self, symbol: str, price: float, volume: Optional[float] = None) -> None:
        state = self._state(symbol)
        state.price = price
        if volume is not None:
            state.volume = volume
        state.updated_at = datetime.now(timezone.utc)

    def push_kline(self, symbol: str, kline: Kline) -> None:
        self._state(symbol).klines.append(kline)

    def set_closes(self, symbol: str, closes: Iterable[float]) -> None:
        """Replace the kline history with flat candles closing at ``closes``."""
        state = self._state(symbol)
        state.klines.clear()
        now = datetime.now(timezone.utc)
        for close in closes:
            state.klines.append(Kline(open_time=now, open=close, high=close, low=close, close=close))


class CcxtMarketDataFeed(_CachingFeed):
    """Polls tickers and OHLCV candles for subscribed symbols."""

    def __init__(
        self,
        exchange_id: str = "binance",
        poll_interval_seconds: float = 1.0,
        kline_limit: int = 500,
        exchange=None,
    ):
        super().__init__(kline_limit)
        self.exchange_id = exchange_id
        self.poll_interval_seconds = poll_interval_seconds
        self.exchange = exchange
        self._connected = False
        self._pollers: Dict[str, asyncio.Task] = {}
        self._intervals: Dict[str, str] = {}

    def is_connected(self) -> bool:
        return self._connected and self.exchange is not None

    async def connect(self) -> bool:
        try:
            if self.exchange is None:
                exchange_class = getattr(ccxt, self.exchange_id, None)
                if not exchange_class:
                    logger.error(f"Exchange {self.exchange_id} not supported by ccxt")
                    return False
                self.exchange = exchange_class({"enableRateLimit": True})

            await self.exchange.load_markets()
            self._connected = True
            logger.info(f"Market data connected to {self.exchange_id}")
            return True

        except ccxt.BaseError as e:
            logger.error(f"Failed to connect market data to {self.exchange_id}: {e}")
            self._connected = False
            return False

    async def disconnect(self) -> None:
        for task in self._pollers.values():
            task.cancel()
        await asyncio.gather(*self._pollers.values(), return_exceptions=True)
        self._pollers.clear()

        if self.exchange:
            await self.exchange.close()
            self.exchange = None
        self._connected = False
        logger.info(f"Market data disconnected from {self.exchange_id}")

    async def _on_first_subscription(self, symbol: str, interval: str) -> None:
        self._intervals[symbol] = interval
        self._pollers[symbol] = asyncio.create_task(self._poll(symbol))

    async def _on_last_unsubscription(self, symbol: str) -> None:
        task = self._pollers.pop(symbol, None)
        self._intervals.pop(symbol, None)
        if task:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def refresh(self, symbol: str) -> None:
        """Fetch the latest ticker and candles for ``symbol`` into the cache."""
        ticker = await self.exchange.fetch_ticker(symbol)
        ohlcv = await self.exchange.fetch_ohlcv(
            symbol, timeframe=self._intervals.get(symbol, "1m"), limit=self.kline_limit
        )

        state = self._state(symbol)
        state.price = ticker.get("last") or 0.0
        state.volume = ticker.get("baseVolume") or 0.0
        state.klines.clear()
        for ts, o, h, l, c, v in ohlcv:
            state.klines.append(Kline(
                open_time=datetime.fromtimestamp(ts / 1000, tz=timezone.utc),
                open=o, high=h, low=l, close=c, volume=v or 0.0,
            ))
        state.updated_at = datetime.now(timezone.utc)

    async def _poll(self, symbol: str) -> None:
        while True:
            try:
                await self.refresh(symbol)
            except ccxt.NetworkError as e:
                logger.warning(f"Network error polling {symbol}, retrying: {e}")
            except ccxt.ExchangeError as e:
                logger.error(f"Exchange error polling {symbol}: {e}")
            await asyncio.sleep(self.poll_interval_seconds)
