"""Balance ledger and position tracker shared by all bots of a trading mode."""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .errors import InvalidState

logger = logging.getLogger(__name__)

DEFAULT_DEMO_BALANCE = 100000.0
DEFAULT_QUOTE_CURRENCY = "USDT"


class TradingMode(str, Enum):
    """Ledger namespace."""
    DEMO = "demo"
    LIVE = "live"


@dataclass
class Position:
    """Open long position held by a bot."""
    symbol: str
    entry_price: float
    amount: float
    opened_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def cost(self) -> float:
        return self.entry_price * self.amount

    def unrealized_pnl(self, current_price: float) -> float:
        """P&L if the position were closed at ``current_price``."""
        return (current_price - self.entry_price) * self.amount

    def pnl_percent(self, current_price: float) -> float:
        if self.cost == 0:
            return 0.0
        return self.unrealized_pnl(current_price) / self.cost * 100

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "entry_price": self.entry_price,
            "amount": self.amount,
            "opened_at": self.opened_at.isoformat(),
        }


@dataclass
class ClosedPosition:
    """Result of settling a sell against an open position."""
    position: Position
    exit_price: float
    pnl: float


def split_symbol(symbol: str, default_quote: str = DEFAULT_QUOTE_CURRENCY) -> Tuple[str, str]:
    """Split ``BASE/QUOTE`` into its currencies."""
    if "/" in symbol:
        base, quote = symbol.split("/", 1)
        return base, quote
    return symbol, default_quote


class Ledger:
    """Per-mode balances and per-bot open positions.

    The ledger is the only writer of balances and positions. Every mutation
    runs under one asyncio lock so concurrent bots cannot lose updates.
    """

    def __init__(
        self,
        mode: TradingMode = TradingMode.DEMO,
        demo_initial_balance: float = DEFAULT_DEMO_BALANCE,
        quote_currency: str = DEFAULT_QUOTE_CURRENCY,
    ):
        self.mode = TradingMode(mode)
        self.demo_initial_balance = demo_initial_balance
        self.quote_currency = quote_currency
        self._balances: Dict[TradingMode, Dict[str, float]] = {
            TradingMode.DEMO: {quote_currency: demo_initial_balance},
            TradingMode.LIVE: {quote_currency: 0.0, "BTC": 0.0, "ETH": 0.0},
        }
        self._positions: Dict[str, Dict[str, Position]] = {}
        self._lock = asyncio.Lock()

    # Balances

    def set_mode(self, mode: TradingMode) -> None:
        self.mode = TradingMode(mode)
        logger.info(f"Ledger switched to {self.mode.value} mode")

    def get_balance(self, currency: str, mode: Optional[TradingMode] = None) -> float:
        mode = TradingMode(mode or self.mode)
        return self._balances[mode].get(currency, 0.0)

    def balances(self, mode: Optional[TradingMode] = None) -> Dict[str, float]:
        mode = TradingMode(mode or self.mode)
        return dict(self._balances[mode])

    def _apply_delta(self, mode: TradingMode, currency: str, delta: float) -> float:
        book = self._balances[mode]
        old = book.get(currency, 0.0)
        new = old + delta
        if new < 0:
            logger.warning(
                f"Ledger {mode.value}: {currency} balance {old:.8f} cannot absorb {delta:.8f}, clamping to 0"
            )
            new = 0.0
        book[currency] = new
        return new

    async def update_balance(self, mode: TradingMode, currency: str, delta: float) -> float:
        """Apply ``delta`` to a balance, clamping the result at zero.

        Returns:
            The new balance
        """
        async with self._lock:
            return self._apply_delta(TradingMode(mode), currency, delta)

    def reset_demo(self, initial_balance: Optional[float] = None) -> None:
        """Restore the demo namespace to a single quote balance."""
        if initial_balance is not None:
            self.demo_initial_balance = initial_balance
        self._balances[TradingMode.DEMO] = {self.quote_currency: self.demo_initial_balance}
        logger.info(f"Demo ledger reset to {self.demo_initial_balance:.2f} {self.quote_currency}")

    # Positions

    def positions(self, bot_id: str) -> List[Position]:
        return list(self._positions.get(bot_id, {}).values())

    def get_position(self, bot_id: str, symbol: str) -> Optional[Position]:
        return self._positions.get(bot_id, {}).get(symbol)

    def has_position(self, bot_id: str, symbol: Optional[str] = None) -> bool:
        book = self._positions.get(bot_id, {})
        return symbol in book if symbol else bool(book)

    def position_count(self, bot_id: str) -> int:
        return len(self._positions.get(bot_id, {}))

    def _insert_position(self, bot_id: str, position: Position) -> None:
        book = self._positions.setdefault(bot_id, {})
        if position.symbol in book:
            raise InvalidState(f"Bot {bot_id} already holds a position in {position.symbol}")
        book[position.symbol] = position

    def _remove_position(self, bot_id: str, symbol: str) -> Optional[Position]:
        book = self._positions.get(bot_id)
        if not book:
            return None
        position = book.pop(symbol, None)
        if not book:
            del self._positions[bot_id]
        return position

    async def open_position(self, bot_id: str, position: Position) -> None:
        async with self._lock:
            self._insert_position(bot_id, position)

    async def close_position(self, bot_id: str, symbol: str) -> Optional[Position]:
        """Remove a position; closing a missing position is a no-op."""
        async with self._lock:
            return self._remove_position(bot_id, symbol)

    # Settlement

    async def settle_buy(
        self,
        mode: TradingMode,
        bot_id: str,
        symbol: str,
        price: float,
        amount: float,
    ) -> Optional[Position]:
        """Debit the quote cost, credit the base amount and open the position.

        Returns:
            The opened position, or None if the quote balance cannot cover it
        """
        mode = TradingMode(mode)
        base, quote = split_symbol(symbol, self.quote_currency)
        cost = price * amount

        async with self._lock:
            available = self._balances[mode].get(quote, 0.0)
            # Spending the whole balance can round the cost a hair above it
            if cost > available and math.isclose(cost, available, rel_tol=1e-9):
                cost = available
            if cost > available:
                logger.warning(
                    f"Bot {bot_id}: buy of {amount} {base} costs {cost:.2f} {quote}, only {available:.2f} available"
                )
                return None

            position = Position(symbol=symbol, entry_price=price, amount=amount)
            self._insert_position(bot_id, position)
            self._apply_delta(mode, quote, -cost)
            self._apply_delta(mode, base, amount)
            return position

    async def settle_sell(
        self,
        mode: TradingMode,
        bot_id: str,
        symbol: str,
        price: float,
    ) -> Optional[ClosedPosition]:
        """Close a position at ``price``, crediting proceeds and debiting the base amount.

        Returns:
            The closed position with its realized P&L, or None if no position was open
        """
        mode = TradingMode(mode)
        base, quote = split_symbol(symbol, self.quote_currency)

        async with self._lock:
            position = self._remove_position(bot_id, symbol)
            if position is None:
                return None

            self._apply_delta(mode, quote, price * position.amount)
            self._apply_delta(mode, base, -position.amount)
            return ClosedPosition(
                position=position,
                exit_price=price,
                pnl=position.unrealized_pnl(price),
            )
