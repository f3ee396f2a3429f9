"""Risk gate consulted before a bot is allowed to trade."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class OrderRiskRequest:
    """Order submitted to the risk gate."""
    symbol: str
    amount: float
    price: float
    stop_loss: Optional[float] = None
    side: str = "buy"
    leverage: float = 1.0

    @property
    def order_value(self) -> float:
        return self.price * self.amount


@dataclass
class RiskCheck:
    """Risk gate verdict."""
    allowed: bool
    reason: Optional[str] = None


@dataclass
class RiskLimits:
    """Limits enforced by RiskManagementService."""
    max_order_value: float = 20000.0
    max_daily_loss: float = 1000.0
    max_leverage: float = 3.0
    stop_loss_percentage: float = 5.0


class RiskGate(ABC):
    """Risk policy collaborator contract."""

    def is_available(self) -> bool:
        """Whether the risk policy can be consulted."""
        return True

    @abstractmethod
    def check_order_risk(self, order: OrderRiskRequest) -> RiskCheck:
        """Pass/fail verdict for ``order``."""

    def record_pnl(self, pnl: float) -> None:
        """Feed realized P&L back into the policy."""


class RiskManagementService(RiskGate):
    """Limit-based risk policy: order value, daily loss, leverage, stop loss."""

    def __init__(self, limits: Optional[RiskLimits] = None):
        self.limits = limits or RiskLimits()
        self.daily_pnl = 0.0
        self._pnl_day: date = datetime.now(timezone.utc).date()

    @classmethod
    def from_config(cls, config: Optional[dict]) -> "RiskManagementService":
        section = (config or {}).get("risk") or {}
        known = {k: v for k, v in section.items() if k in RiskLimits.__dataclass_fields__}
        return cls(RiskLimits(**known))

    def update_limits(self, **limits) -> None:
        for key, value in limits.items():
            if not hasattr(self.limits, key):
                raise ValueError(f"Unknown risk limit '{key}'")
            setattr(self.limits, key, value)

    def _roll_day(self) -> None:
        today = datetime.now(timezone.utc).date()
        if today != self._pnl_day:
            self._pnl_day = today
            self.daily_pnl = 0.0

    def record_pnl(self, pnl: float) -> None:
        self._roll_day()
        self.daily_pnl += pnl

    def check_order_risk(self, order: OrderRiskRequest) -> RiskCheck:
        """Check an order against the configured limits.

        Args:
            order: The order to assess

        Returns:
            RiskCheck with the first violated limit as reason
        """
        self._roll_day()
        limits = self.limits

        if order.order_value > limits.max_order_value:
            return RiskCheck(
                allowed=False,
                reason=f"Order value {order.order_value:.2f} exceeds limit {limits.max_order_value:.2f}",
            )

        if self.daily_pnl < -limits.max_daily_loss:
            return RiskCheck(
                allowed=False,
                reason=f"Daily loss limit {limits.max_daily_loss:.2f} reached",
            )

        if order.leverage > limits.max_leverage:
            return RiskCheck(
                allowed=False,
                reason=f"Leverage {order.leverage}x exceeds limit {limits.max_leverage}x",
            )

        if not order.stop_loss:
            if order.side == "buy":
                recommended = order.price * (1 - limits.stop_loss_percentage / 100)
            else:
                recommended = order.price * (1 + limits.stop_loss_percentage / 100)
            return RiskCheck(
                allowed=False,
                reason=f"Stop loss required, recommended at {recommended:.2f}",
            )

        return RiskCheck(allowed=True)
