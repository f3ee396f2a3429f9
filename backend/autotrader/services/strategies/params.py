"""Per-strategy parameter variants.

Every strategy kind has its own validated parameter model. The ``kind``
field tags the variant so a raw dict can be parsed into the right model.
"""

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, model_validator

from ...models import StrategyKind
from ..errors import InvalidBotConfig

MULTI_COIN_UNIVERSE = [
    "BTC/USDT", "ETH/USDT", "BNB/USDT", "XRP/USDT", "ADA/USDT",
    "DOT/USDT", "DOGE/USDT", "SHIB/USDT", "MATIC/USDT", "SOL/USDT",
    "AVAX/USDT", "LINK/USDT", "UNI/USDT", "ATOM/USDT", "LTC/USDT",
]


class MACrossParams(BaseModel):
    """Moving average crossover parameters."""
    kind: Literal["ma_cross"] = "ma_cross"
    fast_period: int = Field(default=10, ge=1)
    slow_period: int = Field(default=21, ge=1)
    signal_period: int = Field(default=9, ge=1)

    @model_validator(mode="after")
    def check_periods(self):
        if self.fast_period >= self.slow_period:
            raise ValueError("fast_period must be lower than slow_period")
        return self


class RSIParams(BaseModel):
    """Relative strength index parameters."""
    kind: Literal["rsi"] = "rsi"
    period: int = Field(default=14, ge=1)
    overbought: float = Field(default=70, ge=0, le=100)
    oversold: float = Field(default=30, ge=0, le=100)

    @model_validator(mode="after")
    def check_bounds(self):
        if self.oversold >= self.overbought:
            raise ValueError("oversold must be lower than overbought")
        return self


class GridParams(BaseModel):
    """Grid trading parameters."""
    kind: Literal["grid"] = "grid"
    upper_price: float = Field(default=50000, gt=0)
    lower_price: float = Field(default=40000, ge=0)
    grid_lines: int = Field(default=10, ge=1)

    @model_validator(mode="after")
    def check_range(self):
        if self.upper_price <= self.lower_price:
            raise ValueError("upper_price must be greater than lower_price")
        return self

    @property
    def grid_size(self) -> float:
        return (self.upper_price - self.lower_price) / self.grid_lines


class MLTrendParams(BaseModel):
    """Simulated ML trend parameters."""
    kind: Literal["ml_trend"] = "ml_trend"
    window_size: int = Field(default=24, ge=1)
    prediction_horizon: int = Field(default=12, ge=1)
    confidence_threshold: float = Field(default=0.75, ge=0, le=1)
    features: List[str] = Field(default_factory=lambda: ["price", "volume", "rsi", "macd"])


class DeepLearningParams(BaseModel):
    """Simulated deep learning parameters."""
    kind: Literal["deep_learning"] = "deep_learning"
    epochs: int = Field(default=100, ge=1)
    batch_size: int = Field(default=32, ge=1)
    layers: List[int] = Field(default_factory=lambda: [64, 32, 16, 8], min_length=1)
    learning_rate: float = Field(default=0.001, gt=0)


class MultiCoinParams(BaseModel):
    """Recommendation-driven multi-symbol parameters."""
    kind: Literal["multi_coin"] = "multi_coin"
    confidence_threshold: float = Field(default=0.3, ge=0, le=1)
    max_positions: int = Field(default=5, ge=1)
    update_interval_seconds: float = Field(default=15 * 60, ge=0)
    symbols: List[str] = Field(default_factory=lambda: list(MULTI_COIN_UNIVERSE), min_length=1)


StrategyParams = Annotated[
    Union[MACrossParams, RSIParams, GridParams, MLTrendParams, DeepLearningParams, MultiCoinParams],
    Field(discriminator="kind"),
]

_params_adapter = TypeAdapter(StrategyParams)


def _strategy_kind(kind) -> StrategyKind:
    try:
        return StrategyKind(kind)
    except ValueError:
        raise InvalidBotConfig(f"Unknown strategy '{kind}'") from None


def parse_strategy_params(kind, raw: Optional[dict] = None):
    """Validate ``raw`` into the parameter variant for ``kind``.

    Raises:
        InvalidBotConfig: unknown kind, mismatched ``kind`` tag or invalid values
    """
    kind = _strategy_kind(kind)
    data = dict(raw or {})
    tag = data.setdefault("kind", kind.value)
    if tag != kind.value:
        raise InvalidBotConfig(f"Parameters for '{tag}' cannot configure a '{kind.value}' bot")

    try:
        return _params_adapter.validate_python(data)
    except ValidationError as e:
        raise InvalidBotConfig(f"Invalid {kind.value} parameters: {e}") from e


def default_strategy_params(kind):
    """Default parameters for ``kind``."""
    return parse_strategy_params(kind, {})


def optimize_parameters(params):
    """Nudge tunable parameters toward their preferred range.

    MA crossover widens the gap between the averages within [5, 30], RSI keeps
    the period within [7, 21] and the thresholds within [20, 80]. Other kinds
    are returned unchanged.
    """
    if isinstance(params, MACrossParams):
        fast = max(5, params.fast_period - 1)
        slow = min(30, params.slow_period + 1)
        if fast >= slow:
            return params.model_copy()
        return params.model_copy(update={"fast_period": fast, "slow_period": slow})

    if isinstance(params, RSIParams):
        overbought = min(80, params.overbought)
        oversold = max(20, params.oversold)
        if oversold >= overbought:
            overbought, oversold = params.overbought, params.oversold
        return params.model_copy(update={
            "period": max(7, min(21, params.period)),
            "overbought": overbought,
            "oversold": oversold,
        })

    return params.model_copy()
