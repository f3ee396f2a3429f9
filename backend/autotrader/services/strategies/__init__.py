"""Trading strategies and their parameter variants."""

import random
from typing import Optional

from ...models import StrategyKind
from ..errors import InvalidBotConfig
from ..recommendations import RecommendationProvider
from .base import MultiSignal, Signal, SignalEntry, Strategy, StrategyResult, validate_snapshot
from .multi_coin import MultiCoinStrategy
from .params import (
    MULTI_COIN_UNIVERSE,
    DeepLearningParams,
    GridParams,
    MACrossParams,
    MLTrendParams,
    MultiCoinParams,
    RSIParams,
    StrategyParams,
    default_strategy_params,
    optimize_parameters,
    parse_strategy_params,
)
from .simulated import DeepLearningStrategy, MLTrendStrategy
from .technical import GridStrategy, MACrossStrategy, RSIStrategy

_STRATEGIES = {
    StrategyKind.MA_CROSS: MACrossStrategy,
    StrategyKind.RSI: RSIStrategy,
    StrategyKind.GRID: GridStrategy,
    StrategyKind.ML_TREND: MLTrendStrategy,
    StrategyKind.DEEP_LEARNING: DeepLearningStrategy,
    StrategyKind.MULTI_COIN: MultiCoinStrategy,
}


def create_strategy(
    params,
    recommendations: Optional[RecommendationProvider] = None,
    rng: Optional[random.Random] = None,
) -> Strategy:
    """Build the strategy matching a parameter variant.

    Args:
        params: A parameter variant (its ``kind`` selects the strategy)
        recommendations: Provider required by the multi-coin strategy
        rng: Random source for the simulated strategies

    Returns:
        A fresh strategy instance
    """
    kind = StrategyKind(params.kind)
    strategy_class = _STRATEGIES[kind]

    if kind == StrategyKind.MULTI_COIN:
        if recommendations is None:
            raise InvalidBotConfig("multi_coin strategy needs a recommendation provider")
        return strategy_class(params, recommendations)
    if strategy_class.simulated:
        return strategy_class(params, rng=rng)
    return strategy_class(params)


__all__ = [
    "MULTI_COIN_UNIVERSE",
    "DeepLearningParams",
    "DeepLearningStrategy",
    "GridParams",
    "GridStrategy",
    "MACrossParams",
    "MACrossStrategy",
    "MLTrendParams",
    "MLTrendStrategy",
    "MultiCoinParams",
    "MultiCoinStrategy",
    "MultiSignal",
    "RSIParams",
    "RSIStrategy",
    "Signal",
    "SignalEntry",
    "Strategy",
    "StrategyParams",
    "StrategyResult",
    "create_strategy",
    "default_strategy_params",
    "optimize_parameters",
    "parse_strategy_params",
    "validate_snapshot",
]
