"""Placeholder model strategies.

These emit random signals. They stand in for model-driven strategies and do
not learn anything; pass a seeded ``random.Random`` for reproducible output.
"""

import random
from typing import Optional

from ...models import StrategyKind
from ..market_data import MarketSnapshot
from .base import Signal, Strategy, validate_snapshot
from .params import DeepLearningParams, MLTrendParams


class MLTrendStrategy(Strategy):
    """Random direction, emitted only when a random confidence beats the threshold."""

    kind = StrategyKind.ML_TREND
    simulated = True

    def __init__(self, params: MLTrendParams, rng: Optional[random.Random] = None):
        super().__init__(params)
        self.rng = rng or random.Random()

    async def analyze(self, snapshot: MarketSnapshot) -> Signal:
        validate_snapshot(snapshot)
        prediction = self.rng.random()
        confidence = self.rng.random()

        if confidence > self.params.confidence_threshold:
            return Signal.BUY if prediction > 0.5 else Signal.SELL
        return Signal.NONE


class DeepLearningStrategy(Strategy):
    """Random direction on every tick."""

    kind = StrategyKind.DEEP_LEARNING
    simulated = True

    def __init__(self, params: DeepLearningParams, rng: Optional[random.Random] = None):
        super().__init__(params)
        self.rng = rng or random.Random()

    async def analyze(self, snapshot: MarketSnapshot) -> Signal:
        validate_snapshot(snapshot)
        return Signal.BUY if self.rng.random() > 0.5 else Signal.SELL
