"""Market recommendation providers used by the multi-coin strategy.

A provider returns one ranked recommendation (action and confidence) per
requested symbol. HttpRecommendationService queries an analysis endpoint
over HTTP and caches each symbol's answer for a few minutes.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

import aiohttp

logger = logging.getLogger(__name__)

ACTIONS = ("strong_buy", "buy", "hold", "sell", "strong_sell")
BUY_ACTIONS = ("strong_buy", "buy")
SELL_ACTIONS = ("sell", "strong_sell")

_ACTION_ALIASES = {
    "strong buy": "strong_buy",
    "strongbuy": "strong_buy",
    "strong sell": "strong_sell",
    "strongsell": "strong_sell",
    "long": "buy",
    "short": "sell",
    "neutral": "hold",
    "wait": "hold",
}


def normalize_action(action: Optional[str]) -> str:
    """Map a free-form action label onto ACTIONS; anything unknown is ``hold``."""
    if not action:
        return "hold"
    key = str(action).strip().lower().replace("-", " ")
    key = _ACTION_ALIASES.get(key, key.replace(" ", "_"))
    return key if key in ACTIONS else "hold"


@dataclass
class Recommendation:
    """Action suggested for one symbol."""
    symbol: str
    action: str
    confidence: float
    price: float

    @property
    def is_buy(self) -> bool:
        return self.action in BUY_ACTIONS

    @property
    def is_sell(self) -> bool:
        return self.action in SELL_ACTIONS

    @classmethod
    def from_dict(cls, data: dict) -> "Recommendation":
        confidence = float(data.get("confidence") or 0.0)
        # Percentages are accepted as well as fractions
        if confidence > 1:
            confidence = confidence / 100
        return cls(
            symbol=data["symbol"],
            action=normalize_action(data.get("action") or data.get("recommendation")),
            confidence=max(0.0, min(1.0, confidence)),
            price=float(data.get("price") or 0.0),
        )


class RecommendationProvider(ABC):
    """Recommendation collaborator contract."""

    @abstractmethod
    async def recommendations(self, symbols: Iterable[str]) -> List[Recommendation]:
        """Recommendations for ``symbols``, sorted by confidence (highest first)."""


class StaticRecommendationProvider(RecommendationProvider):
    """Serves recommendations that were set in memory (demo mode and tests)."""

    def __init__(self, recommendations: Optional[Iterable[Recommendation]] = None):
        self._by_symbol: Dict[str, Recommendation] = {}
        self.set_recommendations(recommendations or [])

    def set_recommendations(self, recommendations: Iterable[Recommendation]) -> None:
        self._by_symbol = {r.symbol: r for r in recommendations}

    async def recommendations(self, symbols: Iterable[str]) -> List[Recommendation]:
        found = [self._by_symbol[s] for s in symbols if s in self._by_symbol]
        return sorted(found, key=lambda r: r.confidence, reverse=True)


class HttpRecommendationService(RecommendationProvider):
    """Fetches per-symbol recommendations from an HTTP analysis endpoint.

    The endpoint is called as ``GET <endpoint>?symbol=BTC/USDT`` and must
    answer with a JSON object holding ``symbol``, ``action`` (or
    ``recommendation``), ``confidence`` and ``price``.
    """

    def __init__(
        self,
        endpoint: str,
        cache_ttl_seconds: float = 300.0,
        timeout_seconds: float = 10.0,
    ):
        self.endpoint = endpoint
        self.cache_ttl_seconds = cache_ttl_seconds
        self.timeout_seconds = timeout_seconds
        self._cache: Dict[str, Tuple[Recommendation, datetime]] = {}

    def _cached(self, symbol: str) -> Optional[Recommendation]:
        entry = self._cache.get(symbol)
        if entry is None:
            return None
        recommendation, fetched_at = entry
        age = (datetime.now(timezone.utc) - fetched_at).total_seconds()
        if age >= self.cache_ttl_seconds:
            return None
        return recommendation

    def clear_cache(self) -> None:
        self._cache.clear()

    async def fetch(self, session: aiohttp.ClientSession, symbol: str) -> Recommendation:
        """Fetch one symbol's recommendation from the endpoint."""
        async with session.get(self.endpoint, params={"symbol": symbol}) as resp:
            if resp.status != 200:
                raise ConnectionError(f"Recommendation endpoint returned {resp.status} for {symbol}")
            data = await resp.json()

        data.setdefault("symbol", symbol)
        return Recommendation.from_dict(data)

    async def recommendations(self, symbols: Iterable[str]) -> List[Recommendation]:
        """Get recommendations, using the per-symbol cache when fresh.

        Raises:
            aiohttp.ClientError, ConnectionError: when the endpoint cannot be reached
        """
        results: List[Recommendation] = []
        missing: List[str] = []
        for symbol in symbols:
            cached = self._cached(symbol)
            if cached is not None:
                results.append(cached)
            else:
                missing.append(symbol)

        if missing:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                fetched = await asyncio.gather(*(self.fetch(session, s) for s in missing))

            now = datetime.now(timezone.utc)
            for recommendation in fetched:
                self._cache[recommendation.symbol] = (recommendation, now)
            results.extend(fetched)
            logger.debug(f"Fetched {len(fetched)} recommendations, {len(results) - len(fetched)} from cache")

        return sorted(results, key=lambda r: r.confidence, reverse=True)
