"""Tests for recommendation providers."""

from unittest.mock import AsyncMock, patch

import pytest

from autotrader.services import (
    HttpRecommendationService,
    Recommendation,
    StaticRecommendationProvider,
)
from autotrader.services.recommendations import normalize_action


class TestRecommendation:
    """Test recommendation parsing."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Strong Buy", "strong_buy"),
            ("strong-sell", "strong_sell"),
            ("BUY", "buy"),
            ("neutral", "hold"),
            ("moon", "hold"),
            (None, "hold"),
        ],
    )
    def test_normalize_action(self, raw, expected):
        assert normalize_action(raw) == expected

    def test_from_dict_accepts_percentages(self):
        rec = Recommendation.from_dict({"symbol": "BTC/USDT", "recommendation": "buy", "confidence": 85, "price": "101.5"})

        assert rec.action == "buy"
        assert rec.confidence == 0.85
        assert rec.price == 101.5
        assert rec.is_buy and not rec.is_sell

    def test_from_dict_defaults(self):
        rec = Recommendation.from_dict({"symbol": "ETH/USDT"})

        assert rec.action == "hold"
        assert rec.confidence == 0.0
        assert not rec.is_buy and not rec.is_sell


class TestStaticRecommendationProvider:
    """Test in-memory recommendations."""

    @pytest.mark.asyncio
    async def test_filters_and_sorts(self):
        provider = StaticRecommendationProvider([
            Recommendation("BTC/USDT", "buy", 0.4, 100.0),
            Recommendation("ETH/USDT", "sell", 0.9, 50.0),
            Recommendation("SOL/USDT", "buy", 0.7, 20.0),
        ])

        result = await provider.recommendations(["BTC/USDT", "SOL/USDT", "ADA/USDT"])

        assert [r.symbol for r in result] == ["SOL/USDT", "BTC/USDT"]


class TestHttpRecommendationService:
    """Test the HTTP provider and its cache."""

    @pytest.fixture
    def service(self):
        return HttpRecommendationService("http://analysis.local/recommendation", cache_ttl_seconds=300)

    @pytest.mark.asyncio
    async def test_fetches_missing_symbols(self, service):
        async def fake_fetch(session, symbol):
            confidence = {"BTC/USDT": 0.5, "ETH/USDT": 0.8}[symbol]
            return Recommendation(symbol, "buy", confidence, 10.0)

        with patch.object(service, "fetch", side_effect=fake_fetch) as mock_fetch:
            result = await service.recommendations(["BTC/USDT", "ETH/USDT"])

        assert [r.symbol for r in result] == ["ETH/USDT", "BTC/USDT"]
        assert mock_fetch.call_count == 2

    @pytest.mark.asyncio
    async def test_uses_cache(self, service):
        fetch = AsyncMock(return_value=Recommendation("BTC/USDT", "buy", 0.5, 10.0))

        with patch.object(service, "fetch", fetch):
            await service.recommendations(["BTC/USDT"])
            await service.recommendations(["BTC/USDT"])

        assert fetch.call_count == 1

    @pytest.mark.asyncio
    async def test_expired_cache_refetches(self, service):
        service.cache_ttl_seconds = 0
        fetch = AsyncMock(return_value=Recommendation("BTC/USDT", "buy", 0.5, 10.0))

        with patch.object(service, "fetch", fetch):
            await service.recommendations(["BTC/USDT"])
            await service.recommendations(["BTC/USDT"])

        assert fetch.call_count == 2

    @pytest.mark.asyncio
    async def test_clear_cache(self, service):
        fetch = AsyncMock(return_value=Recommendation("BTC/USDT", "buy", 0.5, 10.0))

        with patch.object(service, "fetch", fetch):
            await service.recommendations(["BTC/USDT"])
            service.clear_cache()
            await service.recommendations(["BTC/USDT"])

        assert fetch.call_count == 2

    @pytest.mark.asyncio
    async def test_errors_propagate(self, service):
        fetch = AsyncMock(side_effect=ConnectionError("Recommendation endpoint returned 503"))

        with patch.object(service, "fetch", fetch):
            with pytest.raises(ConnectionError):
                await service.recommendations(["BTC/USDT"])

    @pytest.mark.asyncio
    async def test_fetch_non_200(self, service):
        response = AsyncMock()
        response.status = 503
        session = AsyncMock()
        session.get = lambda *args, **kwargs: response
        response.__aenter__.return_value = response

        with pytest.raises(ConnectionError):
            await service.fetch(session, "BTC/USDT")

    @pytest.mark.asyncio
    async def test_fetch_parses_body(self, service):
        response = AsyncMock()
        response.status = 200
        response.json.return_value = {"action": "strong_buy", "confidence": 0.9, "price": 100}
        response.__aenter__.return_value = response
        calls = []

        def get(url, params=None):
            calls.append((url, params))
            return response

        session = AsyncMock()
        session.get = get

        rec = await service.fetch(session, "BTC/USDT")

        assert calls == [("http://analysis.local/recommendation", {"symbol": "BTC/USDT"})]
        assert rec.symbol == "BTC/USDT"
        assert rec.action == "strong_buy"
