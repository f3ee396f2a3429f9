"""Pytest configuration and fixtures."""

import random

import pytest
from httpx import AsyncClient, ASGITransport

from autotrader.main import create_app
from autotrader.models import StrategyKind
from autotrader.services import (
    BotRegistry,
    BotSpec,
    EngineSettings,
    ErrorReporter,
    Ledger,
    RiskManagementService,
    SimulatedMarketDataFeed,
    StaticRecommendationProvider,
    TradingEngine,
)

SYMBOL = "BTC/USDT"


@pytest.fixture
def settings():
    """Engine settings with timings shrunk for tests."""
    return EngineSettings(
        tick_interval_seconds=0.01,
        min_trade_interval_seconds=0.0,
        max_consecutive_errors=5,
        connect_retries=2,
        price_wait_retries=2,
        retry_delay_seconds=0.01,
        min_trade_amount=1.0,
        trade_history_limit=100,
        training_seconds=0.05,
        optimize_seconds=0.01,
        stop_timeout_seconds=1.0,
    )


@pytest.fixture
def feed():
    """Connected-on-demand simulated market data feed."""
    return SimulatedMarketDataFeed()


@pytest.fixture
def ledger():
    return Ledger()


@pytest.fixture
def risk():
    return RiskManagementService()


@pytest.fixture
def reporter():
    return ErrorReporter()


@pytest.fixture
def registry():
    return BotRegistry()


@pytest.fixture
def recommendations():
    return StaticRecommendationProvider()


@pytest.fixture
async def engine(registry, ledger, feed, risk, reporter, recommendations, settings, tmp_path):
    """Trading engine wired to in-memory collaborators."""
    engine = TradingEngine(
        registry=registry,
        ledger=ledger,
        market_data=feed,
        risk=risk,
        reporter=reporter,
        recommendations=recommendations,
        settings=settings,
        logs_dir=tmp_path / "logs",
        rng=random.Random(7),
    )
    yield engine
    await engine.stop_all()


def make_spec(**overrides) -> BotSpec:
    """Bot definition with test defaults."""
    values = {
        "name": "Test Bot",
        "strategy": StrategyKind.MA_CROSS,
        "symbol": SYMBOL,
        "max_position_size": 1000.0,
        "parameters": {"fast_period": 2, "slow_period": 4},
        "stop_loss_pct": 5.0,
        "take_profit_pct": 50.0,
    }
    values.update(overrides)
    return BotSpec(**values)


@pytest.fixture
def bot_spec():
    """Factory fixture building bot definitions."""
    return make_spec


@pytest.fixture
async def client(engine):
    """Create test client bound to the test engine."""
    app = create_app()
    app.state.engine = engine

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
