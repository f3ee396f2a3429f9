"""Tests for SQLite persistence of the bot registry."""

import pytest
from sqlalchemy import select

from autotrader.models import BotRecord, BotStatus, StrategyKind, TradeSide, create_session_maker, init_db
from autotrader.services import BotRegistry, BotRepository, MLMetrics, TradeRecord


@pytest.fixture
async def session_maker(tmp_path):
    """Create a file-backed SQLite database."""
    engine, maker = create_session_maker(f"sqlite+aiosqlite:///{tmp_path / 'bots.db'}")
    await init_db(engine)
    yield maker
    await engine.dispose()


class TestBotRepository:
    """Test save and load through SQLAlchemy."""

    @pytest.mark.asyncio
    async def test_round_trip(self, session_maker, bot_spec):
        registry = BotRegistry(BotRepository(session_maker))
        bot_id = registry.create(bot_spec(strategy=StrategyKind.RSI, parameters={"period": 9}))
        registry.update_performance(bot_id, total_trades=4, win_rate=50.0, profit_loss=-3.5)
        registry.set_ml_metrics(bot_id, MLMetrics(accuracy=0.85, precision=0.83, recall=0.87, f1_score=0.85))

        assert await registry.save() == 1

        reloaded = BotRegistry(BotRepository(session_maker))
        assert await reloaded.load() == 1

        bot = reloaded.get(bot_id)
        assert bot.name == "Test Bot"
        assert bot.strategy == StrategyKind.RSI
        assert bot.config.parameters.period == 9
        assert bot.performance.total_trades == 4
        assert bot.performance.profit_loss == -3.5
        assert bot.ml_metrics.recall == 0.87

    @pytest.mark.asyncio
    async def test_active_bots_reload_stopped(self, session_maker, bot_spec):
        registry = BotRegistry(BotRepository(session_maker))
        running = registry.create(bot_spec(name="running"))
        training = registry.create(bot_spec(name="training"))
        failed = registry.create(bot_spec(name="failed"))
        registry.set_status(running, BotStatus.RUNNING)
        registry.set_status(training, BotStatus.TRAINING)
        registry.set_status(failed, BotStatus.ERROR)
        await registry.save()

        reloaded = BotRegistry(BotRepository(session_maker))
        await reloaded.load()

        assert reloaded.get(running).status == BotStatus.STOPPED
        assert reloaded.get(training).status == BotStatus.STOPPED
        assert reloaded.get(failed).status == BotStatus.ERROR

    @pytest.mark.asyncio
    async def test_save_removes_deleted_bots(self, session_maker, bot_spec):
        registry = BotRegistry(BotRepository(session_maker))
        keep = registry.create(bot_spec(name="keep"))
        drop = registry.create(bot_spec(name="drop"))
        await registry.save()

        registry.delete(drop)
        await registry.save()

        async with session_maker() as session:
            ids = (await session.execute(select(BotRecord.id))).scalars().all()
        assert ids == [keep]

    @pytest.mark.asyncio
    async def test_trades_are_persisted(self, session_maker, bot_spec):
        registry = BotRegistry(BotRepository(session_maker))
        bot_id = registry.create(bot_spec())
        registry.record_trade(bot_id, TradeRecord(
            time=registry.get(bot_id).created_at,
            type=TradeSide.SELL,
            symbol="BTC/USDT",
            price=102.0,
            amount=10.0,
            pnl=20.0,
            strategy="ma_cross",
        ))
        await registry.save()

        reloaded = BotRegistry(BotRepository(session_maker))
        await reloaded.load()

        trade = reloaded.get(bot_id).performance.trades[0]
        assert trade.type == TradeSide.SELL
        assert trade.pnl == 20.0

    @pytest.mark.asyncio
    async def test_invalid_rows_are_skipped(self, session_maker):
        async with session_maker() as session:
            session.add(BotRecord(
                id="broken",
                name="Broken",
                strategy="martingale",
                status="stopped",
                config={"symbol": "BTC/USDT", "max_position_size": 10},
                performance={},
            ))
            await session.commit()

        registry = BotRegistry(BotRepository(session_maker))

        assert await registry.load() == 0
