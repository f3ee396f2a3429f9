"""SQLAlchemy persistence for the bot registry."""

import logging
from datetime import datetime, timezone
from typing import List

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..models import BotRecord
from .bot_registry import Bot

logger = logging.getLogger(__name__)


def _naive_utc(value: datetime) -> datetime:
    # SQLite DateTime columns store naive values
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class BotRepository:
    """Loads and saves the full bot list."""

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def load_all(self) -> List[Bot]:
        """Read every stored bot. Rows that no longer parse are skipped."""
        async with self.session_maker() as session:
            result = await session.execute(select(BotRecord))
            records = result.scalars().all()

        bots = []
        for record in records:
            try:
                bots.append(Bot.from_dict({
                    "id": record.id,
                    "name": record.name,
                    "strategy": record.strategy,
                    "status": record.status,
                    "config": record.config or {},
                    "performance": record.performance or {},
                    "ml_metrics": record.ml_metrics,
                    "created_at": record.created_at.replace(tzinfo=timezone.utc) if record.created_at else None,
                }))
            except (KeyError, ValueError) as e:
                logger.error(f"Bot {record.id}: Stored definition is invalid, skipping: {e}")
        return bots

    async def save_all(self, bots: List[Bot]) -> None:
        """Upsert ``bots`` and delete rows of bots that no longer exist."""
        async with self.session_maker() as session:
            for bot in bots:
                data = bot.to_dict()
                await session.merge(BotRecord(
                    id=bot.id,
                    name=bot.name,
                    strategy=data["strategy"],
                    status=data["status"],
                    config=data["config"],
                    performance=data["performance"],
                    ml_metrics=data["ml_metrics"],
                    created_at=_naive_utc(bot.created_at),
                    updated_at=_naive_utc(datetime.now(timezone.utc)),
                ))

            keep = [bot.id for bot in bots]
            await session.execute(delete(BotRecord).where(BotRecord.id.notin_(keep)))
            await session.commit()

        logger.info(f"Saved {len(bots)} bot(s)")
