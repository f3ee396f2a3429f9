# Database Models

from .database import Base, DATABASE_URL, create_session_maker, init_db
from .bot import BotRecord, BotStatus, StrategyKind, RiskLevel, TradeSide

__all__ = [
    "Base",
    "DATABASE_URL",
    "create_session_maker",
    "init_db",
    "BotRecord",
    "BotStatus",
    "StrategyKind",
    "RiskLevel",
    "TradeSide",
]
