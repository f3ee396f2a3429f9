"""Bot enumerations and the bot table used by the registry's persistence."""

from datetime import datetime, timezone
from enum import Enum
from sqlalchemy import Column, String, DateTime, JSON

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BotStatus(str, Enum):
    """Bot status enumeration."""
    STOPPED = "stopped"
    RUNNING = "running"
    ERROR = "error"
    TRAINING = "training"


class StrategyKind(str, Enum):
    """Strategy enumeration."""
    MA_CROSS = "ma_cross"
    RSI = "rsi"
    GRID = "grid"
    ML_TREND = "ml_trend"
    DEEP_LEARNING = "deep_learning"
    MULTI_COIN = "multi_coin"


class RiskLevel(str, Enum):
    """Risk appetite declared on a bot."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TradeSide(str, Enum):
    """Trade side enumeration."""
    BUY = "buy"
    SELL = "sell"


class BotRecord(Base):
    """Persisted bot definition and performance."""
    __tablename__ = "bots"

    id = Column(String(32), primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    strategy = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default=BotStatus.STOPPED.value)

    config = Column(JSON, default=dict)
    performance = Column(JSON, default=dict)
    ml_metrics = Column(JSON, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<BotRecord(id={self.id}, name='{self.name}', status={self.status})>"
