"""Bot registry: bot definitions, status and performance bookkeeping."""

import logging
import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..models import BotStatus, RiskLevel, StrategyKind, TradeSide
from .errors import BotNotFound, InvalidBotConfig, InvalidState
from .strategies import parse_strategy_params

logger = logging.getLogger(__name__)

DEFAULT_TRADE_HISTORY_LIMIT = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class TradeRecord:
    """Executed trade. ``pnl`` is 0 for buys and realized on sells."""
    time: datetime
    type: TradeSide
    symbol: str
    price: float
    amount: float
    pnl: float
    strategy: str

    def to_dict(self) -> dict:
        return {
            "time": self.time.isoformat(),
            "type": self.type.value,
            "symbol": self.symbol,
            "price": self.price,
            "amount": self.amount,
            "pnl": self.pnl,
            "strategy": self.strategy,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TradeRecord":
        return cls(
            time=_parse_time(data["time"]),
            type=TradeSide(data["type"]),
            symbol=data.get("symbol", ""),
            price=float(data["price"]),
            amount=float(data["amount"]),
            pnl=float(data.get("pnl", 0.0)),
            strategy=data.get("strategy", ""),
        )


@dataclass
class BotConfig:
    """Trading configuration of a bot."""
    symbol: str
    parameters: Any
    interval: str = "5m"
    risk_level: RiskLevel = RiskLevel.MEDIUM
    max_position_size: float = 0.05
    stop_loss_pct: float = 2.0
    take_profit_pct: float = 4.0

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "interval": self.interval,
            "risk_level": self.risk_level.value,
            "max_position_size": self.max_position_size,
            "stop_loss_pct": self.stop_loss_pct,
            "take_profit_pct": self.take_profit_pct,
            "parameters": self.parameters.model_dump(),
        }

    @classmethod
    def from_dict(cls, strategy: StrategyKind, data: dict) -> "BotConfig":
        return cls(
            symbol=data["symbol"],
            interval=data.get("interval", "5m"),
            risk_level=RiskLevel(data.get("risk_level", RiskLevel.MEDIUM.value)),
            max_position_size=float(data["max_position_size"]),
            stop_loss_pct=float(data.get("stop_loss_pct", 2.0)),
            take_profit_pct=float(data.get("take_profit_pct", 4.0)),
            parameters=parse_strategy_params(strategy, data.get("parameters")),
        )


@dataclass
class BotPerformance:
    """Running trade statistics. ``win_rate`` is a 0-100 percentage."""
    start_time: Optional[datetime] = None
    total_trades: int = 0
    win_rate: float = 0.0
    profit_loss: float = 0.0
    last_update: datetime = field(default_factory=_utcnow)
    trades: List[TradeRecord] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "start_time": _iso(self.start_time),
            "total_trades": self.total_trades,
            "win_rate": self.win_rate,
            "profit_loss": self.profit_loss,
            "last_update": _iso(self.last_update),
            "trades": [t.to_dict() for t in self.trades],
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "BotPerformance":
        data = data or {}
        return cls(
            start_time=_parse_time(data.get("start_time")),
            total_trades=int(data.get("total_trades", 0)),
            win_rate=float(data.get("win_rate", 0.0)),
            profit_loss=float(data.get("profit_loss", 0.0)),
            last_update=_parse_time(data.get("last_update")) or _utcnow(),
            trades=[TradeRecord.from_dict(t) for t in data.get("trades", [])],
        )


@dataclass
class MLMetrics:
    """Metrics reported by the simulated training run."""
    accuracy: float
    precision: float
    recall: float
    f1_score: float
    last_training_date: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict:
        return {
            "accuracy": self.accuracy,
            "precision": self.precision,
            "recall": self.recall,
            "f1_score": self.f1_score,
            "last_training_date": _iso(self.last_training_date),
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["MLMetrics"]:
        if not data:
            return None
        return cls(
            accuracy=data["accuracy"],
            precision=data["precision"],
            recall=data["recall"],
            f1_score=data["f1_score"],
            last_training_date=_parse_time(data.get("last_training_date")) or _utcnow(),
        )


@dataclass
class Bot:
    """A configured, independently schedulable strategy unit."""
    id: str
    name: str
    strategy: StrategyKind
    config: BotConfig
    status: BotStatus = BotStatus.STOPPED
    performance: BotPerformance = field(default_factory=BotPerformance)
    ml_metrics: Optional[MLMetrics] = None
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "strategy": self.strategy.value,
            "status": self.status.value,
            "config": self.config.to_dict(),
            "performance": self.performance.to_dict(),
            "ml_metrics": self.ml_metrics.to_dict() if self.ml_metrics else None,
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Bot":
        strategy = StrategyKind(data["strategy"])
        return cls(
            id=data["id"],
            name=data["name"],
            strategy=strategy,
            config=BotConfig.from_dict(strategy, data["config"]),
            status=BotStatus(data.get("status", BotStatus.STOPPED.value)),
            performance=BotPerformance.from_dict(data.get("performance")),
            ml_metrics=MLMetrics.from_dict(data.get("ml_metrics")),
            created_at=_parse_time(data.get("created_at")) or _utcnow(),
        )


@dataclass
class BotSpec:
    """Definition of a bot to create. ``parameters`` may be a raw dict or a variant."""
    name: str
    strategy: StrategyKind
    symbol: str
    max_position_size: float
    parameters: Any = None
    interval: str = "5m"
    risk_level: RiskLevel = RiskLevel.MEDIUM
    stop_loss_pct: float = 2.0
    take_profit_pct: float = 4.0


_PERFORMANCE_FIELDS = {f.name for f in fields(BotPerformance)}
_CONFIG_FIELDS = {f.name for f in fields(BotConfig)} - {"parameters"}


def _coerce_params(strategy: StrategyKind, parameters):
    if parameters is None or isinstance(parameters, dict):
        return parse_strategy_params(strategy, parameters)
    if getattr(parameters, "kind", None) != strategy.value:
        raise InvalidBotConfig(
            f"Parameters for '{getattr(parameters, 'kind', None)}' cannot configure a '{strategy.value}' bot"
        )
    return parameters


def _check_sizes(max_position_size: float, stop_loss_pct: float, take_profit_pct: float) -> None:
    if max_position_size is None or max_position_size <= 0:
        raise InvalidBotConfig("max_position_size must be greater than 0")
    if stop_loss_pct < 0 or take_profit_pct < 0:
        raise InvalidBotConfig("stop_loss_pct and take_profit_pct must not be negative")


class BotRegistry:
    """In-memory source of truth for bots.

    The registry holds no scheduling logic. The engine is the only caller
    expected to move a bot into ``running``, ``error`` or ``training``.
    """

    def __init__(self, repository=None):
        self._bots: Dict[str, Bot] = {}
        self.repository = repository

    def __len__(self) -> int:
        return len(self._bots)

    def __contains__(self, bot_id: str) -> bool:
        return bot_id in self._bots

    def create(self, spec: BotSpec) -> str:
        """Register a new stopped bot.

        Raises:
            InvalidBotConfig: invalid sizes or parameters that do not match the strategy
        """
        try:
            strategy = StrategyKind(spec.strategy)
        except ValueError:
            raise InvalidBotConfig(f"Unknown strategy '{spec.strategy}'") from None
        if not spec.symbol:
            raise InvalidBotConfig("symbol is required")
        _check_sizes(spec.max_position_size, spec.stop_loss_pct, spec.take_profit_pct)

        bot = Bot(
            id=uuid.uuid4().hex,
            name=spec.name,
            strategy=strategy,
            config=BotConfig(
                symbol=spec.symbol,
                interval=spec.interval,
                risk_level=RiskLevel(spec.risk_level),
                max_position_size=spec.max_position_size,
                stop_loss_pct=spec.stop_loss_pct,
                take_profit_pct=spec.take_profit_pct,
                parameters=_coerce_params(strategy, spec.parameters),
            ),
        )
        self._bots[bot.id] = bot
        logger.info(f"Bot {bot.id}: Created '{bot.name}' ({strategy.value} on {spec.symbol})")
        return bot.id

    def get(self, bot_id: str) -> Optional[Bot]:
        return self._bots.get(bot_id)

    def require(self, bot_id: str) -> Bot:
        bot = self._bots.get(bot_id)
        if bot is None:
            raise BotNotFound(bot_id)
        return bot

    def list(self, status: Optional[BotStatus] = None) -> List[Bot]:
        bots = list(self._bots.values())
        if status is not None:
            bots = [b for b in bots if b.status == BotStatus(status)]
        return bots

    def update_config(self, bot_id: str, **changes) -> Bot:
        """Edit a bot's name or configuration while it is not active.

        Raises:
            BotNotFound: unknown bot
            InvalidState: the bot is running or training
            InvalidBotConfig: unknown field or invalid values
        """
        bot = self.require(bot_id)
        if bot.status in (BotStatus.RUNNING, BotStatus.TRAINING):
            raise InvalidState(f"Bot {bot_id} cannot be edited while {bot.status.value}")

        unknown = set(changes) - _CONFIG_FIELDS - {"name", "parameters"}
        if unknown:
            raise InvalidBotConfig(f"Unknown bot fields: {', '.join(sorted(unknown))}")

        config = bot.config
        parameters = config.parameters
        if changes.get("parameters") is not None:
            parameters = _coerce_params(bot.strategy, changes["parameters"])

        values = {name: changes[name] if changes.get(name) is not None else getattr(config, name)
                  for name in _CONFIG_FIELDS}
        _check_sizes(values["max_position_size"], values["stop_loss_pct"], values["take_profit_pct"])

        bot.config = BotConfig(
            symbol=values["symbol"],
            interval=values["interval"],
            risk_level=RiskLevel(values["risk_level"]),
            max_position_size=values["max_position_size"],
            stop_loss_pct=values["stop_loss_pct"],
            take_profit_pct=values["take_profit_pct"],
            parameters=parameters,
        )
        if changes.get("name"):
            bot.name = changes["name"]
        return bot

    def update_performance(self, bot_id: str, **partial) -> Optional[BotPerformance]:
        """Merge ``partial`` into the bot's performance and stamp ``last_update``."""
        bot = self._bots.get(bot_id)
        if bot is None:
            return None

        unknown = set(partial) - _PERFORMANCE_FIELDS
        if unknown:
            raise ValueError(f"Unknown performance fields: {', '.join(sorted(unknown))}")

        for key, value in partial.items():
            setattr(bot.performance, key, value)
        bot.performance.last_update = _utcnow()
        return bot.performance

    def record_trade(
        self,
        bot_id: str,
        trade: TradeRecord,
        limit: int = DEFAULT_TRADE_HISTORY_LIMIT,
    ) -> None:
        """Prepend ``trade`` to the bot's history, keeping the newest ``limit``."""
        bot = self._bots.get(bot_id)
        if bot is None:
            return
        trades = [trade] + bot.performance.trades
        self.update_performance(bot_id, trades=trades[:limit])

    def set_status(self, bot_id: str, status: BotStatus) -> None:
        bot = self._bots.get(bot_id)
        if bot is None:
            return
        status = BotStatus(status)
        if bot.status != status:
            logger.debug(f"Bot {bot_id}: {bot.status.value} -> {status.value}")
        bot.status = status

    def set_ml_metrics(self, bot_id: str, metrics: MLMetrics) -> None:
        bot = self._bots.get(bot_id)
        if bot is not None:
            bot.ml_metrics = metrics

    def delete(self, bot_id: str) -> None:
        """Remove a bot.

        Raises:
            BotNotFound: unknown bot
            InvalidState: the bot is running
        """
        bot = self.require(bot_id)
        if bot.status == BotStatus.RUNNING:
            raise InvalidState(f"Bot {bot_id} is running, stop it before deleting")
        del self._bots[bot_id]
        logger.info(f"Bot {bot_id}: Deleted")

    # Persistence

    async def load(self) -> int:
        """Replace the registry content with the repository's bots.

        Bots saved while running or training come back stopped.

        Returns:
            Number of bots loaded
        """
        if self.repository is None:
            return 0

        bots = await self.repository.load_all()
        self._bots = {}
        for bot in bots:
            if bot.status in (BotStatus.RUNNING, BotStatus.TRAINING):
                logger.info(f"Bot {bot.id}: Was {bot.status.value} at shutdown, resetting to stopped")
                bot.status = BotStatus.STOPPED
            self._bots[bot.id] = bot
        logger.info(f"Loaded {len(bots)} bot(s)")
        return len(bots)

    async def save(self) -> int:
        """Write every bot to the repository.

        Returns:
            Number of bots saved
        """
        if self.repository is None:
            return 0
        await self.repository.save_all(list(self._bots.values()))
        return len(self._bots)
