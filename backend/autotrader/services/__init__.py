# Business Logic Services

from .errors import (
    TradingBotError,
    InvalidMarketData,
    InvalidState,
    RiskRejected,
    ConnectivityFailure,
    ExecutionFailure,
    BotNotFound,
    InvalidBotConfig,
)
from .config import (
    ConfigService,
    ConfigValidationException,
    ConfigValidationError,
    EngineSettings,
)
from .logging_service import (
    BotLoggingService,
    configure_logging,
)
from .error_reporter import (
    ErrorReporter,
    ErrorLog,
    Severity,
)
from .ledger import (
    Ledger,
    Position,
    TradingMode,
)
from .market_data import (
    MarketDataFeed,
    SimulatedMarketDataFeed,
    CcxtMarketDataFeed,
    MarketSnapshot,
    Kline,
)
from .risk_management import (
    RiskGate,
    RiskManagementService,
    RiskLimits,
    OrderRiskRequest,
    RiskCheck,
)
from .recommendations import (
    RecommendationProvider,
    HttpRecommendationService,
    StaticRecommendationProvider,
    Recommendation,
)
from .bot_registry import (
    Bot,
    BotConfig,
    BotPerformance,
    BotRegistry,
    BotSpec,
    MLMetrics,
    TradeRecord,
)
from .bot_repository import BotRepository
from .trading_engine import (
    TradingEngine,
    calculate_trade_amount,
    calculate_win_rate,
    calculate_pnl,
)

__all__ = [
    # Errors
    "TradingBotError",
    "InvalidMarketData",
    "InvalidState",
    "RiskRejected",
    "ConnectivityFailure",
    "ExecutionFailure",
    "BotNotFound",
    "InvalidBotConfig",
    # Config
    "ConfigService",
    "ConfigValidationException",
    "ConfigValidationError",
    "EngineSettings",
    # Logging
    "BotLoggingService",
    "configure_logging",
    # Error reporting
    "ErrorReporter",
    "ErrorLog",
    "Severity",
    # Ledger
    "Ledger",
    "Position",
    "TradingMode",
    # Market data
    "MarketDataFeed",
    "SimulatedMarketDataFeed",
    "CcxtMarketDataFeed",
    "MarketSnapshot",
    "Kline",
    # Risk management
    "RiskGate",
    "RiskManagementService",
    "RiskLimits",
    "OrderRiskRequest",
    "RiskCheck",
    # Recommendations
    "RecommendationProvider",
    "HttpRecommendationService",
    "StaticRecommendationProvider",
    "Recommendation",
    # Bot registry
    "Bot",
    "BotConfig",
    "BotPerformance",
    "BotRegistry",
    "BotSpec",
    "MLMetrics",
    "TradeRecord",
    "BotRepository",
    # Trading Engine
    "TradingEngine",
    "calculate_trade_amount",
    "calculate_win_rate",
    "calculate_pnl",
]
