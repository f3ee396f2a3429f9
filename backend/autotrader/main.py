"""Autotrader FastAPI Application.

Builds the bot engine (registry, ledger, market data, risk gate and error
reporter) at startup and exposes it through the bots, ledger, alerts and
health routers.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .models import DATABASE_URL, create_session_maker, init_db
from .routers import alerts, bots, health, ledger
from .services import (
    BotRegistry,
    BotRepository,
    CcxtMarketDataFeed,
    ConfigService,
    ConfigValidationException,
    ErrorReporter,
    HttpRecommendationService,
    Ledger,
    RiskManagementService,
    SimulatedMarketDataFeed,
    StaticRecommendationProvider,
    TradingEngine,
    TradingMode,
    configure_logging,
)
from .services.logging_service import LOGS_BASE_DIR

logger = logging.getLogger(__name__)


def build_engine(config_service: ConfigService, session_maker=None) -> TradingEngine:
    """Assemble the engine and its collaborators from configuration."""
    config = config_service.config

    market_data_config = config.get("market_data") or {}
    exchange_id = market_data_config.get("exchange_id")
    if exchange_id:
        market_data = CcxtMarketDataFeed(
            exchange_id=exchange_id,
            poll_interval_seconds=market_data_config.get("poll_interval_seconds", 1.0),
            kline_limit=market_data_config.get("kline_limit", 500),
        )
    else:
        market_data = SimulatedMarketDataFeed(kline_limit=market_data_config.get("kline_limit", 500))

    recommendations_config = config.get("recommendations") or {}
    if recommendations_config.get("endpoint"):
        recommendations = HttpRecommendationService(
            endpoint=recommendations_config["endpoint"],
            cache_ttl_seconds=recommendations_config.get("cache_ttl_seconds", 300),
            timeout_seconds=recommendations_config.get("timeout_seconds", 10.0),
        )
    else:
        recommendations = StaticRecommendationProvider()

    ledger_config = config.get("ledger") or {}
    ledger_kwargs = {"mode": TradingMode(ledger_config.get("mode", "demo"))}
    if "demo_initial_balance" in ledger_config:
        ledger_kwargs["demo_initial_balance"] = ledger_config["demo_initial_balance"]
    if "quote_currency" in ledger_config:
        ledger_kwargs["quote_currency"] = ledger_config["quote_currency"]

    reporter = ErrorReporter(snapshot_file=LOGS_BASE_DIR / "error_snapshots.json")

    def teardown_market_data(message: str, context: dict):
        logger.warning(f"Critical error, disconnecting market data: {message}")
        return market_data.disconnect()

    reporter.on_critical(teardown_market_data)

    return TradingEngine(
        registry=BotRegistry(BotRepository(session_maker) if session_maker else None),
        ledger=Ledger(**ledger_kwargs),
        market_data=market_data,
        risk=RiskManagementService.from_config(config),
        reporter=reporter,
        recommendations=recommendations,
        settings=config_service.engine_settings(),
    )


def create_app(config_path: Optional[str] = None) -> FastAPI:
    """Create the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        config_service = ConfigService(config_path)

        # Startup: Validate configuration
        try:
            config_service.load_and_validate()
        except ConfigValidationException as e:
            print(f"FATAL: {e}")
            print("Server cannot start with invalid configuration.")
            sys.exit(1)

        configure_logging(
            config_service.get("logging.level", "INFO"),
            config_service.get("logging.format"),
        )

        # Initialize database
        db_engine, session_maker = create_session_maker(config_service.get("database.url", DATABASE_URL))
        await init_db(db_engine)
        logger.info("Database initialized")

        engine = build_engine(config_service, session_maker)
        loaded = await engine.registry.load()
        app.state.engine = engine
        logger.info(f"Trading engine ready in {engine.ledger.mode.value} mode with {loaded} bot(s)")

        yield

        # Shutdown: stop bots (liquidating positions) and save the registry
        logger.info("Initiating graceful shutdown...")
        try:
            stopped = await engine.stop_all()
            if stopped:
                logger.info(f"Stopped {stopped} bot(s)")
            await engine.registry.save()
        finally:
            await engine.market_data.disconnect()
            await db_engine.dispose()
        logger.info("Graceful shutdown complete")

    app = FastAPI(
        title="Autotrader API",
        description="Automated trading bot engine API",
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health.router, prefix="/api", tags=["Health"])
    app.include_router(bots.router, prefix="/api/bots", tags=["Bots"])
    app.include_router(ledger.router, prefix="/api/ledger", tags=["Ledger"])
    app.include_router(alerts.router, prefix="/api/alerts", tags=["Alerts"])

    @app.get("/")
    async def root():
        """Root endpoint redirect to docs."""
        return {"message": "Autotrader API", "docs": "/docs"}

    return app


app = create_app()
