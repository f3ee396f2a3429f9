"""Trading engine for bot execution and management."""

import asyncio
import logging
import math
import random
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Set

from ..models import BotStatus, StrategyKind, TradeSide
from .bot_registry import Bot, BotRegistry, MLMetrics, TradeRecord
from .config import EngineSettings
from .error_reporter import ErrorReporter, Severity
from .errors import (
    ConnectivityFailure,
    ExecutionFailure,
    InvalidState,
    RiskRejected,
)
from .ledger import Ledger, Position, TradingMode, split_symbol
from .logging_service import BotLoggingService
from .market_data import MarketDataFeed, MarketSnapshot
from .recommendations import RecommendationProvider
from .risk_management import OrderRiskRequest, RiskGate
from .strategies import (
    MultiCoinStrategy,
    MultiSignal,
    Signal,
    Strategy,
    create_strategy,
    optimize_parameters,
)

logger = logging.getLogger(__name__)

TRAINED_METRICS = {"accuracy": 0.85, "precision": 0.83, "recall": 0.87, "f1_score": 0.85}
TRAINING_STEPS = 50


def calculate_trade_amount(max_position_size: float, price: float, available_balance: float) -> float:
    """Size a buy from the position cap and the available quote balance.

    Args:
        max_position_size: Position cap in quote currency
        price: Current price
        available_balance: Spendable quote balance

    Returns:
        Units to buy: one unit when the cap is below the price, otherwise the
        whole number of units the cap buys; never more than the balance affords
    """
    if price <= 0:
        return 0.0
    affordable = max(0.0, available_balance) / price
    if max_position_size < price:
        return min(1.0, affordable)
    return min(math.floor(max_position_size / price), affordable)


def calculate_win_rate(current_win_rate: float, total_trades: int, is_win: bool) -> float:
    """Fold one more closed trade into a 0-100 win rate, rounded to 2 decimals."""
    total = (current_win_rate * total_trades + (100 if is_win else 0)) / (total_trades + 1)
    return round(total, 2)


def calculate_pnl(entry_price: float, exit_price: float, amount: float) -> float:
    return (exit_price - entry_price) * amount


@dataclass
class _BotRunner:
    """State owned by one running bot loop."""
    bot_id: str
    strategy: Strategy
    mode: TradingMode
    symbols: List[str]
    bot_logger: BotLoggingService
    last_trade_time: float
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional[asyncio.Task] = None
    consecutive_errors: int = 0
    last_prices: Dict[str, float] = field(default_factory=dict)


class TradingEngine:
    """Engine for executing trading bots.

    Each running bot owns one asyncio task that ticks every
    ``tick_interval_seconds``. Ticks of one bot never overlap. Balances and
    positions are only changed through the shared Ledger.
    """

    def __init__(
        self,
        registry: BotRegistry,
        ledger: Ledger,
        market_data: MarketDataFeed,
        risk: RiskGate,
        reporter: Optional[ErrorReporter] = None,
        recommendations: Optional[RecommendationProvider] = None,
        settings: Optional[EngineSettings] = None,
        logs_dir: Optional[Path] = None,
        rng: Optional[random.Random] = None,
    ):
        """Initialize trading engine.

        Args:
            registry: Bot registry
            ledger: Balance and position ledger shared by all bots
            market_data: Market data feed
            risk: Risk gate consulted before a bot starts
            reporter: Error reporter (a private one is created if omitted)
            recommendations: Provider for multi-coin bots
            settings: Engine timings and limits
            logs_dir: Root directory for per-bot log files
            rng: Random source for the simulated strategies
        """
        self.registry = registry
        self.ledger = ledger
        self.market_data = market_data
        self.risk = risk
        self.reporter = reporter or ErrorReporter()
        self.recommendations = recommendations
        self.settings = settings or EngineSettings()
        self.logs_dir = logs_dir
        self.rng = rng
        self._clock = time.monotonic

        self._runners: Dict[str, _BotRunner] = {}
        self._starting: Set[str] = set()
        self._background: Dict[str, asyncio.Task] = {}
        self._training_progress: Dict[str, int] = {}

    # Queries

    def is_running(self, bot_id: str) -> bool:
        return bot_id in self._runners

    def is_starting(self, bot_id: str) -> bool:
        return bot_id in self._starting

    def running_bot_ids(self) -> List[str]:
        return list(self._runners)

    def positions(self, bot_id: str) -> List[Position]:
        return self.ledger.positions(bot_id)

    def training_progress(self, bot_id: str) -> Optional[int]:
        return self._training_progress.get(bot_id)

    # Lifecycle

    async def start_bot(self, bot_id: str, confirm_live: bool = False) -> bool:
        """Start a trading bot.

        Runs the pre-flight checks in order: bot exists, risk gate available,
        market data connected, symbols subscribed, first price received, risk
        check of a representative order. Any failure leaves the bot in
        ``error`` with a high severity report.

        Args:
            bot_id: The bot ID to start
            confirm_live: Must be True to start while the ledger is in live mode

        Returns:
            True if started successfully
        """
        if bot_id in self._runners:
            logger.warning(f"Bot {bot_id} is already running")
            return False
        if bot_id in self._starting:
            logger.warning(f"Bot {bot_id} is already starting")
            return False

        bot = self.registry.get(bot_id)
        if bot is None:
            self.reporter.report(f"Bot {bot_id} not found", Severity.HIGH, {"bot_id": bot_id})
            return False

        if bot.status == BotStatus.TRAINING:
            logger.warning(f"Bot {bot_id} is training and cannot be started")
            return False

        mode = self.ledger.mode
        if mode == TradingMode.LIVE and not confirm_live:
            logger.warning(f"Bot {bot_id}: Live start not confirmed, bot left {bot.status.value}")
            return False

        # Reserved until the runner is registered or pre-flight fails
        self._starting.add(bot_id)
        try:
            runner = await self._preflight(bot, mode)
        except Exception as e:
            self.registry.set_status(bot_id, BotStatus.ERROR)
            self.reporter.report(
                f"Bot {bot.name} failed to start: {e}",
                Severity.HIGH,
                {"bot_id": bot_id, "strategy": bot.strategy.value, "symbol": bot.config.symbol},
            )
            return False
        finally:
            self._starting.discard(bot_id)

        self._runners[bot_id] = runner
        self.registry.set_status(bot_id, BotStatus.RUNNING)
        self.registry.update_performance(bot_id, start_time=datetime.now(timezone.utc))
        runner.task = asyncio.create_task(self._run_bot_loop(runner))

        runner.bot_logger.log_activity(
            f"Bot started with strategy '{bot.strategy.value}' on {bot.config.symbol}"
        )
        self.reporter.report(
            f"Bot {bot.name} started",
            Severity.LOW,
            {"bot_id": bot_id, "mode": mode.value},
        )
        return True

    async def _preflight(self, bot: Bot, mode: TradingMode) -> _BotRunner:
        """Run the start checks and build the bot's runner.

        Raises:
            ConnectivityFailure: risk gate or market data unreachable, or no price
            RiskRejected: the representative order was declined
        """
        if not self.risk.is_available():
            raise ConnectivityFailure("Risk management service is not available")

        if not self.market_data.is_connected():
            await self._connect_market_data()

        symbol = bot.config.symbol
        symbols = [symbol]
        if bot.strategy == StrategyKind.MULTI_COIN:
            symbols += [s for s in bot.config.parameters.symbols if s != symbol]

        await self.market_data.subscribe(symbols, bot.config.interval)
        try:
            price = await self._wait_for_price(symbol)

            stop_loss = None
            if bot.config.stop_loss_pct > 0:
                stop_loss = price * (1 - bot.config.stop_loss_pct / 100)
            check = self.risk.check_order_risk(OrderRiskRequest(
                symbol=symbol,
                amount=bot.config.max_position_size / price,
                price=price,
                stop_loss=stop_loss,
            ))
            if not check.allowed:
                raise RiskRejected(check.reason or "order declined")

            strategy = create_strategy(
                bot.config.parameters,
                recommendations=self.recommendations,
                rng=self.rng,
            )
        except Exception:
            await self.market_data.unsubscribe(symbols)
            raise

        return _BotRunner(
            bot_id=bot.id,
            strategy=strategy,
            mode=mode,
            symbols=symbols,
            bot_logger=BotLoggingService(
                bot.id, bot.name, is_simulated=mode == TradingMode.DEMO, base_dir=self.logs_dir
            ),
            last_trade_time=self._clock(),
            last_prices={symbol: price},
        )

    async def _connect_market_data(self) -> None:
        retries = self.settings.connect_retries
        for attempt in range(1, retries + 1):
            try:
                connected = await self.market_data.connect()
            except Exception as e:
                logger.warning(f"Market data connect attempt {attempt}/{retries} failed: {e}")
                connected = False

            if connected and self.market_data.is_connected():
                return
            if attempt < retries:
                await asyncio.sleep(self.settings.retry_delay_seconds)

        raise ConnectivityFailure("Unable to connect to market data")

    async def _wait_for_price(self, symbol: str) -> float:
        price = self.market_data.last_price(symbol)
        retries = 0
        while price is None and retries < self.settings.price_wait_retries:
            logger.info(f"Waiting for {symbol} price ({retries + 1}/{self.settings.price_wait_retries})")
            await asyncio.sleep(self.settings.retry_delay_seconds)
            retries += 1
            price = self.market_data.last_price(symbol)

        if price is None:
            raise ConnectivityFailure(f"No market price received for {symbol}")
        return price

    async def stop_bot(self, bot_id: str) -> bool:
        """Stop a trading bot and liquidate its positions.

        Waits for the in-flight tick to finish, unsubscribes the bot's symbols,
        closes every open position at the last known price and marks the bot
        stopped. Stopping a bot without an active loop changes nothing.

        Args:
            bot_id: The bot ID to stop

        Returns:
            True if a running bot was stopped
        """
        runner = self._runners.pop(bot_id, None)
        if runner is None:
            logger.info(f"Bot {bot_id} is not running")
            return False

        runner.stop_event.set()
        task = runner.task
        if task and not task.done() and task is not asyncio.current_task():
            try:
                await asyncio.wait_for(task, timeout=self.settings.stop_timeout_seconds)
            except asyncio.TimeoutError:
                logger.warning(f"Bot {bot_id}: Loop did not stop in time, cancelled")

        await self._finalize(runner, BotStatus.STOPPED)

        bot = self.registry.get(bot_id)
        self.reporter.report(
            f"Bot {bot.name if bot else bot_id} stopped",
            Severity.LOW,
            {"bot_id": bot_id},
        )
        return True

    async def stop_all(self) -> int:
        """Stop every running bot and cancel training runs.

        Returns:
            Number of bots stopped
        """
        stopped = 0
        for bot_id in list(self._runners):
            if await self.stop_bot(bot_id):
                stopped += 1

        for task in list(self._background.values()):
            task.cancel()
        await asyncio.gather(*self._background.values(), return_exceptions=True)
        self._background.clear()

        if stopped:
            logger.info(f"Stopped {stopped} bot(s)")
        return stopped

    async def _finalize(self, runner: _BotRunner, status: BotStatus) -> None:
        """Unsubscribe, liquidate and set the final status of a halted bot."""
        bot_id = runner.bot_id
        try:
            await self.market_data.unsubscribe(runner.symbols)
        except Exception as e:
            self.reporter.report(
                f"Bot {bot_id}: Failed to unsubscribe market data: {e}",
                Severity.MEDIUM,
                {"bot_id": bot_id},
            )

        try:
            await self._liquidate(runner)
        except Exception as e:
            self.registry.set_status(bot_id, BotStatus.ERROR)
            self.reporter.report(e, Severity.CRITICAL, {"bot_id": bot_id, "stage": "liquidation"})
            raise

        self.registry.set_status(bot_id, status)
        runner.bot_logger.log_activity(f"Bot {status.value}")

    async def _liquidate(self, runner: _BotRunner) -> None:
        """Close every open position of the bot."""
        bot = self.registry.get(runner.bot_id)
        for position in self.ledger.positions(runner.bot_id):
            price = self._liquidation_price(runner, position)
            await self._close_position(runner, bot, position.symbol, price, reason="liquidation")

        remaining = self.ledger.position_count(runner.bot_id)
        if remaining:
            raise ExecutionFailure(f"Bot {runner.bot_id}: {remaining} position(s) left open after liquidation")

    def _liquidation_price(self, runner: _BotRunner, position: Position) -> float:
        return (
            self.market_data.last_price(position.symbol)
            or runner.last_prices.get(position.symbol)
            or position.entry_price
        )

    # Execution loop

    async def _run_bot_loop(self, runner: _BotRunner) -> None:
        """Main bot execution loop.

        Args:
            runner: The bot's runner
        """
        bot_id = runner.bot_id
        logger.info(f"Bot {bot_id}: Starting execution loop")

        while True:
            try:
                await asyncio.wait_for(runner.stop_event.wait(), timeout=self.settings.tick_interval_seconds)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self._tick(runner)
                runner.consecutive_errors = 0
            except Exception as e:
                runner.consecutive_errors += 1
                self.reporter.report(
                    f"Bot {bot_id}: Strategy execution error: {e}",
                    Severity.MEDIUM,
                    {"bot_id": bot_id, "consecutive_errors": runner.consecutive_errors},
                )
                if runner.consecutive_errors >= self.settings.max_consecutive_errors:
                    await self._trip_circuit_breaker(runner, e)
                    break

        logger.info(f"Bot {bot_id}: Execution loop ended")

    async def _trip_circuit_breaker(self, runner: _BotRunner, error: Exception) -> None:
        bot_id = runner.bot_id
        # A concurrent stop_bot already owns the shutdown
        if self._runners.get(bot_id) is not runner:
            return
        del self._runners[bot_id]
        runner.stop_event.set()

        failure = ExecutionFailure(
            f"Bot {bot_id} stopped after {runner.consecutive_errors} consecutive errors: {error}"
        )
        try:
            await self._finalize(runner, BotStatus.ERROR)
        except Exception as e:
            # Already reported as critical by _finalize
            logger.error(f"Bot {bot_id}: Shutdown after repeated errors incomplete: {e}")
        self.reporter.report(
            failure,
            Severity.HIGH,
            {"bot_id": bot_id, "error": type(error).__name__},
        )

    async def _tick(self, runner: _BotRunner) -> None:
        """One evaluation of the bot's strategy."""
        bot = self.registry.get(runner.bot_id)
        if bot is None or bot.status != BotStatus.RUNNING:
            return
        if not self.market_data.is_connected():
            return

        snapshot = self.market_data.snapshot(bot.config.symbol)
        if snapshot.price and snapshot.price > 0:
            runner.last_prices[snapshot.symbol] = snapshot.price

        result = await runner.strategy.analyze(snapshot)

        if isinstance(result, MultiSignal):
            await self._handle_multi_signal(runner, bot, result)
        elif result in (Signal.BUY, Signal.SELL):
            await self._handle_signal(runner, bot, result, snapshot.price)

        await self._check_exits(runner, bot, snapshot)

    async def _handle_signal(self, runner: _BotRunner, bot: Bot, signal: Signal, price: float) -> None:
        if self._clock() - runner.last_trade_time < self.settings.min_trade_interval_seconds:
            return

        symbol = bot.config.symbol
        if signal == Signal.BUY and not self.ledger.has_position(runner.bot_id):
            await self._open_position(runner, bot, symbol, price)
        elif signal == Signal.SELL and self.ledger.has_position(runner.bot_id, symbol):
            await self._close_position(runner, bot, symbol, price, reason="signal")

    async def _handle_multi_signal(self, runner: _BotRunner, bot: Bot, signal: MultiSignal) -> None:
        for entry in signal.sell:
            if not self.ledger.has_position(runner.bot_id, entry.symbol):
                continue
            price = entry.price or self.market_data.last_price(entry.symbol) or runner.last_prices.get(entry.symbol)
            if price:
                await self._close_position(runner, bot, entry.symbol, price, reason="signal")

        max_positions = bot.config.parameters.max_positions
        for entry in signal.buy:
            if self.ledger.position_count(runner.bot_id) >= max_positions:
                break
            if self.ledger.has_position(runner.bot_id, entry.symbol) or entry.price <= 0:
                continue
            runner.last_prices[entry.symbol] = entry.price
            await self._open_position(runner, bot, entry.symbol, entry.price)

    async def _check_exits(self, runner: _BotRunner, bot: Bot, snapshot: MarketSnapshot) -> None:
        """Close positions that crossed the stop-loss or take-profit level."""
        stop_loss = bot.config.stop_loss_pct
        take_profit = bot.config.take_profit_pct

        for position in self.ledger.positions(runner.bot_id):
            if position.symbol == snapshot.symbol:
                price = snapshot.price
            else:
                price = self.market_data.last_price(position.symbol)
            if not price or price <= 0:
                continue
            runner.last_prices[position.symbol] = price

            pnl_percent = position.pnl_percent(price)
            if stop_loss > 0 and pnl_percent <= -stop_loss:
                await self._close_position(runner, bot, position.symbol, price, reason="stop_loss")
            elif take_profit > 0 and pnl_percent >= take_profit:
                await self._close_position(runner, bot, position.symbol, price, reason="take_profit")

    # Trades

    async def _open_position(self, runner: _BotRunner, bot: Bot, symbol: str, price: float) -> Optional[Position]:
        _, quote = split_symbol(symbol, self.ledger.quote_currency)
        balance = self.ledger.get_balance(quote, runner.mode)
        amount = calculate_trade_amount(bot.config.max_position_size, price, balance)
        if amount < self.settings.min_trade_amount:
            logger.debug(f"Bot {bot.id}: Trade amount {amount} for {symbol} below minimum")
            return None

        position = await self.ledger.settle_buy(runner.mode, bot.id, symbol, price, amount)
        if position is None:
            return None

        runner.last_trade_time = self._clock()
        if isinstance(runner.strategy, MultiCoinStrategy):
            runner.strategy.update_active_symbols(symbol, True)

        self._record_trade(runner, bot, TradeSide.BUY, symbol, price, amount, 0.0)
        runner.bot_logger.log_activity(f"BUY {amount} {symbol} @ {price}")
        return position

    async def _close_position(
        self,
        runner: _BotRunner,
        bot: Optional[Bot],
        symbol: str,
        price: float,
        reason: str,
    ) -> None:
        closed = await self.ledger.settle_sell(runner.mode, runner.bot_id, symbol, price)
        if closed is None:
            return

        runner.last_trade_time = self._clock()
        if isinstance(runner.strategy, MultiCoinStrategy):
            runner.strategy.update_active_symbols(symbol, False)

        self.risk.record_pnl(closed.pnl)
        self._record_trade(runner, bot, TradeSide.SELL, symbol, price, closed.position.amount, closed.pnl)
        runner.bot_logger.log_activity(
            f"SELL {closed.position.amount} {symbol} @ {price} ({reason}), pnl={closed.pnl:.2f}"
        )

    def _record_trade(
        self,
        runner: _BotRunner,
        bot: Optional[Bot],
        side: TradeSide,
        symbol: str,
        price: float,
        amount: float,
        pnl: float,
    ) -> None:
        """Append a trade and fold it into the bot's performance."""
        # Re-read so concurrent edits to performance are not overwritten
        bot = self.registry.get(runner.bot_id) or bot
        if bot is None:
            return

        trade = TradeRecord(
            time=datetime.now(timezone.utc),
            type=side,
            symbol=symbol,
            price=price,
            amount=amount,
            pnl=pnl,
            strategy=bot.strategy.value,
        )

        performance = bot.performance
        changes = {"total_trades": performance.total_trades + 1}
        if side == TradeSide.SELL:
            changes["profit_loss"] = performance.profit_loss + pnl
            changes["win_rate"] = calculate_win_rate(performance.win_rate, performance.total_trades, pnl > 0)

        self.registry.update_performance(bot.id, **changes)
        self.registry.record_trade(bot.id, trade, self.settings.trade_history_limit)
        runner.bot_logger.log_trade(trade)

    # Training and optimization

    def _check_idle(self, bot_id: str) -> Bot:
        bot = self.registry.require(bot_id)
        if bot_id in self._runners or bot.status == BotStatus.RUNNING:
            raise InvalidState(f"Bot {bot_id} is running, stop it first")
        return bot

    def spawn_training(self, bot_id: str) -> Optional[asyncio.Task]:
        """Put a bot into ``training`` and run the simulated training in the background.

        Returns:
            The training task, or None if the bot is already training

        Raises:
            BotNotFound: unknown bot
            InvalidState: the bot is running
        """
        bot = self._check_idle(bot_id)
        if bot.status == BotStatus.TRAINING:
            logger.info(f"Bot {bot_id} is already training")
            return None

        self.registry.set_status(bot_id, BotStatus.TRAINING)
        self._training_progress[bot_id] = 0
        return self._spawn(bot_id, self._train(bot_id))

    async def start_training(self, bot_id: str) -> None:
        """Train a bot and wait for the run to finish."""
        task = self.spawn_training(bot_id)
        if task is not None:
            await task

    async def _train(self, bot_id: str) -> None:
        try:
            step = self.settings.training_seconds / TRAINING_STEPS
            for _ in range(TRAINING_STEPS):
                await asyncio.sleep(step)
                self._training_progress[bot_id] = min(self._training_progress[bot_id] + 2, 100)

            self.registry.set_ml_metrics(bot_id, MLMetrics(**TRAINED_METRICS))
            self.registry.set_status(bot_id, BotStatus.STOPPED)
            self.reporter.report(f"Bot {bot_id}: Model training completed", Severity.LOW, {"bot_id": bot_id})
        except Exception as e:
            self.registry.set_status(bot_id, BotStatus.ERROR)
            self.reporter.report(f"Bot {bot_id}: Model training failed: {e}", Severity.HIGH, {"bot_id": bot_id})
        finally:
            self._training_progress.pop(bot_id, None)

    def spawn_optimization(self, bot_id: str) -> asyncio.Task:
        """Put a bot into ``training`` and tune its parameters in the background.

        Raises:
            BotNotFound: unknown bot
            InvalidState: the bot is running or training
        """
        bot = self._check_idle(bot_id)
        if bot.status == BotStatus.TRAINING:
            raise InvalidState(f"Bot {bot_id} is training")

        self.registry.set_status(bot_id, BotStatus.TRAINING)
        return self._spawn(bot_id, self._optimize(bot_id))

    async def optimize_strategy(self, bot_id: str):
        """Optimize a bot's parameters and return the new parameters."""
        return await self.spawn_optimization(bot_id)

    async def _optimize(self, bot_id: str):
        try:
            await asyncio.sleep(self.settings.optimize_seconds)
            bot = self.registry.require(bot_id)
            parameters = optimize_parameters(bot.config.parameters)
            bot.config = replace(bot.config, parameters=parameters)
            self.registry.set_status(bot_id, BotStatus.STOPPED)
            self.reporter.report(f"Bot {bot_id}: Strategy parameters optimized", Severity.LOW, {"bot_id": bot_id})
            return parameters
        except Exception as e:
            self.registry.set_status(bot_id, BotStatus.ERROR)
            self.reporter.report(f"Bot {bot_id}: Strategy optimization failed: {e}", Severity.HIGH, {"bot_id": bot_id})
            return None

    def _spawn(self, bot_id: str, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background[bot_id] = task

        def _forget(done: asyncio.Task) -> None:
            if self._background.get(bot_id) is done:
                del self._background[bot_id]

        task.add_done_callback(_forget)
        return task

    # Trading mode

    def set_trading_mode(self, mode: TradingMode) -> None:
        """Switch the ledger namespace used by bots started from now on.

        Raises:
            InvalidState: while any bot is running or starting
        """
        active = len(self._runners) + len(self._starting)
        if active:
            raise InvalidState(f"Cannot switch trading mode while {active} bot(s) are running")
        self.ledger.set_mode(mode)
        self.reporter.report(f"Trading mode set to {TradingMode(mode).value}", Severity.LOW)
