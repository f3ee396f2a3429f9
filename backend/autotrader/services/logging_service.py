"""Logging setup and per-bot file logging (activity log and trade journal)."""

import csv
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Base logs directory
LOGS_BASE_DIR = Path(__file__).parent.parent.parent / "logs"

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

TRADE_COLUMNS = [
    'timestamp', 'bot_id', 'bot_name', 'symbol', 'side',
    'amount', 'price', 'pnl', 'strategy', 'is_simulated'
]


def configure_logging(level: str = "INFO", fmt: Optional[str] = None) -> None:
    """Configure the root logger from the ``logging`` config section.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        fmt: Log record format; defaults to DEFAULT_LOG_FORMAT
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Avoid duplicate handlers when the app is reloaded
    for handler in list(root.handlers):
        if getattr(handler, "_autotrader", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt or DEFAULT_LOG_FORMAT))
    handler._autotrader = True
    root.addHandler(handler)


class BotLoggingService:
    """Service for managing per-bot log files."""

    def __init__(
        self,
        bot_id: str,
        bot_name: str = "",
        is_simulated: bool = True,
        base_dir: Optional[Path] = None,
    ):
        """Initialize logging service for a bot.

        Args:
            bot_id: The bot ID
            bot_name: The bot name for log entries
            is_simulated: Whether the bot trades against the demo ledger
            base_dir: Root directory for bot logs (defaults to LOGS_BASE_DIR)
        """
        self.bot_id = bot_id
        self.bot_name = bot_name
        self.is_simulated = is_simulated
        self.bot_log_dir = Path(base_dir or LOGS_BASE_DIR) / str(bot_id)

        self._ensure_log_directory()

    def _ensure_log_directory(self) -> None:
        """Create the bot's log directory if it doesn't exist."""
        try:
            self.bot_log_dir.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Bot {self.bot_id}: Log directory ensured at {self.bot_log_dir}")
        except Exception as e:
            logger.error(f"Bot {self.bot_id}: Failed to create log directory: {e}")

    @property
    def trade_log_file(self) -> Path:
        name = "trades_simulated.csv" if self.is_simulated else "trades.csv"
        return self.bot_log_dir / name

    def log_trade(self, trade) -> None:
        """Append a trade record to the bot's trade journal.

        Args:
            trade: TradeRecord to write
        """
        log_file = self.trade_log_file
        write_header = not log_file.exists()

        try:
            with open(log_file, 'a', newline='', encoding='utf-8') as f:
                writer = csv.writer(f)

                if write_header:
                    writer.writerow(TRADE_COLUMNS)

                writer.writerow([
                    trade.time.isoformat(),
                    self.bot_id,
                    self.bot_name,
                    trade.symbol,
                    trade.type.value,
                    f"{trade.amount:.8f}",
                    f"{trade.price:.8f}",
                    f"{trade.pnl:.2f}",
                    trade.strategy,
                    self.is_simulated,
                ])

            logger.debug(f"Bot {self.bot_id}: Logged {trade.type.value} trade to {log_file.name}")

        except Exception as e:
            logger.error(f"Bot {self.bot_id}: Failed to log trade: {e}")

    def log_activity(self, message: str, level: str = "INFO") -> None:
        """Log general bot activity to activity log.

        Args:
            message: Log message
            level: Log level (DEBUG, INFO, WARNING, ERROR)
        """
        activity_file = self.bot_log_dir / "activity.log"

        try:
            with open(activity_file, 'a', encoding='utf-8') as f:
                timestamp = datetime.now(timezone.utc).isoformat()
                prefix = "[DEMO] " if self.is_simulated else ""
                f.write(f"{timestamp} [{level}] {prefix}{message}\n")

        except Exception as e:
            logger.error(f"Bot {self.bot_id}: Failed to log activity: {e}")
