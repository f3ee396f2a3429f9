"""Exception types raised by the bot engine and its services."""


class TradingBotError(Exception):
    """Base class for engine errors."""


class InvalidMarketData(TradingBotError):
    """Market snapshot is missing a positive price or a klines sequence."""


class InvalidState(TradingBotError):
    """Operation is not allowed in the bot's current status."""


class RiskRejected(TradingBotError):
    """The risk gate declined an order."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Risk check rejected: {reason}")


class ConnectivityFailure(TradingBotError):
    """Market data could not be reached while starting a bot."""


class ExecutionFailure(TradingBotError):
    """A tick of the bot loop failed."""


class BotNotFound(TradingBotError):
    """No bot is registered under the given id."""

    def __init__(self, bot_id: str):
        self.bot_id = bot_id
        super().__init__(f"Bot with id {bot_id} not found")


class InvalidBotConfig(TradingBotError, ValueError):
    """Bot definition or strategy parameters failed validation."""
