# API Routers

from . import bots, health, alerts, ledger

__all__ = ["bots", "health", "alerts", "ledger"]
