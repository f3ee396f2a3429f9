"""Health check router."""

from fastapi import APIRouter, Depends

from ..services import TradingEngine
from .dependencies import get_engine

router = APIRouter()


@router.get("/health")
async def health_check(engine: TradingEngine = Depends(get_engine)):
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": "autotrader",
        "version": "1.0.0",
        "mode": engine.ledger.mode.value,
        "market_data_connected": engine.market_data.is_connected(),
        "running_bots": len(engine.running_bot_ids()),
    }
