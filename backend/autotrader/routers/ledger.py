"""Ledger router: balances and trading mode."""

from typing import Dict, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ..services import InvalidState, TradingEngine, TradingMode
from .dependencies import get_engine

router = APIRouter()


class BalancesResponse(BaseModel):
    """Schema for ledger balances."""
    mode: TradingMode
    balances: Dict[str, float]


class ModeUpdate(BaseModel):
    """Schema for switching the trading mode."""
    mode: TradingMode


class DemoReset(BaseModel):
    """Schema for resetting the demo ledger."""
    initial_balance: Optional[float] = Field(default=None, ge=0)


@router.get("/balances", response_model=BalancesResponse)
async def get_balances(
    mode: Optional[TradingMode] = None,
    engine: TradingEngine = Depends(get_engine),
):
    """Get balances of the current (or the given) trading mode."""
    mode = mode or engine.ledger.mode
    return BalancesResponse(mode=mode, balances=engine.ledger.balances(mode))


@router.get("/mode")
async def get_mode(engine: TradingEngine = Depends(get_engine)):
    """Get the current trading mode."""
    return {"mode": engine.ledger.mode.value}


@router.put("/mode")
async def set_mode(
    data: ModeUpdate,
    engine: TradingEngine = Depends(get_engine),
):
    """Switch between demo and live trading. No bot may be running."""
    try:
        engine.set_trading_mode(data.mode)
    except InvalidState as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    return {"mode": engine.ledger.mode.value}


@router.post("/demo/reset", response_model=BalancesResponse)
async def reset_demo(
    data: DemoReset,
    engine: TradingEngine = Depends(get_engine),
):
    """Restore the demo ledger to its initial balance."""
    if engine.running_bot_ids() and engine.ledger.mode == TradingMode.DEMO:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot reset the demo ledger while bots are running"
        )
    engine.ledger.reset_demo(data.initial_balance)
    return BalancesResponse(mode=TradingMode.DEMO, balances=engine.ledger.balances(TradingMode.DEMO))
