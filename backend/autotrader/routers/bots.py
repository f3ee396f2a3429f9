"""Bot management router."""

from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ..models import BotStatus, RiskLevel, StrategyKind
from ..services import (
    BotNotFound,
    BotSpec,
    InvalidBotConfig,
    InvalidState,
    TradingEngine,
    TradingMode,
)
from .dependencies import get_engine

router = APIRouter()


# Pydantic schemas
class BotCreate(BaseModel):
    """Schema for creating a bot."""
    name: str = Field(..., min_length=1, max_length=255)
    strategy: StrategyKind
    symbol: str = Field(..., min_length=1, max_length=50)
    interval: str = Field(default="5m", min_length=1, max_length=10)
    risk_level: RiskLevel = RiskLevel.MEDIUM
    max_position_size: float = Field(..., gt=0)
    stop_loss_pct: float = Field(default=2.0, ge=0, le=100)
    take_profit_pct: float = Field(default=4.0, ge=0)
    parameters: dict = Field(default_factory=dict)


class BotUpdate(BaseModel):
    """Schema for updating a bot."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    symbol: Optional[str] = Field(default=None, min_length=1, max_length=50)
    interval: Optional[str] = Field(default=None, min_length=1, max_length=10)
    risk_level: Optional[RiskLevel] = None
    max_position_size: Optional[float] = Field(default=None, gt=0)
    stop_loss_pct: Optional[float] = Field(default=None, ge=0, le=100)
    take_profit_pct: Optional[float] = Field(default=None, ge=0)
    parameters: Optional[dict] = None


class TradeResponse(BaseModel):
    """Schema for trade response."""
    time: datetime
    type: str
    symbol: str
    price: float
    amount: float
    pnl: float
    strategy: str


class PerformanceResponse(BaseModel):
    """Schema for bot performance."""
    start_time: Optional[datetime]
    total_trades: int
    win_rate: float
    profit_loss: float
    last_update: datetime
    trades: List[TradeResponse]


class BotResponse(BaseModel):
    """Schema for bot response."""
    id: str
    name: str
    strategy: str
    status: str
    config: dict
    performance: PerformanceResponse
    ml_metrics: Optional[dict]
    created_at: datetime
    is_running: bool = False
    training_progress: Optional[int] = None


class PositionResponse(BaseModel):
    """Schema for position response."""
    symbol: str
    entry_price: float
    current_price: Optional[float]
    amount: float
    unrealized_pnl: Optional[float]
    opened_at: datetime


def _to_response(engine: TradingEngine, bot) -> BotResponse:
    return BotResponse(
        **bot.to_dict(),
        is_running=engine.is_running(bot.id),
        training_progress=engine.training_progress(bot.id),
    )


def _require_bot(engine: TradingEngine, bot_id: str):
    try:
        return engine.registry.require(bot_id)
    except BotNotFound as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )


@router.get("", response_model=List[BotResponse])
async def list_bots(
    engine: TradingEngine = Depends(get_engine),
    status_filter: Optional[BotStatus] = None,
    skip: int = 0,
    limit: int = 100,
):
    """List all bots with optional filtering."""
    bots = engine.registry.list(status=status_filter)
    return [_to_response(engine, bot) for bot in bots[skip:skip + limit]]


@router.post("", response_model=BotResponse, status_code=status.HTTP_201_CREATED)
async def create_bot(
    bot_data: BotCreate,
    engine: TradingEngine = Depends(get_engine),
):
    """Create a new bot."""
    try:
        bot_id = engine.registry.create(BotSpec(**bot_data.model_dump()))
    except InvalidBotConfig as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e)
        )
    return _to_response(engine, engine.registry.require(bot_id))


@router.get("/{bot_id}", response_model=BotResponse)
async def get_bot(
    bot_id: str,
    engine: TradingEngine = Depends(get_engine),
):
    """Get a specific bot by ID."""
    return _to_response(engine, _require_bot(engine, bot_id))


@router.put("/{bot_id}", response_model=BotResponse)
async def update_bot(
    bot_id: str,
    bot_data: BotUpdate,
    engine: TradingEngine = Depends(get_engine),
):
    """Update a bot configuration. Bot must not be running or training."""
    _require_bot(engine, bot_id)
    try:
        bot = engine.registry.update_config(bot_id, **bot_data.model_dump(exclude_unset=True))
    except InvalidState as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except InvalidBotConfig as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e)
        )
    return _to_response(engine, bot)


@router.delete("/{bot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_bot(
    bot_id: str,
    engine: TradingEngine = Depends(get_engine),
):
    """Delete a bot. Bot must be stopped."""
    _require_bot(engine, bot_id)
    try:
        engine.registry.delete(bot_id)
    except InvalidState:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete a running bot. Stop it first."
        )


@router.post("/{bot_id}/start", response_model=BotResponse)
async def start_bot(
    bot_id: str,
    confirm_live: bool = False,
    engine: TradingEngine = Depends(get_engine),
):
    """Start a bot. Starting in live mode requires confirm_live=true."""
    bot = _require_bot(engine, bot_id)

    if engine.is_running(bot_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Bot is already running"
        )
    if engine.is_starting(bot_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Bot is already starting"
        )
    if bot.status == BotStatus.TRAINING:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Bot is training"
        )
    if engine.ledger.mode == TradingMode.LIVE and not confirm_live:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Starting a bot in live mode requires confirm_live=true"
        )

    # Pre-flight failures leave the bot in error status
    await engine.start_bot(bot_id, confirm_live=confirm_live)
    return _to_response(engine, bot)


@router.post("/{bot_id}/stop", response_model=BotResponse)
async def stop_bot(
    bot_id: str,
    engine: TradingEngine = Depends(get_engine),
):
    """Stop a bot, closing all of its positions."""
    bot = _require_bot(engine, bot_id)
    await engine.stop_bot(bot_id)
    return _to_response(engine, bot)


@router.post("/{bot_id}/train", response_model=BotResponse, status_code=status.HTTP_202_ACCEPTED)
async def train_bot(
    bot_id: str,
    engine: TradingEngine = Depends(get_engine),
):
    """Start the simulated model training of a bot."""
    bot = _require_bot(engine, bot_id)
    try:
        engine.spawn_training(bot_id)
    except InvalidState as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    return _to_response(engine, bot)


@router.post("/{bot_id}/optimize", response_model=BotResponse, status_code=status.HTTP_202_ACCEPTED)
async def optimize_bot(
    bot_id: str,
    engine: TradingEngine = Depends(get_engine),
):
    """Start tuning a bot's strategy parameters."""
    bot = _require_bot(engine, bot_id)
    try:
        engine.spawn_optimization(bot_id)
    except InvalidState as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    return _to_response(engine, bot)


@router.get("/{bot_id}/positions", response_model=List[PositionResponse])
async def get_bot_positions(
    bot_id: str,
    engine: TradingEngine = Depends(get_engine),
):
    """Get open positions of a bot, priced at the latest market price."""
    _require_bot(engine, bot_id)
    positions = []
    for position in engine.positions(bot_id):
        price = engine.market_data.last_price(position.symbol)
        positions.append(PositionResponse(
            symbol=position.symbol,
            entry_price=position.entry_price,
            current_price=price,
            amount=position.amount,
            unrealized_pnl=position.unrealized_pnl(price) if price else None,
            opened_at=position.opened_at,
        ))
    return positions


@router.get("/{bot_id}/trades", response_model=List[TradeResponse])
async def get_bot_trades(
    bot_id: str,
    limit: int = 100,
    engine: TradingEngine = Depends(get_engine),
):
    """Get a bot's most recent trades, newest first."""
    bot = _require_bot(engine, bot_id)
    return [t.to_dict() for t in bot.performance.trades[:limit]]
