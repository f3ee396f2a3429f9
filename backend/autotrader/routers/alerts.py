"""Alerts router: recent error reports."""

from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from ..services import Severity, TradingEngine
from .dependencies import get_engine

router = APIRouter()


class AlertResponse(BaseModel):
    """Schema for alert response."""
    id: str
    timestamp: datetime
    message: str
    severity: Severity
    context: dict
    stack: Optional[str] = None


@router.get("", response_model=List[AlertResponse])
async def list_alerts(
    engine: TradingEngine = Depends(get_engine),
    min_severity: Optional[Severity] = None,
    bot_id: Optional[str] = None,
    limit: int = 100,
):
    """List recent alerts, newest first."""
    entries = engine.reporter.recent(min_severity=min_severity)
    if bot_id is not None:
        entries = [e for e in entries if e.context.get("bot_id") == bot_id]
    return [e.to_dict() for e in entries[:limit]]


@router.get("/snapshots")
async def list_snapshots(engine: TradingEngine = Depends(get_engine)):
    """List snapshots taken on critical errors."""
    return engine.reporter.snapshots()


@router.delete("/{alert_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_alert(
    alert_id: str,
    engine: TradingEngine = Depends(get_engine),
):
    """Dismiss an alert."""
    if not engine.reporter.remove(alert_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Alert with id {alert_id} not found"
        )


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def clear_alerts(engine: TradingEngine = Depends(get_engine)):
    """Dismiss all alerts."""
    engine.reporter.clear()
