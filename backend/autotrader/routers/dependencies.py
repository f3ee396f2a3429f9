"""Shared router dependencies."""

from fastapi import HTTPException, Request, status

from ..services import TradingEngine


def get_engine(request: Request) -> TradingEngine:
    """Dependency returning the engine built at application startup."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Trading engine is not initialized"
        )
    return engine
