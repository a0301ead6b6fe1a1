"""Position queries, trade statistics and manual close."""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from perptrader.api.dependencies.services import get_engine
from perptrader.errors import PositionNotFoundError, PositionNotOpenError

router = APIRouter(prefix="/positions", tags=["positions"])

class ClosePositionRequest(BaseModel):
    exit_price: float = Field(..., gt=0)

@router.get("/")
async def list_positions(status: str = "open", symbol: Optional[str] = None, strategy_id: Optional[str] = None,
                         engine=Depends(get_engine)):
    status = status.lower()
    if status == "open":
        rows = await engine.ledger.open_positions(symbol, strategy_id)
    elif status == "closed":
        rows = await engine.ledger.closed_positions(symbol, strategy_id)
    else:
        raise HTTPException(status_code=400, detail="status must be 'open' or 'closed'")
    return {"status": status, "count": len(rows), "positions": [p.to_dict() for p in rows]}

@router.get("/stats")
async def stats(engine=Depends(get_engine)):
    return await engine.stats()

@router.get("/{position_id}")
async def get_position(position_id: str, engine=Depends(get_engine)):
    position = await engine.ledger.get(position_id)
    if position is None:
        raise HTTPException(status_code=404, detail=f"Position {position_id} not found")
    return position.to_dict()

@router.post("/{position_id}/close")
async def close_position(position_id: str, request: ClosePositionRequest, engine=Depends(get_engine)):
    try:
        position, exit_sent = await engine.close_position(position_id, request.exit_price)
    except PositionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PositionNotOpenError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {**position.to_dict(), "exit_order_sent": exit_sent}

__all__ = ["router"]
