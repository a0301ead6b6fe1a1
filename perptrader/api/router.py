"""Unified API router aggregator.

Adds all individual feature routers here to keep `app.py` clean.
"""
from fastapi import APIRouter

from perptrader.api.routes.positions import router as positions_router
from perptrader.api.routes.system import router as system_router
from perptrader.api.routes.trading_control import router as trading_control_router

api_router = APIRouter()
api_router.include_router(system_router)
api_router.include_router(trading_control_router)
api_router.include_router(positions_router)

__all__ = ["api_router"]
