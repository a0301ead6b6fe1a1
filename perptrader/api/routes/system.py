"""System & metadata routes (root, health, status, config)."""
from datetime import datetime, timezone
from fastapi import APIRouter, Depends
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from perptrader.config import settings
from perptrader.api.dependencies.services import ServiceRegistry, get_service_registry

router = APIRouter()

@router.get("/")
async def root(registry: ServiceRegistry = Depends(get_service_registry)):
    return {
        "name": "perptrader",
        "version": "1.0.0",
        "description": "Perpetual-futures signal and position engine",
        "services": registry.names(),
        "auto_start": settings.AUTO_START,
        "endpoints": {
            "health": "/health",
            "status": "/status",
            "metrics": "/metrics",
            "docs": "/docs",
            "positions": "/positions/",
            "control": "/control/",
        },
    }

@router.get("/health")
async def health():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

@router.get("/status")
async def status(registry: ServiceRegistry = Depends(get_service_registry)):
    return registry.all_status()

@router.get("/metrics")
async def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

@router.get("/config")
async def get_config():
    return {
        "symbols": settings.symbol_list(),
        "strategies": settings.strategy_list(),
        "trend": {
            "resolution": settings.TREND_RESOLUTION,
            "interval_sec": settings.TREND_INTERVAL_SEC,
            "ma_period": settings.TREND_MA_PERIOD,
            "lookback": settings.TREND_LOOKBACK,
        },
        "ema": {
            "resolution": settings.EMA_RESOLUTION,
            "interval_sec": settings.EMA_INTERVAL_SEC,
            "fast": settings.EMA_FAST,
            "slow": settings.EMA_SLOW,
        },
        "sltp_interval_sec": settings.SLTP_INTERVAL_SEC,
        "app_port": settings.APP_PORT,
    }

__all__ = ["router"]
