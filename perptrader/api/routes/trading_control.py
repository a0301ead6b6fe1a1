"""Trading control routes: start/stop the scheduler and one-shot runs."""
from fastapi import APIRouter, Depends, HTTPException
from perptrader.api.dependencies.services import get_engine

router = APIRouter(prefix="/control", tags=["trading-control"])

@router.post("/start")
async def start_trading(engine=Depends(get_engine)):
    already = engine.running
    await engine.start()
    return {
        "status": "running",
        "message": "Trading engine already running" if already else "Trading engine started successfully",
        "strategies": list(engine.runners),
        "symbols": engine.symbols,
    }

@router.post("/stop")
async def stop_trading(engine=Depends(get_engine)):
    await engine.stop()
    return {"status": "stopped", "message": "Trading engine stopped successfully"}

@router.post("/run/{strategy_id}")
async def run_strategy_once(strategy_id: str, engine=Depends(get_engine)):
    runner = engine.runners.get(strategy_id)
    if runner is None:
        raise HTTPException(status_code=404, detail=f"Strategy '{strategy_id}' not configured")
    report = await runner.run_once()
    return {
        "strategy_id": strategy_id,
        "signals": [s.to_dict() for s in report.signals],
        "opened": [p.id for p in report.opened],
        "rejected": [r.reason.value for r in report.rejected],
        "skipped_symbols": report.skipped_symbols,
    }

@router.post("/sltp/check")
async def check_sltp_once(engine=Depends(get_engine)):
    report = await engine.monitor.check_once()
    return {
        "checked": report.checked,
        "closed": [p.id for p in report.closed],
        "warnings": len(report.warnings),
        "skipped_symbols": report.skipped_symbols,
        "exit_order_failures": [p.id for p in report.exit_order_failures],
    }

__all__ = ["router"]
