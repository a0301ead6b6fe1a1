#!/usr/bin/env python3
"""
perptrader - Main Entry Point
Runs the control API; the trading engine lives inside the app lifespan.
"""
import uvicorn

from perptrader.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "perptrader.api.app:app",
        host="0.0.0.0",
        port=settings.APP_PORT,
        reload=False,
    )
