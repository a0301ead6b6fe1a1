import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI

from perptrader.api.dependencies.services import service_registry
from perptrader.api.router import api_router
from perptrader.config import settings
from perptrader.services.trading_engine import TradingEngine
from perptrader.utils.logging_config import configure_logging

logger = logging.getLogger("app")


def create_app(engine_factory: Optional[Callable[[], TradingEngine]] = None) -> FastAPI:
    """Build the FastAPI app; ``engine_factory`` lets tests inject an engine wired to fakes."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        configure_logging()
        logger.info("Starting perptrader...")
        engine = (engine_factory or TradingEngine)()
        service_registry.register("engine", engine)
        try:
            await engine.connect()
        except Exception as e:
            logger.error(f"Position store initialization failed: {e}")

        if settings.AUTO_START:
            try:
                await engine.start()
                logger.info("AUTO_START: trading engine started")
            except Exception as e:
                logger.error(f"AUTO_START failed: {e}")

        yield

        # Shutdown
        logger.info("Shutting down trading engine...")
        try:
            await engine.shutdown()
        except Exception as e:
            logger.error(f"Failed to stop trading engine: {e}")
        service_registry.unregister("engine")

    app = FastAPI(
        title="perptrader",
        description="Perpetual-futures signal and position engine",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.include_router(api_router)
    return app


app = create_app()
