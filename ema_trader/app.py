import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ema_trader.config import settings
from ema_trader.services.ema_cross_service import EmaCrossService
from ema_trader.api.router import api_router
from ema_trader.api.dependencies.services import service_registry
from ema_trader.api.routes.trading_control import SERVICE_NAME
from ema_trader.api.state.startup import record_startup_event
from ema_trader.utils.errors import TradingError
from ema_trader.utils.logging_config import EventLog, configure_logging

logger = logging.getLogger("app")


def _bootstrap_services(event_log: EventLog):
    service = EmaCrossService(settings, event_log)
    service_registry.register(SERVICE_NAME, service)
    record_startup_event("bootstrap", "service_created", service=SERVICE_NAME, symbol=settings.SYMBOL, sandbox=settings.TEST)
    return service


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager."""
    configure_logging(settings.LOG_LEVEL)
    logger.info("Starting EMA Trader (symbol=%s, sandbox=%s)", settings.SYMBOL, settings.TEST)
    if not settings.BITMEX_API_KEY or not settings.BITMEX_API_SECRET:
        logger.warning("BITMEX_API_KEY/BITMEX_API_SECRET not set; private endpoints will fail")
        record_startup_event("config_warning", "missing_credentials")

    service = _bootstrap_services(EventLog())

    if settings.AUTO_START:
        try:
            await service.start()
            logger.info("AUTO_START: %s service started", SERVICE_NAME)
            record_startup_event("auto_start", "service_started", service=SERVICE_NAME)
        except TradingError as e:
            logger.error(f"AUTO_START failed: {e}")
            record_startup_event("auto_start_error", "service_failed", service=SERVICE_NAME, error=str(e))

    yield

    logger.info("Shutting down trading services...")
    for name, svc in service_registry.items():
        if svc is not None:
            await svc.close()
            logger.info(f"{name} service stopped")


app = FastAPI(
    title="EMA Trader",
    description="EMA crossover bracket trading for BitMEX",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(api_router)
