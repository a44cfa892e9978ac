"""System & metadata routes (root, health, status, config, metrics)."""
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from ema_trader.config import settings
from ema_trader.api.dependencies.services import ServiceRegistry, get_service_registry
from ema_trader.api.state.startup import get_startup_events

router = APIRouter()

@router.get("/")
async def root(registry: ServiceRegistry = Depends(get_service_registry)):
    return {
        "name": "EMA Trader",
        "version": "1.0.0",
        "description": "EMA crossover bracket trader for BitMEX",
        "services": registry.names(),
        "auto_start": settings.AUTO_START,
        "sandbox": settings.TEST,
        "endpoints": {
            "health": "/health",
            "status": "/status",
            "config": "/config",
            "metrics": "/metrics",
            "startup_events": "/startup/log",
            "docs": "/docs",
            "control": "/control/",
        },
    }

@router.get("/health")
async def health():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

@router.get("/status")
async def status(registry: ServiceRegistry = Depends(get_service_registry)):
    return registry.all_status()

@router.get("/startup/log")
async def startup_log(limit: int = 100):
    return {"events": get_startup_events(limit)}

@router.get("/config")
async def get_config():
    # credentials are never echoed
    return {
        "symbol": settings.SYMBOL,
        "sandbox": settings.TEST,
        "qty": settings.QTY,
        "leverage": settings.LEVERAGE,
        "profit_target": settings.PROFIT_TARGET,
        "stop_loss": settings.STOP_LOSS,
        "price_tick": settings.PRICE_TICK,
        "max_positions": settings.MAX_POSITIONS,
        "max_daily_loss": settings.MAX_DAILY_LOSS,
        "risk_per_trade": settings.RISK_PER_TRADE,
        "fast_period": settings.FAST_PERIOD,
        "slow_period": settings.SLOW_PERIOD,
        "interval": settings.INTERVAL,
        "factor": settings.FACTOR,
        "warmup_bars": settings.warmup_bars(),
        "reconnect_strategy": settings.RECONNECT_STRATEGY,
        "app_port": settings.APP_PORT,
    }

@router.get("/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

__all__ = ["router"]
