"""Trading control routes: start/stop plus account and order queries."""
from fastapi import APIRouter, Depends, HTTPException
from ema_trader.api.dependencies.services import ServiceRegistry, get_service_registry
from ema_trader.utils.errors import AdapterTransportError, InitError, OrderNotFound

SERVICE_NAME = "ema_cross"

router = APIRouter(prefix="/control", tags=["trading-control"])


def get_running_service(registry: ServiceRegistry = Depends(get_service_registry)):
    service = registry.get(SERVICE_NAME)
    if not service.running:
        raise HTTPException(status_code=409, detail=f"Service '{SERVICE_NAME}' is not running")
    return service


@router.post("/start")
async def start_trading(registry: ServiceRegistry = Depends(get_service_registry)):
    service = registry.get(SERVICE_NAME)
    if service.running:
        return {"status": "running", "service": SERVICE_NAME, "message": "Service already running"}
    try:
        await service.start()
    except (InitError, AdapterTransportError) as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"status": "started", "service": SERVICE_NAME, "symbol": service.config.SYMBOL, "interval": service.config.INTERVAL}

@router.post("/stop")
async def stop_trading(registry: ServiceRegistry = Depends(get_service_registry)):
    service = registry.get(SERVICE_NAME)
    await service.stop()
    return {"status": "stopped", "service": SERVICE_NAME}

@router.get("/positions")
async def positions(service=Depends(get_running_service)):
    try:
        open_positions = await service.bracket_manager.get_positions()
    except AdapterTransportError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"symbol": service.config.SYMBOL, "positions": [p.to_dict() for p in open_positions]}

@router.get("/balance")
async def balance(service=Depends(get_running_service)):
    try:
        result = await service.exchange.fetch_balance()
    except AdapterTransportError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return result.to_dict()

@router.get("/orders/{order_id}")
async def order_status(order_id: str, service=Depends(get_running_service)):
    try:
        result = await service.bracket_manager.get_order_status(order_id)
    except OrderNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except AdapterTransportError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return result.to_dict()

@router.post("/close")
async def close_position(service=Depends(get_running_service)):
    try:
        order_id = await service.bracket_manager.close_position()
    except AdapterTransportError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"status": "closed" if order_id else "flat", "order_id": order_id}

@router.post("/cancel-all")
async def cancel_all(service=Depends(get_running_service)):
    try:
        await service.bracket_manager.cancel_all_orders()
    except AdapterTransportError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"status": "cancelled", "symbol": service.config.SYMBOL}

__all__ = ["router", "get_running_service", "SERVICE_NAME"]
