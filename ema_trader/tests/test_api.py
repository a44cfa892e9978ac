import pytest
from fastapi.testclient import TestClient

from conftest import FakeFeed, FakeNotifier, StubExchange
from ema_trader.api.dependencies.services import service_registry
from ema_trader.api.routes.trading_control import SERVICE_NAME
from ema_trader.app import app
from ema_trader.config import Settings
from ema_trader.models.candle_models import Position
from ema_trader.services.ema_cross_service import EmaCrossService
from ema_trader.utils.errors import AdapterTransportError
from ema_trader.utils.logging_config import EventLog

client = TestClient(app)


@pytest.fixture
def exchange():
    ex = StubExchange(price=50000)
    service = EmaCrossService(Settings(_env_file=None), EventLog("test"), exchange=ex, feed=FakeFeed(),
                              notifier=FakeNotifier())
    service_registry.register(SERVICE_NAME, service)
    yield ex
    service_registry.clear()


@pytest.fixture
def running(exchange):
    # endpoints only need the flag; the feed and worker are exercised elsewhere
    service_registry.get(SERVICE_NAME)._running = True
    return exchange


def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"


def test_root_lists_endpoints():
    r = client.get("/")
    assert r.status_code == 200
    body = r.json()
    assert "auto_start" in body
    assert body["endpoints"]["control"] == "/control/"


def test_config_hides_credentials():
    r = client.get("/config")
    assert r.status_code == 200
    body = r.json()
    assert "warmup_bars" in body
    assert not any("secret" in k.lower() or "key" in k.lower() for k in body)


def test_metrics_exposed():
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "ema_trader_candles_total" in r.text


def test_startup_log_endpoint():
    r = client.get("/startup/log")
    assert r.status_code == 200
    assert isinstance(r.json()["events"], list)


def test_status_reports_service(exchange):
    r = client.get("/status")
    assert r.status_code == 200
    assert r.json()[SERVICE_NAME]["running"] is False


def test_control_requires_registered_service():
    r = client.get("/control/positions")
    assert r.status_code == 400


def test_control_requires_running_service(exchange):
    r = client.get("/control/positions")
    assert r.status_code == 409


def test_positions_and_balance(running):
    running.positions = [Position(side="long", size=10, entry_price=50000, unrealized_pnl=0.001)]
    r = client.get("/control/positions")
    assert r.status_code == 200
    assert r.json()["positions"][0]["size"] == 10
    r = client.get("/control/balance")
    assert r.json()["total"]["BTC"] == 1.0


def test_order_lookup(running):
    r = client.get("/control/orders/missing")
    assert r.status_code == 404
    client.post("/control/close")  # flat, places nothing
    running.positions = [Position(side="long", size=10, entry_price=50000, unrealized_pnl=0)]
    r = client.post("/control/close")
    order_id = r.json()["order_id"]
    r = client.get(f"/control/orders/{order_id}")
    assert r.status_code == 200
    assert r.json()["status"] == "filled"


def test_cancel_all(running):
    r = client.post("/control/cancel-all")
    assert r.status_code == 200
    assert running.cancel_all_calls == ["XBTUSD"]


def test_transport_error_maps_to_502(running, monkeypatch):
    async def down(symbol):
        raise AdapterTransportError("exchange unavailable")

    monkeypatch.setattr(running, "fetch_positions", down)
    r = client.get("/control/positions")
    assert r.status_code == 502
