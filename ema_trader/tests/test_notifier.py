import json
from datetime import datetime, timezone

import httpx
import pytest

from ema_trader.models.candle_models import Bracket
from ema_trader.services.notifier import Notifier
from ema_trader.utils.logging_config import EventLog
from ema_trader.utils.orders_enum import PositionSide


def make_bracket():
    return Bracket("b1", "XBTUSD", PositionSide.LONG, 10, "e", "tp", "sl", 50000, 50009, 49997,
                   created_at=datetime(2024, 1, 1, tzinfo=timezone.utc))


@pytest.mark.asyncio
async def test_bracket_posted_to_webhook():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200)

    notifier = Notifier(EventLog("test"), webhook_url="http://hooks.local/trade")
    notifier.client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    await notifier.notify_bracket(make_bracket())
    await notifier.close()
    assert seen[0]["event"] == "bracket_opened"
    assert seen[0]["order_ids"]["take_profit"] == "tp"


@pytest.mark.asyncio
async def test_webhook_failure_is_logged_not_raised():
    notifier = Notifier(EventLog("test"), webhook_url="http://hooks.local/trade")
    notifier.client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
    await notifier.notify_alert("Unhedged", {"symbol": "XBTUSD"})
    await notifier.close()


@pytest.mark.asyncio
async def test_no_webhook_sends_nothing():
    calls = []
    notifier = Notifier(EventLog("test"))
    notifier.client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: calls.append(r) or httpx.Response(200)))
    await notifier.notify_bracket(make_bracket())
    await notifier.close()
    assert calls == []
