import logging
from typing import Any, Dict

import httpx

from ema_trader.models.candle_models import Bracket
from ema_trader.utils.logging_config import EventLog


class Notifier:
    component = "Notifier"

    def __init__(self, event_log: EventLog, webhook_url: str = "", timeout: float = 5.0):
        self.webhook = webhook_url
        self.log = event_log
        self.client = httpx.AsyncClient(timeout=timeout)

    async def notify_bracket(self, bracket: Bracket):
        msg = {"event": "bracket_opened", **bracket.to_dict()}
        await self._send(msg)

    async def notify_alert(self, subject: str, detail: Dict[str, Any]):
        msg = {"event": "alert", "subject": subject, **detail}
        await self._send(msg, level=logging.CRITICAL)

    async def _send(self, msg: Dict[str, Any], level: int = logging.INFO):
        if not self.webhook:
            self.log.record(level, self.component, f"Notification: {msg}")
            return
        try:
            resp = await self.client.post(self.webhook, json=msg)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            self.log.record(logging.ERROR, self.component, f"Webhook delivery failed ({e}); payload: {msg}")

    async def close(self):
        await self.client.aclose()
