import logging

import httpx

from perptrader.models.event_models import DomainEvent

logger = logging.getLogger("notifier")

class Notifier:
    """Event sink posting structured events to a webhook; logs them when no webhook is set."""

    def __init__(self, webhook_url: str = "", client: httpx.AsyncClient = None):
        self.webhook = webhook_url
        self.client = client or httpx.AsyncClient(timeout=5.0)

    async def publish(self, event: DomainEvent):
        msg = event.to_dict()
        if not self.webhook:
            logger.info("Event: %s", msg)
            return
        try:
            resp = await self.client.post(self.webhook, json=msg)
            resp.raise_for_status()
        except Exception:
            logger.exception("Notifier failed")

    async def close(self):
        await self.client.aclose()
