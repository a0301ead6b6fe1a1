import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Set

from perptrader.models.event_models import DomainEvent, EventType

logger = logging.getLogger("event_bus")

Handler = Callable[[DomainEvent], Awaitable[None]]


class EventBus:
    """Fire-and-forget fan-out of domain events.

    ``emit`` never blocks the caller and never raises: each handler runs in
    its own task and failures are only logged.
    """

    def __init__(self):
        self._subscribers: Dict[Optional[EventType], List[Handler]] = {}
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, handler: Handler, event_type: EventType = None):
        """``event_type=None`` receives every event."""
        self._subscribers.setdefault(event_type, []).append(handler)

    def emit(self, event: DomainEvent):
        handlers = self._subscribers.get(event.type, []) + self._subscribers.get(None, [])
        for handler in handlers:
            task = asyncio.get_running_loop().create_task(self._run(handler, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _run(self, handler: Handler, event: DomainEvent):
        try:
            await handler(event)
        except Exception:
            logger.exception(f"Event handler failed for {event.type.value}")

    async def drain(self):
        """Wait for in-flight deliveries (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
