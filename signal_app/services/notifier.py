"""In-process event publishing for new signals and trades."""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Literal

import orjson
from pydantic import BaseModel

from signal_core.models import Signal, Trade

logger = logging.getLogger(__name__)

Subscriber = Callable[["Event"], Awaitable[None]]


def _orjson_dumps(obj: Any) -> str:
    """Serialize object to JSON string using orjson."""
    return orjson.dumps(obj, default=str).decode("utf-8")


class Event(BaseModel):
    """Event envelope handed to subscribers."""

    type: Literal["signal", "trade"]
    payload: dict[str, Any]
    timestamp: datetime

    def to_json(self) -> str:
        """Serialize to JSON string using orjson for performance."""
        return _orjson_dumps(self.model_dump(mode="json"))


class EventPublisher:
    """Fan out events to registered async subscribers.

    Subscriber failures are logged and never reach the publisher's caller.
    """

    def __init__(self):
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> None:
        """Register callback for new events."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    async def publish(self, event: Event) -> None:
        for callback in list(self._subscribers):
            try:
                await callback(event)
            except Exception:
                logger.exception(f"Event subscriber failed for {event.type} event")

    async def send_signal(self, signal: Signal) -> None:
        """Publish a newly stored signal."""
        await self.publish(
            Event(
                type="signal",
                payload=signal.model_dump(mode="json"),
                timestamp=datetime.now(timezone.utc),
            )
        )

    async def send_trade(self, trade: Trade) -> None:
        """Publish a newly recorded trade."""
        await self.publish(
            Event(
                type="trade",
                payload=trade.model_dump(mode="json"),
                timestamp=datetime.now(timezone.utc),
            )
        )
