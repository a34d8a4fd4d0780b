"""
Registry mapping (provider, event_type) to event handlers.

Handlers are plain coroutine functions receiving a TransactionContext:

    registry = HandlerRegistry()

    @registry.register("stripe", "payment_intent.succeeded")
    async def on_payment(context: TransactionContext) -> None:
        ...

An event type of "*" registers a provider-wide fallback.
"""

import logging
from typing import Any

from cascade.ledger.event_processor import EventHandler

logger = logging.getLogger(__name__)

WILDCARD = "*"


class HandlerRegistry:
    """Looks up the handler for an inbound event."""

    def __init__(self) -> None:
        self._handlers: dict[tuple[str, str], EventHandler[Any]] = {}

    def register(self, provider: str, event_type: str = WILDCARD):
        """Decorator registering a handler for provider/event_type."""

        def decorator(handler: EventHandler[Any]) -> EventHandler[Any]:
            self.add(provider, event_type, handler)
            return handler

        return decorator

    def add(self, provider: str, event_type: str, handler: EventHandler[Any]) -> None:
        key = (provider, event_type)
        if key in self._handlers:
            logger.warning(f"Replacing handler for {provider}/{event_type}")
        self._handlers[key] = handler

    def get(self, provider: str, event_type: str) -> EventHandler[Any] | None:
        """Exact match first, then the provider's wildcard handler."""
        return self._handlers.get((provider, event_type)) or self._handlers.get(
            (provider, WILDCARD)
        )

    def __len__(self) -> int:
        return len(self._handlers)
