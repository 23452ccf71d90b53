"""
Ledger Watch - In-process Event Bus

Local listeners for synthesized events. Handlers are kept per event type in
registration order; wildcard ("*") handlers run after the type-specific ones.
Handlers may be plain functions or coroutines. A failing handler is logged
and never affects the others.
"""
import asyncio
import inspect
from typing import Awaitable, Callable, Dict, List, Mapping, Set, Union

import structlog

from ..webhooks.models import WebhookEvent, WebhookEventType

logger = structlog.get_logger(__name__)

WILDCARD = "*"

EventHandler = Callable[[WebhookEvent], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]


def _event_key(event_type: Union[WebhookEventType, str]) -> str:
    if isinstance(event_type, WebhookEventType):
        return event_type.value
    if event_type != WILDCARD:
        # Raises ValueError for unknown event types
        return WebhookEventType(event_type).value
    return WILDCARD


class EventBus:
    """Registration table from event type to ordered handlers."""

    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = {}
        self._pending: Set[asyncio.Task] = set()
        self.logger = logger.bind(component="event_bus")

    def on_event(self, event_type: Union[WebhookEventType, str], handler: EventHandler) -> Unsubscribe:
        """
        Register a handler for one event type, or "*" for every event.

        Returns:
            Function that removes this registration
        """
        key = _event_key(event_type)
        self._handlers.setdefault(key, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(key, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def on_all(self, handler: EventHandler) -> Unsubscribe:
        return self.on_event(WILDCARD, handler)

    def subscribe(self, handlers: Mapping[Union[WebhookEventType, str], EventHandler]) -> Unsubscribe:
        """Register several handlers at once; the result unsubscribes all of them."""
        unsubscribers = [self.on_event(event_type, handler) for event_type, handler in handlers.items()]

        def unsubscribe_all() -> None:
            for unsubscribe in unsubscribers:
                unsubscribe()

        return unsubscribe_all

    def handler_count(self, event_type: Union[WebhookEventType, str, None] = None) -> int:
        if event_type is None:
            return sum(len(handlers) for handlers in self._handlers.values())
        return len(self._handlers.get(_event_key(event_type), []))

    def emit(self, event: WebhookEvent) -> None:
        """Call specific handlers, then wildcard handlers."""
        handlers = list(self._handlers.get(event.event_type.value, []))
        handlers.extend(self._handlers.get(WILDCARD, []))

        for handler in handlers:
            try:
                result = handler(event)
            except Exception as e:
                self.logger.error(
                    "Event handler failed",
                    event_type=event.event_type.value,
                    event_id=event.event_id,
                    error=str(e)
                )
                continue

            if inspect.isawaitable(result):
                self._schedule(result, event)

    def _schedule(self, awaitable: Awaitable[None], event: WebhookEvent) -> None:
        try:
            loop = asyncio.get_running_loop()
            task = asyncio.ensure_future(awaitable, loop=loop)
        except RuntimeError as e:
            # No running loop to host the coroutine
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            self.logger.error("Cannot schedule async handler", event_id=event.event_id, error=str(e))
            return

        self._pending.add(task)
        task.add_done_callback(lambda done: self._on_handler_done(done, event))

    def _on_handler_done(self, task: asyncio.Task, event: WebhookEvent) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.error(
                "Async event handler failed",
                event_type=event.event_type.value,
                event_id=event.event_id,
                error=str(error)
            )

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait until every scheduled async handler has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
