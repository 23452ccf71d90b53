"""
Ledger Watch - Relay Service

Wires the polling pipeline to webhook delivery:

    LedgerReader -> PollScheduler -> EventSynthesizer -> EventBus -> WebhookDeliveryService

Delivery is registered as a wildcard bus handler, so local listeners added
with `on_event` see every event before or alongside HTTP delivery.
"""
from typing import Any, Dict, Optional

import aiohttp
import structlog

from .event_bus import EventBus, EventHandler, Unsubscribe
from .poller import LedgerReader, PollScheduler
from .snapshot_store import SnapshotStore
from .synthesizer import EventSynthesizer
from ..shared.config import Settings, get_settings
from ..shared.logging_config import setup_logging_from_settings
from ..webhooks.delivery import WebhookDeliveryService
from ..webhooks.history import DeliveryHistory
from ..webhooks.models import RegisterWebhookParams, WebhookSubscription
from ..webhooks.registry import SubscriptionRegistry

logger = structlog.get_logger(__name__)


class WebhookRelayService:
    """Polls tracked disputes and relays the resulting events.

    Pass configure_logging=True when the relay owns the process, so logging
    is set up from the monitoring settings before anything is logged.
    """

    def __init__(
        self,
        reader: LedgerReader,
        settings: Optional[Settings] = None,
        registry: Optional[SubscriptionRegistry] = None,
        history: Optional[DeliveryHistory] = None,
        snapshot_store: Optional[SnapshotStore] = None,
        session: Optional[aiohttp.ClientSession] = None,
        configure_logging: bool = False,
    ):
        self.settings = settings or get_settings()
        if configure_logging:
            setup_logging_from_settings(self.settings)
        self.logger = logger.bind(component="relay_service")

        self.store = snapshot_store if snapshot_store is not None else SnapshotStore()
        self.synthesizer = EventSynthesizer(self.store, self.settings.chain.resolved_chain_id)
        self.event_bus = EventBus()
        self.registry = registry if registry is not None else SubscriptionRegistry()
        self.delivery = WebhookDeliveryService.from_settings(
            self.registry,
            self.settings.delivery,
            history=history,
            session=session,
        )
        self.poller = PollScheduler(
            reader,
            self.synthesizer,
            self.event_bus,
            interval_seconds=self.settings.poller.interval_seconds,
            fetch_timeout_seconds=self.settings.poller.fetch_timeout_seconds,
            max_concurrent_polls=self.settings.poller.max_concurrent_polls,
            entity_ids=self.settings.poller.entity_ids,
        )
        self._unsubscribe_delivery = self.event_bus.on_all(self.delivery.dispatch)

    @property
    def history(self) -> DeliveryHistory:
        return self.delivery.history

    def register_webhook(self, params: RegisterWebhookParams) -> WebhookSubscription:
        return self.registry.register(params)

    def on_event(self, event_type, handler: EventHandler) -> Unsubscribe:
        return self.event_bus.on_event(event_type, handler)

    def track(self, entity_id: int) -> bool:
        return self.poller.add_tracked(entity_id)

    def untrack(self, entity_id: int) -> bool:
        return self.poller.remove_tracked(entity_id)

    async def start(self) -> None:
        self.logger.info(
            "Starting webhook relay",
            chain_id=self.synthesizer.chain_id,
            tracked=len(self.poller.tracked_ids),
            subscriptions=len(self.registry)
        )
        self.delivery.start()
        await self.poller.start()

    async def stop(self) -> None:
        """Stop polling, refuse new delivery attempts, and wait for handlers to settle."""
        self.poller.stop()
        await self.poller.wait_stopped()
        self.delivery.stop()
        await self.event_bus.drain()
        await self.delivery.close()
        self.logger.info("Webhook relay stopped")

    def get_status(self) -> Dict[str, Any]:
        return {
            "poller": self.poller.get_status(),
            "delivery": self.delivery.get_stats(),
        }
