"""
Webhook subscription registry.

Holds webhook registrations and resolves which of them should receive a
given event.
"""

import logging
from typing import List, Optional

from .models import RegisterWebhookParams, WebhookEvent, WebhookSubscription
from .security import WebhookSecurity
from .validation import WebhookValidator
from ..shared.repository import InMemoryRepository, KeyValueRepository

logger = logging.getLogger(__name__)


class InvalidSubscriptionError(ValueError):
    """Raised when a registration fails validation."""

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


class SubscriptionRegistry:
    """Owns webhook subscriptions; the only writer of WebhookSubscription."""

    def __init__(self, repository: Optional[KeyValueRepository[str, WebhookSubscription]] = None):
        self.repository = repository if repository is not None else InMemoryRepository()

    def register(self, params: RegisterWebhookParams) -> WebhookSubscription:
        """Register a webhook endpoint. New subscriptions start active."""
        is_valid, errors = WebhookValidator.validate_registration(params)
        if not is_valid:
            logger.error(f"Invalid webhook registration: {errors}")
            raise InvalidSubscriptionError(errors)

        subscription = WebhookSubscription(
            url=params.url,
            events=params.events,
            filter_addresses=params.filter_addresses,
            filter_entity_ids=params.filter_entity_ids,
            secret=params.secret,
        )
        self.repository.put(subscription.id, subscription)

        secret_info = WebhookSecurity.mask_secret(subscription.secret) if subscription.secret else "none"
        logger.info(
            f"Registered webhook: {subscription.id} -> {subscription.url} (secret: {secret_info})"
        )
        return subscription

    def unregister(self, subscription_id: str) -> bool:
        """Unregister a webhook endpoint."""
        deleted = self.repository.delete(subscription_id)
        if deleted:
            logger.info(f"Unregistered webhook: {subscription_id}")
        return deleted

    def pause(self, subscription_id: str) -> bool:
        """Stop deliveries to a subscription without removing it."""
        return self._set_active(subscription_id, False)

    def resume(self, subscription_id: str) -> bool:
        """Re-enable deliveries to a paused subscription."""
        return self._set_active(subscription_id, True)

    def _set_active(self, subscription_id: str, active: bool) -> bool:
        subscription = self.repository.get(subscription_id)
        if subscription is None:
            return False

        if subscription.active != active:
            self.repository.put(subscription_id, subscription.model_copy(update={"active": active}))
            logger.info(f"Webhook {subscription_id} {'resumed' if active else 'paused'}")
        return True

    def get(self, subscription_id: str) -> Optional[WebhookSubscription]:
        return self.repository.get(subscription_id)

    def list(self) -> List[WebhookSubscription]:
        return self.repository.values()

    def find_matching(self, event: WebhookEvent) -> List[WebhookSubscription]:
        """Active subscriptions whose filters all accept the event."""
        return [
            subscription for subscription in self.repository.values()
            if subscription.matches_event(event)
        ]

    def __len__(self) -> int:
        return len(self.repository)
