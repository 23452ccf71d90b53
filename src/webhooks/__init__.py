"""
Webhook system for the dispute relay.

Provides subscription management, signed delivery, and delivery history.
"""

from .models import (
    WebhookEvent,
    WebhookEventType,
    WebhookSubscription,
    RegisterWebhookParams,
    DeliveryRecord,
    create_dispute_created_event,
    create_voting_started_event,
    create_vote_cast_event,
    create_resolved_event,
    create_appealed_event
)

from .security import WebhookSecurity, sign_webhook_payload, verify_webhook_signature
from .validation import WebhookValidator
from .registry import SubscriptionRegistry, InvalidSubscriptionError
from .history import DeliveryHistory
from .delivery import WebhookDeliveryService

__all__ = [
    # Models
    'WebhookEvent',
    'WebhookEventType',
    'WebhookSubscription',
    'RegisterWebhookParams',
    'DeliveryRecord',

    # Event factories
    'create_dispute_created_event',
    'create_voting_started_event',
    'create_vote_cast_event',
    'create_resolved_event',
    'create_appealed_event',

    # Services
    'WebhookSecurity',
    'WebhookValidator',
    'SubscriptionRegistry',
    'InvalidSubscriptionError',
    'DeliveryHistory',
    'WebhookDeliveryService',

    # Functions
    'sign_webhook_payload',
    'verify_webhook_signature'
]
