"""
Webhook data models.

Defines the data structures used for webhook events, subscriptions and
delivery records.
"""

import time
from enum import Enum
from typing import Dict, Any, Optional, List
from uuid import uuid4
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..ledger_watch.models import (
    DisputeRecord, VoteTally, VoteChoice, ZERO_ADDRESS, ruling_text, status_name
)

# Payload roles that carry an address, used by subscription address filters
ADDRESS_FIELDS = ("claimant", "respondent", "payer", "payee", "voter")


class WebhookEventType(str, Enum):
    """Webhook event types."""
    DISPUTE_CREATED = "dispute.created"
    DISPUTE_VOTING_STARTED = "dispute.voting_started"
    DISPUTE_VOTE_CAST = "dispute.vote_cast"
    DISPUTE_RESOLVED = "dispute.resolved"
    DISPUTE_APPEALED = "dispute.appealed"


def _now_seconds() -> int:
    return int(time.time())


class WebhookEvent(BaseModel):
    """Synthesized change event. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    event_type: WebhookEventType = Field(..., description="Type of event")
    event_id: str = Field(default_factory=lambda: str(uuid4()), description="Unique event identifier")
    timestamp: int = Field(default_factory=_now_seconds, description="Emission time, unix seconds")
    chain_id: int = Field(..., description="Chain the dispute lives on")
    tx_hash: Optional[str] = Field(None, description="Originating transaction, unknown when polling")
    block_number: Optional[int] = Field(None, description="Head block when the change was observed")
    data: Dict[str, Any] = Field(default_factory=dict, description="Event payload")

    @property
    def entity_id(self) -> Optional[int]:
        """Dispute id carried in the payload, if any."""
        value = self.data.get("disputeId")
        if value is None:
            return None
        return int(value)

    def addresses(self) -> List[str]:
        """Lower-cased addresses found in role-specific payload fields."""
        return [
            str(self.data[field]).lower()
            for field in ADDRESS_FIELDS
            if self.data.get(field)
        ]

    def to_webhook_payload(self) -> Dict[str, Any]:
        """Convert to webhook payload format."""
        payload = {
            "type": self.event_type.value,
            "eventId": self.event_id,
            "timestamp": self.timestamp,
            "chainId": self.chain_id,
            "data": self.data,
        }
        if self.tx_hash:
            payload["txHash"] = self.tx_hash
        if self.block_number is not None:
            payload["blockNumber"] = str(self.block_number)
        return payload


class RegisterWebhookParams(BaseModel):
    """Parameters accepted by SubscriptionRegistry.register."""
    url: str = Field(..., description="Webhook URL")
    events: List[WebhookEventType] = Field(
        default_factory=list,
        description="Event types to deliver (empty = all)"
    )
    filter_addresses: List[str] = Field(default_factory=list, description="Participant addresses")
    filter_entity_ids: List[int] = Field(default_factory=list, description="Dispute ids")
    secret: Optional[str] = Field(None, description="Secret for signature generation")

    @field_validator("filter_addresses")
    @classmethod
    def normalize_addresses(cls, v):
        return [address.lower() for address in v]


class WebhookSubscription(BaseModel):
    """Registered webhook endpoint. Only the registry replaces it."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()), description="Unique subscription identifier")
    url: str = Field(..., description="Webhook URL")
    events: List[WebhookEventType] = Field(default_factory=list)
    filter_addresses: List[str] = Field(default_factory=list)
    filter_entity_ids: List[int] = Field(default_factory=list)
    secret: Optional[str] = Field(None, repr=False)
    active: bool = Field(default=True)
    created_at: int = Field(default_factory=_now_seconds)

    def matches_event(self, event: WebhookEvent) -> bool:
        """Check if this subscription should receive the event."""
        if not self.active:
            return False

        if self.events and event.event_type not in self.events:
            return False

        if self.filter_addresses:
            event_addresses = event.addresses()
            if not any(address in event_addresses for address in self.filter_addresses):
                return False

        if self.filter_entity_ids:
            if event.entity_id not in self.filter_entity_ids:
                return False

        return True


class DeliveryRecord(BaseModel):
    """Outcome of one delivery: every attempt for one event to one subscription."""
    model_config = ConfigDict(frozen=True)

    delivery_id: str
    event_id: str
    subscription_id: str
    status_code: Optional[int] = None
    success: bool
    error: Optional[str] = None
    attempt: int = Field(..., ge=0, description="HTTP calls actually issued")
    timestamp: int = Field(default_factory=_now_seconds)


def create_dispute_created_event(
    dispute_id: int,
    dispute: DisputeRecord,
    tally: VoteTally,
    **kwargs
) -> WebhookEvent:
    """First sighting of a dispute, carrying all of its current fields."""
    return WebhookEvent(
        event_type=WebhookEventType.DISPUTE_CREATED,
        data={
            "disputeId": str(dispute_id),
            "claimant": dispute.claimant,
            "respondent": dispute.respondent,
            "amount": str(dispute.amount),
            "evidenceURI": dispute.evidence_uri,
            "votingDeadline": str(dispute.voting_deadline),
            "status": status_name(dispute.status),
            "currentVotes": tally.to_payload(),
        },
        **kwargs
    )


def create_voting_started_event(dispute_id: int, dispute: DisputeRecord, **kwargs) -> WebhookEvent:
    return WebhookEvent(
        event_type=WebhookEventType.DISPUTE_VOTING_STARTED,
        data={
            "disputeId": str(dispute_id),
            "votingDeadline": str(dispute.voting_deadline),
            "requiredVotes": str(dispute.required_votes),
        },
        **kwargs
    )


def create_vote_cast_event(
    dispute_id: int,
    vote: VoteChoice,
    tally: VoteTally,
    **kwargs
) -> WebhookEvent:
    """Aggregated vote change; the individual voter cannot be recovered by polling."""
    return WebhookEvent(
        event_type=WebhookEventType.DISPUTE_VOTE_CAST,
        data={
            "disputeId": str(dispute_id),
            "voter": ZERO_ADDRESS,
            "vote": vote.value,
            "currentVotes": tally.to_payload(),
        },
        **kwargs
    )


def create_resolved_event(
    dispute_id: int,
    dispute: DisputeRecord,
    tally: VoteTally,
    **kwargs
) -> WebhookEvent:
    return WebhookEvent(
        event_type=WebhookEventType.DISPUTE_RESOLVED,
        data={
            "disputeId": str(dispute_id),
            "ruling": dispute.ruling,
            "rulingText": ruling_text(dispute.ruling),
            "finalVotes": tally.to_payload(),
        },
        **kwargs
    )


def create_appealed_event(dispute_id: int, dispute: DisputeRecord, **kwargs) -> WebhookEvent:
    return WebhookEvent(
        event_type=WebhookEventType.DISPUTE_APPEALED,
        data={
            "disputeId": str(dispute_id),
            "appellant": ZERO_ADDRESS,
            "appealRound": dispute.appeal_round,
            "newVotingDeadline": str(dispute.voting_deadline),
        },
        **kwargs
    )
