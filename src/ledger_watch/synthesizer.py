"""
Ledger Watch - Event Synthesizer

Turns successive reads of a dispute into semantic change events. The ledger
does not push notifications, so every event here is inferred by comparing a
fresh observation with the stored snapshot:

1. First sighting: a single `dispute.created`, whatever the dispute's age.
2. Vote tally: one `dispute.vote_cast` when any count went up.
3. Status: `dispute.voting_started` for OPEN -> VOTING, `dispute.resolved`
   for anything -> RESOLVED, `dispute.appealed` for anything -> APPEALED.
   Other transitions, including unknown status codes, emit nothing.

The snapshot is replaced after every observation. Nothing else is touched,
so with an injected clock and id factory the output is deterministic.
"""
import time
from typing import Callable, List, Optional
from uuid import uuid4

import structlog

from .models import DisputeObservation, DisputeStatus, EntitySnapshot, VoteChoice, VoteTally
from .snapshot_store import SnapshotStore
from ..webhooks.models import (
    WebhookEvent,
    create_appealed_event,
    create_dispute_created_event,
    create_resolved_event,
    create_vote_cast_event,
    create_voting_started_event,
)

logger = structlog.get_logger(__name__)


def infer_vote(previous: VoteTally, current: VoteTally) -> Optional[VoteChoice]:
    """Side whose count increased, checked claimant, respondent, abstain.

    Several votes may land between two polls; only the first increased side
    in that order is reported.
    """
    if current.for_claimant > previous.for_claimant:
        return VoteChoice.CLAIMANT
    if current.for_respondent > previous.for_respondent:
        return VoteChoice.RESPONDENT
    if current.abstained > previous.abstained:
        return VoteChoice.ABSTAIN
    return None


class EventSynthesizer:
    """Diffs observations against the SnapshotStore."""

    def __init__(
        self,
        store: SnapshotStore,
        chain_id: int,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], object] = uuid4,
    ):
        self.store = store
        self.chain_id = chain_id
        self.clock = clock
        self.id_factory = id_factory
        self.logger = logger.bind(component="event_synthesizer", chain_id=chain_id)

    def observe(
        self,
        entity_id: int,
        observation: DisputeObservation,
        block_number: Optional[int] = None,
    ) -> List[WebhookEvent]:
        """Compare a fresh read with the stored snapshot, then replace the snapshot."""
        now = self.clock()
        common = {
            "chain_id": self.chain_id,
            "timestamp": int(now),
            "block_number": block_number,
        }
        dispute = observation.dispute
        tally = observation.tally
        previous = self.store.get(entity_id)
        events: List[WebhookEvent] = []

        def stamp() -> dict:
            return {**common, "event_id": str(self.id_factory())}

        if previous is None:
            events.append(create_dispute_created_event(entity_id, dispute, tally, **stamp()))
        else:
            vote = infer_vote(previous.vote_tally, tally)
            if vote is not None:
                events.append(create_vote_cast_event(entity_id, vote, tally, **stamp()))

            if dispute.status != previous.status:
                if dispute.status == DisputeStatus.RESOLVED:
                    events.append(create_resolved_event(entity_id, dispute, tally, **stamp()))
                elif dispute.status == DisputeStatus.APPEALED:
                    events.append(create_appealed_event(entity_id, dispute, **stamp()))
                elif dispute.status == DisputeStatus.VOTING and previous.status == DisputeStatus.OPEN:
                    events.append(create_voting_started_event(entity_id, dispute, **stamp()))
                else:
                    self.logger.debug(
                        "Unmapped status transition ignored",
                        entity_id=entity_id,
                        old_status=previous.status,
                        new_status=dispute.status
                    )

        self.store.replace(
            entity_id,
            EntitySnapshot(
                status=dispute.status,
                vote_tally=tally,
                observed_at=now,
                block_number=block_number,
            )
        )

        if events:
            self.logger.info(
                "Events synthesized",
                entity_id=entity_id,
                event_types=[event.event_type.value for event in events]
            )
        return events
