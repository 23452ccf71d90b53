"""
Unit tests for event synthesis.
Tests first sighting, vote inference, status transitions, and snapshot replacement.
"""
import itertools

import pytest

from src.ledger_watch.models import (
    DisputeObservation, DisputeRecord, DisputeStatus, VoteChoice, VoteTally, ZERO_ADDRESS
)
from src.ledger_watch.snapshot_store import SnapshotStore
from src.ledger_watch.synthesizer import EventSynthesizer, infer_vote
from src.webhooks.models import WebhookEventType

from conftest import dispute_fields

NOW = 1700000000.75


def observation(status=DisputeStatus.OPEN, votes=(0, 0, 0), **overrides):
    return DisputeObservation(
        dispute=DisputeRecord(**dispute_fields(status=int(status), **overrides)),
        tally=VoteTally(for_claimant=votes[0], for_respondent=votes[1], abstained=votes[2]),
    )


@pytest.fixture
def store():
    return SnapshotStore()


@pytest.fixture
def synthesizer(store):
    counter = itertools.count(1)
    return EventSynthesizer(
        store,
        chain_id=84532,
        clock=lambda: NOW,
        id_factory=lambda: f"evt-{next(counter)}",
    )


def types(events):
    return [event.event_type for event in events]


class TestInferVote:
    """Test vote side inference from tally deltas."""

    def test_no_change(self):
        tally = VoteTally(for_claimant=1, for_respondent=1, abstained=1)
        assert infer_vote(tally, tally) is None

    def test_claimant_has_priority(self):
        previous = VoteTally()
        current = VoteTally(for_claimant=2, for_respondent=1, abstained=1)
        assert infer_vote(previous, current) == VoteChoice.CLAIMANT

    def test_respondent_before_abstain(self):
        previous = VoteTally(for_claimant=3)
        current = VoteTally(for_claimant=3, for_respondent=1, abstained=1)
        assert infer_vote(previous, current) == VoteChoice.RESPONDENT

    def test_abstain(self):
        assert infer_vote(VoteTally(), VoteTally(abstained=1)) == VoteChoice.ABSTAIN

    def test_decrease_is_not_a_vote(self):
        previous = VoteTally(for_claimant=2, for_respondent=2)
        current = VoteTally(for_claimant=1, for_respondent=2)
        assert infer_vote(previous, current) is None


class TestFirstSighting:
    """Test the first observation of a dispute."""

    def test_emits_single_created_event(self, synthesizer, store):
        events = synthesizer.observe(7, observation(votes=(1, 0, 0)))

        assert types(events) == [WebhookEventType.DISPUTE_CREATED]
        event = events[0]
        assert event.event_id == "evt-1"
        assert event.timestamp == 1700000000
        assert event.chain_id == 84532
        assert event.tx_hash is None
        assert event.data["disputeId"] == "7"
        assert event.data["amount"] == str(10 ** 18)
        assert event.data["status"] == "open"
        assert event.data["currentVotes"] == {
            "forClaimant": "1", "forRespondent": "0", "abstained": "0"
        }
        assert store.contains(7)

    def test_already_resolved_dispute_only_yields_created(self, synthesizer):
        events = synthesizer.observe(3, observation(DisputeStatus.RESOLVED, votes=(3, 1, 0), ruling=1))

        assert types(events) == [WebhookEventType.DISPUTE_CREATED]
        assert events[0].data["status"] == "resolved"

    def test_block_number_is_stamped(self, synthesizer, store):
        events = synthesizer.observe(1, observation(), block_number=12345)

        assert events[0].block_number == 12345
        assert store.get(1).block_number == 12345


class TestChangeDetection:
    """Test diffing against the stored snapshot."""

    def test_no_change_is_idempotent(self, synthesizer):
        synthesizer.observe(1, observation())

        assert synthesizer.observe(1, observation()) == []
        assert synthesizer.observe(1, observation()) == []

    def test_vote_cast_for_claimant(self, synthesizer):
        synthesizer.observe(1, observation(DisputeStatus.VOTING))
        events = synthesizer.observe(1, observation(DisputeStatus.VOTING, votes=(2, 1, 0)))

        assert types(events) == [WebhookEventType.DISPUTE_VOTE_CAST]
        data = events[0].data
        assert data["vote"] == "claimant"
        assert data["voter"] == ZERO_ADDRESS
        assert data["currentVotes"] == {"forClaimant": "2", "forRespondent": "1", "abstained": "0"}

    def test_vote_decrease_emits_nothing(self, synthesizer):
        synthesizer.observe(1, observation(DisputeStatus.VOTING, votes=(2, 0, 0)))
        assert synthesizer.observe(1, observation(DisputeStatus.VOTING, votes=(1, 0, 0))) == []

    def test_voting_started(self, synthesizer):
        synthesizer.observe(1, observation(DisputeStatus.OPEN))
        events = synthesizer.observe(1, observation(DisputeStatus.VOTING))

        assert types(events) == [WebhookEventType.DISPUTE_VOTING_STARTED]
        assert events[0].data == {
            "disputeId": "1",
            "votingDeadline": "1700003600",
            "requiredVotes": "3",
        }

    def test_resolved_carries_ruling_and_final_votes(self, synthesizer):
        synthesizer.observe(1, observation(DisputeStatus.VOTING, votes=(2, 1, 0)))
        events = synthesizer.observe(1, observation(DisputeStatus.RESOLVED, votes=(2, 1, 0), ruling=2))

        assert types(events) == [WebhookEventType.DISPUTE_RESOLVED]
        data = events[0].data
        assert data["ruling"] == 2
        assert data["rulingText"] == "respondent"
        assert data["finalVotes"]["forClaimant"] == "2"

    def test_appealed_from_resolved(self, synthesizer):
        synthesizer.observe(1, observation(DisputeStatus.RESOLVED))
        events = synthesizer.observe(
            1, observation(DisputeStatus.APPEALED, appeal_round=1, voting_deadline=1700090000)
        )

        assert types(events) == [WebhookEventType.DISPUTE_APPEALED]
        assert events[0].data["appealRound"] == 1
        assert events[0].data["newVotingDeadline"] == "1700090000"
        assert events[0].data["appellant"] == ZERO_ADDRESS

    def test_vote_event_precedes_status_event(self, synthesizer):
        synthesizer.observe(1, observation(DisputeStatus.VOTING, votes=(1, 0, 0)))
        events = synthesizer.observe(1, observation(DisputeStatus.RESOLVED, votes=(2, 0, 0), ruling=1))

        assert types(events) == [WebhookEventType.DISPUTE_VOTE_CAST, WebhookEventType.DISPUTE_RESOLVED]
        assert [event.event_id for event in events] == ["evt-2", "evt-3"]

    @pytest.mark.parametrize("old_status,new_status", [
        (DisputeStatus.NONE, DisputeStatus.VOTING),
        (DisputeStatus.APPEALED, DisputeStatus.VOTING),
        (DisputeStatus.VOTING, DisputeStatus.OPEN),
        (DisputeStatus.VOTING, 9),
    ])
    def test_unmapped_transitions_emit_nothing(self, synthesizer, old_status, new_status):
        synthesizer.observe(1, observation(old_status))
        assert synthesizer.observe(1, observation(new_status)) == []

    def test_snapshot_replaced_after_every_observation(self, synthesizer, store):
        synthesizer.observe(1, observation(DisputeStatus.VOTING))
        first = store.get(1)
        synthesizer.observe(1, observation(DisputeStatus.VOTING, votes=(0, 0, 1)))
        second = store.get(1)

        assert first is not second
        assert second.vote_tally.abstained == 1
        assert second.observed_at == NOW

    def test_unknown_status_becomes_new_baseline(self, synthesizer, store):
        synthesizer.observe(1, observation(DisputeStatus.VOTING))
        synthesizer.observe(1, observation(9))

        assert store.get(1).status == 9
        # From an unknown code, only transitions to RESOLVED/APPEALED are reported
        events = synthesizer.observe(1, observation(DisputeStatus.RESOLVED))
        assert types(events) == [WebhookEventType.DISPUTE_RESOLVED]

    def test_dropped_snapshot_is_a_new_first_sighting(self, synthesizer, store):
        synthesizer.observe(1, observation())
        store.drop(1)

        events = synthesizer.observe(1, observation())
        assert types(events) == [WebhookEventType.DISPUTE_CREATED]
