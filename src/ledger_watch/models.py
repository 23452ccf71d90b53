"""
Ledger Watch - Observed Dispute State

Types describing what the read-only ledger client returns for a dispute and
what the snapshot store keeps between polls.
"""
from enum import Enum, IntEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class DisputeStatus(IntEnum):
    """On-ledger dispute lifecycle states."""
    NONE = 0
    OPEN = 1
    VOTING = 2
    RESOLVED = 3
    APPEALED = 4


class Ruling(IntEnum):
    """Final ruling of a resolved dispute."""
    REFUSED_TO_ARBITRATE = 0
    CLAIMANT = 1
    RESPONDENT = 2


class VoteChoice(str, Enum):
    """Wire values for the side a vote was cast for."""
    CLAIMANT = "claimant"
    RESPONDENT = "respondent"
    ABSTAIN = "abstain"


def status_name(status: int) -> str:
    """Lower-case status name; unknown codes are reported as unknown_<n>."""
    try:
        return DisputeStatus(status).name.lower()
    except ValueError:
        return f"unknown_{status}"


def ruling_text(ruling: int) -> str:
    if ruling == Ruling.CLAIMANT:
        return "claimant"
    if ruling == Ruling.RESPONDENT:
        return "respondent"
    return "refused"


class VoteTally(BaseModel):
    """Running vote counts. Side A is the claimant, side B the respondent."""
    model_config = ConfigDict(frozen=True)

    for_claimant: int = Field(0, ge=0)
    for_respondent: int = Field(0, ge=0)
    abstained: int = Field(0, ge=0)

    def to_payload(self) -> dict:
        return {
            "forClaimant": str(self.for_claimant),
            "forRespondent": str(self.for_respondent),
            "abstained": str(self.abstained),
        }


class DisputeRecord(BaseModel):
    """Dispute fields as returned by the ledger read client.

    `status` and `ruling` stay plain integers so codes added to the contract
    later still validate; the transition rules simply ignore them.
    """
    model_config = ConfigDict(frozen=True)

    status: int
    ruling: int = 0
    claimant: str
    respondent: str
    amount: int = Field(0, ge=0)
    evidence_uri: str = ""
    voting_deadline: int = 0
    appeal_round: int = 0
    required_votes: int = 0


class DisputeObservation(BaseModel):
    """One fresh read of a tracked dispute."""
    model_config = ConfigDict(frozen=True)

    dispute: DisputeRecord
    tally: VoteTally


class EntitySnapshot(BaseModel):
    """Last observed state of a tracked dispute; the diff baseline."""
    model_config = ConfigDict(frozen=True)

    status: int
    vote_tally: VoteTally
    observed_at: float
    block_number: Optional[int] = None
