"""
Shared fixtures: an aiohttp-shaped fake session and an in-memory ledger reader.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pytest

from src.ledger_watch.poller import LedgerReader

CLAIMANT = "0x1111111111111111111111111111111111111111"
RESPONDENT = "0x2222222222222222222222222222222222222222"

HANG = object()


@dataclass
class RecordedPost:
    url: str
    data: bytes
    headers: Dict[str, str]
    timeout: Any = None
    allow_redirects: Optional[bool] = None


class FakeResponse:
    def __init__(self, status: int, reason: Optional[str] = None):
        self.status = status
        self.reason = reason or ("OK" if 200 <= status < 300 else "Error")

    async def read(self) -> bytes:
        return b""


class _PostContext:
    def __init__(self, outcome):
        self.outcome = outcome

    async def __aenter__(self):
        if self.outcome is HANG:
            await asyncio.sleep(3600)
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return FakeResponse(self.outcome)

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Scripted stand-in for aiohttp.ClientSession.post.

    Each call consumes the next outcome: an int status, an exception instance
    to raise, or HANG to block until cancelled. The last outcome repeats.
    """

    def __init__(self, outcomes=None):
        self.outcomes: List[Any] = list(outcomes) if outcomes else [200]
        self.calls: List[RecordedPost] = []
        self.closed = False

    def post(self, url, data=None, headers=None, timeout=None, allow_redirects=True):
        self.calls.append(RecordedPost(url, data, dict(headers or {}), timeout, allow_redirects))
        index = min(len(self.calls) - 1, len(self.outcomes) - 1)
        return _PostContext(self.outcomes[index])

    async def close(self):
        self.closed = True


class _GatedContext:
    def __init__(self, session: "GatedSession"):
        self.session = session

    async def __aenter__(self):
        session = self.session
        session.in_flight += 1
        session.max_in_flight = max(session.max_in_flight, session.in_flight)
        if session.in_flight >= session.release_at:
            session.released.set()
        await session.released.wait()
        await asyncio.sleep(0.01)
        return FakeResponse(200)

    async def __aexit__(self, exc_type, exc, tb):
        self.session.in_flight -= 1
        return False


class GatedSession(FakeSession):
    """Holds every request until release_at of them are in flight at once."""

    def __init__(self, release_at: int):
        super().__init__([200])
        self.release_at = release_at
        self.released = asyncio.Event()
        self.in_flight = 0
        self.max_in_flight = 0

    def post(self, url, data=None, headers=None, timeout=None, allow_redirects=True):
        super().post(url, data=data, headers=headers, timeout=timeout, allow_redirects=allow_redirects)
        return _GatedContext(self)


def dispute_fields(**overrides) -> Dict[str, Any]:
    fields = {
        "status": 1,
        "ruling": 0,
        "claimant": CLAIMANT,
        "respondent": RESPONDENT,
        "amount": 10 ** 18,
        "evidence_uri": "ipfs://evidence",
        "voting_deadline": 1700003600,
        "appeal_round": 0,
        "required_votes": 3,
    }
    fields.update(overrides)
    return fields


@dataclass
class FakeLedgerReader(LedgerReader):
    """Mutable in-memory ledger; tests edit disputes/tallies between polls."""
    disputes: Dict[int, Dict[str, Any]] = field(default_factory=dict)
    tallies: Dict[int, Dict[str, int]] = field(default_factory=dict)
    failures: Dict[int, BaseException] = field(default_factory=dict)
    hanging: set = field(default_factory=set)
    block_number: Optional[int] = None
    block_error: Optional[BaseException] = None
    gate: Optional[asyncio.Event] = None
    reads: List[int] = field(default_factory=list)

    def add(self, dispute_id: int, **overrides) -> None:
        self.disputes[dispute_id] = dispute_fields(**overrides)
        self.tallies.setdefault(dispute_id, {"for_claimant": 0, "for_respondent": 0, "abstained": 0})

    def set_votes(self, dispute_id: int, for_claimant=0, for_respondent=0, abstained=0) -> None:
        self.tallies[dispute_id] = {
            "for_claimant": for_claimant,
            "for_respondent": for_respondent,
            "abstained": abstained,
        }

    def set_status(self, dispute_id: int, status: int, **overrides) -> None:
        self.disputes[dispute_id] = {**self.disputes[dispute_id], "status": status, **overrides}

    async def get_dispute(self, dispute_id):
        self.reads.append(dispute_id)
        if self.gate is not None:
            await self.gate.wait()
        if dispute_id in self.hanging:
            await asyncio.sleep(3600)
        if dispute_id in self.failures:
            raise self.failures[dispute_id]
        return dict(self.disputes[dispute_id])

    async def get_vote_tally(self, dispute_id):
        return dict(self.tallies.get(dispute_id, {}))

    async def get_block_number(self):
        if self.block_error is not None:
            raise self.block_error
        return self.block_number


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def ledger_reader():
    reader = FakeLedgerReader()
    reader.add(1)
    return reader
