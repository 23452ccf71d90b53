"""
Ledger Watch - Dispute Polling System

This module implements the periodic poll loop. Each tick reads every tracked
dispute through the ledger read client, feeds the result to the
EventSynthesizer, and emits the resulting events on the EventBus. Disputes
are independent fault domains: a failing or slow read is logged and bounded
by its own timeout without affecting the rest of the tick.
"""
import asyncio
import time
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union
from dataclasses import dataclass, field

import structlog
from pydantic import ValidationError

from .event_bus import EventBus
from .models import DisputeObservation, DisputeRecord, VoteTally
from .synthesizer import EventSynthesizer
from ..shared.logging_config import CorrelationContext
from ..webhooks.models import WebhookEvent

logger = structlog.get_logger(__name__)


class LedgerReader(ABC):
    """Read-only view of the dispute contract.

    Implementations wrap an RPC client. Responses may be model instances or
    plain mappings with the same field names.
    """

    @abstractmethod
    async def get_dispute(self, dispute_id: int) -> Union[DisputeRecord, Mapping[str, Any]]:
        """Current dispute fields."""

    @abstractmethod
    async def get_vote_tally(self, dispute_id: int) -> Union[VoteTally, Mapping[str, Any]]:
        """Current vote counts."""

    async def get_block_number(self) -> Optional[int]:
        """Head block number, if the client can provide it."""
        return None


@dataclass
class PollResult:
    """Result of polling one dispute."""
    entity_id: int
    success: bool
    poll_time: datetime
    events: List[WebhookEvent] = field(default_factory=list)
    error: Optional[str] = None
    response_time: float = 0.0

    @property
    def event_count(self) -> int:
        return len(self.events)


class PollScheduler:
    """Drives fetch-and-synthesize cycles for the tracked dispute set."""

    def __init__(
        self,
        reader: LedgerReader,
        synthesizer: EventSynthesizer,
        event_bus: EventBus,
        interval_seconds: float = 30.0,
        fetch_timeout_seconds: float = 10.0,
        max_concurrent_polls: int = 5,
        entity_ids: Iterable[int] = (),
    ):
        self.reader = reader
        self.synthesizer = synthesizer
        self.event_bus = event_bus
        self.interval_seconds = interval_seconds
        self.fetch_timeout_seconds = fetch_timeout_seconds
        self.max_concurrent_polls = max_concurrent_polls
        self.logger = logger.bind(component="poll_scheduler")

        self._tracked: Set[int] = set(entity_ids)
        self._running = False
        self._wakeup: Optional[asyncio.Event] = None
        self._loop_task: Optional[asyncio.Task] = None
        self.total_cycles = 0
        self.total_events = 0
        self.failed_polls = 0
        self.last_cycle_at: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def tracked_ids(self) -> List[int]:
        return sorted(self._tracked)

    def add_tracked(self, entity_id: int) -> bool:
        """Start tracking a dispute from the next tick on."""
        if entity_id in self._tracked:
            return False
        self._tracked.add(entity_id)
        self.logger.info("Dispute tracked", entity_id=entity_id)
        return True

    def remove_tracked(self, entity_id: int) -> bool:
        """Stop tracking a dispute and forget its snapshot."""
        if entity_id not in self._tracked:
            return False
        self._tracked.discard(entity_id)
        self.synthesizer.store.drop(entity_id)
        self.logger.info("Dispute untracked", entity_id=entity_id)
        return True

    async def start(self) -> None:
        """Poll once immediately, then every interval. No-op if already running."""
        if self._running:
            return

        # A loop from a previous stop() may still be finishing its tick
        await self.wait_stopped()
        if self._running:
            return

        self._running = True
        self._wakeup = asyncio.Event()
        self.logger.info(
            "Starting continuous polling",
            interval_seconds=self.interval_seconds,
            tracked=len(self._tracked)
        )

        await self.poll_once()
        if self._running:
            self._loop_task = asyncio.create_task(self._run_loop(self._wakeup))

    def stop(self) -> None:
        """Cancel future ticks. A tick already in progress runs to completion."""
        if not self._running:
            return

        self._running = False
        if self._wakeup is not None:
            self._wakeup.set()
        self.logger.info("Stopping continuous polling")

    async def wait_stopped(self) -> None:
        """Wait for the loop task to exit after stop()."""
        if self._loop_task is not None:
            await asyncio.gather(self._loop_task, return_exceptions=True)
            self._loop_task = None

    async def _run_loop(self, wakeup: asyncio.Event) -> None:
        while self._running and not wakeup.is_set():
            try:
                await asyncio.wait_for(wakeup.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

            if not self._running or wakeup.is_set():
                break

            try:
                await self.poll_once()
            except Exception as e:
                self.logger.error("Error in polling cycle", error=str(e))

    async def poll_once(self) -> Dict[str, Any]:
        """Run one complete polling cycle over the current tracked set."""
        cycle_start = time.time()
        entity_ids = self.tracked_ids

        with CorrelationContext(f"poll-{uuid.uuid4().hex[:12]}"):
            block_number = await self._read_block_number()

            semaphore = asyncio.Semaphore(self.max_concurrent_polls)

            async def bounded(entity_id: int) -> PollResult:
                async with semaphore:
                    return await self.poll_entity(entity_id, block_number)

            results = await asyncio.gather(*(bounded(entity_id) for entity_id in entity_ids))

            successful_polls = sum(1 for r in results if r.success)
            total_events = sum(r.event_count for r in results)
            cycle_time = time.time() - cycle_start

            self.total_cycles += 1
            self.total_events += total_events
            self.failed_polls += len(results) - successful_polls
            self.last_cycle_at = datetime.now(timezone.utc)

            self.logger.info(
                "Polling cycle completed",
                entities_polled=len(entity_ids),
                successful_polls=successful_polls,
                events=total_events,
                cycle_time=cycle_time
            )

        return {
            "entities_polled": len(entity_ids),
            "successful_polls": successful_polls,
            "events": total_events,
            "cycle_time": cycle_time,
            "results": list(results),
        }

    async def _read_block_number(self) -> Optional[int]:
        try:
            return await asyncio.wait_for(
                self.reader.get_block_number(),
                timeout=self.fetch_timeout_seconds
            )
        except Exception as e:
            self.logger.warning("Block number unavailable", error=str(e) or type(e).__name__)
            return None

    async def poll_entity(self, entity_id: int, block_number: Optional[int] = None) -> PollResult:
        """Fetch, diff and emit for a single dispute. Never raises."""
        start_time = time.time()
        poll_time = datetime.now(timezone.utc)

        try:
            observation = await asyncio.wait_for(
                self._fetch_observation(entity_id),
                timeout=self.fetch_timeout_seconds
            )

            if entity_id not in self._tracked:
                # Untracked while the read was in flight; keep the store clean
                return PollResult(
                    entity_id=entity_id,
                    success=True,
                    poll_time=poll_time,
                    response_time=time.time() - start_time
                )

            events = self.synthesizer.observe(entity_id, observation, block_number)
            for event in events:
                self.event_bus.emit(event)

            return PollResult(
                entity_id=entity_id,
                success=True,
                poll_time=poll_time,
                events=events,
                response_time=time.time() - start_time
            )

        except asyncio.TimeoutError:
            error_msg = f"Fetch timeout after {self.fetch_timeout_seconds} seconds"
        except ValidationError as e:
            error_msg = f"Malformed ledger response: {e.error_count()} validation errors"
        except Exception as e:
            error_msg = str(e) or type(e).__name__

        self.logger.error(
            "Dispute poll failed",
            entity_id=entity_id,
            error=error_msg,
            response_time=time.time() - start_time
        )
        return PollResult(
            entity_id=entity_id,
            success=False,
            poll_time=poll_time,
            error=error_msg,
            response_time=time.time() - start_time
        )

    async def _fetch_observation(self, entity_id: int) -> DisputeObservation:
        raw_dispute, raw_tally = await asyncio.gather(
            self.reader.get_dispute(entity_id),
            self.reader.get_vote_tally(entity_id)
        )
        dispute = raw_dispute if isinstance(raw_dispute, DisputeRecord) else DisputeRecord.model_validate(raw_dispute)
        tally = raw_tally if isinstance(raw_tally, VoteTally) else VoteTally.model_validate(raw_tally)
        return DisputeObservation(dispute=dispute, tally=tally)

    def get_status(self) -> Dict[str, Any]:
        """Get current poller status."""
        return {
            "running": self._running,
            "tracked_ids": self.tracked_ids,
            "snapshots": len(self.synthesizer.store),
            "total_cycles": self.total_cycles,
            "total_events": self.total_events,
            "failed_polls": self.failed_polls,
            "last_cycle_at": self.last_cycle_at.isoformat() if self.last_cycle_at else None,
        }
