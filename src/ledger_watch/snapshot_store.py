"""
Ledger Watch - Snapshot Store

Keyed cache of the last observed state of each tracked dispute. Snapshots
are frozen and replaced whole on every successful poll; a missing entry
means the dispute has not been observed yet.
"""
from typing import Optional

import structlog

from .models import EntitySnapshot
from ..shared.repository import InMemoryRepository, KeyValueRepository

logger = structlog.get_logger(__name__)


class SnapshotStore:
    """Diff baselines, keyed by dispute id."""

    def __init__(self, repository: Optional[KeyValueRepository[int, EntitySnapshot]] = None):
        self.repository = repository if repository is not None else InMemoryRepository()

    def get(self, entity_id: int) -> Optional[EntitySnapshot]:
        return self.repository.get(entity_id)

    def replace(self, entity_id: int, snapshot: EntitySnapshot) -> None:
        self.repository.put(entity_id, snapshot)

    def drop(self, entity_id: int) -> bool:
        """Forget an entity so its next observation counts as a first sighting."""
        dropped = self.repository.delete(entity_id)
        if dropped:
            logger.debug("Snapshot dropped", entity_id=entity_id)
        return dropped

    def contains(self, entity_id: int) -> bool:
        return entity_id in self.repository

    def __len__(self) -> int:
        return len(self.repository)
