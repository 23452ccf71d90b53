"""
Webhook delivery history.

Bounded, append-only log of delivery outcomes for observability and tests.
"""

from collections import deque
from typing import Deque, List, Optional

from .models import DeliveryRecord


class DeliveryHistory:
    """Fixed-capacity ring of DeliveryRecords; the oldest are evicted first."""

    def __init__(self, max_entries: int = 1000):
        if max_entries < 1:
            raise ValueError("History must hold at least one entry")
        self.max_entries = max_entries
        self._records: Deque[DeliveryRecord] = deque(maxlen=max_entries)

    def record(self, record: DeliveryRecord) -> None:
        self._records.append(record)

    def query(
        self,
        subscription_id: Optional[str] = None,
        event_id: Optional[str] = None,
        success: Optional[bool] = None,
        limit: Optional[int] = None,
    ) -> List[DeliveryRecord]:
        """
        Get delivery records, oldest first.

        Args:
            subscription_id: Only records for this subscription
            event_id: Only records for this event
            success: Only successful (True) or failed (False) deliveries
            limit: Return just the most recent N matching records
        """
        records = [
            record for record in self._records
            if (subscription_id is None or record.subscription_id == subscription_id)
            and (event_id is None or record.event_id == event_id)
            and (success is None or record.success == success)
        ]
        if limit is not None:
            records = records[-limit:] if limit > 0 else []
        return records

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)
