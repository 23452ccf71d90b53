"""
Webhook delivery system.

Handles signed webhook delivery with bounded retries, exponential backoff,
and per-attempt timeouts. Delivery is best-effort: failures are recorded in
the history and logged, never raised to the caller.
"""

import asyncio
import logging
from typing import Dict, Any, List, Optional, Tuple
import aiohttp
from aiohttp import ClientTimeout, ClientError

from .models import WebhookEvent, WebhookSubscription, DeliveryRecord
from .history import DeliveryHistory
from .registry import SubscriptionRegistry
from .security import WebhookSecurity
from .validation import WebhookValidator
from ..shared import serialization

logger = logging.getLogger(__name__)


class WebhookDeliveryService:
    """Delivers events to matching subscriptions with retry logic and error handling."""

    def __init__(
        self,
        registry: SubscriptionRegistry,
        history: Optional[DeliveryHistory] = None,
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
        timeout_seconds: float = 10.0,
        max_concurrent_deliveries: int = 10,
        store_history: bool = True,
        user_agent: str = "Dispute-Webhook-Relay/1.0",
        session: Optional[aiohttp.ClientSession] = None,
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self.registry = registry
        self.history = history if history is not None else DeliveryHistory()
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.timeout_seconds = timeout_seconds
        self.max_concurrent_deliveries = max_concurrent_deliveries
        self.store_history = store_history
        self.user_agent = user_agent

        self._session = session
        self._owns_session = session is None
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._stopped = asyncio.Event()
        self.stats = {
            'total_deliveries': 0,
            'successful_deliveries': 0,
            'failed_deliveries': 0,
            'retries_attempted': 0,
        }

    @classmethod
    def from_settings(cls, registry: SubscriptionRegistry, settings, **kwargs) -> "WebhookDeliveryService":
        """Build a service from DeliverySettings."""
        history = kwargs.pop("history", None)
        if history is None:
            history = DeliveryHistory(settings.max_history_entries)
        return cls(
            registry,
            history=history,
            max_retries=settings.max_retries,
            retry_delay_seconds=settings.retry_delay_seconds,
            timeout_seconds=settings.timeout_seconds,
            max_concurrent_deliveries=settings.max_concurrent_deliveries,
            store_history=settings.store_history,
            user_agent=settings.user_agent,
            **kwargs
        )

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def start(self) -> None:
        """Accept new attempts again after a stop()."""
        self._stopped.clear()

    def stop(self) -> None:
        """Refuse attempts that have not started yet; in-flight requests finish."""
        if not self._stopped.is_set():
            self._stopped.set()
            logger.info("Webhook delivery stopped")

    async def close(self) -> None:
        """Stop delivering and release the HTTP session if this service created it."""
        self.stop()
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def dispatch(self, event: WebhookEvent) -> List[DeliveryRecord]:
        """
        Deliver event to every matching subscription.

        Subscriptions are delivered concurrently; each one retries on its
        own. Never raises.

        Args:
            event: Event to deliver

        Returns:
            Delivery records for deliveries that issued at least one request
        """
        try:
            subscriptions = self.registry.find_matching(event)
            if not subscriptions:
                logger.debug(f"No matching subscriptions for event {event.event_type.value}")
                return []

            body = serialization.dumps_bytes(event.to_webhook_payload())

            results = await asyncio.gather(
                *(self._deliver_bounded(subscription, event, body) for subscription in subscriptions),
                return_exceptions=True
            )

            records = []
            for subscription, result in zip(subscriptions, results):
                if isinstance(result, BaseException):
                    logger.error(f"Error delivering {event.event_id} to {subscription.id}: {result}")
                elif result is not None:
                    records.append(result)

            logger.info(
                f"Dispatched event {event.event_type.value} to {len(subscriptions)} subscriptions, "
                f"{sum(1 for r in records if r.success)} succeeded"
            )
            return records

        except Exception as e:
            logger.error(f"Error dispatching event {event.event_id}: {e}")
            return []

    async def _deliver_bounded(
        self,
        subscription: WebhookSubscription,
        event: WebhookEvent,
        body: bytes
    ) -> Optional[DeliveryRecord]:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrent_deliveries)
        async with self._semaphore:
            return await self.deliver_to_subscription(subscription, event, body)

    async def deliver_to_subscription(
        self,
        subscription: WebhookSubscription,
        event: WebhookEvent,
        body: Optional[bytes] = None
    ) -> Optional[DeliveryRecord]:
        """
        Run the full attempt sequence for one event and one subscription.

        Returns None when the service was stopped before the first attempt.
        """
        if body is None:
            body = serialization.dumps_bytes(event.to_webhook_payload())

        delivery_id = WebhookSecurity.create_delivery_id()
        headers = self._build_headers(subscription, event, delivery_id, body)

        attempt = 0
        success = False
        status_code: Optional[int] = None
        last_error: Optional[str] = None

        while attempt < self.max_retries:
            if self.stopped:
                logger.warning(f"Delivery {delivery_id} cancelled after {attempt} attempts")
                if last_error is None:
                    last_error = "Delivery cancelled"
                break

            attempt += 1
            if attempt > 1:
                self.stats['retries_attempted'] += 1

            status_code, last_error = await self._attempt_delivery(subscription, body, headers)
            if last_error is None:
                success = True
                break

            if attempt < self.max_retries:
                delay = self.retry_delay_seconds * (2 ** (attempt - 1))
                logger.info(
                    f"Webhook delivery failed, retrying {attempt}/{self.max_retries} in {delay}s: "
                    f"{delivery_id} ({last_error})"
                )
                await self._backoff(delay)

        if attempt == 0:
            return None

        record = DeliveryRecord(
            delivery_id=delivery_id,
            event_id=event.event_id,
            subscription_id=subscription.id,
            status_code=status_code,
            success=success,
            error=None if success else last_error,
            attempt=attempt,
        )

        self.stats['total_deliveries'] += 1
        if success:
            self.stats['successful_deliveries'] += 1
            logger.info(f"Webhook delivered successfully: {delivery_id} (attempt {attempt})")
        else:
            self.stats['failed_deliveries'] += 1
            logger.error(
                f"Failed to deliver {event.event_type.value} to {subscription.url} "
                f"after {attempt} attempts: {last_error}"
            )

        if self.store_history:
            self.history.record(record)

        return record

    def _build_headers(
        self,
        subscription: WebhookSubscription,
        event: WebhookEvent,
        delivery_id: str,
        body: bytes
    ) -> Dict[str, str]:
        headers = {
            'Content-Type': 'application/json',
            'User-Agent': self.user_agent,
            'X-Webhook-Event': event.event_type.value,
            'X-Webhook-Delivery': delivery_id,
            'X-Webhook-Timestamp': str(event.timestamp),
        }
        headers.update(WebhookSecurity.create_signature_headers(body, subscription.secret))
        return headers

    async def _attempt_delivery(
        self,
        subscription: WebhookSubscription,
        body: bytes,
        headers: Dict[str, str]
    ) -> Tuple[Optional[int], Optional[str]]:
        """One HTTP call. Returns (status_code, error); error is None on success."""
        try:
            status, reason = await asyncio.wait_for(
                self._post(subscription.url, body, headers),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            return None, f"Request timeout after {self.timeout_seconds} seconds"
        except ClientError as e:
            return None, f"HTTP client error: {str(e)}"
        except Exception as e:
            return None, f"Unexpected error: {str(e)}"

        is_success, error_msg = WebhookValidator.validate_webhook_response(status, reason)
        return status, error_msg

    async def _post(self, url: str, body: bytes, headers: Dict[str, str]) -> Tuple[int, Optional[str]]:
        session = self._get_session()
        async with session.post(
            url,
            data=body,
            headers=headers,
            timeout=ClientTimeout(total=self.timeout_seconds),
            allow_redirects=False  # Don't follow redirects for security
        ) as response:
            await response.read()
            return response.status, response.reason

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _backoff(self, delay: float) -> None:
        """Sleep between attempts; wakes early when the service is stopped."""
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    def get_stats(self) -> Dict[str, Any]:
        """Get delivery service statistics."""
        return {
            **self.stats,
            'subscriptions': len(self.registry),
            'history_size': len(self.history),
            'max_concurrent_deliveries': self.max_concurrent_deliveries,
        }
