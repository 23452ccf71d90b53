"""
Integration tests for the relay service: ledger reads through to webhook POSTs.
"""
from unittest.mock import patch

import pytest

from src.ledger_watch.models import DisputeStatus
from src.ledger_watch.service import WebhookRelayService
from src.shared.config import ChainSettings, DeliverySettings, PollerSettings, Settings
from src.webhooks.models import RegisterWebhookParams, WebhookEventType
from src.webhooks.security import SIGNATURE_HEADER, verify_webhook_signature

from conftest import FakeSession

SECRET = "relay-secret"


@pytest.fixture
def settings():
    return Settings(
        chain=ChainSettings(name="base"),
        poller=PollerSettings(interval_seconds=60, entity_ids=[1]),
        delivery=DeliverySettings(retry_delay_seconds=0, max_retries=2),
    )


@pytest.fixture
def session():
    return FakeSession([200])


@pytest.fixture
def relay(ledger_reader, settings, session):
    return WebhookRelayService(ledger_reader, settings=settings, session=session)


class TestWebhookRelayService:
    """Test the wired pipeline."""

    @pytest.mark.asyncio
    async def test_start_delivers_first_sighting(self, relay, session):
        subscription = relay.register_webhook(RegisterWebhookParams(url="https://example.com/hook", secret=SECRET))

        await relay.start()
        await relay.event_bus.drain()
        await relay.stop()

        assert len(session.calls) == 1
        call = session.calls[0]
        assert call.headers["X-Webhook-Event"] == "dispute.created"
        assert verify_webhook_signature(call.data, call.headers[SIGNATURE_HEADER], SECRET)
        assert b'"chainId":8453' in call.data

        records = relay.history.query(subscription_id=subscription.id)
        assert len(records) == 1
        assert records[0].success is True

    @pytest.mark.asyncio
    async def test_local_listeners_and_changes(self, relay, ledger_reader, session):
        seen = []
        relay.on_event(WebhookEventType.DISPUTE_VOTING_STARTED, seen.append)
        relay.register_webhook(RegisterWebhookParams(
            url="https://example.com/hook",
            events=[WebhookEventType.DISPUTE_VOTING_STARTED],
        ))

        await relay.poller.poll_once()
        ledger_reader.set_status(1, DisputeStatus.VOTING)
        await relay.poller.poll_once()
        await relay.event_bus.drain()

        assert len(seen) == 1
        assert len(session.calls) == 1
        assert session.calls[0].headers["X-Webhook-Event"] == "dispute.voting_started"

    @pytest.mark.asyncio
    async def test_failed_delivery_recorded(self, ledger_reader, settings):
        session = FakeSession([502])
        relay = WebhookRelayService(ledger_reader, settings=settings, session=session)
        relay.register_webhook(RegisterWebhookParams(url="https://example.com/hook"))

        await relay.poller.poll_once()
        await relay.event_bus.drain()

        assert len(session.calls) == 2
        failed = relay.history.query(success=False)
        assert len(failed) == 1
        assert failed[0].attempt == 2

    @pytest.mark.asyncio
    async def test_track_and_untrack(self, relay, ledger_reader):
        ledger_reader.add(2)

        assert relay.track(2) is True
        await relay.poller.poll_once()
        assert relay.store.contains(2)

        assert relay.untrack(2) is True
        assert not relay.store.contains(2)

    @pytest.mark.asyncio
    async def test_stop_leaves_injected_session_open(self, relay, session):
        await relay.start()
        await relay.stop()

        assert relay.poller.running is False
        assert relay.delivery.stopped is True
        assert session.closed is False

    def test_status(self, relay):
        status = relay.get_status()

        assert status["poller"]["tracked_ids"] == [1]
        assert status["delivery"]["subscriptions"] == 0

    def test_logging_configured_on_request(self, ledger_reader, settings, session):
        with patch("src.ledger_watch.service.setup_logging_from_settings") as setup:
            WebhookRelayService(ledger_reader, settings=settings, session=session, configure_logging=True)

        setup.assert_called_once_with(settings)

    def test_logging_left_alone_by_default(self, ledger_reader, settings, session):
        with patch("src.ledger_watch.service.setup_logging_from_settings") as setup:
            WebhookRelayService(ledger_reader, settings=settings, session=session)

        setup.assert_not_called()
