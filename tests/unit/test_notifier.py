"""Unit tests for the webhook notifier"""

import httpx
import pytest
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, patch

from oar_engine.domain.exceptions import NotificationFailure
from oar_engine.domain.models import BillEvent
from oar_engine.infrastructure.clients.notifier import LogNotifier, WebhookNotifier

WEBHOOK_URL = "http://notifications.test/hooks/bills"


@pytest.fixture
def event() -> BillEvent:
    return BillEvent(
        kind="overdue",
        bill_id="bill-1",
        title="Rent",
        amount_cents=150000,
        due_date=date(2025, 1, 5),
        occurred_at=datetime(2025, 1, 10, 9, 0, tzinfo=timezone.utc),
    )


def _response(status: int) -> httpx.Response:
    return httpx.Response(status, request=httpx.Request("POST", WEBHOOK_URL))


def test_event_payload(event: BillEvent):
    assert event.to_payload() == {
        "event": "BILL_OVERDUE",
        "bill_id": "bill-1",
        "title": "Rent",
        "amount_cents": 150000,
        "due_date": "2025-01-05",
        "occurred_at": "2025-01-10T09:00:00+00:00",
    }


@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_send_posts_payload(mock_post: AsyncMock, event: BillEvent):
    mock_post.return_value = _response(202)
    notifier = WebhookNotifier(webhook_url=WEBHOOK_URL, max_retries=3, backoff_base=0)

    await notifier.send(event)

    mock_post.assert_awaited_once_with(WEBHOOK_URL, json=event.to_payload())


@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_send_retries_then_succeeds(mock_post: AsyncMock, event: BillEvent):
    mock_post.side_effect = [httpx.ConnectError("refused"), _response(503), _response(200)]
    notifier = WebhookNotifier(webhook_url=WEBHOOK_URL, max_retries=3, backoff_base=0)

    await notifier.send(event)

    assert mock_post.await_count == 3


@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_send_gives_up_after_max_retries(mock_post: AsyncMock, event: BillEvent):
    mock_post.return_value = _response(500)
    notifier = WebhookNotifier(webhook_url=WEBHOOK_URL, max_retries=2, backoff_base=0)

    with pytest.raises(NotificationFailure):
        await notifier.send(event)
    assert mock_post.await_count == 2


async def test_log_notifier_never_raises(event: BillEvent):
    await LogNotifier().send(event)
