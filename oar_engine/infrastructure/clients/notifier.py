"""Bill event notification clients"""

import asyncio
import logging

import httpx

from oar_engine.config import settings
from oar_engine.domain.exceptions import NotificationFailure
from oar_engine.domain.models import BillEvent
from oar_engine.infrastructure.observability.metrics import (
    notification_failure_counter,
    notification_latency_histogram,
)

logger = logging.getLogger(__name__)


class WebhookNotifier:
    """Client for posting bill events to a notification webhook"""

    def __init__(
        self,
        webhook_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
    ):
        self.webhook_url = webhook_url or settings.notification_webhook_url
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = max_retries or settings.notification_max_retries
        self.backoff_base = settings.notification_backoff_base if backoff_base is None else backoff_base

    async def send(self, event: BillEvent) -> None:
        """
        Post a bill event with retry logic.

        Retry strategy:
        - Exponential backoff: base, 2*base, 4*base ...
        - Retries on 5xx/4xx responses and network failures
        - Tracks latency histogram and failure counter

        Raises:
            NotificationFailure: Delivery failed after all retries
        """
        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            while True:
                try:
                    with notification_latency_histogram.time():
                        response = await client.post(self.webhook_url, json=event.to_payload())
                        response.raise_for_status()
                        return

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    notification_failure_counter.inc()

                    if attempt >= self.max_retries:
                        raise NotificationFailure(
                            f"Notification {event.kind} for bill {event.bill_id} failed after {attempt} attempts"
                        ) from e

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)


class LogNotifier:
    """Fallback notifier that only logs events (no webhook configured)"""

    async def send(self, event: BillEvent) -> None:
        logger.info("Bill event", extra=event.to_payload())


def build_notifier():
    """Webhook notifier when a URL is configured, log-only otherwise"""
    if settings.notification_webhook_url:
        return WebhookNotifier()
    return LogNotifier()
