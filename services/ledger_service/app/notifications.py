"""Fire-and-forget notifications to the storefront (invoice e-mails, balance pushes).

Notification failures are logged and counted; they never propagate into the
ledger operation that triggered them.
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx
from loguru import logger

from .metrics import ledger_notification_failure_total


class Notifier(Protocol):
    async def notify(self, event_type: str, payload: dict[str, Any]) -> None: ...


class LogNotifier:
    """Used when no webhook is configured."""

    async def notify(self, event_type: str, payload: dict[str, Any]) -> None:
        logger.bind(event_type=event_type).info("ledger.notification {}", payload)


class WebhookNotifier:
    def __init__(self, url: str, timeout: float = 5.0) -> None:
        self.url = url
        self.timeout = timeout

    async def notify(self, event_type: str, payload: dict[str, Any]) -> None:
        async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
            response = await client.post(self.url, json={"event_type": event_type, "payload": payload})
        response.raise_for_status()


async def send_safely(notifier: Notifier, event_type: str, payload: dict[str, Any]) -> None:
    try:
        await notifier.notify(event_type, payload)
    except Exception as exc:  # noqa: BLE001
        ledger_notification_failure_total.labels(event_type=event_type).inc()
        logger.bind(event_type=event_type).warning("ledger.notification_failed {}", exc)
