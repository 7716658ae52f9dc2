"""
Event Sink implementations.

Both sinks tolerate redelivery: the engine is at-least-once, so the same
(objectType, targetId, timestamp) can arrive more than once.
"""

import logging
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional, Tuple

import httpx

from changefeed.core.interfaces.storage import EventSink
from changefeed.models.sync import ExtractedEvent

logger = logging.getLogger(__name__)


class EventSinkError(Exception):
    """Raised when a sink cannot accept a batch."""
    pass


class InMemoryEventSink(EventSink):
    """
    Collects events in memory, dropping redelivered duplicates.

    Meant for tests and local runs. Dedup state keeps only the latest
    timestamp per (objectType, targetId), so it grows with the number of
    distinct records, not with deliveries; a redelivered or older version
    of a record is dropped. max_events bounds the retained events, oldest
    first.
    """

    def __init__(self, max_events: Optional[int] = None):
        self.events: Deque[ExtractedEvent] = deque(maxlen=max_events)
        self._latest: Dict[Tuple[str, str], datetime] = {}
        self.duplicates = 0

    async def emit(self, events: List[ExtractedEvent]) -> None:
        for event in events:
            object_type, target_id, timestamp = event.dedup_key
            latest = self._latest.get((object_type, target_id))
            if latest is not None and timestamp <= latest:
                self.duplicates += 1
                continue
            self._latest[(object_type, target_id)] = timestamp
            self.events.append(event)

        if self.duplicates:
            logger.debug(f"InMemoryEventSink: {self.duplicates} duplicate events dropped so far")

    def clear(self):
        self.events.clear()
        self._latest.clear()
        self.duplicates = 0


class WebhookEventSink(EventSink):
    """
    POSTs event batches as JSON to a webhook.

    Payload: {"events": [ExtractedEvent.to_dict(), ...]}. Each event carries
    an "idempotencyKey" so the receiver can deduplicate.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize webhook sink.

        Args:
            url: Webhook endpoint
            timeout: HTTP request timeout in seconds
            headers: Extra headers (e.g. a shared secret)
            transport: Custom httpx transport (tests)
        """
        self.url = url
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={"Content-Type": "application/json", **(headers or {})},
            transport=transport,
        )
        logger.info(f"WebhookEventSink initialized (url: {self.url})")

    @staticmethod
    def _serialize(event: ExtractedEvent) -> Dict[str, Any]:
        object_type, target_id, timestamp = event.dedup_key
        payload = event.to_dict()
        payload["idempotencyKey"] = f"{object_type}:{target_id}:{timestamp.isoformat()}"
        return payload

    async def emit(self, events: List[ExtractedEvent]) -> None:
        """
        Deliver a batch.

        Raises:
            EventSinkError: On non-2xx responses or network errors
        """
        if not events:
            return

        body = {"events": [self._serialize(event) for event in events]}

        try:
            response = await self._client.post(self.url, json=body)
        except httpx.RequestError as e:
            raise EventSinkError(f"Network error: {e}") from e

        if response.status_code >= 400:
            error_msg = f"Webhook error: {response.status_code} - {response.text}"
            logger.error(error_msg)
            raise EventSinkError(error_msg)

        logger.debug(f"📤 Delivered {len(events)} events to {self.url}")

    async def close(self) -> None:
        await self._client.aclose()
