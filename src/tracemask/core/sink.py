"""
Analytics sinks for masked events.

Features:
- AnalyticsSink protocol: record(event) -> None, called at most once per event
- InMemorySink for local buffering and tests
- HttpAnalyticsSink: bounded buffer, batched async upload with retry/backoff
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional, Protocol, runtime_checkable

import aiohttp
import structlog

from ..config import SinkSettings
from ..models.event import MaskedEvent
from .exceptions import MaskingError, SinkError
from .metrics import MetricsCollector

logger = structlog.get_logger(__name__)


@runtime_checkable
class AnalyticsSink(Protocol):
    """Receives masked events. Side effects are up to the implementation."""

    def record(self, event: MaskedEvent) -> None:
        ...


def _require_masked(event: Any) -> None:
    # Raw NetworkEvents must never reach an analytics sink
    if not isinstance(event, MaskedEvent):
        raise MaskingError(
            "Analytics sinks only accept masked events",
            details={"received_type": type(event).__name__},
        )


class InMemorySink:
    """Keeps recorded events in a list."""

    def __init__(self) -> None:
        self.events: List[MaskedEvent] = []

    def record(self, event: MaskedEvent) -> None:
        _require_masked(event)
        self.events.append(event)

    def drain(self) -> List[MaskedEvent]:
        """Return and clear the recorded events."""
        events, self.events = self.events, []
        return events


@dataclass
class ForwardingResult:
    """Result of a flush operation."""
    success: bool
    events_forwarded: int
    batches_sent: int
    error_message: Optional[str] = None


class HttpAnalyticsSink:
    """
    Buffers masked events and uploads them to an analytics collector.

    Handles:
    - Bounded buffering (oldest events dropped when full)
    - Batching
    - Retry logic with backoff
    - Requeueing batches that could not be delivered
    """

    def __init__(self, settings: SinkSettings, metrics: Optional[MetricsCollector] = None) -> None:
        self.settings = settings
        self.metrics = metrics
        self.session: Optional[aiohttp.ClientSession] = None
        self._buffer: Deque[MaskedEvent] = deque()
        self._flush_lock = asyncio.Lock()
        self._running = False

        logger.info("Analytics sink initialized", endpoint_url=settings.endpoint_url)

    @property
    def pending(self) -> int:
        """Number of buffered events awaiting upload."""
        return len(self._buffer)

    def record(self, event: MaskedEvent) -> None:
        """Buffer an event for the next flush."""
        _require_masked(event)

        dropped = self._drop_oldest(self.settings.buffer_max_events - 1)
        self._buffer.append(event)

        if dropped:
            logger.warning("Sink buffer full, dropped oldest events", dropped=dropped)
        if self.metrics:
            self.metrics.record_sink_event(dropped=dropped)

    def _drop_oldest(self, keep: int) -> int:
        dropped = 0
        while len(self._buffer) > max(keep, 0):
            self._buffer.popleft()
            dropped += 1
        return dropped

    async def start(self) -> None:
        """Open the HTTP session."""
        if self._running:
            return

        self._running = True
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.settings.timeout_seconds)
        )

        logger.info("Analytics sink started")

    async def stop(self) -> None:
        """Close the HTTP session."""
        self._running = False

        if self.session:
            await self.session.close()
            self.session = None

        logger.info("Analytics sink stopped")

    async def flush(self) -> ForwardingResult:
        """
        Upload all buffered events.

        Returns:
            ForwardingResult with success status and counts
        """
        if not self.session:
            return ForwardingResult(
                success=False,
                events_forwarded=0,
                batches_sent=0,
                error_message="Sink not started"
            )

        async with self._flush_lock:
            if not self._buffer:
                logger.debug("No buffered events to forward")
                return ForwardingResult(success=True, events_forwarded=0, batches_sent=0)

            total_events = 0
            batches_sent = 0

            while self._buffer:
                batch = self._take_batch()
                if await self._forward_batch(batch):
                    total_events += len(batch)
                    batches_sent += 1
                    continue

                # Put the batch back in front and stop for this cycle
                self._buffer.extendleft(reversed(batch))
                logger.error("Failed to forward batch, requeued", batch_size=len(batch))

                # Events recorded during the upload can push the buffer over its bound
                dropped = self._drop_oldest(self.settings.buffer_max_events)
                if dropped:
                    logger.warning("Sink buffer full after requeue, dropped oldest events", dropped=dropped)
                    if self.metrics:
                        self.metrics.record_sink_drops(dropped)
                return ForwardingResult(
                    success=False,
                    events_forwarded=total_events,
                    batches_sent=batches_sent,
                    error_message="Analytics collector unavailable",
                )

            logger.info(
                "Flush completed",
                events_forwarded=total_events,
                batches_sent=batches_sent,
            )
            return ForwardingResult(success=True, events_forwarded=total_events, batches_sent=batches_sent)

    def _take_batch(self) -> List[MaskedEvent]:
        batch = []
        while self._buffer and len(batch) < self.settings.batch_max_events:
            batch.append(self._buffer.popleft())
        return batch

    async def _forward_batch(self, batch: List[MaskedEvent]) -> bool:
        """
        Upload one batch with retry logic.

        Returns:
            True if successful, False otherwise
        """
        payload = {"events": [event.model_dump(mode="json") for event in batch]}

        for attempt in range(self.settings.max_retries + 1):
            try:
                await self._send_batch(payload, len(batch))
                return True
            except (SinkError, aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.warning(
                    "Analytics upload attempt failed",
                    attempt=attempt + 1,
                    max_retries=self.settings.max_retries,
                    error=str(e)
                )
                if self.metrics:
                    self.metrics.record_sink_retry(attempt + 1)

                if attempt < self.settings.max_retries and self.settings.backoff_seconds:
                    backoff_seconds = self.settings.backoff_seconds[
                        min(attempt, len(self.settings.backoff_seconds) - 1)
                    ]
                    await asyncio.sleep(backoff_seconds)

        return False

    async def _send_batch(self, payload: Dict[str, Any], events_count: int) -> None:
        """POST one batch. Raises SinkError on a non-2xx response."""
        if not self.session:
            raise SinkError("Sink session closed")

        headers = {
            "Content-Type": "application/json",
            "User-Agent": "tracemask-sink/1.0"
        }

        started = time.perf_counter()
        async with self.session.post(
            self.settings.endpoint_url,
            json=payload,
            headers=headers
        ) as response:
            if self.metrics:
                self.metrics.record_sink_request(
                    status_code=response.status,
                    duration_seconds=time.perf_counter() - started,
                    events_count=events_count,
                )

            if 200 <= response.status < 300:
                logger.debug("Batch delivered", events_count=events_count)
                return

            error_text = await response.text()
            raise SinkError(
                "Analytics collector returned error",
                details={"status": response.status, "body": error_text[:256]},
            )
