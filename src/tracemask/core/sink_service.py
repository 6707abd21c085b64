"""
Periodic flushing for the HTTP analytics sink.

The service owns the sink's session: ``start`` opens it and launches the
flush task, ``stop`` cancels the task, makes one last upload attempt for
anything still buffered and closes the session.
"""

import asyncio
import contextlib
from typing import Any, Dict, Optional

import structlog

from .sink import ForwardingResult, HttpAnalyticsSink

logger = structlog.get_logger(__name__)


def _as_dict(result: ForwardingResult) -> Dict[str, Any]:
    return {
        "success": result.success,
        "events_forwarded": result.events_forwarded,
        "batches_sent": result.batches_sent,
        "error": result.error_message,
    }


class SinkForwarderService:
    """Drives ``HttpAnalyticsSink.flush`` on a fixed interval."""

    def __init__(self, sink: HttpAnalyticsSink, flush_interval_seconds: int = 30) -> None:
        self.sink = sink
        self.flush_interval = flush_interval_seconds
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None

    async def start(self) -> None:
        if self.running:
            return

        await self.sink.start()
        self._task = asyncio.create_task(self._flush_periodically())
        logger.info("Sink flushing started", interval_seconds=self.flush_interval)

    async def stop(self) -> None:
        if not self.running:
            return

        task, self._task = self._task, None
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

        if self.sink.pending:
            outcome = await self.sink.flush()
            if not outcome.success:
                # whatever is still buffered is lost with the process
                logger.warning(
                    "Events left unsent at shutdown",
                    pending=self.sink.pending,
                    error=outcome.error_message,
                )

        await self.sink.stop()
        logger.info("Sink flushing stopped")

    async def _flush_periodically(self) -> None:
        while True:
            await asyncio.sleep(self.flush_interval)
            try:
                outcome = await self.sink.flush()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Periodic flush raised", error=str(e), exc_info=True)
                continue

            if not outcome.success:
                logger.warning("Periodic flush failed", error=outcome.error_message)
            elif outcome.events_forwarded:
                logger.info(
                    "Periodic flush sent events",
                    events_forwarded=outcome.events_forwarded,
                    batches_sent=outcome.batches_sent,
                )

    async def force_flush(self) -> Dict[str, Any]:
        """Flush now and report the outcome as a plain dict."""
        if not self.running:
            return {"success": False, "events_forwarded": 0, "batches_sent": 0, "error": "Service not started"}
        return _as_dict(await self.sink.flush())

    def is_healthy(self) -> bool:
        return self._task is not None and not self._task.done()
