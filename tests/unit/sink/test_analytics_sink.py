"""
Tests for analytics sinks.

HTTP uploads go through a fake aiohttp session so retry and requeue logic
can be checked without a network.
"""

from typing import Any, Dict, List, Optional

import aiohttp
import pytest
from prometheus_client import CollectorRegistry

from tracemask.config import SinkSettings
from tracemask.core.assembler import EventMasker
from tracemask.core.exceptions import MaskingError
from tracemask.core.metrics import MetricsCollector
from tracemask.core.policy import MaskingPolicy, PrivacyLevel
from tracemask.core.sink import AnalyticsSink, HttpAnalyticsSink, InMemorySink
from tracemask.models.event import MaskedEvent, NetworkEvent, RequestType


class FakeResponse:
    def __init__(self, status: int) -> None:
        self.status = status

    async def text(self) -> str:
        return "collector says no" if self.status >= 400 else "ok"

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None


class FakeSession:
    """Replays a list of status codes; raises for None entries."""

    def __init__(self, statuses: List[Optional[int]]) -> None:
        self.statuses = list(statuses)
        self.posts: List[Dict[str, Any]] = []
        self.closed = False

    def post(self, url: str, json: Dict[str, Any], headers: Dict[str, str]) -> FakeResponse:
        self.posts.append({"url": url, "json": json, "headers": headers})
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if status is None:
            raise aiohttp.ClientConnectionError("connection refused")
        return FakeResponse(status)

    async def close(self) -> None:
        self.closed = True


def masked_event(n: int) -> MaskedEvent:
    event = NetworkEvent(
        type=RequestType(method="GET", url=f"https://x.test/items/{n}?q=secret"),
        body=b'{"id": 1}',
        request_id=f"req-{n}",
    )
    return EventMasker(MaskingPolicy(level=PrivacyLevel.RESTRICTED)).mask_event(event)


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def sink_settings() -> SinkSettings:
    return SinkSettings(
        endpoint_url="http://collector.test/v1/events",
        max_retries=2,
        backoff_seconds=[0],
        batch_max_events=2,
        buffer_max_events=5,
    )


class TestInMemorySink:
    """Test the list-backed sink."""

    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemorySink(), AnalyticsSink)

    def test_record_and_drain(self) -> None:
        sink = InMemorySink()
        sink.record(masked_event(1))
        sink.record(masked_event(2))

        drained = sink.drain()

        assert [event.request_id for event in drained] == ["req-1", "req-2"]
        assert sink.events == []

    def test_rejects_unmasked_event(self) -> None:
        raw = NetworkEvent(type=RequestType(method="GET", url="https://x.test/?q=secret"))
        with pytest.raises(MaskingError) as exc_info:
            InMemorySink().record(raw)
        assert exc_info.value.details == {"received_type": "NetworkEvent"}


class TestHttpSinkBuffering:
    """Test the bounded buffer."""

    def test_satisfies_protocol(self, sink_settings: SinkSettings) -> None:
        assert isinstance(HttpAnalyticsSink(sink_settings), AnalyticsSink)

    def test_record_buffers(self, sink_settings: SinkSettings) -> None:
        sink = HttpAnalyticsSink(sink_settings)
        sink.record(masked_event(1))
        assert sink.pending == 1

    def test_oldest_events_dropped_when_full(self, sink_settings: SinkSettings, metrics: MetricsCollector) -> None:
        sink = HttpAnalyticsSink(sink_settings, metrics)
        for n in range(7):
            sink.record(masked_event(n))

        assert sink.pending == 5
        assert [event.request_id for event in sink._buffer] == [f"req-{n}" for n in range(2, 7)]
        assert metrics.registry.get_sample_value("sink_events_dropped_total") == 2.0
        assert metrics.registry.get_sample_value("sink_events_recorded_total") == 7.0

    def test_rejects_unmasked_event(self, sink_settings: SinkSettings) -> None:
        raw = NetworkEvent(type=RequestType(method="GET", url="https://x.test/"))
        with pytest.raises(MaskingError):
            HttpAnalyticsSink(sink_settings).record(raw)


class TestHttpSinkFlush:
    """Test batched upload, retry and requeue."""

    @pytest.mark.asyncio
    async def test_flush_without_session(self, sink_settings: SinkSettings) -> None:
        sink = HttpAnalyticsSink(sink_settings)
        sink.record(masked_event(1))

        result = await sink.flush()

        assert result.success is False
        assert result.error_message == "Sink not started"
        assert sink.pending == 1

    @pytest.mark.asyncio
    async def test_flush_empty_buffer(self, sink_settings: SinkSettings) -> None:
        sink = HttpAnalyticsSink(sink_settings)
        sink.session = FakeSession([200])

        result = await sink.flush()

        assert result.success is True
        assert result.events_forwarded == 0
        assert sink.session.posts == []

    @pytest.mark.asyncio
    async def test_flush_sends_batches(self, sink_settings: SinkSettings, metrics: MetricsCollector) -> None:
        sink = HttpAnalyticsSink(sink_settings, metrics)
        session = FakeSession([200])
        sink.session = session
        for n in range(5):
            sink.record(masked_event(n))

        result = await sink.flush()

        assert result.success is True
        assert result.events_forwarded == 5
        assert result.batches_sent == 3
        assert sink.pending == 0
        assert [len(post["json"]["events"]) for post in session.posts] == [2, 2, 1]
        assert session.posts[0]["url"] == "http://collector.test/v1/events"
        assert session.posts[0]["headers"]["User-Agent"] == "tracemask-sink/1.0"
        assert metrics.registry.get_sample_value("sink_events_forwarded_total") == 5.0
        assert metrics.registry.get_sample_value("sink_requests_total", {"status_code": "200"}) == 3.0

    @pytest.mark.asyncio
    async def test_payload_contains_only_masked_values(self, sink_settings: SinkSettings) -> None:
        sink = HttpAnalyticsSink(sink_settings)
        session = FakeSession([200])
        sink.session = session
        sink.record(masked_event(1))

        await sink.flush()

        uploaded = session.posts[0]["json"]["events"][0]
        assert uploaded["type"] == {"kind": "request", "method": "GET", "url": "https://x.test/items/1?q=***"}
        assert uploaded["body"] == '{"id":"***"}'
        assert uploaded["request_id"] == "req-1"

    @pytest.mark.asyncio
    async def test_retry_then_success(self, sink_settings: SinkSettings, metrics: MetricsCollector) -> None:
        sink = HttpAnalyticsSink(sink_settings, metrics)
        session = FakeSession([503, None, 200])
        sink.session = session
        sink.record(masked_event(1))

        result = await sink.flush()

        assert result.success is True
        assert len(session.posts) == 3
        assert metrics.registry.get_sample_value("sink_retries_total", {"attempt": "1"}) == 1.0
        assert metrics.registry.get_sample_value("sink_retries_total", {"attempt": "2"}) == 1.0

    @pytest.mark.asyncio
    async def test_failed_batch_requeued_in_order(self, sink_settings: SinkSettings) -> None:
        sink = HttpAnalyticsSink(sink_settings)
        # First batch succeeds, every later attempt fails
        session = FakeSession([200, 500])
        sink.session = session
        for n in range(5):
            sink.record(masked_event(n))

        result = await sink.flush()

        assert result.success is False
        assert result.events_forwarded == 2
        assert result.batches_sent == 1
        assert result.error_message == "Analytics collector unavailable"
        # 1 good post, then max_retries + 1 attempts on the second batch
        assert len(session.posts) == 1 + 3
        assert [event.request_id for event in sink._buffer] == ["req-2", "req-3", "req-4"]

    @pytest.mark.asyncio
    async def test_requeue_respects_buffer_bound(self, sink_settings: SinkSettings, metrics: MetricsCollector) -> None:
        sink = HttpAnalyticsSink(sink_settings, metrics)
        for n in range(5):
            sink.record(masked_event(n))

        arrivals = [masked_event(n) for n in range(10, 14)]

        class ArrivalsDuringUpload(FakeSession):
            def post(self, url: str, json: Dict[str, Any], headers: Dict[str, str]) -> FakeResponse:
                while arrivals:
                    sink.record(arrivals.pop(0))
                return super().post(url, json, headers)

        sink.session = ArrivalsDuringUpload([500])

        result = await sink.flush()

        assert result.success is False
        assert sink.pending == 5
        assert [event.request_id for event in sink._buffer] == ["req-4", "req-10", "req-11", "req-12", "req-13"]
        # Two displaced while recording, two trimmed after the requeue
        assert metrics.registry.get_sample_value("sink_events_dropped_total") == 4.0

    @pytest.mark.asyncio
    async def test_stop_closes_session(self, sink_settings: SinkSettings) -> None:
        sink = HttpAnalyticsSink(sink_settings)
        session = FakeSession([200])
        sink.session = session

        await sink.stop()

        assert session.closed is True
        assert sink.session is None

    @pytest.mark.asyncio
    async def test_start_opens_real_session(self, sink_settings: SinkSettings) -> None:
        sink = HttpAnalyticsSink(sink_settings)
        await sink.start()
        try:
            assert isinstance(sink.session, aiohttp.ClientSession)
        finally:
            await sink.stop()
