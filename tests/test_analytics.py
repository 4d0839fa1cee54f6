"""Unit tests for click recording and analytics queries."""

import asyncio
import datetime

import pytest

from conftest import OTHER_OWNER_ID, OWNER_ID, utcnow
from shortlink.analytics import AnalyticsQueries, AnalyticsRecorder, ClickMetadata
from shortlink.exceptions import NotFoundError, OwnershipError
from shortlink.schemas import ClickEventRecord


@pytest.fixture
def recorder(store, event_log) -> AnalyticsRecorder:
    return AnalyticsRecorder(store, event_log)


@pytest.fixture
def queries(store, event_log) -> AnalyticsQueries:
    return AnalyticsQueries(store, event_log)


class TestRecorder:
    @pytest.mark.asyncio
    async def test_record_writes_count_and_event(self, recorder, store, event_log):
        store.add("abc", "https://example.com")

        await recorder.record("abc", "203.0.113.7", "curl/8", "https://ref.example")

        assert store.links["abc"].click_count == 1
        event = event_log.events[0]
        assert event.code == "abc"
        assert event.client_address == "203.0.113.7"
        assert event.referrer == "https://ref.example"

    @pytest.mark.asyncio
    async def test_increment_failure_does_not_block_event(self, recorder, store, event_log):
        store.add("abc", "https://example.com")
        store.fail_increment = True

        await recorder.record("abc")

        assert len(event_log.events) == 1

    @pytest.mark.asyncio
    async def test_event_failure_does_not_block_increment(self, recorder, store, event_log):
        store.add("abc", "https://example.com")
        event_log.fail_append = True

        await recorder.record("abc")

        assert store.links["abc"].click_count == 1

    @pytest.mark.asyncio
    async def test_schedule_returns_before_recording(self, recorder, store):
        store.add("abc", "https://example.com")

        task = recorder.schedule("abc", ClickMetadata())

        assert recorder.pending == 1
        assert store.links["abc"].click_count == 0

        await task
        await asyncio.sleep(0)

        assert store.links["abc"].click_count == 1
        assert recorder.pending == 0

    @pytest.mark.asyncio
    async def test_drain_waits_for_pending(self, recorder, store):
        store.add("abc", "https://example.com")
        for _ in range(5):
            recorder.schedule("abc", ClickMetadata())

        assert recorder.pending == 5

        await recorder.drain(timeout=5.0)
        await asyncio.sleep(0)

        assert store.links["abc"].click_count == 5
        assert recorder.pending == 0

    @pytest.mark.asyncio
    async def test_drain_with_nothing_pending(self, recorder):
        await recorder.drain()


class TestQueries:
    @pytest.mark.asyncio
    async def test_link_analytics(self, queries, store, event_log):
        store.add("abc", "https://example.com").click_count = 2
        base = utcnow()
        for offset in (1, 2):
            await event_log.append(
                ClickEventRecord(code="abc", timestamp=base + datetime.timedelta(seconds=offset))
            )

        summary = await queries.link_analytics("abc", OWNER_ID)

        assert summary.code == "abc"
        assert summary.total_clicks == 2
        assert len(summary.recent_clicks) == 2
        assert summary.recent_clicks[0].timestamp > summary.recent_clicks[1].timestamp

    @pytest.mark.asyncio
    async def test_recent_clicks_are_limited(self, queries, store, event_log):
        store.add("abc", "https://example.com")
        base = utcnow()
        for offset in range(5):
            await event_log.append(
                ClickEventRecord(code="abc", timestamp=base + datetime.timedelta(seconds=offset))
            )

        summary = await queries.link_analytics("abc", OWNER_ID, limit=3)

        assert len(summary.recent_clicks) == 3

    @pytest.mark.asyncio
    async def test_unknown_code(self, queries):
        with pytest.raises(NotFoundError):
            await queries.link_analytics("nope", OWNER_ID)

    @pytest.mark.asyncio
    async def test_other_owner_is_refused(self, queries, store):
        store.add("abc", "https://example.com", owner_id=OWNER_ID)

        with pytest.raises(OwnershipError):
            await queries.link_analytics("abc", OTHER_OWNER_ID)

    @pytest.mark.asyncio
    async def test_owner_analytics_newest_first(self, queries, store):
        base = utcnow()
        store.add("old", "https://example.com/1", created_at=base - datetime.timedelta(days=1))
        store.add("new", "https://example.com/2", created_at=base)
        store.add("theirs", "https://example.com/3", owner_id=OTHER_OWNER_ID)

        summaries = await queries.owner_analytics(OWNER_ID)

        assert [summary.code for summary in summaries] == ["new", "old"]
