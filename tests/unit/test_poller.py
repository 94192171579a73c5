"""
Unit tests for the result poller.
"""

import pytest

from conftest import BUCKET, FailingBlobStore, FakeClock
from prerender_audit.models import PollStatus
from prerender_audit.poller import ResultPoller, expected_artifact_keys

PREFIX = "prerender/scrapes/job-1/"
URLS = ["https://example.com/", "https://example.com/a", "https://example.com/b"]


def poller(blob_store, clock, interval=30_000, max_wait=600_000):
    return ResultPoller(
        blob_store,
        BUCKET,
        poll_interval_ms=interval,
        max_wait_ms=max_wait,
        clock=clock,
        sleep=clock.sleep,
    )


class ArrivingBlobStore(FailingBlobStore):
    """Blob store that gains one artifact per list call."""

    def __init__(self, keys):
        super().__init__(fail_on=())
        self.pending = list(keys)

    async def list(self, bucket, prefix):
        if self.pending:
            self.put_text(self.pending.pop(0), "{}")
        return await super().list(bucket, prefix)


class TestExpectedArtifactKeys:
    """Tests for expected_artifact_keys."""

    def test_one_key_per_url(self):
        """Test that each URL maps to its scrape.json key."""
        keys = expected_artifact_keys(URLS, "job-1")

        assert keys == frozenset(
            {
                "prerender/scrapes/job-1/scrape.json",
                "prerender/scrapes/job-1/a/scrape.json",
                "prerender/scrapes/job-1/b/scrape.json",
            }
        )


class TestResultPoller:
    """Tests for ResultPoller."""

    @pytest.mark.asyncio
    async def test_found_on_first_attempt(self, blob_store, fake_clock):
        """Test that existing artifacts end the poll without sleeping."""
        keys = expected_artifact_keys(URLS, "job-1")
        for key in keys:
            blob_store.put_text(key, "{}")

        state = await poller(blob_store, fake_clock).wait_for(keys, PREFIX)

        assert state.outcome == PollStatus.FOUND
        assert state.status == PollStatus.DONE
        assert state.complete is True
        assert state.attempts == 1
        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_found_after_several_attempts(self, fake_clock):
        """Test that the poll continues until all artifacts have arrived."""
        keys = expected_artifact_keys(URLS, "job-1")
        store = ArrivingBlobStore(sorted(keys))

        state = await poller(store, fake_clock).wait_for(keys, PREFIX)

        assert state.outcome == PollStatus.FOUND
        assert state.attempts == 3
        assert fake_clock.sleeps == [30.0, 30.0]
        assert state.missing_keys == frozenset()

    @pytest.mark.asyncio
    async def test_timeout_bounds_attempts(self, blob_store, fake_clock):
        """Test that the poll stops at max wait with partial results."""
        keys = expected_artifact_keys(URLS, "job-1")
        blob_store.put_text("prerender/scrapes/job-1/a/scrape.json", "{}")

        state = await poller(blob_store, fake_clock, interval=30_000, max_wait=120_000).wait_for(
            keys, PREFIX
        )

        assert state.outcome == PollStatus.TIMED_OUT
        assert state.status == PollStatus.DONE
        assert state.complete is False
        # attempts at 0s, 30s, 60s, 90s and 120s
        assert state.attempts == 5
        assert state.attempts <= 120_000 // 30_000 + 1
        assert state.found_keys == frozenset({"prerender/scrapes/job-1/a/scrape.json"})
        assert len(state.missing_keys) == 2

    @pytest.mark.asyncio
    async def test_zero_wait_checks_once(self, blob_store, fake_clock):
        """Test that a zero budget still makes one attempt."""
        keys = expected_artifact_keys(URLS, "job-1")

        state = await poller(blob_store, fake_clock, max_wait=0).wait_for(keys, PREFIX)

        assert state.outcome == PollStatus.TIMED_OUT
        assert state.attempts == 1

    @pytest.mark.asyncio
    async def test_nothing_expected(self, blob_store, fake_clock):
        """Test that an empty key set is found immediately."""
        state = await poller(blob_store, fake_clock).wait_for([], PREFIX)

        assert state.outcome == PollStatus.FOUND
        assert state.attempts == 1

    @pytest.mark.asyncio
    async def test_list_errors_count_as_empty(self, fake_clock):
        """Test that listing failures are retried until timeout."""
        store = FailingBlobStore(fail_list=True)
        keys = expected_artifact_keys(URLS, "job-1")

        state = await poller(store, fake_clock, max_wait=60_000).wait_for(keys, PREFIX)

        assert state.outcome == PollStatus.TIMED_OUT
        assert state.found_keys == frozenset()
        assert store.list_calls == 3

    def test_is_artifact_key(self, blob_store, fake_clock):
        """Test that directory markers and other files are not artifacts."""
        p = poller(blob_store, fake_clock)

        assert p.is_artifact_key("prerender/scrapes/job-1/a/scrape.json") is True
        assert p.is_artifact_key("scrape.json") is True
        assert p.is_artifact_key("prerender/scrapes/job-1/a/") is False
        assert p.is_artifact_key("prerender/scrapes/job-1/a/server-side.html") is False
        assert p.is_artifact_key("prerender/scrapes/job-1/a/old-scrape.json") is False
        assert p.is_artifact_key("") is False

    @pytest.mark.asyncio
    async def test_unexpected_artifacts_ignored(self, blob_store, fake_clock):
        """Test that artifacts of other URLs do not count."""
        keys = expected_artifact_keys(["https://example.com/a"], "job-1")
        blob_store.put_text("prerender/scrapes/job-1/other/scrape.json", "{}")

        state = await poller(blob_store, fake_clock, max_wait=0).wait_for(keys, PREFIX)

        assert state.found_keys == frozenset()
