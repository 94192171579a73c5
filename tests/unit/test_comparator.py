"""
Unit tests for the batch comparator.
"""

import asyncio

import pytest

from conftest import BUCKET, store_snapshots, words
from prerender_audit.comparator import BatchComparator, ForbiddenPolicy
from prerender_audit.fetcher import SnapshotFetcher
from prerender_audit.models import CandidateURL, HtmlSnapshotPair

FORBIDDEN = {"error": {"statusCode": 403, "message": "Forbidden"}}


def candidates(*paths):
    return [CandidateURL(f"https://example.com/{p}", 10) for p in paths]


def comparator(blob_store, **kwargs):
    return BatchComparator(SnapshotFetcher(blob_store, BUCKET, "site-1"), **kwargs)


class RecordingFetcher:
    """Fetcher that tracks how many fetches run at once."""

    def __init__(self, fail_on=()):
        self.active = 0
        self.peak = 0
        self.fail_on = fail_on

    async def fetch(self, url):
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0.01)
        self.active -= 1
        if url in self.fail_on:
            raise RuntimeError("fetch exploded")
        return HtmlSnapshotPair(url, words(2), words(6))


class TestBatchComparator:
    """Tests for BatchComparator."""

    @pytest.mark.asyncio
    async def test_counts_match_findings(self, blob_store):
        """Test that the report counters agree with the findings."""
        store_snapshots(blob_store, "https://example.com/a", words(10), words(30))
        store_snapshots(blob_store, "https://example.com/b", words(10), words(11))
        store_snapshots(blob_store, "https://example.com/c", words(10))

        report = await comparator(blob_store).compare_all(candidates("a", "b", "c"))

        assert report.total_urls_checked == 3
        assert report.urls_needing_prerender == 1
        assert report.scrape_forbidden is False
        assert [f.url for f in report.findings] == [c.url for c in candidates("a", "b", "c")]
        assert report.findings[0].content_gain_ratio == 3.0
        assert report.findings[2].error is True

    @pytest.mark.asyncio
    async def test_missing_html_uses_scrape_status(self, blob_store):
        """Test that a failed URL reports the scraper's status."""
        store_snapshots(blob_store, "https://example.com/a", scrape={"statusCode": 500, "message": "Oops"})
        store_snapshots(blob_store, "https://example.com/b", words(1), words(1))

        report = await comparator(blob_store).compare_all(candidates("a", "b"))

        assert report.findings[0].scrape_error == {"statusCode": 500, "message": "Oops"}
        assert report.findings[0].needs_prerender is False

    @pytest.mark.asyncio
    async def test_missing_html_without_status(self, blob_store):
        """Test the message of a failed URL without scrape metadata."""
        report = await comparator(blob_store).compare_all(candidates("a"))

        assert "Missing HTML data" in report.findings[0].scrape_error["message"]

    @pytest.mark.asyncio
    async def test_threshold_passed_through(self, blob_store):
        """Test that the batch threshold overrides the analyzer's."""
        store_snapshots(blob_store, "https://example.com/a", words(10), words(15))

        low = await comparator(blob_store).compare_all(candidates("a"), threshold=1.0)
        high = await comparator(blob_store).compare_all(candidates("a"), threshold=2.0)

        assert low.urls_needing_prerender == 1
        assert high.urls_needing_prerender == 0

    @pytest.mark.asyncio
    async def test_all_forbidden(self, blob_store):
        """Test that a batch where every scrape was denied is forbidden."""
        for path in ("a", "b"):
            store_snapshots(blob_store, f"https://example.com/{path}", scrape=FORBIDDEN)

        report = await comparator(blob_store).compare_all(candidates("a", "b"))

        assert report.scrape_forbidden is True
        assert report.urls_needing_prerender == 0
        assert all(f.scrape_error["statusCode"] == 403 for f in report.findings)

    @pytest.mark.asyncio
    async def test_partial_forbidden_with_usable_html(self, blob_store):
        """Test that one usable page means the batch is not forbidden."""
        store_snapshots(blob_store, "https://example.com/a", scrape=FORBIDDEN)
        store_snapshots(blob_store, "https://example.com/b", words(10), words(30))

        for policy in ForbiddenPolicy:
            report = await comparator(blob_store, forbidden_policy=policy).compare_all(
                candidates("a", "b")
            )
            assert report.scrape_forbidden is False
            assert report.urls_needing_prerender == 1

    @pytest.mark.asyncio
    async def test_mixed_status_policies(self, blob_store):
        """Test the two policies on a batch with 403 and 500 statuses."""
        store_snapshots(blob_store, "https://example.com/a", scrape=FORBIDDEN)
        store_snapshots(blob_store, "https://example.com/b", scrape={"error": {"statusCode": 500}})

        all_policy = await comparator(blob_store).compare_all(candidates("a", "b"))
        any_policy = await comparator(blob_store, forbidden_policy="any").compare_all(
            candidates("a", "b")
        )

        assert all_policy.scrape_forbidden is False
        assert any_policy.scrape_forbidden is True

    @pytest.mark.asyncio
    async def test_no_metadata_is_not_forbidden(self, blob_store):
        """Test that a batch without scrape metadata is not forbidden."""
        report = await comparator(blob_store).compare_all(candidates("a", "b"))

        assert report.scrape_forbidden is False
        assert report.urls_needing_prerender == 0

    @pytest.mark.asyncio
    async def test_failure_isolated(self):
        """Test that one failing URL does not affect the others."""
        fetcher = RecordingFetcher(fail_on={"https://example.com/b"})

        report = await BatchComparator(fetcher).compare_all(candidates("a", "b", "c"))

        assert report.total_urls_checked == 3
        assert report.urls_needing_prerender == 2
        assert "Unexpected error" in report.findings[1].scrape_error["message"]
        assert report.findings[1].organic_traffic == 10

    @pytest.mark.asyncio
    async def test_concurrency_bounded(self):
        """Test that no more than max_concurrency fetches run at once."""
        fetcher = RecordingFetcher()
        paths = [str(i) for i in range(12)]

        report = await BatchComparator(fetcher, max_concurrency=3).compare_all(candidates(*paths))

        assert fetcher.peak <= 3
        assert report.total_urls_checked == 12

    @pytest.mark.asyncio
    async def test_malformed_status_code_still_compared(self, blob_store):
        """Test that a page with an unreadable status code is still analyzed."""
        store_snapshots(blob_store, "https://example.com/a", words(1), words(5), scrape={"statusCode": [403]})
        store_snapshots(
            blob_store, "https://example.com/b", words(1), words(5), scrape={"error": {"statusCode": "Forbidden"}}
        )

        report = await comparator(blob_store).compare_all(candidates("a", "b"))

        assert report.urls_needing_prerender == 2
        assert report.scrape_forbidden is False
        assert all(f.content_gain_ratio == 5.0 for f in report.findings)
        assert not any(f.error for f in report.findings)

    @pytest.mark.asyncio
    async def test_empty_batch(self, blob_store):
        """Test that an empty batch gives an empty report."""
        report = await comparator(blob_store).compare_all([])

        assert report.total_urls_checked == 0
        assert report.scrape_forbidden is False
