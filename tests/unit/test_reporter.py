"""
Unit tests for the status reporter.
"""

import json
from datetime import datetime, timezone

import pytest

from conftest import BUCKET, FailingBlobStore
from prerender_audit.models import BatchReport, ContentGainFinding
from prerender_audit.reporter import StatusReporter, build_status_document

KEY = "prerender/scrapes/site-1/status.json"


def sample_report():
    return BatchReport.from_findings(
        [
            ContentGainFinding("https://example.com/a", 10, 30, 3.0, True, 100),
            ContentGainFinding.failed("https://example.com/b", 5, {"statusCode": 404, "message": "Not Found"}),
        ]
    )


class TestBuildStatusDocument:
    """Tests for build_status_document."""

    def test_document_fields(self):
        """Test the summary and per-page fields."""
        document = build_status_document(
            "site-1", sample_report(), "2026-01-01T00:00:00+00:00", "https://example.com", scrape_job_id="job-1"
        )

        assert document["siteId"] == "site-1"
        assert document["baseUrl"] == "https://example.com"
        assert document["auditType"] == "prerender"
        assert document["scrapeJobId"] == "job-1"
        assert document["lastUpdated"] == "2026-01-01T00:00:00+00:00"
        assert document["totalUrlsChecked"] == 2
        assert document["urlsNeedingPrerender"] == 1
        assert document["scrapeForbidden"] is False

        ok, failed = document["pages"]
        assert ok["scrapingStatus"] == "success"
        assert ok["needsPrerender"] is True
        assert ok["contentGainRatio"] == 3.0
        assert ok["organicTraffic"] == 100
        assert "scrapeError" not in ok
        assert failed["scrapingStatus"] == "error"
        assert failed["wordCountBefore"] == 0
        assert failed["contentGainRatio"] == 0
        assert failed["scrapeError"] == {"statusCode": 404, "message": "Not Found"}


class TestStatusReporter:
    """Tests for StatusReporter."""

    @pytest.mark.asyncio
    async def test_uploads_document(self, blob_store):
        """Test that the document is written as JSON to the status key."""
        reporter = StatusReporter(blob_store, BUCKET)
        timestamp = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

        await reporter.report("site-1", sample_report(), timestamp, base_url="https://example.com")

        body = blob_store.objects[(BUCKET, KEY)]
        assert blob_store.content_types[(BUCKET, KEY)] == "application/json"
        document = json.loads(body)
        assert document["lastUpdated"] == "2026-03-01T12:00:00+00:00"
        assert len(document["pages"]) == 2

    @pytest.mark.asyncio
    async def test_string_timestamp(self, blob_store):
        """Test that a string timestamp is used as-is."""
        await StatusReporter(blob_store, BUCKET).report("site-1", sample_report(), "yesterday")

        assert json.loads(blob_store.objects[(BUCKET, KEY)])["lastUpdated"] == "yesterday"

    @pytest.mark.asyncio
    async def test_missing_report_is_noop(self, blob_store):
        """Test that a missing report writes nothing."""
        await StatusReporter(blob_store, BUCKET).report("site-1", None)

        assert blob_store.objects == {}

    @pytest.mark.asyncio
    async def test_upload_failure_does_not_raise(self):
        """Test that a failing upload is swallowed."""
        store = FailingBlobStore(fail_put=True)

        result = await StatusReporter(store, BUCKET).report("site-1", sample_report())

        assert result is None
        assert store.objects == {}
