"""
Status reporter.

Writes a summary of the latest run to a well-known key so dashboards can
show the scraping status of each page.
"""

import json
import logging
from datetime import datetime, timezone

from .models import BatchReport
from .storage import BlobStore, status_key
from .synchronizer import AUDIT_TYPE

logger = logging.getLogger(__name__)


class ReportingError(Exception):
    """Raised when the status document cannot be written."""

    pass


def build_status_document(
    site_id: str,
    report: BatchReport,
    last_updated: str,
    base_url: str = "",
    audit_type: str = AUDIT_TYPE,
    scrape_job_id: str | None = None,
) -> dict:
    """
    Build the status document of a run.

    Pages that could not be compared report ``error`` with zero counts.
    """
    pages = []
    for finding in report.findings:
        page = {
            "url": finding.url,
            "scrapingStatus": "error" if finding.error else "success",
            "needsPrerender": finding.needs_prerender,
            "wordCountBefore": 0 if finding.error else finding.word_count_before,
            "wordCountAfter": 0 if finding.error else finding.word_count_after,
            "contentGainRatio": 0 if finding.error else finding.content_gain_ratio,
            "organicTraffic": finding.organic_traffic,
        }
        if finding.scrape_error is not None:
            page["scrapeError"] = finding.scrape_error
        pages.append(page)

    return {
        "baseUrl": base_url,
        "siteId": site_id,
        "auditType": audit_type,
        "scrapeJobId": scrape_job_id,
        "lastUpdated": last_updated,
        "totalUrlsChecked": report.total_urls_checked,
        "urlsNeedingPrerender": report.urls_needing_prerender,
        "scrapeForbidden": report.scrape_forbidden,
        "pages": pages,
    }


class StatusReporter:
    """
    Best-effort writer of ``status.json``.

    :meth:`report` never raises.
    """

    def __init__(self, blob_store: BlobStore, bucket: str, storage_prefix: str = "prerender"):
        self.blob_store = blob_store
        self.bucket = bucket
        self.storage_prefix = storage_prefix

    async def report(
        self,
        site_id: str,
        report: BatchReport | None,
        timestamp: datetime | str | None = None,
        *,
        base_url: str = "",
        audit_type: str = AUDIT_TYPE,
        scrape_job_id: str | None = None,
    ) -> None:
        """
        Upload the status document of a run.

        Args:
            site_id: Site identifier
            report: Batch report of the run, may be None
            timestamp: Time of the run, defaults to now
            base_url: Base URL of the site
            audit_type: Audit type recorded in the document
            scrape_job_id: Scrape job the snapshots came from
        """
        if report is None:
            logger.warning("Prerender - Missing audit result, skipping status summary upload")
            return

        key = status_key(site_id, self.storage_prefix)
        try:
            await self._upload(key, site_id, report, timestamp, base_url, audit_type, scrape_job_id)
        except ReportingError as e:
            logger.error(
                f"Prerender - Failed to upload status summary: {e}. baseUrl={base_url}, siteId={site_id}",
                exc_info=True,
            )
            return

        logger.info(
            f"Prerender - Uploaded status summary to {key}. baseUrl={base_url}, siteId={site_id}"
        )

    async def _upload(self, key, site_id, report, timestamp, base_url, audit_type, scrape_job_id):
        if timestamp is None:
            timestamp = datetime.now(timezone.utc)
        last_updated = timestamp.isoformat() if isinstance(timestamp, datetime) else str(timestamp)

        try:
            document = build_status_document(
                site_id, report, last_updated, base_url, audit_type, scrape_job_id
            )
            body = json.dumps(document, indent=2, ensure_ascii=False).encode("utf-8")
            await self.blob_store.put(self.bucket, key, body, "application/json")
        except Exception as e:
            raise ReportingError(str(e)) from e
