"""
Audit runner for orchestrating the full prerender audit of a site.

Selects candidates, optionally waits for the scraper, compares snapshots,
synchronizes findings, requests guidance and writes the status document.
"""

import asyncio
import logging
import time
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from .analyzer import ContentGainAnalyzer
from .candidates import TOP_PAGES_LIMIT, select_candidates
from .comparator import BatchComparator, ForbiddenPolicy
from .extractor import TextExtractor
from .fetcher import SnapshotFetcher
from .guidance import build_guidance_request, send_guidance_request
from .messaging import Queue
from .poller import ResultPoller, expected_artifact_keys
from .reporter import StatusReporter
from .repository import OpportunityRepository
from .storage import BlobStore
from .synchronizer import AUDIT_TYPE, FindingSynchronizer, build_opportunity_data
from .verifier import SuggestionVerifier

logger = logging.getLogger(__name__)


class PrerenderAuditRunner:
    """
    Runs the prerender audit for one site.

    Storage, queue and repository are injected; nothing is global.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        repository: OpportunityRepository,
        bucket: str,
        queue: Queue | None = None,
        guidance_queue_url: str | None = None,
        storage_prefix: str = "prerender",
        threshold: float = 1.2,
        top_pages_limit: int = TOP_PAGES_LIMIT,
        max_concurrency: int = 10,
        forbidden_policy: ForbiddenPolicy = ForbiddenPolicy.ALL,
        poller: ResultPoller | None = None,
        extractor: TextExtractor | None = None,
        verifier: SuggestionVerifier | None = None,
    ):
        """
        Initialize the audit runner.

        Args:
            blob_store: Storage holding snapshots and status documents
            repository: Opportunity and suggestion storage
            bucket: Scraper bucket name
            queue: Queue for guidance requests (optional)
            guidance_queue_url: Destination of guidance requests
            storage_prefix: Top-level key prefix of the audit
            threshold: Content gain threshold
            top_pages_limit: Maximum number of top pages compared
            max_concurrency: Maximum number of URLs compared concurrently
            forbidden_policy: Rule for detecting a forbidden scrape
            poller: Waits for scrape artifacts before comparing (optional)
            extractor: Text extractor shared by the analysis
            verifier: Marks suggestions of already pre-rendered pages FIXED (optional)
        """
        self.blob_store = blob_store
        self.repository = repository
        self.bucket = bucket
        self.queue = queue
        self.guidance_queue_url = guidance_queue_url
        self.storage_prefix = storage_prefix
        self.threshold = threshold
        self.top_pages_limit = top_pages_limit
        self.max_concurrency = max_concurrency
        self.forbidden_policy = ForbiddenPolicy(forbidden_policy)
        self.poller = poller
        self.verifier = verifier
        self.extractor = extractor or TextExtractor()
        self.analyzer = ContentGainAnalyzer(threshold=threshold, extractor=self.extractor)
        self.reporter = StatusReporter(blob_store, bucket, storage_prefix)

    @classmethod
    def from_settings(cls, settings, blob_store, repository, queue=None, poller=None, verifier=None):
        """Build a runner from :class:`~prerender_audit.config.Settings`."""
        return cls(
            blob_store=blob_store,
            repository=repository,
            bucket=settings.scraper_bucket,
            queue=queue,
            guidance_queue_url=settings.guidance_queue_url,
            storage_prefix=settings.storage_prefix,
            threshold=settings.content_gain_threshold,
            top_pages_limit=settings.top_pages_limit,
            max_concurrency=settings.max_concurrency,
            forbidden_policy=settings.forbidden_policy,
            poller=poller,
            verifier=verifier,
        )

    async def run_async(
        self,
        site_id: str,
        base_url: str,
        audit_id: str | None = None,
        top_pages: Iterable[Any] = (),
        included_urls: Iterable[str] = (),
        scrape_job_id: str | None = None,
    ) -> dict:
        """
        Run the audit asynchronously.

        Args:
            site_id: Site identifier
            base_url: Base URL of the site
            audit_id: Identifier of this audit run
            top_pages: Top pages of the site with their traffic
            included_urls: URLs configured to always be checked
            scrape_job_id: Scrape job the snapshots were stored under, defaults to site_id

        Returns:
            ``{"status": "complete", "auditResult": ...}`` or
            ``{"status": "ERROR", "error": ...}``
        """
        started = time.monotonic()
        storage_id = scrape_job_id or site_id
        logger.info(f"Prerender - Generate opportunities for baseUrl={base_url}, siteId={site_id}")

        try:
            candidates = select_candidates(top_pages, base_url, self.top_pages_limit, included_urls)
            logger.info(f"Prerender - Comparing {len(candidates)} URLs. baseUrl={base_url}")

            if self.poller is not None:
                await self.poller.wait_for(
                    expected_artifact_keys(
                        (c.url for c in candidates), storage_id, storage_prefix=self.storage_prefix
                    ),
                    f"{self.storage_prefix}/scrapes/{storage_id}/",
                )

            fetcher = SnapshotFetcher(self.blob_store, self.bucket, storage_id, self.storage_prefix)
            comparator = BatchComparator(
                fetcher, self.analyzer, self.max_concurrency, self.forbidden_policy
            )
            report = await comparator.compare_all(candidates, self.threshold)

            synchronizer = FindingSynchronizer(self.repository, storage_id, self.storage_prefix)

            def opportunity_data(batch_report):
                return build_opportunity_data(batch_report, self.threshold)

            if report.scrape_forbidden:
                await synchronizer.sync_forbidden(
                    site_id, AUDIT_TYPE, report, opportunity_data, audit_id
                )
            elif report.urls_needing_prerender > 0:
                opportunity = await synchronizer.sync(
                    site_id, AUDIT_TYPE, report, opportunity_data, audit_id
                )
                await self._request_guidance(site_id, audit_id, opportunity.id, synchronizer, report)
                if self.verifier is not None:
                    await self.verifier.verify_and_mark_fixed(opportunity)
            else:
                logger.info(f"Prerender - No opportunity found. baseUrl={base_url}, siteId={site_id}")

        except Exception as e:
            logger.error(
                f"Prerender - Audit failed for baseUrl={base_url}, siteId={site_id}: {e}",
                exc_info=True,
            )
            return {"status": "ERROR", "error": str(e)}

        logger.info(
            f"Prerender - Audit completed in {time.monotonic() - started:.2f}s. "
            f"baseUrl={base_url}, siteId={site_id}"
        )

        await self.reporter.report(
            site_id,
            report,
            datetime.now(timezone.utc),
            base_url=base_url,
            scrape_job_id=scrape_job_id,
        )

        return {"status": "complete", "auditResult": report.to_dict()}

    def run(self, site_id: str, base_url: str, **kwargs) -> dict:
        """
        Run the audit synchronously.

        Convenience method that wraps run_async.
        """
        return asyncio.run(self.run_async(site_id, base_url, **kwargs))

    async def _request_guidance(self, site_id, audit_id, opportunity_id, synchronizer, report):
        if self.queue is None or not self.guidance_queue_url:
            logger.debug("Prerender - No guidance queue configured, skipping guidance request")
            return

        message = build_guidance_request(
            site_id,
            audit_id,
            [synchronizer.suggestion_data(f) for f in report.prerender_findings],
            self.extractor.excluded_selectors,
            opportunity_id,
        )
        await send_guidance_request(self.queue, self.guidance_queue_url, message)
