"""
Batch comparator for running the content gain analysis over many URLs.

Each candidate is fetched and analyzed in its own task; failures are kept
per candidate and never stop the batch.
"""

import asyncio
import logging
from enum import Enum

from .analyzer import ContentGainAnalyzer, MissingContentError
from .fetcher import SnapshotFetcher
from .models import BatchReport, CandidateURL, ContentGainFinding, HtmlSnapshotPair

logger = logging.getLogger(__name__)


class ForbiddenPolicy(str, Enum):
    """
    When a batch counts as "scraping forbidden".

    ALL: every candidate with scrape metadata reported 403.
    ANY: at least one candidate reported 403.
    Both also require that no candidate yielded usable HTML.
    """

    ALL = "all"
    ANY = "any"


class BatchComparator:
    """
    Compares the snapshots of a batch of candidates concurrently.

    Each task returns its own finding; the report is built once all tasks
    have settled.
    """

    def __init__(
        self,
        fetcher: SnapshotFetcher,
        analyzer: ContentGainAnalyzer | None = None,
        max_concurrency: int = 10,
        forbidden_policy: ForbiddenPolicy = ForbiddenPolicy.ALL,
    ):
        """
        Initialize the batch comparator.

        Args:
            fetcher: Reads the snapshot pair of each URL
            analyzer: Scores each pair
            max_concurrency: Maximum number of candidates processed at once
            forbidden_policy: Rule for detecting a forbidden scrape
        """
        self.fetcher = fetcher
        self.analyzer = analyzer or ContentGainAnalyzer()
        self.max_concurrency = max_concurrency
        self.forbidden_policy = ForbiddenPolicy(forbidden_policy)

    async def compare_all(
        self, candidates: list[CandidateURL], threshold: float | None = None
    ) -> BatchReport:
        """
        Fetch and analyze every candidate.

        Args:
            candidates: Pages to compare
            threshold: Content gain threshold, defaults to the analyzer's

        Returns:
            BatchReport aggregating one finding per candidate
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        tasks = [self._process_candidate(c, threshold, semaphore) for c in candidates]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        findings: list[ContentGainFinding] = []
        pairs: list[HtmlSnapshotPair] = []
        failures = 0
        for candidate, result in zip(candidates, results):
            if isinstance(result, Exception):
                failures += 1
                logger.error(f"Prerender - Comparison failed for {candidate.url}: {result}")
                findings.append(
                    ContentGainFinding.failed(
                        candidate.url,
                        candidate.organic_traffic,
                        {"message": f"Unexpected error: {result}"},
                    )
                )
            else:
                finding, pair = result
                findings.append(finding)
                pairs.append(pair)

        if failures:
            logger.warning(f"Prerender - {failures}/{len(candidates)} comparisons raised")

        scrape_forbidden = self._is_scrape_forbidden(pairs)
        if scrape_forbidden:
            findings = [self._strip_detail(f) for f in findings]

        report = BatchReport.from_findings(findings, scrape_forbidden=scrape_forbidden)
        logger.info(
            f"Prerender - Found {report.urls_needing_prerender}/{len(report.successful_findings)} "
            f"URLs needing prerender from total {report.total_urls_checked} URLs scraped. "
            f"scrapeForbidden={scrape_forbidden}"
        )
        return report

    async def _process_candidate(
        self,
        candidate: CandidateURL,
        threshold: float | None,
        semaphore: asyncio.Semaphore,
    ) -> tuple[ContentGainFinding, HtmlSnapshotPair]:
        async with semaphore:
            pair = await self.fetcher.fetch(candidate.url)

        scrape_error = pair.scrape_status.to_dict() if pair.scrape_status else None

        if not pair.usable:
            message = (
                f"Missing HTML data for {candidate.url} "
                f"(server-side: {bool(pair.server_html)}, client-side: {bool(pair.client_html)})"
            )
            logger.error(f"Prerender - HTML analysis failed for {candidate.url}: {message}")
            return (
                ContentGainFinding.failed(
                    candidate.url, candidate.organic_traffic, scrape_error or {"message": message}
                ),
                pair,
            )

        try:
            finding = self.analyzer.analyze(
                pair.server_html,
                pair.client_html,
                threshold,
                url=candidate.url,
                organic_traffic=candidate.organic_traffic,
            )
        except MissingContentError as e:
            return (
                ContentGainFinding.failed(
                    candidate.url, candidate.organic_traffic, scrape_error or {"message": str(e)}
                ),
                pair,
            )

        logger.debug(
            f"Prerender - Content analysis for {candidate.url}: "
            f"contentGainRatio={finding.content_gain_ratio}, "
            f"wordCountBefore={finding.word_count_before}, "
            f"wordCountAfter={finding.word_count_after}"
        )
        return finding, pair

    def _is_scrape_forbidden(self, pairs: list[HtmlSnapshotPair]) -> bool:
        if any(pair.usable for pair in pairs):
            return False

        with_metadata = [pair for pair in pairs if pair.has_scrape_metadata]
        forbidden = [
            pair for pair in with_metadata if pair.scrape_status and pair.scrape_status.forbidden
        ]

        if self.forbidden_policy == ForbiddenPolicy.ANY:
            return len(forbidden) > 0
        return len(with_metadata) > 0 and len(forbidden) == len(with_metadata)

    @staticmethod
    def _strip_detail(finding: ContentGainFinding) -> ContentGainFinding:
        if finding.error:
            return finding
        return ContentGainFinding.failed(
            finding.url, finding.organic_traffic, {"message": "Scraping forbidden"}
        )
