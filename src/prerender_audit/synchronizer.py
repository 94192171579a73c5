"""
Finding synchronizer.

Merges a batch report into the persisted opportunity of a site and keeps
its suggestions in line with the pages that currently need prerendering.
Running it twice on the same report leaves the same records behind.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from .models import BatchReport, ContentGainFinding
from .repository import (
    Opportunity,
    OpportunityRepository,
    OpportunityStatus,
    Suggestion,
    SuggestionStatus,
    SuggestionType,
)
from .storage import CLIENT_SIDE_HTML, SERVER_SIDE_HTML, snapshot_key

logger = logging.getLogger(__name__)

AUDIT_TYPE = "prerender"

OPPORTUNITY_TITLE = "Recover content hidden from AI agents and crawlers"
OPPORTUNITY_DESCRIPTION = (
    "Pages load a significant share of their content with JavaScript. Pre-rendering "
    "them makes that content visible to clients that do not execute scripts."
)
OPPORTUNITY_TAGS = ["isElmo", "Prerender", "llm"]


class SynchronizationError(Exception):
    """Raised when opportunities or suggestions cannot be persisted."""

    pass


def merge_data(existing: Mapping[str, Any] | None, new: Mapping[str, Any]) -> dict[str, Any]:
    """
    Merge two data objects.

    Keys of ``new`` overwrite the same keys of ``existing``; keys only present
    in ``existing`` are kept. Neither argument is modified.
    """
    merged = dict(existing or {})
    merged.update(new)
    return merged


def build_opportunity_data(report: BatchReport, threshold: float | None = None) -> dict[str, Any]:
    """Default opportunity data for a batch report."""
    data = {
        "dataSources": ["Ahrefs", "Site"],
        "totalUrlsChecked": report.total_urls_checked,
        "urlsNeedingPrerender": report.urls_needing_prerender,
        "scrapeForbidden": report.scrape_forbidden,
    }
    if threshold is not None:
        data["contentGainThreshold"] = threshold
    return data


def suggestion_key(data: Mapping[str, Any], audit_type: str = AUDIT_TYPE) -> str:
    return f"{data.get('url')}|{audit_type}"


class FindingSynchronizer:
    """
    Creates or updates the opportunity and suggestions for a site.

    Assumes a single synchronization per site and audit type at a time.
    """

    def __init__(
        self,
        repository: OpportunityRepository,
        storage_id: str | None = None,
        storage_prefix: str = "prerender",
    ):
        """
        Initialize the synchronizer.

        Args:
            repository: Opportunity and suggestion storage
            storage_id: Scrape job id, used to reference the stored snapshots
            storage_prefix: Top-level prefix of the audit
        """
        self.repository = repository
        self.storage_id = storage_id
        self.storage_prefix = storage_prefix

    def suggestion_data(self, finding: ContentGainFinding) -> dict[str, Any]:
        """Fields a suggestion takes from a finding."""
        data = {
            "url": finding.url,
            "contentGainRatio": finding.content_gain_ratio,
            "wordCountBefore": finding.word_count_before,
            "wordCountAfter": finding.word_count_after,
            "organicTraffic": finding.organic_traffic,
        }
        if self.storage_id:
            data["originalHtmlKey"] = snapshot_key(
                finding.url, self.storage_id, SERVER_SIDE_HTML, self.storage_prefix
            )
            data["prerenderedHtmlKey"] = snapshot_key(
                finding.url, self.storage_id, CLIENT_SIDE_HTML, self.storage_prefix
            )
        return data

    async def find_open_opportunity(self, site_id: str, audit_type: str) -> Opportunity | None:
        """Find the open opportunity of a site for an audit type."""
        try:
            for status in OpportunityStatus.OPEN:
                for opportunity in await self.repository.all_by_site_id_and_status(site_id, status):
                    if opportunity.type == audit_type:
                        return opportunity
        except Exception as e:
            raise SynchronizationError(
                f"Failed to fetch opportunities for siteId {site_id}: {e}"
            ) from e
        return None

    async def sync(
        self,
        site_id: str,
        audit_type: str,
        report: BatchReport,
        build_opportunity_data: Callable[[BatchReport], dict] = build_opportunity_data,
        audit_id: str | None = None,
    ) -> Opportunity:
        """
        Merge a batch report into the opportunity and its suggestions.

        Args:
            site_id: Site identifier
            audit_type: Audit type of the opportunity
            report: Batch report to merge
            build_opportunity_data: Builds the opportunity data from the report
            audit_id: Audit that produced the report

        Returns:
            The created or updated opportunity

        Raises:
            SynchronizationError: If the opportunity cannot be persisted, or
                every suggestion operation failed
        """
        opportunity = await self._upsert_opportunity(
            site_id, audit_type, build_opportunity_data(report), audit_id
        )
        await self._sync_suggestions(opportunity, audit_type, report.prerender_findings)
        return opportunity

    async def sync_forbidden(
        self,
        site_id: str,
        audit_type: str,
        report: BatchReport,
        build_opportunity_data: Callable[[BatchReport], dict] = build_opportunity_data,
        audit_id: str | None = None,
    ) -> Opportunity:
        """
        Record that the site could not be scraped.

        Creates or updates a single opportunity flagged ``scrapeForbidden`` and
        leaves suggestions untouched.
        """
        logger.info(
            f"Prerender - Creating notification opportunity for forbidden scraping. siteId={site_id}"
        )
        data = merge_data(build_opportunity_data(report), {"scrapeForbidden": True})
        return await self._upsert_opportunity(site_id, audit_type, data, audit_id)

    async def _upsert_opportunity(
        self, site_id: str, audit_type: str, data: dict[str, Any], audit_id: str | None
    ) -> Opportunity:
        opportunity = await self.find_open_opportunity(site_id, audit_type)

        try:
            if opportunity is None:
                opportunity = Opportunity(
                    site_id=site_id,
                    type=audit_type,
                    audit_id=audit_id,
                    title=OPPORTUNITY_TITLE,
                    description=OPPORTUNITY_DESCRIPTION,
                    tags=list(OPPORTUNITY_TAGS),
                    data=dict(data),
                )
                opportunity = await self.repository.create_opportunity(opportunity)
                logger.info(f"Prerender - Created opportunity {opportunity.id} for siteId={site_id}")
            else:
                opportunity.data = merge_data(opportunity.data, data)
                if audit_id:
                    opportunity.audit_id = audit_id
                opportunity = await self.repository.save_opportunity(opportunity)
                logger.info(f"Prerender - Updated opportunity {opportunity.id} for siteId={site_id}")
        except Exception as e:
            raise SynchronizationError(
                f"Failed to create or update opportunity for siteId {site_id}: {e}"
            ) from e

        return opportunity

    async def _sync_suggestions(
        self,
        opportunity: Opportunity,
        audit_type: str,
        findings: list[ContentGainFinding],
    ) -> None:
        new_data = {}
        for finding in findings:
            data = self.suggestion_data(finding)
            new_data[suggestion_key(data, audit_type)] = data

        try:
            existing = await self.repository.all_suggestions_by_opportunity_id(opportunity.id)
        except Exception as e:
            raise SynchronizationError(
                f"Failed to load suggestions for opportunity {opportunity.id}: {e}"
            ) from e

        attempted = 0
        failed = 0
        matched: set[str] = set()
        removed = 0

        for suggestion in existing:
            key = suggestion_key(suggestion.data, audit_type)
            attempted += 1
            try:
                # Second suggestion with the same key is left over from an earlier run
                if key in new_data and key not in matched:
                    matched.add(key)
                    suggestion.data = merge_data(suggestion.data, new_data[key])
                    if suggestion.status == SuggestionStatus.OUTDATED:
                        logger.warning(
                            f"Prerender - Resolved suggestion found in audit. Possible regression: {key}"
                        )
                        suggestion.status = SuggestionStatus.NEW
                    await self.repository.save_suggestion(suggestion)
                else:
                    await self.repository.remove_suggestion(suggestion)
                    removed += 1
            except Exception as e:
                failed += 1
                logger.error(f"Prerender - Failed to sync suggestion {suggestion.id} ({key}): {e}")

        created = 0
        for key, data in new_data.items():
            if key in matched:
                continue
            attempted += 1
            try:
                await self.repository.create_suggestion(
                    Suggestion(
                        opportunity_id=opportunity.id,
                        type=SuggestionType.CONFIG_UPDATE,
                        rank=0,
                        data=data,
                    )
                )
                created += 1
            except Exception as e:
                failed += 1
                logger.error(f"Prerender - Failed to create suggestion {key}: {e}")

        if attempted and failed == attempted:
            raise SynchronizationError(
                f"Failed to sync all {attempted} suggestions for opportunity {opportunity.id}"
            )
        if failed:
            logger.warning(
                f"Prerender - Partial success syncing suggestions: {failed}/{attempted} failed"
            )

        logger.info(
            f"Prerender - Synced suggestions for opportunity {opportunity.id}: "
            f"updated={len(matched)}, created={created}, "
            f"removed={removed}"
        )
