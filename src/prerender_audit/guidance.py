"""
Guidance service integration.

After a run with findings, a request is queued for the guidance service to
summarize what each page is missing without JavaScript. The service answers
asynchronously with a callback message, handled by :class:`GuidanceHandler`
(exposed on the command line as ``prerender-guidance``).
"""

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .messaging import Queue
from .repository import Opportunity, OpportunityRepository, OpportunityStatus, SuggestionStatus
from .synchronizer import AUDIT_TYPE, merge_data

logger = logging.getLogger(__name__)

GUIDANCE_MESSAGE_TYPE = "guidance:prerender"


# --------------------------------------------------------------------------- #
# Outbound request                                                            #
# --------------------------------------------------------------------------- #


def build_guidance_request(
    site_id: str,
    audit_id: str | None,
    suggestions: list[dict[str, Any]],
    excluded_selectors: list[str],
    opportunity_id: str | None = None,
) -> dict[str, Any]:
    """Build the message asking the guidance service to summarize suggestions."""
    data: dict[str, Any] = {
        "suggestions": suggestions,
        "excludedSelectors": list(excluded_selectors),
    }
    if opportunity_id:
        data["opportunityId"] = opportunity_id
    return {
        "type": GUIDANCE_MESSAGE_TYPE,
        "siteId": site_id,
        "auditId": audit_id,
        "data": data,
    }


async def send_guidance_request(queue: Queue, queue_url: str, message: dict[str, Any]) -> bool:
    """
    Send a guidance request.

    Failures are logged and not retried.

    Returns:
        True if the queue accepted the message
    """
    try:
        await queue.send(queue_url, message)
    except Exception as e:
        logger.error(f"Prerender - Failed to send guidance request for siteId={message.get('siteId')}: {e}")
        return False

    logger.info(
        f"Prerender - Sent guidance request with {len(message['data']['suggestions'])} "
        f"suggestions for siteId={message.get('siteId')}"
    )
    return True


# --------------------------------------------------------------------------- #
# Inbound callback                                                            #
# --------------------------------------------------------------------------- #


class GuidanceSuggestion(BaseModel):
    """One enriched suggestion returned by the guidance service."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    url: str | None = None
    ai_summary: str | None = Field(default=None, alias="aiSummary")
    valuable: bool | None = None


class GuidanceData(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    suggestions: list[GuidanceSuggestion | None] | None = None
    presigned_url: str | None = Field(default=None, alias="presignedUrl")
    opportunity_id: str | None = Field(default=None, alias="opportunityId")

    @model_validator(mode="after")
    def _require_payload(self) -> "GuidanceData":
        if self.suggestions is None and not self.presigned_url:
            raise ValueError("data must contain suggestions or presignedUrl")
        return self


class GuidanceMessage(BaseModel):
    """Callback message sent by the guidance service."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    site_id: str = Field(alias="siteId", min_length=1)
    audit_id: str | None = Field(default=None, alias="auditId")
    data: GuidanceData


@dataclass(frozen=True)
class GuidanceResult:
    """Outcome of handling a callback."""

    status: str
    message: str = ""
    updated: int = 0

    OK = "ok"
    BAD_REQUEST = "bad_request"
    NOT_FOUND = "not_found"

    @property
    def ok(self) -> bool:
        return self.status == self.OK


class GuidanceDownloadError(Exception):
    """Raised when the callback payload cannot be downloaded."""

    pass


class GuidanceHandler:
    """
    Merges guidance callbacks into existing suggestions.

    Suggestions are matched by URL; OUTDATED suggestions are never updated.
    """

    def __init__(
        self,
        repository: OpportunityRepository,
        http_client: httpx.AsyncClient | None = None,
        audit_type: str = AUDIT_TYPE,
        timeout: float = 30.0,
    ):
        """
        Initialize the handler.

        Args:
            repository: Opportunity and suggestion storage
            http_client: Client used to download presigned payloads
            audit_type: Audit type of the opportunity to update
            timeout: Download timeout in seconds
        """
        self.repository = repository
        self.http_client = http_client
        self.audit_type = audit_type
        self.timeout = timeout

    async def handle(self, raw_message: dict[str, Any]) -> GuidanceResult:
        """
        Handle a guidance callback.

        Args:
            raw_message: Message body as received from the queue

        Returns:
            GuidanceResult with status ``ok``, ``bad_request`` or ``not_found``
        """
        logger.info(f"Prerender - Received guidance: {json.dumps(raw_message, default=str)[:1000]}")

        try:
            message = GuidanceMessage.model_validate(raw_message)
        except ValidationError as e:
            msg = f"Prerender - Invalid guidance message: {e.errors()}"
            logger.error(msg)
            return GuidanceResult(GuidanceResult.BAD_REQUEST, msg)

        site_id = message.site_id
        suggestions = message.data.suggestions
        if suggestions is None:
            try:
                suggestions = await self._download(message.data.presigned_url)
            except GuidanceDownloadError as e:
                logger.error(f"Prerender - {e}")
                return GuidanceResult(GuidanceResult.BAD_REQUEST, f"Failed to process guidance: {e}")

        opportunity = await self._find_opportunity(site_id, message.data.opportunity_id)
        if opportunity is None:
            logger.error(f"Prerender - Opportunity not found for siteId={site_id}")
            return GuidanceResult(GuidanceResult.NOT_FOUND, "Opportunity not found")

        existing = await self.repository.all_suggestions_by_opportunity_id(opportunity.id)
        by_url = {
            s.data["url"]: s
            for s in existing
            if s.status != SuggestionStatus.OUTDATED and s.data.get("url")
        }
        if not by_url:
            logger.warning(
                f"Prerender - No updateable suggestions for opportunityId={opportunity.id}, siteId={site_id}"
            )
            return GuidanceResult(GuidanceResult.OK)

        updated = 0
        valuable = 0
        for incoming in suggestions:
            if incoming is None or not incoming.url:
                logger.warning(f"Prerender - Skipping guidance suggestion without URL: {incoming}")
                continue

            suggestion = by_url.get(incoming.url)
            if suggestion is None:
                logger.warning(
                    f"Prerender - No existing suggestion found for URL={incoming.url} "
                    f"on opportunityId={opportunity.id}"
                )
                continue

            suggestion.data = merge_data(suggestion.data, self._suggestion_fields(incoming))
            await self.repository.save_suggestion(suggestion)
            updated += 1
            if suggestion.data["aiSummary"] and suggestion.data["valuable"]:
                valuable += 1

        logger.info(
            f"Prerender - Updated aiSummaries for siteId={site_id} | opportunityId={opportunity.id} | "
            f"totalSuggestions={updated} | valuableSuggestions={valuable}"
        )
        return GuidanceResult(GuidanceResult.OK, updated=updated)

    @staticmethod
    def _suggestion_fields(incoming: GuidanceSuggestion) -> dict[str, Any]:
        fields = incoming.model_dump(by_alias=True, exclude_none=True)
        summary = incoming.ai_summary or ""
        if summary.strip().lower() == "not available":
            summary = ""
        fields["aiSummary"] = summary
        fields["valuable"] = incoming.valuable if incoming.valuable is not None else True
        return fields

    async def _find_opportunity(self, site_id: str, opportunity_id: str | None) -> Opportunity | None:
        if opportunity_id:
            return await self.repository.find_opportunity_by_id(opportunity_id)
        for status in OpportunityStatus.OPEN:
            for opportunity in await self.repository.all_by_site_id_and_status(site_id, status):
                if opportunity.type == self.audit_type:
                    return opportunity
        return None

    async def _download(self, presigned_url: str) -> list[GuidanceSuggestion | None]:
        client = self.http_client or httpx.AsyncClient(timeout=self.timeout)
        try:
            response = await client.get(presigned_url)
        except httpx.HTTPError as e:
            raise GuidanceDownloadError(f"Failed to download from presigned URL: {e}") from e
        finally:
            if self.http_client is None:
                await client.aclose()

        if not response.is_success:
            raise GuidanceDownloadError(
                f"Failed to download from presigned URL: {response.status_code} {response.reason_phrase}"
            )

        try:
            payload = GuidanceData.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise GuidanceDownloadError(f"Downloaded data is invalid: {e}") from e
        if payload.suggestions is None:
            raise GuidanceDownloadError("Downloaded data is missing required suggestions array")

        return payload.suggestions
