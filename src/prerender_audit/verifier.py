"""
Verification of suggestions against the live site.

A page served through edge pre-rendering answers the edge-optimize user agent
with a request id header. Suggestions for such pages are marked FIXED.
"""

import asyncio
import logging

import httpx

from .repository import Opportunity, OpportunityRepository, Suggestion, SuggestionStatus

logger = logging.getLogger(__name__)

EDGE_OPTIMIZE_USER_AGENT = (
    "Tokowaka-AI Tokowaka/1.0 AdobeEdgeOptimize-AI AdobeEdgeOptimize/1.0"
)

# x-tokowaka-request-id is the legacy name of x-edgeoptimize-request-id
PRERENDER_INDICATOR_HEADERS = ["x-tokowaka-request-id", "x-edgeoptimize-request-id"]

VERIFICATION_TIMEOUT_MS = 10000


class SuggestionVerifier:
    """
    Checks NEW suggestions and marks the pre-rendered ones FIXED.

    Uses httpx for HTTP requests and follows redirects.
    """

    def __init__(
        self,
        repository: OpportunityRepository,
        user_agent: str = EDGE_OPTIMIZE_USER_AGENT,
        timeout: int = VERIFICATION_TIMEOUT_MS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the verifier.

        Args:
            repository: Opportunity and suggestion storage
            user_agent: User-Agent header sent to the site
            timeout: Timeout per request in milliseconds
            transport: Optional httpx transport
        """
        self.repository = repository
        self.user_agent = user_agent
        self.timeout = timeout
        self.transport = transport

    async def is_prerender_enabled(self, client: httpx.AsyncClient, url: str) -> bool:
        """
        Check if a URL is served with pre-rendering.

        Args:
            client: HTTP client
            url: The URL to check

        Returns:
            True if any indicator header is present
        """
        try:
            response = await client.get(url, headers={"User-Agent": self.user_agent, "Accept": "*/*"})
        except httpx.TimeoutException:
            logger.warning(f"Prerender verification timed out for {url} after {self.timeout}ms")
            return False
        except httpx.HTTPError as e:
            logger.warning(f"Prerender verification failed for {url}: {e}")
            return False

        return any(response.headers.get(header) for header in PRERENDER_INDICATOR_HEADERS)

    async def verify_and_mark_fixed(self, opportunity: Opportunity) -> int:
        """
        Verify NEW suggestions of an opportunity.

        Args:
            opportunity: Opportunity whose suggestions are checked

        Returns:
            Number of suggestions marked FIXED
        """
        try:
            suggestions = await self.repository.all_suggestions_by_opportunity_id(opportunity.id)
            candidates = [
                s for s in suggestions
                if s.status == SuggestionStatus.NEW and s.data.get("url") and not s.data.get("key")
            ]
            if not candidates:
                return 0

            async with httpx.AsyncClient(
                follow_redirects=True,
                timeout=self.timeout / 1000.0,
                transport=self.transport,
            ) as client:
                checks = await asyncio.gather(
                    *(self.is_prerender_enabled(client, s.data["url"]) for s in candidates)
                )

            fixed: list[Suggestion] = [s for s, enabled in zip(candidates, checks) if enabled]
            for suggestion in fixed:
                suggestion.status = SuggestionStatus.FIXED
                await self.repository.save_suggestion(suggestion)

            if fixed:
                logger.info(
                    f"Prerender - Marked {len(fixed)}/{len(candidates)} suggestions as FIXED "
                    f"for opportunityId={opportunity.id}"
                )
            return len(fixed)

        except Exception as e:
            logger.error(f"Prerender - verification error: {e}", exc_info=True)
            return 0
