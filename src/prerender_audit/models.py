"""
Core data models for the prerender audit.

All models are plain data structures. Field names are snake_case; the
``to_dict`` methods produce the camelCase shape used in stored documents
and queue messages.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class CandidateURL:
    """
    A page selected for comparison.

    Frozen to ensure immutability once created.
    """

    url: str
    organic_traffic: int = 0

    def __post_init__(self):
        """Validate URL and traffic."""
        if not self.url or not isinstance(self.url, str):
            raise ValueError(f"URL must be a non-empty string: {self.url}")
        if self.organic_traffic < 0:
            raise ValueError(f"Organic traffic must be >= 0: {self.organic_traffic}")


@dataclass(frozen=True)
class ScrapeStatus:
    """Status recorded by the scraper in ``scrape.json``."""

    http_status_code: int
    message: str = ""

    @property
    def forbidden(self) -> bool:
        """Check if the scraper was denied access."""
        return self.http_status_code == 403

    def to_dict(self) -> dict:
        return {"statusCode": self.http_status_code, "message": self.message}


@dataclass
class HtmlSnapshotPair:
    """
    Server-side and client-side HTML captured for one URL.

    Any field may be absent when the corresponding object could not be read.
    """

    url: str
    server_html: str | None = None
    client_html: str | None = None
    scrape_status: ScrapeStatus | None = None
    has_scrape_metadata: bool = False

    @property
    def usable(self) -> bool:
        """Check if both HTML bodies are present."""
        return bool(self.server_html) and bool(self.client_html)


@dataclass(frozen=True)
class ExtractedText:
    """Normalized visible text of a document."""

    text: str
    word_count: int


@dataclass(frozen=True)
class ContentGainFinding:
    """
    Result of comparing the two snapshots of one URL.

    ``scrape_error`` is set when the comparison could not be made.
    """

    url: str
    word_count_before: int
    word_count_after: int
    content_gain_ratio: float
    needs_prerender: bool
    organic_traffic: int = 0
    scrape_error: dict[str, Any] | None = None

    @property
    def error(self) -> bool:
        return self.scrape_error is not None

    @classmethod
    def failed(cls, url: str, organic_traffic: int, error: dict[str, Any]) -> "ContentGainFinding":
        """Build a finding for a URL whose snapshots could not be compared."""
        return cls(
            url=url,
            word_count_before=0,
            word_count_after=0,
            content_gain_ratio=0.0,
            needs_prerender=False,
            organic_traffic=organic_traffic,
            scrape_error=error,
        )

    def to_dict(self) -> dict:
        data = {
            "url": self.url,
            "wordCountBefore": self.word_count_before,
            "wordCountAfter": self.word_count_after,
            "contentGainRatio": self.content_gain_ratio,
            "needsPrerender": self.needs_prerender,
            "organicTraffic": self.organic_traffic,
        }
        if self.scrape_error is not None:
            data["scrapeError"] = self.scrape_error
        return data


@dataclass(frozen=True)
class BatchReport:
    """
    Aggregate result of one comparison run.

    Use :meth:`from_findings` so the counters always agree with the findings.
    """

    total_urls_checked: int
    urls_needing_prerender: int
    scrape_forbidden: bool
    findings: tuple[ContentGainFinding, ...] = ()

    @classmethod
    def from_findings(cls, findings, scrape_forbidden: bool = False) -> "BatchReport":
        findings = tuple(findings)
        return cls(
            total_urls_checked=len(findings),
            urls_needing_prerender=sum(1 for f in findings if f.needs_prerender),
            scrape_forbidden=scrape_forbidden,
            findings=findings,
        )

    @property
    def successful_findings(self) -> list[ContentGainFinding]:
        return [f for f in self.findings if not f.error]

    @property
    def prerender_findings(self) -> list[ContentGainFinding]:
        """Findings for pages that should be pre-rendered."""
        return [f for f in self.findings if f.needs_prerender]

    def to_dict(self) -> dict:
        return {
            "totalUrlsChecked": self.total_urls_checked,
            "urlsNeedingPrerender": self.urls_needing_prerender,
            "scrapeForbidden": self.scrape_forbidden,
            "results": [f.to_dict() for f in self.findings],
        }


class PollStatus(str, Enum):
    """States of the result poller."""

    INIT = "init"
    POLLING = "polling"
    FOUND = "found"
    TIMED_OUT = "timed_out"
    DONE = "done"


@dataclass
class PollState:
    """
    Book-keeping for one poll loop.

    ``outcome`` keeps FOUND or TIMED_OUT after ``status`` moves to DONE.
    """

    expected_keys: frozenset[str]
    started_at: float
    max_wait_ms: int
    poll_interval_ms: int
    found_keys: frozenset[str] = frozenset()
    status: PollStatus = PollStatus.INIT
    outcome: PollStatus | None = None
    attempts: int = 0

    @property
    def missing_keys(self) -> frozenset[str]:
        return self.expected_keys - self.found_keys

    @property
    def complete(self) -> bool:
        return self.outcome == PollStatus.FOUND
