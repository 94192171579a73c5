"""
Candidate selection.

Turns the top pages of a site into the list of URLs to compare.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any
from urllib.parse import urlparse

from .models import CandidateURL

logger = logging.getLogger(__name__)

TOP_PAGES_LIMIT = 25

NON_HTML_EXTENSIONS = (
    # Documents
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx", ".txt", ".csv",
    # Images
    ".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp", ".bmp", ".ico",
    # Media
    ".mp4", ".avi", ".mov", ".wmv", ".mp3", ".wav", ".ogg",
    # Archives
    ".zip", ".rar", ".tar", ".gz", ".7z",
    # Code/Data
    ".json", ".xml", ".css", ".js", ".ts", ".map",
    # Fonts
    ".woff", ".woff2", ".ttf", ".eot", ".otf",
)


def has_non_html_extension(url: str) -> bool:
    """Check if a URL points to a non-HTML resource based on its path extension."""
    return urlparse(url).path.lower().endswith(NON_HTML_EXTENSIONS)


def _page_field(page: Any, *names: str, default=None):
    for name in names:
        if isinstance(page, Mapping):
            if page.get(name) is not None:
                return page[name]
        elif getattr(page, name, None) is not None:
            return getattr(page, name)
    return default


def select_candidates(
    top_pages: Iterable[Any],
    base_url: str,
    limit: int = TOP_PAGES_LIMIT,
    included_urls: Iterable[str] = (),
) -> list[CandidateURL]:
    """
    Select the pages to compare.

    Top pages are ordered by descending traffic, deduplicated by exact URL,
    stripped of non-HTML resources and capped at ``limit``. Site-configured
    included URLs are appended afterwards. Falls back to the base URL when
    nothing is left.

    Args:
        top_pages: Mappings or objects with ``url`` and ``traffic`` (or
            ``organic_traffic``)
        base_url: Base URL of the site
        limit: Maximum number of top pages kept
        included_urls: Additional URLs always compared

    Returns:
        List of CandidateURL, never empty
    """
    pages = []
    for page in top_pages:
        url = _page_field(page, "url")
        if not url:
            continue
        traffic = _page_field(page, "traffic", "organic_traffic", "organicTraffic", default=0)
        pages.append((str(url), max(int(traffic), 0)))

    # sorted() is stable, so equal traffic keeps the source order
    pages.sort(key=lambda item: item[1], reverse=True)

    seen: set[str] = set()
    candidates: list[CandidateURL] = []
    filtered = 0
    for url, traffic in pages:
        if url in seen:
            continue
        seen.add(url)
        if has_non_html_extension(url):
            filtered += 1
            continue
        if len(candidates) >= limit:
            break
        candidates.append(CandidateURL(url=url, organic_traffic=traffic))

    for url in included_urls:
        if url and url not in seen:
            seen.add(url)
            candidates.append(CandidateURL(url=url, organic_traffic=0))

    if filtered:
        logger.info(f"Prerender - Filtered {filtered} non-HTML URLs. baseUrl={base_url}")

    if not candidates:
        logger.info(f"Prerender - No URLs found, falling back to baseUrl={base_url}")
        return [CandidateURL(url=base_url, organic_traffic=0)]

    return candidates
