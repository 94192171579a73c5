"""
Text extractor for counting visible words in an HTML snapshot.

Strips scripts, styles, media and page chrome before collecting text so that
navigation and consent banners do not dilute the word counts.
"""

import re

from bs4 import BeautifulSoup, Comment

from .models import ExtractedText

# Page chrome and consent banners. Also sent to the guidance service so that
# its summaries ignore the same regions.
EXCLUDED_SELECTORS = [
    "nav", "header", "footer",
    ".nav", ".navigation", ".navbar", ".nav-bar", ".menu", ".main-menu",
    ".header", ".site-header", ".page-header", ".top-header",
    ".footer", ".site-footer", ".page-footer", ".bottom-footer",
    ".breadcrumb", ".breadcrumbs",
    '[role="navigation"]', '[role="banner"]', '[role="contentinfo"]',
    ".navigation-wrapper", ".nav-wrapper", ".header-wrapper", ".footer-wrapper",
    ".site-navigation", ".primary-navigation", ".secondary-navigation",
    ".top-nav", ".bottom-nav", ".sidebar-nav",
    "#nav", "#navigation", "#navbar", "#header", "#footer", "#menu", "#main-menu",
    "#site-header", "#site-footer", "#page-header", "#page-footer",
    ".cc-banner", ".cc-grower", ".consent-banner", ".cookie-banner",
    ".privacy-banner", ".gdpr-banner", ".cookie-consent", ".privacy-consent",
    ".cookie-notice", ".privacy-notice", ".cookie-policy", ".privacy-policy",
    ".cookie-bar", ".privacy-bar", ".consent-bar", ".gdpr-bar",
    ".cookie-popup", ".privacy-popup", ".consent-popup", ".gdpr-popup",
    ".cookie-modal", ".privacy-modal", ".consent-modal", ".gdpr-modal",
    ".cookie-overlay", ".privacy-overlay", ".consent-overlay", ".gdpr-overlay",
    "#cookie-banner", "#privacy-banner", "#consent-banner", "#gdpr-banner",
    "#cookie-notice", "#privacy-notice", "#cookie-consent", "#privacy-consent",
    "#cookie-bar", "#privacy-bar", "#consent-bar", "#gdpr-bar",
    "#cookie-popup", "#privacy-popup", "#consent-popup", "#gdpr-popup", "#cookiemgmt",
    '[role="dialog"][aria-label="Consent Banner"]',
    '[role="dialog"][aria-label*="cookie" i]',
    '[role="dialog"][aria-label*="privacy" i]',
    '[role="dialog"][aria-label*="consent" i]',
    '[role="alertdialog"][aria-label*="cookie" i]',
    '[role="alertdialog"][aria-label*="privacy" i]',
    '[aria-describedby*="cookie" i]',
    '[aria-describedby*="privacy" i]',
]

_WHITESPACE = re.compile(r"\s+")


class TextExtractor:
    """
    Extracts normalized visible text from HTML and counts its words.

    A word is any maximal run of non-whitespace characters.
    """

    # Tags whose whole subtree is never content
    IGNORED_TAGS = ["script", "style", "noscript", "template"]

    MEDIA_TAGS = ["img", "video", "audio", "picture", "svg", "canvas", "embed", "object", "iframe"]

    def __init__(self, excluded_selectors: list[str] | None = None):
        """
        Initialize the text extractor.

        Args:
            excluded_selectors: CSS selectors whose elements are dropped before
                counting. Defaults to ``EXCLUDED_SELECTORS``; pass ``[]`` to
                keep all structural elements.
        """
        if excluded_selectors is None:
            excluded_selectors = EXCLUDED_SELECTORS
        self.excluded_selectors = list(excluded_selectors)

    def extract(self, html: str | None) -> ExtractedText:
        """
        Extract visible text from HTML.

        Args:
            html: HTML string to parse, may be empty or malformed

        Returns:
            ExtractedText with the normalized text and its word count
        """
        if not html:
            return ExtractedText(text="", word_count=0)

        soup = BeautifulSoup(html, "lxml")
        self._remove_ignored_elements(soup)

        text = self._normalize_whitespace(soup.get_text(separator=" "))
        return ExtractedText(text=text, word_count=self.count_words(text))

    @staticmethod
    def count_words(text: str) -> int:
        return len(text.split())

    def _remove_ignored_elements(self, soup: BeautifulSoup):
        """
        Remove elements that should not be considered as content.

        Args:
            soup: BeautifulSoup object
        """
        for tag in soup.find_all(self.IGNORED_TAGS + self.MEDIA_TAGS):
            tag.decompose()

        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()

        if self.excluded_selectors:
            for element in soup.select(", ".join(self.excluded_selectors)):
                # A parent may already have been removed along with this element
                if element.decomposed:
                    continue
                element.decompose()

    def _normalize_whitespace(self, text: str) -> str:
        return _WHITESPACE.sub(" ", text).strip()
