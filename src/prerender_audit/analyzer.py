"""
Content gain analyzer.

Compares the word counts of server-side and client-side HTML to decide
whether a page depends on JavaScript for its content.
"""

from .extractor import TextExtractor
from .models import ContentGainFinding

DEFAULT_THRESHOLD = 1.2


class MissingContentError(Exception):
    """Raised when one of the two HTML snapshots is empty or absent."""

    def __init__(self, message: str = "Missing HTML content for comparison"):
        super().__init__(message)


def content_gain_ratio(word_count_before: int, word_count_after: int) -> float:
    """
    Ratio of client-side words to server-side words, rounded to one decimal.

    An empty server-side page scores 1.0 against an empty client-side page,
    and ``word_count_after + 1`` otherwise, so any gain from nothing is > 1.
    """
    if word_count_before > 0:
        return round(word_count_after / word_count_before, 1)
    if word_count_after > 0:
        return float(word_count_after + 1)
    return 1.0


class ContentGainAnalyzer:
    """
    Scores how much content only appears after JavaScript runs.

    Holds no state between calls; the result depends only on the inputs.
    """

    def __init__(
        self,
        threshold: float = DEFAULT_THRESHOLD,
        extractor: TextExtractor | None = None,
    ) -> None:
        """
        Initialize the analyzer.

        Args:
            threshold: Default ratio above which a page needs prerendering
            extractor: Text extractor used for both snapshots
        """
        self.threshold = threshold
        self.extractor = extractor or TextExtractor()

    def analyze(
        self,
        server_html: str | None,
        client_html: str | None,
        threshold: float | None = None,
        *,
        url: str = "",
        organic_traffic: int = 0,
    ) -> ContentGainFinding:
        """
        Compare server-side and client-side HTML.

        Args:
            server_html: HTML as served, without JavaScript
            client_html: HTML after client-side rendering
            threshold: Override for the analyzer's threshold
            url: URL the snapshots belong to
            organic_traffic: Traffic of the page, carried into the finding

        Returns:
            ContentGainFinding for the pair

        Raises:
            MissingContentError: If either HTML is empty or absent
        """
        if not server_html or not client_html:
            raise MissingContentError()

        if threshold is None:
            threshold = self.threshold

        before = self.extractor.extract(server_html).word_count
        after = self.extractor.extract(client_html).word_count
        ratio = content_gain_ratio(before, after)

        return ContentGainFinding(
            url=url,
            word_count_before=before,
            word_count_after=after,
            content_gain_ratio=ratio,
            # Comparisons against NaN are always False
            needs_prerender=ratio > threshold,
            organic_traffic=organic_traffic,
        )
