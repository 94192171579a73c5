"""
Snapshot fetcher for reading scraped pages from blob storage.

The scraping subsystem stores a server-side and a client-side HTML snapshot
plus a ``scrape.json`` status document for each URL.
"""

import asyncio
import json
import logging

from .models import HtmlSnapshotPair, ScrapeStatus
from .storage import (
    CLIENT_SIDE_HTML,
    SCRAPE_JSON,
    SERVER_SIDE_HTML,
    BlobStore,
    StorageFetchError,
    snapshot_key,
)

logger = logging.getLogger(__name__)


def parse_scrape_status(metadata: dict) -> ScrapeStatus | None:
    """
    Read the HTTP status recorded by the scraper.

    The scraper reports failures as ``{"error": {"statusCode": ..., "message": ...}}``;
    a top-level ``statusCode`` is accepted as well. A status code that is not
    an integer is treated as absent.
    """
    error = metadata.get("error")
    source = error if isinstance(error, dict) and error.get("statusCode") is not None else metadata
    if source.get("statusCode") is None:
        return None

    try:
        status_code = int(source["statusCode"])
    except (TypeError, ValueError):
        logger.warning(f"Prerender - Ignoring non-numeric statusCode: {source['statusCode']!r}")
        return None

    return ScrapeStatus(http_status_code=status_code, message=str(source.get("message", "")))


class SnapshotFetcher:
    """
    Fetches the snapshot pair of a URL.

    Never raises: every read that fails is logged and left absent in the
    returned pair.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        bucket: str,
        storage_id: str,
        storage_prefix: str = "prerender",
    ):
        """
        Initialize the snapshot fetcher.

        Args:
            blob_store: Storage holding the scraped artifacts
            bucket: Scraper bucket name
            storage_id: Scrape job id (or site id) the artifacts were stored under
            storage_prefix: Top-level prefix of the audit
        """
        self.blob_store = blob_store
        self.bucket = bucket
        self.storage_id = storage_id
        self.storage_prefix = storage_prefix

    def key_for(self, url: str, file_name: str) -> str:
        return snapshot_key(url, self.storage_id, file_name, self.storage_prefix)

    async def fetch(self, url: str) -> HtmlSnapshotPair:
        """
        Read server-side HTML, client-side HTML and scrape status for a URL.

        Args:
            url: Page URL

        Returns:
            HtmlSnapshotPair, with absent fields for failed reads
        """
        logger.debug(f"Prerender - Getting scraped content for URL: {url}")

        server, client, metadata = await asyncio.gather(
            self._read_text(self.key_for(url, SERVER_SIDE_HTML)),
            self._read_text(self.key_for(url, CLIENT_SIDE_HTML)),
            self._read_text(self.key_for(url, SCRAPE_JSON)),
            return_exceptions=True,
        )

        server_html = self._value_or_none(url, SERVER_SIDE_HTML, server)
        client_html = self._value_or_none(url, CLIENT_SIDE_HTML, client)
        raw_metadata = self._value_or_none(url, SCRAPE_JSON, metadata)

        scrape_status = None
        has_scrape_metadata = False
        if raw_metadata:
            try:
                parsed = json.loads(raw_metadata)
            except ValueError as e:
                logger.warning(f"Prerender - Invalid {SCRAPE_JSON} for {url}: {e}")
            else:
                if isinstance(parsed, dict):
                    has_scrape_metadata = True
                    scrape_status = parse_scrape_status(parsed)

        return HtmlSnapshotPair(
            url=url,
            server_html=server_html,
            client_html=client_html,
            scrape_status=scrape_status,
            has_scrape_metadata=has_scrape_metadata,
        )

    async def _read_text(self, key: str) -> str | None:
        try:
            body = await self.blob_store.get(self.bucket, key)
        except StorageFetchError:
            raise
        except Exception as e:
            raise StorageFetchError(f"Failed to read {key}: {e}") from e

        if not body:
            return None
        return body.decode("utf-8", errors="replace")

    def _value_or_none(self, url: str, file_name: str, result) -> str | None:
        if isinstance(result, BaseException):
            logger.warning(f"Prerender - Could not get {file_name} for {url}: {result}")
            return None
        return result
