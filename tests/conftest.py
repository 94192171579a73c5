"""
Shared test fixtures and fakes.
"""

import json

import pytest

from prerender_audit.repository import InMemoryRepository
from prerender_audit.storage import (
    CLIENT_SIDE_HTML,
    SCRAPE_JSON,
    SERVER_SIDE_HTML,
    BlobStore,
    StorageFetchError,
    snapshot_key,
)

BUCKET = "test-bucket"


class MemoryBlobStore(BlobStore):
    """Dictionary-backed blob store."""

    def __init__(self):
        self.objects: dict[tuple[str, str], bytes] = {}
        self.content_types: dict[tuple[str, str], str] = {}
        self.list_calls = 0

    async def get(self, bucket, key):
        return self.objects.get((bucket, key))

    async def put(self, bucket, key, body, content_type="application/octet-stream"):
        self.objects[(bucket, key)] = body
        self.content_types[(bucket, key)] = content_type

    async def list(self, bucket, prefix):
        self.list_calls += 1
        return sorted(k for b, k in self.objects if b == bucket and k.startswith(prefix))

    def put_text(self, key, text, bucket=BUCKET):
        self.objects[(bucket, key)] = text.encode("utf-8")


class FailingBlobStore(MemoryBlobStore):
    """Blob store whose reads fail for keys containing one of the given fragments."""

    def __init__(self, fail_on=("",), error=None, fail_list=False, fail_put=False):
        super().__init__()
        self.fail_on = fail_on
        self.error = error or StorageFetchError("boom")
        self.fail_list = fail_list
        self.fail_put = fail_put

    async def get(self, bucket, key):
        if any(fragment in key for fragment in self.fail_on):
            raise self.error
        return await super().get(bucket, key)

    async def put(self, bucket, key, body, content_type="application/octet-stream"):
        if self.fail_put:
            raise RuntimeError("write denied")
        await super().put(bucket, key, body, content_type)

    async def list(self, bucket, prefix):
        if self.fail_list:
            self.list_calls += 1
            raise StorageFetchError("list denied")
        return await super().list(bucket, prefix)


class FakeClock:
    """Monotonic clock advanced only by its own sleep."""

    def __init__(self, start=1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def store_snapshots(
    blob_store,
    url,
    server_html=None,
    client_html=None,
    scrape=None,
    storage_id="site-1",
    bucket=BUCKET,
):
    """Write the scraped artifacts of a URL the way the scraper lays them out."""
    if server_html is not None:
        blob_store.put_text(snapshot_key(url, storage_id, SERVER_SIDE_HTML), server_html, bucket)
    if client_html is not None:
        blob_store.put_text(snapshot_key(url, storage_id, CLIENT_SIDE_HTML), client_html, bucket)
    if scrape is not None:
        body = scrape if isinstance(scrape, str) else json.dumps(scrape)
        blob_store.put_text(snapshot_key(url, storage_id, SCRAPE_JSON), body, bucket)


def words(count, word="word"):
    """HTML page whose body holds ``count`` words."""
    return f"<html><body><p>{' '.join([word] * count)}</p></body></html>"


@pytest.fixture
def blob_store():
    return MemoryBlobStore()


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def fake_clock():
    return FakeClock()
