"""
Result poller for waiting on artifacts written by another service.

Lists a storage prefix until every expected key exists or the wait budget
is spent. Runs one attempt at a time.
"""

import asyncio
import logging
import re
import time
from collections.abc import Awaitable, Callable, Iterable

from .models import PollState, PollStatus
from .storage import SCRAPE_JSON, BlobStore, snapshot_key

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MS = 30 * 1000
DEFAULT_MAX_WAIT_MS = 10 * 60 * 1000

# File name of a per-URL scrape status document
SCRAPE_ARTIFACT_PATTERN = re.compile(rf"(^|/){re.escape(SCRAPE_JSON)}$")


def expected_artifact_keys(
    urls: Iterable[str],
    storage_id: str,
    file_name: str = SCRAPE_JSON,
    storage_prefix: str = "prerender",
) -> frozenset[str]:
    """Derive one expected artifact key per URL."""
    return frozenset(snapshot_key(url, storage_id, file_name, storage_prefix) for url in urls)


class ResultPoller:
    """
    Bounded-wait poller over a storage prefix.

    States: INIT -> POLLING -> FOUND | TIMED_OUT -> DONE. A timeout is a
    partial result, not an error; callers continue with what exists.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        bucket: str,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        max_wait_ms: int = DEFAULT_MAX_WAIT_MS,
        artifact_pattern: re.Pattern | str = SCRAPE_ARTIFACT_PATTERN,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the poller.

        Args:
            blob_store: Storage to list
            bucket: Bucket name
            poll_interval_ms: Pause between attempts
            max_wait_ms: Total wait budget
            artifact_pattern: Regex a key must match to count as an artifact
            clock: Monotonic clock returning seconds
            sleep: Coroutine function sleeping for a number of seconds
        """
        self.blob_store = blob_store
        self.bucket = bucket
        self.poll_interval_ms = poll_interval_ms
        self.max_wait_ms = max_wait_ms
        self.artifact_pattern = re.compile(artifact_pattern)
        self.clock = clock
        self.sleep = sleep

    def is_artifact_key(self, key: str) -> bool:
        """Directory markers and keys with an unexpected name are not artifacts."""
        if not key or key.endswith("/"):
            return False
        return bool(self.artifact_pattern.search(key))

    async def wait_for(self, expected_keys: Iterable[str], prefix: str) -> PollState:
        """
        Poll until all expected keys are listed under ``prefix``.

        Args:
            expected_keys: Keys that must exist
            prefix: Prefix to list

        Returns:
            Final PollState, with ``outcome`` FOUND or TIMED_OUT
        """
        state = PollState(
            expected_keys=frozenset(expected_keys),
            started_at=self.clock(),
            max_wait_ms=self.max_wait_ms,
            poll_interval_ms=self.poll_interval_ms,
        )
        expected_count = len(state.expected_keys)
        state.status = PollStatus.POLLING

        logger.info(
            f"Prerender - Polling {self.bucket}/{prefix} for {expected_count} artifacts "
            f"(interval={self.poll_interval_ms}ms, maxWait={self.max_wait_ms}ms)"
        )

        while True:
            state.attempts += 1
            state.found_keys = await self._found_keys(state.expected_keys, prefix)

            if len(state.found_keys) == expected_count:
                state.status = PollStatus.FOUND
                logger.info(
                    f"Prerender - All {expected_count} artifacts found after {state.attempts} attempts"
                )
                break

            elapsed_ms = (self.clock() - state.started_at) * 1000
            if elapsed_ms >= self.max_wait_ms:
                state.status = PollStatus.TIMED_OUT
                logger.warning(
                    f"Prerender - Timed out after {elapsed_ms:.0f}ms with "
                    f"{len(state.found_keys)}/{expected_count} artifacts; "
                    f"proceeding with partial results"
                )
                break

            logger.debug(
                f"Prerender - {len(state.found_keys)}/{expected_count} artifacts found, waiting..."
            )
            await self.sleep(self.poll_interval_ms / 1000.0)

        state.outcome = state.status
        state.status = PollStatus.DONE
        return state

    async def _found_keys(self, expected_keys: frozenset[str], prefix: str) -> frozenset[str]:
        try:
            listed = await self.blob_store.list(self.bucket, prefix)
        except Exception as e:
            logger.error(f"Prerender - Error polling {self.bucket}/{prefix}: {e}")
            return frozenset()

        return frozenset(key for key in listed if self.is_artifact_key(key)) & expected_keys
