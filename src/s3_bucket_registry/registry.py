from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from concurrent.futures import wait
from s3_bucket_registry.interfaces import IBucketRegistry
from s3_bucket_registry.models import EMPTY_SNAPSHOT
from s3_bucket_registry.models import Snapshot
from s3_bucket_registry.s3client import BucketFetchError
from zope.interface import implementer

import datetime
import logging
import threading
import time


logger = logging.getLogger(__name__)


def _remaining(deadline):
    if deadline is None:
        return None
    return max(deadline - time.monotonic(), 0)


@implementer(IBucketRegistry)
class BucketRegistry:
    """In-memory view over all known buckets.

    The view is a Snapshot that ``refresh`` rebuilds from scratch and
    swaps in with a single assignment. Readers grab the reference once
    and never see a half-built view, so queries take no lock. Refreshes
    are serialized; a refresh requested while another one is running is
    skipped.
    """

    def __init__(self, credential_source, fetcher, max_workers=16):
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.credential_source = credential_source
        self.fetcher = fetcher
        self.max_workers = max_workers
        self._snapshot = EMPTY_SNAPSHOT
        self._refresh_lock = threading.Lock()

    @property
    def snapshot(self):
        return self._snapshot

    def refresh(self, timeout=None):
        """Rebuild the snapshot; return True if it was replaced.

        Never raises for source or bucket failures: on any cycle-level
        failure or when ``timeout`` seconds elapse, the previous snapshot
        stays in place and False is returned.
        """
        if not self._refresh_lock.acquire(blocking=False):
            logger.info("Bucket refresh already running, skipping")
            return False
        try:
            return self._refresh(timeout)
        finally:
            self._refresh_lock.release()

    def _refresh(self, timeout):
        logger.info("Fetching S3 buckets...")
        deadline = None if timeout is None else time.monotonic() + timeout
        executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="bucket-fetch"
        )
        try:
            future = executor.submit(self.credential_source.get_bucket_credentials)
            try:
                credentials = tuple(future.result(timeout=_remaining(deadline)))
            except FuturesTimeoutError:
                logger.warning(
                    "Bucket credentials not available after %ss, "
                    "keeping previous snapshot",
                    timeout,
                )
                return False
            except Exception as e:
                logger.error(
                    "Could not fetch bucket credentials, keeping previous "
                    "snapshot: %s",
                    e,
                )
                return False

            futures = [executor.submit(self._fetch_one, c) for c in credentials]
            _done, pending = wait(futures, timeout=_remaining(deadline))
            if pending:
                logger.warning(
                    "Bucket refresh timed out after %ss with %d of %d buckets "
                    "pending, keeping previous snapshot",
                    timeout,
                    len(pending),
                    len(futures),
                )
                return False
            details = tuple(
                f.result() for f in futures if f.result() is not None
            )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        self._snapshot = Snapshot(
            buckets=details,
            credentials=credentials,
            refreshed_at=datetime.datetime.now(datetime.timezone.utc),
        )
        logger.info(
            "Fetched %d S3 buckets (%d failed)",
            len(details),
            len(credentials) - len(details),
        )
        return True

    def _fetch_one(self, credentials):
        """Fetch one bucket; failures drop the bucket from this cycle."""
        try:
            return self.fetcher.fetch_one(credentials)
        except BucketFetchError as e:
            logger.error(
                'Error fetching data for bucket "%s", skipping. %s',
                credentials.bucket,
                e,
            )
        except Exception:
            logger.exception(
                'Unexpected error fetching bucket "%s" on %s, skipping',
                credentials.bucket,
                credentials.endpoint,
            )
        return None

    # -- Queries --

    @staticmethod
    def _visible(snapshot, filter):
        if filter is None:
            return snapshot.buckets
        return [b for b in snapshot.buckets if filter(b)]

    def get_all_buckets(self, filter=None):
        return sorted(b.bucket for b in self._visible(self._snapshot, filter))

    def get_buckets_by_endpoint(self, endpoint, filter=None):
        return sorted(
            b.bucket
            for b in self._visible(self._snapshot, filter)
            if b.on_endpoint(endpoint)
        )

    def get_grouped_buckets(self, filter=None):
        grouped = {}
        for b in self._visible(self._snapshot, filter):
            names = grouped.setdefault(b.endpoint_name, [])
            if b.bucket not in names:
                names.append(b.bucket)
        return {endpoint: sorted(names) for endpoint, names in grouped.items()}

    def get_bucket_info(self, endpoint, bucket):
        for details in self._snapshot.buckets:
            if details.matches(endpoint, bucket):
                return details
        return None

    def get_credentials_for_bucket(self, endpoint, bucket):
        for credentials in self._snapshot.credentials:
            if credentials.matches(endpoint, bucket):
                return credentials
        return None
