import threading
import time
from unittest.mock import Mock

import pytest

from s3_bucket_registry.credentials import AggregationFailed
from s3_bucket_registry.interfaces import IBucketRegistry
from s3_bucket_registry.models import BucketCredentials
from s3_bucket_registry.models import BucketDetails
from s3_bucket_registry.models import EMPTY_SNAPSHOT
from s3_bucket_registry.permissions import bucket_name_in
from s3_bucket_registry.registry import BucketRegistry
from s3_bucket_registry.s3client import BucketFetchError


def _creds(bucket, name="ceph-a", endpoint=None):
    return BucketCredentials(
        endpoint=endpoint or f"http://{name}:7480",
        endpoint_name=name,
        access_key_id=f"{name}-key",
        secret_access_key=f"{name}-secret",
        bucket=bucket,
    )


class ListSource:
    """Credential source returning a fixed list, or raising."""

    def __init__(self, credentials=(), error=None, delay=0):
        self.credentials = list(credentials)
        self.error = error
        self.delay = delay

    def get_bucket_credentials(self):
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.credentials)


class FakeFetcher:
    def __init__(self, failing=(), delay=0, owner="owner"):
        self.failing = set(failing)
        self.delay = delay
        self.owner = owner

    def fetch_one(self, credentials):
        if self.delay:
            time.sleep(self.delay)
        if credentials.bucket in self.failing:
            raise BucketFetchError(f"cannot read {credentials.bucket}")
        return BucketDetails(
            bucket=credentials.bucket,
            owner=self.owner,
            endpoint=credentials.endpoint,
            endpoint_name=credentials.endpoint_name,
        )


def _registry(credentials, **fetcher_kwargs):
    return BucketRegistry(ListSource(credentials), FakeFetcher(**fetcher_kwargs))


class TestInitialState:
    def test_interface_provided(self):
        assert IBucketRegistry.providedBy(_registry([]))

    def test_empty_before_first_refresh(self):
        registry = _registry([_creds("b1")])
        assert registry.snapshot is EMPTY_SNAPSHOT
        assert registry.get_all_buckets() == []
        assert registry.get_grouped_buckets() == {}
        assert registry.get_bucket_info("ceph-a", "b1") is None
        assert registry.get_credentials_for_bucket("ceph-a", "b1") is None

    def test_invalid_max_workers(self):
        with pytest.raises(ValueError):
            BucketRegistry(ListSource(), FakeFetcher(), max_workers=0)


class TestRefresh:
    def test_refresh_builds_snapshot(self):
        creds = [_creds("b1"), _creds("b2", "ceph-b")]
        registry = _registry(creds)

        assert registry.refresh() is True
        snapshot = registry.snapshot
        assert [d.bucket for d in snapshot.buckets] == ["b1", "b2"]
        assert snapshot.credentials == tuple(creds)
        assert snapshot.refreshed_at is not None

    def test_failed_bucket_dropped(self, caplog):
        creds = [_creds("b1"), _creds("b2"), _creds("b3")]
        registry = _registry(creds, failing={"b2"})

        assert registry.refresh() is True
        assert len(registry.snapshot.buckets) == 2
        assert registry.get_all_buckets() == ["b1", "b3"]
        assert 'Error fetching data for bucket "b2"' in caplog.text

    def test_failed_bucket_keeps_credentials(self):
        registry = _registry([_creds("b1"), _creds("b2")], failing={"b2"})
        registry.refresh()
        assert registry.get_bucket_info("ceph-a", "b2") is None
        assert registry.get_credentials_for_bucket("ceph-a", "b2") is not None

    def test_unexpected_fetch_error_drops_bucket(self):
        fetcher = Mock()
        fetcher.fetch_one.side_effect = RuntimeError("bug")
        registry = BucketRegistry(ListSource([_creds("b1")]), fetcher)
        assert registry.refresh() is True
        assert registry.snapshot.buckets == ()

    def test_aggregation_failure_keeps_snapshot(self, caplog):
        source = ListSource([_creds("b1")])
        registry = BucketRegistry(source, FakeFetcher())
        registry.refresh()
        before = registry.snapshot

        source.error = AggregationFailed("radosgw down")
        assert registry.refresh() is False
        assert registry.snapshot is before
        assert registry.get_all_buckets() == ["b1"]
        assert "radosgw down" in caplog.text

    def test_aggregation_failure_on_first_refresh(self):
        registry = BucketRegistry(ListSource(error=AggregationFailed("x")), FakeFetcher())
        assert registry.refresh() is False
        assert registry.snapshot is EMPTY_SNAPSHOT

    def test_snapshot_replaced_as_a_whole(self):
        source = ListSource([_creds("b1"), _creds("b2")])
        registry = BucketRegistry(source, FakeFetcher())
        registry.refresh()

        source.credentials = [_creds("b3")]
        registry.refresh()
        assert registry.get_all_buckets() == ["b3"]
        assert registry.get_credentials_for_bucket("ceph-a", "b1") is None

    def test_fetches_run_concurrently(self):
        creds = [_creds(f"b{i}") for i in range(8)]
        registry = BucketRegistry(ListSource(creds), FakeFetcher(delay=0.2), max_workers=8)

        start = time.monotonic()
        registry.refresh()
        assert time.monotonic() - start < 1.0
        assert len(registry.snapshot.buckets) == 8

    def test_timeout_during_fetch_keeps_snapshot(self):
        source = ListSource([_creds("b1")])
        fetcher = FakeFetcher()
        registry = BucketRegistry(source, fetcher)
        registry.refresh()
        before = registry.snapshot

        source.credentials = [_creds("slow")]
        fetcher.delay = 0.5
        assert registry.refresh(timeout=0.05) is False
        assert registry.snapshot is before

        # Abandoned work must not land later either.
        time.sleep(0.6)
        assert registry.snapshot is before

    def test_timeout_during_credentials_keeps_snapshot(self):
        registry = BucketRegistry(ListSource([_creds("b1")], delay=0.5), FakeFetcher())
        assert registry.refresh(timeout=0.05) is False
        assert registry.snapshot is EMPTY_SNAPSHOT

    def test_refresh_within_timeout(self):
        registry = _registry([_creds("b1")])
        assert registry.refresh(timeout=5) is True

    def test_concurrent_refresh_skipped(self):
        release = threading.Event()
        entered = threading.Event()

        class BlockingSource:
            def get_bucket_credentials(self):
                entered.set()
                release.wait(5)
                return [_creds("b1")]

        registry = BucketRegistry(BlockingSource(), FakeFetcher())
        results = []
        t = threading.Thread(target=lambda: results.append(registry.refresh()))
        t.start()
        assert entered.wait(5)

        assert registry.refresh() is False
        release.set()
        t.join(5)
        assert results == [True]
        assert registry.get_all_buckets() == ["b1"]

    def test_readers_see_one_cycle_only(self):
        bucket_count = 20

        class CyclingSource:
            cycle = 0

            def get_bucket_credentials(self):
                self.cycle += 1
                return [_creds(f"b{i}", f"cycle-{self.cycle}") for i in range(bucket_count)]

        registry = BucketRegistry(CyclingSource(), FakeFetcher(), max_workers=4)
        stop = threading.Event()
        errors = []

        def reader():
            while not stop.is_set():
                snapshot = registry.snapshot
                names = {d.endpoint_name for d in snapshot.buckets}
                cred_names = {c.endpoint_name for c in snapshot.credentials}
                if len(names) > 1 or len(snapshot.buckets) not in (0, bucket_count):
                    errors.append(snapshot)
                if snapshot.buckets and names != cred_names:
                    errors.append(snapshot)

        readers = [threading.Thread(target=reader) for _ in range(4)]
        for t in readers:
            t.start()
        for _ in range(10):
            registry.refresh()
        stop.set()
        for t in readers:
            t.join()

        assert errors == []
        assert registry.get_grouped_buckets().keys() == {"cycle-10"}


class TestQueries:
    @pytest.fixture
    def registry(self):
        creds = [
            _creds("zeta"),
            _creds("alpha"),
            _creds("alpha"),
            _creds("b2", "ceph-b"),
            _creds("b1", "ceph-b"),
            _creds("b1", "ceph-b"),
        ]
        r = _registry(creds)
        r.refresh()
        return r

    def test_all_buckets_sorted_not_deduplicated(self):
        registry = _registry([_creds("zeta"), _creds("alpha"), _creds("alpha")])
        registry.refresh()
        assert registry.get_all_buckets() == ["alpha", "alpha", "zeta"]

    def test_all_buckets_filtered(self, registry):
        assert registry.get_all_buckets(bucket_name_in("zeta", "b1")) == [
            "b1",
            "b1",
            "zeta",
        ]

    def test_buckets_by_endpoint_name(self, registry):
        assert registry.get_buckets_by_endpoint("ceph-b") == ["b1", "b1", "b2"]

    def test_buckets_by_endpoint_url(self, registry):
        assert registry.get_buckets_by_endpoint("http://ceph-a:7480") == [
            "alpha",
            "alpha",
            "zeta",
        ]

    def test_buckets_by_endpoint_filtered(self, registry):
        assert registry.get_buckets_by_endpoint("ceph-b", bucket_name_in("b2")) == ["b2"]

    def test_buckets_by_unknown_endpoint(self, registry):
        assert registry.get_buckets_by_endpoint("nowhere") == []

    def test_grouped_buckets_deduplicated_and_sorted(self, registry):
        assert registry.get_grouped_buckets() == {
            "ceph-a": ["alpha", "zeta"],
            "ceph-b": ["b1", "b2"],
        }

    def test_grouped_buckets_dedup_per_group(self):
        registry = _registry([_creds("b1"), _creds("b1"), _creds("b2")])
        registry.refresh()
        assert registry.get_grouped_buckets() == {"ceph-a": ["b1", "b2"]}

    def test_grouped_buckets_filtered(self, registry):
        assert registry.get_grouped_buckets(bucket_name_in("b1")) == {"ceph-b": ["b1"]}

    def test_bucket_info_by_name_and_url(self, registry):
        by_name = registry.get_bucket_info("ceph-b", "b2")
        by_url = registry.get_bucket_info("http://ceph-b:7480", "b2")
        assert by_name is by_url
        assert by_name.bucket == "b2"

    def test_bucket_info_wrong_endpoint(self, registry):
        assert registry.get_bucket_info("ceph-a", "b2") is None

    def test_bucket_info_ignores_filter(self, registry):
        deny_all = bucket_name_in()
        assert registry.get_all_buckets(deny_all) == []
        assert registry.get_bucket_info("ceph-a", "zeta") is not None

    def test_credentials_for_bucket(self, registry):
        creds = registry.get_credentials_for_bucket("ceph-b", "b1")
        assert creds.access_key_id == "ceph-b-key"
        assert registry.get_credentials_for_bucket("http://ceph-b:7480", "b1") == creds
        assert registry.get_credentials_for_bucket("ceph-a", "b1") is None

    def test_filter_sees_bucket_details(self, registry):
        seen = []
        registry.get_all_buckets(lambda d: seen.append(d) or True)
        assert all(isinstance(d, BucketDetails) for d in seen)
        assert len(seen) == 6
