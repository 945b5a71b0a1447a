"""End-to-end tests: ZConfig configuration, registry and scheduler against moto S3."""

from botocore.config import Config
from io import StringIO
from moto import mock_aws
from s3_bucket_registry.config import build_registry
from s3_bucket_registry.config import build_scheduler
from s3_bucket_registry.config import load_config
from s3_bucket_registry.permissions import owner_in
from s3_bucket_registry.scheduler import SchedulerState

import boto3
import pytest


CONFIG = """\
refresh-interval 60
<static-locator>
  <platform aws>
    endpoint https://s3.amazonaws.com
    access-key-id testing
    secret-access-key testing
    bucket logs
    bucket images
    bucket deleted
  </platform>
</static-locator>
"""


@pytest.fixture
def s3_env():
    with mock_aws():
        # "logs" is also a service hostname, so virtual-hosted
        # addressing would leave S3.
        s3 = boto3.client(
            "s3",
            region_name="us-east-1",
            config=Config(s3={"addressing_style": "path"}),
        )
        s3.create_bucket(Bucket="logs")
        s3.create_bucket(Bucket="images")
        s3.put_bucket_lifecycle_configuration(
            Bucket="logs",
            LifecycleConfiguration={
                "Rules": [
                    {
                        "ID": "expire-logs",
                        "Filter": {"Prefix": ""},
                        "Status": "Enabled",
                        "Expiration": {"Days": 14},
                    }
                ]
            },
        )
        yield s3


@pytest.fixture
def config():
    return load_config(StringIO(CONFIG))


@pytest.fixture
def registry(s3_env, config):
    return build_registry(config)


class TestRefreshAgainstS3:
    def test_refresh(self, registry):
        assert registry.refresh() is True
        # "deleted" does not exist: dropped from details, credentials kept
        assert registry.get_all_buckets() == ["images", "logs"]
        assert len(registry.snapshot.credentials) == 3
        assert registry.get_credentials_for_bucket("aws", "deleted") is not None

    def test_lifecycle_rules(self, registry):
        registry.refresh()
        logs = registry.get_bucket_info("aws", "logs")
        images = registry.get_bucket_info("https://s3.amazonaws.com", "images")
        assert [r["ID"] for r in logs.policy] == ["expire-logs"]
        assert images.policy == ()

    def test_grouped(self, registry):
        registry.refresh()
        assert registry.get_grouped_buckets() == {"aws": ["images", "logs"]}

    def test_filter_on_owner(self, registry):
        registry.refresh()
        owner = registry.get_bucket_info("aws", "logs").owner
        assert registry.get_all_buckets(owner_in(owner)) == ["images", "logs"]
        assert registry.get_all_buckets(owner_in("nobody")) == []

    def test_bucket_removed_between_refreshes(self, registry, s3_env):
        registry.refresh()
        s3_env.delete_bucket_lifecycle(Bucket="logs")
        s3_env.delete_bucket(Bucket="images")
        registry.refresh()
        assert registry.get_all_buckets() == ["logs"]
        assert registry.get_bucket_info("aws", "logs").policy == ()


class TestScheduledRefresh:
    def test_initial_refresh_in_background(self, registry, config):
        scheduler = build_scheduler(config, registry)
        scheduler.start()
        try:
            assert scheduler.wait_for_initial(30)
            assert scheduler.state is SchedulerState.SCHEDULED
            assert registry.get_all_buckets() == ["images", "logs"]
        finally:
            scheduler.stop()
