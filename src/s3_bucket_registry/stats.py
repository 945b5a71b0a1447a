from s3_bucket_registry.interfaces import IStatsSource
from s3_bucket_registry.models import BucketStats
from s3_bucket_registry.rgwadmin import AdminAPIError
from s3_bucket_registry.rgwadmin import RGWAdminClient
from s3_bucket_registry.rgwadmin import usage_totals
from zope.interface import implementer


class StatsFetchError(Exception):
    """Stats for a bucket could not be retrieved."""


@implementer(IStatsSource)
class RadosGwStatsSource:
    """Object count and size from the RGW admin API.

    The S3 API has no cheap way to get these numbers, the gateway keeps
    them in its bucket index. One admin client is kept per platform and
    looked up by endpoint URL or platform name.
    """

    def __init__(self, platforms, admin_client_factory=RGWAdminClient):
        self._clients = {}
        for platform in platforms:
            platform.validate()
            client = admin_client_factory(
                platform.endpoint,
                platform.access_key_id,
                platform.secret_access_key,
            )
            self._clients.setdefault(platform.endpoint, client)
            self._clients.setdefault(platform.name, client)

    def get_stats(self, endpoint, bucket):
        client = self._clients.get(endpoint)
        if client is None:
            raise StatsFetchError(f"No admin credentials for endpoint {endpoint}")
        try:
            info = client.get_bucket_info(bucket, stats=True)
        except AdminAPIError as e:
            raise StatsFetchError(f"Stats for {bucket} unavailable: {e}") from e
        objects, size = usage_totals(info)
        return BucketStats(objects=objects, size=size)
