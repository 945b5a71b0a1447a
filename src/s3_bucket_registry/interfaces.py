from zope.interface import Attribute
from zope.interface import Interface


class ICredentialSource(Interface):
    """Enumerates the buckets to index together with the keys to read them."""

    def get_bucket_credentials():
        """Return a list of BucketCredentials.

        Raises SourceUnavailable if the enumeration mechanism cannot be
        reached or returns malformed data.
        """


class IStatsSource(Interface):
    """Out-of-band provider of object count and size for a bucket."""

    def get_stats(endpoint, bucket):
        """Return BucketStats for the bucket, or raise StatsFetchError."""


class IStorageSession(Interface):
    """S3 session bound to one endpoint and one key pair."""

    def get_bucket_owner(bucket):
        """Return the display name of the bucket owner."""

    def get_bucket_lifecycle(bucket):
        """Return the lifecycle rules, or None if none are configured."""

    def list_buckets():
        """Return the names of the buckets owned by the session's keys."""


class IRGWAdminClient(Interface):
    """Client for the RADOS Gateway Admin Ops API."""

    endpoint = Attribute("Base URL of the gateway")

    def list_buckets():
        """Return all bucket names known to the gateway."""

    def get_bucket_info(bucket, stats=False):
        """Return the bucket metadata mapping (owner, usage, ...)."""

    def get_user(uid):
        """Return the user mapping, including its S3 keys."""


class IBucketFetcher(Interface):
    """Per-bucket unit of work of a refresh cycle."""

    def fetch_one(credentials):
        """Return BucketDetails for one credential tuple.

        Raises BucketFetchError if the bucket cannot be read.
        """


class IBucketRegistry(Interface):
    """Holds the current snapshot and answers queries over it."""

    snapshot = Attribute("The current Snapshot")

    def refresh(timeout=None):
        """Rebuild the snapshot. Return True if it was replaced."""

    def get_all_buckets(filter=None):
        """Sorted bucket names visible through filter."""

    def get_buckets_by_endpoint(endpoint, filter=None):
        """Sorted bucket names of one endpoint (URL or name)."""

    def get_grouped_buckets(filter=None):
        """Mapping of endpoint name to sorted, unique bucket names."""

    def get_bucket_info(endpoint, bucket):
        """BucketDetails for the bucket or None. Not filtered."""

    def get_credentials_for_bucket(endpoint, bucket):
        """BucketCredentials for the bucket or None."""
