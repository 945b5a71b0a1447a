from s3_bucket_registry.interfaces import IBucketFetcher
from s3_bucket_registry.models import BucketDetails
from s3_bucket_registry.s3client import BucketFetchError
from s3_bucket_registry.s3client import S3Session
from zope.interface import implementer

import logging


logger = logging.getLogger(__name__)


@implementer(IBucketFetcher)
class BucketFetcher:
    """Reads owner, stats and lifecycle rules of one bucket.

    Only the owner lookup is mandatory. Stats and lifecycle rules are
    best effort: ``_stats`` and ``_lifecycle`` return None when the
    value is absent and the bucket keeps its defaults.
    """

    def __init__(self, stats_source=None, session_factory=S3Session.for_credentials):
        self.stats_source = stats_source
        self._session_factory = session_factory

    def fetch_one(self, credentials):
        try:
            session = self._session_factory(credentials)
        except Exception as e:
            raise BucketFetchError(
                f"Cannot open session for {credentials.bucket} on "
                f"{credentials.endpoint}: {type(e).__name__}"
            ) from e

        owner = session.get_bucket_owner(credentials.bucket)

        objects = size = 0
        stats = self._stats(credentials)
        if stats is not None:
            objects, size = stats.objects, stats.size

        rules = self._lifecycle(session, credentials)
        return BucketDetails(
            bucket=credentials.bucket,
            owner=owner,
            endpoint=credentials.endpoint,
            endpoint_name=credentials.endpoint_name,
            objects=objects,
            size=size,
            policy=tuple(rules or ()),
        )

    def _stats(self, credentials):
        if self.stats_source is None:
            return None
        try:
            return self.stats_source.get_stats(
                credentials.endpoint, credentials.bucket
            )
        except Exception as e:
            logger.error(
                "Could not fetch stats for %s in %s: %s",
                credentials.bucket,
                credentials.endpoint,
                e,
            )
            return None

    def _lifecycle(self, session, credentials):
        # None from the session means no lifecycle configuration.
        try:
            return session.get_bucket_lifecycle(credentials.bucket)
        except Exception as e:
            logger.debug(
                "Ignoring lifecycle error for %s in %s: %s",
                credentials.bucket,
                credentials.endpoint,
                e,
            )
            return None
