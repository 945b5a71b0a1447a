from concurrent.futures import as_completed
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from dataclasses import field
from s3_bucket_registry.interfaces import ICredentialSource
from s3_bucket_registry.models import BucketCredentials
from s3_bucket_registry.rgwadmin import AdminAPIError
from s3_bucket_registry.rgwadmin import RGWAdminClient
from typing import Tuple
from zope.interface import implementer

import logging
import re


logger = logging.getLogger(__name__)


class SourceUnavailable(Exception):
    """A credential source could not enumerate its buckets."""


class AggregationFailed(Exception):
    """At least one credential source failed; the cycle must be aborted."""


@dataclass(frozen=True)
class Platform:
    """One S3 endpoint with a key pair (bucket keys or admin keys)."""

    endpoint: str
    name: str
    access_key_id: str
    secret_access_key: str = field(repr=False)
    buckets: Tuple[str, ...] = ()

    def validate(self):
        for attr in ("endpoint", "name", "access_key_id", "secret_access_key"):
            if not getattr(self, attr):
                raise ValueError(f"Platform {self.name!r} is missing {attr}")


@implementer(ICredentialSource)
class StaticCredentialSource:
    """Serves the buckets listed in the configuration, one key pair per platform."""

    def __init__(self, platforms):
        self.platforms = tuple(platforms)
        for platform in self.platforms:
            platform.validate()
            if not all(platform.buckets):
                raise ValueError(f"Platform {platform.name!r} lists an empty bucket name")
        self._credentials = tuple(
            BucketCredentials(
                endpoint=platform.endpoint,
                endpoint_name=platform.name,
                access_key_id=platform.access_key_id,
                secret_access_key=platform.secret_access_key,
                bucket=bucket,
            )
            for platform in self.platforms
            for bucket in platform.buckets
        )

    def get_bucket_credentials(self):
        return list(self._credentials)


@implementer(ICredentialSource)
class RadosGwCredentialSource:
    """Discovers buckets through the RGW admin API of each platform.

    The platform keys must belong to an admin user. Every bucket that
    passes the allow-list is served with the first S3 key of its owner.
    """

    def __init__(
        self, platforms, allowed_buckets=None, admin_client_factory=RGWAdminClient
    ):
        self.platforms = tuple(platforms)
        for platform in self.platforms:
            platform.validate()
        self._admin_client_factory = admin_client_factory
        self._allowed = {}
        for name, patterns in (allowed_buckets or {}).items():
            try:
                self._allowed[name.lower()] = [re.compile(p) for p in patterns]
            except re.error as e:
                raise ValueError(
                    f"Invalid allowed bucket pattern for {name!r}: {e}"
                ) from e

    def is_allowed(self, platform_name, bucket):
        patterns = self._allowed.get(platform_name.lower())
        if patterns is None:
            return True
        return any(p.fullmatch(bucket) for p in patterns)

    def get_bucket_credentials(self):
        result = []
        for platform in self.platforms:
            result.extend(self._platform_credentials(platform))
        return result

    def _platform_credentials(self, platform):
        admin = self._admin_client_factory(
            platform.endpoint, platform.access_key_id, platform.secret_access_key
        )
        result = []
        keys_by_owner = {}
        try:
            for bucket in admin.list_buckets():
                if not self.is_allowed(platform.name, bucket):
                    continue
                owner = admin.get_bucket_info(bucket).get("owner")
                if owner not in keys_by_owner:
                    keys_by_owner[owner] = (
                        _first_s3_key(admin.get_user(owner)) if owner else None
                    )
                keys = keys_by_owner[owner]
                if keys is None:
                    logger.warning(
                        "Bucket %s on %s: owner %r has no S3 key, skipping",
                        bucket,
                        platform.name,
                        owner,
                    )
                    continue
                result.append(
                    BucketCredentials(
                        endpoint=platform.endpoint,
                        endpoint_name=platform.name,
                        access_key_id=keys[0],
                        secret_access_key=keys[1],
                        bucket=bucket,
                    )
                )
        except AdminAPIError as e:
            raise SourceUnavailable(
                f"Cannot enumerate buckets of {platform.name}: {e}"
            ) from e
        except (KeyError, TypeError, AttributeError) as e:
            raise SourceUnavailable(
                f"Malformed admin API data from {platform.name}: {e!r}"
            ) from e
        logger.debug("Found %d buckets on %s", len(result), platform.name)
        return result


def _first_s3_key(user):
    """Return (access_key, secret_key) of the user's first S3 key, or None."""
    keys = user.get("keys") or []
    if not keys:
        return None
    return keys[0]["access_key"], keys[0]["secret_key"]


@implementer(ICredentialSource)
class CombinedCredentialSource:
    """Runs all sources concurrently and concatenates their results.

    All or nothing: if a single source fails, AggregationFailed is raised
    from the first failure observed and no credentials are returned.
    """

    def __init__(self, sources):
        self.sources = tuple(sources)

    def get_bucket_credentials(self):
        if not self.sources:
            return []
        executor = ThreadPoolExecutor(
            max_workers=len(self.sources), thread_name_prefix="credential-source"
        )
        try:
            futures = [executor.submit(s.get_bucket_credentials) for s in self.sources]
            for future in as_completed(futures):
                error = future.exception()
                if error is not None:
                    raise AggregationFailed(
                        f"Credential source failed: {error}"
                    ) from error
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        result = []
        for future in futures:
            result.extend(future.result())
        return result
