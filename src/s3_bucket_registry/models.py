"""Value objects shared by the refresh pipeline and the query side."""

from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Dict
from typing import Optional
from typing import Tuple

import datetime


@dataclass(frozen=True)
class BucketCredentials:
    """Endpoint, bucket and the key pair used to read it."""

    endpoint: str
    endpoint_name: str
    access_key_id: str
    secret_access_key: str = field(repr=False)
    bucket: str

    def matches(self, endpoint, bucket):
        return self.bucket == bucket and endpoint in (
            self.endpoint,
            self.endpoint_name,
        )


@dataclass(frozen=True)
class BucketStats:
    objects: int = 0
    size: int = 0


@dataclass(frozen=True)
class BucketDetails:
    """Aggregated metadata of one bucket, as of one refresh cycle."""

    bucket: str
    owner: str
    endpoint: str
    endpoint_name: str
    objects: int = 0
    size: int = 0
    # Lifecycle rules as returned by the S3 API, in order.
    policy: Tuple[Dict[str, Any], ...] = ()

    def matches(self, endpoint, bucket):
        return self.bucket == bucket and self.on_endpoint(endpoint)

    def on_endpoint(self, endpoint):
        return endpoint in (self.endpoint, self.endpoint_name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bucket": self.bucket,
            "owner": self.owner,
            "objects": self.objects,
            "size": self.size,
            "endpoint": self.endpoint,
            "endpointName": self.endpoint_name,
            "policy": [dict(rule) for rule in self.policy],
        }


@dataclass(frozen=True)
class Snapshot:
    """Result of one refresh cycle.

    ``credentials`` holds every tuple of the cycle, ``buckets`` only those
    whose details could be fetched. Never mutated; replaced as a whole.
    """

    buckets: Tuple[BucketDetails, ...] = ()
    credentials: Tuple[BucketCredentials, ...] = ()
    refreshed_at: Optional[datetime.datetime] = None


EMPTY_SNAPSHOT = Snapshot()
