from s3_bucket_registry.models import BucketCredentials
from s3_bucket_registry.models import BucketDetails
from s3_bucket_registry.models import BucketStats
from s3_bucket_registry.models import Snapshot
from s3_bucket_registry.registry import BucketRegistry


__all__ = [
    "BucketCredentials",
    "BucketDetails",
    "BucketRegistry",
    "BucketStats",
    "Snapshot",
]
