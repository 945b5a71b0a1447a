from botocore.config import Config
from botocore.exceptions import BotoCoreError
from botocore.exceptions import ClientError
from s3_bucket_registry.interfaces import IStorageSession
from zope.interface import implementer

import boto3.session
import logging


logger = logging.getLogger(__name__)

NO_LIFECYCLE_CODES = frozenset(
    ["NoSuchLifecycleConfiguration", "NoSuchBucketLifecycle"]
)


class BucketFetchError(Exception):
    """A bucket could not be read. Wraps boto3 errors without their details."""


@implementer(IStorageSession)
class S3Session:
    """Thin boto3 wrapper bound to one endpoint and one key pair.

    Buckets are addressed path-style, which is what RGW, MinIO and most
    other S3-compatible gateways expect.
    """

    def __init__(
        self,
        endpoint_url,
        access_key_id,
        secret_access_key,
        region_name="us-east-1",
        connect_timeout=10,
        read_timeout=30,
    ):
        self.endpoint_url = endpoint_url
        config = Config(
            s3={"addressing_style": "path"},
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            retries={"max_attempts": 2},
        )
        kwargs = {
            "config": config,
            "region_name": region_name,
            "aws_access_key_id": access_key_id,
            "aws_secret_access_key": secret_access_key,
        }
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        if endpoint_url and endpoint_url.startswith("http://"):
            logger.debug("S3 endpoint %s does not use TLS", endpoint_url)
        # Created from worker threads, so never via the default session.
        self._client = boto3.session.Session().client("s3", **kwargs)

    @classmethod
    def for_credentials(cls, credentials, **kwargs):
        return cls(
            credentials.endpoint,
            credentials.access_key_id,
            credentials.secret_access_key,
            **kwargs,
        )

    def _wrap_error(self, e, operation, bucket):
        """Raise BucketFetchError for e, logging the original at DEBUG."""
        logger.debug(
            "S3 %s failed for bucket=%s on %s: %s",
            operation,
            bucket,
            self.endpoint_url,
            e,
        )
        if isinstance(e, ClientError):
            reason = e.response["Error"].get("Code", "Unknown")
        else:
            reason = type(e).__name__
        raise BucketFetchError(
            f"S3 {operation} failed for bucket={bucket}: {reason}"
        ) from e

    def get_bucket_owner(self, bucket):
        try:
            response = self._client.get_bucket_acl(Bucket=bucket)
        except (ClientError, BotoCoreError) as e:
            self._wrap_error(e, "get-acl", bucket)
        return response.get("Owner", {}).get("DisplayName") or ""

    def get_bucket_lifecycle(self, bucket):
        try:
            response = self._client.get_bucket_lifecycle_configuration(
                Bucket=bucket
            )
        except ClientError as e:
            if e.response["Error"].get("Code") in NO_LIFECYCLE_CODES:
                return None
            self._wrap_error(e, "get-lifecycle", bucket)
        except BotoCoreError as e:
            self._wrap_error(e, "get-lifecycle", bucket)
        return response.get("Rules", [])

    def list_buckets(self):
        try:
            response = self._client.list_buckets()
        except (ClientError, BotoCoreError) as e:
            self._wrap_error(e, "list-buckets", "*")
        return [b["Name"] for b in response.get("Buckets", [])]
