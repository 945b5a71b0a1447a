"""Client for the Ceph RADOS Gateway Admin Ops API.

The admin API lives next to the S3 API on the same gateway and accepts
the same AWS signatures, so requests are signed and sent with botocore.
"""

from botocore.auth import S3SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.credentials import Credentials
from botocore.exceptions import BotoCoreError
from botocore.httpsession import URLLib3Session
from s3_bucket_registry.interfaces import IRGWAdminClient
from zope.interface import implementer

import json
import logging


logger = logging.getLogger(__name__)


class AdminAPIError(Exception):
    """An admin API call failed or returned something unreadable."""


@implementer(IRGWAdminClient)
class RGWAdminClient:
    def __init__(
        self,
        endpoint,
        access_key_id,
        secret_access_key,
        admin_path="admin",
        region_name="us-east-1",
        connect_timeout=10,
        read_timeout=30,
        verify=True,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.admin_path = admin_path.strip("/")
        self.region_name = region_name
        self._credentials = Credentials(access_key_id, secret_access_key)
        self._http = URLLib3Session(
            verify=verify, timeout=(connect_timeout, read_timeout)
        )

    def _request(self, resource, **params):
        url = f"{self.endpoint}/{self.admin_path}/{resource}"
        params["format"] = "json"
        request = AWSRequest(method="GET", url=url, params=params)
        S3SigV4Auth(self._credentials, "s3", self.region_name).add_auth(request)
        try:
            response = self._http.send(request.prepare())
        except BotoCoreError as e:
            logger.debug("RGW admin request to %s failed: %s", url, e)
            raise AdminAPIError(
                f"RGW admin {resource} request to {self.endpoint} failed: "
                f"{type(e).__name__}"
            ) from e

        if not 200 <= response.status_code < 300:
            raise AdminAPIError(
                f"RGW admin {resource} request to {self.endpoint} returned "
                f"HTTP {response.status_code}: {self._error_code(response)}"
            )
        try:
            return json.loads(response.content)
        except ValueError as e:
            raise AdminAPIError(
                f"RGW admin {resource} response from {self.endpoint} "
                "is not valid JSON"
            ) from e

    @staticmethod
    def _error_code(response):
        try:
            return json.loads(response.content).get("Code", "Unknown")
        except (ValueError, AttributeError):
            return "Unknown"

    def list_buckets(self):
        data = self._request("bucket")
        if not isinstance(data, list):
            raise AdminAPIError(
                f"Unexpected bucket list format from {self.endpoint}: "
                f"{type(data).__name__}"
            )
        # Some gateway versions return dicts instead of plain names
        buckets = []
        for item in data:
            if isinstance(item, str):
                buckets.append(item)
            elif isinstance(item, dict):
                name = item.get("bucket") or item.get("name")
                if name:
                    buckets.append(name)
        return buckets

    def get_bucket_info(self, bucket, stats=False):
        params = {"bucket": bucket}
        if stats:
            params["stats"] = "True"
        data = self._request("bucket", **params)
        if not isinstance(data, dict):
            raise AdminAPIError(
                f"Unexpected bucket info format for {bucket} from "
                f"{self.endpoint}: {type(data).__name__}"
            )
        return data

    def get_user(self, uid):
        data = self._request("user", uid=uid)
        if not isinstance(data, dict):
            raise AdminAPIError(
                f"Unexpected user format for {uid} from {self.endpoint}: "
                f"{type(data).__name__}"
            )
        return data


def usage_totals(bucket_info):
    """Sum object count and actual size over all usage categories."""
    objects = 0
    size = 0
    for value in (bucket_info.get("usage") or {}).values():
        if isinstance(value, dict):
            objects += value.get("num_objects", 0) or 0
            size += value.get("size_actual", 0) or 0
    return objects, size
