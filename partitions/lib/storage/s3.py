"""S3-compatible state store using boto3.

Supports AWS S3, MinIO, and any S3-compatible object storage. A single
``put_object`` replaces a blob atomically from a reader's point of view.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Mapping, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from partitions.lib.errors import StateStoreError
from partitions.lib.resilience import with_retry
from partitions.lib.state import decode_state, encode_state
from partitions.lib.storage.base import STATE_SUFFIX, StateStore, state_name

logger = logging.getLogger(__name__)

__all__ = ["S3StateStore"]

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}

_retry_s3 = with_retry(
    max_attempts=3,
    backoff_seconds=2.0,
    retry_exceptions=(BotoCoreError, ClientError),
)


def _is_missing(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in _MISSING_CODES


class S3StateStore(StateStore):
    """State blobs as objects under ``s3://<bucket>/<prefix>/``.

    Environment Variables:
        AWS_ACCESS_KEY_ID: AWS access key
        AWS_SECRET_ACCESS_KEY: AWS secret key
        AWS_REGION: AWS region
        AWS_ENDPOINT_URL: Custom S3 endpoint (for MinIO, LocalStack, etc.)
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        *,
        client: Any = None,
        endpoint_url: Optional[str] = None,
        region: Optional[str] = None,
    ) -> None:
        if not bucket:
            raise ValueError("bucket is required for S3StateStore")
        self.bucket = bucket
        self.prefix = prefix.strip("/")

        if client is None:
            session_kwargs: Dict[str, Any] = {}
            access_key = os.environ.get("AWS_ACCESS_KEY_ID")
            secret_key = os.environ.get("AWS_SECRET_ACCESS_KEY")
            if access_key and secret_key:
                session_kwargs["aws_access_key_id"] = access_key
                session_kwargs["aws_secret_access_key"] = secret_key
            client = boto3.client(
                "s3",
                endpoint_url=endpoint_url or os.environ.get("AWS_ENDPOINT_URL"),
                region_name=region or os.environ.get("AWS_REGION"),
                **session_kwargs,
            )
            logger.debug(
                "Created S3 client for state bucket '%s' with endpoint: %s",
                bucket,
                endpoint_url or "default",
            )
        self.client = client

    @classmethod
    def from_uri(cls, uri: str, **options: Any) -> "S3StateStore":
        """Build a store from ``s3://bucket/prefix``."""
        path = uri[5:] if uri.startswith("s3://") else uri
        bucket, _, prefix = path.partition("/")
        return cls(bucket, prefix, **options)

    @property
    def scheme(self) -> str:
        return "s3"

    @property
    def location(self) -> str:
        return f"s3://{self.bucket}/{self.prefix}".rstrip("/")

    def _key(self, stream: str) -> str:
        name = state_name(stream)
        return f"{self.prefix}/{name}" if self.prefix else name

    @_retry_s3
    def _get(self, key: str) -> Optional[str]:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_missing(e):
                return None
            raise
        return response["Body"].read().decode("utf-8")

    @_retry_s3
    def _put(self, key: str, body: str) -> None:
        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=body.encode("utf-8"),
            ContentType="application/json",
        )

    def load(self, stream: str) -> Dict[str, Any]:
        """GET the blob; a missing object (NoSuchKey) reads as {}."""
        key = self._key(stream)
        location = f"s3://{self.bucket}/{key}"
        try:
            payload = self._get(key)
        except (BotoCoreError, ClientError) as e:
            raise StateStoreError(
                f"Failed to read state for {stream}",
                stream=stream,
                location=location,
                cause=e,
            ) from e

        if payload is None:
            logger.debug("No state found for %s at %s", stream, location)
            return {}
        return decode_state(payload, location=location)

    def save(self, stream: str, state: Mapping[str, Any]) -> None:
        """PUT the blob as a single object, which S3 replaces atomically."""
        key = self._key(stream)
        location = f"s3://{self.bucket}/{key}"
        try:
            self._put(key, encode_state(state))
        except (BotoCoreError, ClientError) as e:
            raise StateStoreError(
                f"Failed to write state for {stream}",
                stream=stream,
                location=location,
                cause=e,
            ) from e
        logger.info("Saved state for %s to %s", stream, location)

    def delete(self, stream: str) -> bool:
        key = self._key(stream)
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_missing(e):
                return False
            raise StateStoreError(
                f"Failed to delete state for {stream}",
                stream=stream,
                location=f"s3://{self.bucket}/{key}",
                cause=e,
            ) from e
        self.client.delete_object(Bucket=self.bucket, Key=key)
        logger.info("Deleted state for %s", stream)
        return True

    def list_streams(self) -> List[str]:
        prefix = f"{self.prefix}/" if self.prefix else ""
        paginator = self.client.get_paginator("list_objects_v2")
        streams: List[str] = []
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                name = obj["Key"][len(prefix):]
                if "/" in name or not name.endswith(STATE_SUFFIX):
                    continue
                streams.append(name[: -len(STATE_SUFFIX)])
        return sorted(streams)
