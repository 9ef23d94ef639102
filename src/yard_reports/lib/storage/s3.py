"""S3 object storage operations for report status documents and files.

Provides boto3 client creation, blob put/get, public URL derivation and
the low-level multipart calls used by :mod:`yard_reports.lib.storage.uploader`.
All methods are synchronous; async callers run them via ``asyncio.to_thread``.
"""

from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError
from loguru import logger

_MISSING_KEY_CODES = ("NoSuchKey", "404", "NotFound")


def create_s3_client(
    region: str,
    *,
    access_key_id: str | None = None,
    secret_access_key: str | None = None,
    endpoint_url: str | None = None,
) -> Any:
    """Create a boto3 S3 client.

    Credentials fall back to the default boto3 chain (env, profile,
    instance role) when not given explicitly.

    Args:
        region: AWS region name.
        access_key_id: Optional access key.
        secret_access_key: Optional secret key.
        endpoint_url: Optional custom endpoint for S3-compatible stores.

    Returns:
        Configured boto3 S3 client.
    """
    config = Config(
        retries={"max_attempts": 5, "mode": "standard"},
        request_checksum_calculation="when_required",
        response_checksum_validation="when_required",
    )
    return boto3.client(
        "s3",
        region_name=region,
        endpoint_url=endpoint_url,
        aws_access_key_id=access_key_id,
        aws_secret_access_key=secret_access_key,
        config=config,
    )


def key_join(*parts: str | None) -> str:
    """Join key segments with single slashes, dropping empty segments."""
    return "/".join(p.strip("/") for p in parts if p and p.strip("/"))


class S3ObjectStorage:
    """Blob storage on one S3 bucket.

    Args:
        client: boto3 S3 client.
        bucket: Bucket name.
        region: Region used to build virtual-hosted public URLs.
        public_url: Optional public URL prefix overriding the S3 URL.
    """

    def __init__(self, client: Any, bucket: str, *, region: str, public_url: str | None = None) -> None:
        self.client = client
        self.bucket = bucket
        self._region = region
        self._public_url = public_url.rstrip("/") if public_url else None

    def put_bytes(self, key: str, body: bytes, content_type: str) -> None:
        """Write a whole blob, replacing any existing object."""
        self.client.put_object(Bucket=self.bucket, Key=key, Body=body, ContentType=content_type)

    def get_bytes(self, key: str) -> bytes | None:
        """Read a whole blob.

        Returns:
            The object body, or None if the key does not exist.
        """
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if exc.response["Error"]["Code"] in _MISSING_KEY_CODES:
                logger.debug("No object at s3://{}/{}", self.bucket, key)
                return None
            raise
        return response["Body"].read()

    def public_url(self, key: str) -> str:
        """Public download URL for a key."""
        if self._public_url:
            return f"{self._public_url}/{key}"
        return f"https://{self.bucket}.s3.{self._region}.amazonaws.com/{key}"

    def create_multipart_upload(self, key: str, content_type: str, content_disposition: str | None = None) -> str:
        """Start a multipart upload and return its upload id."""
        extra: dict[str, str] = {"ContentType": content_type}
        if content_disposition:
            extra["ContentDisposition"] = content_disposition
        response = self.client.create_multipart_upload(Bucket=self.bucket, Key=key, **extra)
        return response["UploadId"]

    def upload_part(self, key: str, upload_id: str, part_number: int, body: bytes) -> str:
        """Upload one part and return its ETag."""
        response = self.client.upload_part(
            Bucket=self.bucket,
            Key=key,
            UploadId=upload_id,
            PartNumber=part_number,
            Body=body,
        )
        return response["ETag"]

    def complete_multipart_upload(self, key: str, upload_id: str, parts: list[dict[str, Any]]) -> None:
        """Assemble uploaded parts into the final object."""
        self.client.complete_multipart_upload(
            Bucket=self.bucket,
            Key=key,
            UploadId=upload_id,
            MultipartUpload={"Parts": parts},
        )

    def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        """Discard an unfinished multipart upload and its parts."""
        self.client.abort_multipart_upload(Bucket=self.bucket, Key=key, UploadId=upload_id)

    def validate_bucket(self) -> None:
        """Verify bucket access.

        Raises:
            ClientError: If the bucket doesn't exist or credentials are invalid.
        """
        try:
            self.client.head_bucket(Bucket=self.bucket)
            logger.debug("Bucket s3://{} is accessible", self.bucket)
        except ClientError as exc:
            error_code = exc.response["Error"]["Code"]
            if error_code == "404":
                msg = f"Bucket '{self.bucket}' not found. Verify REPORTS_BUCKET is correct."
                raise ClientError(exc.response, "HeadBucket") from ValueError(msg)
            if error_code in ("403", "401"):
                msg = f"Access denied to bucket '{self.bucket}'. Verify AWS credentials."
                raise ClientError(exc.response, "HeadBucket") from PermissionError(msg)
            raise
