"""Storage library: S3 blob access and streaming multipart uploads for reports."""

from yard_reports.lib.storage.s3 import S3ObjectStorage, create_s3_client, key_join
from yard_reports.lib.storage.uploader import DEFAULT_PART_SIZE, DEFAULT_QUEUE_SIZE, StreamingUpload

__all__ = [
    "DEFAULT_PART_SIZE",
    "DEFAULT_QUEUE_SIZE",
    "S3ObjectStorage",
    "StreamingUpload",
    "create_s3_client",
    "key_join",
]
