"""Streaming multipart upload to S3.

Bytes written to :class:`StreamingUpload` are cut into fixed-size parts and
handed to a background task through a bounded queue.  When the queue is
full, ``write()`` blocks, so a slow upload slows the producer down instead
of letting encoded data pile up in memory.  Peak memory is roughly
``(queue_size + 2) * part_size``.
"""

import asyncio
import contextlib
from types import TracebackType
from typing import Any

from loguru import logger

from yard_reports.lib.storage.s3 import S3ObjectStorage

DEFAULT_PART_SIZE = 8 * 1024 * 1024
DEFAULT_QUEUE_SIZE = 4


class StreamingUpload:
    """Incremental multipart upload of one object.

    Use as an async context manager; call :meth:`complete` before leaving
    the block.  Leaving without completing (or with an exception) aborts
    the upload so no partial object or orphaned parts remain.

    Args:
        storage: Target object storage.
        key: Object key.
        content_type: MIME type stored with the object.
        content_disposition: Optional Content-Disposition header.
        part_size: Bytes per uploaded part (the last part may be smaller).
        queue_size: Parts allowed to wait for upload before writers block.
    """

    def __init__(
        self,
        storage: S3ObjectStorage,
        key: str,
        *,
        content_type: str,
        content_disposition: str | None = None,
        part_size: int = DEFAULT_PART_SIZE,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self._storage = storage
        self.key = key
        self._content_type = content_type
        self._content_disposition = content_disposition
        self._part_size = part_size
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue(maxsize=queue_size)
        self._buffer = bytearray()
        self._parts: list[dict[str, Any]] = []
        self._parts_queued = 0
        self._upload_id: str | None = None
        self._task: asyncio.Task[None] | None = None
        self._error: BaseException | None = None
        self._completed = False
        self.bytes_written = 0

    async def __aenter__(self) -> "StreamingUpload":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if not self._completed:
            await self.abort()

    async def start(self) -> None:
        """Open the multipart upload and start the part uploader task."""
        self._upload_id = await asyncio.to_thread(
            self._storage.create_multipart_upload,
            self.key,
            self._content_type,
            self._content_disposition,
        )
        self._task = asyncio.create_task(self._upload_parts())
        logger.debug("Started multipart upload for s3://{}/{}", self._storage.bucket, self.key)

    async def write(self, data: bytes) -> None:
        """Append bytes to the object, blocking while the part queue is full."""
        if not data:
            return
        self._buffer.extend(data)
        self.bytes_written += len(data)
        while len(self._buffer) >= self._part_size:
            part = bytes(self._buffer[: self._part_size])
            del self._buffer[: self._part_size]
            await self._enqueue(part)

    async def complete(self) -> None:
        """Flush the remaining bytes and finish the upload.

        Raises:
            Exception: Whatever a part upload or the completion call raised.
        """
        if self._buffer or not self._parts_queued:
            await self._enqueue(bytes(self._buffer))
            self._buffer.clear()
        await self._queue.put(None)
        if self._task is not None:
            await self._task
        self._raise_if_failed()

        await asyncio.to_thread(
            self._storage.complete_multipart_upload,
            self.key,
            self._require_upload_id(),
            sorted(self._parts, key=lambda p: p["PartNumber"]),
        )
        self._completed = True
        logger.info(
            "Uploaded s3://{}/{} ({} bytes, {} parts)",
            self._storage.bucket,
            self.key,
            self.bytes_written,
            len(self._parts),
        )

    async def abort(self) -> None:
        """Stop the uploader task and discard uploaded parts."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        if self._upload_id is not None:
            logger.warning("Aborting multipart upload for s3://{}/{}", self._storage.bucket, self.key)
            await asyncio.to_thread(self._storage.abort_multipart_upload, self.key, self._upload_id)
            self._upload_id = None

    async def _enqueue(self, part: bytes) -> None:
        self._raise_if_failed()
        await self._queue.put(part)
        self._parts_queued += 1

    def _raise_if_failed(self) -> None:
        if self._error is not None:
            raise self._error

    def _require_upload_id(self) -> str:
        if self._upload_id is None:
            msg = "Multipart upload has not been started"
            raise RuntimeError(msg)
        return self._upload_id

    async def _upload_parts(self) -> None:
        upload_id = self._require_upload_id()
        while True:
            part = await self._queue.get()
            if part is None:
                return
            if self._error is not None:
                # Keep draining so a blocked writer wakes up and sees the error
                continue
            part_number = len(self._parts) + 1
            try:
                etag = await asyncio.to_thread(self._storage.upload_part, self.key, upload_id, part_number, part)
            except Exception as exc:
                logger.error("Part {} of s3://{}/{} failed: {}", part_number, self._storage.bucket, self.key, exc)
                self._error = exc
                continue
            self._parts.append({"PartNumber": part_number, "ETag": etag})
