"""Amazon SQS job queue transport."""

import asyncio
import json
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from yard_reports.lib.queue.base import JobQueueError, QueuedMessage

MESSAGE_GROUP_ID = "movements-reports"
RETRY_BACKOFF_SECONDS = 30


def create_sqs_client(
    region: str,
    *,
    access_key_id: str | None = None,
    secret_access_key: str | None = None,
    endpoint_url: str | None = None,
) -> Any:
    """Create a boto3 SQS client."""
    return boto3.client(
        "sqs",
        region_name=region,
        endpoint_url=endpoint_url,
        aws_access_key_id=access_key_id,
        aws_secret_access_key=secret_access_key,
    )


class SqsJobQueue:
    """Job queue backed by one SQS queue.

    Standard and FIFO queues are both supported; FIFO queues get a fixed
    message group and the caller's dedup id.

    Args:
        client: boto3 SQS client.
        queue_url: Queue URL.
        visibility_timeout: Seconds a received message stays hidden.
    """

    def __init__(self, client: Any, queue_url: str | None, *, visibility_timeout: int = 900) -> None:
        self._client = client
        self.queue_url = queue_url or ""
        self._visibility_timeout = visibility_timeout
        self._fifo = self.queue_url.endswith(".fifo")

    def _require_url(self) -> str:
        if not self.queue_url:
            msg = "REPORTS_QUEUE_URL not configured"
            raise JobQueueError(msg)
        return self.queue_url

    async def publish(self, body: dict[str, Any], *, dedup_id: str | None = None) -> str:
        kwargs: dict[str, Any] = {
            "QueueUrl": self._require_url(),
            "MessageBody": json.dumps(body, default=str),
        }
        if self._fifo:
            kwargs["MessageGroupId"] = MESSAGE_GROUP_ID
            if dedup_id:
                kwargs["MessageDeduplicationId"] = dedup_id
        try:
            response = await asyncio.to_thread(self._client.send_message, **kwargs)
        except (BotoCoreError, ClientError) as exc:
            msg = f"Failed to publish to {self.queue_url}: {exc}"
            raise JobQueueError(msg) from exc
        message_id = response["MessageId"]
        logger.debug("Published message {} to {}", message_id, self.queue_url)
        return message_id

    async def receive(self, *, max_messages: int = 1, wait_seconds: int = 20) -> list[QueuedMessage]:
        response = await asyncio.to_thread(
            self._client.receive_message,
            QueueUrl=self._require_url(),
            MaxNumberOfMessages=max(1, min(max_messages, 10)),
            WaitTimeSeconds=wait_seconds,
            VisibilityTimeout=self._visibility_timeout,
            AttributeNames=["All"],
        )
        messages = []
        for raw in response.get("Messages", []):
            attributes = raw.get("Attributes", {})
            messages.append(
                QueuedMessage(
                    message_id=raw["MessageId"],
                    body=raw["Body"],
                    receipt=raw["ReceiptHandle"],
                    receive_count=int(attributes.get("ApproximateReceiveCount", 1)),
                    attributes=attributes,
                )
            )
        return messages

    async def ack(self, message: QueuedMessage) -> None:
        await asyncio.to_thread(
            self._client.delete_message,
            QueueUrl=self.queue_url,
            ReceiptHandle=message.receipt,
        )

    async def nack(self, message: QueuedMessage) -> None:
        # Linear backoff: the message reappears sooner on early failures
        delay = min(self._visibility_timeout, RETRY_BACKOFF_SECONDS * message.receive_count)
        await asyncio.to_thread(
            self._client.change_message_visibility,
            QueueUrl=self.queue_url,
            ReceiptHandle=message.receipt,
            VisibilityTimeout=delay,
        )
