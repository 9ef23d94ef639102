"""In-process job queue for development and embedded workers.

Messages live only in this process.  Received messages are held as
in-flight until acked; ``nack`` puts them back at the end of the queue
with an incremented receive count.
"""

import asyncio
import json
import uuid
from typing import Any

from yard_reports.lib.queue.base import QueuedMessage


class InMemoryJobQueue:
    """asyncio-backed queue with at-least-once semantics."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[QueuedMessage] = asyncio.Queue()
        self._in_flight: dict[str, QueuedMessage] = {}

    async def publish(self, body: dict[str, Any], *, dedup_id: str | None = None) -> str:
        message_id = str(uuid.uuid4())
        await self._queue.put(
            QueuedMessage(
                message_id=message_id,
                body=json.dumps(body, default=str),
                receipt=message_id,
                receive_count=0,
            )
        )
        return message_id

    async def receive(self, *, max_messages: int = 1, wait_seconds: int = 20) -> list[QueuedMessage]:
        messages: list[QueuedMessage] = []
        if wait_seconds <= 0:
            if self._queue.empty():
                return messages
            messages.append(self._queue.get_nowait())
        else:
            try:
                messages.append(await asyncio.wait_for(self._queue.get(), timeout=wait_seconds))
            except TimeoutError:
                return messages
        while len(messages) < max_messages and not self._queue.empty():
            messages.append(self._queue.get_nowait())

        for message in messages:
            message.receive_count += 1
            message.receipt = str(uuid.uuid4())
            self._in_flight[message.receipt] = message
        return messages

    async def ack(self, message: QueuedMessage) -> None:
        self._in_flight.pop(message.receipt, None)

    async def nack(self, message: QueuedMessage) -> None:
        if self._in_flight.pop(message.receipt, None) is not None:
            await self._queue.put(message)

    @property
    def pending(self) -> int:
        """Messages waiting for delivery."""
        return self._queue.qsize()

    @property
    def in_flight(self) -> int:
        """Messages delivered but not yet acked."""
        return len(self._in_flight)
