"""Job queue abstraction.

Report jobs travel as JSON documents over an at-least-once channel: a
message stays owned by the queue until the consumer acks it, and an
un-acked message is delivered again later.  Consumers must therefore be
idempotent.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol


class JobQueueError(RuntimeError):
    """Raised when the queue is misconfigured or a publish fails."""


@dataclass
class QueuedMessage:
    """A message received from a job queue."""

    message_id: str
    body: str
    receipt: str
    receive_count: int = 1
    attributes: dict[str, Any] = field(default_factory=dict)


class JobQueue(Protocol):
    """Protocol for report job transports."""

    async def publish(self, body: dict[str, Any], *, dedup_id: str | None = None) -> str:
        """Publish one JSON message.

        Args:
            body: JSON-serializable message body.
            dedup_id: Optional deduplication id (honoured by FIFO transports).

        Returns:
            The transport's message id.
        """
        ...

    async def receive(self, *, max_messages: int = 1, wait_seconds: int = 20) -> list[QueuedMessage]:
        """Wait up to ``wait_seconds`` for messages."""
        ...

    async def ack(self, message: QueuedMessage) -> None:
        """Remove a handled message from the queue."""
        ...

    async def nack(self, message: QueuedMessage) -> None:
        """Make a message available for redelivery."""
        ...
