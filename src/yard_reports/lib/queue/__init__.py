"""Queue library: at-least-once transports for report jobs."""

from yard_reports.lib.queue.base import JobQueue, JobQueueError, QueuedMessage
from yard_reports.lib.queue.memory import InMemoryJobQueue
from yard_reports.lib.queue.sqs import SqsJobQueue, create_sqs_client

__all__ = [
    "InMemoryJobQueue",
    "JobQueue",
    "JobQueueError",
    "QueuedMessage",
    "SqsJobQueue",
    "create_sqs_client",
]
