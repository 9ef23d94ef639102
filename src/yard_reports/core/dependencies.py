"""FastAPI dependency injection for report pipeline collaborators.

The collaborators are built once in the application lifespan and kept on
``app.state``; these dependencies hand them to request handlers and can be
replaced through ``app.dependency_overrides`` in tests.
"""

from fastapi import HTTPException, Request, status

from yard_reports.lib.queue import JobQueue
from yard_reports.services.status_store import StatusStore


def get_status_store(request: Request) -> StatusStore:
    """Return the application's status store."""
    store = getattr(request.app.state, "status_store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Report storage is not configured",
        )
    return store


def get_job_queue(request: Request) -> JobQueue:
    """Return the application's report job queue."""
    queue = getattr(request.app.state, "job_queue", None)
    if queue is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Report queue is not configured",
        )
    return queue
