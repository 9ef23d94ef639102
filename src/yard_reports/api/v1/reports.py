"""Movement report API endpoints: submit an export job and poll its status."""

from collections.abc import Mapping

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from yard_reports.core.config import Settings, get_settings
from yard_reports.core.dependencies import get_job_queue, get_status_store
from yard_reports.lib.exporter import ColumnValidationError
from yard_reports.lib.queue import JobQueue, JobQueueError
from yard_reports.schemas.report import ReportRequest, ReportStatus, ReportSubmitResponse
from yard_reports.services.report_service import get_report_status, submit_report
from yard_reports.services.status_store import StatusStore

reports_router = APIRouter(prefix="/movements/reports", tags=["reports"])


def merge_query_params(body: ReportRequest | None, query_params: Mapping[str, str]) -> ReportRequest:
    """Overlay URL query parameters on a JSON report request.

    A field present in both places takes the query parameter value.

    Raises:
        RequestValidationError: If a query parameter fails validation.
    """
    if not query_params:
        return body if body is not None else ReportRequest()
    payload = body.model_dump(by_alias=True, exclude_unset=True) if body is not None else {}
    payload.update(query_params)
    try:
        return ReportRequest.model_validate(payload)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False, include_context=False)) from exc


@reports_router.post(
    "",
    response_model=ReportSubmitResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_202_ACCEPTED,
)
async def request_report(
    http_request: Request,
    body: ReportRequest | None = None,
    status_store: StatusStore = Depends(get_status_store),
    queue: JobQueue = Depends(get_job_queue),
    settings: Settings = Depends(get_settings),
) -> ReportSubmitResponse:
    """Accept a movement report request and queue it for export.

    Filters may be sent in the JSON body, as query parameters, or both.
    """
    report_request = merge_query_params(body, http_request.query_params)
    try:
        return await submit_report(
            report_request,
            status_store=status_store,
            queue=queue,
            timezone=settings.reports_timezone,
            status_path=f"{settings.api_v1_prefix}{reports_router.prefix}/status",
        )
    except ColumnValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except JobQueueError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to queue report: {exc}",
        ) from exc


@reports_router.get(
    "/status",
    response_model=ReportStatus,
    response_model_by_alias=True,
)
async def get_status(
    job_id: str | None = Query(None, alias="jobId"),
    status_store: StatusStore = Depends(get_status_store),
) -> ReportStatus:
    """Get the status document of a report job."""
    if not job_id or not job_id.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="jobId is required")
    report = await get_report_status(status_store, job_id.strip())
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report job not found")
    return report
