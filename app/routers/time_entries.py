from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Query, Request, status

from app.schemas.time_entry_schemas import (
    SendTimeEntriesRequest,
    SendTimeEntriesResponse,
    TimeEntryListResponse,
    TimeEntryResponse,
)
from app.services.time_entry_query_service import (
    TimeEntryQueryService,
    get_time_entry_query_service,
)
from app.tasks.background.time_entries_mail_sender import dispatch_time_entries_mail
from app.utils.errors import BusinessLogicError
from app.utils.logging import get_logger
from app.utils.responses import ResponseBuilder

time_entries_router = APIRouter()
logger = get_logger()


@time_entries_router.get(
    "",
    response_model=TimeEntryListResponse,
    status_code=status.HTTP_200_OK,
    summary="List billable time entries",
    description="Billable time entries between start_date and end_date (inclusive, today when omitted), newest first",
)
def list_time_entries(
    request: Request,
    start_date: Annotated[
        Optional[str], Query(description="First day, YYYY-MM-DD")
    ] = None,
    end_date: Annotated[Optional[str], Query(description="Last day, YYYY-MM-DD")] = None,
    time_entry_query_service: TimeEntryQueryService = Depends(
        get_time_entry_query_service
    ),
):
    """
    List billable time entries for a date range.

    Raises:
        InvalidDateFormatError: For unparseable dates (handled globally, 400)
        BusinessLogicError: For any other service failure
    """
    try:
        date_range, entries = time_entry_query_service.time_entries(
            start_date=start_date, end_date=end_date
        )
    except BusinessLogicError:
        raise
    except Exception as e:
        logger.error(f"Failed to retrieve time entries: {e}")
        raise BusinessLogicError(
            message="Failed to retrieve time entries",
            error_code="TIME_ENTRIES_RETRIEVAL_FAILED",
        )

    response_data = TimeEntryListResponse(
        start_date=date_range.start_date,
        end_date=date_range.end_date,
        total=len(entries),
        time_entries=[TimeEntryResponse.model_validate(entry) for entry in entries],
    )

    return ResponseBuilder.success(
        request=request,
        data=response_data.model_dump(by_alias=True),
        message="Time entries retrieved successfully",
        status_code=status.HTTP_200_OK,
    )


@time_entries_router.post(
    "/send",
    response_model=SendTimeEntriesResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Email a time entries summary",
    description="Queue an email summarising billable time entries for the date range",
)
def send_time_entries(
    request: Request,
    send_request: SendTimeEntriesRequest,
    time_entry_query_service: TimeEntryQueryService = Depends(
        get_time_entry_query_service
    ),
):
    """
    Validate the date inputs and queue the summary mail.

    The worker resolves the range again from the same raw strings, so only
    primitives are sent through the broker.

    Raises:
        InvalidDateFormatError: For unparseable dates, nothing is queued
        BusinessLogicError: If the job cannot be queued
    """
    date_range = time_entry_query_service.resolve_range(
        start_date=send_request.start_date, end_date=send_request.end_date
    )

    try:
        task_id = dispatch_time_entries_mail(
            send_request, request_id=request.state.request_id
        )
    except Exception as e:
        logger.error(f"Failed to queue time entries mail: {e}")
        raise BusinessLogicError(
            message="Failed to queue time entries email",
            error_code="TIME_ENTRIES_MAIL_QUEUE_FAILED",
        )

    logger.info(
        f"Queued time entries mail {task_id} to {send_request.recipient_email}"
    )

    response_data = SendTimeEntriesResponse(
        task_id=task_id,
        recipient_email=send_request.recipient_email,
        start_date=date_range.start_date,
        end_date=date_range.end_date,
    )

    return ResponseBuilder.success(
        request=request,
        data=response_data.model_dump(by_alias=True),
        message="Time Entries were successfully queued to be sent to you.",
        status_code=status.HTTP_202_ACCEPTED,
    )
