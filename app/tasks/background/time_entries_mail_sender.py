from typing import Optional

from app.celery import celery
from app.db.session import get_sync_session
from app.schemas.time_entry_schemas import TimeEntriesMailJob
from app.services.notifications.time_entries_mailer import TimeEntriesMailer
from app.utils.context import request_id_scope
from app.utils.datetime_utils import get_clock
from app.utils.errors import (
    InvalidDateFormatError,
    MailDeliveryError,
    MailNotConfiguredError,
)
from app.utils.logging import get_logger


@celery.task(bind=True, max_retries=3, default_retry_delay=60)
def send_time_entries_task(
    self,
    request_id: str,
    recipient_email: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
):
    """
    Celery task to email a summary of billable time entries.

    Only the raw date strings travel through the broker; the range is resolved
    and the entries are queried again inside the worker.

    Args:
        request_id: The request ID from the original HTTP request
        recipient_email: Address that receives the summary
        start_date: Raw start date input, today when absent
        end_date: Raw end date input, today when absent
    """
    try:
        return _send_time_entries(
            request_id=request_id,
            recipient_email=recipient_email,
            start_date=start_date,
            end_date=end_date,
        )
    except MailDeliveryError as e:
        get_logger().bind(request_id=request_id).warning(
            f"Time entries mail to {recipient_email} failed, "
            f"retry {self.request.retries + 1}/{self.max_retries}: {e.message}"
        )
        raise self.retry(exc=e)


def _send_time_entries(
    request_id: str,
    recipient_email: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
):
    logger = get_logger().bind(request_id=request_id)

    with request_id_scope(request_id):
        job = TimeEntriesMailJob(
            recipient_email=recipient_email, start_date=start_date, end_date=end_date
        )

        for db_session in get_sync_session():
            try:
                mailer = TimeEntriesMailer(db_session, get_clock())
                summary = mailer.send(job)

                logger.info(
                    f"Time entries summary delivered to {recipient_email} "
                    f"with {summary['entry_count']} entries"
                )
                return {"success": True, "request_id": request_id, **summary}

            # Neither outcome changes on a retry
            except (InvalidDateFormatError, MailNotConfiguredError) as e:
                logger.error(f"Time entries mail rejected: {e.message}")
                return {
                    "success": False,
                    "error": e.message,
                    "error_code": e.error_code,
                    "recipient_email": recipient_email,
                    "request_id": request_id,
                }


def dispatch_time_entries_mail(job: TimeEntriesMailJob, request_id: str) -> str:
    """Queue the summary mail and return the Celery task ID."""
    result = send_time_entries_task.delay(  # type: ignore
        request_id=request_id, **job.model_dump()
    )
    return str(result.id)
