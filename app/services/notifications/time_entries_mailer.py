from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.db.models import TimeEntry
from app.schemas.time_entry_schemas import DateRange, TimeEntriesMailJob
from app.services.time_entry_query_service import TimeEntryQueryService
from app.utils.datetime_utils import Clock, from_naive_utc
from app.utils.errors import MailDeliveryError, MailNotConfiguredError
from app.utils.logging import get_logger

logger = get_logger()

SUBJECT_TEMPLATE = "Your Time Entries Summary"

BODY_TEMPLATE = (
    "Hello {recipient_email},\n"
    "\n"
    "Here are your billable time entries from {start_date} to {end_date}:\n"
    "\n"
    "{entry_lines}\n"
    "\n"
    "Total hours: {total_hours}\n"
    "Total billed: {total_bill_amount}\n"
)

ENTRY_LINE_TEMPLATE = "- {started_at} | {description} | hours: {hours} | billed: {bill_amount}"

EMPTY_LINE = "No billable time entries were recorded in this period."


def _format_amount(value: Optional[Decimal]) -> str:
    return "-" if value is None else f"{value:.2f}"


class TimeEntriesMailer:
    """Renders and emails a summary of billable time entries."""

    def __init__(
        self,
        db_session: Session,
        clock: Clock,
        mail_client: Optional[SendGridAPIClient] = None,
    ):
        self.db = db_session
        self.clock = clock
        self.query_service = TimeEntryQueryService(db_session, clock)
        self._mail_client = mail_client

    @property
    def mail_client(self) -> SendGridAPIClient:
        if self._mail_client is None:
            if not settings.SENDGRID_API_KEY:
                raise MailNotConfiguredError()
            self._mail_client = SendGridAPIClient(api_key=settings.SENDGRID_API_KEY)
        return self._mail_client

    def render(
        self,
        recipient_email: str,
        date_range: DateRange,
        entries: Sequence[TimeEntry],
    ) -> Dict[str, str]:
        """Build subject and body for the summary."""
        lines: List[str] = []
        total_hours = Decimal("0")
        total_bill_amount = Decimal("0")

        for entry in entries:
            started_at = from_naive_utc(entry.actual_start_time, self.clock.zone)
            lines.append(
                ENTRY_LINE_TEMPLATE.format(
                    started_at=started_at.strftime("%Y-%m-%d %H:%M"),
                    description=entry.description or "(no description)",
                    hours=_format_amount(entry.actual_hours),
                    bill_amount=_format_amount(entry.bill_amount),
                )
            )
            total_hours += entry.actual_hours or Decimal("0")
            total_bill_amount += entry.bill_amount or Decimal("0")

        body = BODY_TEMPLATE.format(
            recipient_email=recipient_email,
            start_date=date_range.start_date.isoformat(),
            end_date=date_range.end_date.isoformat(),
            entry_lines="\n".join(lines) if lines else EMPTY_LINE,
            total_hours=_format_amount(total_hours),
            total_bill_amount=_format_amount(total_bill_amount),
        )
        return {"subject": SUBJECT_TEMPLATE, "body": body}

    def deliver(self, recipient_email: str, message: Dict[str, str]) -> None:
        """
        Send a rendered message through SendGrid.

        Raises:
            MailDeliveryError: If the client fails or SendGrid rejects the message
        """
        mail = Mail(
            from_email=(settings.MAIL_FROM_EMAIL, settings.MAIL_FROM_NAME),
            to_emails=recipient_email,
            subject=message["subject"],
            plain_text_content=message["body"],
        )

        try:
            response = self.mail_client.send(mail)
        except MailDeliveryError:
            raise
        except Exception as e:
            raise MailDeliveryError(
                f"SendGrid request failed for {recipient_email}: {e}"
            ) from e

        if not 200 <= response.status_code < 300:
            raise MailDeliveryError(
                f"SendGrid rejected mail for {recipient_email}: "
                f"status {response.status_code}, body {response.body!r}"
            )

        logger.info(
            f"Time entries summary sent to {recipient_email} (status {response.status_code})"
        )

    def send(self, job: TimeEntriesMailJob) -> Dict[str, Any]:
        """
        Resolve the job's dates, query, render and deliver.

        Raises:
            InvalidDateFormatError: If the job carries a malformed date
            MailDeliveryError: If delivery fails
        """
        date_range, entries = self.query_service.time_entries(
            job.start_date, job.end_date
        )
        message = self.render(job.recipient_email, date_range, entries)
        self.deliver(job.recipient_email, message)

        return {
            "recipient_email": job.recipient_email,
            "start_date": date_range.start_date.isoformat(),
            "end_date": date_range.end_date.isoformat(),
            "entry_count": len(entries),
        }
