from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, List, Optional
from uuid import UUID

from pydantic import ConfigDict, EmailStr, Field, field_validator

from app.schemas.camel_base_model import CamelCaseBaseModel as BaseModel
from app.utils.datetime_utils import to_naive_utc


class DateRange(BaseModel):
    """Inclusive day-level range; start_date may lie after end_date."""

    model_config = ConfigDict(frozen=True)

    start_date: date = Field(..., description="First calendar day of the range")
    end_date: date = Field(..., description="Last calendar day of the range")


class QuerySpec(BaseModel):
    """
    Storage-independent retrieval criteria for billable time entries.

    Selects entries where (actual_hours IS NOT NULL OR bill_amount IS NOT NULL)
    and start_at <= actual_start_time <= end_at, newest first.
    """

    model_config = ConfigDict(frozen=True)

    start_at: datetime = Field(..., description="Inclusive lower bound (aware, UTC)")
    end_at: datetime = Field(..., description="Inclusive upper bound (aware, UTC)")
    billable_only: bool = Field(default=True)
    order_by: str = Field(default="actual_start_time")
    descending: bool = Field(default=True)

    @field_validator("start_at", "end_at", mode="before")
    @classmethod
    def pin_to_utc(cls, v: Any) -> Any:
        # Ambiguous wall times are resolved by ``fold`` here, before validation
        if isinstance(v, datetime) and v.tzinfo is not None:
            return v.astimezone(timezone.utc)
        return v

    @property
    def naive_utc_start(self) -> datetime:
        return to_naive_utc(self.start_at)

    @property
    def naive_utc_end(self) -> datetime:
        return to_naive_utc(self.end_at)

    def matches(self, entry: Any) -> bool:
        """Evaluate the criteria against a single entry (naive UTC start time)."""
        if self.billable_only and (
            entry.actual_hours is None and entry.bill_amount is None
        ):
            return False
        started_at = to_naive_utc(entry.actual_start_time)
        return self.naive_utc_start <= started_at <= self.naive_utc_end

    def apply(self, entries: Iterable[Any]) -> List[Any]:
        """Filter and order an in-memory collection the way the store would."""
        matched = [entry for entry in entries if self.matches(entry)]
        return sorted(
            matched,
            key=lambda entry: to_naive_utc(getattr(entry, self.order_by)),
            reverse=self.descending,
        )


class TimeEntriesMailJob(BaseModel):
    """
    Payload handed to the background mailer.

    Carries the raw date strings rather than resolved entries so the worker
    can re-derive the range and re-query on its side.
    """

    recipient_email: EmailStr = Field(..., description="Who receives the summary")
    start_date: Optional[str] = Field(default=None, description="Raw start date input")
    end_date: Optional[str] = Field(default=None, description="Raw end date input")

    @field_validator("start_date", "end_date")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class SendTimeEntriesRequest(TimeEntriesMailJob):
    """Request body for queuing a time entries summary."""


class SendTimeEntriesResponse(BaseModel):
    task_id: str = Field(..., description="Celery task ID of the queued mail")
    recipient_email: str = Field(..., description="Who will receive the summary")
    start_date: date = Field(..., description="Resolved first day")
    end_date: date = Field(..., description="Resolved last day")


class TimeEntryResponse(BaseModel):
    """Response schema for a single billable time entry."""

    id: str | UUID = Field(..., description="Time entry ID")
    task_id: str | UUID = Field(..., description="Task the time was spent on")
    user_id: str | UUID = Field(..., description="User who logged the time")
    actual_start_time: datetime = Field(..., description="Start (UTC)")
    actual_end_time: Optional[datetime] = Field(default=None, description="End (UTC)")
    actual_hours: Optional[Decimal] = Field(default=None, description="Hours worked")
    bill_amount: Optional[Decimal] = Field(default=None, description="Amount billed")
    description: Optional[str] = Field(default=None, description="Entry description")

    model_config = ConfigDict(from_attributes=True)


class TimeEntryListResponse(BaseModel):
    start_date: date = Field(..., description="Resolved first day")
    end_date: date = Field(..., description="Resolved last day")
    total: int = Field(..., description="Number of matching entries")
    time_entries: List[TimeEntryResponse] = Field(default_factory=list)
