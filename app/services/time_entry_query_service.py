import re
from datetime import date, datetime
from typing import List, Optional, Tuple

from fastapi import Depends
from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from app.db.models import TimeEntry
from app.db.session import get_sync_session
from app.schemas.time_entry_schemas import DateRange, QuerySpec
from app.utils.datetime_utils import Clock, end_of_day, get_clock, start_of_day
from app.utils.errors import InvalidDateFormatError
from app.utils.logging import get_logger

logger = get_logger()

# "2026-10-17 10:00:00 +0000" and similar: only the leading date is used
_LEADING_DATE = re.compile(r"^(\d{4}-\d{2}-\d{2})[T ]\S")


def parse_date_input(field: str, value: Optional[str]) -> Optional[date]:
    """
    Parse a raw date input.

    Returns None for absent or blank input. Accepts ``YYYY-MM-DD``, any ISO-8601
    date-time, or a ``YYYY-MM-DD`` prefix followed by a time part.

    Raises:
        InvalidDateFormatError: If a non-blank value cannot be parsed
    """
    if value is None or not value.strip():
        return None

    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass

    match = _LEADING_DATE.match(text)
    if match:
        try:
            return date.fromisoformat(match.group(1))
        except ValueError:
            pass

    raise InvalidDateFormatError(field=field, value=value)


class DateRangeEntryFilter:
    """Turns optional date strings into an inclusive day range and its query criteria."""

    def __init__(self, clock: Clock):
        self.clock = clock

    def resolve(
        self, start_input: Optional[str] = None, end_input: Optional[str] = None
    ) -> DateRange:
        """
        Resolve raw inputs into a DateRange, defaulting absent bounds to today.

        An inverted range is returned as-is.

        Raises:
            InvalidDateFormatError: If a non-blank input cannot be parsed
        """
        start_date = parse_date_input("start_date", start_input)
        end_date = parse_date_input("end_date", end_input)

        today = None
        if start_date is None or end_date is None:
            today = self.clock.today()

        return DateRange(
            start_date=start_date if start_date is not None else today,
            end_date=end_date if end_date is not None else today,
        )

    def build_query_spec(self, date_range: DateRange) -> QuerySpec:
        """Billable entries from the start day's first instant to the end day's last, newest first."""
        return QuerySpec(
            start_at=start_of_day(date_range.start_date, self.clock.zone),
            end_at=end_of_day(date_range.end_date, self.clock.zone),
        )

    def query_spec_for(
        self, start_input: Optional[str] = None, end_input: Optional[str] = None
    ) -> QuerySpec:
        return self.build_query_spec(self.resolve(start_input, end_input))


class TimeEntryRepository:
    """Executes QuerySpecs against the time_entries table."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def find(self, spec: QuerySpec) -> List[TimeEntry]:
        conditions = [
            TimeEntry.actual_start_time >= spec.naive_utc_start,
            TimeEntry.actual_start_time <= spec.naive_utc_end,
        ]
        if spec.billable_only:
            conditions.insert(
                0,
                or_(
                    TimeEntry.actual_hours.is_not(None),
                    TimeEntry.bill_amount.is_not(None),
                ),
            )

        order_column = getattr(TimeEntry, spec.order_by)
        stmt = (
            select(TimeEntry)
            .where(and_(*conditions))
            .order_by(order_column.desc() if spec.descending else order_column.asc())
        )

        result = self.db.execute(stmt)
        return list(result.scalars().all())


class TimeEntryQueryService:
    """Query object for billable time entries within a date range."""

    def __init__(self, db_session: Session, clock: Clock):
        self.db = db_session
        self.entry_filter = DateRangeEntryFilter(clock)
        self.repository = TimeEntryRepository(db_session)

    def resolve_range(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> DateRange:
        return self.entry_filter.resolve(start_date, end_date)

    def time_entries(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> Tuple[DateRange, List[TimeEntry]]:
        """
        Get billable time entries for the given raw date inputs.

        Args:
            start_date: Raw start date, today when absent
            end_date: Raw end date, today when absent

        Returns:
            The resolved DateRange and the matching entries, newest first

        Raises:
            InvalidDateFormatError: Raised before any query is executed
        """
        date_range = self.entry_filter.resolve(start_date, end_date)
        spec = self.entry_filter.build_query_spec(date_range)
        entries = self.repository.find(spec)

        logger.info(
            f"Found {len(entries)} billable time entries between "
            f"{date_range.start_date.isoformat()} and {date_range.end_date.isoformat()}"
        )
        return date_range, entries


def get_time_entry_query_service(
    db_session: Session = Depends(get_sync_session),
    clock: Clock = Depends(get_clock),
) -> TimeEntryQueryService:
    """Dependency to get time entry query service"""
    return TimeEntryQueryService(db_session, clock)
