import pytest
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import Mock
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from app.schemas.time_entry_schemas import DateRange
from app.services.time_entry_query_service import (
    DateRangeEntryFilter,
    TimeEntryQueryService,
    TimeEntryRepository,
    parse_date_input,
)
from app.utils.datetime_utils import FixedClock, to_naive_utc
from app.utils.errors import InvalidDateFormatError

from tests.conftest import TEST_ZONE, TODAY, local_time

YESTERDAY = TODAY - timedelta(days=1)
TOMORROW = TODAY + timedelta(days=1)


@pytest.fixture
def entry_filter(fixed_clock: FixedClock) -> DateRangeEntryFilter:
    return DateRangeEntryFilter(fixed_clock)


def _entry(started_at: datetime, hours=Decimal("1.00"), bill_amount=None):
    return SimpleNamespace(
        actual_start_time=started_at, actual_hours=hours, bill_amount=bill_amount
    )


class TestParseDateInput:
    """Test raw date input parsing."""

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_absent_or_blank_is_none(self, value):
        assert parse_date_input("start_date", value) is None

    @pytest.mark.parametrize(
        "value",
        [
            "2026-10-17",
            " 2026-10-17 ",
            "2026-10-17T08:30:00",
            "2026-10-17T23:59:59+07:00",
            "2026-10-17 10:00:00 +0000",
        ],
    )
    def test_date_portion_is_used(self, value):
        assert parse_date_input("start_date", value) == date(2026, 10, 17)

    @pytest.mark.parametrize("value", ["not-a-date", "2026-13-01", "17/10/2026", "2026-02-30"])
    def test_malformed_raises(self, value):
        with pytest.raises(InvalidDateFormatError) as exc_info:
            parse_date_input("end_date", value)

        assert exc_info.value.field == "end_date"
        assert exc_info.value.value == value
        assert exc_info.value.error_code == "INVALID_DATE_FORMAT"


class TestResolve:
    """Test resolving raw inputs into a DateRange."""

    @pytest.mark.parametrize(
        "start_input,end_input", [(None, None), ("", ""), (None, ""), ("  ", None)]
    )
    def test_absent_inputs_default_to_today(self, entry_filter, start_input, end_input):
        date_range = entry_filter.resolve(start_input, end_input)

        assert date_range == DateRange(start_date=TODAY, end_date=TODAY)

    def test_only_start_date(self, entry_filter):
        date_range = entry_filter.resolve("2026-09-01", None)

        assert date_range.start_date == date(2026, 9, 1)
        assert date_range.end_date == TODAY

    def test_only_end_date(self, entry_filter):
        date_range = entry_filter.resolve(None, "2026-12-31")

        assert date_range.start_date == TODAY
        assert date_range.end_date == date(2026, 12, 31)

    def test_both_dates(self, entry_filter):
        date_range = entry_filter.resolve("2026-01-01", "2026-01-31")

        assert date_range.start_date == date(2026, 1, 1)
        assert date_range.end_date == date(2026, 1, 31)

    def test_inverted_range_is_kept(self, entry_filter):
        date_range = entry_filter.resolve("2026-10-20", "2026-10-10")

        assert date_range.start_date == date(2026, 10, 20)
        assert date_range.end_date == date(2026, 10, 10)

    def test_resolve_is_idempotent(self, entry_filter):
        assert entry_filter.resolve("2026-10-01", None) == entry_filter.resolve(
            "2026-10-01", None
        )

    def test_today_comes_from_injected_clock(self):
        clock = FixedClock(date(2030, 1, 1), TEST_ZONE)

        date_range = DateRangeEntryFilter(clock).resolve()

        assert date_range == DateRange(start_date=date(2030, 1, 1), end_date=date(2030, 1, 1))

    def test_clock_not_read_when_both_given(self):
        clock = Mock(zone=TEST_ZONE)

        DateRangeEntryFilter(clock).resolve("2026-01-01", "2026-01-02")

        clock.today.assert_not_called()

    def test_malformed_start_raises(self, entry_filter):
        with pytest.raises(InvalidDateFormatError):
            entry_filter.resolve("not-a-date", None)


class TestBuildQuerySpec:
    """Test day boundaries and ordering of the query specification."""

    def test_bounds_cover_whole_days_in_zone(self, entry_filter):
        spec = entry_filter.build_query_spec(
            DateRange(start_date=YESTERDAY, end_date=TOMORROW)
        )

        assert spec.start_at == datetime.combine(YESTERDAY, time.min, tzinfo=TEST_ZONE)
        assert spec.end_at == datetime.combine(TOMORROW, time.max, tzinfo=TEST_ZONE)
        assert spec.billable_only is True
        assert spec.order_by == "actual_start_time"
        assert spec.descending is True

    def test_bounds_convert_to_naive_utc(self, entry_filter):
        spec = entry_filter.build_query_spec(DateRange(start_date=TODAY, end_date=TODAY))

        # Asia/Bangkok is UTC+7
        assert spec.naive_utc_start == datetime(2026, 10, 17, 17, 0, 0)
        assert spec.naive_utc_end == datetime(2026, 10, 18, 16, 59, 59, 999999)

    def test_repeated_hour_before_midnight_stays_in_its_day(self):
        # America/Santiago fell back from 2023-04-02 00:00 -03 to 2023-04-01 23:00 -04
        santiago = ZoneInfo("America/Santiago")
        entry_filter = DateRangeEntryFilter(FixedClock(date(2023, 4, 1), santiago))
        day = entry_filter.build_query_spec(
            DateRange(start_date=date(2023, 4, 1), end_date=date(2023, 4, 1))
        )
        next_day = entry_filter.build_query_spec(
            DateRange(start_date=date(2023, 4, 2), end_date=date(2023, 4, 2))
        )

        assert day.naive_utc_end == datetime(2023, 4, 2, 3, 59, 59, 999999)
        assert next_day.naive_utc_start == datetime(2023, 4, 2, 4, 0, 0)

        # 23:30 local, second occurrence (-04:00)
        repeated = _entry(datetime(2023, 4, 2, 3, 30))
        assert day.matches(repeated)
        assert not next_day.matches(repeated)

    def test_query_spec_for_composes_resolve(self, entry_filter):
        assert entry_filter.query_spec_for(None, None) == entry_filter.build_query_spec(
            DateRange(start_date=TODAY, end_date=TODAY)
        )


class TestQuerySpecMatching:
    """Test the in-memory evaluation of the criteria."""

    @pytest.fixture
    def spec(self, entry_filter):
        return entry_filter.build_query_spec(DateRange(start_date=TODAY, end_date=TODAY))

    def test_upper_boundary_is_inclusive(self, spec):
        assert spec.matches(_entry(to_naive_utc(spec.end_at)))
        assert not spec.matches(
            _entry(to_naive_utc(spec.end_at) + timedelta(milliseconds=1))
        )

    def test_lower_boundary_is_inclusive(self, spec):
        assert spec.matches(_entry(to_naive_utc(spec.start_at)))
        assert not spec.matches(
            _entry(to_naive_utc(spec.start_at) - timedelta(milliseconds=1))
        )

    def test_last_second_of_day_included_next_midnight_excluded(self, spec):
        assert spec.matches(_entry(local_time(TODAY, 23, 59, 59)))
        assert not spec.matches(_entry(local_time(TOMORROW, 0, 0, 0)))

    def test_non_billable_entry_excluded(self, spec):
        assert not spec.matches(_entry(local_time(TODAY), hours=None, bill_amount=None))

    @pytest.mark.parametrize(
        "hours,bill_amount",
        [(Decimal("2.00"), None), (None, Decimal("150.00")), (Decimal("1"), Decimal("5"))],
    )
    def test_billable_entry_included(self, spec, hours, bill_amount):
        assert spec.matches(_entry(local_time(TODAY), hours=hours, bill_amount=bill_amount))

    def test_apply_orders_newest_first(self, spec):
        morning = _entry(local_time(TODAY, 8))
        evening = _entry(local_time(TODAY, 20))
        noon = _entry(local_time(TODAY, 12))
        unbillable = _entry(local_time(TODAY, 13), hours=None)

        assert spec.apply([morning, evening, unbillable, noon]) == [evening, noon, morning]


class TestTimeEntryRepository:
    """Test the SQL rendition of the query specification."""

    def test_scenario_today_yesterday_tomorrow(
        self, db_session: Session, entry_filter, make_time_entry
    ):
        today_entry = make_time_entry(local_time(TODAY))
        yesterday_entry = make_time_entry(
            local_time(YESTERDAY), description="Time Entry From Yesterday"
        )
        tomorrow_entry = make_time_entry(
            local_time(TOMORROW), description="Time Entry From Tomorrow"
        )
        repository = TimeEntryRepository(db_session)

        def ids(start_input, end_input):
            spec = entry_filter.query_spec_for(start_input, end_input)
            return [entry.id for entry in repository.find(spec)]

        assert ids(None, None) == [today_entry.id]
        assert ids(YESTERDAY.isoformat(), None) == [today_entry.id, yesterday_entry.id]
        assert ids(None, TOMORROW.isoformat()) == [tomorrow_entry.id, today_entry.id]
        assert ids(YESTERDAY.isoformat(), TOMORROW.isoformat()) == [
            tomorrow_entry.id,
            today_entry.id,
            yesterday_entry.id,
        ]

    def test_boundaries_in_database(self, db_session: Session, entry_filter, make_time_entry):
        spec = entry_filter.query_spec_for(None, None)
        first_instant = make_time_entry(spec.naive_utc_start)
        last_instant = make_time_entry(spec.naive_utc_end)
        make_time_entry(spec.naive_utc_start - timedelta(milliseconds=1))
        make_time_entry(spec.naive_utc_end + timedelta(milliseconds=1))

        found = TimeEntryRepository(db_session).find(spec)

        assert [entry.id for entry in found] == [last_instant.id, first_instant.id]

    def test_only_billable_entries(self, db_session: Session, entry_filter, make_time_entry):
        hours_only = make_time_entry(local_time(TODAY, 9), actual_hours=Decimal("2.00"))
        amount_only = make_time_entry(
            local_time(TODAY, 10), actual_hours=None, bill_amount=Decimal("80.00")
        )
        make_time_entry(local_time(TODAY, 11), actual_hours=None, bill_amount=None)

        found = TimeEntryRepository(db_session).find(entry_filter.query_spec_for())

        assert [entry.id for entry in found] == [amount_only.id, hours_only.id]

    def test_inverted_range_yields_nothing(
        self, db_session: Session, entry_filter, make_time_entry
    ):
        make_time_entry(local_time(TODAY))

        spec = entry_filter.query_spec_for(TOMORROW.isoformat(), YESTERDAY.isoformat())

        assert TimeEntryRepository(db_session).find(spec) == []


class TestTimeEntryQueryService:
    """Test the query object facade."""

    def test_time_entries_returns_range_and_entries(
        self, db_session: Session, fixed_clock, make_time_entry
    ):
        entry = make_time_entry(local_time(TODAY))
        service = TimeEntryQueryService(db_session, fixed_clock)

        date_range, entries = service.time_entries()

        assert date_range == DateRange(start_date=TODAY, end_date=TODAY)
        assert [e.id for e in entries] == [entry.id]

    def test_empty_result_is_valid(self, db_session: Session, fixed_clock):
        _, entries = TimeEntryQueryService(db_session, fixed_clock).time_entries()

        assert entries == []

    def test_malformed_input_performs_no_query(self, fixed_clock):
        db_session = Mock()
        service = TimeEntryQueryService(db_session, fixed_clock)

        with pytest.raises(InvalidDateFormatError):
            service.time_entries(start_date="not-a-date")

        db_session.execute.assert_not_called()
