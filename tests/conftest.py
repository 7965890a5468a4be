import pytest
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Generator, Optional
from unittest.mock import Mock
from zoneinfo import ZoneInfo

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.models import Base, Client, Project, Task, TimeEntry, User
from app.utils.datetime_utils import FixedClock, to_naive_utc


# Test database setup
TEST_DATABASE_URL = "sqlite:///:memory:"

TEST_ZONE = ZoneInfo("Asia/Bangkok")
TODAY = date(2026, 10, 18)


def local_time(day: date, hour: int = 12, minute: int = 0, second: int = 0, microsecond: int = 0) -> datetime:
    """Naive UTC timestamp for a wall-clock time in the test zone."""
    return to_naive_utc(
        datetime(day.year, day.month, day.day, hour, minute, second, microsecond, tzinfo=TEST_ZONE)
    )


@pytest.fixture(scope="session")
def test_engine():
    """Create test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(test_engine) -> Generator[Session, None, None]:
    """Database session for each test; every table is emptied afterwards."""
    session_maker = sessionmaker(bind=test_engine, class_=Session, expire_on_commit=False)

    with session_maker() as session:
        yield session
        session.rollback()
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()


@pytest.fixture
def fixed_clock() -> FixedClock:
    """Clock pinned to TODAY in Asia/Bangkok."""
    return FixedClock(TODAY, TEST_ZONE)


@pytest.fixture
def mock_celery_task():
    """Mock Celery task for testing retry behavior."""
    mock_task = Mock()
    mock_task.request.retries = 0
    mock_task.max_retries = 3
    mock_task.retry = Mock(side_effect=Exception("Retry called"))
    return mock_task


# Test data factories
@pytest.fixture
def sample_user(db_session: Session) -> User:
    user = User(
        id=uuid.uuid4(),
        email="user@example.com",
        first_name="Test",
        last_name="User",
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def sample_task(db_session: Session) -> Task:
    """A task under a project under a client, as time entries require."""
    client = Client(id=uuid.uuid4(), name="Acme Corp")
    project = Project(id=uuid.uuid4(), client=client, name="Website Redesign")
    task = Task(id=uuid.uuid4(), project=project, name="Implement search")
    db_session.add_all([client, project, task])
    db_session.commit()
    db_session.refresh(task)
    return task


@pytest.fixture
def make_time_entry(
    db_session: Session, sample_user: User, sample_task: Task
) -> Callable[..., TimeEntry]:
    """Factory for persisted time entries; billable by default."""

    def _make(
        actual_start_time: datetime,
        actual_hours: Optional[Decimal] = Decimal("1.50"),
        bill_amount: Optional[Decimal] = None,
        description: Optional[str] = None,
    ) -> TimeEntry:
        entry = TimeEntry(
            id=uuid.uuid4(),
            task_id=sample_task.id,
            user_id=sample_user.id,
            actual_start_time=actual_start_time,
            actual_end_time=actual_start_time,
            actual_hours=actual_hours,
            bill_amount=bill_amount,
            description=description,
        )
        db_session.add(entry)
        db_session.commit()
        db_session.refresh(entry)
        return entry

    return _make
