from typing import List, Optional
from datetime import datetime
from decimal import Decimal
import uuid
from sqlalchemy import (
    String,
    Text,
    ForeignKey,
    Index,
    Numeric,
    Uuid,
    func,
    DateTime,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


# Base model with common audit fields
class AuditMixin:
    """Mixin for common audit fields"""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.current_timestamp(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.current_timestamp(),
        onupdate=func.current_timestamp(),
    )


# Models
class User(Base, AuditMixin):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(
        String(320), unique=True, nullable=False
    )  # RFC 5321 max length
    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))

    # Relationships
    time_entries: Mapped[List["TimeEntry"]] = relationship(back_populates="user")


class Client(Base, AuditMixin):
    __tablename__ = "clients"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Relationships
    projects: Mapped[List["Project"]] = relationship(back_populates="client")


class Project(Base, AuditMixin):
    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("clients.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Relationships
    client: Mapped["Client"] = relationship(back_populates="projects")
    tasks: Mapped[List["Task"]] = relationship(back_populates="project")


class Task(Base, AuditMixin):
    __tablename__ = "tasks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("projects.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Relationships
    project: Mapped["Project"] = relationship(back_populates="tasks")
    time_entries: Mapped[List["TimeEntry"]] = relationship(back_populates="task")


class TimeEntry(Base, AuditMixin):
    """
    A span of tracked work. Billable when actual_hours or bill_amount is set.
    Timestamps are naive UTC.
    """

    __tablename__ = "time_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    task_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tasks.id"), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    actual_start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    actual_end_time: Mapped[Optional[datetime]] = mapped_column(DateTime)
    actual_hours: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2))
    bill_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    description: Mapped[Optional[str]] = mapped_column(Text)

    # Relationships
    task: Mapped["Task"] = relationship(back_populates="time_entries")
    user: Mapped["User"] = relationship(back_populates="time_entries")

    __table_args__ = (Index("ix_time_entries_actual_start_time", "actual_start_time"),)
