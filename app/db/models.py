import uuid
from typing import List, Optional
from datetime import datetime
from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import enum

from app.utils.datetime_utils import naive_utc_now


class Base(DeclarativeBase):
    pass


# Enums
class RoutinePeriod(enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# Base model with common audit fields
class AuditMixin:
    """Mixin for common audit fields"""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, nullable=False
    )


# Models
class Community(Base, AuditMixin):
    __tablename__ = "community"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    is_private: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    members: Mapped[List["UserJoinCommunity"]] = relationship(
        back_populates="community", cascade="all, delete-orphan"
    )
    tasks: Mapped[List["CommunityTask"]] = relationship(
        back_populates="community", cascade="all, delete-orphan"
    )


class UserJoinCommunity(Base, AuditMixin):
    __tablename__ = "user_join_community"

    account_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    community_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("community.id", ondelete="CASCADE"), primary_key=True
    )

    community: Mapped["Community"] = relationship(back_populates="members")


class CommunityTask(Base, AuditMixin):
    """Canonical community-level task. Member copies live in `task`."""

    __tablename__ = "community_task"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    community_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("community.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    deadline: Mapped[Optional[datetime]] = mapped_column(DateTime)
    subtasks: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    community: Mapped["Community"] = relationship(back_populates="tasks")


class Task(Base, AuditMixin):
    __tablename__ = "task"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    community_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    # Set on member copies; identifies the canonical task they were replicated from
    community_task_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    deadline: Mapped[Optional[datetime]] = mapped_column(DateTime)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    subtasks: Mapped[List["Subtask"]] = relationship(
        back_populates="task", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_task_deadline", "deadline"),
        Index("ix_task_community_task_id", "community_task_id"),
    )


class Subtask(Base, AuditMixin):
    __tablename__ = "subtask"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    task_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("task.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    task: Mapped["Task"] = relationship(back_populates="subtasks")


class Webhook(Base):
    __tablename__ = "webhook"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    # NULL means the user explicitly has no destination
    url: Mapped[Optional[str]] = mapped_column(String(2048))


class Routine(Base, AuditMixin):
    __tablename__ = "routine"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    period: Mapped[RoutinePeriod] = mapped_column(
        Enum(RoutinePeriod, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Last completed/uncompleted transition
    checktime: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, nullable=False
    )

    __table_args__ = (Index("ix_routine_period_completed", "period", "completed"),)
