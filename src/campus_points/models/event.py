"""Campus events: point budgets and guest/organizer rosters."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from campus_points.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Event(Base):
    """Event carrying a capped point budget for guest awards."""

    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("points_awarded <= total_points", name="ck_events_points_within_budget"),
        CheckConstraint("points_awarded >= 0", name="ck_events_points_awarded_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String, nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    capacity = Column(Integer, nullable=True)
    total_points = Column(Integer, nullable=False, default=0, server_default="0")
    points_awarded = Column(Integer, nullable=False, default=0, server_default="0")
    version = Column(Integer, nullable=False, default=1, server_default="1")
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def points_remaining(self) -> int:
        return int(self.total_points or 0) - int(self.points_awarded or 0)


class EventGuest(Base):
    """Guest registration for an event."""

    __tablename__ = "event_guests"
    __table_args__ = (UniqueConstraint("event_id", "user_id", name="uq_event_guests_event_user"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    event_id = Column(UUID(as_uuid=True), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)


class EventOrganizer(Base):
    """Organizer assignment for an event."""

    __tablename__ = "event_organizers"
    __table_args__ = (UniqueConstraint("event_id", "user_id", name="uq_event_organizers_event_user"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    event_id = Column(UUID(as_uuid=True), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
