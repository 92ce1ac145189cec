"""Promotion catalog and per-user one-time consumption markers."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from campus_points.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class PromotionKind(str, Enum):
    """How a promotion reaches a transaction."""

    AUTOMATIC = "automatic"
    ONE_TIME = "one_time"


class Promotion(Base):
    """Bonus rule applied to purchases (automatic) or on request (one-time)."""

    __tablename__ = "promotions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    kind = Column(
        SqlEnum(
            PromotionKind,
            name="promotion_kind",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    min_spending = Column(Numeric(12, 2), nullable=True)
    rate = Column(Numeric(8, 4), nullable=True)
    points = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    def is_active_at(self, moment: datetime) -> bool:
        moment = ensure_aware(moment)
        return ensure_aware(self.start_time) <= moment <= ensure_aware(self.end_time)


class UserPromotionUsage(Base):
    """Marks a one-time promotion as consumed for a user; never reverts."""

    __tablename__ = "user_promotion_usage"
    __table_args__ = (
        UniqueConstraint("user_id", "promotion_id", name="uq_user_promotion_usage_user_promotion"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    promotion_id = Column(
        UUID(as_uuid=True), ForeignKey("promotions.id", ondelete="CASCADE"), nullable=False
    )
    used = Column(Boolean, nullable=False, default=False, server_default="false")
    used_at = Column(DateTime(timezone=True), nullable=True)
