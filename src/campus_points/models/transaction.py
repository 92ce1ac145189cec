"""Point transactions: the durable rows behind every balance change."""

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
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from campus_points.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransactionType(str, Enum):
    """Kinds of ledger transactions."""

    PURCHASE = "purchase"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"
    REDEMPTION = "redemption"
    EVENT = "event"


class RedemptionState(str, Enum):
    """Two-phase redemption lifecycle."""

    REQUESTED = "requested"
    PROCESSED = "processed"


class PointTransaction(Base):
    """Immutable ledger row; only ``suspicious`` and redemption processing mutate it.

    ``amount`` is the signed delta for the ledger subject, except for redemptions,
    which store the positive amount requested and only draw it down once processed.
    """

    __tablename__ = "point_transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(
        SqlEnum(
            TransactionType,
            name="point_transaction_type",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        index=True,
    )
    amount = Column(Integer, nullable=False)
    spent = Column(Numeric(12, 2), nullable=True)
    related_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    suspicious = Column(Boolean, nullable=False, default=False, server_default="false")
    remark = Column(String, nullable=False, default="", server_default="")
    created_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    processed_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    promotion_links = relationship(
        "TransactionPromotion",
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionPromotion.position",
        lazy="selectin",
    )

    @property
    def promotion_ids(self) -> list:
        return [link.promotion_id for link in self.promotion_links]

    @property
    def redemption_state(self) -> RedemptionState | None:
        if self.type != TransactionType.REDEMPTION:
            return None
        if self.processed_by_id is None:
            return RedemptionState.REQUESTED
        return RedemptionState.PROCESSED

    @property
    def ledger_delta(self) -> int:
        """Balance effect of this row while it is not flagged suspicious."""

        if self.type == TransactionType.REDEMPTION:
            if self.processed_by_id is None:
                return 0
            return -int(self.amount)
        return int(self.amount)


class TransactionPromotion(Base):
    """Ordered promotion attachment for a transaction."""

    __tablename__ = "point_transaction_promotions"

    transaction_id = Column(
        UUID(as_uuid=True),
        ForeignKey("point_transactions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    promotion_id = Column(UUID(as_uuid=True), ForeignKey("promotions.id"), primary_key=True, index=True)
    position = Column(Integer, nullable=False, default=0)

    transaction = relationship("PointTransaction", back_populates="promotion_links")
