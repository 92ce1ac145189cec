from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID

from campus_points.db.base import Base
from campus_points.domain.roles import Role


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """Ledger subject: a campus member holding a points balance."""

    __tablename__ = "users"
    __table_args__ = (CheckConstraint("points >= 0", name="ck_users_points_non_negative"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    utorid = Column(String(16), nullable=False, unique=True, index=True)
    name = Column(String, nullable=True)
    email = Column(String, nullable=True, unique=True)
    role = Column(String(length=16), nullable=False, default=Role.REGULAR.label, server_default=Role.REGULAR.label)
    # Mutated only by the ledger engine
    points = Column(Integer, nullable=False, default=0, server_default="0")
    verified = Column(Boolean, nullable=False, default=False, server_default="false")
    suspicious = Column(Boolean, nullable=False, default=False, server_default="false")
    version = Column(Integer, nullable=False, default=1, server_default="1")
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow, nullable=False
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def role_level(self) -> Role:
        return Role.parse(self.role)
