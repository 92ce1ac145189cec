"""SQLAlchemy models package."""

from campus_points.db.base import Base  # noqa: F401

from .event import Event, EventGuest, EventOrganizer  # noqa: F401
from .promotion import Promotion, PromotionKind, UserPromotionUsage  # noqa: F401
from .transaction import (  # noqa: F401
    PointTransaction,
    RedemptionState,
    TransactionPromotion,
    TransactionType,
)
from .user import User  # noqa: F401
