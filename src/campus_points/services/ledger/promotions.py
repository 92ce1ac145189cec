"""Promotion eligibility, bonus computation and one-time consumption."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_points.models.promotion import Promotion, PromotionKind, UserPromotionUsage
from campus_points.services.ledger.errors import NotFoundError, PreconditionFailedError
from campus_points.services.ledger.unit_of_work import Clock, utcnow


_WHOLE_POINT = Decimal("1")


def round_points(value: Decimal) -> int:
    """Round half away from zero, matching how points are quoted to members."""

    return int(Decimal(value).quantize(_WHOLE_POINT, rounding=ROUND_HALF_UP))


def base_points(spent: Decimal, points_per_dollar: int) -> int:
    return round_points(Decimal(spent) * Decimal(points_per_dollar))


def promotion_bonus(promotion: Promotion, spent: Decimal | None) -> int:
    bonus = int(promotion.points or 0)
    if promotion.rate is not None and spent is not None:
        bonus += round_points(Decimal(spent) * Decimal(100) * Decimal(promotion.rate))
    return bonus


@dataclass(slots=True)
class ResolvedPromotions:
    """Ordered set of promotions to attach to a transaction."""

    promotions: list[Promotion] = field(default_factory=list)

    @property
    def ids(self) -> list[UUID]:
        return [promotion.id for promotion in self.promotions]

    @property
    def one_time(self) -> list[Promotion]:
        return [promotion for promotion in self.promotions if promotion.kind == PromotionKind.ONE_TIME]

    def bonus_points(self, spent: Decimal | None) -> int:
        return sum(promotion_bonus(promotion, spent) for promotion in self.promotions)


class PromotionResolver:
    """Determines which promotions apply to a spend; never mutates state."""

    def __init__(self, session: AsyncSession, *, clock: Clock = utcnow) -> None:
        self._db = session
        self._clock = clock

    async def resolve(
        self,
        user_id: UUID,
        *,
        spent: Decimal | None = None,
        requested_ids: Sequence[UUID] | None = None,
    ) -> ResolvedPromotions:
        """Resolve automatic promotions for ``spent`` plus validated explicit requests.

        Automatic promotions only apply when a spend is supplied. Explicit ids must
        exist, be inside their window, and (one-time) be unconsumed for the user.
        """

        now = self._clock()
        resolved: list[Promotion] = []
        seen: set[UUID] = set()

        if spent is not None:
            for promotion in await self._automatic_promotions(spent, now):
                seen.add(promotion.id)
                resolved.append(promotion)

        for promotion in await self._explicit_promotions(user_id, requested_ids or [], now):
            if promotion.id in seen:
                continue
            seen.add(promotion.id)
            resolved.append(promotion)

        logger.debug(
            "Resolved promotions",
            user_id=str(user_id),
            promotion_ids=[str(pid) for pid in seen],
        )
        return ResolvedPromotions(promotions=resolved)

    async def _automatic_promotions(self, spent: Decimal, now) -> list[Promotion]:
        stmt = (
            select(Promotion)
            .where(Promotion.kind == PromotionKind.AUTOMATIC)
            .order_by(Promotion.start_time.asc(), Promotion.id.asc())
        )
        result = await self._db.execute(stmt)
        eligible = []
        for promotion in result.scalars().all():
            if not promotion.is_active_at(now):
                continue
            if promotion.min_spending is not None and Decimal(promotion.min_spending) > Decimal(spent):
                continue
            eligible.append(promotion)
        return eligible

    async def _explicit_promotions(
        self,
        user_id: UUID,
        requested_ids: Sequence[UUID],
        now,
    ) -> list[Promotion]:
        ordered_ids = list(dict.fromkeys(requested_ids))
        if not ordered_ids:
            return []

        result = await self._db.execute(select(Promotion).where(Promotion.id.in_(ordered_ids)))
        by_id = {promotion.id: promotion for promotion in result.scalars().all()}
        consumed = await self._consumed_promotion_ids(user_id, ordered_ids)

        promotions: list[Promotion] = []
        for promotion_id in ordered_ids:
            promotion = by_id.get(promotion_id)
            if promotion is None:
                raise NotFoundError(f"Promotion {promotion_id} does not exist")
            if not promotion.is_active_at(now):
                raise PreconditionFailedError(f"Promotion {promotion_id} is expired or not yet active")
            if promotion.kind == PromotionKind.ONE_TIME and promotion_id in consumed:
                raise PreconditionFailedError(f"Promotion {promotion_id} has already been used")
            promotions.append(promotion)
        return promotions

    async def _consumed_promotion_ids(self, user_id: UUID, promotion_ids: Sequence[UUID]) -> set[UUID]:
        stmt = select(UserPromotionUsage.promotion_id).where(
            UserPromotionUsage.user_id == user_id,
            UserPromotionUsage.promotion_id.in_(promotion_ids),
            UserPromotionUsage.used.is_(True),
        )
        result = await self._db.execute(stmt)
        return set(result.scalars().all())


async def consume_one_time_promotions(
    session: AsyncSession,
    user_id: UUID,
    promotions: Sequence[Promotion],
    *,
    clock: Clock = utcnow,
) -> list[UserPromotionUsage]:
    """Mark each one-time promotion used for ``user_id``, creating usage rows as needed.

    Must run inside the unit of work that persists the owning transaction.
    """

    one_time_ids = [promotion.id for promotion in promotions if promotion.kind == PromotionKind.ONE_TIME]
    if not one_time_ids:
        return []

    stmt = select(UserPromotionUsage).where(
        UserPromotionUsage.user_id == user_id,
        UserPromotionUsage.promotion_id.in_(one_time_ids),
    )
    result = await session.execute(stmt)
    existing = {usage.promotion_id: usage for usage in result.scalars().all()}

    now = clock()
    consumed: list[UserPromotionUsage] = []
    for promotion_id in one_time_ids:
        usage = existing.get(promotion_id)
        if usage is None:
            usage = UserPromotionUsage(user_id=user_id, promotion_id=promotion_id)
            session.add(usage)
        elif usage.used:
            raise PreconditionFailedError(f"Promotion {promotion_id} has already been used")
        usage.used = True
        usage.used_at = now
        consumed.append(usage)

    await session.flush()
    logger.info(
        "Consumed one-time promotions",
        user_id=str(user_id),
        promotion_ids=[str(pid) for pid in one_time_ids],
    )
    return consumed
