"""Event point awards drawn from an event's capped budget."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_points.domain.roles import Actor
from campus_points.models.event import EventGuest, EventOrganizer
from campus_points.models.transaction import PointTransaction, TransactionType
from campus_points.models.user import User
from campus_points.observability.ledger import get_ledger_store
from campus_points.services.ledger.access import DEFAULT_POLICY, AccessPolicy, Capability
from campus_points.services.ledger.errors import NotFoundError, PreconditionFailedError
from campus_points.services.ledger.unit_of_work import apply_balance_delta, atomic, lock_event, lock_users
from campus_points.services.ledger.validation import positive_points


async def is_event_organizer(session: AsyncSession, event_id: UUID, user_id: UUID) -> bool:
    stmt = select(EventOrganizer.id).where(
        EventOrganizer.event_id == event_id,
        EventOrganizer.user_id == user_id,
    )
    result = await session.execute(stmt)
    return result.first() is not None


class EventAwardService:
    """Credits guests from an event budget, singly or as an all-or-nothing batch."""

    def __init__(self, session: AsyncSession, *, policy: AccessPolicy = DEFAULT_POLICY) -> None:
        self._db = session
        self._policy = policy

    async def award(
        self,
        actor: Actor,
        event_id: UUID,
        amount: Any,
        *,
        recipient_id: UUID | None = None,
        remark: str | None = None,
    ) -> list[PointTransaction]:
        """Award ``amount`` to one guest, or to every guest when ``recipient_id`` is None.

        The whole batch is checked against the remaining budget before anyone is
        credited; either every guest receives points or nobody does.
        """

        if not self._policy.allows(actor, Capability.AWARD_EVENT_POINTS):
            organizer = await is_event_organizer(self._db, event_id, actor.user_id)
            self._policy.require(actor, Capability.AWARD_EVENT_POINTS, delegated=organizer)
        points = positive_points(amount)

        async with atomic(self._db, operation="award_event_points") as unit:
            event = await lock_event(self._db, event_id)
            if event is None:
                raise NotFoundError(f"Event {event_id} not found")

            guest_ids = await self._guest_ids(event.id)
            if recipient_id is not None:
                if recipient_id not in guest_ids:
                    if not await self._user_exists(recipient_id):
                        raise NotFoundError(f"User {recipient_id} not found")
                    raise PreconditionFailedError(f"User {recipient_id} is not a guest of event {event_id}")
                targets = [recipient_id]
            else:
                if not guest_ids:
                    raise PreconditionFailedError(f"Event {event_id} has no guests to award")
                targets = guest_ids

            required = points * len(targets)
            if required > event.points_remaining:
                raise PreconditionFailedError(
                    f"Event {event_id} has {event.points_remaining} points remaining, {required} requested"
                )

            users = await lock_users(self._db, targets)
            transactions: list[PointTransaction] = []
            for user_id in targets:
                user = users.get(user_id)
                if user is None:
                    raise NotFoundError(f"User {user_id} not found")
                transaction = PointTransaction(
                    user_id=user.id,
                    type=TransactionType.EVENT,
                    amount=points,
                    related_id=event.id,
                    remark=remark or "",
                    created_by_id=actor.user_id,
                    promotion_links=[],
                )
                self._db.add(transaction)
                apply_balance_delta(user, points, reason="event award")
                transactions.append(transaction)

            event.points_awarded = int(event.points_awarded or 0) + required
            await self._db.flush()

            def _record() -> None:
                store = get_ledger_store()
                for _ in transactions:
                    store.record_transaction(TransactionType.EVENT.value, points)

            unit.after_commit(_record)

        logger.info(
            "Awarded event points",
            event_id=str(event.id),
            recipients=len(transactions),
            amount=points,
            points_awarded=event.points_awarded,
            actor_id=str(actor.user_id),
        )
        return transactions

    async def _guest_ids(self, event_id: UUID) -> list[UUID]:
        stmt = (
            select(EventGuest.user_id)
            .where(EventGuest.event_id == event_id)
            .order_by(EventGuest.created_at, EventGuest.id)
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def _user_exists(self, user_id: UUID) -> bool:
        result = await self._db.execute(select(User.id).where(User.id == user_id))
        return result.first() is not None


__all__ = ["EventAwardService", "is_event_organizer"]
