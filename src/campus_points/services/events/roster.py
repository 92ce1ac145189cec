"""Guest and organizer membership for events."""

from __future__ import annotations

from uuid import UUID

from loguru import logger
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_points.domain.roles import Actor
from campus_points.models.event import Event, EventGuest, EventOrganizer
from campus_points.models.promotion import ensure_aware
from campus_points.models.user import User
from campus_points.services.ledger.access import DEFAULT_POLICY, AccessPolicy, Capability
from campus_points.services.ledger.errors import ConflictError, NotFoundError, PreconditionFailedError
from campus_points.services.ledger.event_awards import is_event_organizer
from campus_points.services.ledger.unit_of_work import Clock, atomic, lock_event, utcnow


class EventRosterService:
    """Keeps guest and organizer lists disjoint and within capacity.

    Managers manage both lists; an event's organizers may also manage its guests.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        policy: AccessPolicy = DEFAULT_POLICY,
        clock: Clock = utcnow,
    ) -> None:
        self._db = session
        self._policy = policy
        self._clock = clock

    async def add_guest(self, actor: Actor, event_id: UUID, user_id: UUID) -> EventGuest:
        await self._require_guest_manager(actor, event_id)

        async with atomic(self._db, operation="add_guest"):
            event = await self._require_event(event_id)
            await self._require_user(user_id)

            if ensure_aware(event.end_time) <= self._clock():
                raise PreconditionFailedError(f"Event {event_id} has already ended")
            if await self._is_member(EventOrganizer, event_id, user_id):
                raise PreconditionFailedError(f"User {user_id} is an organizer of event {event_id}")
            if await self._is_member(EventGuest, event_id, user_id):
                raise ConflictError(f"User {user_id} is already a guest of event {event_id}")
            if event.capacity is not None and await self._guest_count(event_id) >= event.capacity:
                raise PreconditionFailedError(f"Event {event_id} is full")

            guest = EventGuest(event_id=event_id, user_id=user_id)
            self._db.add(guest)
            await self._db.flush()

        logger.info("Added event guest", event_id=str(event_id), user_id=str(user_id), actor_id=str(actor.user_id))
        return guest

    async def remove_guest(self, actor: Actor, event_id: UUID, user_id: UUID) -> None:
        await self._require_guest_manager(actor, event_id)

        async with atomic(self._db, operation="remove_guest"):
            await self._require_event(event_id)
            if not await self._is_member(EventGuest, event_id, user_id):
                raise NotFoundError(f"User {user_id} is not a guest of event {event_id}")
            await self._db.execute(
                delete(EventGuest).where(EventGuest.event_id == event_id, EventGuest.user_id == user_id)
            )

        logger.info("Removed event guest", event_id=str(event_id), user_id=str(user_id), actor_id=str(actor.user_id))

    async def add_organizer(self, actor: Actor, event_id: UUID, user_id: UUID) -> EventOrganizer:
        self._policy.require(actor, Capability.MANAGE_EVENT_ROSTER)

        async with atomic(self._db, operation="add_organizer"):
            event = await self._require_event(event_id)
            await self._require_user(user_id)

            if ensure_aware(event.end_time) <= self._clock():
                raise PreconditionFailedError(f"Event {event_id} has already ended")
            if await self._is_member(EventGuest, event_id, user_id):
                raise PreconditionFailedError(f"User {user_id} is a guest of event {event_id}")
            if await self._is_member(EventOrganizer, event_id, user_id):
                raise ConflictError(f"User {user_id} is already an organizer of event {event_id}")

            organizer = EventOrganizer(event_id=event_id, user_id=user_id)
            self._db.add(organizer)
            await self._db.flush()

        logger.info("Added event organizer", event_id=str(event_id), user_id=str(user_id))
        return organizer

    async def remove_organizer(self, actor: Actor, event_id: UUID, user_id: UUID) -> None:
        self._policy.require(actor, Capability.MANAGE_EVENT_ROSTER)

        async with atomic(self._db, operation="remove_organizer"):
            await self._require_event(event_id)
            if not await self._is_member(EventOrganizer, event_id, user_id):
                raise NotFoundError(f"User {user_id} is not an organizer of event {event_id}")
            await self._db.execute(
                delete(EventOrganizer).where(
                    EventOrganizer.event_id == event_id,
                    EventOrganizer.user_id == user_id,
                )
            )

        logger.info("Removed event organizer", event_id=str(event_id), user_id=str(user_id))

    async def _require_guest_manager(self, actor: Actor, event_id: UUID) -> None:
        if self._policy.allows(actor, Capability.MANAGE_EVENT_ROSTER):
            return
        organizer = await is_event_organizer(self._db, event_id, actor.user_id)
        self._policy.require(actor, Capability.MANAGE_EVENT_ROSTER, delegated=organizer)

    async def _require_event(self, event_id: UUID) -> Event:
        event = await lock_event(self._db, event_id)
        if event is None:
            raise NotFoundError(f"Event {event_id} not found")
        return event

    async def _require_user(self, user_id: UUID) -> None:
        result = await self._db.execute(select(User.id).where(User.id == user_id))
        if result.first() is None:
            raise NotFoundError(f"User {user_id} not found")

    async def _is_member(self, model, event_id: UUID, user_id: UUID) -> bool:
        stmt = select(model.id).where(model.event_id == event_id, model.user_id == user_id)
        return (await self._db.execute(stmt)).first() is not None

    async def _guest_count(self, event_id: UUID) -> int:
        stmt = select(func.count(EventGuest.id)).where(EventGuest.event_id == event_id)
        return int((await self._db.execute(stmt)).scalar_one())


__all__ = ["EventRosterService"]
