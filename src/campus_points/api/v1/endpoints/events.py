"""Event award and roster endpoints."""

from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from campus_points.api.dependencies.actor import require_actor
from campus_points.db.session import get_session
from campus_points.domain.roles import Actor
from campus_points.schemas.ledger import (
    EventAwardCreate,
    RosterMemberCreate,
    RosterMemberResponse,
    TransactionResponse,
)
from campus_points.services.events import EventRosterService
from campus_points.services.ledger import LedgerService


router = APIRouter(prefix="/events", tags=["Events"])


@router.post(
    "/{event_id}/transactions",
    response_model=List[TransactionResponse],
    status_code=status.HTTP_201_CREATED,
)
async def award_event_points(
    event_id: UUID,
    payload: EventAwardCreate,
    actor: Actor = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> List[TransactionResponse]:
    """Award points to one guest, or to every guest when no recipient is given."""

    transactions = await LedgerService(db).award_event_points(
        actor,
        event_id,
        payload.amount,
        recipient_id=payload.recipient_id,
        remark=payload.remark,
    )
    return [TransactionResponse.model_validate(transaction) for transaction in transactions]


@router.post("/{event_id}/guests", response_model=RosterMemberResponse, status_code=status.HTTP_201_CREATED)
async def add_guest(
    event_id: UUID,
    payload: RosterMemberCreate,
    actor: Actor = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> RosterMemberResponse:
    guest = await EventRosterService(db).add_guest(actor, event_id, payload.user_id)
    return RosterMemberResponse.model_validate(guest)


@router.delete("/{event_id}/guests/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_guest(
    event_id: UUID,
    user_id: UUID,
    actor: Actor = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> Response:
    await EventRosterService(db).remove_guest(actor, event_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{event_id}/organizers", response_model=RosterMemberResponse, status_code=status.HTTP_201_CREATED)
async def add_organizer(
    event_id: UUID,
    payload: RosterMemberCreate,
    actor: Actor = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> RosterMemberResponse:
    organizer = await EventRosterService(db).add_organizer(actor, event_id, payload.user_id)
    return RosterMemberResponse.model_validate(organizer)


@router.delete("/{event_id}/organizers/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_organizer(
    event_id: UUID,
    user_id: UUID,
    actor: Actor = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> Response:
    await EventRosterService(db).remove_organizer(actor, event_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
