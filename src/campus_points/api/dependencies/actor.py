"""Resolve the authenticated actor from forwarded identity headers."""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_points.db.session import get_session
from campus_points.domain.roles import Actor, Role
from campus_points.models.user import User


async def require_actor(
    actor_header: str | None = Header(None, alias="X-Actor-Id"),
    db: AsyncSession = Depends(get_session),
) -> Actor:
    """Build an :class:`Actor` whose role comes from the stored user, never the request."""

    if not actor_header:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing actor context",
        )

    try:
        user_id = UUID(actor_header)
    except ValueError as error:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid actor identifier",
        ) from error

    result = await db.execute(select(User.id, User.role).where(User.id == user_id))
    row = result.one_or_none()
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Actor not found",
        )

    try:
        role = Role.parse(row.role)
    except ValueError as error:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Actor has an unrecognised role",
        ) from error

    return Actor(user_id=row.id, role=role)
