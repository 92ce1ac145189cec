"""Atomic units of work and row locking for ledger mutations."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Iterable
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from campus_points.models.event import Event
from campus_points.models.user import User
from campus_points.observability.ledger import get_ledger_store
from campus_points.services.ledger.errors import ConflictError, LedgerError, PreconditionFailedError
from campus_points.services.ledger.validation import MAX_POINTS


Clock = Callable[[], datetime]

_RETRYABLE_SQLSTATES = {"40001", "40P01"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UnitOfWork:
    """Handle yielded by :func:`atomic`; collects hooks that run only after commit."""

    def __init__(self, session: AsyncSession, operation: str) -> None:
        self.session = session
        self.operation = operation
        self._after_commit: list[Callable[[], None]] = []

    def after_commit(self, callback: Callable[[], None]) -> None:
        self._after_commit.append(callback)

    def _run_after_commit(self) -> None:
        for callback in self._after_commit:
            callback()


def _is_retryable(error: DBAPIError) -> bool:
    original = getattr(error, "orig", None)
    for attr in ("sqlstate", "pgcode"):
        if getattr(original, attr, None) in _RETRYABLE_SQLSTATES:
            return True
    return "database is locked" in str(original or error).lower()


@asynccontextmanager
async def atomic(session: AsyncSession, *, operation: str) -> AsyncIterator[UnitOfWork]:
    """Commit everything done inside the block, or roll all of it back.

    Engine rejections propagate unchanged; isolation failures (stale version
    counters, serialization failures, deadlocks, unique races) become ConflictError.
    """

    unit = UnitOfWork(session, operation)
    store = get_ledger_store()
    try:
        yield unit
        await session.commit()
    except LedgerError as exc:
        await session.rollback()
        store.record_rejection(operation, exc.code)
        logger.warning("Ledger operation rejected", operation=operation, code=exc.code, reason=exc.message)
        raise
    except StaleDataError as exc:
        await session.rollback()
        store.record_rejection(operation, ConflictError.code)
        logger.warning("Concurrent ledger update detected", operation=operation, error=str(exc))
        raise ConflictError(f"{operation} raced a concurrent update; retry the request") from exc
    except IntegrityError as exc:
        await session.rollback()
        store.record_rejection(operation, ConflictError.code)
        logger.warning("Ledger integrity conflict", operation=operation, error=str(exc.orig))
        raise ConflictError(f"{operation} conflicted with a concurrent write; retry the request") from exc
    except DBAPIError as exc:
        await session.rollback()
        if not _is_retryable(exc):
            raise
        store.record_rejection(operation, ConflictError.code)
        logger.warning("Ledger serialization failure", operation=operation, error=str(exc.orig))
        raise ConflictError(f"{operation} could not be serialized; retry the request") from exc
    except Exception:
        await session.rollback()
        raise
    unit._run_after_commit()


async def lock_users(session: AsyncSession, user_ids: Iterable[UUID]) -> dict[UUID, User]:
    """Load and row-lock users in id order so concurrent transfers cannot deadlock."""

    ids = list(set(user_ids))
    if not ids:
        return {}
    stmt = (
        select(User)
        .where(User.id.in_(ids))
        .order_by(User.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return {user.id: user for user in result.scalars().all()}


async def lock_user(session: AsyncSession, user_id: UUID) -> User | None:
    users = await lock_users(session, [user_id])
    return users.get(user_id)


async def lock_event(session: AsyncSession, event_id: UUID) -> Event | None:
    stmt = (
        select(Event)
        .where(Event.id == event_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


def apply_balance_delta(user: User, delta: int, *, reason: str) -> int:
    """Mutate ``user.points`` by ``delta``; the balance stays within 0..MAX_POINTS."""

    balance_before = int(user.points or 0)
    balance_after = balance_before + int(delta)
    if balance_after < 0:
        raise PreconditionFailedError(
            f"Insufficient points for {reason}: balance {balance_before}, required {-int(delta)}"
        )
    if balance_after > MAX_POINTS:
        raise PreconditionFailedError(f"{reason} would push the balance past {MAX_POINTS} points")
    user.points = balance_after
    return balance_after
