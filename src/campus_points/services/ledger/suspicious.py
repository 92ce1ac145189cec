from __future__ import annotations

from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_points.domain.roles import Actor
from campus_points.models.transaction import PointTransaction
from campus_points.observability.ledger import get_ledger_store
from campus_points.services.ledger.access import DEFAULT_POLICY, AccessPolicy, Capability
from campus_points.services.ledger.errors import NotFoundError, ValidationError
from campus_points.services.ledger.unit_of_work import apply_balance_delta, atomic, lock_user


class SuspiciousFlagService:
    """Toggle a transaction's suspicious flag and reverse or restore its balance effect."""

    def __init__(self, session: AsyncSession, *, policy: AccessPolicy = DEFAULT_POLICY) -> None:
        self._db = session
        self._policy = policy

    async def set_flag(self, actor: Actor, transaction_id: UUID, suspicious: bool) -> PointTransaction:
        self._policy.require(actor, Capability.FLAG_SUSPICIOUS)
        if not isinstance(suspicious, bool):
            raise ValidationError("suspicious must be a boolean")

        async with atomic(self._db, operation="set_suspicious") as unit:
            stmt = (
                select(PointTransaction)
                .where(PointTransaction.id == transaction_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            transaction = (await self._db.execute(stmt)).scalar_one_or_none()
            if transaction is None:
                raise NotFoundError(f"Transaction {transaction_id} not found")

            if bool(transaction.suspicious) == suspicious:
                logger.debug(
                    "Suspicious flag unchanged",
                    transaction_id=str(transaction.id),
                    suspicious=suspicious,
                )
                return transaction

            owner = await lock_user(self._db, transaction.user_id)
            if owner is None:
                raise NotFoundError(f"Owner of transaction {transaction_id} not found")

            # Flagging removes the row's effect; clearing restores it.
            delta = -transaction.ledger_delta if suspicious else transaction.ledger_delta
            if delta:
                apply_balance_delta(owner, delta, reason="suspicious flag change")
            transaction.suspicious = suspicious
            await self._db.flush()

            def _record() -> None:
                store = get_ledger_store()
                store.record_suspicious_toggle(suspicious)
                store.record_balance_change(delta)

            unit.after_commit(_record)

        logger.info(
            "Updated suspicious flag",
            transaction_id=str(transaction.id),
            user_id=str(transaction.user_id),
            suspicious=suspicious,
            balance_delta=delta,
            actor_id=str(actor.user_id),
        )
        return transaction
