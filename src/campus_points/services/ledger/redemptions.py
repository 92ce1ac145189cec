"""Two-phase redemption lifecycle: requested, then processed by a cashier."""

from __future__ import annotations

from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_points.domain.roles import Actor
from campus_points.models.transaction import PointTransaction, RedemptionState, TransactionType
from campus_points.observability.ledger import get_ledger_store
from campus_points.services.ledger.access import DEFAULT_POLICY, AccessPolicy, Capability
from campus_points.services.ledger.errors import NotFoundError, PreconditionFailedError
from campus_points.services.ledger.unit_of_work import (
    Clock,
    apply_balance_delta,
    atomic,
    lock_user,
    utcnow,
)


class RedemptionStateMachine:
    """Moves redemptions from ``requested`` to ``processed``; nothing else."""

    _ALLOWED_TRANSITIONS: dict[RedemptionState, set[RedemptionState]] = {
        RedemptionState.REQUESTED: {RedemptionState.PROCESSED},
        RedemptionState.PROCESSED: set(),
    }

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

    @classmethod
    def can_transition(cls, current: RedemptionState, target: RedemptionState) -> bool:
        return target in cls._ALLOWED_TRANSITIONS.get(current, set())

    async def process(self, actor: Actor, transaction_id: UUID) -> PointTransaction:
        """Deduct the redeemed points from the owner and stamp the processor.

        Balance sufficiency is re-checked here: two requests against the same
        points can both exist, and only the first one processed succeeds.
        """

        self._policy.require(actor, Capability.PROCESS_REDEMPTION)

        async with atomic(self._db, operation="process_redemption") as unit:
            redemption = await self._load_for_update(transaction_id)
            if redemption is None:
                raise NotFoundError(f"Transaction {transaction_id} not found")
            if redemption.type != TransactionType.REDEMPTION:
                raise PreconditionFailedError(f"Transaction {transaction_id} is not a redemption")

            current = redemption.redemption_state
            if not self.can_transition(current, RedemptionState.PROCESSED):
                raise PreconditionFailedError(f"Redemption {transaction_id} has already been processed")

            owner = await lock_user(self._db, redemption.user_id)
            if owner is None:
                raise NotFoundError(f"Owner of redemption {transaction_id} not found")

            redemption.processed_by_id = actor.user_id
            redemption.processed_at = self._clock()

            deducted = 0
            if not redemption.suspicious:
                apply_balance_delta(owner, redemption.ledger_delta, reason="redemption")
                deducted = redemption.ledger_delta
            await self._db.flush()

            unit.after_commit(lambda: get_ledger_store().record_balance_change(deducted))

        logger.info(
            "Processed redemption",
            transaction_id=str(redemption.id),
            user_id=str(redemption.user_id),
            processed_by=str(actor.user_id),
            amount=redemption.amount,
            deferred=redemption.suspicious,
        )
        return redemption

    async def _load_for_update(self, transaction_id: UUID) -> PointTransaction | None:
        stmt = (
            select(PointTransaction)
            .where(PointTransaction.id == transaction_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()
