"""Ledger engine: the only code path that changes point balances."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_points.core.settings import Settings, get_settings
from campus_points.domain.roles import Actor
from campus_points.models.transaction import PointTransaction, TransactionPromotion, TransactionType
from campus_points.models.user import User
from campus_points.observability.ledger import get_ledger_store
from campus_points.services.ledger.access import DEFAULT_POLICY, AccessPolicy, Capability
from campus_points.services.ledger.errors import NotFoundError, PreconditionFailedError, ValidationError
from campus_points.services.ledger.event_awards import EventAwardService
from campus_points.services.ledger.promotions import (
    PromotionResolver,
    ResolvedPromotions,
    base_points,
    consume_one_time_promotions,
)
from campus_points.services.ledger.queries import (
    BalanceReconciliation,
    TransactionFilters,
    TransactionPage,
    TransactionQueryService,
)
from campus_points.services.ledger.redemptions import RedemptionStateMachine
from campus_points.services.ledger.suspicious import SuspiciousFlagService
from campus_points.services.ledger.unit_of_work import (
    Clock,
    apply_balance_delta,
    atomic,
    lock_user,
    lock_users,
    utcnow,
)
from campus_points.services.ledger.validation import (
    MAX_POINTS,
    nonzero_points,
    positive_points,
    positive_spend,
)


@dataclass(slots=True)
class TransferResult:
    sent: PointTransaction
    received: PointTransaction


def _promotion_links(resolved: ResolvedPromotions) -> list[TransactionPromotion]:
    return [
        TransactionPromotion(promotion_id=promotion.id, position=position)
        for position, promotion in enumerate(resolved.promotions)
    ]


class LedgerService:
    """Records purchases, adjustments, transfers, redemptions and event awards.

    Every public mutation is one atomic unit of work: it either commits the
    transaction rows together with every balance and counter change, or raises a
    :class:`~campus_points.services.ledger.errors.LedgerError` with nothing applied.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        policy: AccessPolicy | None = None,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._db = session
        self._policy = policy or DEFAULT_POLICY
        self._clock = clock or utcnow
        self._settings = settings or get_settings()
        self._promotions = PromotionResolver(session, clock=self._clock)
        self._redemptions = RedemptionStateMachine(session, policy=self._policy, clock=self._clock)
        self._flags = SuspiciousFlagService(session, policy=self._policy)
        self._events = EventAwardService(session, policy=self._policy)
        self._queries = TransactionQueryService(session, policy=self._policy, settings=self._settings)

    async def record_purchase(
        self,
        actor: Actor,
        customer_id: UUID,
        spent: Any,
        *,
        promotion_ids: Sequence[UUID] | None = None,
        remark: str | None = None,
    ) -> PointTransaction:
        """Credit a customer for a spend, applying eligible and requested promotions.

        A purchase entered by a suspicious cashier is stored with the full earned
        amount but flagged suspicious, and credits nothing until a manager clears it.
        """

        self._policy.require(actor, Capability.RECORD_PURCHASE)
        amount_spent = positive_spend(spent)

        async with atomic(self._db, operation="purchase") as unit:
            customer = await self._require_locked_user(customer_id)
            cashier = await self._load_actor(actor)

            resolved = await self._promotions.resolve(
                customer.id,
                spent=amount_spent,
                requested_ids=promotion_ids,
            )
            earned = base_points(amount_spent, self._settings.points_per_dollar) + resolved.bonus_points(
                amount_spent
            )
            if earned > MAX_POINTS:
                raise ValidationError(f"spent {amount_spent} would earn more than {MAX_POINTS} points")
            suppressed = bool(cashier.suspicious)

            transaction = PointTransaction(
                user_id=customer.id,
                type=TransactionType.PURCHASE,
                amount=earned,
                spent=amount_spent,
                suspicious=suppressed,
                remark=remark or "",
                created_by_id=actor.user_id,
                promotion_links=_promotion_links(resolved),
            )
            self._db.add(transaction)
            await self._db.flush()

            await consume_one_time_promotions(self._db, customer.id, resolved.one_time, clock=self._clock)

            credited = 0 if suppressed else earned
            if credited:
                apply_balance_delta(customer, credited, reason="purchase")
            await self._db.flush()

            unit.after_commit(
                lambda: get_ledger_store().record_transaction(TransactionType.PURCHASE.value, credited)
            )

        logger.info(
            "Recorded purchase",
            transaction_id=str(transaction.id),
            customer_id=str(customer_id),
            spent=str(transaction.spent),
            earned=earned,
            credited=credited,
            promotion_ids=[str(pid) for pid in resolved.ids],
            suspicious=suppressed,
        )
        return transaction

    async def record_adjustment(
        self,
        actor: Actor,
        customer_id: UUID,
        amount: Any,
        related_id: UUID,
        *,
        promotion_ids: Sequence[UUID] | None = None,
        remark: str | None = None,
    ) -> PointTransaction:
        """Apply a manager's correction referencing an existing transaction."""

        self._policy.require(actor, Capability.RECORD_ADJUSTMENT)
        delta = nonzero_points(amount)
        if related_id is None:
            raise ValidationError("relatedId is required for adjustments")

        async with atomic(self._db, operation="adjustment") as unit:
            related = await self._db.get(PointTransaction, related_id)
            if related is None:
                raise NotFoundError(f"Transaction {related_id} not found")
            customer = await self._require_locked_user(customer_id)

            resolved = await self._promotions.resolve(customer.id, requested_ids=promotion_ids)

            transaction = PointTransaction(
                user_id=customer.id,
                type=TransactionType.ADJUSTMENT,
                amount=delta,
                related_id=related.id,
                remark=remark or "",
                created_by_id=actor.user_id,
                promotion_links=_promotion_links(resolved),
            )
            self._db.add(transaction)
            await self._db.flush()

            await consume_one_time_promotions(self._db, customer.id, resolved.one_time, clock=self._clock)
            apply_balance_delta(customer, delta, reason="adjustment")
            await self._db.flush()

            unit.after_commit(
                lambda: get_ledger_store().record_transaction(TransactionType.ADJUSTMENT.value, delta)
            )

        logger.info(
            "Recorded adjustment",
            transaction_id=str(transaction.id),
            customer_id=str(customer_id),
            related_id=str(related_id),
            amount=delta,
            actor_id=str(actor.user_id),
        )
        return transaction

    async def transfer_points(
        self,
        actor: Actor,
        recipient_id: UUID,
        amount: Any,
        *,
        remark: str | None = None,
    ) -> TransferResult:
        """Move points from the actor to ``recipient_id`` as a pair of rows."""

        self._policy.require(actor, Capability.TRANSFER_POINTS)
        points = positive_points(amount)
        if recipient_id == actor.user_id:
            raise ValidationError("Cannot transfer points to yourself")

        async with atomic(self._db, operation="transfer") as unit:
            users = await lock_users(self._db, [actor.user_id, recipient_id])
            sender = users.get(actor.user_id)
            if sender is None:
                raise NotFoundError(f"User {actor.user_id} not found")
            recipient = users.get(recipient_id)
            if recipient is None:
                raise NotFoundError(f"User {recipient_id} not found")
            if not sender.verified:
                raise PreconditionFailedError("Only verified users can transfer points")

            apply_balance_delta(sender, -points, reason="transfer")
            apply_balance_delta(recipient, points, reason="transfer")

            sent = PointTransaction(
                user_id=sender.id,
                type=TransactionType.TRANSFER,
                amount=-points,
                related_id=recipient.id,
                remark=remark or "",
                created_by_id=sender.id,
                promotion_links=[],
            )
            received = PointTransaction(
                user_id=recipient.id,
                type=TransactionType.TRANSFER,
                amount=points,
                related_id=sender.id,
                remark=remark or "",
                created_by_id=sender.id,
                promotion_links=[],
            )
            self._db.add_all([sent, received])
            await self._db.flush()

            def _record() -> None:
                store = get_ledger_store()
                store.record_transaction(TransactionType.TRANSFER.value, -points)
                store.record_transaction(TransactionType.TRANSFER.value, points)

            unit.after_commit(_record)

        logger.info(
            "Transferred points",
            sender_id=str(sender.id),
            recipient_id=str(recipient.id),
            amount=points,
            sent_id=str(sent.id),
            received_id=str(received.id),
        )
        return TransferResult(sent=sent, received=received)

    async def request_redemption(
        self,
        actor: Actor,
        amount: Any,
        *,
        remark: str | None = None,
    ) -> PointTransaction:
        """Open a redemption request; the balance is only drawn down when processed."""

        self._policy.require(actor, Capability.REQUEST_REDEMPTION)
        points = positive_points(amount)

        async with atomic(self._db, operation="request_redemption") as unit:
            user = await self._require_locked_user(actor.user_id)
            if not user.verified:
                raise PreconditionFailedError("Only verified users can redeem points")
            if int(user.points or 0) < points:
                raise PreconditionFailedError(
                    f"Insufficient points for redemption: balance {user.points}, required {points}"
                )

            transaction = PointTransaction(
                user_id=user.id,
                type=TransactionType.REDEMPTION,
                amount=points,
                remark=remark or "",
                created_by_id=user.id,
                promotion_links=[],
            )
            self._db.add(transaction)
            await self._db.flush()

            unit.after_commit(
                lambda: get_ledger_store().record_transaction(TransactionType.REDEMPTION.value, 0)
            )

        logger.info(
            "Requested redemption",
            transaction_id=str(transaction.id),
            user_id=str(user.id),
            amount=points,
        )
        return transaction

    async def process_redemption(self, actor: Actor, transaction_id: UUID) -> PointTransaction:
        return await self._redemptions.process(actor, transaction_id)

    async def set_suspicious(self, actor: Actor, transaction_id: UUID, suspicious: bool) -> PointTransaction:
        return await self._flags.set_flag(actor, transaction_id, suspicious)

    async def award_event_points(
        self,
        actor: Actor,
        event_id: UUID,
        amount: Any,
        *,
        recipient_id: UUID | None = None,
        remark: str | None = None,
    ) -> list[PointTransaction]:
        return await self._events.award(actor, event_id, amount, recipient_id=recipient_id, remark=remark)

    async def get_transaction(self, actor: Actor, transaction_id: UUID) -> PointTransaction:
        return await self._queries.get_transaction(actor, transaction_id)

    async def list_transactions(self, actor: Actor, filters: TransactionFilters) -> TransactionPage:
        return await self._queries.list_transactions(actor, filters)

    async def list_own_transactions(self, actor: Actor, filters: TransactionFilters) -> TransactionPage:
        return await self._queries.list_own_transactions(actor, filters)

    async def reconcile_user(self, actor: Actor, user_id: UUID) -> BalanceReconciliation:
        return await self._queries.reconcile_user(actor, user_id)

    async def _require_locked_user(self, user_id: UUID) -> User:
        user = await lock_user(self._db, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    async def _load_actor(self, actor: Actor) -> User:
        stmt = select(User).where(User.id == actor.user_id).execution_options(populate_existing=True)
        user = (await self._db.execute(stmt)).scalar_one_or_none()
        if user is None:
            raise NotFoundError(f"User {actor.user_id} not found")
        return user


__all__ = ["LedgerService", "TransferResult"]
