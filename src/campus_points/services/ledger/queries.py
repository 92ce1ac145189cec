"""Read-side ledger queries: lookups, filtered listings and balance reconciliation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal
from uuid import UUID

from loguru import logger
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_points.core.settings import Settings, get_settings
from campus_points.domain.roles import Actor
from campus_points.models.transaction import PointTransaction, TransactionPromotion, TransactionType
from campus_points.models.user import User
from campus_points.services.ledger.access import DEFAULT_POLICY, AccessPolicy, Capability
from campus_points.services.ledger.errors import NotFoundError, ValidationError


AmountOperator = Literal["gte", "lte"]


@dataclass(slots=True)
class TransactionFilters:
    user_id: UUID | None = None
    created_by_id: UUID | None = None
    type: TransactionType | None = None
    related_id: UUID | None = None
    promotion_id: UUID | None = None
    suspicious: bool | None = None
    amount: int | None = None
    operator: AmountOperator | None = None
    page: int = 1
    limit: int | None = None


@dataclass(slots=True)
class TransactionPage:
    count: int
    results: list[PointTransaction]


@dataclass(slots=True)
class BalanceReconciliation:
    """Stored balance versus the balance implied by the user's ledger rows."""

    user_id: UUID
    stored_points: int
    ledger_points: int
    transaction_count: int

    @property
    def drift(self) -> int:
        return self.stored_points - self.ledger_points

    @property
    def consistent(self) -> bool:
        return self.drift == 0


class TransactionQueryService:
    def __init__(
        self,
        session: AsyncSession,
        *,
        policy: AccessPolicy = DEFAULT_POLICY,
        settings: Settings | None = None,
    ) -> None:
        self._db = session
        self._policy = policy
        self._settings = settings or get_settings()

    async def get_transaction(self, actor: Actor, transaction_id: UUID) -> PointTransaction:
        self._policy.require(actor, Capability.AUDIT_LEDGER)
        transaction = await self._db.get(PointTransaction, transaction_id)
        if transaction is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return transaction

    async def list_transactions(self, actor: Actor, filters: TransactionFilters) -> TransactionPage:
        """Filtered, newest-first page of transactions."""

        self._policy.require(actor, Capability.AUDIT_LEDGER)
        return await self._page(filters)

    async def list_own_transactions(self, actor: Actor, filters: TransactionFilters) -> TransactionPage:
        """The actor's own rows; staff-only filters (owner, creator, suspicious) are ignored."""

        self._policy.require(actor, Capability.VIEW_OWN_LEDGER)
        own = TransactionFilters(
            user_id=actor.user_id,
            type=filters.type,
            related_id=filters.related_id,
            promotion_id=filters.promotion_id,
            amount=filters.amount,
            operator=filters.operator,
            page=filters.page,
            limit=filters.limit,
        )
        return await self._page(own)

    async def _page(self, filters: TransactionFilters) -> TransactionPage:
        limit = self._validate_paging(filters)

        stmt = self._apply_filters(select(PointTransaction), filters)
        count_stmt = self._apply_filters(select(func.count(PointTransaction.id)), filters)

        total = (await self._db.execute(count_stmt)).scalar_one()
        rows = await self._db.execute(
            stmt.order_by(PointTransaction.created_at.desc(), PointTransaction.id.desc())
            .offset((filters.page - 1) * limit)
            .limit(limit)
        )
        results = list(rows.scalars().all())
        logger.debug("Listed transactions", count=total, page=filters.page, limit=limit)
        return TransactionPage(count=int(total), results=results)

    async def reconcile_user(self, actor: Actor, user_id: UUID) -> BalanceReconciliation:
        self._policy.require(actor, Capability.AUDIT_LEDGER)
        user = await self._db.get(User, user_id, populate_existing=True)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        stmt = select(PointTransaction).where(
            PointTransaction.user_id == user_id,
            PointTransaction.suspicious.is_(False),
        )
        transactions = (await self._db.execute(stmt)).scalars().all()
        ledger_points = sum(transaction.ledger_delta for transaction in transactions)

        reconciliation = BalanceReconciliation(
            user_id=user.id,
            stored_points=int(user.points or 0),
            ledger_points=ledger_points,
            transaction_count=len(transactions),
        )
        if not reconciliation.consistent:
            logger.warning(
                "Ledger balance drift detected",
                user_id=str(user_id),
                stored=reconciliation.stored_points,
                ledger=reconciliation.ledger_points,
            )
        return reconciliation

    def _validate_paging(self, filters: TransactionFilters) -> int:
        if filters.related_id is not None and filters.type is None:
            raise ValidationError("relatedId must be used together with type")
        if (filters.amount is None) != (filters.operator is None):
            raise ValidationError("amount and operator must be provided together")
        if filters.operator is not None and filters.operator not in ("gte", "lte"):
            raise ValidationError("operator must be 'gte' or 'lte'")
        if filters.page < 1:
            raise ValidationError("page must be a positive integer")
        max_page_size = self._settings.max_page_size
        limit = self._settings.default_page_size if filters.limit is None else filters.limit
        if limit < 1 or limit > max_page_size:
            raise ValidationError(f"limit must be between 1 and {max_page_size}")
        return limit

    @staticmethod
    def _apply_filters(stmt: Select, filters: TransactionFilters) -> Select:
        if filters.user_id is not None:
            stmt = stmt.where(PointTransaction.user_id == filters.user_id)
        if filters.created_by_id is not None:
            stmt = stmt.where(PointTransaction.created_by_id == filters.created_by_id)
        if filters.type is not None:
            stmt = stmt.where(PointTransaction.type == filters.type)
        if filters.related_id is not None:
            stmt = stmt.where(PointTransaction.related_id == filters.related_id)
        if filters.suspicious is not None:
            stmt = stmt.where(PointTransaction.suspicious.is_(filters.suspicious))
        if filters.promotion_id is not None:
            linked = select(TransactionPromotion.transaction_id).where(
                TransactionPromotion.promotion_id == filters.promotion_id
            )
            stmt = stmt.where(PointTransaction.id.in_(linked))
        if filters.amount is not None:
            if filters.operator == "gte":
                stmt = stmt.where(PointTransaction.amount >= filters.amount)
            else:
                stmt = stmt.where(PointTransaction.amount <= filters.amount)
        return stmt


__all__ = [
    "BalanceReconciliation",
    "TransactionFilters",
    "TransactionPage",
    "TransactionQueryService",
]
