"""Member-initiated ledger endpoints: redemptions, transfers and balance audits."""

from __future__ import annotations

from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from campus_points.api.dependencies.actor import require_actor
from campus_points.db.session import get_session
from campus_points.domain.roles import Actor
from campus_points.models.transaction import TransactionType
from campus_points.schemas.ledger import (
    BalanceReconciliationResponse,
    RedemptionCreate,
    TransactionListResponse,
    TransactionResponse,
    TransferCreate,
)
from campus_points.services.ledger import LedgerService, TransactionFilters


router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/me/transactions", response_model=TransactionListResponse)
async def list_my_transactions(
    transaction_type: Optional[TransactionType] = Query(None, alias="type"),
    related_id: Optional[UUID] = Query(None, alias="relatedId"),
    promotion_id: Optional[UUID] = Query(None, alias="promotionId"),
    amount: Optional[int] = Query(None),
    operator: Optional[Literal["gte", "lte"]] = Query(None),
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    actor: Actor = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> TransactionListResponse:
    """Newest-first page of the calling member's own transactions."""

    filters = TransactionFilters(
        type=transaction_type,
        related_id=related_id,
        promotion_id=promotion_id,
        amount=amount,
        operator=operator,
        page=page,
        limit=limit,
    )
    result = await LedgerService(db).list_own_transactions(actor, filters)
    return TransactionListResponse(
        count=result.count,
        results=[TransactionResponse.model_validate(row) for row in result.results],
    )


@router.post("/me/transactions", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def request_redemption(
    payload: RedemptionCreate,
    actor: Actor = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> TransactionResponse:
    """Open a redemption request for the calling member."""

    transaction = await LedgerService(db).request_redemption(actor, payload.amount, remark=payload.remark)
    return TransactionResponse.model_validate(transaction)


@router.post("/{user_id}/transactions", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def transfer_points(
    user_id: UUID,
    payload: TransferCreate,
    actor: Actor = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> TransactionResponse:
    """Transfer points from the calling member to ``user_id``; returns the sender's row."""

    result = await LedgerService(db).transfer_points(actor, user_id, payload.amount, remark=payload.remark)
    return TransactionResponse.model_validate(result.sent)


@router.get("/{user_id}/balance-reconciliation", response_model=BalanceReconciliationResponse)
async def reconcile_balance(
    user_id: UUID,
    actor: Actor = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> BalanceReconciliationResponse:
    reconciliation = await LedgerService(db).reconcile_user(actor, user_id)
    return BalanceReconciliationResponse.model_validate(reconciliation)
