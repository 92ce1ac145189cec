"""Staff-facing transaction endpoints: purchases, adjustments and ledger review."""

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
    ProcessedUpdate,
    SuspiciousUpdate,
    TransactionCreate,
    TransactionListResponse,
    TransactionResponse,
)
from campus_points.services.ledger import LedgerService, TransactionFilters, ValidationError


router = APIRouter(prefix="/transactions", tags=["Transactions"])


@router.post("", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def create_transaction(
    payload: TransactionCreate,
    actor: Actor = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> TransactionResponse:
    """Record a purchase (cashier) or an adjustment (manager)."""

    service = LedgerService(db)
    if payload.type == "purchase":
        transaction = await service.record_purchase(
            actor,
            payload.user_id,
            payload.spent,
            promotion_ids=payload.promotion_ids,
            remark=payload.remark,
        )
    else:
        transaction = await service.record_adjustment(
            actor,
            payload.user_id,
            payload.amount,
            payload.related_id,
            promotion_ids=payload.promotion_ids,
            remark=payload.remark,
        )
    return TransactionResponse.model_validate(transaction)


@router.get("", response_model=TransactionListResponse)
async def list_transactions(
    user_id: Optional[UUID] = Query(None, alias="userId"),
    created_by: Optional[UUID] = Query(None, alias="createdBy"),
    transaction_type: Optional[TransactionType] = Query(None, alias="type"),
    related_id: Optional[UUID] = Query(None, alias="relatedId"),
    promotion_id: Optional[UUID] = Query(None, alias="promotionId"),
    suspicious: Optional[bool] = Query(None),
    amount: Optional[int] = Query(None),
    operator: Optional[Literal["gte", "lte"]] = Query(None),
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    actor: Actor = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> TransactionListResponse:
    filters = TransactionFilters(
        user_id=user_id,
        created_by_id=created_by,
        type=transaction_type,
        related_id=related_id,
        promotion_id=promotion_id,
        suspicious=suspicious,
        amount=amount,
        operator=operator,
        page=page,
        limit=limit,
    )
    result = await LedgerService(db).list_transactions(actor, filters)
    return TransactionListResponse(
        count=result.count,
        results=[TransactionResponse.model_validate(row) for row in result.results],
    )


@router.get("/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    transaction_id: UUID,
    actor: Actor = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> TransactionResponse:
    transaction = await LedgerService(db).get_transaction(actor, transaction_id)
    return TransactionResponse.model_validate(transaction)


@router.patch("/{transaction_id}/suspicious", response_model=TransactionResponse)
async def update_suspicious(
    transaction_id: UUID,
    payload: SuspiciousUpdate,
    actor: Actor = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> TransactionResponse:
    """Flag or clear a transaction, reversing or restoring its balance effect."""

    transaction = await LedgerService(db).set_suspicious(actor, transaction_id, payload.suspicious)
    return TransactionResponse.model_validate(transaction)


@router.patch("/{transaction_id}/processed", response_model=TransactionResponse)
async def process_redemption(
    transaction_id: UUID,
    payload: ProcessedUpdate,
    actor: Actor = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> TransactionResponse:
    if not payload.processed:
        raise ValidationError("processed can only be set to true")
    transaction = await LedgerService(db).process_redemption(actor, transaction_id)
    return TransactionResponse.model_validate(transaction)
