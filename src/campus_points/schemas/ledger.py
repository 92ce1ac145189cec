from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from campus_points.models.transaction import RedemptionState, TransactionType

# meta: schema: points-ledger


class TransactionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: UUID
    user_id: UUID = Field(..., alias="userId")
    type: TransactionType
    amount: int
    spent: float | None = None
    related_id: UUID | None = Field(None, alias="relatedId")
    promotion_ids: list[UUID] = Field(default_factory=list, alias="promotionIds")
    suspicious: bool = False
    remark: str = ""
    created_by_id: UUID = Field(..., alias="createdBy")
    processed_by_id: UUID | None = Field(None, alias="processedBy")
    processed_at: datetime | None = Field(None, alias="processedAt")
    redemption_state: RedemptionState | None = Field(None, alias="redemptionState")
    created_at: datetime | None = Field(None, alias="createdAt")


class TransactionListResponse(BaseModel):
    count: int
    results: list[TransactionResponse]


class TransactionCreate(BaseModel):
    """Purchase or adjustment entered by staff."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["purchase", "adjustment"]
    user_id: UUID = Field(..., alias="userId", validation_alias=AliasChoices("userId", "user_id"))
    spent: float | None = None
    amount: int | None = None
    related_id: UUID | None = Field(None, alias="relatedId", validation_alias=AliasChoices("relatedId", "related_id"))
    promotion_ids: list[UUID] = Field(
        default_factory=list,
        alias="promotionIds",
        validation_alias=AliasChoices("promotionIds", "promotion_ids"),
    )
    remark: str | None = None


class TransferCreate(BaseModel):
    type: Literal["transfer"] = "transfer"
    amount: int
    remark: str | None = None


class RedemptionCreate(BaseModel):
    type: Literal["redemption"] = "redemption"
    amount: int
    remark: str | None = None


class EventAwardCreate(BaseModel):
    """Award to a single guest when ``recipientId`` is present, otherwise to every guest."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["event"] = "event"
    amount: int
    recipient_id: UUID | None = Field(
        None,
        alias="recipientId",
        validation_alias=AliasChoices("recipientId", "recipient_id"),
    )
    remark: str | None = None


class SuspiciousUpdate(BaseModel):
    suspicious: bool


class ProcessedUpdate(BaseModel):
    processed: bool


class RosterMemberCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: UUID = Field(..., alias="userId", validation_alias=AliasChoices("userId", "user_id"))


class RosterMemberResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    event_id: UUID = Field(..., alias="eventId")
    user_id: UUID = Field(..., alias="userId")
    created_at: datetime | None = Field(None, alias="createdAt")


class BalanceReconciliationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    user_id: UUID = Field(..., alias="userId")
    stored_points: int = Field(..., alias="storedPoints")
    ledger_points: int = Field(..., alias="ledgerPoints")
    transaction_count: int = Field(..., alias="transactionCount")
    drift: int
    consistent: bool
