"""Points ledger engine."""

from .access import DEFAULT_POLICY, AccessPolicy, Capability
from .errors import (
    ConflictError,
    LedgerError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionFailedError,
    ValidationError,
)
from .event_awards import EventAwardService
from .ledger_service import LedgerService, TransferResult
from .promotions import PromotionResolver, ResolvedPromotions, consume_one_time_promotions
from .queries import BalanceReconciliation, TransactionFilters, TransactionPage, TransactionQueryService
from .redemptions import RedemptionStateMachine
from .suspicious import SuspiciousFlagService

__all__ = [
    "AccessPolicy",
    "BalanceReconciliation",
    "Capability",
    "ConflictError",
    "DEFAULT_POLICY",
    "EventAwardService",
    "LedgerError",
    "LedgerService",
    "NotFoundError",
    "PermissionDeniedError",
    "PreconditionFailedError",
    "PromotionResolver",
    "RedemptionStateMachine",
    "ResolvedPromotions",
    "SuspiciousFlagService",
    "TransactionFilters",
    "TransactionPage",
    "TransactionQueryService",
    "TransferResult",
    "ValidationError",
    "consume_one_time_promotions",
]
