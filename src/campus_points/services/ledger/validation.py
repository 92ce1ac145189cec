from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from campus_points.services.ledger.errors import ValidationError


_CENT = Decimal("0.01")

# Column limits: point amounts and balances are 32-bit integers, spent is NUMERIC(12, 2).
MAX_POINTS = 2**31 - 1
MAX_SPEND = Decimal("10000000000")


def positive_points(value: Any, *, field: str = "amount") -> int:
    points = _integer(value, field=field)
    if points <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return points


def nonzero_points(value: Any, *, field: str = "amount") -> int:
    points = _integer(value, field=field)
    if points == 0:
        raise ValidationError(f"{field} must be a non-zero integer")
    return points


def positive_spend(value: Any, *, field: str = "spent") -> Decimal:
    """Validate a spend and return it rounded half up to whole cents."""

    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{field} must be a number") from exc
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    if amount >= MAX_SPEND:
        raise ValidationError(f"{field} must be less than {MAX_SPEND}")
    cents = spend_for_storage(amount)
    if cents <= 0:
        raise ValidationError(f"{field} must be at least {_CENT}")
    if cents >= MAX_SPEND:
        raise ValidationError(f"{field} must be less than {MAX_SPEND}")
    return cents


def spend_for_storage(amount: Decimal) -> Decimal:
    return amount.quantize(_CENT, rounding=ROUND_HALF_UP)


def _integer(value: Any, *, field: str) -> int:
    if value is None:
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool) or not isinstance(value, (int, Decimal, float)):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, (Decimal, float)):
        try:
            whole = int(value)
        except (OverflowError, ValueError, InvalidOperation) as exc:
            raise ValidationError(f"{field} must be a finite integer") from exc
        if value != whole:
            raise ValidationError(f"{field} must be an integer")
    else:
        whole = int(value)
    if abs(whole) > MAX_POINTS:
        raise ValidationError(f"{field} must be between -{MAX_POINTS} and {MAX_POINTS}")
    return whole
