"""Role hierarchy and the authenticated actor handed to the ledger engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from uuid import UUID


class Role(IntEnum):
    """Totally ordered campus roles; a higher value includes every lower privilege."""

    REGULAR = 1
    CASHIER = 2
    MANAGER = 3
    SUPERUSER = 4

    @property
    def label(self) -> str:
        return self.name.lower()

    def at_least(self, other: "Role") -> bool:
        return self >= other

    @classmethod
    def parse(cls, value: "Role | str | int") -> "Role":
        if isinstance(value, Role):
            return value
        if isinstance(value, int):
            return cls(value)
        try:
            return cls[str(value).strip().upper()]
        except KeyError as exc:
            raise ValueError(f"Unknown role: {value!r}") from exc


@dataclass(frozen=True, slots=True)
class Actor:
    """Authenticated caller resolved by the authorization layer."""

    user_id: UUID
    role: Role

    def has_role(self, floor: Role) -> bool:
        return self.role.at_least(floor)
