"""Capability checks injected into the ledger engine."""

from __future__ import annotations

from enum import Enum
from typing import Mapping

from loguru import logger

from campus_points.domain.roles import Actor, Role
from campus_points.services.ledger.errors import PermissionDeniedError


class Capability(str, Enum):
    RECORD_PURCHASE = "record_purchase"
    RECORD_ADJUSTMENT = "record_adjustment"
    TRANSFER_POINTS = "transfer_points"
    REQUEST_REDEMPTION = "request_redemption"
    PROCESS_REDEMPTION = "process_redemption"
    FLAG_SUSPICIOUS = "flag_suspicious"
    AWARD_EVENT_POINTS = "award_event_points"
    MANAGE_EVENT_ROSTER = "manage_event_roster"
    VIEW_OWN_LEDGER = "view_own_ledger"
    AUDIT_LEDGER = "audit_ledger"


DEFAULT_ROLE_FLOORS: dict[Capability, Role] = {
    Capability.RECORD_PURCHASE: Role.CASHIER,
    Capability.RECORD_ADJUSTMENT: Role.MANAGER,
    Capability.TRANSFER_POINTS: Role.REGULAR,
    Capability.REQUEST_REDEMPTION: Role.REGULAR,
    Capability.PROCESS_REDEMPTION: Role.CASHIER,
    Capability.FLAG_SUSPICIOUS: Role.MANAGER,
    Capability.AWARD_EVENT_POINTS: Role.MANAGER,
    Capability.MANAGE_EVENT_ROSTER: Role.MANAGER,
    Capability.VIEW_OWN_LEDGER: Role.REGULAR,
    Capability.AUDIT_LEDGER: Role.MANAGER,
}


class AccessPolicy:
    """Maps capabilities to role floors."""

    def __init__(self, floors: Mapping[Capability, Role] | None = None) -> None:
        self._floors = dict(DEFAULT_ROLE_FLOORS)
        if floors:
            self._floors.update(floors)

    def floor(self, capability: Capability) -> Role:
        return self._floors[capability]

    def allows(self, actor: Actor, capability: Capability) -> bool:
        return actor.has_role(self.floor(capability))

    def require(self, actor: Actor, capability: Capability, *, delegated: bool = False) -> None:
        """Raise unless the actor's role meets the floor.

        ``delegated`` lets a caller with a resource-level grant (an event organizer)
        through regardless of role.
        """

        if delegated or self.allows(actor, capability):
            return
        logger.warning(
            "Rejected ledger operation for insufficient role",
            actor_id=str(actor.user_id),
            role=actor.role.label,
            capability=capability.value,
        )
        raise PermissionDeniedError(
            f"{capability.value} requires role {self.floor(capability).label} or above"
        )


DEFAULT_POLICY = AccessPolicy()
