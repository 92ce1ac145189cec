from decimal import Decimal
from uuid import uuid4

import pytest

from campus_points.domain.roles import Role
from campus_points.models import PointTransaction, RedemptionState, TransactionType
from campus_points.services.ledger import (
    LedgerService,
    NotFoundError,
    PermissionDeniedError,
    PreconditionFailedError,
    RedemptionStateMachine,
)

from conftest import actor_for


def test_redemption_transitions_only_forward() -> None:
    assert RedemptionStateMachine.can_transition(RedemptionState.REQUESTED, RedemptionState.PROCESSED)
    assert not RedemptionStateMachine.can_transition(RedemptionState.PROCESSED, RedemptionState.PROCESSED)
    assert not RedemptionStateMachine.can_transition(RedemptionState.PROCESSED, RedemptionState.REQUESTED)


@pytest.mark.asyncio
async def test_request_leaves_balance_until_processed(session_factory, seed) -> None:
    member = await seed.user(points=80)
    cashier = await seed.user(Role.CASHIER)

    async with session_factory() as session:
        request = await LedgerService(session).request_redemption(actor_for(member), 30, remark="mug")

    assert request.type == TransactionType.REDEMPTION
    assert request.amount == 30
    assert request.processed_by_id is None
    assert request.redemption_state == RedemptionState.REQUESTED
    assert request.ledger_delta == 0
    assert await seed.balance(member) == 80

    async with session_factory() as session:
        processed = await LedgerService(session).process_redemption(actor_for(cashier), request.id)

    assert processed.processed_by_id == cashier.id
    assert processed.processed_at is not None
    assert processed.redemption_state == RedemptionState.PROCESSED
    assert await seed.balance(member) == 50


@pytest.mark.asyncio
async def test_redemption_race_is_resolved_at_processing(session_factory, seed) -> None:
    member = await seed.user(points=50)
    cashier = await seed.user(Role.CASHIER)

    async with session_factory() as session:
        service = LedgerService(session)
        first = await service.request_redemption(actor_for(member), 50)
        second = await service.request_redemption(actor_for(member), 50)

    assert first.redemption_state == second.redemption_state == RedemptionState.REQUESTED

    async with session_factory() as session:
        await LedgerService(session).process_redemption(actor_for(cashier), first.id)
    assert await seed.balance(member) == 0

    async with session_factory() as session:
        with pytest.raises(PreconditionFailedError):
            await LedgerService(session).process_redemption(actor_for(cashier), second.id)

    assert await seed.balance(member) == 0
    unprocessed = await seed.fetch(PointTransaction, second.id)
    assert unprocessed.processed_by_id is None


@pytest.mark.asyncio
async def test_processed_redemption_cannot_be_processed_again(session_factory, seed) -> None:
    member = await seed.user(points=40)
    cashier = await seed.user(Role.CASHIER)

    async with session_factory() as session:
        request = await LedgerService(session).request_redemption(actor_for(member), 10)
    async with session_factory() as session:
        await LedgerService(session).process_redemption(actor_for(cashier), request.id)

    async with session_factory() as session:
        with pytest.raises(PreconditionFailedError):
            await LedgerService(session).process_redemption(actor_for(cashier), request.id)

    assert await seed.balance(member) == 30


@pytest.mark.asyncio
async def test_request_preconditions(session_factory, seed) -> None:
    unverified = await seed.user(points=100, verified=False)
    poor = await seed.user(points=5)

    async with session_factory() as session:
        service = LedgerService(session)
        with pytest.raises(PreconditionFailedError):
            await service.request_redemption(actor_for(unverified), 10)
        with pytest.raises(PreconditionFailedError):
            await service.request_redemption(actor_for(poor), 6)


@pytest.mark.asyncio
async def test_process_rejects_unknown_non_redemption_and_low_roles(session_factory, seed) -> None:
    member = await seed.user(points=20)
    cashier = await seed.user(Role.CASHIER)
    customer = await seed.user()

    async with session_factory() as session:
        service = LedgerService(session)
        purchase = await service.record_purchase(actor_for(cashier), customer.id, Decimal("1.00"))
        request = await service.request_redemption(actor_for(member), 5)
        purchase_id, request_id = purchase.id, request.id

        with pytest.raises(NotFoundError):
            await service.process_redemption(actor_for(cashier), uuid4())
        with pytest.raises(PreconditionFailedError):
            await service.process_redemption(actor_for(cashier), purchase_id)
        with pytest.raises(PermissionDeniedError):
            await service.process_redemption(actor_for(member), request_id)

    assert await seed.balance(member) == 20
