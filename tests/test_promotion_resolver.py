from decimal import Decimal
from uuid import uuid4

import pytest

from campus_points.models import PromotionKind, UserPromotionUsage
from campus_points.services.ledger import NotFoundError, PreconditionFailedError, PromotionResolver
from campus_points.services.ledger.promotions import base_points, consume_one_time_promotions, round_points


def test_round_points_rounds_half_up() -> None:
    assert round_points(Decimal("2.5")) == 3
    assert round_points(Decimal("2.49")) == 2
    assert round_points(Decimal("0.5")) == 1


def test_base_points_uses_quarter_dollar_rate() -> None:
    assert base_points(Decimal("20.00"), 4) == 80
    assert base_points(Decimal("0.13"), 4) == 1
    assert base_points(Decimal("0.12"), 4) == 0


@pytest.mark.asyncio
async def test_automatic_promotion_applies_when_spend_meets_minimum(session_factory, seed) -> None:
    customer = await seed.user()
    promotion = await seed.promotion(rate="0.02", min_spending="10")

    async with session_factory() as session:
        resolver = PromotionResolver(session)
        resolved = await resolver.resolve(customer.id, spent=Decimal("20.00"))

    assert resolved.ids == [promotion.id]
    assert resolved.bonus_points(Decimal("20.00")) == 40


@pytest.mark.asyncio
async def test_automatic_promotion_skipped_below_minimum_or_outside_window(session_factory, seed) -> None:
    customer = await seed.user()
    await seed.promotion(rate="0.02", min_spending="50")
    await seed.promotion(points=10, starts_in_hours=2, ends_in_hours=5)
    await seed.promotion(points=10, starts_in_hours=-5, ends_in_hours=-1)

    async with session_factory() as session:
        resolved = await PromotionResolver(session).resolve(customer.id, spent=Decimal("20.00"))

    assert resolved.ids == []
    assert resolved.bonus_points(Decimal("20.00")) == 0


@pytest.mark.asyncio
async def test_automatic_promotions_ignored_without_spend(session_factory, seed) -> None:
    customer = await seed.user()
    await seed.promotion(points=15)

    async with session_factory() as session:
        resolved = await PromotionResolver(session).resolve(customer.id)

    assert resolved.ids == []


@pytest.mark.asyncio
async def test_resolved_set_orders_automatic_first_and_deduplicates(session_factory, seed) -> None:
    customer = await seed.user()
    automatic = await seed.promotion(points=5)
    explicit_a = await seed.promotion(PromotionKind.ONE_TIME, points=10)
    explicit_b = await seed.promotion(PromotionKind.ONE_TIME, points=20)

    async with session_factory() as session:
        resolved = await PromotionResolver(session).resolve(
            customer.id,
            spent=Decimal("1.00"),
            requested_ids=[explicit_b.id, automatic.id, explicit_a.id, explicit_b.id],
        )

    assert resolved.ids == [automatic.id, explicit_b.id, explicit_a.id]
    assert resolved.bonus_points(Decimal("1.00")) == 35
    assert [promotion.id for promotion in resolved.one_time] == [explicit_b.id, explicit_a.id]


@pytest.mark.asyncio
async def test_unknown_explicit_promotion_is_not_found(session_factory, seed) -> None:
    customer = await seed.user()

    async with session_factory() as session:
        with pytest.raises(NotFoundError):
            await PromotionResolver(session).resolve(customer.id, requested_ids=[uuid4()])


@pytest.mark.asyncio
async def test_expired_explicit_promotion_is_rejected_not_skipped(session_factory, seed) -> None:
    customer = await seed.user()
    expired = await seed.promotion(PromotionKind.ONE_TIME, points=10, starts_in_hours=-10, ends_in_hours=-2)

    async with session_factory() as session:
        with pytest.raises(PreconditionFailedError):
            await PromotionResolver(session).resolve(customer.id, requested_ids=[expired.id])


@pytest.mark.asyncio
async def test_consumed_one_time_promotion_is_rejected(session_factory, seed) -> None:
    customer = await seed.user()
    one_time = await seed.promotion(PromotionKind.ONE_TIME, points=10)

    async with session_factory() as session:
        consumed = await consume_one_time_promotions(session, customer.id, [one_time])
        await session.commit()
    assert [usage.used for usage in consumed] == [True]

    async with session_factory() as session:
        with pytest.raises(PreconditionFailedError):
            await PromotionResolver(session).resolve(customer.id, requested_ids=[one_time.id])


@pytest.mark.asyncio
async def test_consume_marks_existing_unused_row(session_factory, seed) -> None:
    customer = await seed.user()
    one_time = await seed.promotion(PromotionKind.ONE_TIME, points=10)

    async with session_factory() as session:
        session.add(UserPromotionUsage(user_id=customer.id, promotion_id=one_time.id, used=False))
        await session.commit()

    async with session_factory() as session:
        resolved = await PromotionResolver(session).resolve(customer.id, requested_ids=[one_time.id])
        usages = await consume_one_time_promotions(session, customer.id, resolved.promotions)
        await session.commit()

    assert len(usages) == 1
    assert usages[0].used is True
    assert usages[0].used_at is not None
