from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from campus_points.api.errors import status_for
from campus_points.domain.roles import Role
from campus_points.services.ledger import ConflictError, PreconditionFailedError


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def _as(user) -> dict[str, str]:
    return {"X-Actor-Id": str(user.id)}


@pytest.mark.asyncio
async def test_cashier_records_purchase(app_with_db, seed) -> None:
    app, _ = app_with_db
    cashier = await seed.user(Role.CASHIER)
    customer = await seed.user()

    async with _client(app) as client:
        response = await client.post(
            "/api/v1/transactions",
            json={"type": "purchase", "userId": str(customer.id), "spent": 10.0, "remark": "coffee"},
            headers=_as(cashier),
        )

    assert response.status_code == 201
    body = response.json()
    assert body["type"] == "purchase"
    assert body["amount"] == 40
    assert body["spent"] == 10.0
    assert body["userId"] == str(customer.id)
    assert body["createdBy"] == str(cashier.id)
    assert body["promotionIds"] == []
    assert body["suspicious"] is False
    assert await seed.balance(customer) == 40


@pytest.mark.asyncio
async def test_engine_rejections_map_to_status_codes(app_with_db, seed) -> None:
    app, _ = app_with_db
    cashier = await seed.user(Role.CASHIER)
    member = await seed.user()

    async with _client(app) as client:
        forbidden = await client.post(
            "/api/v1/transactions",
            json={"type": "purchase", "userId": str(member.id), "spent": 5},
            headers=_as(member),
        )
        missing = await client.post(
            "/api/v1/transactions",
            json={"type": "purchase", "userId": str(uuid4()), "spent": 5},
            headers=_as(cashier),
        )
        invalid = await client.post(
            "/api/v1/transactions",
            json={"type": "purchase", "userId": str(member.id), "spent": -5},
            headers=_as(cashier),
        )
        broke = await client.post(
            "/api/v1/users/me/transactions",
            json={"type": "redemption", "amount": 10},
            headers=_as(member),
        )

    assert forbidden.status_code == 403
    assert forbidden.json()["code"] == "permission_denied"
    assert missing.status_code == 404
    assert missing.json()["code"] == "not_found"
    assert invalid.status_code == 400
    assert invalid.json()["code"] == "validation_error"
    assert broke.status_code == 400
    assert broke.json()["code"] == "precondition_failed"
    assert broke.json()["error"]


def test_conflicts_are_reported_as_409() -> None:
    assert status_for(ConflictError("raced")) == 409
    assert status_for(PreconditionFailedError("no")) == 400


@pytest.mark.asyncio
async def test_actor_header_is_required(app_with_db, seed) -> None:
    app, _ = app_with_db
    member = await seed.user()

    async with _client(app) as client:
        anonymous = await client.post("/api/v1/users/me/transactions", json={"amount": 1})
        garbled = await client.post(
            "/api/v1/users/me/transactions", json={"amount": 1}, headers={"X-Actor-Id": "not-a-uuid"}
        )
        unknown = await client.post(
            "/api/v1/users/me/transactions", json={"amount": 1}, headers={"X-Actor-Id": str(uuid4())}
        )

    assert anonymous.status_code == 401
    assert garbled.status_code == 400
    assert unknown.status_code == 401
    assert await seed.balance(member) == 0


@pytest.mark.asyncio
async def test_redemption_request_and_processing(app_with_db, seed) -> None:
    app, _ = app_with_db
    cashier = await seed.user(Role.CASHIER)
    member = await seed.user(points=50)

    async with _client(app) as client:
        requested = await client.post(
            "/api/v1/users/me/transactions",
            json={"type": "redemption", "amount": 20},
            headers=_as(member),
        )
        assert requested.status_code == 201
        redemption = requested.json()
        assert redemption["redemptionState"] == "requested"
        assert redemption["processedBy"] is None

        rejected = await client.patch(
            f"/api/v1/transactions/{redemption['id']}/processed",
            json={"processed": False},
            headers=_as(cashier),
        )
        processed = await client.patch(
            f"/api/v1/transactions/{redemption['id']}/processed",
            json={"processed": True},
            headers=_as(cashier),
        )
        again = await client.patch(
            f"/api/v1/transactions/{redemption['id']}/processed",
            json={"processed": True},
            headers=_as(cashier),
        )

    assert rejected.status_code == 400
    assert processed.status_code == 200
    assert processed.json()["redemptionState"] == "processed"
    assert processed.json()["processedBy"] == str(cashier.id)
    assert again.status_code == 400
    assert await seed.balance(member) == 30


@pytest.mark.asyncio
async def test_transfer_returns_sender_row(app_with_db, seed) -> None:
    app, _ = app_with_db
    sender = await seed.user(points=25)
    recipient = await seed.user()

    async with _client(app) as client:
        response = await client.post(
            f"/api/v1/users/{recipient.id}/transactions",
            json={"type": "transfer", "amount": 10, "remark": "lunch"},
            headers=_as(sender),
        )

    assert response.status_code == 201
    body = response.json()
    assert body["amount"] == -10
    assert body["userId"] == str(sender.id)
    assert body["relatedId"] == str(recipient.id)
    assert await seed.balance(sender) == 15
    assert await seed.balance(recipient) == 10


@pytest.mark.asyncio
async def test_manager_reviews_and_flags_transactions(app_with_db, seed) -> None:
    app, _ = app_with_db
    cashier = await seed.user(Role.CASHIER)
    manager = await seed.user(Role.MANAGER)
    customer = await seed.user()

    async with _client(app) as client:
        created = await client.post(
            "/api/v1/transactions",
            json={"type": "purchase", "userId": str(customer.id), "spent": 2.5},
            headers=_as(cashier),
        )
        transaction_id = created.json()["id"]

        flagged = await client.patch(
            f"/api/v1/transactions/{transaction_id}/suspicious",
            json={"suspicious": True},
            headers=_as(manager),
        )
        listing = await client.get(
            "/api/v1/transactions",
            params={"userId": str(customer.id), "suspicious": "true"},
            headers=_as(manager),
        )
        detail = await client.get(f"/api/v1/transactions/{transaction_id}", headers=_as(manager))
        audit = await client.get(
            f"/api/v1/users/{customer.id}/balance-reconciliation", headers=_as(manager)
        )
        denied = await client.get("/api/v1/transactions", headers=_as(cashier))
        bad_filter = await client.get(
            "/api/v1/transactions", params={"amount": 5}, headers=_as(manager)
        )

    assert flagged.status_code == 200
    assert flagged.json()["suspicious"] is True
    assert listing.status_code == 200
    assert listing.json()["count"] == 1
    assert listing.json()["results"][0]["id"] == transaction_id
    assert detail.json()["id"] == transaction_id
    assert audit.status_code == 200
    assert audit.json()["consistent"] is True
    assert audit.json()["storedPoints"] == 0
    assert denied.status_code == 403
    assert bad_filter.status_code == 400
    assert await seed.balance(customer) == 0


@pytest.mark.asyncio
async def test_event_roster_and_award_endpoints(app_with_db, seed) -> None:
    app, _ = app_with_db
    manager = await seed.user(Role.MANAGER)
    guest = await seed.user()
    event = await seed.event(total_points=30)

    async with _client(app) as client:
        added = await client.post(
            f"/api/v1/events/{event.id}/guests",
            json={"userId": str(guest.id)},
            headers=_as(manager),
        )
        duplicate = await client.post(
            f"/api/v1/events/{event.id}/guests",
            json={"userId": str(guest.id)},
            headers=_as(manager),
        )
        awarded = await client.post(
            f"/api/v1/events/{event.id}/transactions",
            json={"type": "event", "amount": 12},
            headers=_as(manager),
        )
        over_budget = await client.post(
            f"/api/v1/events/{event.id}/transactions",
            json={"amount": 20, "recipientId": str(guest.id)},
            headers=_as(manager),
        )
        removed = await client.delete(
            f"/api/v1/events/{event.id}/guests/{guest.id}", headers=_as(manager)
        )

    assert added.status_code == 201
    assert added.json()["eventId"] == str(event.id)
    assert duplicate.status_code == 409
    assert awarded.status_code == 201
    rows = awarded.json()
    assert [row["userId"] for row in rows] == [str(guest.id)]
    assert rows[0]["relatedId"] == str(event.id)
    assert over_budget.status_code == 400
    assert removed.status_code == 204
    assert await seed.balance(guest) == 12


@pytest.mark.asyncio
async def test_member_lists_own_transactions(app_with_db, seed) -> None:
    app, _ = app_with_db
    member = await seed.user(points=40)
    friend = await seed.user()

    async with _client(app) as client:
        await client.post(
            f"/api/v1/users/{friend.id}/transactions",
            json={"type": "transfer", "amount": 15},
            headers=_as(member),
        )
        await client.post(
            "/api/v1/users/me/transactions",
            json={"type": "redemption", "amount": 5},
            headers=_as(member),
        )
        listing = await client.get("/api/v1/users/me/transactions", headers=_as(member))
        transfers = await client.get(
            "/api/v1/users/me/transactions",
            params={"type": "transfer", "relatedId": str(friend.id)},
            headers=_as(member),
        )
        friend_view = await client.get("/api/v1/users/me/transactions", headers=_as(friend))
        bad_filter = await client.get(
            "/api/v1/users/me/transactions", params={"relatedId": str(friend.id)}, headers=_as(member)
        )

    assert listing.status_code == 200
    body = listing.json()
    assert body["count"] == 2
    assert [row["type"] for row in body["results"]] == ["redemption", "transfer"]
    assert {row["userId"] for row in body["results"]} == {str(member.id)}
    assert [row["amount"] for row in transfers.json()["results"]] == [-15]
    assert friend_view.json()["count"] == 1
    assert friend_view.json()["results"][0]["amount"] == 15
    assert bad_filter.status_code == 400


@pytest.mark.asyncio
async def test_oversized_spend_is_a_validation_error(app_with_db, seed) -> None:
    app, _ = app_with_db
    cashier = await seed.user(Role.CASHIER)
    customer = await seed.user()

    async with _client(app) as client:
        response = await client.post(
            "/api/v1/transactions",
            json={"type": "purchase", "userId": str(customer.id), "spent": 1e30},
            headers=_as(cashier),
        )

    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"
    assert await seed.balance(customer) == 0
