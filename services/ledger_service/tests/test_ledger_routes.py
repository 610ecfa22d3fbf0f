from __future__ import annotations

from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt

from services.ledger_service.app.dependencies import get_current_user_id
from services.ledger_service.app.settings import ledger_settings

ADMIN = {"x-test-user": "1"}
USER = {"x-test-user": "42"}


async def _deposit(client: AsyncClient, amount: str = "100.00") -> dict:
    response = await client.post(
        "/api/v1/ledger/deposits",
        json={"amount": amount, "currency": "USDT", "external_reference": "0xfeed", "proof_url": "https://proof"},
        headers=USER,
    )
    assert response.status_code == 201
    return response.json()


async def _confirm(client: AsyncClient, entry_id: int, status: str = "completed"):
    return await client.post(f"/api/v1/admin/entries/{entry_id}/status", json={"status": status}, headers=ADMIN)


@pytest.mark.asyncio
async def test_deposit_is_pending_until_admin_confirms(client):
    entry = await _deposit(client)
    assert entry["status"] == "pending"
    assert entry["kind"] == "deposit"
    assert entry["direction"] == "credit"
    assert entry["details"] == {"proof_url": "https://proof"}

    balance = await client.get("/api/v1/ledger/balance", headers=USER)
    assert Decimal(str(balance.json()["balance"])) == Decimal("0")

    confirmed = await _confirm(client, entry["id"])
    assert confirmed.status_code == 200
    body = confirmed.json()
    assert body["old_status"] == "pending"
    assert body["new_status"] == "completed"
    assert Decimal(str(body["delta"])) == Decimal("100.00")

    balance = await client.get("/api/v1/ledger/balance", headers=USER)
    assert balance.json()["user_id"] == 42
    assert Decimal(str(balance.json()["balance"])) == Decimal("100.00")


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["49.99", "10000.01"])
async def test_deposit_outside_bounds_is_rejected(client, amount):
    response = await client.post(
        "/api/v1/ledger/deposits", json={"amount": amount, "currency": "USDT"}, headers=USER
    )
    assert response.status_code == 422
    assert "between" in response.json()["error"]


@pytest.mark.asyncio
async def test_deposit_with_too_many_decimals_fails_validation(client):
    response = await client.post(
        "/api/v1/ledger/deposits", json={"amount": "75.001", "currency": "USDT"}, headers=USER
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_oversized_amounts_fail_validation(client):
    huge = "1" + "0" * 30
    purchase = await client.post(
        "/api/v1/ledger/purchases",
        json={"product_id": "sku-1", "product_name": "Yacht", "price": huge},
        headers=USER,
    )
    assert purchase.status_code == 422

    adjustment = await client.post("/api/v1/admin/users/42/adjustments", json={"amount": huge}, headers=ADMIN)
    assert adjustment.status_code == 422


@pytest.mark.asyncio
async def test_purchase_and_reversal_error_codes(client):
    entry = await _deposit(client)
    await _confirm(client, entry["id"])

    purchase = await client.post(
        "/api/v1/ledger/purchases",
        json={"product_id": "sku-1", "product_name": "Gift card", "price": "60.00"},
        headers=USER,
    )
    assert purchase.status_code == 201
    data = purchase.json()
    assert data["order_number"].startswith("ORD-")
    assert Decimal(str(data["balance"])) == Decimal("40.00")

    too_expensive = await client.post(
        "/api/v1/ledger/purchases",
        json={"product_id": "sku-2", "product_name": "Laptop", "price": "41.00"},
        headers=USER,
    )
    assert too_expensive.status_code == 409
    assert too_expensive.json()["error"] == "insufficient_funds"

    reversal = await _confirm(client, entry["id"], "failed")
    assert reversal.status_code == 409
    assert reversal.json()["error"] == "insufficient_balance_to_reverse"
    assert reversal.headers["x-request-id"]

    order = await client.get(f"/api/v1/ledger/orders/{data['order_id']}", headers=USER)
    assert order.status_code == 200
    assert order.json()["product_name"] == "Gift card"
    assert order.json()["ledger_entry_id"] == data["entry_id"]

    foreign = await client.get(f"/api/v1/ledger/orders/{data['order_id']}", headers={"x-test-user": "43"})
    assert foreign.status_code == 404
    assert foreign.json()["error"] == "order_not_found"


@pytest.mark.asyncio
async def test_admin_endpoints_require_admin(client):
    entry = await _deposit(client)

    denied = await client.post(
        f"/api/v1/admin/entries/{entry['id']}/status", json={"status": "completed"}, headers=USER
    )
    assert denied.status_code == 403
    assert denied.json()["error"] == "permission_denied"

    for path in ("/api/v1/admin/entries", "/api/v1/admin/orders", "/api/v1/admin/actions"):
        response = await client.get(path, headers=USER)
        assert response.status_code == 403

    missing = await client.post("/api/v1/admin/entries/9999/status", json={"status": "completed"}, headers=ADMIN)
    assert missing.status_code == 404
    assert missing.json()["error"] == "entry_not_found"

    bad_status = await client.post(
        f"/api/v1/admin/entries/{entry['id']}/status", json={"status": "refunded"}, headers=ADMIN
    )
    assert bad_status.status_code == 422


@pytest.mark.asyncio
async def test_admin_adjustment_order_cancel_and_audit_trail(client):
    adjust = await client.post(
        "/api/v1/admin/users/42/adjustments", json={"amount": "150.00", "note": "promo"}, headers=ADMIN
    )
    assert adjust.status_code == 200
    assert Decimal(str(adjust.json()["balance"])) == Decimal("150.00")

    purchase = await client.post(
        "/api/v1/ledger/purchases",
        json={"product_id": "sku-9", "product_name": "Keyboard", "price": "50.00"},
        headers=USER,
    )
    order_id = purchase.json()["order_id"]

    cancel = await client.post(f"/api/v1/admin/orders/{order_id}/status", json={"status": "cancelled"}, headers=ADMIN)
    assert cancel.status_code == 200
    body = cancel.json()
    assert body["order"]["status"] == "cancelled"
    assert Decimal(str(body["refund"]["delta"])) == Decimal("50.00")

    reopen = await client.post(f"/api/v1/admin/orders/{order_id}/status", json={"status": "processing"}, headers=ADMIN)
    assert reopen.status_code == 409

    balance = await client.get("/api/v1/ledger/balance", headers=USER)
    assert Decimal(str(balance.json()["balance"])) == Decimal("150.00")

    actions = await client.get("/api/v1/admin/actions", headers=ADMIN)
    assert actions.status_code == 200
    types = [a["action_type"] for a in actions.json()["actions"]]
    assert types == ["update_order_status", "refund_purchase", "adjust_balance"]

    orders = await client.get("/api/v1/admin/orders", params={"user_id": 42}, headers=ADMIN)
    assert [o["id"] for o in orders.json()["orders"]] == [order_id]


@pytest.mark.asyncio
async def test_role_grant_and_revoke(client):
    grant = await client.post("/api/v1/admin/users/7/roles", json={"role": "admin"}, headers=ADMIN)
    assert grant.status_code == 200
    assert grant.json() == {"user_id": 7, "role": "admin", "changed": True}

    as_new_admin = await client.get("/api/v1/admin/entries", headers={"x-test-user": "7"})
    assert as_new_admin.status_code == 200

    revoke = await client.delete("/api/v1/admin/users/7/roles/admin", headers=ADMIN)
    assert revoke.json()["changed"] is True

    after = await client.get("/api/v1/admin/entries", headers={"x-test-user": "7"})
    assert after.status_code == 403


@pytest.mark.asyncio
async def test_entries_paginate_and_filter(client):
    for amount in ("50.00", "60.00", "70.00"):
        await _deposit(client, amount)

    first = await client.get("/api/v1/ledger/entries", params={"limit": 2}, headers=USER)
    assert first.status_code == 200
    first_data = first.json()
    assert [Decimal(str(e["amount"])) for e in first_data["entries"]] == [Decimal("70.00"), Decimal("60.00")]
    cursor = first_data["next_cursor"]
    assert cursor is not None

    second = await client.get("/api/v1/ledger/entries", params={"limit": 2, "cursor": cursor}, headers=USER)
    second_data = second.json()
    assert len(second_data["entries"]) == 1
    assert second_data["next_cursor"] is None

    await _confirm(client, first_data["entries"][0]["id"])
    completed = await client.get("/api/v1/ledger/entries", params={"status": "completed"}, headers=USER)
    assert len(completed.json()["entries"]) == 1

    other_user = await client.get("/api/v1/ledger/entries", headers={"x-test-user": "43"})
    assert other_user.json()["entries"] == []


@pytest.mark.asyncio
async def test_balance_event_feed(client):
    entry = await _deposit(client, "80.00")
    await _confirm(client, entry["id"])

    feed = await client.get("/api/v1/ledger/events", headers=USER)
    events = feed.json()["events"]
    assert len(events) == 1
    assert events[0]["payload"]["balance"] == "80.00"

    after = await client.get("/api/v1/ledger/events", params={"after": feed.json()["next_cursor"]}, headers=USER)
    assert after.json() == {"events": [], "next_cursor": None}


@pytest.mark.asyncio
async def test_health_ready_and_metrics(client):
    health = await client.get("/api/v1/healthz")
    assert health.json() == {"status": "ok", "service": "ledger-service"}

    ready = await client.get("/api/v1/readyz")
    assert ready.status_code == 200

    metrics = await client.get("/api/v1/metrics")
    assert metrics.status_code == 200
    assert "ledger_transition_total" in metrics.text


@pytest.mark.asyncio
async def test_bearer_token_identifies_user(ledger_test_app):
    ledger_test_app.dependency_overrides.pop(get_current_user_id)
    settings = ledger_settings()

    def _token(scope: str, sub: str = "42") -> str:
        claims = {"sub": sub, "scope": scope, "aud": settings.jwt_audience, "iss": settings.jwt_issuer}
        return jwt.encode(claims, settings.secret_key, algorithm="HS256")

    transport = ASGITransport(app=ledger_test_app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        ok = await client.get("/api/v1/ledger/balance", headers={"Authorization": f"Bearer {_token('access')}"})
        assert ok.status_code == 200
        assert ok.json()["user_id"] == 42

        refresh = await client.get("/api/v1/ledger/balance", headers={"Authorization": f"Bearer {_token('refresh')}"})
        assert refresh.status_code == 401

        non_numeric = await client.get(
            "/api/v1/ledger/balance", headers={"Authorization": f"Bearer {_token('access', 'alice')}"}
        )
        assert non_numeric.status_code == 401

        missing = await client.get("/api/v1/ledger/balance")
        assert missing.status_code == 401
