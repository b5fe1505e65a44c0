"""
HTTP tests for the plan, subscription and plan limit endpoints.

Checks the success and error envelopes as well as the pricing figures the
endpoints expose.
"""
from uuid import uuid4

import pytest


async def _subscribe(client, merchant, plan, **extra) -> dict:
    response = await client.post(
        "/v1/subscriptions",
        json={"merchant_id": str(merchant.id), "plan_id": str(plan.id), **extra},
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.mark.asyncio
async def test_health_endpoints(async_client):
    live = await async_client.get("/health")
    ready = await async_client.get("/health/ready")

    assert live.status_code == 200
    assert live.json()["status"] == "healthy"
    assert ready.status_code == 200
    assert ready.json()["checks"]["database"] == "connected"


@pytest.mark.asyncio
async def test_request_id_is_echoed(async_client):
    response = await async_client.get("/health", headers={"X-Request-ID": "req_test123"})

    assert response.headers["X-Request-ID"] == "req_test123"


@pytest.mark.asyncio
async def test_create_plan_returns_envelope(async_client, sample_plan_data):
    """
    Given: Valid plan data with a lowercase currency
    When: POST /v1/plans is called
    Then: The plan is returned in the success envelope with the currency normalized
    """
    response = await async_client.post("/v1/plans", json=sample_plan_data)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Plan created"
    assert body["data"]["name"] == "Pro"
    assert body["data"]["base_price"] == 29.99
    assert body["data"]["currency"] == "USD"
    assert body["data"]["limits"]["customers"] == -1


@pytest.mark.asyncio
async def test_create_plan_missing_name_returns_validation_envelope(async_client, sample_plan_data):
    sample_plan_data.pop("name")

    response = await async_client.post("/v1/plans", json=sample_plan_data)

    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "VALIDATION_ERROR"
    assert body["request_id"]
    assert body["details"][0]["code"] == "MISSING_REQUIRED_FIELD"
    assert body["details"][0]["field"] == "body.name"


@pytest.mark.asyncio
async def test_list_update_and_deactivate_plan(async_client, test_plan, test_plan_premium):
    listing = await async_client.get("/v1/plans")
    assert listing.status_code == 200
    assert [item["name"] for item in listing.json()["data"]["items"]] == ["Basic", "Premium"]

    updated = await async_client.patch(f"/v1/plans/{test_plan.id}", json={"base_price": 34.99})
    assert updated.status_code == 200
    assert updated.json()["data"]["base_price"] == 34.99

    deactivated = await async_client.delete(f"/v1/plans/{test_plan.id}")
    assert deactivated.status_code == 200
    assert deactivated.json()["data"]["is_active"] is False

    active = await async_client.get("/v1/plans")
    assert [item["name"] for item in active.json()["data"]["items"]] == ["Premium"]


@pytest.mark.asyncio
async def test_unknown_plan_returns_not_found_envelope(async_client):
    response = await async_client.get(f"/v1/plans/{uuid4()}")

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "PLAN_NOT_FOUND"


@pytest.mark.asyncio
async def test_plan_pricing_quarterly(async_client, test_plan):
    """
    Given: The 29.99 Basic plan
    When: Its quarterly pricing is requested by alias
    Then: The breakdown shows the 5% discounted 85.47
    """
    response = await async_client.get(f"/v1/plans/{test_plan.id}/pricing", params={"billing_interval": "quarterly"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["billing_interval"] == "quarter"
    assert data["total_price"] == 89.97
    assert data["final_price"] == 85.47
    assert data["discount"] == 5.0
    assert data["discount_amount"] == 4.5
    assert data["monthly_equivalent"] == 28.49


@pytest.mark.asyncio
async def test_plan_pricing_unknown_interval(async_client, test_plan):
    response = await async_client.get(f"/v1/plans/{test_plan.id}/pricing", params={"billing_interval": "weekly"})

    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_plan_pricing_options(async_client, test_plan):
    response = await async_client.get(f"/v1/plans/{test_plan.id}/pricing/options")

    assert response.status_code == 200
    data = response.json()["data"]
    assert set(data) == {"month", "quarter", "semiAnnual", "year"}
    assert data["year"]["final_price"] == 287.9


@pytest.mark.asyncio
async def test_compare_plans(async_client, test_plan, test_plan_premium):
    response = await async_client.get(
        "/v1/plans/compare",
        params={"plan_a": str(test_plan.id), "plan_b": str(test_plan_premium.id), "billing_interval": "month"},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["difference"] == 69.01
    assert data["savings"] == 69.01


@pytest.mark.asyncio
async def test_create_and_get_subscription(async_client, test_merchant, test_plan):
    created = await _subscribe(async_client, test_merchant, test_plan, billing_interval="yearly")

    assert created["status"] == "active"
    assert created["billing_interval"] == "year"
    assert created["amount"] == 287.9

    response = await async_client.get(f"/v1/subscriptions/{created['id']}")
    assert response.status_code == 200
    assert response.json()["data"]["merchant_id"] == str(test_merchant.id)


@pytest.mark.asyncio
async def test_duplicate_subscription_conflicts(async_client, test_merchant, test_plan):
    await _subscribe(async_client, test_merchant, test_plan)

    response = await async_client.post(
        "/v1/subscriptions",
        json={"merchant_id": str(test_merchant.id), "plan_id": str(test_plan.id)},
    )

    assert response.status_code == 409
    assert response.json()["error"] == "DUPLICATE_ENTRY"


@pytest.mark.asyncio
async def test_unknown_subscription_returns_not_found(async_client):
    response = await async_client.get(f"/v1/subscriptions/{uuid4()}")

    assert response.status_code == 404
    assert response.json()["error"] == "SUBSCRIPTION_NOT_FOUND"


@pytest.mark.asyncio
async def test_list_subscriptions_status_alias(async_client, test_merchant, test_plan_trial):
    await _subscribe(async_client, test_merchant, test_plan_trial)

    trialing = await async_client.get("/v1/subscriptions", params={"status": "trialing"})
    assert trialing.json()["data"]["total"] == 1

    bogus = await async_client.get("/v1/subscriptions", params={"status": "suspended"})
    assert bogus.status_code == 400


@pytest.mark.asyncio
async def test_change_plan_endpoint(async_client, test_merchant, test_plan, test_plan_premium):
    """
    Given: A monthly Basic subscription started on April 1st
    When: It is upgraded to Premium on April 16th
    Then: The prorated charge is returned with the updated subscription
    """
    subscription = await _subscribe(async_client, test_merchant, test_plan, start_date="2026-04-01T00:00:00")

    response = await async_client.post(
        f"/v1/subscriptions/{subscription['id']}/change-plan",
        json={"new_plan_id": str(test_plan_premium.id), "change_date": "2026-04-16T00:00:00"},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["charge_applied"] is True
    assert data["proration"]["charge_amount"] == 34.51
    assert data["subscription"]["plan_id"] == str(test_plan_premium.id)
    assert data["subscription"]["amount"] == 99.0


@pytest.mark.asyncio
async def test_proration_preview_with_interval_switch(async_client, test_merchant, test_plan):
    subscription = await _subscribe(async_client, test_merchant, test_plan, start_date="2026-04-01T00:00:00")

    response = await async_client.post(
        f"/v1/subscriptions/{subscription['id']}/proration-preview",
        json={
            "new_plan_id": str(test_plan.id),
            "billing_interval": "annual",
            "change_date": "2026-04-16T00:00:00",
        },
    )

    assert response.status_code == 200
    assert response.json()["data"]["charge_amount"] == 272.9

    unchanged = await async_client.get(f"/v1/subscriptions/{subscription['id']}")
    assert unchanged.json()["data"]["billing_interval"] == "month"


@pytest.mark.asyncio
async def test_cancel_then_illegal_transition(async_client, test_merchant, test_plan):
    subscription = await _subscribe(async_client, test_merchant, test_plan)

    cancelled = await async_client.post(f"/v1/subscriptions/{subscription['id']}/cancel", json={"immediate": True})
    assert cancelled.status_code == 200
    assert cancelled.json()["data"]["status"] == "cancelled"

    response = await async_client.post(f"/v1/subscriptions/{subscription['id']}/pause")
    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "INVALID_STATE_TRANSITION"
    assert body["remediation"]


@pytest.mark.asyncio
async def test_access_attention_and_period(async_client, test_merchant, test_plan_trial):
    subscription = await _subscribe(async_client, test_merchant, test_plan_trial)

    access = await async_client.get(f"/v1/subscriptions/{subscription['id']}/access")
    assert access.status_code == 200
    assert access.json()["data"]["is_valid"] is True
    assert access.json()["data"]["status"] == "trial"

    paid_only = await async_client.get(
        f"/v1/subscriptions/{subscription['id']}/access", params={"require_active": "true"}
    )
    assert paid_only.status_code == 200
    assert paid_only.json()["data"]["is_valid"] is False

    attention = await async_client.get(f"/v1/subscriptions/{subscription['id']}/attention")
    assert attention.json()["data"]["needs_attention"] is False

    period = await async_client.get(f"/v1/subscriptions/{subscription['id']}/period")
    assert period.json()["data"]["is_trial"] is True
    assert period.json()["data"]["days_remaining"] == 14


@pytest.mark.asyncio
async def test_plan_limit_endpoints(async_client, test_merchant, test_plan):
    await _subscribe(async_client, test_merchant, test_plan)

    info = await async_client.get(f"/v1/merchants/{test_merchant.id}/plan-limits")
    assert info.status_code == 200
    assert info.json()["data"]["limits"]["outlets"] == 1
    assert info.json()["data"]["is_unlimited"]["orders"] is True

    check = await async_client.get(f"/v1/merchants/{test_merchant.id}/plan-limits/outlets")
    assert check.json()["data"]["is_valid"] is True

    summary = await async_client.get(f"/v1/merchants/{test_merchant.id}/plan-limits/summary")
    assert len(summary.json()["data"]["usage"]) == 5

    suggestions = await async_client.get(f"/v1/merchants/{test_merchant.id}/plan-limits/suggestions")
    assert suggestions.json()["data"] == []

    unknown = await async_client.get(f"/v1/merchants/{test_merchant.id}/plan-limits/widgets")
    assert unknown.status_code == 400


@pytest.mark.asyncio
async def test_plan_limits_for_unknown_merchant(async_client):
    response = await async_client.get(f"/v1/merchants/{uuid4()}/plan-limits")

    assert response.status_code == 404
    assert response.json()["error"] == "MERCHANT_NOT_FOUND"
