# tests/test_stripe_webhooks.py

"""
Tests for the Stripe webhook endpoint.
"""

from unittest.mock import patch

from fastapi.testclient import TestClient

from core.config import settings
from tests.conftest import (
    BASIC_PRICE,
    encode_event,
    make_event,
    make_subscription,
    sign_payload,
)


def post_event(client: TestClient, event: dict, signature: str = None):
    body = encode_event(event)
    headers = {"Content-Type": "application/json"}
    headers["stripe-signature"] = signature or sign_payload(body)
    return client.post("/webhooks/stripe", content=body, headers=headers)


def test_created_event_is_applied(client: TestClient, account_store):
    event = make_event(
        "customer.subscription.created",
        make_subscription(metadata={"firebaseUID": "u1", "tier": "elite"}),
    )

    response = post_event(client, event)

    assert response.status_code == 200
    assert response.json() == {"received": True}
    row = account_store.rows["u1"]
    assert row["subscription_tier"] == "elite"
    assert row["max_video_submissions"] == -1
    assert row["has_ai_assistant"] is True
    assert row["max_coaches"] == -1


def test_updated_event_resolves_tier_from_price(client: TestClient, account_store):
    event = make_event(
        "customer.subscription.updated",
        make_subscription(metadata={"firebaseUID": "u1"}, price_id=BASIC_PRICE),
    )

    response = post_event(client, event)

    assert response.status_code == 200
    assert account_store.rows["u1"]["subscription_tier"] == "basic"
    assert account_store.rows["u1"]["max_video_submissions"] == 2
    assert account_store.rows["u1"]["max_coaches"] == 3


def test_invalid_signature_rejected_without_writes(client: TestClient, account_store):
    event = make_event(
        "customer.subscription.deleted",
        make_subscription(customer="cus_u2", metadata={"firebaseUID": "u2"}),
    )
    body = encode_event(event)

    with patch("routers.stripe_webhooks.parse_event") as mock_parse:
        response = client.post(
            "/webhooks/stripe",
            content=body,
            headers={"stripe-signature": sign_payload(body, secret="whsec_wrong")},
        )

    assert response.status_code == 400
    assert response.json()["error"].startswith("Webhook Error")
    mock_parse.assert_not_called()
    assert account_store.updates == []
    assert account_store.rows["u2"]["subscription_tier"] == "elite"


def test_tampered_body_rejected(client: TestClient, account_store):
    event = make_event("customer.subscription.created", make_subscription(metadata={"firebaseUID": "u1"}))
    signature = sign_payload(encode_event(event))
    event["data"]["object"]["metadata"]["tier"] = "elite"

    response = post_event(client, event, signature=signature)

    assert response.status_code == 400
    assert account_store.updates == []


def test_missing_signature_header(client: TestClient, account_store):
    response = client.post("/webhooks/stripe", content=b"{}")

    assert response.status_code == 400
    assert response.json() == {"error": "Missing stripe-signature header"}
    assert account_store.updates == []


def test_unrecognised_event_type_is_acknowledged(client: TestClient, account_store):
    response = post_event(client, make_event("customer.created", {"id": "cus_1"}))

    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert account_store.updates == []


def test_unresolvable_owner_is_acknowledged(client: TestClient, account_store):
    event = make_event(
        "customer.subscription.updated",
        make_subscription(customer="cus_nobody", metadata={}),
    )

    response = post_event(client, event)

    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert account_store.updates == []


def test_payment_failed_via_webhook(client: TestClient, account_store, stripe_subscriptions):
    stripe_subscriptions["sub_u2"] = make_subscription(
        sub_id="sub_u2", customer="cus_u2", status="past_due", metadata={"firebaseUID": "u2"},
    )
    event = make_event("invoice.payment_failed", {"id": "in_1", "subscription": "sub_u2"})

    response = post_event(client, event)

    assert response.status_code == 200
    row = account_store.rows["u2"]
    assert row["subscription_status"] == "past_due"
    assert row["subscription_tier"] == "elite"
    assert row["max_video_submissions"] == -1


def test_store_failure_returns_500(client: TestClient, account_store):
    event = make_event(
        "customer.subscription.created",
        make_subscription(metadata={"firebaseUID": "u1", "tier": "basic"}),
    )

    with patch.object(account_store, "update_account", side_effect=RuntimeError("connection reset")):
        response = post_event(client, event)

    assert response.status_code == 500
    assert response.json() == {"error": "connection reset"}


def test_malformed_known_event_returns_500(client: TestClient, account_store):
    response = post_event(client, make_event("customer.subscription.created", {"id": "sub_1"}))

    assert response.status_code == 500
    assert "error" in response.json()
    assert account_store.updates == []


def test_missing_webhook_secret_is_server_error(client: TestClient, account_store, monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", None)

    response = post_event(client, make_event("customer.subscription.created", make_subscription()))

    assert response.status_code == 500
    assert response.json() == {"error": "Stripe webhook secret not configured"}
    assert account_store.updates == []
