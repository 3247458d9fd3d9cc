# tests/conftest.py

"""
Pytest configuration and shared fixtures for testing.
"""

import hashlib
import hmac
import json
import time
from typing import Any, Dict, Generator, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from core.account_store import AccountStore, PRIMARY_CUSTOMER_FIELD
from core.config import settings
from core.subscription_reconciler import SubscriptionReconciler
from dependencies.auth import CurrentUser, get_current_user
from main import create_app
from routers.stripe_webhooks import get_reconciler
from routers.subscriptions import get_account_store

WEBHOOK_SECRET = "whsec_test_secret"
FREE_PRICE = "price_free_test"
BASIC_PRICE = "price_basic_test"
ELITE_PRICE = "price_elite_test"


# ------------------------------------------------------------------
# In-memory account store
# ------------------------------------------------------------------
class FakeAccountStore(AccountStore):
    """Dict-backed stand-in for the Supabase users table."""

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None, submissions: int = 0):
        super().__init__(client=None)
        self.rows: Dict[str, Dict[str, Any]] = {r["id"]: dict(r) for r in rows or []}
        self.updates: List[Tuple[str, Dict[str, Any]]] = []
        self.submission_count = submissions

    def get_account(self, owner_id):
        row = self.rows.get(owner_id)
        return dict(row) if row else None

    def find_owner_by_customer_id(self, customer_id, field=PRIMARY_CUSTOMER_FIELD):
        for row in self.rows.values():
            if row.get(field) == customer_id:
                return row["id"]
        return None

    def update_account(self, owner_id, fields):
        self.updates.append((owner_id, dict(fields)))
        self.rows[owner_id].update(fields)

    def count_submissions_since(self, athlete_uid, since):
        return self.submission_count


# ------------------------------------------------------------------
# Stripe payload builders
# ------------------------------------------------------------------
def make_subscription(
    sub_id: str = "sub_123",
    customer: str = "cus_123",
    status: str = "active",
    metadata: Optional[Dict[str, Any]] = None,
    price_id: Optional[str] = ELITE_PRICE,
    current_period_end: Optional[int] = 1767225600,
    cancel_at_period_end: bool = False,
) -> Dict[str, Any]:
    items = []
    if price_id:
        items.append({"id": "si_1", "price": {"id": price_id}})
    return {
        "id": sub_id,
        "object": "subscription",
        "customer": customer,
        "status": status,
        "metadata": metadata if metadata is not None else {},
        "items": {"object": "list", "data": items},
        "current_period_end": current_period_end,
        "cancel_at_period_end": cancel_at_period_end,
    }


def make_event(event_type: str, obj: Dict[str, Any], event_id: str = "evt_123") -> Dict[str, Any]:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header the way Stripe does."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode("utf-8") + payload
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def encode_event(event: Dict[str, Any]) -> bytes:
    return json.dumps(event).encode("utf-8")


# ------------------------------------------------------------------
# Fixtures
# ------------------------------------------------------------------
@pytest.fixture(autouse=True)
def stripe_settings(monkeypatch):
    """Known secrets and price ids for every test."""
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "STRIPE_ATHLETE_FREE_PRICE_ID", FREE_PRICE)
    monkeypatch.setattr(settings, "STRIPE_ATHLETE_BASIC_PRICE_ID", BASIC_PRICE)
    monkeypatch.setattr(settings, "STRIPE_ATHLETE_ELITE_PRICE_ID", ELITE_PRICE)


@pytest.fixture
def account_store() -> FakeAccountStore:
    """u1 never subscribed, u2 is elite, u3 only has the legacy customer column."""
    return FakeAccountStore(rows=[
        {"id": "u1", "email": "u1@example.com"},
        {
            "id": "u2",
            "email": "u2@example.com",
            "stripe_customer_id": "cus_u2",
            "stripe_subscription_id": "sub_u2",
            "subscription_tier": "elite",
            "subscription_status": "active",
            "max_video_submissions": -1,
            "has_ai_assistant": True,
            "has_coach_feed": True,
            "has_priority_queue": True,
            "max_coaches": -1,
        },
        {"id": "u3", "email": "u3@example.com", "billing_customer_id": "cus_legacy"},
    ])


@pytest.fixture
def stripe_subscriptions() -> Dict[str, Dict[str, Any]]:
    """Subscriptions returned by the fake Stripe retrieve call, keyed by id."""
    return {}


@pytest.fixture
def reconciler(account_store, stripe_subscriptions) -> SubscriptionReconciler:
    return SubscriptionReconciler(
        store=account_store,
        fetch_subscription=lambda sub_id: stripe_subscriptions[sub_id],
    )


@pytest.fixture(scope="function")
def app(reconciler, account_store):
    """Create a test FastAPI application instance wired to the fake store."""
    application = create_app()
    application.dependency_overrides[get_reconciler] = lambda: reconciler
    application.dependency_overrides[get_account_store] = lambda: account_store
    yield application
    application.dependency_overrides = {}


@pytest.fixture(scope="function")
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI application."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def mock_athlete_user():
    return CurrentUser(id="u1", email="u1@example.com", role="athlete")


@pytest.fixture
def mock_admin_user():
    return CurrentUser(id="admin-1", email="admin@example.com", role="admin")


@pytest.fixture
def login_as(app):
    """Pretend auth already succeeded as the given user."""
    def _login(user: CurrentUser):
        app.dependency_overrides[get_current_user] = lambda: user
    return _login
