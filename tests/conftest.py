import hashlib
import hmac
import json
import os
import time
from typing import Any, Dict, Generator

# Avant tout import de l'app: pas de Redis réel ni de rate limiting en tests
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")
os.environ.setdefault("USE_FAKE_REDIS_FOR_TESTS", "1")

import pytest
from fastapi.testclient import TestClient

from llc_backend import config
from llc_backend.app import app as fastapi_app
from llc_backend.errors import SessionNotFound
from llc_backend.payments import stripe_client
from llc_backend.payments.catalog import PricingCatalog, RecurringPrice, Interval, STATE_BASE, STATE_FILING_FEES, ONE_TIME

WEBHOOK_SECRET = "whsec_test_secret"

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "/tests/unit/" in nodeid or nodeid.startswith("tests/unit/"):
            item.add_marker(pytest.mark.unit)
        elif "/tests/integration/" in nodeid or nodeid.startswith("tests/integration/"):
            item.add_marker(pytest.mark.integration)

def make_catalog(ra: str = "price_ra_yearly", mail: str = "price_mail_monthly") -> PricingCatalog:
    return PricingCatalog(
        state_base=dict(STATE_BASE),
        state_filing=dict(STATE_FILING_FEES),
        one_time=dict(ONE_TIME),
        recurring={
            "ra": RecurringPrice(price_id=ra or None, interval=Interval.YEAR),
            "mail_forwarding": RecurringPrice(price_id=mail or None, interval=Interval.MONTH),
        },
    )

@pytest.fixture
def catalog() -> PricingCatalog:
    return make_catalog()

# Le catalogue par défaut des services et du health pointe vers les Price IDs de test
@pytest.fixture(autouse=True)
def _default_catalog(monkeypatch, catalog):
    monkeypatch.setattr("llc_backend.payments.service.get_catalog", lambda: catalog)
    monkeypatch.setattr("llc_backend.health.router.get_catalog", lambda: catalog)
    monkeypatch.setattr(config, "STRIPE_SECRET_KEY", "sk_test_dummy")
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    yield

class FakeStripe:
    """Remplace les fonctions de llc_backend.payments.stripe_client (aucun appel réseau)."""

    def __init__(self):
        self.customers: Dict[str, Dict[str, Any]] = {}
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.created_sessions: list = []
        self.created_subscriptions: list = []
        self.customer_lookups = 0
        self.subscription_error: Exception | None = None
        self.session_error: Exception | None = None

    def find_or_create_customer(self, email: str) -> Dict[str, Any]:
        self.customer_lookups += 1
        if email not in self.customers:
            self.customers[email] = {"id": f"cus_{len(self.customers) + 1}", "email": email}
        return self.customers[email]

    def create_session(self, **kwargs) -> Dict[str, Any]:
        if self.session_error:
            raise self.session_error
        self.created_sessions.append(kwargs)
        sid = f"cs_test_{len(self.created_sessions)}"
        return {"id": sid, "url": f"https://checkout.stripe.test/{sid}"}

    def get_session(self, session_id: str) -> Dict[str, Any]:
        if session_id not in self.sessions:
            raise SessionNotFound()
        return self.sessions[session_id]

    def create_subscription(self, *, customer: str, price_id: str) -> Dict[str, Any]:
        if self.subscription_error:
            raise self.subscription_error
        self.created_subscriptions.append({"customer": customer, "price_id": price_id})
        return {"id": f"sub_{len(self.created_subscriptions)}", "status": "incomplete"}

@pytest.fixture
def fake_stripe(monkeypatch) -> FakeStripe:
    fake = FakeStripe()
    for name in ("find_or_create_customer", "create_session", "get_session", "create_subscription"):
        monkeypatch.setattr(stripe_client, name, getattr(fake, name))
    return fake

@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """En-tête Stripe-Signature valide pour payload (schéma v1: HMAC-SHA256 de "t.payload")."""
    timestamp = int(timestamp if timestamp is not None else time.time())
    signature = hmac.new(secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"

def completed_event(session_id: str, deferred: str = "", customer: str = "cus_1", event_id: str = "evt_1") -> str:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "customer": customer,
                "mode": "subscription",
                "status": "complete",
                "metadata": {"customer_id": "c-1", "entity_id": "e-1", "state": "FL", "add_ons": "{}", "deferred": deferred},
            }
        },
    })
