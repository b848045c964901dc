import uuid

from llc_backend import config
from llc_backend.errors import ProcessorError
from conftest import completed_event, sign_payload

WEBHOOK = "/api/v1/stripe/webhook"


def _post(client, payload, signature=None):
    headers = {"Content-Type": "application/json", "Stripe-Signature": signature or sign_payload(payload)}
    return client.post(WEBHOOK, content=payload.encode("utf-8"), headers=headers)


def _session_id():
    return f"cs_{uuid.uuid4().hex[:12]}"


def test_webhook_missing_secret(client, fake_stripe, monkeypatch):
    payload = completed_event(_session_id(), deferred="mail")
    signature = sign_payload(payload)
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", "")

    resp = _post(client, payload, signature)
    assert resp.status_code == 500
    assert resp.json() == {"detail": "Missing STRIPE_WEBHOOK_SECRET"}
    assert fake_stripe.created_subscriptions == []


def test_webhook_bad_signature(client, fake_stripe):
    payload = completed_event(_session_id(), deferred="mail")
    resp = _post(client, payload, sign_payload(payload, secret="whsec_other"))
    assert resp.status_code == 400
    assert resp.json()["detail"].startswith("Webhook Error")
    assert fake_stripe.created_subscriptions == []


def test_webhook_tampered_body(client, fake_stripe):
    payload = completed_event(_session_id(), deferred="mail")
    signature = sign_payload(payload)
    resp = _post(client, payload.replace('"mail"', '"ra"'), signature)
    assert resp.status_code == 400


def test_webhook_creates_deferred_subscription_once(client, fake_stripe):
    payload = completed_event(_session_id(), deferred="mail")

    first = _post(client, payload)
    assert first.status_code == 200
    assert first.json() == {"received": True, "status": "created", "subscription_id": "sub_1"}

    # Relivraison Stripe du même événement
    again = _post(client, payload)
    assert again.status_code == 200
    assert again.json()["status"] == "duplicate"
    assert fake_stripe.created_subscriptions == [{"customer": "cus_1", "price_id": "price_mail_monthly"}]


def test_webhook_failure_is_retried(client, fake_stripe):
    payload = completed_event(_session_id(), deferred="ra")
    fake_stripe.subscription_error = ProcessorError("Stripe injoignable", retryable=True)

    failed = _post(client, payload)
    assert failed.status_code == 500
    assert failed.json()["status"] == "create-failed"

    fake_stripe.subscription_error = None
    retried = _post(client, payload)
    assert retried.status_code == 200
    assert retried.json()["status"] == "created"
    assert fake_stripe.created_subscriptions == [{"customer": "cus_1", "price_id": "price_ra_yearly"}]


def test_webhook_without_deferred_subscription(client, fake_stripe):
    resp = _post(client, completed_event(_session_id(), deferred=""))
    assert resp.status_code == 200
    assert resp.json()["status"] == "no-op"
    assert fake_stripe.created_subscriptions == []


def test_webhook_ignores_other_events(client, fake_stripe):
    payload = completed_event(_session_id(), deferred="mail").replace("checkout.session.completed", "invoice.paid")
    resp = _post(client, payload)
    assert resp.status_code == 200
    assert resp.json() == {"received": True, "status": "ignored"}
    assert fake_stripe.created_subscriptions == []


def test_webhook_not_redirected_behind_http_proxy(client, fake_stripe):
    payload = completed_event(_session_id())
    headers = {"Stripe-Signature": sign_payload(payload), "x-forwarded-proto": "http"}
    resp = client.post(WEBHOOK, content=payload.encode("utf-8"), headers=headers, follow_redirects=False)
    assert resp.status_code == 200


def test_webhook_method_not_allowed(client):
    assert client.get(WEBHOOK).status_code == 405


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_health_stripe(client):
    data = client.get("/health/stripe").json()
    assert data["secret_key"] is True
    assert data["webhook_secret"] is True
    assert data["recurring_prices"] == {"ra": True, "mail_forwarding": True}
    assert data["states"] == ["CO", "DE", "FL", "NY", "WY"]
    assert data["ledger"] is True
    assert data["rate_limit"]["enabled"] is False
