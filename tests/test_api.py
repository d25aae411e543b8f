import json

import pytest
from fastapi.testclient import TestClient

from followup.api.dependencies import get_generator, get_notifier
from followup.api.main import app
from followup.core.config import settings
from followup.core.exceptions import GeneratorFailure

from conftest import FakeGenerator, FakeNotifier, sign_stripe_payload

SUBMIT_BODY = {
    "name": "Ana Novak",
    "email": "ana@acme-studio.com",
    "business_type": "Web design studio",
    "language": "sk",
    "client_info": "Met Jana at the trade fair, she wants a new e-shop by spring.",
    "client_name": "Jana",
    "template_type": "meeting",
}


@pytest.fixture
def fakes():
    generator = FakeGenerator()
    notifier = FakeNotifier()
    app.dependency_overrides[get_generator] = lambda: generator
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield generator, notifier
    app.dependency_overrides.clear()


@pytest.fixture
def client(fakes):
    return TestClient(app)


def _stripe_post(client, payload):
    raw = json.dumps(payload).encode()
    return client.post(
        "/webhooks/stripe",
        content=raw,
        headers={
            "stripe-signature": sign_stripe_payload(raw, settings.STRIPE_WEBHOOK_SECRET),
            "content-type": "application/json",
        },
    )


def _checkout(session_ref="cs_live_1", amount_total=2900, email="ana@acme-studio.com"):
    return {
        "id": f"evt_{session_ref}",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_ref,
                "amount_total": amount_total,
                "customer": "cus_1",
                "customer_details": {"email": email, "name": "Ana Novak"},
                "payment_intent": "pi_1",
            }
        },
    }


def test_first_submission_uses_free_trial(client):
    resp = client.post("/submit", json=SUBMIT_BODY)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["status"] == "allowed"
    assert body["isFreeTrialUsed"] is True
    assert body["remainingCredits"] == 0
    assert body["submissionStatus"] == "completed"
    assert isinstance(body["submissionId"], int)
    assert "vygenerovaný" in body["message"]


def test_second_submission_requires_payment(client):
    client.post("/submit", json=SUBMIT_BODY)
    resp = client.post("/submit", json=SUBMIT_BODY)
    assert resp.status_code == 402, resp.text
    body = resp.json()
    assert body["status"] == "payment_required"
    assert body["remainingCredits"] == 0
    assert body["error"]["code"] == "ENT100"
    assert "submissionId" not in body or body["submissionId"] is None


@pytest.mark.parametrize(
    "missing",
    ["name", "email", "business_type", "language", "client_info"],
)
def test_missing_fields_rejected_before_ledger(client, missing):
    body = {k: v for k, v in SUBMIT_BODY.items() if k != missing}
    resp = client.post("/submit", json=body)
    assert resp.status_code == 422
    assert client.get("/accounts/ana@acme-studio.com/balance").status_code == 404


def test_generator_failure_is_502(client, fakes):
    generator, _ = fakes
    generator.error = GeneratorFailure("upstream 529")
    resp = client.post("/submit", json=SUBMIT_BODY)
    assert resp.status_code == 502
    assert resp.json()["error"]["code"] == "EXT300"
    assert resp.json()["error"]["details"]["submission_id"]


def test_webhook_credits_account_once(client):
    first = _stripe_post(client, _checkout())
    second = _stripe_post(client, _checkout())

    assert first.status_code == 200, first.text
    assert first.json() == {"received": True, "status": "credited", "balance": 10, "credits_granted": 10}
    assert second.json()["status"] == "duplicate"
    assert second.json()["balance"] == 10

    balance = client.get("/accounts/ana@acme-studio.com/balance").json()
    assert balance["credits"] == 10
    assert balance["free_trial_used"] is False

    ledger = client.get("/accounts/ana@acme-studio.com/ledger").json()
    assert [(e["kind"], e["delta"], e["balance_after"]) for e in ledger] == [("purchase", 10, 10)]


def test_webhook_rejects_bad_signature(client):
    raw = json.dumps(_checkout()).encode()
    resp = client.post("/webhooks/stripe", content=raw, headers={"stripe-signature": "t=1,v1=deadbeef"})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "PAY201"


def test_webhook_ignores_unrelated_events(client):
    resp = _stripe_post(client, {"id": "evt_x", "type": "customer.created", "data": {"object": {"id": "cus_1"}}})
    assert resp.status_code == 200
    assert resp.json()["status"] == "ignored"


def test_webhook_without_email_is_an_error(client):
    payload = _checkout()
    payload["data"]["object"]["customer_details"] = {}
    resp = _stripe_post(client, payload)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VAL002"


def test_purchase_then_paid_submission_with_failed_delivery(client, fakes):
    _, notifier = fakes
    client.post("/submit", json=SUBMIT_BODY)
    _stripe_post(client, _checkout(amount_total=900))

    notifier.succeed = False
    resp = client.post("/submit", json=SUBMIT_BODY)
    body = resp.json()
    assert resp.status_code == 200, resp.text
    assert body["submissionStatus"] == "email_failed"
    assert body["remainingCredits"] == 2
    assert "nepodarilo sa ho doručiť" in body["message"]
    assert "odoslaný" not in body["message"]

    ledger = client.get("/accounts/ana@acme-studio.com/ledger").json()
    assert [e["kind"] for e in ledger] == ["free_trial", "purchase", "usage"]
    assert ledger[-1]["balance_after"] == 2


def test_failed_delivery_message_is_localized(client, fakes):
    _, notifier = fakes
    notifier.succeed = False
    resp = client.post("/submit", json={**SUBMIT_BODY, "language": "en"})
    body = resp.json()
    assert body["submissionStatus"] == "email_failed"
    assert body["message"] == "Follow-up email has been generated, but we could not deliver it to your email."


def test_packages_listing(client):
    packages = client.get("/packages").json()
    assert [(p["package_type"], p["credits"]) for p in packages] == [
        ("starter", 3),
        ("business", 10),
        ("pro", 30),
    ]


def test_health_endpoints(client):
    assert client.get("/healthz").json() == {"status": "ok"}
    assert client.get("/live").json() == {"status": "alive"}
    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "ledger_entries_total" in metrics.text
