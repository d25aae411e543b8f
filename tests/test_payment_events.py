import json
import time
from decimal import Decimal

import pytest

from followup.core.exceptions import InvalidSignatureError
from followup.services.payment_events import PaymentEvent, PaymentEventKind, verify_stripe_signature

from conftest import sign_stripe_payload

SECRET = "whsec_unit"


def _checkout_payload(**overrides):
    obj = {
        "id": "cs_test_b2",
        "object": "checkout.session",
        "amount_total": 2900,
        "currency": "eur",
        "customer": "cus_b2",
        "customer_details": {"email": "ana@acme-studio.com", "name": "Ana Novak"},
        "payment_intent": "pi_b2",
    }
    obj.update(overrides)
    return {"id": "evt_1", "type": "checkout.session.completed", "data": {"object": obj}}


def test_checkout_session_is_parsed():
    event = PaymentEvent.from_stripe(_checkout_payload())
    assert event.kind is PaymentEventKind.CHECKOUT_COMPLETED
    assert event.session_ref == "cs_test_b2"
    assert event.payment_intent_ref == "pi_b2"
    assert event.customer_ref == "cus_b2"
    assert event.customer_email == "ana@acme-studio.com"
    assert event.customer_name == "Ana Novak"
    assert event.amount_paid == Decimal("29")


def test_top_level_customer_email_wins():
    event = PaymentEvent.from_stripe(_checkout_payload(customer_email="billing@acme-studio.com"))
    assert event.customer_email == "billing@acme-studio.com"


def test_missing_email_is_preserved_as_none():
    event = PaymentEvent.from_stripe(_checkout_payload(customer_details={}))
    assert event.customer_email is None


@pytest.mark.parametrize(
    "event_type,kind",
    [
        ("payment_intent.succeeded", PaymentEventKind.PAYMENT_SUCCEEDED),
        ("payment_intent.payment_failed", PaymentEventKind.PAYMENT_FAILED),
        ("customer.subscription.created", PaymentEventKind.IGNORED),
        ("ignored", PaymentEventKind.IGNORED),
        (None, PaymentEventKind.IGNORED),
    ],
)
def test_event_kinds(event_type, kind):
    event = PaymentEvent.from_stripe({"type": event_type, "data": {"object": {"id": "pi_x"}}})
    assert event.kind is kind


def test_signature_round_trip():
    body = json.dumps(_checkout_payload()).encode()
    verify_stripe_signature(body, sign_stripe_payload(body, SECRET), SECRET, tolerance=300)


@pytest.mark.parametrize(
    "header",
    [None, "", "t=1700000000", "v1=abc", "t=notanumber,v1=abc"],
)
def test_malformed_headers_rejected(header):
    with pytest.raises(InvalidSignatureError):
        verify_stripe_signature(b"{}", header, SECRET)


def test_tampered_body_rejected():
    header = sign_stripe_payload(b'{"amount_total": 900}', SECRET)
    with pytest.raises(InvalidSignatureError):
        verify_stripe_signature(b'{"amount_total": 7900}', header, SECRET)


def test_wrong_secret_rejected():
    header = sign_stripe_payload(b"{}", "whsec_other")
    with pytest.raises(InvalidSignatureError):
        verify_stripe_signature(b"{}", header, SECRET)


def test_stale_timestamp_rejected():
    header = sign_stripe_payload(b"{}", SECRET, timestamp=int(time.time()) - 301)
    with pytest.raises(InvalidSignatureError):
        verify_stripe_signature(b"{}", header, SECRET, tolerance=300)


def test_non_utf8_payload_rejected():
    payload = b"\xff\xfe"
    with pytest.raises(InvalidSignatureError):
        verify_stripe_signature(payload, sign_stripe_payload(payload, SECRET), SECRET)


def test_any_matching_v1_signature_accepted():
    ts = int(time.time())
    good = sign_stripe_payload(b"{}", SECRET, timestamp=ts)
    header = f"t={ts},v1={'0' * 64},{good.split(',')[1]}"
    verify_stripe_signature(b"{}", header, SECRET)
