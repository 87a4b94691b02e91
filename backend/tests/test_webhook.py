import hashlib
import hmac
import json
import time
from datetime import timedelta

import pytest
import stripe

from payment_service.services import webhook_service
from payment_service.services.stripe_gateway import StripeGateway
from payment_service.services.webhook_service import EVENT_HANDLERS, StripeEventType

from .utils import (
    FIXED_NOW,
    VALID_SIGNATURE,
    FakeBdd,
    FakeGateway,
    FakeMailer,
    make_context,
    stripe_event,
)

pytestmark = pytest.mark.anyio("asyncio")


def _checkout_completed(duration="30"):
    return stripe_event(
        "checkout.session.completed",
        {
            "id": "cs_test_1",
            "payment_intent": "pi_123",
            "amount_total": 1200,
            "metadata": {
                "userId": "user-1",
                "premiumId": "gold",
                "duration": duration,
                "userEmail": "ana@example.com",
            },
        },
        event_id="evt_checkout",
    )


async def _post_webhook(async_client, event, signature=VALID_SIGNATURE):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["stripe-signature"] = signature
    return await async_client.post(
        "/api/pay/webhook", content=json.dumps(event).encode("utf-8"), headers=headers
    )


def test_every_event_type_has_a_handler():
    assert set(EVENT_HANDLERS) == set(StripeEventType)


async def test_webhook_rejects_invalid_signature(async_client, override_dependencies):
    bdd = FakeBdd()
    gateway = FakeGateway(event=_checkout_completed())
    override_dependencies(context=make_context(bdd=bdd, gateway=gateway))

    resp = await _post_webhook(async_client, _checkout_completed(), signature="t=1,v1=forged")

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["error"].startswith("Webhook Error:")
    assert bdd.calls == []


async def test_webhook_rejects_missing_signature_with_stripe_sdk(async_client, override_dependencies):
    bdd = FakeBdd()
    override_dependencies(bdd=bdd, mailer=FakeMailer())

    resp = await _post_webhook(async_client, _checkout_completed(), signature=None)

    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "Webhook Error: missing Stripe signature"}
    assert bdd.calls == []


async def test_webhook_signature_failure_from_stripe_sdk(
    async_client, override_dependencies, monkeypatch
):
    bdd = FakeBdd()
    override_dependencies(bdd=bdd, mailer=FakeMailer())

    def fake_construct_event(payload, sig_header, secret):
        raise stripe.SignatureVerificationError("No signatures found", sig_header)

    monkeypatch.setattr("stripe.Webhook.construct_event", fake_construct_event)

    resp = await _post_webhook(async_client, _checkout_completed(), signature="t=1,v1=bad")

    assert resp.status_code == 400
    assert "No signatures found" in resp.json()["error"]
    assert bdd.calls == []


async def test_checkout_completed_creates_active_subscription(
    async_client, override_dependencies, monkeypatch
):
    bdd = FakeBdd(
        users={"user-1": {"id": "user-1", "email": "ana@example.com"}},
        premiums={"gold": {"id": "gold", "title": "Gold", "tarif": "12"}},
    )
    gateway = FakeGateway()
    context = make_context(bdd=bdd, gateway=gateway)
    override_dependencies(context=context)
    event = _checkout_completed(duration="30")
    seen = {}

    def fake_construct_event(payload, sig_header, secret):
        seen["payload"] = payload
        seen["secret"] = secret
        return event

    monkeypatch.setattr("stripe.Webhook.construct_event", fake_construct_event)
    # The real gateway verifies the signature; the fake one still records Stripe writes.
    gateway.construct_event = StripeGateway(webhook_secret="whsec_test").construct_event

    resp = await _post_webhook(async_client, event)

    assert resp.status_code == 200, resp.text
    assert resp.json() == {"received": True}
    assert seen["secret"] == "whsec_test"
    assert json.loads(seen["payload"]) == event

    created = bdd.calls_to("create_subscription")
    assert len(created) == 1
    data = created[0][0]
    assert data["status"] == "active"
    assert data["userId"] == "user-1"
    assert data["premiumId"] == "gold"
    assert data["transactionId"] == "pi_123"
    assert data["amount"] == 12
    assert data["startDate"] == FIXED_NOW.isoformat()
    assert data["endDate"] == (FIXED_NOW + timedelta(days=30)).isoformat()
    assert gateway.intent_updates == [
        (
            "pi_123",
            {
                "subscriptionId": "sub_local_new",
                "subscriptionStatus": "active",
                "userId": "user-1",
                "premiumId": "gold",
                "userEmail": "ana@example.com",
            },
        )
    ]


async def test_subscription_updated_past_due_marks_inactive(async_client, override_dependencies):
    bdd = FakeBdd(
        subscriptions=[{"_id": "sub-9", "userId": "user-1", "transactionId": "sub_stripe_9"}]
    )
    event = stripe_event(
        "customer.subscription.updated", {"id": "sub_stripe_9", "status": "past_due"}
    )
    override_dependencies(context=make_context(bdd=bdd, gateway=FakeGateway(event=event)))

    resp = await _post_webhook(async_client, event)

    assert resp.status_code == 200
    assert resp.json() == {"received": True}
    assert bdd.calls_to("update_subscription") == [("sub-9", {"status": "inactive"})]


async def test_unknown_event_is_acknowledged_without_side_effects(
    async_client, override_dependencies
):
    bdd = FakeBdd()
    mailer = FakeMailer()
    event = stripe_event("customer.created", {"id": "cus_1"})
    override_dependencies(
        context=make_context(bdd=bdd, mailer=mailer, gateway=FakeGateway(event=event))
    )

    resp = await _post_webhook(async_client, event)

    assert resp.status_code == 200
    assert resp.json() == {"received": True}
    assert bdd.calls == []
    assert mailer.sent == []


async def test_handler_failure_is_acknowledged_and_dead_lettered(
    async_client, override_dependencies, log_storage
):
    bdd = FakeBdd(
        subscriptions=[{"_id": "sub-9", "userId": "user-1", "transactionId": "sub_stripe_9"}],
    )
    event = stripe_event("customer.subscription.deleted", {"id": "sub_stripe_9"}, event_id="evt_boom")

    async def failing_cancel(subscription_id):
        raise RuntimeError("BDD exploded")

    bdd.cancel_subscription = failing_cancel
    override_dependencies(context=make_context(bdd=bdd, gateway=FakeGateway(event=event)))

    resp = await _post_webhook(async_client, event)

    assert resp.status_code == 200
    assert resp.json() == {"received": True}

    letters = await async_client.get("/api/metrics/dead-letters")
    assert letters.status_code == 200
    entries = letters.json()
    assert len(entries) == 1
    assert entries[0]["eventId"] == "evt_boom"
    assert entries[0]["eventType"] == "customer.subscription.deleted"
    assert entries[0]["objectId"] == "sub_stripe_9"
    assert entries[0]["errorType"] == "RuntimeError"
    assert entries[0]["error"] == "BDD exploded"

    errors = (log_storage / "errors.log").read_text(encoding="utf-8").splitlines()
    assert any("customer.subscription.deleted" in line for line in errors)


async def test_dispatch_event_routes_each_type_to_its_handler(monkeypatch):
    called = []

    async def recorder(data_object, context):
        called.append(data_object["id"])

    monkeypatch.setitem(EVENT_HANDLERS, StripeEventType.invoice_payment_failed, recorder)

    ack = await webhook_service.dispatch_event(
        stripe_event("invoice.payment_failed", {"id": "in_1"}), make_context()
    )

    assert ack == {"received": True}
    assert called == ["in_1"]


def _stripe_signature(payload: bytes, secret: str) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.".encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


async def test_signed_checkout_completed_is_verified_by_stripe(async_client, override_dependencies):
    bdd = FakeBdd(
        users={"user-1": {"id": "user-1", "email": "ana@example.com"}},
        premiums={"gold": {"id": "gold", "title": "Gold", "tarif": "12"}},
    )
    gateway = FakeGateway()
    # Signature checking goes through the Stripe SDK; Stripe writes stay recorded.
    gateway.construct_event = StripeGateway(webhook_secret="whsec_signed").construct_event
    override_dependencies(context=make_context(bdd=bdd, gateway=gateway))
    event = {"object": "event", "api_version": "2024-06-20", **_checkout_completed()}
    payload = json.dumps(event).encode("utf-8")

    resp = await async_client.post(
        "/api/pay/webhook",
        content=payload,
        headers={
            "Content-Type": "application/json",
            "stripe-signature": _stripe_signature(payload, "whsec_signed"),
        },
    )

    assert resp.status_code == 200, resp.text
    assert resp.json() == {"received": True}
    data = bdd.calls_to("create_subscription")[0][0]
    assert data["transactionId"] == "pi_123"
    assert data["duration"] == 30
    assert gateway.intent_updates[0][0] == "pi_123"


async def test_payload_signed_with_another_secret_is_rejected(async_client, override_dependencies):
    bdd = FakeBdd()
    gateway = FakeGateway()
    gateway.construct_event = StripeGateway(webhook_secret="whsec_signed").construct_event
    override_dependencies(context=make_context(bdd=bdd, gateway=gateway))
    payload = json.dumps(_checkout_completed()).encode("utf-8")

    resp = await async_client.post(
        "/api/pay/webhook",
        content=payload,
        headers={"stripe-signature": _stripe_signature(payload, "whsec_other")},
    )

    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Webhook Error:")
    assert bdd.calls == []
