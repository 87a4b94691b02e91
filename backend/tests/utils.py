from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from payment_service.errors import (
    InvalidSignatureError,
    PaymentProviderError,
    UpstreamNotFoundError,
    UpstreamServiceError,
)
from payment_service.schemas import PremiumPlan, SubscriptionRecord, UserRecord
from payment_service.services.reconciliation import ReconciliationContext

FIXED_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
VALID_SIGNATURE = "t=1,v1=valid"


class FakeBdd:
    def __init__(
        self,
        *,
        users: dict[str, dict[str, Any]] | None = None,
        premiums: dict[str, dict[str, Any]] | None = None,
        subscriptions: list[dict[str, Any]] | None = None,
        unavailable: bool = False,
    ) -> None:
        self.users = users or {}
        self.premiums = premiums or {}
        self.subscriptions = subscriptions or []
        self.unavailable = unavailable
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def calls_to(self, name: str) -> list[tuple[Any, ...]]:
        return [args for call, args in self.calls if call == name]

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if self.unavailable:
            raise UpstreamServiceError("Service BDD non disponible")

    async def get_user(self, user_id: str) -> UserRecord:
        self._record("get_user", user_id)
        if user_id not in self.users:
            raise UpstreamNotFoundError(f"Utilisateur non trouvé : {user_id}")
        return UserRecord.model_validate(self.users[user_id])

    async def get_premium(self, premium_id: str) -> PremiumPlan:
        self._record("get_premium", premium_id)
        if premium_id not in self.premiums:
            raise UpstreamNotFoundError(f"Premium non trouvé : {premium_id}")
        return PremiumPlan.model_validate(self.premiums[premium_id])

    async def create_subscription(self, data: dict[str, Any]) -> SubscriptionRecord:
        self._record("create_subscription", data)
        return SubscriptionRecord.model_validate({"id": "sub_local_new", **data})

    async def replace_subscription(self, subscription_id: str, data: dict[str, Any]) -> SubscriptionRecord:
        self._record("replace_subscription", subscription_id, data)
        return SubscriptionRecord.model_validate({"id": subscription_id, **data})

    async def update_subscription(self, subscription_id: str, fields: dict[str, Any]) -> None:
        self._record("update_subscription", subscription_id, fields)

    async def renew_subscription(self, subscription_id: str, *, duration: int) -> None:
        self._record("renew_subscription", subscription_id, duration)

    async def cancel_subscription(self, subscription_id: str) -> None:
        self._record("cancel_subscription", subscription_id)

    async def search_subscriptions(
        self,
        *,
        transaction_id: str | None = None,
        user_email: str | None = None,
        status: str | None = None,
    ) -> list[SubscriptionRecord]:
        self._record("search_subscriptions", transaction_id, user_email, status)
        matches = []
        for item in self.subscriptions:
            if transaction_id and item.get("transactionId") != transaction_id:
                continue
            if user_email and item.get("userEmail") != user_email:
                continue
            if status and item.get("status") != status:
                continue
            matches.append(SubscriptionRecord.model_validate(item))
        return matches

    async def find_subscription_by_transaction(self, transaction_id: str) -> SubscriptionRecord | None:
        matches = await self.search_subscriptions(transaction_id=transaction_id)
        return matches[0] if matches else None


class FakeMailer:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[dict[str, Any]] = []

    async def send_subscription_receipt(self, **kwargs: Any) -> None:
        self.sent.append(kwargs)
        if self.fail:
            raise UpstreamServiceError("Service Mailer non disponible")


class FakeGateway:
    def __init__(
        self,
        *,
        event: dict[str, Any] | None = None,
        session: dict[str, Any] | None = None,
        create_error: str | None = None,
        payment_intents: dict[str, dict[str, Any]] | None = None,
        sessions_by_intent: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        self.event = event or {}
        self.session = session or {"id": "cs_test_123", "url": "https://checkout.stripe.com/c/cs_test_123"}
        self.create_error = create_error
        self.payment_intents = payment_intents or {}
        self.sessions_by_intent = sessions_by_intent or {}
        self.created: list[dict[str, Any]] = []
        self.verified: list[str | None] = []
        self.intent_updates: list[tuple[str, dict[str, str]]] = []
        self.session_lookups: list[str] = []

    def construct_event(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        self.verified.append(signature)
        if signature != VALID_SIGNATURE:
            raise InvalidSignatureError("Webhook Error: No signatures found matching the expected signature")
        return self.event

    async def create_checkout_session(self, **params: Any) -> dict[str, Any]:
        self.created.append(params)
        if self.create_error:
            raise PaymentProviderError(self.create_error)
        return self.session

    async def retrieve_payment_intent(self, payment_intent_id: str) -> dict[str, Any]:
        return self.payment_intents.get(payment_intent_id, {"id": payment_intent_id, "metadata": {}})

    async def update_payment_intent_metadata(self, payment_intent_id: str, metadata: dict[str, str]) -> None:
        self.intent_updates.append((payment_intent_id, dict(metadata)))

    async def find_session_by_payment_intent(self, payment_intent_id: str) -> dict[str, Any] | None:
        self.session_lookups.append(payment_intent_id)
        return self.sessions_by_intent.get(payment_intent_id)


def make_context(
    bdd: FakeBdd | None = None,
    mailer: FakeMailer | None = None,
    gateway: FakeGateway | None = None,
) -> ReconciliationContext:
    return ReconciliationContext(
        bdd=bdd or FakeBdd(),  # type: ignore[arg-type]
        mailer=mailer or FakeMailer(),  # type: ignore[arg-type]
        gateway=gateway or FakeGateway(),  # type: ignore[arg-type]
        default_duration_days=30,
        renewal_duration_days=30,
        clock=lambda: FIXED_NOW,
    )


def stripe_event(event_type: str, data_object: dict[str, Any], event_id: str = "evt_test") -> dict[str, Any]:
    return {"id": event_id, "type": event_type, "data": {"object": data_object}}
