from __future__ import annotations

import logging
from typing import Any, Mapping

import stripe
from starlette.concurrency import run_in_threadpool

from ..config import settings
from ..errors import InvalidSignatureError, PaymentConfigError, PaymentProviderError

logger = logging.getLogger(__name__)


def as_dict(obj: Any) -> dict[str, Any]:
    """Return a plain dict for a Stripe object (or mapping) so callers can use ``.get``."""
    if obj is None:
        return {}
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(obj, Mapping):
        return dict(obj)
    return {}


class StripeGateway:
    """Wraps the blocking Stripe SDK calls this service needs behind async methods."""

    def __init__(
        self,
        *,
        secret_key: str | None = None,
        webhook_secret: str | None = None,
    ) -> None:
        self._secret_key = secret_key if secret_key is not None else settings.stripe_secret_key
        self._webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.stripe_webhook_secret
        )

    def _require_stripe(self) -> None:
        if not self._secret_key:
            raise PaymentConfigError("Stripe secret key is missing")
        stripe.api_key = self._secret_key

    async def create_checkout_session(self, **params: Any) -> dict[str, Any]:
        self._require_stripe()
        try:
            session = await run_in_threadpool(lambda: stripe.checkout.Session.create(**params))
        except stripe.StripeError as exc:
            message = getattr(exc, "user_message", None) or str(exc)
            raise PaymentProviderError(message) from exc
        return as_dict(session)

    def construct_event(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        if not self._webhook_secret:
            raise PaymentConfigError("Stripe webhook secret missing")
        if not signature:
            raise InvalidSignatureError("Webhook Error: missing Stripe signature")
        try:
            event = stripe.Webhook.construct_event(
                payload=payload.decode("utf-8"),
                sig_header=signature,
                secret=self._webhook_secret,
            )
        except (ValueError, UnicodeDecodeError) as exc:
            logger.warning("Invalid Stripe payload: %s", exc)
            raise InvalidSignatureError(f"Webhook Error: {exc}") from exc
        except stripe.SignatureVerificationError as exc:
            logger.warning("Invalid Stripe signature: %s", exc)
            raise InvalidSignatureError(f"Webhook Error: {exc}") from exc
        return as_dict(event)

    async def retrieve_payment_intent(self, payment_intent_id: str) -> dict[str, Any]:
        self._require_stripe()
        try:
            intent = await run_in_threadpool(
                lambda: stripe.PaymentIntent.retrieve(payment_intent_id)
            )
        except stripe.StripeError as exc:
            raise PaymentProviderError(str(exc)) from exc
        return as_dict(intent)

    async def update_payment_intent_metadata(
        self, payment_intent_id: str, metadata: Mapping[str, str]
    ) -> None:
        self._require_stripe()
        try:
            await run_in_threadpool(
                lambda: stripe.PaymentIntent.modify(payment_intent_id, metadata=dict(metadata))
            )
        except stripe.StripeError as exc:
            raise PaymentProviderError(str(exc)) from exc

    async def find_session_by_payment_intent(
        self, payment_intent_id: str
    ) -> dict[str, Any] | None:
        self._require_stripe()
        try:
            sessions = await run_in_threadpool(
                lambda: stripe.checkout.Session.list(payment_intent=payment_intent_id, limit=1)
            )
        except stripe.StripeError as exc:
            raise PaymentProviderError(str(exc)) from exc
        data = as_dict(sessions).get("data")
        if isinstance(data, list) and data:
            return as_dict(data[0])
        return None
