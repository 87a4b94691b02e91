from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping

import sentry_sdk

from .. import metrics
from ..errors import InvalidSignatureError
from ..logging_context import set_event_context
from ..logging_utils import DEAD_LETTER_LOGGER
from . import reconciliation
from .reconciliation import ReconciliationContext

logger = logging.getLogger(__name__)
dead_letter_logger = logging.getLogger(DEAD_LETTER_LOGGER)

ACK: dict[str, bool] = {"received": True}


class StripeEventType(str, Enum):
    checkout_session_completed = "checkout.session.completed"
    charge_updated = "charge.updated"
    invoice_payment_succeeded = "invoice.payment_succeeded"
    invoice_payment_failed = "invoice.payment_failed"
    customer_subscription_deleted = "customer.subscription.deleted"
    customer_subscription_updated = "customer.subscription.updated"


EventHandler = Callable[[Mapping[str, Any], ReconciliationContext], Awaitable[None]]

EVENT_HANDLERS: dict[StripeEventType, EventHandler] = {
    StripeEventType.checkout_session_completed: reconciliation.handle_checkout_session_completed,
    StripeEventType.charge_updated: reconciliation.handle_charge_updated,
    StripeEventType.invoice_payment_succeeded: reconciliation.handle_invoice_payment_succeeded,
    StripeEventType.invoice_payment_failed: reconciliation.handle_invoice_payment_failed,
    StripeEventType.customer_subscription_deleted: reconciliation.handle_subscription_deleted,
    StripeEventType.customer_subscription_updated: reconciliation.handle_subscription_updated,
}

_unhandled = set(StripeEventType) - set(EVENT_HANDLERS)
if _unhandled:  # pragma: no cover - import-time guard
    raise RuntimeError(
        "Stripe event types without handler: "
        + ", ".join(sorted(member.value for member in _unhandled))
    )


def _sentry_enabled() -> bool:
    return sentry_sdk.get_client().is_active()


def _capture_exception(event_type: str | None, event_id: str | None, exc: Exception) -> None:
    if not _sentry_enabled():
        return
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("webhook.provider", "stripe")
        scope.set_tag("webhook.status", "failed")
        scope.set_tag("alert_kind", "webhook_failure")
        if event_type:
            scope.set_tag("webhook.event_type", event_type)
        if event_id:
            scope.set_tag("webhook.event_id", event_id)
        sentry_sdk.capture_exception(exc)


def _capture_rejection(reason: str) -> None:
    if not _sentry_enabled():
        return
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("webhook.provider", "stripe")
        scope.set_tag("webhook.status", "rejected")
        sentry_sdk.capture_message(f"Stripe webhook rejected: {reason}", level="warning")


def _record_dead_letter(event: Mapping[str, Any], exc: Exception) -> None:
    data_object = (event.get("data") or {}).get("object") or {}
    dead_letter_logger.error(
        "Stripe webhook handler failed",
        extra={
            "eventId": event.get("id"),
            "eventType": event.get("type"),
            "objectId": data_object.get("id") if isinstance(data_object, Mapping) else None,
            "errorType": type(exc).__name__,
            "error": getattr(exc, "detail", None) or str(exc),
        },
    )


async def dispatch_event(
    event: Mapping[str, Any], context: ReconciliationContext
) -> dict[str, bool]:
    """
    Route a verified Stripe event to its reconciliation handler.

    Unknown event types are acknowledged without action. Handler failures are
    logged, reported to Sentry and written to the dead-letter log; the event is
    still acknowledged so Stripe does not redeliver it.
    """
    event_id = event.get("id")
    raw_type = event.get("type")
    set_event_context(event_id, raw_type)
    logger.info("Webhook Stripe reçu : %s", raw_type)

    try:
        event_type = StripeEventType(raw_type)
    except ValueError:
        logger.info("Événement non traité : %s", raw_type)
        return ACK

    data_object = (event.get("data") or {}).get("object") or {}
    handler = EVENT_HANDLERS[event_type]
    try:
        await handler(data_object, context)
    except Exception as exc:
        metrics.stripe_webhook_failed_total.labels(event_type=event_type.value).inc()
        logger.exception("Erreur lors du traitement du webhook %s (%s)", event_type.value, event_id)
        _capture_exception(event_type.value, event_id, exc)
        _record_dead_letter(event, exc)
        return ACK

    metrics.stripe_webhook_processed_total.labels(event_type=event_type.value).inc()
    return ACK


async def handle_webhook(
    payload: bytes,
    signature: str | None,
    *,
    context: ReconciliationContext,
) -> dict[str, bool]:
    try:
        event = context.gateway.construct_event(payload, signature)
    except InvalidSignatureError as exc:
        metrics.stripe_webhook_rejected_total.inc()
        logger.error("Webhook invalide : %s", exc.detail)
        _capture_rejection(exc.detail)
        raise
    return await dispatch_event(event, context)
