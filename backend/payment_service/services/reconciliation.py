from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Mapping

from ..config import settings
from ..errors import PaymentProviderError, PaymentServiceError, UpstreamNotFoundError
from ..schemas import SubscriptionRecord, SubscriptionStatus
from .bdd_client import BddClient
from .mailer_client import MailerClient
from .stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

DEFAULT_PLAN_LABEL = "Premium"
PAYMENT_METHOD_TAG = "credit_card"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ReconciliationContext:
    bdd: BddClient
    mailer: MailerClient
    gateway: StripeGateway
    default_duration_days: int = field(default_factory=lambda: settings.default_duration_days)
    renewal_duration_days: int = field(default_factory=lambda: settings.renewal_duration_days)
    clock: Callable[[], datetime] = _utcnow


def map_stripe_status(stripe_status: str | None) -> SubscriptionStatus:
    if stripe_status == "canceled":
        return SubscriptionStatus.cancelled
    if stripe_status == "past_due":
        return SubscriptionStatus.inactive
    return SubscriptionStatus.active


def _metadata(payload: Mapping[str, Any]) -> dict[str, Any]:
    metadata = payload.get("metadata")
    return dict(metadata) if isinstance(metadata, Mapping) else {}


def _reference_id(value: Any) -> str | None:
    # Stripe references are either an id string or an expanded object.
    if isinstance(value, str) and value:
        return value
    if isinstance(value, Mapping):
        ref = value.get("id")
        return ref if isinstance(ref, str) and ref else None
    return None


def _parse_duration(raw: Any, default: int) -> int:
    try:
        duration = int(str(raw).strip())
    except (TypeError, ValueError):
        return default
    return duration if duration > 0 else default


def _invoice_subscription_id(invoice: Mapping[str, Any]) -> str | None:
    subscription_id = _reference_id(invoice.get("subscription"))
    if subscription_id:
        return subscription_id
    # Newer Stripe API versions nest the reference under invoice.parent.
    parent = invoice.get("parent")
    if isinstance(parent, Mapping):
        details = parent.get("subscription_details")
        if isinstance(details, Mapping):
            return _reference_id(details.get("subscription"))
    return None


async def _find_by_transaction(transaction_id: str, ctx: ReconciliationContext) -> SubscriptionRecord | None:
    subscription = await ctx.bdd.find_subscription_by_transaction(transaction_id)
    if subscription is None:
        logger.info("No subscription matches transaction %s; nothing to do", transaction_id)
    return subscription


async def handle_checkout_session_completed(
    session: Mapping[str, Any], ctx: ReconciliationContext
) -> None:
    session_id = session.get("id")
    logger.info("Paiement complété. Session ID : %s", session_id)
    metadata = _metadata(session)
    user_id = metadata.get("userId")
    premium_id = metadata.get("premiumId")
    if not user_id or not premium_id:
        logger.error("Métadonnées manquantes dans la session Stripe %s", session_id)
        return

    try:
        await ctx.bdd.get_premium(str(premium_id))
    except UpstreamNotFoundError:
        logger.error("Premium non trouvé : %s", premium_id)
        return

    payment_intent = _reference_id(session.get("payment_intent"))
    transaction_id = payment_intent or session_id
    duration = _parse_duration(metadata.get("duration"), ctx.default_duration_days)
    start_date = ctx.clock()
    end_date = start_date + timedelta(days=duration)
    amount_total = session.get("amount_total") or 0

    try:
        user = await ctx.bdd.get_user(str(user_id))
        existing = user.subscription
    except UpstreamNotFoundError:
        existing = None

    if existing is not None and transaction_id and existing.transaction_id == transaction_id:
        logger.info(
            "Session %s already reconciled into subscription %s", session_id, existing.id
        )
        return

    subscription_data = {
        "userId": str(user_id),
        "premiumId": str(premium_id),
        "status": SubscriptionStatus.active.value,
        "startDate": start_date.isoformat(),
        "endDate": end_date.isoformat(),
        "autoRenew": True,
        "paymentMethod": PAYMENT_METHOD_TAG,
        "transactionId": transaction_id,
        "amount": amount_total / 100,
        "duration": duration,
    }

    if existing is not None:
        await ctx.bdd.replace_subscription(existing.id, subscription_data)
        subscription_id: str | None = existing.id
        logger.info("Subscription %s remplacée pour l'utilisateur %s", existing.id, user_id)
    else:
        created = await ctx.bdd.create_subscription(subscription_data)
        subscription_id = created.id if created else None
        logger.info("Subscription créée avec succès pour l'utilisateur %s", user_id)

    if payment_intent and subscription_id:
        correlation = {
            "subscriptionId": subscription_id,
            "subscriptionStatus": SubscriptionStatus.active.value,
            "userId": str(user_id),
            "premiumId": str(premium_id),
        }
        if metadata.get("userEmail"):
            correlation["userEmail"] = str(metadata["userEmail"])
        try:
            await ctx.gateway.update_payment_intent_metadata(payment_intent, correlation)
        except PaymentProviderError as exc:
            logger.warning(
                "Could not tag payment intent %s with subscription %s: %s",
                payment_intent,
                subscription_id,
                exc.detail,
            )


@dataclass
class ReceiptTarget:
    subscription_id: str | None = None
    user_id: str | None = None
    user_email: str | None = None
    premium_id: str | None = None
    sources: list[str] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return bool(self.subscription_id and self.user_email)

    def merge(self, source: str, **values: Any) -> None:
        changed = False
        for key, value in values.items():
            if value and not getattr(self, key):
                setattr(self, key, str(value))
                changed = True
        if changed:
            self.sources.append(source)


ReceiptLookup = Callable[[Mapping[str, Any], ReceiptTarget, ReconciliationContext], Awaitable[None]]


async def _lookup_payment_intent_metadata(
    charge: Mapping[str, Any], target: ReceiptTarget, ctx: ReconciliationContext
) -> None:
    payment_intent = _reference_id(charge.get("payment_intent"))
    if not payment_intent:
        return
    intent = await ctx.gateway.retrieve_payment_intent(payment_intent)
    metadata = _metadata(intent)
    target.merge(
        "payment_intent",
        subscription_id=metadata.get("subscriptionId"),
        user_id=metadata.get("userId"),
        user_email=metadata.get("userEmail"),
        premium_id=metadata.get("premiumId"),
    )


async def _lookup_checkout_session(
    charge: Mapping[str, Any], target: ReceiptTarget, ctx: ReconciliationContext
) -> None:
    payment_intent = _reference_id(charge.get("payment_intent"))
    if not payment_intent:
        return
    session = await ctx.gateway.find_session_by_payment_intent(payment_intent)
    if session:
        metadata = _metadata(session)
        target.merge(
            "checkout_session",
            user_id=metadata.get("userId"),
            user_email=metadata.get("userEmail"),
            premium_id=metadata.get("premiumId"),
        )
    if not target.subscription_id:
        subscription = await ctx.bdd.find_subscription_by_transaction(payment_intent)
        if subscription is not None:
            target.merge(
                "transaction_search",
                subscription_id=subscription.id,
                user_id=subscription.user_id,
                premium_id=subscription.plan_id,
            )


async def _lookup_active_subscription_by_email(
    charge: Mapping[str, Any], target: ReceiptTarget, ctx: ReconciliationContext
) -> None:
    billing = charge.get("billing_details")
    billing_email = billing.get("email") if isinstance(billing, Mapping) else None
    target.merge("charge", user_email=billing_email or charge.get("receipt_email"))
    if target.subscription_id or not target.user_email:
        return
    matches = await ctx.bdd.search_subscriptions(
        user_email=target.user_email, status=SubscriptionStatus.active.value
    )
    if matches:
        target.merge(
            "email_search",
            subscription_id=matches[0].id,
            user_id=matches[0].user_id,
            premium_id=matches[0].plan_id,
        )


RECEIPT_LOOKUP_CHAIN: tuple[ReceiptLookup, ...] = (
    _lookup_payment_intent_metadata,
    _lookup_checkout_session,
    _lookup_active_subscription_by_email,
)


async def resolve_receipt_target(
    charge: Mapping[str, Any], ctx: ReconciliationContext
) -> ReceiptTarget:
    """Walk the lookup chain in order until both the subscription and the email are known."""
    target = ReceiptTarget()
    for lookup in RECEIPT_LOOKUP_CHAIN:
        if target.resolved:
            break
        try:
            await lookup(charge, target, ctx)
        except PaymentServiceError as exc:
            logger.warning("Receipt lookup %s failed: %s", lookup.__name__, exc.detail)
    return target


async def _plan_label(premium_id: str | None, ctx: ReconciliationContext) -> str:
    if not premium_id:
        return DEFAULT_PLAN_LABEL
    try:
        plan = await ctx.bdd.get_premium(premium_id)
    except PaymentServiceError:
        return DEFAULT_PLAN_LABEL
    return plan.title or DEFAULT_PLAN_LABEL


async def _username(user_id: str | None, ctx: ReconciliationContext) -> str:
    if not user_id:
        return ""
    try:
        user = await ctx.bdd.get_user(user_id)
    except PaymentServiceError:
        return ""
    return user.username or ""


async def handle_charge_updated(charge: Mapping[str, Any], ctx: ReconciliationContext) -> None:
    receipt_url = charge.get("receipt_url")
    if charge.get("status") != "succeeded" or not receipt_url:
        return
    logger.info("Receipt URL généré pour le charge : %s", charge.get("id"))

    target = await resolve_receipt_target(charge, ctx)
    if not target.user_email and not target.subscription_id:
        logger.warning("Charge %s could not be matched to a subscription", charge.get("id"))
        return

    if target.user_email:
        try:
            await ctx.mailer.send_subscription_receipt(
                to=target.user_email,
                receipt_url=str(receipt_url),
                username=await _username(target.user_id, ctx),
                plan=await _plan_label(target.premium_id, ctx),
            )
            logger.info("Email d'abonnement envoyé à %s avec le reçu", target.user_email)
        except PaymentServiceError as exc:
            logger.error("Erreur lors de l'envoi de l'email : %s", exc.detail)
    else:
        logger.warning("No email known for charge %s; receipt not sent", charge.get("id"))

    if target.subscription_id:
        await ctx.bdd.update_subscription(target.subscription_id, {"receiptUrl": str(receipt_url)})
    else:
        logger.warning("Receipt for charge %s not stored: subscription unknown", charge.get("id"))


async def handle_invoice_payment_succeeded(
    invoice: Mapping[str, Any], ctx: ReconciliationContext
) -> None:
    logger.info("Paiement de facture réussi. Invoice ID : %s", invoice.get("id"))
    stripe_subscription = _invoice_subscription_id(invoice)
    if not stripe_subscription:
        return
    subscription = await _find_by_transaction(stripe_subscription, ctx)
    if subscription is None:
        return
    await ctx.bdd.renew_subscription(subscription.id, duration=ctx.renewal_duration_days)
    logger.info("Subscription renouvelée pour l'utilisateur %s", subscription.user_id)


async def handle_invoice_payment_failed(
    invoice: Mapping[str, Any], ctx: ReconciliationContext
) -> None:
    logger.warning("Échec du paiement de facture. Invoice ID : %s", invoice.get("id"))
    stripe_subscription = _invoice_subscription_id(invoice)
    if not stripe_subscription:
        return
    subscription = await _find_by_transaction(stripe_subscription, ctx)
    if subscription is None:
        return
    await ctx.bdd.update_subscription(
        subscription.id,
        {"status": SubscriptionStatus.inactive.value, "autoRenew": False},
    )
    logger.warning("Subscription désactivée pour échec de paiement : %s", subscription.user_id)


async def handle_subscription_deleted(
    stripe_subscription: Mapping[str, Any], ctx: ReconciliationContext
) -> None:
    stripe_id = _reference_id(stripe_subscription.get("id"))
    logger.info("Subscription Stripe supprimée : %s", stripe_id)
    if not stripe_id:
        return
    subscription = await _find_by_transaction(stripe_id, ctx)
    if subscription is None:
        return
    await ctx.bdd.cancel_subscription(subscription.id)
    logger.info("Subscription annulée pour l'utilisateur %s", subscription.user_id)


async def handle_subscription_updated(
    stripe_subscription: Mapping[str, Any], ctx: ReconciliationContext
) -> None:
    stripe_id = _reference_id(stripe_subscription.get("id"))
    logger.info("Subscription Stripe mise à jour : %s", stripe_id)
    if not stripe_id:
        return
    subscription = await _find_by_transaction(stripe_id, ctx)
    if subscription is None:
        return
    new_status = map_stripe_status(stripe_subscription.get("status"))
    await ctx.bdd.update_subscription(subscription.id, {"status": new_status.value})
    logger.info(
        "Subscription mise à jour pour l'utilisateur %s - Statut: %s",
        subscription.user_id,
        new_status.value,
    )
