from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .. import metrics
from ..config import settings
from ..errors import CheckoutValidationError, PaymentProviderError
from ..logging_context import set_user_context
from ..schemas import CheckoutCreateRequest
from . import pricing_service
from .bdd_client import BddClient
from .stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

MISSING_IDS_MESSAGE = "userId et premiumId sont requis pour créer une session de paiement"


@dataclass
class CheckoutSessionResult:
    url: str
    session_id: str | None


def _build_metadata(request: CheckoutCreateRequest) -> dict[str, str]:
    metadata = {
        "userId": str(request.user_id),
        "premiumId": str(request.premium_id),
        "duration": request.duration or str(settings.default_duration_days),
    }
    if request.user_email:
        metadata["userEmail"] = request.user_email
    return metadata


async def create_checkout_session(
    request: CheckoutCreateRequest,
    *,
    bdd: BddClient,
    gateway: StripeGateway,
) -> CheckoutSessionResult:
    logger.info(
        "Demande de création de session : %s, %s %s",
        request.product_name,
        request.amount,
        request.currency,
    )
    if not request.user_id or not request.premium_id:
        raise CheckoutValidationError(MISSING_IDS_MESSAGE)
    set_user_context(request.user_id)

    quote = await pricing_service.quote_price(request.user_id, request.premium_id, bdd=bdd)
    unit_amount = quote.amount_minor
    if request.amount is not None and request.amount != unit_amount:
        logger.warning(
            "Ignoring client-supplied amount %s for user %s; charging %s",
            request.amount,
            request.user_id,
            unit_amount,
        )
    if unit_amount <= 0:
        raise CheckoutValidationError(
            f"Montant invalide pour le premium {request.premium_id}"
        )

    currency = (request.currency or settings.default_currency).lower()
    product_name = request.product_name or quote.plan.title or settings.default_product_name
    checkout_kwargs: dict[str, Any] = {
        "payment_method_types": list(settings.checkout_payment_methods),
        "line_items": [
            {
                "price_data": {
                    "currency": currency,
                    "product_data": {"name": product_name},
                    "unit_amount": unit_amount,
                },
                "quantity": 1,
            }
        ],
        "mode": "payment",
        "success_url": settings.checkout_success_url,
        "cancel_url": settings.checkout_cancel_url,
        "metadata": _build_metadata(request),
    }

    try:
        session = await gateway.create_checkout_session(**checkout_kwargs)
    except PaymentProviderError as exc:
        metrics.checkout_sessions_failed_total.inc()
        logger.error("Erreur création session Stripe : %s", exc.detail)
        raise

    url = session.get("url")
    if not isinstance(url, str) or not url:
        metrics.checkout_sessions_failed_total.inc()
        raise PaymentProviderError("Stripe session missing checkout url")

    metrics.checkout_sessions_created_total.inc()
    logger.info("Session Stripe créée : %s pour utilisateur %s", session.get("id"), request.user_id)
    return CheckoutSessionResult(url=url, session_id=session.get("id"))
