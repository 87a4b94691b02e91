from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from ..schemas import PremiumPlan, SubscriptionRecord, UserRecord
from .bdd_client import BddClient

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


@dataclass
class PriceQuote:
    user: UserRecord
    plan: PremiumPlan
    amount: Decimal

    @property
    def amount_minor(self) -> int:
        return to_minor_units(self.amount)


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount (BDD tariffs) to Stripe's integer minor units."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def is_subscription_active(subscription: SubscriptionRecord, *, now: datetime | None = None) -> bool:
    if subscription.end_date is None:
        return False
    current = _aware(now or datetime.now(timezone.utc))
    return _aware(subscription.end_date) > current


def compute_price(
    user: UserRecord,
    plan: PremiumPlan,
    *,
    now: datetime | None = None,
) -> Decimal:
    """
    Price a purchase of ``plan`` for ``user``.

    Fresh purchases, renewals of the same plan and purchases after expiry pay the
    full tariff. Switching plans while the current subscription is still running
    pays the flat tariff difference when it is positive, otherwise the full
    tariff: downgrades never produce a credit.
    """
    tariff = plan.tarif
    current = user.subscription
    if current is None:
        return tariff

    if not is_subscription_active(current, now=now):
        return tariff

    if current.plan_id == plan.id:
        return tariff

    difference = tariff - (current.price or _ZERO)
    if difference > _ZERO:
        return difference
    return tariff


async def quote_price(
    user_id: str,
    premium_id: str,
    *,
    bdd: BddClient,
    now: datetime | None = None,
) -> PriceQuote:
    # Both lookups raise UpstreamServiceError (or UpstreamNotFoundError) on failure.
    user = await bdd.get_user(user_id)
    plan = await bdd.get_premium(premium_id)
    amount = compute_price(user, plan, now=now)
    logger.info(
        "Computed price for user %s plan %s: %s",
        user_id,
        premium_id,
        amount,
        extra={"has_subscription": user.subscription is not None},
    )
    return PriceQuote(user=user, plan=plan, amount=amount)
