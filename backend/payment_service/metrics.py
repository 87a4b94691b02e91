from __future__ import annotations

from prometheus_client import Counter

checkout_sessions_created_total = Counter(
    "checkout_sessions_created_total",
    "Number of Stripe checkout sessions created.",
)
checkout_sessions_failed_total = Counter(
    "checkout_sessions_failed_total",
    "Number of checkout session requests rejected by Stripe.",
)
stripe_webhook_processed_total = Counter(
    "stripe_webhook_processed_total",
    "Number of verified Stripe webhook events dispatched.",
    ["event_type"],
)
stripe_webhook_failed_total = Counter(
    "stripe_webhook_failed_total",
    "Number of Stripe webhook events whose handler raised.",
    ["event_type"],
)
stripe_webhook_rejected_total = Counter(
    "stripe_webhook_rejected_total",
    "Number of Stripe webhook deliveries rejected before dispatch.",
)
