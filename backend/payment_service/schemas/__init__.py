from .checkout import (
    CheckoutCreateRequest,
    CheckoutCreateResponse,
    WebhookAck,
)
from .subscriptions import (
    PremiumPlan,
    SubscriptionRecord,
    SubscriptionStatus,
    UserRecord,
)

__all__ = [
    "CheckoutCreateRequest",
    "CheckoutCreateResponse",
    "PremiumPlan",
    "SubscriptionRecord",
    "SubscriptionStatus",
    "UserRecord",
    "WebhookAck",
]
