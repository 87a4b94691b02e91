from __future__ import annotations

from fastapi import status


class PaymentServiceError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str, *, status_code: int | None = None) -> None:
        super().__init__(detail)
        if status_code is not None:
            self.status_code = status_code
        self.detail = detail


class CheckoutValidationError(PaymentServiceError):
    """Checkout request is missing required fields or prices to nothing."""


class InvalidSignatureError(PaymentServiceError):
    """Webhook payload failed Stripe signature verification."""


class PaymentConfigError(PaymentServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class PaymentProviderError(PaymentServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class UpstreamServiceError(PaymentServiceError):
    """Raised when the BDD or Mailer service is unreachable or answers non-2xx."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(
        self,
        detail: str,
        *,
        status_code: int | None = None,
        upstream_status: int | None = None,
    ) -> None:
        super().__init__(detail, status_code=status_code)
        self.upstream_status = upstream_status


class UpstreamNotFoundError(UpstreamServiceError):
    status_code = status.HTTP_404_NOT_FOUND


__all__ = [
    "CheckoutValidationError",
    "InvalidSignatureError",
    "PaymentConfigError",
    "PaymentProviderError",
    "PaymentServiceError",
    "UpstreamNotFoundError",
    "UpstreamServiceError",
]
