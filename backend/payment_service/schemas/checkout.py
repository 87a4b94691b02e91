from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class CheckoutCreateRequest(BaseModel):
    """Body of ``POST /api/pay/checkout``.

    ``user_id`` and ``premium_id`` stay optional here so a missing value is
    answered with the service's own 400 payload instead of a 422.
    ``amount`` is accepted for compatibility with older clients but the
    charged amount is always computed server-side.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    product_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("productName", "product_name")
    )
    user_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("userId", "user_id"))
    premium_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("premiumId", "premium_id")
    )
    duration: Optional[str] = None
    user_email: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("userEmail", "user_email")
    )

    @field_validator("user_id", "premium_id", "duration", mode="before")
    @classmethod
    def _coerce_to_str(cls, value: Union[str, int, None]):
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("amount", mode="before")
    @classmethod
    def _advisory_amount(cls, value):
        if value is None or isinstance(value, bool):
            return None
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            return None
        return amount if amount.is_finite() else None


class CheckoutCreateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    url: str
    session_id: Optional[str] = Field(default=None, serialization_alias="sessionId")


class WebhookAck(BaseModel):
    received: bool = True
