from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class SubscriptionStatus(str, Enum):
    active = "active"
    inactive = "inactive"
    cancelled = "cancelled"


class _BddModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, coerce_numbers_to_str=True)


class PremiumPlan(_BddModel):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    title: Optional[str] = None
    tarif: Decimal = Field(
        default=Decimal("0"), validation_alias=AliasChoices("tarif", "tariff", "price")
    )


class SubscriptionRecord(_BddModel):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    user_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("userId", "user_id"))
    plan_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("planId", "premiumId", "plan_id")
    )
    status: Optional[str] = None
    start_date: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("startDate", "start_date")
    )
    end_date: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("endDate", "end_date")
    )
    price: Optional[Decimal] = Field(default=None, validation_alias=AliasChoices("price", "amount"))
    auto_renew: Optional[bool] = Field(
        default=None, validation_alias=AliasChoices("autoRenew", "auto_renew")
    )
    payment_method: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("paymentMethod", "payment_method")
    )
    transaction_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("transactionId", "transaction_id")
    )
    receipt_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("receiptUrl", "receipt_url")
    )


class UserRecord(_BddModel):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    email: Optional[str] = None
    username: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("username", "name", "firstname")
    )
    subscription: Optional[SubscriptionRecord] = None
