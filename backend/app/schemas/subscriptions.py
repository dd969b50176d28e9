"""API schemas for subscription endpoints."""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..subscriptions import (
    Invoice,
    PaymentMethod,
    Plan,
    SetupIntent,
    Subscription,
    SubscriptionDetails,
)


class CreateSubscriptionRequest(BaseModel):
    price_id: str = Field(alias="priceId", min_length=1)
    payment_method_id: Optional[str] = Field(alias="paymentMethodId", default=None, min_length=1)
    trial_days: int = Field(alias="trialDays", default=0, ge=0, le=365)

    model_config = ConfigDict(populate_by_name=True)


class ChangePlanRequest(BaseModel):
    price_id: str = Field(alias="priceId", min_length=1)
    prorate: bool = True

    model_config = ConfigDict(populate_by_name=True)


class CancelSubscriptionRequest(BaseModel):
    immediately: bool = False


class PaymentMethodRequest(BaseModel):
    payment_method_id: str = Field(alias="paymentMethodId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class PlanListResponse(BaseModel):
    plans: List[Plan]


class SubscriptionResponse(BaseModel):
    message: Optional[str] = None
    subscription: Subscription


class SubscriptionDetailsResponse(BaseModel):
    details: SubscriptionDetails


class InvoiceListResponse(BaseModel):
    invoices: List[Invoice]


class SetupIntentResponse(BaseModel):
    setup_intent_id: str = Field(alias="setupIntentId")
    client_secret: str = Field(alias="clientSecret")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_intent(cls, intent: SetupIntent) -> "SetupIntentResponse":
        return cls(setup_intent_id=intent.setup_intent_id, client_secret=intent.client_secret)


class PaymentMethodListResponse(BaseModel):
    payment_methods: List[PaymentMethod] = Field(alias="paymentMethods")
    default_payment_method_id: Optional[str] = Field(alias="defaultPaymentMethodId", default=None)

    model_config = ConfigDict(populate_by_name=True)


class PaymentMethodResponse(BaseModel):
    message: Optional[str] = None
    payment_method: PaymentMethod = Field(alias="paymentMethod")

    model_config = ConfigDict(populate_by_name=True)


class MessageResponse(BaseModel):
    message: Optional[str] = None


__all__ = [
    "CancelSubscriptionRequest",
    "ChangePlanRequest",
    "CreateSubscriptionRequest",
    "InvoiceListResponse",
    "MessageResponse",
    "PaymentMethodListResponse",
    "PaymentMethodRequest",
    "PaymentMethodResponse",
    "PlanListResponse",
    "SetupIntentResponse",
    "SubscriptionDetailsResponse",
    "SubscriptionResponse",
]
