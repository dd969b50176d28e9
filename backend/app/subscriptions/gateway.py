"""Boundary between the subscription core and the payment processor."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .models import PaymentMethod, SetupIntent, Subscription


class ProrationBehavior(str, Enum):
    """How a price swap settles the partial period."""

    INVOICE_NOW = "invoice_now"
    SUPPRESS = "suppress"


class PaymentActionReason(str, Enum):
    AUTHENTICATION_REQUIRED = "authentication_required"
    PAYMENT_METHOD_REQUIRED = "payment_method_required"


@dataclass(eq=False)
class BillingGatewayError(Exception):
    """Processor or transport failure translated at the gateway boundary."""

    message: str
    code: Optional[str] = None
    detail: Optional[str] = None

    def __post_init__(self) -> None:
        super().__init__(self.message)


@dataclass(eq=False)
class PaymentActionRequiredError(BillingGatewayError):
    """A charge needs the customer to act before the operation completes."""

    payment_intent_id: str = ""
    subscription_id: Optional[str] = None
    reason: PaymentActionReason = PaymentActionReason.AUTHENTICATION_REQUIRED


@dataclass(eq=False)
class SubscriptionSlotConflictError(BillingGatewayError):
    """The customer already holds a live subscription in the requested slot."""

    existing_subscription_id: Optional[str] = None


@dataclass(eq=False)
class ResourceNotFoundError(BillingGatewayError):
    """A referenced processor object is missing or owned by someone else."""

    resource: Optional[str] = None


class PriceRecord(BaseModel):
    """Raw recurring price joined with its product, before normalization."""

    price_id: str
    product_id: str
    product_name: str
    product_description: Optional[str] = None
    unit_amount: Optional[int] = None
    currency: str
    interval: str
    interval_count: Optional[int] = None
    trial_period_days: Optional[int] = None
    product_metadata: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class InvoiceRecord(BaseModel):
    """Raw invoice fields as reported by the processor."""

    invoice_id: str
    number: Optional[str] = None
    total: int = 0
    currency: str
    status: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)


class BillingGateway(Protocol):
    """Operations the orchestrator needs from the payment processor.

    Implementations raise only :class:`BillingGatewayError` subclasses.
    """

    def create_customer(
        self,
        *,
        account_id: str,
        email: Optional[str],
        name: Optional[str],
        idempotency_key: Optional[str] = None,
    ) -> str:
        """Create a processor customer and return its id."""

    def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> PaymentMethod:
        """Attach a payment method to the customer and make it the invoice default."""

    def create_subscription(
        self,
        *,
        customer_id: str,
        price_id: str,
        slot: str,
        trial_days: Optional[int] = None,
        idempotency_key: Optional[str] = None,
    ) -> Subscription:
        """Create a subscription; ``trial_days`` of ``None`` means no trial."""

    def retrieve_subscription(self, subscription_id: str) -> Subscription:
        ...

    def swap_price(
        self,
        subscription_id: str,
        price_id: str,
        *,
        proration: ProrationBehavior,
        trial_end: Optional[datetime] = None,
    ) -> None:
        """Replace the subscription price.

        ``trial_end`` keeps a running trial until that moment; ``None`` leaves
        trial settings untouched. A swap also clears any scheduled cancellation.
        """

    def cancel_subscription(self, subscription_id: str, *, at_period_end: bool) -> None:
        ...

    def resume_subscription(self, subscription_id: str) -> None:
        ...

    def list_invoices(self, customer_id: str, *, limit: int) -> Sequence[InvoiceRecord]:
        ...

    def retrieve_price(self, price_id: str) -> PriceRecord:
        ...

    def list_prices(self) -> Sequence[PriceRecord]:
        """Active recurring prices with product data expanded."""

    def create_setup_intent(self, customer_id: str) -> SetupIntent:
        ...

    def list_payment_methods(self, customer_id: str) -> Sequence[PaymentMethod]:
        ...

    def delete_payment_method(self, customer_id: str, payment_method_id: str) -> None:
        ...


__all__ = [
    "BillingGateway",
    "BillingGatewayError",
    "InvoiceRecord",
    "PaymentActionReason",
    "PaymentActionRequiredError",
    "PriceRecord",
    "ProrationBehavior",
    "ResourceNotFoundError",
    "SubscriptionSlotConflictError",
]
