"""Domain models for subscription billing."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IntervalUnit(str, Enum):
    """Recurring billing interval units reported by the processor."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class ProcessorStatus(str, Enum):
    """Raw subscription status as reported by the payment processor."""

    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    PAUSED = "paused"


class SubscriptionState(str, Enum):
    """Lifecycle state of the account's subscription slot."""

    NONE = "none"
    INCOMPLETE = "incomplete"
    ACTIVE = "active"
    ACTIVE_ON_TRIAL = "active_on_trial"
    CANCEL_PENDING = "cancel_pending"
    CANCELED = "canceled"


USABLE_STATES = frozenset(
    {
        SubscriptionState.ACTIVE,
        SubscriptionState.ACTIVE_ON_TRIAL,
        SubscriptionState.CANCEL_PENDING,
    }
)

_UNSETTLED_STATUSES = frozenset(
    {
        ProcessorStatus.INCOMPLETE,
        ProcessorStatus.PAST_DUE,
        ProcessorStatus.UNPAID,
        ProcessorStatus.PAUSED,
    }
)


class Account(BaseModel):
    """Opaque account identity owned by the host application."""

    account_id: str
    email: Optional[str] = None
    name: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class BillingProfile(BaseModel):
    """Processor identity and payment defaults persisted for an account."""

    account_id: str
    processor_customer_id: Optional[str] = None
    default_payment_method_id: Optional[str] = None
    payment_method_type: Optional[str] = None
    payment_method_last_four: Optional[str] = None
    subscription_id: Optional[str] = None
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(frozen=True)

    @property
    def has_customer(self) -> bool:
        return bool(self.processor_customer_id)


class Plan(BaseModel):
    """Snapshot of a recurring processor price and its product."""

    id: str
    product_id: str
    name: str
    description: str = ""
    unit_amount: int = Field(ge=0)
    currency: str = Field(min_length=3, max_length=3)
    interval: IntervalUnit
    interval_count: int = Field(default=1, ge=1)
    trial_period_days: int = Field(default=0, ge=0)
    features: List[str] = Field(default_factory=list)
    formatted_price: str

    model_config = ConfigDict(frozen=True)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()


class Subscription(BaseModel):
    """Authoritative subscription state as last read from the processor.

    ``ends_at`` is the moment access stops for a canceled subscription: the
    period end for a scheduled cancellation, or the cancellation time for an
    immediate one. It is ``None`` while the subscription renews normally.
    """

    subscription_id: str
    customer_id: str
    price_id: str
    slot: str = "default"
    status: ProcessorStatus
    trial_ends_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)

    def state_at(self, moment: datetime) -> SubscriptionState:
        if self.status in (ProcessorStatus.CANCELED, ProcessorStatus.INCOMPLETE_EXPIRED):
            return SubscriptionState.CANCELED
        if self.ends_at is not None:
            if self.ends_at > moment:
                return SubscriptionState.CANCEL_PENDING
            return SubscriptionState.CANCELED
        if self.status in _UNSETTLED_STATUSES:
            return SubscriptionState.INCOMPLETE
        if self.trial_ends_at is not None and self.trial_ends_at > moment:
            return SubscriptionState.ACTIVE_ON_TRIAL
        return SubscriptionState.ACTIVE

    @property
    def state(self) -> SubscriptionState:
        return self.state_at(_utcnow())

    @property
    def active(self) -> bool:
        """``True`` while the subscription grants billing access."""
        return self.state in USABLE_STATES

    @property
    def canceled(self) -> bool:
        return self.ends_at is not None or self.status == ProcessorStatus.CANCELED

    @property
    def on_trial(self) -> bool:
        return self.trial_ends_at is not None and self.trial_ends_at > _utcnow()

    @property
    def on_grace_period(self) -> bool:
        """Canceled but still usable until ``ends_at``."""
        return self.state == SubscriptionState.CANCEL_PENDING


class SubscriptionDetails(BaseModel):
    """Subscription enriched with live plan data for display."""

    subscription: Subscription
    state: SubscriptionState
    active: bool
    canceled: bool
    on_trial: bool
    plan: Optional[Plan] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_subscription(
        cls,
        subscription: Subscription,
        *,
        plan: Optional[Plan] = None,
    ) -> "SubscriptionDetails":
        return cls(
            subscription=subscription,
            state=subscription.state,
            active=subscription.active,
            canceled=subscription.canceled,
            on_trial=subscription.on_trial,
            plan=plan,
        )


class Invoice(BaseModel):
    """Historical invoice exposed to the account holder."""

    invoice_id: str
    number: Optional[str] = None
    total: int
    currency: str = Field(min_length=3, max_length=3)
    status: Optional[str] = None
    issued_at: Optional[datetime] = None
    download_url: str
    formatted_amount: str

    model_config = ConfigDict(frozen=True)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()


class InvoiceHistory(BaseModel):
    """Read-path result for invoice listing; never raised, only flagged."""

    success: bool
    invoices: List[Invoice] = Field(default_factory=list)
    message: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class CardDetails(BaseModel):
    brand: Optional[str] = None
    last4: Optional[str] = None
    exp_month: Optional[int] = None
    exp_year: Optional[int] = None

    model_config = ConfigDict(frozen=True)


class PaymentMethod(BaseModel):
    """Processor-owned payment method referenced by id."""

    payment_method_id: str
    type: str
    card: Optional[CardDetails] = None

    model_config = ConfigDict(frozen=True)

    @property
    def last_four(self) -> Optional[str]:
        return self.card.last4 if self.card else None


class PaymentMethodList(BaseModel):
    success: bool
    payment_methods: List[PaymentMethod] = Field(default_factory=list)
    default_payment_method_id: Optional[str] = None
    message: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class SetupIntent(BaseModel):
    """Client-side secret used to collect a payment method without charging."""

    setup_intent_id: str
    client_secret: str

    model_config = ConfigDict(frozen=True)


class SubscriptionAuditEventType(str, Enum):
    """Audit event categories emitted by the subscription orchestrator."""

    CUSTOMER_CREATED = "customer_created"
    SUBSCRIPTION_CREATED = "subscription_created"
    PAYMENT_ACTION_REQUIRED = "payment_action_required"
    PLAN_CHANGED = "plan_changed"
    CANCELLATION_SCHEDULED = "cancellation_scheduled"
    SUBSCRIPTION_CANCELED = "subscription_canceled"
    SUBSCRIPTION_RESUMED = "subscription_resumed"
    DEFAULT_PAYMENT_METHOD_UPDATED = "default_payment_method_updated"
    PAYMENT_METHOD_DELETED = "payment_method_deleted"


class SubscriptionAuditEvent(BaseModel):
    """Structured audit event for analytics and support tooling."""

    event_type: SubscriptionAuditEventType
    account_id: str
    subscription_id: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(frozen=True)
