"""Subscription billing domain: lifecycle orchestration, plans and payment methods."""

from .catalog import PlanCatalog
from .config import BillingConfig, load_billing_config
from .gateway import (
    BillingGateway,
    BillingGatewayError,
    InvoiceRecord,
    PaymentActionReason,
    PaymentActionRequiredError,
    PriceRecord,
    ProrationBehavior,
    ResourceNotFoundError,
    SubscriptionSlotConflictError,
)
from .messages import MessageCatalog
from .models import (
    Account,
    BillingProfile,
    CardDetails,
    IntervalUnit,
    Invoice,
    InvoiceHistory,
    PaymentMethod,
    PaymentMethodList,
    Plan,
    ProcessorStatus,
    SetupIntent,
    Subscription,
    SubscriptionAuditEvent,
    SubscriptionAuditEventType,
    SubscriptionDetails,
    SubscriptionState,
)
from .outcomes import ActionRequired, Failure, FailureKind, OperationOutcome, Success
from .pricing import format_price
from .service import BillingProfileStore, SubscriptionEventLogger, SubscriptionOrchestrator

__all__ = [
    "Account",
    "ActionRequired",
    "BillingConfig",
    "BillingGateway",
    "BillingGatewayError",
    "BillingProfile",
    "BillingProfileStore",
    "CardDetails",
    "Failure",
    "FailureKind",
    "IntervalUnit",
    "Invoice",
    "InvoiceHistory",
    "InvoiceRecord",
    "MessageCatalog",
    "OperationOutcome",
    "PaymentActionReason",
    "PaymentActionRequiredError",
    "PaymentMethod",
    "PaymentMethodList",
    "Plan",
    "PlanCatalog",
    "PriceRecord",
    "ProcessorStatus",
    "ProrationBehavior",
    "ResourceNotFoundError",
    "SetupIntent",
    "Subscription",
    "SubscriptionAuditEvent",
    "SubscriptionAuditEventType",
    "SubscriptionDetails",
    "SubscriptionEventLogger",
    "SubscriptionOrchestrator",
    "SubscriptionSlotConflictError",
    "SubscriptionState",
    "Success",
    "format_price",
    "load_billing_config",
]
