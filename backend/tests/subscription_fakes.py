"""In-memory collaborators shared by the subscription tests."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from backend.app.subscriptions import (
    BillingConfig,
    BillingGatewayError,
    BillingProfile,
    CardDetails,
    InvoiceRecord,
    PaymentMethod,
    PlanCatalog,
    PriceRecord,
    ProcessorStatus,
    ProrationBehavior,
    ResourceNotFoundError,
    SetupIntent,
    Subscription,
    SubscriptionAuditEvent,
    SubscriptionOrchestrator,
    SubscriptionSlotConflictError,
    SubscriptionState,
)
from backend.app.subscriptions.config import DEFAULT_STRIPE_API_VERSION
from backend.app.subscriptions.service import BillingProfileStore, SubscriptionEventLogger


def make_config(**overrides: Any) -> BillingConfig:
    values: Dict[str, Any] = {
        "stripe_secret_key": "sk_test_123",
        "stripe_api_version": DEFAULT_STRIPE_API_VERSION,
        "stripe_max_network_retries": 2,
        "subscription_slot": "default",
        "locale": "en",
        "invoice_download_path": "/api/subscriptions/invoices/{invoice_id}/download",
        "invoice_limit": 10,
        "max_trial_days": 365,
    }
    values.update(overrides)
    return BillingConfig(**values)


def make_price(price_id: str = "price_basic", *, amount: int = 1999, **overrides: Any) -> PriceRecord:
    values: Dict[str, Any] = {
        "price_id": price_id,
        "product_id": f"prod_{price_id}",
        "product_name": "Basic",
        "product_description": "Basic plan",
        "unit_amount": amount,
        "currency": "usd",
        "interval": "month",
        "interval_count": 1,
        "trial_period_days": None,
        "product_metadata": {"features": "Unlimited snippets, Priority support"},
    }
    values.update(overrides)
    return PriceRecord(**values)


class FakeBillingGateway:
    """Processor double that keeps state in memory and records every call."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.subscriptions: Dict[str, Subscription] = {}
        self.prices: Dict[str, PriceRecord] = {"price_basic": make_price(), "price_pro": make_price("price_pro", amount=4999, product_name="Pro")}
        self.payment_methods: Dict[str, Dict[str, PaymentMethod]] = {}
        self.invoices: Dict[str, List[InvoiceRecord]] = {}
        self.failures: Dict[str, BillingGatewayError] = {}
        self._counter = 0

    def _record(self, call_name: str, /, **kwargs: Any) -> None:
        self.calls.append((call_name, kwargs))
        failure = self.failures.get(call_name)
        if failure is not None:
            raise failure

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}_{self._counter}"

    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def calls_named(self, name: str) -> List[Dict[str, Any]]:
        return [kwargs for call_name, kwargs in self.calls if call_name == name]

    def add_payment_method(self, customer_id: str, payment_method_id: str, last4: str = "4242") -> PaymentMethod:
        method = PaymentMethod(
            payment_method_id=payment_method_id,
            type="card",
            card=CardDetails(brand="visa", last4=last4, exp_month=12, exp_year=2030),
        )
        self.payment_methods.setdefault(customer_id, {})[payment_method_id] = method
        return method

    def create_customer(self, *, account_id, email, name, idempotency_key=None) -> str:
        self._record("create_customer", account_id=account_id, email=email, name=name, idempotency_key=idempotency_key)
        return self._next_id("cus")

    def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> PaymentMethod:
        self._record("set_default_payment_method", customer_id=customer_id, payment_method_id=payment_method_id)
        existing = self.payment_methods.get(customer_id, {}).get(payment_method_id)
        return existing or self.add_payment_method(customer_id, payment_method_id)

    def create_subscription(self, *, customer_id, price_id, slot, trial_days=None, idempotency_key=None) -> Subscription:
        self._record(
            "create_subscription",
            customer_id=customer_id,
            price_id=price_id,
            slot=slot,
            trial_days=trial_days,
            idempotency_key=idempotency_key,
        )
        for existing in self.subscriptions.values():
            if (
                existing.customer_id == customer_id
                and existing.slot == slot
                and existing.state != SubscriptionState.CANCELED
            ):
                raise SubscriptionSlotConflictError(
                    message="A live subscription already occupies this slot",
                    existing_subscription_id=existing.subscription_id,
                )
        if price_id not in self.prices:
            raise ResourceNotFoundError(message="Resource not found", resource="price")

        now = datetime.now(timezone.utc)
        subscription = Subscription(
            subscription_id=self._next_id("sub"),
            customer_id=customer_id,
            price_id=price_id,
            slot=slot,
            status=ProcessorStatus.TRIALING if trial_days else ProcessorStatus.ACTIVE,
            trial_ends_at=now + timedelta(days=trial_days) if trial_days else None,
            current_period_start=now,
            current_period_end=now + timedelta(days=30),
            created_at=now,
        )
        self.subscriptions[subscription.subscription_id] = subscription
        return subscription

    def retrieve_subscription(self, subscription_id: str) -> Subscription:
        self._record("retrieve_subscription", subscription_id=subscription_id)
        subscription = self.subscriptions.get(subscription_id)
        if subscription is None:
            raise ResourceNotFoundError(message="Resource not found", resource="subscription")
        return subscription

    def _update(self, subscription_id: str, **changes: Any) -> None:
        self.subscriptions[subscription_id] = self.subscriptions[subscription_id].model_copy(update=changes)

    def swap_price(self, subscription_id, price_id, *, proration: ProrationBehavior, trial_end=None) -> None:
        self._record("swap_price", subscription_id=subscription_id, price_id=price_id, proration=proration, trial_end=trial_end)
        if price_id not in self.prices:
            raise ResourceNotFoundError(message="Resource not found", resource="price")
        self._update(subscription_id, price_id=price_id, ends_at=None)

    def cancel_subscription(self, subscription_id: str, *, at_period_end: bool) -> None:
        self._record("cancel_subscription", subscription_id=subscription_id, at_period_end=at_period_end)
        current = self.subscriptions[subscription_id]
        if at_period_end:
            self._update(subscription_id, ends_at=current.current_period_end)
        else:
            self._update(subscription_id, status=ProcessorStatus.CANCELED, ends_at=datetime.now(timezone.utc))

    def resume_subscription(self, subscription_id: str) -> None:
        self._record("resume_subscription", subscription_id=subscription_id)
        self._update(subscription_id, ends_at=None)

    def list_invoices(self, customer_id: str, *, limit: int) -> List[InvoiceRecord]:
        self._record("list_invoices", customer_id=customer_id, limit=limit)
        return self.invoices.get(customer_id, [])[:limit]

    def retrieve_price(self, price_id: str) -> PriceRecord:
        self._record("retrieve_price", price_id=price_id)
        price = self.prices.get(price_id)
        if price is None:
            raise ResourceNotFoundError(message="Resource not found", resource="price")
        return price

    def list_prices(self) -> List[PriceRecord]:
        self._record("list_prices")
        return list(self.prices.values())

    def create_setup_intent(self, customer_id: str) -> SetupIntent:
        self._record("create_setup_intent", customer_id=customer_id)
        return SetupIntent(setup_intent_id="seti_1", client_secret="seti_1_secret")

    def list_payment_methods(self, customer_id: str) -> List[PaymentMethod]:
        self._record("list_payment_methods", customer_id=customer_id)
        return list(self.payment_methods.get(customer_id, {}).values())

    def delete_payment_method(self, customer_id: str, payment_method_id: str) -> None:
        self._record("delete_payment_method", customer_id=customer_id, payment_method_id=payment_method_id)
        methods = self.payment_methods.get(customer_id, {})
        if payment_method_id not in methods:
            raise ResourceNotFoundError(message="Resource not found", resource="payment_method")
        del methods[payment_method_id]


class InMemoryBillingProfileStore(BillingProfileStore):
    def __init__(self) -> None:
        self.profiles: Dict[str, BillingProfile] = {}

    def get_profile(self, account_id: str) -> Optional[BillingProfile]:
        return self.profiles.get(account_id)

    def save_profile(self, profile: BillingProfile) -> BillingProfile:
        self.profiles[profile.account_id] = profile
        return profile


class FakeEventLogger(SubscriptionEventLogger):
    def __init__(self) -> None:
        self.events: List[SubscriptionAuditEvent] = []

    def log(self, event: SubscriptionAuditEvent) -> None:
        self.events.append(event)


def build_orchestrator(
    gateway: Optional[FakeBillingGateway] = None,
    *,
    profiles: Optional[InMemoryBillingProfileStore] = None,
    event_logger: Optional[FakeEventLogger] = None,
    **config_overrides: Any,
) -> SubscriptionOrchestrator:
    gateway = gateway or FakeBillingGateway()
    return SubscriptionOrchestrator(
        gateway=gateway,
        profiles=profiles or InMemoryBillingProfileStore(),
        catalog=PlanCatalog(gateway=gateway),
        event_logger=event_logger or FakeEventLogger(),
        config=make_config(**config_overrides),
    )
