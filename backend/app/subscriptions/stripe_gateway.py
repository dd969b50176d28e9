"""Stripe implementation of :class:`BillingGateway`."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

import stripe

from .config import DEFAULT_STRIPE_API_VERSION
from .gateway import (
    BillingGatewayError,
    InvoiceRecord,
    PaymentActionReason,
    PaymentActionRequiredError,
    PriceRecord,
    ProrationBehavior,
    ResourceNotFoundError,
    SubscriptionSlotConflictError,
)
from .models import CardDetails, PaymentMethod, ProcessorStatus, SetupIntent, Subscription

logger = logging.getLogger(__name__)

_ENDED_STATUSES = frozenset({"canceled", "incomplete_expired"})
_PRORATION_MODES = {
    ProrationBehavior.INVOICE_NOW: "always_invoice",
    ProrationBehavior.SUPPRESS: "none",
}
# First API version whose invoices carry ``payments`` instead of ``payment_intent``.
INVOICE_PAYMENTS_API_VERSION = "2025-03-31"


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Read ``name`` from a Stripe object, a plain mapping, or ``None``."""

    if obj is None:
        return default
    if isinstance(obj, Mapping):
        value = obj.get(name, default)
    elif isinstance(obj, stripe.StripeObject):
        # Key access: attribute access would shadow fields such as ``items``.
        try:
            value = obj[name]
        except KeyError:
            value = default
    else:
        value = getattr(obj, name, default)
    return default if value is None else value


def _object_id(value: Any) -> Optional[str]:
    """Ids arrive either bare or as expanded objects."""

    if value is None or isinstance(value, str):
        return value
    return _field(value, "id")


def _timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def subscription_from_stripe(obj: Any) -> Subscription:
    """Normalize a Stripe subscription into the domain model."""

    items = _field(_field(obj, "items"), "data", []) or []
    first_item = items[0] if items else None
    price_id = _object_id(_field(first_item, "price"))
    if not price_id:
        raise BillingGatewayError(
            message="Subscription has no price",
            detail=f"subscription {_field(obj, 'id')} has no items",
        )

    raw_status = _field(obj, "status")
    try:
        status = ProcessorStatus(raw_status)
    except ValueError as exc:
        raise BillingGatewayError(
            message="Unknown subscription status",
            code="unknown_status",
            detail=f"subscription {_field(obj, 'id')} reported status {raw_status!r}",
        ) from exc

    # Newer API versions moved the period window onto the subscription item.
    period_start = _field(obj, "current_period_start") or _field(first_item, "current_period_start")
    period_end = _field(obj, "current_period_end") or _field(first_item, "current_period_end")

    if status == ProcessorStatus.CANCELED:
        ends_at = _field(obj, "ended_at") or _field(obj, "canceled_at")
    elif _field(obj, "cancel_at_period_end", False):
        ends_at = _field(obj, "cancel_at") or period_end
    else:
        ends_at = _field(obj, "cancel_at")

    metadata = _field(obj, "metadata", {}) or {}
    return Subscription(
        subscription_id=_field(obj, "id"),
        customer_id=_object_id(_field(obj, "customer")),
        price_id=price_id,
        slot=_field(metadata, "slot", "default"),
        status=status,
        trial_ends_at=_timestamp(_field(obj, "trial_end")),
        ends_at=_timestamp(ends_at),
        current_period_start=_timestamp(period_start),
        current_period_end=_timestamp(period_end),
        created_at=_timestamp(_field(obj, "created")),
    )


def price_from_stripe(obj: Any) -> PriceRecord:
    product = _field(obj, "product")
    recurring = _field(obj, "recurring")
    if isinstance(product, str):
        product_id, product_name, description, metadata = product, product, None, {}
    else:
        product_id = _field(product, "id")
        product_name = _field(product, "name", product_id)
        description = _field(product, "description")
        metadata = dict(_field(product, "metadata", {}) or {})

    return PriceRecord(
        price_id=_field(obj, "id"),
        product_id=product_id,
        product_name=product_name,
        product_description=description,
        unit_amount=_field(obj, "unit_amount"),
        currency=_field(obj, "currency", ""),
        interval=_field(recurring, "interval", ""),
        interval_count=_field(recurring, "interval_count"),
        trial_period_days=_field(recurring, "trial_period_days"),
        product_metadata={str(key): str(value) for key, value in metadata.items()},
    )


def payment_method_from_stripe(obj: Any) -> PaymentMethod:
    card = _field(obj, "card")
    return PaymentMethod(
        payment_method_id=_field(obj, "id"),
        type=_field(obj, "type", "card"),
        card=(
            CardDetails(
                brand=_field(card, "brand"),
                last4=_field(card, "last4"),
                exp_month=_field(card, "exp_month"),
                exp_year=_field(card, "exp_year"),
            )
            if card is not None
            else None
        ),
    )


def invoice_from_stripe(obj: Any) -> InvoiceRecord:
    return InvoiceRecord(
        invoice_id=_field(obj, "id"),
        number=_field(obj, "number"),
        total=_field(obj, "total", 0),
        currency=_field(obj, "currency", ""),
        status=_field(obj, "status"),
        created_at=_timestamp(_field(obj, "created")),
    )


def _uses_invoice_payments(api_version: Optional[str]) -> bool:
    """From 2025-03-31 (basil) invoices list payments instead of ``payment_intent``."""

    return api_version is None or api_version[:10] >= INVOICE_PAYMENTS_API_VERSION


def _intent_from_invoice(invoice: Any) -> Any:
    """Payment intent of an expanded invoice, as an object or a bare id."""

    if invoice is None or isinstance(invoice, str):
        return None
    intent = _field(invoice, "payment_intent")
    if intent is not None:
        return intent
    for record in _field(_field(invoice, "payments"), "data", []) or []:
        intent = _field(_field(record, "payment"), "payment_intent")
        if intent is not None:
            return intent
    return None


class StripeBillingGateway:
    """Talks to Stripe with an explicit credential.

    The global ``stripe.api_key`` is never touched; every request carries
    its own key, API version and retry budget. Stripe exceptions are
    translated into :class:`BillingGatewayError` subclasses here and never
    escape this class.
    """

    def __init__(
        self,
        api_key: str,
        *,
        api_version: Optional[str] = DEFAULT_STRIPE_API_VERSION,
        max_network_retries: int = 2,
    ) -> None:
        if not api_key:
            raise ValueError("A Stripe API key is required")
        self._api_key = api_key
        self._api_version = api_version
        self._max_network_retries = max_network_retries

    def _options(self, idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        options: Dict[str, Any] = {
            "api_key": self._api_key,
            "max_network_retries": self._max_network_retries,
        }
        if self._api_version:
            options["stripe_version"] = self._api_version
        if idempotency_key:
            options["idempotency_key"] = idempotency_key
        return options

    def _request(
        self,
        operation: str,
        call: Callable[..., Any],
        *args: Any,
        resource: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        **params: Any,
    ) -> Any:
        try:
            return call(*args, **params, **self._options(idempotency_key))
        except stripe.CardError as exc:
            if exc.code == "authentication_required":
                intent_id = _object_id(_field(_field(exc.json_body, "error"), "payment_intent"))
                if not intent_id:
                    logger.error("Stripe asked to authenticate %s without a payment intent", operation)
                    raise BillingGatewayError(
                        message="Payment requires customer authentication",
                        code=exc.code,
                        detail=str(exc),
                    ) from exc
                raise PaymentActionRequiredError(
                    message="Payment requires customer authentication",
                    code=exc.code,
                    detail=str(exc),
                    payment_intent_id=intent_id,
                ) from exc
            logger.warning("Stripe declined %s: %s", operation, exc.user_message or exc)
            raise BillingGatewayError(
                message="The card was declined",
                code=exc.code,
                detail=exc.user_message or str(exc),
            ) from exc
        except stripe.InvalidRequestError as exc:
            if exc.code == "resource_missing":
                raise ResourceNotFoundError(
                    message="Resource not found",
                    code=exc.code,
                    detail=str(exc),
                    resource=resource,
                ) from exc
            logger.error("Stripe rejected %s: %s", operation, exc)
            raise BillingGatewayError(
                message="Invalid request to the payment processor",
                code=exc.code,
                detail=str(exc),
            ) from exc
        except stripe.StripeError as exc:
            logger.error("Stripe request %s failed: %s", operation, exc)
            raise BillingGatewayError(
                message="Payment processor request failed",
                code=exc.code,
                detail=str(exc),
            ) from exc

    # ------------------------------------------------------------------
    # Customers and payment methods
    # ------------------------------------------------------------------

    def create_customer(
        self,
        *,
        account_id: str,
        email: Optional[str],
        name: Optional[str],
        idempotency_key: Optional[str] = None,
    ) -> str:
        params: Dict[str, Any] = {"metadata": {"account_id": account_id}}
        if email:
            params["email"] = email
        if name:
            params["name"] = name
        customer = self._request(
            "create_customer",
            stripe.Customer.create,
            idempotency_key=idempotency_key,
            **params,
        )
        return _field(customer, "id")

    def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> PaymentMethod:
        method = self._request(
            "attach_payment_method",
            stripe.PaymentMethod.attach,
            payment_method_id,
            resource="payment_method",
            customer=customer_id,
        )
        self._request(
            "set_default_payment_method",
            stripe.Customer.modify,
            customer_id,
            resource="customer",
            invoice_settings={"default_payment_method": payment_method_id},
        )
        return payment_method_from_stripe(method)

    def list_payment_methods(self, customer_id: str) -> List[PaymentMethod]:
        result = self._request(
            "list_payment_methods",
            stripe.Customer.list_payment_methods,
            customer_id,
            resource="customer",
            type="card",
        )
        return [payment_method_from_stripe(item) for item in _field(result, "data", [])]

    def delete_payment_method(self, customer_id: str, payment_method_id: str) -> None:
        method = self._request(
            "retrieve_payment_method",
            stripe.PaymentMethod.retrieve,
            payment_method_id,
            resource="payment_method",
        )
        if _object_id(_field(method, "customer")) != customer_id:
            raise ResourceNotFoundError(
                message="Resource not found",
                code="resource_missing",
                detail=f"payment method {payment_method_id} is not attached to {customer_id}",
                resource="payment_method",
            )
        self._request(
            "detach_payment_method",
            stripe.PaymentMethod.detach,
            payment_method_id,
            resource="payment_method",
        )

    def create_setup_intent(self, customer_id: str) -> SetupIntent:
        intent = self._request(
            "create_setup_intent",
            stripe.SetupIntent.create,
            resource="customer",
            customer=customer_id,
            usage="off_session",
        )
        return SetupIntent(
            setup_intent_id=_field(intent, "id"),
            client_secret=_field(intent, "client_secret"),
        )

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def _invoice_expansion(self) -> List[str]:
        if _uses_invoice_payments(self._api_version):
            return ["latest_invoice.payments"]
        return ["latest_invoice.payment_intent"]

    def _raise_for_pending_payment(self, obj: Any) -> None:
        """Raise when the subscription's latest invoice still waits on the customer."""

        intent = _intent_from_invoice(_field(obj, "latest_invoice"))
        if intent is None:
            return
        if isinstance(intent, str):
            intent = self._request(
                "retrieve_payment_intent",
                stripe.PaymentIntent.retrieve,
                intent,
                resource="payment_intent",
            )

        intent_status = _field(intent, "status")
        if intent_status in ("requires_action", "requires_confirmation"):
            reason = PaymentActionReason.AUTHENTICATION_REQUIRED
        elif intent_status == "requires_payment_method":
            reason = PaymentActionReason.PAYMENT_METHOD_REQUIRED
        else:
            return
        raise PaymentActionRequiredError(
            message="Payment requires customer action",
            code=intent_status,
            payment_intent_id=_field(intent, "id"),
            subscription_id=_field(obj, "id"),
            reason=reason,
        )

    def _live_subscription_in_slot(self, customer_id: str, slot: str) -> Optional[str]:
        existing = self._request(
            "list_subscriptions",
            stripe.Subscription.list,
            resource="customer",
            customer=customer_id,
            status="all",
            limit=100,
        )
        for item in _field(existing, "data", []):
            if _field(item, "status") in _ENDED_STATUSES:
                continue
            if _field(_field(item, "metadata", {}), "slot", "default") == slot:
                return _field(item, "id")
        return None

    def create_subscription(
        self,
        *,
        customer_id: str,
        price_id: str,
        slot: str,
        trial_days: Optional[int] = None,
        idempotency_key: Optional[str] = None,
    ) -> Subscription:
        existing_id = self._live_subscription_in_slot(customer_id, slot)
        if existing_id:
            raise SubscriptionSlotConflictError(
                message="A live subscription already occupies this slot",
                code="slot_taken",
                existing_subscription_id=existing_id,
            )

        params: Dict[str, Any] = {
            "customer": customer_id,
            "items": [{"price": price_id}],
            "metadata": {"slot": slot},
            "payment_behavior": "allow_incomplete",
            "expand": self._invoice_expansion(),
        }
        if trial_days:
            params["trial_period_days"] = trial_days

        created = self._request(
            "create_subscription",
            stripe.Subscription.create,
            resource="price",
            idempotency_key=idempotency_key,
            **params,
        )
        if _field(created, "status") == "incomplete":
            self._raise_for_pending_payment(created)
        return subscription_from_stripe(created)

    def retrieve_subscription(self, subscription_id: str) -> Subscription:
        subscription = self._request(
            "retrieve_subscription",
            stripe.Subscription.retrieve,
            subscription_id,
            resource="subscription",
        )
        return subscription_from_stripe(subscription)

    def swap_price(
        self,
        subscription_id: str,
        price_id: str,
        *,
        proration: ProrationBehavior,
        trial_end: Optional[datetime] = None,
    ) -> None:
        current = self._request(
            "retrieve_subscription",
            stripe.Subscription.retrieve,
            subscription_id,
            resource="subscription",
        )
        items = _field(_field(current, "items"), "data", [])
        if not items:
            raise BillingGatewayError(
                message="Subscription has no price",
                detail=f"subscription {subscription_id} has no items",
            )

        params: Dict[str, Any] = {
            "items": [{"id": _field(items[0], "id"), "price": price_id}],
            "cancel_at_period_end": False,
            "proration_behavior": _PRORATION_MODES[proration],
            "payment_behavior": "allow_incomplete",
            "expand": self._invoice_expansion(),
        }
        if trial_end is not None:
            params["trial_end"] = int(trial_end.timestamp())

        updated = self._request(
            "swap_price",
            stripe.Subscription.modify,
            subscription_id,
            resource="price",
            **params,
        )
        if proration == ProrationBehavior.INVOICE_NOW:
            self._raise_for_pending_payment(updated)

    def cancel_subscription(self, subscription_id: str, *, at_period_end: bool) -> None:
        if at_period_end:
            self._request(
                "cancel_subscription",
                stripe.Subscription.modify,
                subscription_id,
                resource="subscription",
                cancel_at_period_end=True,
            )
        else:
            self._request(
                "cancel_subscription",
                stripe.Subscription.cancel,
                subscription_id,
                resource="subscription",
            )

    def resume_subscription(self, subscription_id: str) -> None:
        self._request(
            "resume_subscription",
            stripe.Subscription.modify,
            subscription_id,
            resource="subscription",
            cancel_at_period_end=False,
        )

    # ------------------------------------------------------------------
    # Catalogue and invoices
    # ------------------------------------------------------------------

    def list_invoices(self, customer_id: str, *, limit: int) -> List[InvoiceRecord]:
        result = self._request(
            "list_invoices",
            stripe.Invoice.list,
            resource="customer",
            customer=customer_id,
            limit=limit,
        )
        return [invoice_from_stripe(item) for item in _field(result, "data", [])]

    def retrieve_price(self, price_id: str) -> PriceRecord:
        price = self._request(
            "retrieve_price",
            stripe.Price.retrieve,
            price_id,
            resource="price",
            expand=["product"],
        )
        return price_from_stripe(price)

    def list_prices(self) -> List[PriceRecord]:
        result = self._request(
            "list_prices",
            stripe.Price.list,
            active=True,
            type="recurring",
            expand=["data.product"],
            limit=100,
        )
        return [price_from_stripe(item) for item in _field(result, "data", [])]


__all__ = [
    "StripeBillingGateway",
    "invoice_from_stripe",
    "payment_method_from_stripe",
    "price_from_stripe",
    "subscription_from_stripe",
]
