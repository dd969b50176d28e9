"""Subscription lifecycle orchestration against the payment processor."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Protocol

from .catalog import PlanCatalog
from .config import BillingConfig
from .gateway import (
    BillingGateway,
    BillingGatewayError,
    InvoiceRecord,
    PaymentActionReason,
    PaymentActionRequiredError,
    ProrationBehavior,
    ResourceNotFoundError,
    SubscriptionSlotConflictError,
)
from .messages import MessageCatalog
from .models import (
    Account,
    BillingProfile,
    Invoice,
    InvoiceHistory,
    PaymentMethod,
    PaymentMethodList,
    Subscription,
    SubscriptionAuditEvent,
    SubscriptionAuditEventType,
    SubscriptionDetails,
    SubscriptionState,
)
from .outcomes import ActionRequired, Failure, FailureKind, OperationOutcome, Success
from .pricing import format_price

logger = logging.getLogger(__name__)

MAX_INVOICE_LIMIT = 100


class BillingProfileStore(Protocol):
    """Read/write access to the account's persisted billing profile."""

    def get_profile(self, account_id: str) -> Optional[BillingProfile]:
        ...

    def save_profile(self, profile: BillingProfile) -> BillingProfile:
        ...


class SubscriptionEventLogger(Protocol):
    """Captures structured subscription audit events."""

    def log(self, event: SubscriptionAuditEvent) -> None:
        ...


@dataclass(slots=True)
class SubscriptionOrchestrator:
    """Validates lifecycle transitions and drives the processor in order.

    Every public operation returns an outcome value; processor errors never
    propagate to the caller. After each mutating call the subscription is
    re-read from the processor instead of trusting the pre-mutation copy.
    """

    gateway: BillingGateway
    profiles: BillingProfileStore
    catalog: PlanCatalog
    event_logger: SubscriptionEventLogger
    config: BillingConfig

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    @property
    def messages(self) -> MessageCatalog:
        return MessageCatalog(self.config.locale)

    # ------------------------------------------------------------------
    # Subscription lifecycle
    # ------------------------------------------------------------------

    def create_subscription(
        self,
        account: Account,
        price_id: str,
        payment_method_id: Optional[str] = None,
        trial_days: int = 0,
        *,
        idempotency_key: Optional[str] = None,
    ) -> OperationOutcome:
        if not price_id or not price_id.strip():
            return self._failure(FailureKind.VALIDATION, "invalid_price")
        if payment_method_id is not None and not payment_method_id.strip():
            return self._failure(FailureKind.VALIDATION, "invalid_payment_method")
        if trial_days > self.config.max_trial_days:
            return self._failure(
                FailureKind.VALIDATION,
                "invalid_trial_days",
                max_days=self.config.max_trial_days,
            )

        profile = self._load_profile(account)
        try:
            profile = self._ensure_customer(account, profile, idempotency_key=idempotency_key)

            # The default must be in place before subscribing: creation may charge immediately.
            if payment_method_id:
                method = self.gateway.set_default_payment_method(
                    profile.processor_customer_id, payment_method_id
                )
                profile = self._record_default_payment_method(account, profile, method)

            subscription = self.gateway.create_subscription(
                customer_id=profile.processor_customer_id,
                price_id=price_id,
                slot=self.config.subscription_slot,
                trial_days=trial_days if trial_days > 0 else None,
                idempotency_key=idempotency_key,
            )
        except PaymentActionRequiredError as exc:
            if exc.subscription_id:
                self._record_subscription(profile, exc.subscription_id)
            return self._action_required("create_subscription", account, exc)
        except SubscriptionSlotConflictError as exc:
            logger.info(
                "Account %s already holds subscription %s in slot %s",
                account.account_id,
                exc.existing_subscription_id,
                self.config.subscription_slot,
            )
            return self._failure(FailureKind.CONFLICT, "subscription_exists", detail=exc.message)
        except ResourceNotFoundError as exc:
            return self._not_found("create_subscription", account, exc)
        except BillingGatewayError as exc:
            return self._remote_failure("create_subscription", account, exc, "subscription_create_failed")

        self._record_subscription(profile, subscription.subscription_id)
        self._log_event(
            SubscriptionAuditEventType.SUBSCRIPTION_CREATED,
            account,
            subscription.subscription_id,
            price_id=price_id,
            trial_days=str(max(trial_days, 0)),
        )
        return Success(payload=subscription, message=self.messages.get("subscription_created"))

    def change_plan(self, account: Account, new_price_id: str, prorate: bool = True) -> OperationOutcome:
        if not new_price_id or not new_price_id.strip():
            return self._failure(FailureKind.VALIDATION, "invalid_price")

        current, failure = self._require_subscription(
            account,
            "change_plan",
            lambda subscription: subscription.active,
            missing_key="no_active_subscription",
            error_key="plan_change_failed",
        )
        if failure is not None:
            return failure

        proration = ProrationBehavior.INVOICE_NOW if prorate else ProrationBehavior.SUPPRESS
        # A running trial survives the swap.
        trial_end = current.trial_ends_at if current.on_trial else None
        try:
            self.gateway.swap_price(
                current.subscription_id,
                new_price_id,
                proration=proration,
                trial_end=trial_end,
            )
            refreshed = self.gateway.retrieve_subscription(current.subscription_id)
        except PaymentActionRequiredError as exc:
            if not exc.subscription_id:
                exc.subscription_id = current.subscription_id
            return self._action_required("change_plan", account, exc)
        except ResourceNotFoundError as exc:
            return self._not_found("change_plan", account, exc)
        except BillingGatewayError as exc:
            return self._remote_failure("change_plan", account, exc, "plan_change_failed")

        self._log_event(
            SubscriptionAuditEventType.PLAN_CHANGED,
            account,
            refreshed.subscription_id,
            from_price=current.price_id,
            to_price=new_price_id,
            proration=proration.value,
        )
        return Success(payload=refreshed, message=self.messages.get("plan_changed"))

    def cancel_subscription(self, account: Account, immediately: bool = False) -> OperationOutcome:
        current, failure = self._require_subscription(
            account,
            "cancel_subscription",
            lambda subscription: subscription.active,
            missing_key="no_active_subscription",
            error_key="subscription_cancel_failed",
        )
        if failure is not None:
            return failure

        try:
            self.gateway.cancel_subscription(current.subscription_id, at_period_end=not immediately)
            refreshed = self.gateway.retrieve_subscription(current.subscription_id)
        except BillingGatewayError as exc:
            return self._remote_failure("cancel_subscription", account, exc, "subscription_cancel_failed")

        if immediately:
            event_type = SubscriptionAuditEventType.SUBSCRIPTION_CANCELED
            message_key = "subscription_canceled_now"
        else:
            event_type = SubscriptionAuditEventType.CANCELLATION_SCHEDULED
            message_key = "subscription_cancel_scheduled"

        ends_at = refreshed.ends_at.isoformat() if refreshed.ends_at else ""
        self._log_event(event_type, account, refreshed.subscription_id, ends_at=ends_at)
        return Success(payload=refreshed, message=self.messages.get(message_key))

    def resume_subscription(self, account: Account) -> OperationOutcome:
        current, failure = self._require_subscription(
            account,
            "resume_subscription",
            lambda subscription: subscription.state == SubscriptionState.CANCEL_PENDING,
            missing_key="no_canceled_subscription",
            error_key="subscription_resume_failed",
        )
        if failure is not None:
            return failure

        try:
            self.gateway.resume_subscription(current.subscription_id)
            refreshed = self.gateway.retrieve_subscription(current.subscription_id)
        except BillingGatewayError as exc:
            return self._remote_failure("resume_subscription", account, exc, "subscription_resume_failed")

        self._log_event(SubscriptionAuditEventType.SUBSCRIPTION_RESUMED, account, refreshed.subscription_id)
        return Success(payload=refreshed, message=self.messages.get("subscription_resumed"))

    def get_subscription_details(self, account: Account) -> OperationOutcome:
        profile = self._load_profile(account)
        try:
            subscription = self._current_subscription(profile)
        except BillingGatewayError as exc:
            return self._remote_failure(
                "get_subscription_details", account, exc, "subscription_details_failed"
            )

        if subscription is None:
            return self._failure(FailureKind.NOT_FOUND, "no_subscription")

        plan = self.catalog.get_plan_details(subscription.price_id)
        return Success(payload=SubscriptionDetails.from_subscription(subscription, plan=plan))

    # ------------------------------------------------------------------
    # Invoices and payment methods
    # ------------------------------------------------------------------

    def get_invoice_history(self, account: Account, limit: Optional[int] = None) -> InvoiceHistory:
        page_size = self.config.invoice_limit if limit is None else limit
        if page_size < 1 or page_size > MAX_INVOICE_LIMIT:
            return InvoiceHistory(success=False, message=self.messages.get("invalid_invoice_limit"))

        profile = self._load_profile(account)
        if not profile.has_customer:
            return InvoiceHistory(success=True)

        try:
            records = self.gateway.list_invoices(profile.processor_customer_id, limit=page_size)
        except BillingGatewayError as exc:
            logger.error(
                "Error fetching invoice history for account %s: %s",
                account.account_id,
                exc.detail or exc.message,
            )
            return InvoiceHistory(success=False, message=self.messages.get("invoices_failed"))

        return InvoiceHistory(success=True, invoices=[self._invoice_from_record(record) for record in records])

    def create_setup_intent(self, account: Account) -> OperationOutcome:
        profile = self._load_profile(account)
        try:
            profile = self._ensure_customer(account, profile)
            intent = self.gateway.create_setup_intent(profile.processor_customer_id)
        except BillingGatewayError as exc:
            return self._remote_failure("create_setup_intent", account, exc, "setup_intent_failed")
        return Success(payload=intent)

    def list_payment_methods(self, account: Account) -> PaymentMethodList:
        profile = self._load_profile(account)
        if not profile.has_customer:
            return PaymentMethodList(success=True)

        try:
            methods = self.gateway.list_payment_methods(profile.processor_customer_id)
        except BillingGatewayError as exc:
            logger.error(
                "Error fetching payment methods for account %s: %s",
                account.account_id,
                exc.detail or exc.message,
            )
            return PaymentMethodList(success=False, message=self.messages.get("payment_methods_failed"))

        return PaymentMethodList(
            success=True,
            payment_methods=list(methods),
            default_payment_method_id=profile.default_payment_method_id,
        )

    def set_default_payment_method(self, account: Account, payment_method_id: str) -> OperationOutcome:
        if not payment_method_id or not payment_method_id.strip():
            return self._failure(FailureKind.VALIDATION, "invalid_payment_method")

        profile = self._load_profile(account)
        try:
            profile = self._ensure_customer(account, profile)
            method = self.gateway.set_default_payment_method(profile.processor_customer_id, payment_method_id)
        except ResourceNotFoundError as exc:
            return self._not_found("set_default_payment_method", account, exc)
        except BillingGatewayError as exc:
            return self._remote_failure(
                "set_default_payment_method", account, exc, "default_payment_method_failed"
            )

        self._record_default_payment_method(account, profile, method)
        return Success(payload=method, message=self.messages.get("default_payment_method_updated"))

    def delete_payment_method(self, account: Account, payment_method_id: str) -> OperationOutcome:
        if not payment_method_id or not payment_method_id.strip():
            return self._failure(FailureKind.VALIDATION, "invalid_payment_method")

        profile = self._load_profile(account)
        if not profile.has_customer:
            return self._failure(FailureKind.PRECONDITION, "payment_method_not_found")

        try:
            self.gateway.delete_payment_method(profile.processor_customer_id, payment_method_id)
        except ResourceNotFoundError as exc:
            return self._not_found("delete_payment_method", account, exc)
        except BillingGatewayError as exc:
            return self._remote_failure(
                "delete_payment_method", account, exc, "payment_method_delete_failed"
            )

        if profile.default_payment_method_id == payment_method_id:
            self.profiles.save_profile(
                profile.model_copy(
                    update={
                        "default_payment_method_id": None,
                        "payment_method_type": None,
                        "payment_method_last_four": None,
                        "updated_at": self._now(),
                    }
                )
            )
        self._log_event(
            SubscriptionAuditEventType.PAYMENT_METHOD_DELETED,
            account,
            profile.subscription_id,
            payment_method_id=payment_method_id,
        )
        return Success(message=self.messages.get("payment_method_deleted"))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_profile(self, account: Account) -> BillingProfile:
        profile = self.profiles.get_profile(account.account_id)
        return profile or BillingProfile(account_id=account.account_id)

    def _ensure_customer(
        self,
        account: Account,
        profile: BillingProfile,
        *,
        idempotency_key: Optional[str] = None,
    ) -> BillingProfile:
        if profile.has_customer:
            return profile

        customer_id = self.gateway.create_customer(
            account_id=account.account_id,
            email=account.email,
            name=account.name,
            idempotency_key=f"{idempotency_key}:customer" if idempotency_key else None,
        )
        # Persisted right away so a later failure in the sequence does not orphan the customer.
        stored = self.profiles.save_profile(
            profile.model_copy(update={"processor_customer_id": customer_id, "updated_at": self._now()})
        )
        self._log_event(SubscriptionAuditEventType.CUSTOMER_CREATED, account, None, customer_id=customer_id)
        return stored

    def _current_subscription(self, profile: BillingProfile) -> Optional[Subscription]:
        if not profile.subscription_id:
            return None
        try:
            return self.gateway.retrieve_subscription(profile.subscription_id)
        except ResourceNotFoundError:
            logger.warning(
                "Subscription %s recorded for account %s no longer exists at the processor",
                profile.subscription_id,
                profile.account_id,
            )
            return None

    def _require_subscription(
        self,
        account: Account,
        operation: str,
        allowed: Callable[[Subscription], bool],
        *,
        missing_key: str,
        error_key: str,
    ) -> tuple[Optional[Subscription], Optional[OperationOutcome]]:
        profile = self._load_profile(account)
        try:
            subscription = self._current_subscription(profile)
        except BillingGatewayError as exc:
            return None, self._remote_failure(operation, account, exc, error_key)

        if subscription is None or not allowed(subscription):
            state = subscription.state if subscription else SubscriptionState.NONE
            logger.info(
                "Rejected %s for account %s in state %s",
                operation,
                account.account_id,
                state.value,
            )
            return None, self._failure(FailureKind.PRECONDITION, missing_key)
        return subscription, None

    def _record_subscription(self, profile: BillingProfile, subscription_id: str) -> BillingProfile:
        if profile.subscription_id == subscription_id:
            return profile
        return self.profiles.save_profile(
            profile.model_copy(update={"subscription_id": subscription_id, "updated_at": self._now()})
        )

    def _record_default_payment_method(
        self,
        account: Account,
        profile: BillingProfile,
        method: PaymentMethod,
    ) -> BillingProfile:
        stored = self.profiles.save_profile(
            profile.model_copy(
                update={
                    "default_payment_method_id": method.payment_method_id,
                    "payment_method_type": method.type,
                    "payment_method_last_four": method.last_four,
                    "updated_at": self._now(),
                }
            )
        )
        self._log_event(
            SubscriptionAuditEventType.DEFAULT_PAYMENT_METHOD_UPDATED,
            account,
            profile.subscription_id,
            payment_method_id=method.payment_method_id,
        )
        return stored

    def _invoice_from_record(self, record: InvoiceRecord) -> Invoice:
        return Invoice(
            invoice_id=record.invoice_id,
            number=record.number,
            total=record.total,
            currency=record.currency,
            status=record.status,
            issued_at=record.created_at,
            download_url=self.config.invoice_download_url(record.invoice_id),
            formatted_amount=format_price(record.total, record.currency),
        )

    def _failure(
        self,
        kind: FailureKind,
        message_key: str,
        *,
        detail: Optional[str] = None,
        **params: object,
    ) -> Failure:
        return Failure(kind=kind, message=self.messages.get(message_key, **params), detail=detail)

    def _remote_failure(
        self,
        operation: str,
        account: Account,
        exc: BillingGatewayError,
        message_key: str,
    ) -> Failure:
        detail = exc.detail or exc.message
        logger.error("Error during %s for account %s: %s", operation, account.account_id, detail)
        return self._failure(FailureKind.REMOTE, message_key, detail=detail)

    def _not_found(self, operation: str, account: Account, exc: ResourceNotFoundError) -> Failure:
        logger.info("%s for account %s referenced a missing %s", operation, account.account_id, exc.resource)
        message_key = "payment_method_not_found" if exc.resource == "payment_method" else "price_not_found"
        return self._failure(FailureKind.NOT_FOUND, message_key, detail=exc.detail or exc.message)

    def _action_required(
        self,
        operation: str,
        account: Account,
        exc: PaymentActionRequiredError,
    ) -> ActionRequired:
        logger.info(
            "%s for account %s requires payment action (%s) intent=%s",
            operation,
            account.account_id,
            exc.reason.value,
            exc.payment_intent_id,
        )
        self._log_event(
            SubscriptionAuditEventType.PAYMENT_ACTION_REQUIRED,
            account,
            exc.subscription_id,
            payment_intent_id=exc.payment_intent_id,
            reason=exc.reason.value,
        )
        message_key = (
            "payment_method_required"
            if exc.reason == PaymentActionReason.PAYMENT_METHOD_REQUIRED
            else "payment_confirmation_required"
        )
        return ActionRequired(
            reference=exc.payment_intent_id,
            reason=exc.reason.value,
            message=self.messages.get(message_key),
            subscription_id=exc.subscription_id,
        )

    def _log_event(
        self,
        event_type: SubscriptionAuditEventType,
        account: Account,
        subscription_id: Optional[str],
        **metadata: str,
    ) -> None:
        payload: Dict[str, str] = {key: value for key, value in metadata.items() if value is not None}
        self.event_logger.log(
            SubscriptionAuditEvent(
                event_type=event_type,
                account_id=account.account_id,
                subscription_id=subscription_id,
                metadata=payload,
            )
        )


__all__ = [
    "BillingProfileStore",
    "SubscriptionEventLogger",
    "SubscriptionOrchestrator",
]
