"""API routes exposing subscription management."""
from __future__ import annotations

import os
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Query, status

from ...app_context import get_current_account
from ..schemas.subscriptions import (
    CancelSubscriptionRequest,
    ChangePlanRequest,
    CreateSubscriptionRequest,
    InvoiceListResponse,
    MessageResponse,
    PaymentMethodListResponse,
    PaymentMethodRequest,
    PaymentMethodResponse,
    PlanListResponse,
    SetupIntentResponse,
    SubscriptionDetailsResponse,
    SubscriptionResponse,
)
from ..services.subscriptions import get_plan_catalog, get_subscription_orchestrator
from ..subscriptions import (
    Account,
    ActionRequired,
    Failure,
    FailureKind,
    OperationOutcome,
    Success,
)

_SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")

_FAILURE_STATUS = {
    FailureKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    FailureKind.PRECONDITION: status.HTTP_400_BAD_REQUEST,
    FailureKind.CONFLICT: status.HTTP_409_CONFLICT,
    FailureKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    FailureKind.REMOTE: status.HTTP_400_BAD_REQUEST,
}


def _get_current_account(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
) -> Account:
    return get_current_account(session_token=session_token)


def _unwrap(outcome: OperationOutcome) -> Success:
    """Return a success outcome or raise the matching HTTP error."""

    if isinstance(outcome, ActionRequired):
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={
                "message": outcome.message,
                "reference": outcome.reference,
                "reason": outcome.reason,
                "subscriptionId": outcome.subscription_id,
            },
        )
    if isinstance(outcome, Failure):
        raise HTTPException(status_code=_FAILURE_STATUS[outcome.kind], detail=outcome.message)
    return outcome


router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


@router.get("/plans", response_model=PlanListResponse)
def list_plans() -> PlanListResponse:
    return PlanListResponse(plans=get_plan_catalog().list_available_plans())


@router.get("/current", response_model=SubscriptionDetailsResponse)
def get_subscription_details(
    *,
    current_account: Account = Depends(_get_current_account),
) -> SubscriptionDetailsResponse:
    outcome = _unwrap(get_subscription_orchestrator().get_subscription_details(current_account))
    return SubscriptionDetailsResponse(details=outcome.payload)


@router.post("", response_model=SubscriptionResponse)
def create_subscription(
    payload: CreateSubscriptionRequest,
    *,
    current_account: Account = Depends(_get_current_account),
) -> SubscriptionResponse:
    outcome = _unwrap(
        get_subscription_orchestrator().create_subscription(
            current_account,
            payload.price_id,
            payment_method_id=payload.payment_method_id,
            trial_days=payload.trial_days,
        )
    )
    return SubscriptionResponse(message=outcome.message, subscription=outcome.payload)


@router.post("/change-plan", response_model=SubscriptionResponse)
def change_plan(
    payload: ChangePlanRequest,
    *,
    current_account: Account = Depends(_get_current_account),
) -> SubscriptionResponse:
    outcome = _unwrap(
        get_subscription_orchestrator().change_plan(current_account, payload.price_id, prorate=payload.prorate)
    )
    return SubscriptionResponse(message=outcome.message, subscription=outcome.payload)


@router.post("/cancel", response_model=SubscriptionResponse)
def cancel_subscription(
    payload: CancelSubscriptionRequest,
    *,
    current_account: Account = Depends(_get_current_account),
) -> SubscriptionResponse:
    outcome = _unwrap(
        get_subscription_orchestrator().cancel_subscription(current_account, immediately=payload.immediately)
    )
    return SubscriptionResponse(message=outcome.message, subscription=outcome.payload)


@router.post("/resume", response_model=SubscriptionResponse)
def resume_subscription(
    *,
    current_account: Account = Depends(_get_current_account),
) -> SubscriptionResponse:
    outcome = _unwrap(get_subscription_orchestrator().resume_subscription(current_account))
    return SubscriptionResponse(message=outcome.message, subscription=outcome.payload)


@router.get("/invoices", response_model=InvoiceListResponse)
def list_invoices(
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    *,
    current_account: Account = Depends(_get_current_account),
) -> InvoiceListResponse:
    history = get_subscription_orchestrator().get_invoice_history(current_account, limit=limit)
    if not history.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=history.message)
    return InvoiceListResponse(invoices=history.invoices)


@router.post("/setup-intent", response_model=SetupIntentResponse)
def create_setup_intent(
    *,
    current_account: Account = Depends(_get_current_account),
) -> SetupIntentResponse:
    outcome = _unwrap(get_subscription_orchestrator().create_setup_intent(current_account))
    return SetupIntentResponse.from_intent(outcome.payload)


@router.get("/payment-methods", response_model=PaymentMethodListResponse)
def list_payment_methods(
    *,
    current_account: Account = Depends(_get_current_account),
) -> PaymentMethodListResponse:
    result = get_subscription_orchestrator().list_payment_methods(current_account)
    if not result.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.message)
    return PaymentMethodListResponse(
        payment_methods=result.payment_methods,
        default_payment_method_id=result.default_payment_method_id,
    )


@router.post("/payment-methods/default", response_model=PaymentMethodResponse)
def set_default_payment_method(
    payload: PaymentMethodRequest,
    *,
    current_account: Account = Depends(_get_current_account),
) -> PaymentMethodResponse:
    outcome = _unwrap(
        get_subscription_orchestrator().set_default_payment_method(current_account, payload.payment_method_id)
    )
    return PaymentMethodResponse(message=outcome.message, payment_method=outcome.payload)


@router.delete("/payment-methods/{payment_method_id}", response_model=MessageResponse)
def delete_payment_method(
    payment_method_id: str,
    *,
    current_account: Account = Depends(_get_current_account),
) -> MessageResponse:
    outcome = _unwrap(get_subscription_orchestrator().delete_payment_method(current_account, payment_method_id))
    return MessageResponse(message=outcome.message)
