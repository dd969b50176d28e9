"""Application wiring for the subscription orchestrator."""
from __future__ import annotations

import logging
from functools import lru_cache

from dotenv import load_dotenv

from ..subscriptions import (
    PlanCatalog,
    SubscriptionAuditEvent,
    SubscriptionEventLogger,
    SubscriptionOrchestrator,
    load_billing_config,
)
from ..subscriptions.repository import PostgresBillingProfileStore
from ..subscriptions.stripe_gateway import StripeBillingGateway

load_dotenv()

logger = logging.getLogger("subscriptions")


class LoggingSubscriptionEventLogger(SubscriptionEventLogger):
    """Event logger forwarding subscription audit events to logging."""

    def log(self, event: SubscriptionAuditEvent) -> None:
        logger.info(
            "Subscription event %s account=%s subscription=%s metadata=%s",
            event.event_type.value,
            event.account_id,
            event.subscription_id,
            event.metadata,
        )


@lru_cache(maxsize=1)
def get_stripe_gateway() -> StripeBillingGateway:
    config = load_billing_config()
    return StripeBillingGateway(
        config.stripe_secret_key,
        api_version=config.stripe_api_version,
        max_network_retries=config.stripe_max_network_retries,
    )


@lru_cache(maxsize=1)
def get_plan_catalog() -> PlanCatalog:
    return PlanCatalog(gateway=get_stripe_gateway())


@lru_cache(maxsize=1)
def get_subscription_orchestrator() -> SubscriptionOrchestrator:
    return SubscriptionOrchestrator(
        gateway=get_stripe_gateway(),
        profiles=PostgresBillingProfileStore(),
        catalog=get_plan_catalog(),
        event_logger=LoggingSubscriptionEventLogger(),
        config=load_billing_config(),
    )


__all__ = [
    "LoggingSubscriptionEventLogger",
    "get_plan_catalog",
    "get_stripe_gateway",
    "get_subscription_orchestrator",
]
