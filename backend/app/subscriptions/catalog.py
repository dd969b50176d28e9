"""Plan catalogue backed by the processor's live price list."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from .gateway import BillingGateway, BillingGatewayError, PriceRecord
from .models import IntervalUnit, Plan
from .pricing import format_price

logger = logging.getLogger(__name__)


def parse_features(raw: Optional[str]) -> List[str]:
    """Split the product ``features`` metadata (comma or newline separated)."""

    if not raw:
        return []
    normalized = raw.replace("\n", ",")
    return [item.strip() for item in normalized.split(",") if item.strip()]


def plan_from_price(record: PriceRecord) -> Plan:
    unit_amount = record.unit_amount or 0
    return Plan(
        id=record.price_id,
        product_id=record.product_id,
        name=record.product_name,
        description=record.product_description or "",
        unit_amount=unit_amount,
        currency=record.currency,
        interval=IntervalUnit(record.interval),
        interval_count=record.interval_count or 1,
        trial_period_days=record.trial_period_days or 0,
        features=parse_features(record.product_metadata.get("features")),
        formatted_price=format_price(unit_amount, record.currency),
    )


@dataclass
class PlanCatalog:
    """Read-only view over the processor's recurring prices.

    Plans are fetched on every call; the processor stays authoritative and
    nothing is cached here. Both lookups degrade instead of raising.
    """

    gateway: BillingGateway

    def list_available_plans(self) -> List[Plan]:
        try:
            records = self.gateway.list_prices()
        except BillingGatewayError as exc:
            logger.error("Error fetching subscription plans: %s", exc.detail or exc.message)
            return []

        plans: List[Plan] = []
        for record in records:
            try:
                plans.append(plan_from_price(record))
            except ValueError as exc:
                logger.warning("Skipping malformed price %s: %s", record.price_id, exc)
        return plans

    def get_plan_details(self, price_id: str) -> Optional[Plan]:
        try:
            record = self.gateway.retrieve_price(price_id)
            return plan_from_price(record)
        except BillingGatewayError as exc:
            logger.error("Error fetching plan details for %s: %s", price_id, exc.detail or exc.message)
        except ValueError as exc:
            logger.error("Malformed plan data for %s: %s", price_id, exc)
        return None


__all__ = ["PlanCatalog", "parse_features", "plan_from_price"]
