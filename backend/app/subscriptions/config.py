"""Subscription billing configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional
import os

# Last API version whose invoices expose ``payment_intent`` directly.
DEFAULT_STRIPE_API_VERSION = "2025-02-24.acacia"
DEFAULT_INVOICE_DOWNLOAD_PATH = "/api/subscriptions/invoices/{invoice_id}/download"
SUPPORTED_LOCALES = ("en", "es")


@dataclass(frozen=True)
class BillingConfig:
    """Process-wide settings for talking to the payment processor."""

    stripe_secret_key: str
    stripe_api_version: str
    stripe_max_network_retries: int
    subscription_slot: str
    locale: str
    invoice_download_path: str
    invoice_limit: int
    max_trial_days: int

    def invoice_download_url(self, invoice_id: str) -> str:
        return self.invoice_download_path.format(invoice_id=invoice_id)


def _to_int(value: Optional[str], *, default: int, name: str) -> int:
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def load_billing_config(env: Optional[Mapping[str, str]] = None) -> BillingConfig:
    """Load :class:`BillingConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    secret_key = (env_mapping.get("STRIPE_SECRET_KEY") or "").strip()
    if not secret_key:
        raise ValueError("STRIPE_SECRET_KEY is required for subscription billing")

    api_version = (env_mapping.get("STRIPE_API_VERSION") or "").strip() or DEFAULT_STRIPE_API_VERSION
    max_retries = max(
        0,
        _to_int(env_mapping.get("STRIPE_MAX_NETWORK_RETRIES"), default=2, name="STRIPE_MAX_NETWORK_RETRIES"),
    )

    slot = (env_mapping.get("BILLING_SUBSCRIPTION_SLOT") or "default").strip() or "default"

    locale = (env_mapping.get("BILLING_LOCALE") or "en").strip().lower()
    if locale not in SUPPORTED_LOCALES:
        raise ValueError(f"BILLING_LOCALE must be one of {', '.join(SUPPORTED_LOCALES)}, got {locale!r}")

    download_path = env_mapping.get("BILLING_INVOICE_DOWNLOAD_PATH") or DEFAULT_INVOICE_DOWNLOAD_PATH
    if "{invoice_id}" not in download_path:
        raise ValueError("BILLING_INVOICE_DOWNLOAD_PATH must contain an {invoice_id} placeholder")

    invoice_limit = _to_int(env_mapping.get("BILLING_INVOICE_LIMIT"), default=10, name="BILLING_INVOICE_LIMIT")
    max_trial_days = _to_int(env_mapping.get("BILLING_MAX_TRIAL_DAYS"), default=365, name="BILLING_MAX_TRIAL_DAYS")

    return BillingConfig(
        stripe_secret_key=secret_key,
        stripe_api_version=api_version,
        stripe_max_network_retries=max_retries,
        subscription_slot=slot,
        locale=locale,
        invoice_download_path=download_path,
        invoice_limit=max(1, min(invoice_limit, 100)),
        max_trial_days=max(0, max_trial_days),
    )


__all__ = ["BillingConfig", "DEFAULT_INVOICE_DOWNLOAD_PATH", "DEFAULT_STRIPE_API_VERSION", "SUPPORTED_LOCALES", "load_billing_config"]
