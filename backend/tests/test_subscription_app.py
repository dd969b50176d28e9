from __future__ import annotations

import pytest

import backend.main as backend_main
from backend import app_context
from backend.app.subscriptions import Account


def test_create_app_mounts_subscription_routes():
    account = Account(account_id="acct_1")

    app = backend_main.create_app(lambda session_token=None: account)

    paths = app.openapi()["paths"]
    assert "/api/subscriptions/plans" in paths
    assert "/api/subscriptions/change-plan" in paths
    assert "/api/subscriptions/payment-methods/{payment_method_id}" in paths
    assert app_context.get_current_account(session_token="token") is account


def test_connect_timeout_parsing():
    assert backend_main._parse_connect_timeout("2.5") == 3
    with pytest.raises(ValueError):
        backend_main._parse_connect_timeout("-1")
    with pytest.raises(ValueError):
        backend_main._parse_connect_timeout("soon")
