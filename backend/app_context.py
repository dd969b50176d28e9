"""Shared application context for reusable dependencies."""
from __future__ import annotations

from typing import Any, Callable, Optional

_get_conn: Optional[Callable[[], Any]] = None
_get_current_account: Optional[Callable[..., Any]] = None


def configure(
    *,
    get_conn: Callable[[], Any],
    get_current_account: Callable[..., Any],
) -> None:
    """Register host-application dependencies required by the subscription router.

    ``get_current_account`` must resolve the authenticated caller to an
    :class:`~backend.app.subscriptions.models.Account`.
    """

    global _get_conn
    global _get_current_account

    _get_conn = get_conn
    _get_current_account = get_current_account


def _require(value: Optional[Any], name: str) -> Any:
    if value is None:
        raise RuntimeError(f"Application context has not been configured yet: {name}")
    return value


def get_conn() -> Any:
    conn_factory = _require(_get_conn, "get_conn")
    return conn_factory()


def get_current_account(*args: Any, **kwargs: Any) -> Any:
    dependency = _require(_get_current_account, "get_current_account")
    return dependency(*args, **kwargs)
