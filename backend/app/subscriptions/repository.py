"""Persistence of per-account billing profiles."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterable, Optional

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from .models import BillingProfile

try:  # pragma: no cover - resolve connection helper when imported from FastAPI app
    from backend.app_context import get_conn
except ModuleNotFoundError as exc:  # pragma: no cover
    if exc.name != "backend":
        raise
    from ...app_context import get_conn  # type: ignore[no-redef]


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


def _row_to_profile(row: dict) -> BillingProfile:
    return BillingProfile(
        account_id=str(row["account_id"]),
        processor_customer_id=row.get("processor_customer_id"),
        default_payment_method_id=row.get("default_payment_method_id"),
        payment_method_type=row.get("payment_method_type"),
        payment_method_last_four=row.get("payment_method_last_four"),
        subscription_id=row.get("subscription_id"),
        updated_at=row["updated_at"],
    )


class PostgresBillingProfileStore:
    """Stores billing profiles in the ``billing_profiles`` table."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterable[PgCursor]:
        with managed_connection(self._conn) as (connection, managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
                if managed:
                    connection.commit()
            except Exception:
                if managed:
                    connection.rollback()
                raise
            finally:
                cursor.close()

    def get_profile(self, account_id: str) -> Optional[BillingProfile]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT account_id,
                       processor_customer_id,
                       default_payment_method_id,
                       payment_method_type,
                       payment_method_last_four,
                       subscription_id,
                       updated_at
                FROM billing_profiles
                WHERE account_id = %s
                """,
                (account_id,),
            )
            row = cursor.fetchone()
        return _row_to_profile(row) if row else None

    def save_profile(self, profile: BillingProfile) -> BillingProfile:
        """Insert or update the profile keyed by ``account_id``."""

        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO billing_profiles (
                    account_id,
                    processor_customer_id,
                    default_payment_method_id,
                    payment_method_type,
                    payment_method_last_four,
                    subscription_id,
                    updated_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (account_id) DO UPDATE SET
                    processor_customer_id = EXCLUDED.processor_customer_id,
                    default_payment_method_id = EXCLUDED.default_payment_method_id,
                    payment_method_type = EXCLUDED.payment_method_type,
                    payment_method_last_four = EXCLUDED.payment_method_last_four,
                    subscription_id = EXCLUDED.subscription_id,
                    updated_at = EXCLUDED.updated_at
                RETURNING account_id,
                          processor_customer_id,
                          default_payment_method_id,
                          payment_method_type,
                          payment_method_last_four,
                          subscription_id,
                          updated_at
                """,
                (
                    profile.account_id,
                    profile.processor_customer_id,
                    profile.default_payment_method_id,
                    profile.payment_method_type,
                    profile.payment_method_last_four,
                    profile.subscription_id,
                    profile.updated_at,
                ),
            )
            row = cursor.fetchone()
        return _row_to_profile(row)


__all__ = ["PostgresBillingProfileStore", "managed_connection"]
