"""FastAPI application exposing subscription management."""
from __future__ import annotations

import logging
import math
import os
from typing import Any, Callable

import psycopg2
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend import app_context
from backend.app.routes.subscriptions import router as subscriptions_router


load_dotenv()

logger = logging.getLogger("subscriptions")


def _parse_connect_timeout(raw_value: str) -> int:
    try:
        timeout = float(raw_value)
    except ValueError as exc:
        raise ValueError("DB_CONNECT_TIMEOUT must be a number") from exc
    if timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(timeout))


DB_CFG = dict(
    host=os.getenv("DB_HOST", "127.0.0.1"),
    port=int(os.getenv("DB_PORT", "5432")),
    dbname=os.getenv("DB_NAME", "billing_db"),
    user=os.getenv("DB_USER", "billing_user"),
    password=os.getenv("DB_PASSWORD", "billing_pass"),
    connect_timeout=_parse_connect_timeout(os.getenv("DB_CONNECT_TIMEOUT", "5")),
)

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]


def get_conn():
    return psycopg2.connect(**DB_CFG)


def create_app(get_current_account: Callable[..., Any]) -> FastAPI:
    """Build the API around the host application's account resolver.

    ``get_current_account`` receives the session token from the cookie and
    must return an :class:`~backend.app.subscriptions.models.Account` or raise
    an ``HTTPException``.
    """

    app_context.configure(get_conn=get_conn, get_current_account=get_current_account)

    app = FastAPI(title="Subscription Billing API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(subscriptions_router)
    logger.info("Subscription API configured with origins %s", CORS_ORIGINS)
    return app


__all__ = ["DB_CFG", "create_app", "get_conn"]
