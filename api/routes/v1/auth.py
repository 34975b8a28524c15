"""
api/routes/v1/auth.py -- FastAPI adapter for the auth handlers.

Routes:
  POST /auth/login    -- password login; returns user + token pair
  POST /auth/refresh  -- exchange refresh token for a new access token
  GET  /auth/me       -- current user info (requires Bearer token)
  POST /auth/logout   -- revoke the caller's refresh token (requires Bearer token)
  GET  /auth/users    -- list all users (ADMIN or above)

Each route accepts every method and forwards (method, headers, body) to the
matching function in api/handlers.py. Method checks, validation and the
response envelope all live there, so a wrong method gets the same
{"success": false, "error": "Method not allowed"} body as any other error
instead of Starlette's default 405.

Security:
  POST /auth/login is rate-limited per client IP (LOGIN_RATE_LIMIT).
  Cache-Control: no-store on every response that can carry a token.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from api import handlers
from api.limiter import limiter
from auth.store import UserStore
from core.config import get_settings

router = APIRouter()

_ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _read_body(request: Request) -> Any:
    """Return the parsed JSON body, or None when it is empty or not valid JSON.

    The handlers treat None like a body with no fields, which yields the
    right 400 message for each endpoint.
    """
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


async def _dispatch(
    request: Request,
    handler: Callable[..., handlers.HandlerResult],
    allow: str,
    no_store: bool = False,
) -> JSONResponse:
    user_store: UserStore = request.app.state.user_store
    body = await _read_body(request)
    # Handlers are synchronous (bcrypt, SQLAlchemy); keep them off the event loop.
    status_code, payload = await run_in_threadpool(handler, user_store, request.method, dict(request.headers), body)
    resp = JSONResponse(status_code=status_code, content=payload)
    if status_code == 405:
        resp.headers["Allow"] = allow
    if no_store:
        resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


def _login_rate_limit() -> str:
    # Read per request so a changed setting applies without re-importing.
    return get_settings().login_rate_limit


# @router must wrap @limiter.limit: the limit is enforced inside the limiter's
# wrapper, not by SlowAPIMiddleware, so the wrapper is the registered endpoint.
@router.api_route("/auth/login", methods=_ALL_METHODS)
@limiter.limit(_login_rate_limit)
async def login(request: Request) -> JSONResponse:
    """Authenticate with email and password; returns user, access token and refresh token."""
    return await _dispatch(request, handlers.login, "POST", no_store=True)


@router.api_route("/auth/refresh", methods=_ALL_METHODS)
async def refresh(request: Request) -> JSONResponse:
    """Exchange a refresh token for a new access token."""
    return await _dispatch(request, handlers.refresh, "POST", no_store=True)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.api_route("/auth/me", methods=_ALL_METHODS)
async def me(request: Request) -> JSONResponse:
    """Return identity information for the bearer of the access token."""
    return await _dispatch(request, handlers.me, "GET")


@router.api_route("/auth/logout", methods=_ALL_METHODS)
async def logout(request: Request) -> JSONResponse:
    """Revoke the caller's refresh token."""
    return await _dispatch(request, handlers.logout, "POST")


@router.api_route("/auth/users", methods=_ALL_METHODS)
async def list_users(request: Request) -> JSONResponse:
    """List all user accounts. ADMIN or SUPER_ADMIN only."""
    return await _dispatch(request, handlers.list_users, "GET")
