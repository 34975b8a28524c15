"""
api/handlers.py -- Framework-free request handlers for the auth endpoints.

Every handler has the same shape:

    handler(store, method, headers, body) -> (status_code, payload)

No FastAPI Request, no globals, no state between calls: everything durable
lives in the UserStore, everything else is derived from the arguments. The
HTTP adapter in api/routes/v1/auth.py only extracts the three request parts
and serializes the result; tests call these functions directly.

Error boundary: each handler catches AuthServiceError and returns its
envelope. Other exceptions (store failures, misconfiguration) propagate so
the app-level handler reports a 500 rather than a misleading 401.

Routes:
  POST /auth/login    -- email + password -> user, access token, refresh token
  POST /auth/refresh  -- refresh token -> new access token
  GET  /auth/me       -- Bearer access token -> current user
  POST /auth/logout   -- Bearer access token -> refresh token revoked
  GET  /auth/users    -- Bearer access token, ADMIN or above -> all users
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable, Mapping
from typing import Any

from api.errors import (
    AuthenticationError,
    AuthServiceError,
    MethodNotAllowedError,
    PermissionDeniedError,
    ValidationError,
)
from api.models import (
    LoginData,
    LogoutData,
    MeData,
    RefreshData,
    UserResponse,
    UsersData,
    success_payload,
)
from auth.models import Role, User, UserClaims, has_role
from auth.store import UserStore
from auth.tokens import (
    authenticate_user,
    issue_token_pair,
    refresh_access_token,
    revoke_refresh_token,
    validate_access_token,
)

logger = logging.getLogger("sessiongate.auth")

HandlerResult = tuple[int, dict]

INVALID_CREDENTIALS = "INVALID_CREDENTIALS"

_MSG_INVALID_TOKEN = "Invalid or expired token"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _error_boundary(handler: Callable[..., HandlerResult]) -> Callable[..., HandlerResult]:
    """Turn AuthServiceError raised inside `handler` into (status, error envelope)."""

    @functools.wraps(handler)
    def wrapper(store: UserStore, method: str, headers: Mapping[str, str], body: Any = None) -> HandlerResult:
        try:
            return handler(store, method, headers, body)
        except AuthServiceError as exc:
            return exc.status_code, exc.to_dict()

    return wrapper


def _require_method(method: str, allowed: str) -> None:
    if method.upper() != allowed:
        raise MethodNotAllowedError()


def _header(headers: Mapping[str, str], name: str) -> str | None:
    """Case-insensitive header lookup over a plain mapping."""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def _string_field(body: Any, name: str) -> str | None:
    """Return body[name] if body is a JSON object and the value is a non-empty string.

    Whitespace is not stripped: a blank password still goes on to the
    credential check.
    """
    if not isinstance(body, Mapping):
        return None
    value = body.get(name)
    if not isinstance(value, str) or not value:
        return None
    return value


def _bearer_token(headers: Mapping[str, str]) -> str:
    """Extract the token from "Authorization: Bearer <token>".

    Raises AuthenticationError("Authentication required") when the header is
    absent, uses another scheme, or carries no token.
    """
    auth_header = _header(headers, "Authorization") or ""
    scheme, _, token = auth_header.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("Authentication required")
    return token


def _authenticate(headers: Mapping[str, str]) -> UserClaims:
    claims = validate_access_token(_bearer_token(headers))
    if claims is None:
        raise AuthenticationError(_MSG_INVALID_TOKEN)
    return claims


def _current_user(store: UserStore, claims: UserClaims) -> User:
    user = store.find_user_by_id(claims.user_id)
    if user is None:
        raise AuthenticationError("User not found")
    return user


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


@_error_boundary
def login(store: UserStore, method: str, headers: Mapping[str, str], body: Any = None) -> HandlerResult:
    """Authenticate with email and password; issue a fresh token pair.

    Unknown email and wrong password produce the same 401 and the same
    INVALID_CREDENTIALS code, and take the same time (authenticate_user).
    A successful login replaces the user's stored refresh token.
    """
    _require_method(method, "POST")
    email = _string_field(body, "email")
    password = _string_field(body, "password")
    if email is None or password is None:
        raise ValidationError("Email and password are required")

    user = authenticate_user(store, email, password)
    if user is None:
        logger.info("Rejected login attempt")
        raise AuthenticationError("Invalid credentials", code=INVALID_CREDENTIALS)

    tokens = issue_token_pair(store, user)
    store.update_last_login(user.id)
    logger.info("User %d logged in (role=%s)", user.id, user.role.value)
    # Re-read so the response carries the last_login just written.
    fresh = store.find_user_by_id(user.id) or user
    data = LoginData(
        user=UserResponse.from_user(fresh),
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
    )
    return 200, success_payload(data)


@_error_boundary
def refresh(store: UserStore, method: str, headers: Mapping[str, str], body: Any = None) -> HandlerResult:
    """Exchange a refresh token for a new access token. The refresh token stays valid."""
    _require_method(method, "POST")
    token = _string_field(body, "refreshToken")
    if token is None:
        raise ValidationError("Refresh token is required")

    access_token = refresh_access_token(store, token)
    if access_token is None:
        raise AuthenticationError(_MSG_INVALID_TOKEN)
    return 200, success_payload(RefreshData(access_token=access_token))


@_error_boundary
def me(store: UserStore, method: str, headers: Mapping[str, str], body: Any = None) -> HandlerResult:
    """Return the user identified by the Bearer access token."""
    _require_method(method, "GET")
    claims = _authenticate(headers)
    user = _current_user(store, claims)
    return 200, success_payload(MeData(user=UserResponse.from_user(user)))


@_error_boundary
def logout(store: UserStore, method: str, headers: Mapping[str, str], body: Any = None) -> HandlerResult:
    """Revoke the caller's refresh token.

    The access token presented here is not revoked; it keeps working until it
    expires.
    """
    _require_method(method, "POST")
    claims = _authenticate(headers)
    user = _current_user(store, claims)
    revoke_refresh_token(store, user.id)
    logger.info("User %d logged out", user.id)
    return 200, success_payload(LogoutData(message="Logged out."))


@_error_boundary
def list_users(store: UserStore, method: str, headers: Mapping[str, str], body: Any = None) -> HandlerResult:
    """List every user. Requires ADMIN or SUPER_ADMIN.

    The role comes from the database, not the token, so a demotion takes
    effect immediately even for outstanding access tokens.
    """
    _require_method(method, "GET")
    claims = _authenticate(headers)
    caller = _current_user(store, claims)
    if not has_role(caller.role, Role.ADMIN):
        raise PermissionDeniedError()
    users = [UserResponse.from_user(u) for u in store.list_users()]
    return 200, success_payload(UsersData(users=users))
