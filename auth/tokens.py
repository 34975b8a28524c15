"""
auth/tokens.py -- Password hashing and the access/refresh token service.

Security design decisions:
  JWT: python-jose with HS256. Both token kinds are signed with SECRET_KEY and
       carry a "typ" claim ("access" or "refresh") so one kind can never be
       replayed as the other. Every token gets a random "jti", so two tokens
       minted in the same second for the same user are still distinct.
       Verification returns None on any failure -- the handler layer turns
       that into a 401.

  Access tokens: sub (user id), role, typ, iat, exp, jti. Stateless: validation
       never touches the store, so a deleted user's access token stays valid
       until it expires. Keep ACCESS_TOKEN_EXPIRE_SECONDS short.

  Refresh tokens: sub, typ, iat, exp, jti. The store keeps one
       HMAC-SHA256(SECRET_KEY, token) digest per user. A refresh token is
       accepted only if it verifies AND its digest equals the stored one, so
       issuing a new pair invalidates the old refresh token (one live session
       per user) and logout can revoke it. A leaked DB does not leak usable
       refresh tokens.

  Rotation policy: refresh_access_token() does NOT rotate the refresh token.
       The same refresh token keeps working until the next login replaces it
       or logout clears it.

  Passwords: bcrypt directly (no passlib wrapper). The _DUMMY_HASH constant
       enables timing equalization in authenticate_user() so response time
       does not reveal whether an email exists.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import bcrypt
from jose import JWTError, jwt

from auth.models import Role, TokenPair, User, UserClaims
from core.config import get_settings

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("sessiongate.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes; longer inputs are truncated here
    explicitly because bcrypt 4.x raises instead of truncating.
    """
    pw_bytes = plain.encode("utf-8")[:72]
    return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=_settings.bcrypt_rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("sessiongate_timing_dummy")


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Check an email/password pair with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure. Callers must not tell
    the two failure cases apart.
    """
    user = store.find_user_by_email(email)
    if user is None or not user.hashed_password:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# Signing primitive
# ---------------------------------------------------------------------------


def sign_token(claims: dict[str, Any], ttl_seconds: int) -> str:
    """Sign `claims` as a JWT that expires `ttl_seconds` from now.

    iat, exp and a random jti are added here; callers supply only the
    identity claims.
    """
    now = datetime.now(timezone.utc)
    payload = {
        **claims,
        "iat": now,
        "exp": now + timedelta(seconds=ttl_seconds),
        "jti": secrets.token_urlsafe(16),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def verify_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure.

    Covers bad signatures, malformed strings and expired tokens alike.
    """
    try:
        return jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None


def hash_refresh_token(token: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, token) as hex -- the form stored on the user row."""
    return hmac.new(
        _settings.secret_key.encode(),
        token.encode(),
        hashlib.sha256,
    ).hexdigest()


# ---------------------------------------------------------------------------
# Token service
# ---------------------------------------------------------------------------


def create_access_token(user_id: int, role: Role, expire_seconds: int = 0) -> str:
    """Encode a short-lived access token carrying user id and role.

    Args:
        user_id:        Numeric user ID stored in the DB.
        role:           The user's role at issue time.
        expire_seconds: Lifetime in seconds. If 0 (default), uses
                        Settings.access_token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.access_token_expire_seconds
    claims = {"sub": str(user_id), "role": Role(role).value, "typ": ACCESS_TOKEN_TYPE}
    return sign_token(claims, duration)


def create_refresh_token(user_id: int, expire_seconds: int = 0) -> str:
    duration = expire_seconds if expire_seconds > 0 else _settings.refresh_token_expire_seconds
    return sign_token({"sub": str(user_id), "typ": REFRESH_TOKEN_TYPE}, duration)


def issue_token_pair(store: UserStore, user: User) -> TokenPair:
    """Mint an access/refresh pair for `user` and persist the refresh digest.

    Overwrites whatever refresh digest the user had, so any refresh token
    issued earlier (another device, a concurrent login) stops working.
    """
    if user.id is None:
        raise ValueError("Cannot issue tokens for a user without an id.")
    access_token = create_access_token(user.id, user.role)
    refresh_token = create_refresh_token(user.id)
    digest = hash_refresh_token(refresh_token)
    store.update_user_refresh_token(user.id, digest)
    user.refresh_token_hash = digest
    return TokenPair(access_token=access_token, refresh_token=refresh_token)


def _subject_id(payload: dict) -> int | None:
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        return None


def validate_access_token(token: str) -> UserClaims | None:
    """Verify an access token and return its claims, or None if it is not acceptable.

    Purely cryptographic: the store is not consulted.
    """
    payload = verify_token(token)
    if payload is None or payload.get("typ") != ACCESS_TOKEN_TYPE:
        return None
    user_id = _subject_id(payload)
    if user_id is None:
        return None
    try:
        role = Role(payload.get("role"))
    except ValueError:
        return None
    return UserClaims(
        user_id=user_id,
        role=role,
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )


def validate_refresh_token(store: UserStore, token: str) -> User | None:
    """Return the token's user if the refresh token verifies and is the one on file.

    None on a bad signature, expiry, wrong token type, unknown user, or a
    digest that differs from the stored one (replaced or revoked session).
    """
    payload = verify_token(token)
    if payload is None or payload.get("typ") != REFRESH_TOKEN_TYPE:
        return None
    user_id = _subject_id(payload)
    if user_id is None:
        return None
    user = store.find_user_by_id(user_id)
    if user is None or user.refresh_token_hash is None:
        return None
    if not hmac.compare_digest(user.refresh_token_hash, hash_refresh_token(token)):
        logger.info("Refresh token for user %d is no longer current", user_id)
        return None
    return user


def refresh_access_token(store: UserStore, token: str) -> str | None:
    """Exchange a valid refresh token for a new access token. The refresh token is kept."""
    user = validate_refresh_token(store, token)
    if user is None:
        return None
    return create_access_token(user.id, user.role)


def revoke_refresh_token(store: UserStore, user_id: int) -> None:
    """Clear the stored refresh digest so no outstanding refresh token is accepted."""
    store.update_user_refresh_token(user_id, None)
