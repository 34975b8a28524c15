"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, minimal logic). Dataclasses own the
domain shape; the store and the token service do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """Closed set of user roles. Values match the names on the wire and in the DB."""

    USER = "USER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


# Every Role must appear here; has_role() raises KeyError on a missing entry
# instead of silently granting or denying access.
_ROLE_RANK: dict[Role, int] = {
    Role.USER: 0,
    Role.ADMIN: 1,
    Role.SUPER_ADMIN: 2,
}


def has_role(role: Role, minimum: Role) -> bool:
    """Return True if `role` ranks at or above `minimum` (USER < ADMIN < SUPER_ADMIN)."""
    return _ROLE_RANK[role] >= _ROLE_RANK[minimum]


@dataclass
class User:
    """Represents an identity that can log in.

    email is stored lower-cased and stripped; the store normalizes on every
    write and lookup so callers never have to.

    refresh_token_hash holds the HMAC digest of the one live refresh token for
    this user, or None when no session is active. Issuing a new token pair
    overwrites it, which invalidates every refresh token issued before.
    """

    email: str
    role: Role
    id: int | None = None
    hashed_password: str | None = None
    name: str | None = None
    refresh_token_hash: str | None = None
    created_at: str | None = None
    last_login: str | None = None


@dataclass(frozen=True)
class UserClaims:
    """Identity decoded from a verified access token. No DB lookup behind it."""

    user_id: int
    role: Role
    expires_at: datetime


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
