"""
API request and response models for SessionGate endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Handlers map between the two.

Wire format: JSON keys are camelCase (accessToken, createdAt) via the
to_camel alias generator; Python attributes stay snake_case.

Every response is wrapped in an envelope:
  success -> {"success": true, "data": {...}}
  failure -> {"success": false, "error": "<message>", "code": "<CODE>"}  (code optional)
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from auth.models import Role, User

_WIRE_CONFIG = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Error envelope returned on every 4xx/5xx response.

    Dump with exclude_none=True so "code" is omitted when not set.
    """

    model_config = ConfigDict(frozen=True)

    success: bool = False
    error: str
    code: Optional[str] = None


def success_payload(data: BaseModel) -> dict:
    """Wrap a response model in the success envelope, serialized for JSON."""
    return {"success": True, "data": data.model_dump(mode="json", by_alias=True)}


# ---------------------------------------------------------------------------
# Response data models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user. Never includes the password hash or refresh digest."""

    model_config = _WIRE_CONFIG

    id: int
    email: str
    name: Optional[str] = None
    role: Role
    created_at: Optional[str] = None
    last_login: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            created_at=user.created_at,
            last_login=user.last_login,
        )


class LoginData(BaseModel):
    """Data for a successful POST /auth/login."""

    model_config = _WIRE_CONFIG

    user: UserResponse
    access_token: str
    refresh_token: str


class RefreshData(BaseModel):
    """Data for a successful POST /auth/refresh. The refresh token itself is not reissued."""

    model_config = _WIRE_CONFIG

    access_token: str


class MeData(BaseModel):
    model_config = _WIRE_CONFIG

    user: UserResponse


class LogoutData(BaseModel):
    model_config = _WIRE_CONFIG

    message: str


class UsersData(BaseModel):
    """Data for GET /auth/users (admin only)."""

    model_config = _WIRE_CONFIG

    users: list[UserResponse]


class HealthResponse(BaseModel):
    """Response for GET /health. Not wrapped in the envelope so probes stay simple."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
