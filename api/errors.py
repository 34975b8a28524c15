"""
api/errors.py -- Error taxonomy for the auth handlers.

Exception hierarchy:
    AuthServiceError (base)
    ├── ValidationError         400  missing or malformed request fields
    ├── AuthenticationError     401  bad credentials, missing/bad/expired token
    ├── PermissionDeniedError   403  authenticated but role too low
    └── MethodNotAllowedError   405  wrong HTTP method

Handlers raise these and convert them to the error envelope at their own
boundary. Anything that is not an AuthServiceError (database down, bad
configuration) is deliberately left alone and surfaces as a 500, so a broken
server is never reported as "Invalid credentials".
"""

from __future__ import annotations

from typing import Optional

from api.models import ErrorResponse


class AuthServiceError(Exception):
    """Base class for errors a handler turns into a client-facing response.

    Attributes:
        message:     Human-readable error, returned verbatim as "error".
        status_code: HTTP status for the response.
        code:        Optional machine-readable code, returned as "code".
    """

    status_code: int = 400

    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        self.code = code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Return the error envelope: {"success": false, "error": ..., "code"?: ...}."""
        return ErrorResponse(error=self.message, code=self.code).model_dump(exclude_none=True)


class ValidationError(AuthServiceError):
    status_code = 400


class AuthenticationError(AuthServiceError):
    status_code = 401


class PermissionDeniedError(AuthServiceError):
    status_code = 403

    def __init__(self, message: str = "Insufficient permissions", code: Optional[str] = "FORBIDDEN"):
        super().__init__(message, code)


class MethodNotAllowedError(AuthServiceError):
    status_code = 405

    def __init__(self, message: str = "Method not allowed", code: Optional[str] = None):
        super().__init__(message, code)
