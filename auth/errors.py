"""
Error taxonomy for the auth and account-linking flows.

Every error is an ``HTTPException`` so FastAPI renders it directly, and
carries a stable string ``code`` that clients use to pick user-facing copy.
Messages are user-safe: provider internals and secrets never end up here.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Type

from fastapi import HTTPException, status


class AuthFlowError(HTTPException):
    """Base class: ``status_code`` (HTTP) and ``code`` (machine-readable) are separate."""

    code: str = "INTERNAL_ERROR"
    default_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Unexpected error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(
            status_code=status_code or self.default_status,
            detail=message or self.default_message,
            headers=headers,
        )

    @property
    def message(self) -> str:
        return str(self.detail)

    def to_payload(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class UnauthorizedError(AuthFlowError):
    code = "UNAUTHORIZED"
    default_status = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(AuthFlowError):
    code = "FORBIDDEN"
    default_status = status.HTTP_403_FORBIDDEN
    default_message = "Insufficient privileges"


class ValidationError(AuthFlowError):
    code = "VALIDATION_ERROR"
    default_status = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input"


class NotFoundError(AuthFlowError):
    code = "NOT_FOUND"
    default_status = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ProviderDisabledError(AuthFlowError):
    code = "PROVIDER_DISABLED"
    default_status = status.HTTP_403_FORBIDDEN
    default_message = "Google authentication is currently disabled or not configured"


class CSRFMismatchError(AuthFlowError):
    code = "CSRF_MISMATCH"
    default_status = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid state parameter - possible CSRF attack"


class DuplicateInvocationError(AuthFlowError):
    code = "DUPLICATE_INVOCATION"
    default_status = status.HTTP_409_CONFLICT
    default_message = "OAuth callback already processed"


class ExchangeFailedError(AuthFlowError):
    code = "EXCHANGE_FAILED"
    default_status = status.HTTP_502_BAD_GATEWAY
    default_message = "Failed to exchange authorization code"


class AlreadyConnectedError(AuthFlowError):
    code = "ALREADY_CONNECTED"
    default_status = status.HTTP_409_CONFLICT
    default_message = "A Google account is already connected to this user"


class GoogleAccountInUseError(AuthFlowError):
    code = "GOOGLE_ACCOUNT_IN_USE"
    default_status = status.HTTP_409_CONFLICT
    default_message = "This Google account is already connected to another user"


class EmailAlreadyExistsError(AuthFlowError):
    code = "EMAIL_ALREADY_EXISTS"
    default_status = status.HTTP_409_CONFLICT
    default_message = "An account with this email already exists with a different authentication method"


class InternalError(AuthFlowError):
    code = "INTERNAL_ERROR"


_BY_CODE: Dict[str, Type[AuthFlowError]] = {
    cls.code: cls
    for cls in (
        UnauthorizedError,
        ForbiddenError,
        ValidationError,
        NotFoundError,
        ProviderDisabledError,
        CSRFMismatchError,
        DuplicateInvocationError,
        ExchangeFailedError,
        AlreadyConnectedError,
        GoogleAccountInUseError,
        EmailAlreadyExistsError,
        InternalError,
    )
}


def error_from_payload(status_code: int, payload: Optional[Mapping[str, Any]]) -> AuthFlowError:
    """Rebuild a typed error from an API error body (client side)."""
    payload = payload or {}
    code = str(payload.get("code") or "")
    message = payload.get("message") or payload.get("detail")
    cls = _BY_CODE.get(code)
    if cls is None:
        if status_code == status.HTTP_401_UNAUTHORIZED:
            cls = UnauthorizedError
        elif status_code == status.HTTP_403_FORBIDDEN:
            cls = ForbiddenError
        else:
            return InternalError(str(message) if message else None, status_code=status_code)
    if cls is UnauthorizedError:
        return UnauthorizedError(str(message) if message else None)
    return cls(str(message) if message else None)
