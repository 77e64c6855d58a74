"""Error taxonomy shared by the services and the HTTP layer.

Provider-level errors live next to the adapters in ``chat_gateway.providers.base``;
everything here is raised by the orchestration side of a turn.
"""

from enum import Enum
from typing import Any, Dict, Optional

from fastapi import HTTPException


class AccessReason(str, Enum):
    QUOTA_NEW_CHAT = "quota_new_chat"
    QUOTA_MESSAGES = "quota_messages"
    PREMIUM_REQUIRED = "premium_required"


class GatewayError(Exception):
    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def payload(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


class IntakeError(GatewayError):
    status_code = 400
    code = "bad_request"


class AuthError(GatewayError):
    status_code = 401
    code = "auth_failed"


class AccessDeniedError(GatewayError):
    status_code = 403
    code = "access_denied"

    _MESSAGES = {
        AccessReason.QUOTA_NEW_CHAT: "Free tier limit reached: maximum {limit} chats allowed. Please upgrade to continue.",
        AccessReason.QUOTA_MESSAGES: "Free tier limit: maximum {limit} messages per chat reached. Please start a new chat or upgrade.",
        AccessReason.PREMIUM_REQUIRED: "Model not available for free users. Please subscribe to access this model.",
    }

    def __init__(self, reason: AccessReason, *, limit: Optional[int] = None) -> None:
        super().__init__(self._MESSAGES[reason].format(limit=limit))
        self.reason = reason

    def payload(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code, "reason": self.reason.value}


class SessionOwnershipError(GatewayError):
    status_code = 403
    code = "forbidden"


class AttachmentError(GatewayError):
    # only surfaced when no usable content is left for the turn
    status_code = 422
    code = "attachment_error"


class UploadTooLargeError(GatewayError):
    status_code = 413
    code = "upload_too_large"


class PersistenceError(GatewayError):
    code = "persistence_error"


def to_http_exception(exc: Exception) -> HTTPException:
    """Map a typed error onto an HTTPException with a machine-readable body."""
    if isinstance(exc, GatewayError):
        return HTTPException(status_code=exc.status_code, detail=exc.payload())
    # provider errors carry the same interface without inheriting from GatewayError
    status_code = getattr(exc, "status_code", 500)
    return HTTPException(status_code=status_code, detail=error_payload(exc))


def error_payload(exc: Exception) -> Dict[str, Any]:
    if isinstance(exc, GatewayError):
        return exc.payload()
    return {"error": str(exc), "code": getattr(exc, "code", "internal_error")}
