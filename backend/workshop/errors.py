from __future__ import annotations
"""Domain error taxonomy.

Every error is a werkzeug HTTPException so it can be raised from services and
views alike and rendered by the app-wide handler. `error_code` is the stable
machine readable code returned to API clients.
"""
from typing import Any, Dict, Optional
from werkzeug.exceptions import HTTPException

# Fallback codes for plain abort() calls
STATUS_CODES = {
    400: 'validation',
    401: 'unauthorized',
    403: 'forbidden',
    404: 'not_found',
    405: 'validation',
    409: 'conflict',
    422: 'validation',
    423: 'locked',
    429: 'rate_limited',
}


class WorkshopError(HTTPException):
    code = 400
    error_code = 'validation'

    def __init__(self, description: Optional[str] = None, **extra: Any):
        super().__init__(description=description)
        self.extra: Dict[str, Any] = extra


class ValidationError(WorkshopError):
    code = 400
    error_code = 'validation'


class NotFoundError(WorkshopError):
    code = 404
    error_code = 'not_found'


class ForbiddenError(WorkshopError):
    code = 403
    error_code = 'forbidden'


class ConflictError(WorkshopError):
    code = 409
    error_code = 'conflict'


class AccountLockedError(WorkshopError):
    code = 423
    error_code = 'locked'


class InvalidTransitionError(WorkshopError):
    code = 400
    error_code = 'invalid_transition'


class TokenError(WorkshopError):
    """Approval token rejected. `reason` is one of TOKEN_ERROR_REASONS."""
    code = 400
    error_code = 'token_error'

    def __init__(self, reason: str, description: Optional[str] = None):
        super().__init__(description or TOKEN_ERROR_MESSAGES.get(reason, reason), reason=reason)
        self.reason = reason


TOKEN_INVALID = 'invalid_token'
TOKEN_USED = 'token_used'
TOKEN_EXPIRED = 'expired'
TOKEN_ALREADY_PROCESSED = 'already_processed'

TOKEN_ERROR_MESSAGES = {
    TOKEN_INVALID: 'Invalid token',
    TOKEN_USED: 'Token has already been used',
    TOKEN_EXPIRED: 'Token has expired',
    TOKEN_ALREADY_PROCESSED: 'Quote has already been processed',
}


def error_code_for(exc: HTTPException) -> str:
    if isinstance(exc, WorkshopError):
        return exc.error_code
    return STATUS_CODES.get(exc.code or 500, 'internal')


__all__ = [
    'WorkshopError', 'ValidationError', 'ForbiddenError', 'NotFoundError', 'ConflictError', 'AccountLockedError',
    'InvalidTransitionError', 'TokenError', 'error_code_for',
    'TOKEN_INVALID', 'TOKEN_USED', 'TOKEN_EXPIRED', 'TOKEN_ALREADY_PROCESSED',
]
