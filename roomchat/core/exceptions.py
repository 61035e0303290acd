# roomchat/core/exceptions.py
"""Custom exceptions for the chat API."""
from fastapi import HTTPException
from typing import Any, Dict, Optional


class ChatException(HTTPException):
    """Base exception for the chat API."""
    code = "INTERNAL_ERROR"

    def __init__(
        self,
        status_code: int,
        detail: str,
        details: Any = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.details = details


class AuthenticationError(ChatException):
    """Missing, invalid, expired or revoked credentials."""
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "token is expired or not valid, authorization denied"):
        super().__init__(status_code=401, detail=message)


class AuthorizationError(ChatException):
    """Authenticated, but not allowed to act on the resource."""
    code = "FORBIDDEN"

    def __init__(self, message: str = "You are not a member of this room"):
        super().__init__(status_code=403, detail=message)


class ValidationFailed(ChatException):
    """Exception raised for validation errors."""
    code = "VALIDATION_ERROR"

    def __init__(self, message: str = "validation errors", errors: Optional[list] = None):
        super().__init__(status_code=400, detail=message, details=errors or [])


class NotFoundError(ChatException):
    code = "NOT_FOUND"

    def __init__(self, message: str = "Resource not found"):
        super().__init__(status_code=404, detail=message)


class ConflictError(ChatException):
    code = "CONFLICT"

    def __init__(self, message: str):
        super().__init__(status_code=409, detail=message)


class UnprocessableError(ChatException):
    code = "UNPROCESSABLE_ENTITY"

    def __init__(self, message: str):
        super().__init__(status_code=422, detail=message)


class RateLimitExceeded(ChatException):
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, limit: int, window_seconds: int, retry_after: int):
        super().__init__(
            status_code=429,
            detail="Too many requests, please try again later.",
            details={
                "limit": limit,
                "windowSeconds": window_seconds,
                "retryAfter": retry_after,
            },
            headers={"Retry-After": str(retry_after)},
        )
