from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

_VALID_ERROR_CODES = frozenset({
    "unauthorized",
    "validation_error",
    "server_error",
})


class ErrorBody(BaseModel):
    """Error envelope body with stable code values."""

    code: str
    message: str
    details: Optional[Any] = None  # object, array, or null

    @field_validator("code")
    @classmethod
    def _validate_error_code(cls, value: str) -> str:
        if value not in _VALID_ERROR_CODES:
            raise ValueError(
                f"Invalid error code '{value}'. Must be one of: {', '.join(sorted(_VALID_ERROR_CODES))}"
            )
        return value


class Envelope(BaseModel):
    status: str = Field(..., pattern="^(ok|error)$")
    data: Optional[Any] = None
    error: Optional[ErrorBody] = None
    request_id: str = Field(default_factory=lambda: str(uuid4()))


class LoginRequest(BaseModel):
    scope: str = Field(..., min_length=1, max_length=128)
    identifier: str = Field(..., min_length=1, max_length=320)
    password: Optional[str] = Field(default=None, max_length=1024)

    @field_validator("scope")
    @classmethod
    def _reject_separator(cls, value: str) -> str:
        # ':' separates scope from identifier in the lookup key
        if ":" in value:
            raise ValueError("scope must not contain ':'")
        return value


class SessionUser(BaseModel):
    user_id: str
    attributes: Dict[str, Any] = Field(default_factory=dict)


class LoginResponse(BaseModel):
    user: SessionUser
    access_token_expires_at: datetime
