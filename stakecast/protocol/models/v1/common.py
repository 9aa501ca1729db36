"""API v1 common models and error envelope.

These models are public contract shapes consumed by dApp front ends and
indexers.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from stakecast.engine.types import ProtocolError
from stakecast.shared.enums import ErrorCategory


class APIVersion(str, Enum):
    V1 = "v1"


class APIError(BaseModel):
    model_config = ConfigDict(extra="ignore")

    code: str = Field(..., description="Stable machine-readable error code")
    category: ErrorCategory = Field(..., description="authorization | not_found | validation | phase | ledger")
    message: str = Field(..., description="Human-friendly error message")
    details: Optional[Dict[str, Any]] = Field(
        default=None, description="Optional structured error details"
    )


class ErrorResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: APIVersion = Field(default=APIVersion.V1)
    error: APIError


class ResponseMeta(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: APIVersion = Field(default=APIVersion.V1)
    height: Optional[int] = Field(default=None, description="Block height the response reflects")


def error_response(exc: ProtocolError) -> ErrorResponse:
    details = {k: v if isinstance(v, (int, str, bool)) or v is None else str(v) for k, v in exc.details.items()}
    return ErrorResponse(
        error=APIError(
            code=exc.code,
            category=exc.category,
            message=exc.message,
            details=details or None,
        )
    )


__all__ = [
    "APIVersion",
    "APIError",
    "ErrorResponse",
    "ResponseMeta",
    "error_response",
]
