"""
Error types for the call-flow service.

Compilation problems caused by user data (missing config, dangling
connections) are not errors; they degrade locally. The exceptions here
cover the cases that replace the whole response document.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Standardized error codes."""

    FLOW_CONFIG_INVALID = "FLOW_2001"
    NUMBER_NOT_CONFIGURED = "RES_3001"
    SERVICE_UNAVAILABLE = "BIZ_6001"
    MINUTE_LIMIT_EXCEEDED = "RATE_4002"
    INVALID_SIGNATURE = "AUTH_1006"


class NumSphereError(Exception):
    """Base exception for the service."""

    code: ErrorCode = ErrorCode.FLOW_CONFIG_INVALID

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class FlowConfigError(NumSphereError):
    """Flow definition is malformed, unparseable or structurally invalid."""

    code = ErrorCode.FLOW_CONFIG_INVALID


class NumberNotConfiguredError(NumSphereError):
    """Called number is unknown or not active."""

    code = ErrorCode.NUMBER_NOT_CONFIGURED


class ServiceUnavailableError(NumSphereError):
    """Number owner has no paid subscription."""

    code = ErrorCode.SERVICE_UNAVAILABLE


class MinuteLimitExceededError(NumSphereError):
    """Number owner has used up the plan's monthly minutes."""

    code = ErrorCode.MINUTE_LIMIT_EXCEEDED


class InvalidSignatureError(NumSphereError):
    """Webhook request failed Twilio signature validation."""

    code = ErrorCode.INVALID_SIGNATURE


__all__ = [
    "ErrorCode",
    "NumSphereError",
    "FlowConfigError",
    "NumberNotConfiguredError",
    "ServiceUnavailableError",
    "MinuteLimitExceededError",
    "InvalidSignatureError",
]
