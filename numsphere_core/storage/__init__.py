"""Number, flow and usage storage."""

from .base import (
    CallFlowRecord,
    CallLogEntry,
    NumberRepository,
    NumberStatus,
    PhoneNumberRecord,
    SubscriptionInfo,
)
from .in_memory import InMemoryNumberRepository

__all__ = [
    "CallFlowRecord",
    "CallLogEntry",
    "NumberRepository",
    "NumberStatus",
    "PhoneNumberRecord",
    "SubscriptionInfo",
    "InMemoryNumberRepository",
]
