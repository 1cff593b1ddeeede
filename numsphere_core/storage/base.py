"""
Storage interface for numbers, flows and usage.

The call-flow core never performs I/O itself; the webhook layer loads what
it needs through a NumberRepository before compiling and reports usage
through it afterwards.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional


class NumberStatus(str, Enum):
    """Lifecycle of a rented number."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    RELEASED = "released"


@dataclass
class SubscriptionInfo:
    """Billing state of a number's owner."""

    user_id: str
    has_completed_payment: bool = False
    plan_id: Optional[str] = None
    status: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == "active"


@dataclass
class PhoneNumberRecord:
    """A rented phone number."""

    id: str
    phone_number: str
    user_id: Optional[str] = None
    status: NumberStatus = NumberStatus.ACTIVE
    minutes_used: float = 0.0
    friendly_name: Optional[str] = None
    updated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class CallFlowRecord:
    """A stored call flow. ``config`` is kept exactly as saved by the editor."""

    id: str
    number_id: str
    name: str
    config: Any
    is_active: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class CallLogEntry:
    """One completed call."""

    call_sid: str
    number_id: str
    from_number: str = ""
    to_number: str = ""
    direction: str = "unknown"
    call_status: str = ""
    duration_seconds: int = 0
    minutes: float = 0.0
    user_id: Optional[str] = None
    recorded_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def duration_formatted(self) -> str:
        minutes, seconds = divmod(self.duration_seconds, 60)
        return f"{minutes}:{seconds:02d}"


class NumberRepository(ABC):
    """Abstract number and flow storage interface."""

    @abstractmethod
    async def get_number(self, phone_number: str) -> Optional[PhoneNumberRecord]:
        """Get an active number by its E.164 phone number."""
        pass

    @abstractmethod
    async def get_subscription(self, user_id: str) -> Optional[SubscriptionInfo]:
        """Get the billing state of a user."""
        pass

    @abstractmethod
    async def get_active_flow(self, number_id: str) -> Optional[CallFlowRecord]:
        """Get the active flow of a number."""
        pass

    @abstractmethod
    async def record_usage(self, number_id: str, minutes: float) -> float:
        """Add used minutes to a number. Returns the new total."""
        pass

    @abstractmethod
    async def add_call_log(self, entry: CallLogEntry) -> None:
        """Store a call log entry."""
        pass

    @abstractmethod
    async def list_call_logs(self, number_id: str) -> List[CallLogEntry]:
        """List call log entries of a number, oldest first."""
        pass


__all__ = [
    "NumberStatus",
    "SubscriptionInfo",
    "PhoneNumberRecord",
    "CallFlowRecord",
    "CallLogEntry",
    "NumberRepository",
]
