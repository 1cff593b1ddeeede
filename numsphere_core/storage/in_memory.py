"""
In-memory repository.

Backs the service in development and tests. A seed file can preload users,
numbers and flows at startup.
"""

import asyncio
import json
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog

from .base import (
    CallFlowRecord,
    CallLogEntry,
    NumberRepository,
    NumberStatus,
    PhoneNumberRecord,
    SubscriptionInfo,
)

logger = structlog.get_logger()


class InMemoryNumberRepository(NumberRepository):
    """In-memory number repository implementation."""

    def __init__(self):
        """Initialize in-memory store."""
        self._numbers: Dict[str, PhoneNumberRecord] = {}
        self._subscriptions: Dict[str, SubscriptionInfo] = {}
        self._flows: Dict[str, List[CallFlowRecord]] = defaultdict(list)
        self._call_logs: Dict[str, List[CallLogEntry]] = defaultdict(list)
        self._lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Writes used by seeding and tests
    # -------------------------------------------------------------------------

    async def add_subscription(self, subscription: SubscriptionInfo) -> None:
        async with self._lock:
            self._subscriptions[subscription.user_id] = subscription

    async def add_number(self, number: PhoneNumberRecord) -> None:
        async with self._lock:
            self._numbers[number.id] = number

    async def add_flow(self, flow: CallFlowRecord) -> None:
        """
        Store a flow.

        Activating a flow deactivates the number's other flows, so a number
        has at most one active flow.
        """
        async with self._lock:
            flows = [f for f in self._flows[flow.number_id] if f.id != flow.id]
            if flow.is_active:
                flows = [replace(f, is_active=False) for f in flows]
            flows.append(flow)
            self._flows[flow.number_id] = flows

    # -------------------------------------------------------------------------
    # NumberRepository
    # -------------------------------------------------------------------------

    async def get_number(self, phone_number: str) -> Optional[PhoneNumberRecord]:
        for number in self._numbers.values():
            if number.phone_number == phone_number and number.status == NumberStatus.ACTIVE:
                return number
        return None

    async def get_subscription(self, user_id: str) -> Optional[SubscriptionInfo]:
        return self._subscriptions.get(user_id)

    async def get_active_flow(self, number_id: str) -> Optional[CallFlowRecord]:
        return next((f for f in self._flows.get(number_id, []) if f.is_active), None)

    async def record_usage(self, number_id: str, minutes: float) -> float:
        async with self._lock:
            number = self._numbers.get(number_id)
            if number is None:
                raise KeyError(f"Unknown number: {number_id}")

            number.minutes_used += minutes
            number.updated_at = datetime.utcnow()
            return number.minutes_used

    async def add_call_log(self, entry: CallLogEntry) -> None:
        async with self._lock:
            self._call_logs[entry.number_id].append(entry)

    async def list_call_logs(self, number_id: str) -> List[CallLogEntry]:
        return list(self._call_logs.get(number_id, []))

    # -------------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------------

    async def load_seed(self, data: Mapping[str, Any]) -> int:
        """
        Load users, numbers and flows from a decoded seed document.

        Format:
            {
              "users": [{"id", "has_completed_payment", "plan_id", "status"}],
              "numbers": [{"id", "phone_number", "user_id", "minutes_used",
                           "flows": [{"id", "name", "config", "is_active"}]}]
            }

        Returns:
            Number of phone numbers loaded
        """
        for user in data.get("users", []):
            await self.add_subscription(
                SubscriptionInfo(
                    user_id=str(user["id"]),
                    has_completed_payment=bool(user.get("has_completed_payment", False)),
                    plan_id=user.get("plan_id"),
                    status=user.get("status"),
                )
            )

        numbers = data.get("numbers", [])
        for item in numbers:
            number = PhoneNumberRecord(
                id=str(item["id"]),
                phone_number=item["phone_number"],
                user_id=item.get("user_id"),
                status=NumberStatus(item.get("status", NumberStatus.ACTIVE.value)),
                minutes_used=float(item.get("minutes_used") or 0),
                friendly_name=item.get("friendly_name"),
            )
            await self.add_number(number)

            for flow in item.get("flows", []):
                await self.add_flow(
                    CallFlowRecord(
                        id=str(flow["id"]),
                        number_id=number.id,
                        name=flow.get("name", ""),
                        config=flow.get("config"),
                        is_active=bool(flow.get("is_active", False)),
                    )
                )

        return len(numbers)

    async def load_seed_file(self, path: Union[str, Path]) -> int:
        """Load a JSON seed file. See load_seed for the format."""
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        count = await self.load_seed(data)
        logger.info("Loaded seed file", path=str(path), numbers=count)
        return count


__all__ = ["InMemoryNumberRepository"]
