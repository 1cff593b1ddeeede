"""
Usage gating and accounting.

Inbound calls are only compiled for owners with a completed payment and
minutes left on their plan. Completed calls add their duration, in
fractional minutes, to the number.
"""

from dataclasses import dataclass
from typing import Mapping, Optional

import structlog

from .config import Settings, get_settings
from .errors import MinuteLimitExceededError, ServiceUnavailableError
from .storage.base import CallLogEntry, NumberRepository, PhoneNumberRecord, SubscriptionInfo

logger = structlog.get_logger()


SERVICE_UNAVAILABLE_MESSAGE = "This service is temporarily unavailable."
MINUTE_LIMIT_MESSAGE = "Your monthly minute limit has been reached. Please upgrade your plan."

UNLIMITED = -1


@dataclass
class UsageSnapshot:
    """Minutes used against a plan limit."""

    minutes_used: float
    limit: int

    @property
    def unlimited(self) -> bool:
        return self.limit == UNLIMITED

    @property
    def ratio(self) -> float:
        if self.unlimited or self.limit <= 0:
            return 0.0
        return self.minutes_used / self.limit

    @property
    def exceeded(self) -> bool:
        return not self.unlimited and self.minutes_used >= self.limit


class MinuteLimitPolicy:
    """Decides whether a number may take a call."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def snapshot(
        self,
        number: PhoneNumberRecord,
        subscription: Optional[SubscriptionInfo],
    ) -> UsageSnapshot:
        plan_id = subscription.plan_id if subscription and subscription.is_active else None
        return UsageSnapshot(
            minutes_used=number.minutes_used,
            limit=self.settings.minute_limit_for(plan_id),
        )

    def check(
        self,
        number: PhoneNumberRecord,
        subscription: Optional[SubscriptionInfo],
    ) -> UsageSnapshot:
        """
        Check that a number may take a call.

        Raises:
            ServiceUnavailableError: Owner has not completed payment
            MinuteLimitExceededError: Plan minutes are used up
        """
        if subscription is None or not subscription.has_completed_payment:
            raise ServiceUnavailableError(
                SERVICE_UNAVAILABLE_MESSAGE,
                {"user_id": number.user_id},
            )

        snapshot = self.snapshot(number, subscription)
        if snapshot.exceeded:
            raise MinuteLimitExceededError(
                MINUTE_LIMIT_MESSAGE,
                {
                    "user_id": number.user_id,
                    "minutes_used": snapshot.minutes_used,
                    "limit": snapshot.limit,
                },
            )
        return snapshot


@dataclass
class CallStatusEvent:
    """A call status callback."""

    call_sid: str
    call_status: str
    duration_seconds: Optional[int] = None
    from_number: str = ""
    to_number: str = ""
    direction: str = ""

    @classmethod
    def from_form(cls, form: Mapping[str, str]) -> "CallStatusEvent":
        """Build from Twilio's form parameters."""
        raw_duration = form.get("CallDuration")
        try:
            duration = int(raw_duration) if raw_duration else None
        except ValueError:
            duration = None

        return cls(
            call_sid=form.get("CallSid", ""),
            call_status=form.get("CallStatus", ""),
            duration_seconds=duration,
            from_number=form.get("From", ""),
            to_number=form.get("To", ""),
            direction=form.get("Direction", ""),
        )

    @property
    def tracked_number(self) -> str:
        """The rented number: the callee for inbound calls, else the caller."""
        return self.to_number if self.direction == "inbound" else self.from_number

    @property
    def is_billable(self) -> bool:
        return self.call_status == "completed" and bool(self.duration_seconds)


class UsageRecorder:
    """Adds completed calls to a number's minutes and call log."""

    def __init__(
        self,
        repository: NumberRepository,
        settings: Optional[Settings] = None,
    ):
        self.repository = repository
        self.policy = MinuteLimitPolicy(settings)
        self.settings = self.policy.settings

    async def record_completed_call(
        self,
        number: PhoneNumberRecord,
        event: CallStatusEvent,
    ) -> Optional[UsageSnapshot]:
        """
        Record a completed call.

        Args:
            number: Number the call belongs to
            event: Status callback

        Returns:
            Usage after the call, or None when the event is not billable
        """
        if not event.is_billable:
            return None

        seconds = event.duration_seconds or 0
        minutes = seconds / 60

        total = await self.repository.record_usage(number.id, minutes)

        subscription = None
        if number.user_id:
            subscription = await self.repository.get_subscription(number.user_id)

        snapshot = self.policy.snapshot(number, subscription)
        snapshot.minutes_used = total

        logger.info(
            "Recorded call minutes",
            call_sid=event.call_sid,
            number=number.phone_number,
            seconds=seconds,
            minutes=round(minutes, 2),
            minutes_used=round(total, 2),
            limit="unlimited" if snapshot.unlimited else snapshot.limit,
        )

        if not snapshot.unlimited:
            if snapshot.ratio >= self.settings.usage_warning_ratio:
                logger.warning(
                    "Approaching minute limit",
                    user_id=number.user_id,
                    usage_percent=round(snapshot.ratio * 100, 1),
                )
            if snapshot.exceeded:
                logger.warning(
                    "Minute limit exceeded",
                    user_id=number.user_id,
                    minutes_used=round(total, 2),
                    limit=snapshot.limit,
                )

        await self.repository.add_call_log(
            CallLogEntry(
                call_sid=event.call_sid,
                number_id=number.id,
                from_number=event.from_number,
                to_number=event.to_number,
                direction=event.direction or "unknown",
                call_status=event.call_status,
                duration_seconds=seconds,
                minutes=minutes,
                user_id=number.user_id,
            )
        )

        return snapshot


__all__ = [
    "SERVICE_UNAVAILABLE_MESSAGE",
    "MINUTE_LIMIT_MESSAGE",
    "UsageSnapshot",
    "MinuteLimitPolicy",
    "CallStatusEvent",
    "UsageRecorder",
]
