"""Domain models shared across services."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def ensure_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RecipientClass(str, Enum):
    """Audience of a speed notification."""

    company = "company"
    customer = "customer"


@dataclass(frozen=True, slots=True)
class Agreement:
    """A rental binding one asset and one customer to a speed limit for a time window."""

    id: str
    asset_id: str
    customer_id: str
    speed_limit: float
    start_time: datetime
    end_time: datetime

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Agreement id must not be empty.")
        if not self.asset_id:
            raise ValueError("Agreement asset_id must not be empty.")
        limit = float(self.speed_limit)
        if not math.isfinite(limit) or limit <= 0:
            raise ValueError("Agreement speed_limit must be a positive number.")
        start = ensure_utc(self.start_time)
        end = ensure_utc(self.end_time)
        if start >= end:
            raise ValueError("Agreement start_time must be before end_time.")
        object.__setattr__(self, "speed_limit", limit)
        object.__setattr__(self, "start_time", start)
        object.__setattr__(self, "end_time", end)

    def is_active_at(self, instant: datetime) -> bool:
        """Whether ``instant`` falls in the half-open window ``[start_time, end_time)``."""
        return self.start_time <= ensure_utc(instant) < self.end_time


@dataclass(frozen=True, slots=True)
class SpeedSample:
    """A speed reading for one asset, consumed as soon as it is received."""

    asset_id: str
    speed: float
    received_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True, slots=True)
class Notification:
    recipient: RecipientClass
    agreement: Agreement
    message: str


@dataclass(frozen=True, slots=True)
class SpeedViolation:
    """Outcome of a sample that exceeded its agreement's limit."""

    agreement: Agreement
    speed: float
    message: str
