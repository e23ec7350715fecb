"""
Domain models for schedules, reservations and access tokens.
"""

from dataclasses import dataclass
from datetime import time
from enum import Enum
from typing import Any, Dict, NamedTuple, Tuple

import pendulum
from pendulum import Date, DateTime


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable half-open time range [start, end).
    
    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime
    
    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")
    
    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)
    
    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another. Touching ranges do not."""
        return self.start < other.end and other.start < self.end
    
    def __str__(self) -> str:
        return f"{self.start.format('DD.MM.YYYY HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True, order=True)
class TimeSlot:
    """A time of day at which a reservation may begin."""
    hour: int
    minute: int

    @property
    def label(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    def to_time(self) -> time:
        return time(hour=self.hour, minute=self.minute)

    def on(self, day: Date, timezone: str) -> DateTime:
        """Anchor the slot on a calendar day in the given timezone."""
        return pendulum.datetime(day.year, day.month, day.day, self.hour, self.minute, tz=timezone)

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class ClassDefinition:
    """A bookable class from the catalog."""
    id: str
    name: str
    duration_minutes: int

    def __post_init__(self):
        if self.duration_minutes <= 0:
            raise ValueError(f"Class {self.id!r} must have a positive duration")

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ClassDefinition":
        return ClassDefinition(
            id=str(data["id"]),
            name=str(data["name"]),
            duration_minutes=int(data["durationMinutes"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "durationMinutes": self.duration_minutes}


@dataclass(frozen=True)
class Reservation:
    """
    A persisted reservation. The id is assigned by the store.

    Serialized with the store's wire keys (studentId, startISO, ...).
    """
    id: str
    subject_id: str
    class_id: str
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError("Reservation start time must be earlier than end time.")

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)

    def date_in(self, timezone: str) -> Date:
        """Calendar date of the start instant in the given timezone."""
        return self.start.in_timezone(timezone).date()

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "studentId": self.subject_id,
            "classId": self.class_id,
            "startISO": self.start.to_iso8601_string(),
            "endISO": self.end.to_iso8601_string(),
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Reservation":
        return Reservation(
            id=str(data["id"]),
            subject_id=str(data["studentId"]),
            class_id=str(data["classId"]),
            start=_parse_instant(str(data["startISO"])),
            end=_parse_instant(str(data["endISO"])),
        )


@dataclass(frozen=True)
class AccessWindow:
    """Physical access window [window_start, window_end], inclusive on both ends."""
    window_start: DateTime
    window_end: DateTime

    def __str__(self) -> str:
        return f"{self.window_start.format('DD.MM.YYYY HH:mm:ss')} - {self.window_end.format('HH:mm:ss')}"


@dataclass(frozen=True)
class AccessToken:
    """Framed, checksummed encoding of a reservation for the access reader."""
    subject_id: str
    class_id: str
    start_epoch: int
    end_epoch: int
    checksum: int
    text_form: str
    hex_form: str

    @property
    def raw_fields(self) -> Tuple[str, str, int, int]:
        return (self.subject_id, self.class_id, self.start_epoch, self.end_epoch)


class DecodedToken(NamedTuple):
    subject_id: str
    class_id: str
    start_epoch: int
    end_epoch: int


class AccessDecision(str, Enum):
    ALLOWED = "Allowed"
    DENIED = "Denied"


def _parse_instant(value: str) -> DateTime:
    dt = pendulum.parse(value)
    if isinstance(dt, DateTime):
        return dt
    raise ValueError(f"Could not parse datetime: {value}")
