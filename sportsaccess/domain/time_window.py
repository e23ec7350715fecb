"""
Slot grids and access windows.

Pure functions over pendulum instants: no I/O and no hidden state, so
windows are simply recomputed from a reservation whenever needed.
"""

from dataclasses import dataclass
from datetime import time
from typing import List, Tuple

from pendulum import Date, DateTime

from .exceptions import InvalidDuration, InvalidGrace
from .models import AccessWindow, Reservation, TimeSlot


def generate_slots(day_start: time, day_end: time, slot_minutes: int) -> List[TimeSlot]:
    """
    Enumerate every slot boundary from day_start up to and including day_end.

    Example (07:00-08:00, 30 min): [07:00, 07:30, 08:00]

    The final label may equal day_end itself; it is offered as a start
    choice only.
    """
    if slot_minutes <= 0:
        raise InvalidDuration(f"slot_minutes must be greater than zero, got {slot_minutes}")
    if day_end < day_start:
        raise ValueError(f"Day end {day_end} must not be before day start {day_start}")

    first = day_start.hour * 60 + day_start.minute
    last = day_end.hour * 60 + day_end.minute

    return [
        TimeSlot(hour=minutes // 60, minute=minutes % 60)
        for minutes in range(first, last + 1, slot_minutes)
    ]


def compute_end(start: DateTime, duration_minutes: int) -> DateTime:
    """Return start + duration_minutes."""
    if duration_minutes <= 0:
        raise InvalidDuration(f"Duration must be greater than zero, got {duration_minutes}")
    return start.add(minutes=duration_minutes)


def compute_access_window(start: DateTime, end: DateTime, grace_minutes: int) -> Tuple[DateTime, DateTime]:
    """Expand [start, end] by grace_minutes on both sides."""
    if grace_minutes < 0:
        raise InvalidGrace(f"Grace period must not be negative, got {grace_minutes}")
    return start.subtract(minutes=grace_minutes), end.add(minutes=grace_minutes)


def is_within_window(instant: DateTime, window_start: DateTime, window_end: DateTime) -> bool:
    """Inclusive on both bounds."""
    return window_start <= instant <= window_end


@dataclass(frozen=True)
class Schedule:
    """
    Daily operating window of one deployment.
    """
    day_start: time
    day_end: time
    slot_minutes: int = 30
    grace_minutes: int = 10

    def __post_init__(self):
        if self.slot_minutes <= 0:
            raise InvalidDuration(f"slot_minutes must be greater than zero, got {self.slot_minutes}")
        if self.grace_minutes < 0:
            raise InvalidGrace(f"Grace period must not be negative, got {self.grace_minutes}")
        if self.day_end < self.day_start:
            raise ValueError(f"Day end {self.day_end} must not be before day start {self.day_start}")

    def slots(self) -> List[TimeSlot]:
        return generate_slots(self.day_start, self.day_end, self.slot_minutes)

    def slot_instants(self, day: Date, timezone: str) -> List[DateTime]:
        """The slot grid anchored on a calendar day."""
        return [slot.on(day, timezone) for slot in self.slots()]

    def is_slot_start(self, instant: DateTime, timezone: str) -> bool:
        """Check whether an instant falls exactly on a slot of its day."""
        local = instant.in_timezone(timezone)
        if local.second or local.microsecond:
            return False
        return TimeSlot(hour=local.hour, minute=local.minute) in self.slots()

    def access_window(self, reservation: Reservation) -> AccessWindow:
        window_start, window_end = compute_access_window(
            reservation.start,
            reservation.end,
            self.grace_minutes
        )
        return AccessWindow(window_start=window_start, window_end=window_end)
