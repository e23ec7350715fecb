"""
Reservation conflict detection on a subject's timeline.
"""

from typing import Iterable, List, Tuple

from pendulum import DateTime

from .models import Reservation


def has_overlap(
    candidate_start: DateTime,
    candidate_end: DateTime,
    existing: Iterable[Tuple[DateTime, DateTime]]
) -> bool:
    """
    Return True when the candidate overlaps any existing interval.

    Intervals are half-open [start, end), so a reservation ending exactly
    when another begins (10:00-11:00 and 11:00-12:00) does not conflict.
    """
    if candidate_start >= candidate_end:
        raise ValueError("candidate_start must be earlier than candidate_end.")

    for exist_start, exist_end in existing:
        if candidate_start < exist_end and exist_start < candidate_end:
            return True
    return False


def find_conflicts(
    candidate_start: DateTime,
    candidate_end: DateTime,
    reservations: Iterable[Reservation]
) -> List[Reservation]:
    """Return the reservations the candidate would collide with."""
    return [
        reservation for reservation in reservations
        if has_overlap(candidate_start, candidate_end, [(reservation.start, reservation.end)])
    ]
