"""
Domain layer - Pure business logic without external dependencies.
"""

from .access_codec import decode, decode_any, decode_hex, encode, encode_reservation, to_epoch_seconds
from .conflict_checker import find_conflicts, has_overlap
from .models import (
    AccessDecision,
    AccessToken,
    AccessWindow,
    ClassDefinition,
    DecodedToken,
    Reservation,
    TimeRange,
    TimeSlot,
)
from .reader import evaluate_token
from .time_window import Schedule, compute_access_window, compute_end, generate_slots, is_within_window

__all__ = [
    "AccessDecision",
    "AccessToken",
    "AccessWindow",
    "ClassDefinition",
    "DecodedToken",
    "Reservation",
    "Schedule",
    "TimeRange",
    "TimeSlot",
    "compute_access_window",
    "compute_end",
    "decode",
    "decode_any",
    "decode_hex",
    "encode",
    "encode_reservation",
    "evaluate_token",
    "find_conflicts",
    "generate_slots",
    "has_overlap",
    "is_within_window",
    "to_epoch_seconds",
]
