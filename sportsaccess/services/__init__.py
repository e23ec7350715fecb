"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .factory import build_service
from .reservation_service import (
    BookingReason,
    BookingResult,
    BookingState,
    ReservationService,
    ReservationStoreProtocol,
)

__all__ = [
    "BookingReason",
    "BookingResult",
    "BookingState",
    "ReservationService",
    "ReservationStoreProtocol",
    "build_service",
]
