"""
Application service for booking sessions and checking access.

The service loads a subject's reservations through a store adapter, runs
the domain-level conflict check, persists the booking and encodes the
access token. Stores are reached through a small protocol so the HTTP
adapter, the local YAML adapter or test stubs can be plugged in.

Two tiers of store are supported. The fallback store is only consulted
when the primary one is unreachable or times out, never when it gives a
definite answer.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Awaitable, Dict, List, Optional, Protocol, Sequence, Tuple, TypeVar

import pendulum
from pendulum import Date, DateTime

from ..domain.access_codec import encode, encode_reservation
from ..domain.conflict_checker import find_conflicts, has_overlap
from ..domain.exceptions import (
    BookingFailed,
    BookingRejected,
    InvalidDuration,
    InvalidField,
    StoreConflict,
    StoreError,
    StoreUnreachable,
    StoreWriteUnconfirmed,
)
from ..domain.models import AccessDecision, AccessToken, AccessWindow, ClassDefinition, Reservation
from ..domain.time_window import Schedule, compute_end, is_within_window

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ReservationStoreProtocol(Protocol):
    """Protocol describing the store behaviour needed by the service."""

    async def list_classes(self) -> List[ClassDefinition]:
        """Return the class catalog."""

    async def list_reservations(self, subject_id: str, day: Date) -> List[Reservation]:
        """Return a subject's reservations on a calendar date."""

    async def create_reservation(
        self,
        subject_id: str,
        class_id: str,
        start: DateTime,
        end: DateTime,
    ) -> Reservation:
        """Persist a reservation and return it with its assigned id."""


class BookingState(str, Enum):
    IDLE = "Idle"
    VALIDATING = "Validating"
    REJECTED = "Rejected"
    PERSISTING = "Persisting"
    COMMITTED = "Committed"
    FAILED = "Failed"


class BookingReason(str, Enum):
    MISSING_INPUT = "MissingInput"
    UNKNOWN_CLASS = "UnknownClass"
    OUTSIDE_SCHEDULE = "OutsideSchedule"
    INVALID_DURATION = "InvalidDuration"
    INVALID_FIELD = "InvalidField"
    OVERLAPPING_RESERVATION = "OverlappingReservation"
    STORE_UNAVAILABLE = "StoreUnavailable"
    PERSISTENCE_UNAVAILABLE = "PersistenceUnavailable"


@dataclass(frozen=True)
class BookingResult:
    """
    Final outcome of one booking attempt.

    ``history`` lists every state the attempt went through, starting at Idle.
    """
    state: BookingState
    reason: Optional[BookingReason] = None
    reservation: Optional[Reservation] = None
    token: Optional[AccessToken] = None
    message: str = ""
    used_fallback: bool = False
    history: Tuple[BookingState, ...] = ()

    @property
    def committed(self) -> bool:
        return self.state is BookingState.COMMITTED

    def raise_for_status(self) -> None:
        """Raise BookingRejected / BookingFailed for unsuccessful attempts."""
        if self.state is BookingState.REJECTED:
            raise BookingRejected(self.reason.value, self.message)
        if self.state is BookingState.FAILED:
            raise BookingFailed(self.reason.value, self.message)


@dataclass
class _Attempt:
    subject_id: str
    history: List[BookingState] = field(default_factory=lambda: [BookingState.IDLE])
    used_fallback: bool = False

    def enter(self, state: BookingState) -> None:
        logger.debug("Booking for %s: %s -> %s", self.subject_id, self.history[-1].value, state.value)
        self.history.append(state)

    def finish(self, state: BookingState, reason: Optional[BookingReason] = None, message: str = "",
               reservation: Optional[Reservation] = None, token: Optional[AccessToken] = None) -> BookingResult:
        self.enter(state)
        if state is BookingState.REJECTED:
            logger.info("Booking for %s rejected: %s %s", self.subject_id, reason.value, message)
        elif state is BookingState.FAILED:
            logger.error("Booking for %s failed: %s %s", self.subject_id, reason.value, message)
        return BookingResult(
            state=state,
            reason=reason,
            reservation=reservation,
            token=token,
            message=message,
            used_fallback=self.used_fallback,
            history=tuple(self.history),
        )


@dataclass
class _KeyLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class ReservationService:
    """
    Orchestrates conflict checking, persistence and token encoding.

    Bookings for the same (subject, date) are serialized by an in-process
    lock, so overlap checking and persistence do not race each other. Across
    processes the store itself must refuse conflicting creates.
    """

    def __init__(
        self,
        schedule: Schedule,
        primary_store: Optional[ReservationStoreProtocol] = None,
        fallback_store: Optional[ReservationStoreProtocol] = None,
        *,
        timezone: str = "America/Santiago",
        catalog: Sequence[ClassDefinition] = (),
        timeout_seconds: float = 10.0,
    ) -> None:
        self._schedule = schedule
        self._primary = primary_store
        self._fallback = fallback_store
        self._timezone = timezone
        self._catalog = list(catalog)
        self._timeout_seconds = timeout_seconds
        self._classes: Optional[List[ClassDefinition]] = None
        self._locks: Dict[Tuple[str, Date], _KeyLock] = {}

    @property
    def schedule(self) -> Schedule:
        return self._schedule

    @property
    def timezone(self) -> str:
        return self._timezone

    async def load_classes(self) -> List[ClassDefinition]:
        """
        Load the class catalog once per service lifetime.

        Tries the primary store, then the fallback, then the configured
        catalog.
        """
        if self._classes is not None:
            return self._classes

        classes: Optional[List[ClassDefinition]] = None
        for label, store in (("primary", self._primary), ("fallback", self._fallback)):
            if store is None:
                continue
            try:
                classes = await self._read(store.list_classes())
                break
            except (StoreError, asyncio.TimeoutError) as exc:
                logger.warning("Could not load classes from %s store: %s", label, exc)

        if classes is None:
            classes = list(self._catalog)

        self._classes = classes
        return classes

    def list_slots(self, day: Date) -> List[DateTime]:
        """Slot start instants for a calendar day."""
        return self._schedule.slot_instants(day, self._timezone)

    async def list_reservations(self, subject_id: str, day: Date) -> Tuple[List[Reservation], bool]:
        """
        Load a subject's reservations for a day.

        Returns:
            (reservations, used_fallback)

        Raises:
            StoreUnreachable: If neither store can answer
        """
        if self._primary is not None:
            try:
                return await self._read(self._primary.list_reservations(subject_id, day)), False
            except (StoreError, asyncio.TimeoutError) as exc:
                if self._fallback is None:
                    raise StoreUnreachable(f"Primary store unavailable and no fallback configured: {exc}") from exc
                logger.warning("Primary store unavailable for %s on %s, using fallback: %s", subject_id, day, exc)

        if self._fallback is None:
            raise StoreUnreachable("No reservation store configured")

        try:
            return await self._read(self._fallback.list_reservations(subject_id, day)), True
        except (StoreError, asyncio.TimeoutError) as exc:
            raise StoreUnreachable(f"Fallback store unavailable: {exc}") from exc

    async def book(
        self,
        subject_id: str,
        class_id: str,
        start: DateTime,
        duration_minutes: Optional[int] = None,
    ) -> BookingResult:
        """
        Book a session and produce its access token.

        Args:
            subject_id: Student/user identifier
            class_id: Catalog class id
            start: Session start; must fall on a slot of its day
            duration_minutes: Optional override of the class duration

        Returns:
            BookingResult in state Committed, Rejected or Failed
        """
        attempt = _Attempt(subject_id=subject_id)
        attempt.enter(BookingState.VALIDATING)

        subject_id = (subject_id or "").strip()
        class_id = (class_id or "").strip()
        if not subject_id or not class_id:
            return attempt.finish(BookingState.REJECTED, BookingReason.MISSING_INPUT,
                                  "Subject id and class are required.")

        classes = await self.load_classes()
        class_definition = next((c for c in classes if c.id == class_id), None)
        if class_definition is None:
            return attempt.finish(BookingState.REJECTED, BookingReason.UNKNOWN_CLASS,
                                  f"Unknown class: {class_id}")

        start = pendulum.instance(start).in_timezone(self._timezone)
        if not self._schedule.is_slot_start(start, self._timezone):
            return attempt.finish(BookingState.REJECTED, BookingReason.OUTSIDE_SCHEDULE,
                                  f"{start.format('HH:mm')} is not a bookable slot.")

        duration = duration_minutes if duration_minutes is not None else class_definition.duration_minutes
        try:
            end = compute_end(start, duration)
            encode(subject_id, class_id, start, end)
        except InvalidDuration as exc:
            return attempt.finish(BookingState.REJECTED, BookingReason.INVALID_DURATION, str(exc))
        except InvalidField as exc:
            return attempt.finish(BookingState.REJECTED, BookingReason.INVALID_FIELD, str(exc))

        async with self._serialized(subject_id, start.date()):
            return await self._check_and_persist(attempt, subject_id, class_id, start, end)

    def access_window(self, reservation: Reservation) -> AccessWindow:
        return self._schedule.access_window(reservation)

    def check_access_now(self, reservation: Reservation, now: Optional[DateTime] = None) -> AccessDecision:
        """Stateless check of an instant against the reservation's access window."""
        window = self.access_window(reservation)
        instant = pendulum.instance(now) if now is not None else pendulum.now(self._timezone)
        if is_within_window(instant, window.window_start, window.window_end):
            return AccessDecision.ALLOWED
        return AccessDecision.DENIED

    async def _check_and_persist(
        self,
        attempt: _Attempt,
        subject_id: str,
        class_id: str,
        start: DateTime,
        end: DateTime,
    ) -> BookingResult:
        try:
            existing, used_fallback = await self.list_reservations(subject_id, start.date())
        except StoreUnreachable as exc:
            return attempt.finish(BookingState.FAILED, BookingReason.STORE_UNAVAILABLE, str(exc))
        attempt.used_fallback = used_fallback

        if has_overlap(start, end, [(r.start, r.end) for r in existing]):
            conflicts = find_conflicts(start, end, existing)
            return attempt.finish(
                BookingState.REJECTED,
                BookingReason.OVERLAPPING_RESERVATION,
                "Overlaps " + ", ".join(str(r.time_range) for r in conflicts),
            )

        attempt.enter(BookingState.PERSISTING)
        try:
            reservation = await self._persist(attempt, subject_id, class_id, start, end)
        except StoreConflict as exc:
            return attempt.finish(BookingState.REJECTED, BookingReason.OVERLAPPING_RESERVATION, str(exc))
        except StoreUnreachable as exc:
            return attempt.finish(BookingState.FAILED, BookingReason.PERSISTENCE_UNAVAILABLE, str(exc))

        token = encode_reservation(reservation)
        logger.info("Booked %s for %s (%s)", reservation.id, subject_id, reservation.time_range)
        return attempt.finish(BookingState.COMMITTED, reservation=reservation, token=token)

    async def _persist(
        self,
        attempt: _Attempt,
        subject_id: str,
        class_id: str,
        start: DateTime,
        end: DateTime,
    ) -> Reservation:
        # Writes are never cancelled here; each adapter bounds its own I/O.
        if self._primary is not None:
            try:
                return await self._primary.create_reservation(subject_id, class_id, start, end)
            except (StoreConflict, StoreWriteUnconfirmed):
                raise
            except StoreError as exc:
                if self._fallback is None:
                    raise StoreUnreachable(f"Primary store unavailable and no fallback configured: {exc}") from exc
                logger.warning("Primary store unavailable while persisting for %s, using fallback: %s",
                               subject_id, exc)

        if self._fallback is None:
            raise StoreUnreachable("No reservation store configured")

        try:
            reservation = await self._fallback.create_reservation(subject_id, class_id, start, end)
        except StoreError as exc:
            raise StoreUnreachable(f"Fallback store unavailable: {exc}") from exc
        attempt.used_fallback = True
        return reservation

    async def _read(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self._timeout_seconds)

    @asynccontextmanager
    async def _serialized(self, subject_id: str, day: Date) -> AsyncIterator[None]:
        """Hold the (subject, day) lock; the entry is dropped once nobody holds or awaits it."""
        key = (subject_id, day)
        entry = self._locks.setdefault(key, _KeyLock())
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]
