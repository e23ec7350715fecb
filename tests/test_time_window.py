"""
Tests for slot generation and access windows.
"""

from datetime import time

import pendulum
import pytest

from sportsaccess.domain.exceptions import InvalidDuration, InvalidGrace
from sportsaccess.domain.models import AccessWindow, Reservation, TimeSlot
from sportsaccess.domain.time_window import (
    Schedule,
    compute_access_window,
    compute_end,
    generate_slots,
    is_within_window,
)

TZ = "America/Santiago"


class TestGenerateSlots:
    """Tests for generate_slots."""

    def test_default_day(self):
        """07:00-18:00 in 30 minute steps, ending on 18:00 itself."""
        slots = generate_slots(time(7, 0), time(18, 0), 30)

        assert len(slots) == 23
        assert slots[0] == TimeSlot(7, 0)
        assert slots[1] == TimeSlot(7, 30)
        assert slots[-1] == TimeSlot(18, 0)
        assert [slot.label for slot in slots[-2:]] == ["17:30", "18:00"]

    def test_boundaries_after_day_end_are_excluded(self):
        """A step that overshoots day_end is not offered."""
        slots = generate_slots(time(7, 0), time(8, 0), 45)

        assert [slot.label for slot in slots] == ["07:00", "07:45"]

    def test_single_slot_day(self):
        assert generate_slots(time(9, 0), time(9, 0), 30) == [TimeSlot(9, 0)]

    def test_slots_are_ordered(self):
        slots = generate_slots(time(7, 0), time(18, 0), 15)

        assert slots == sorted(slots)

    @pytest.mark.parametrize("slot_minutes", [0, -30])
    def test_invalid_slot_size(self, slot_minutes):
        with pytest.raises(InvalidDuration):
            generate_slots(time(7, 0), time(18, 0), slot_minutes)

    def test_day_end_before_start(self):
        with pytest.raises(ValueError):
            generate_slots(time(18, 0), time(7, 0), 30)


class TestComputeEnd:
    """Tests for compute_end."""

    def test_adds_duration(self):
        start = pendulum.datetime(2025, 10, 3, 7, 0, tz=TZ)

        assert compute_end(start, 90) == pendulum.datetime(2025, 10, 3, 8, 30, tz=TZ)

    @pytest.mark.parametrize("duration", [0, -15])
    def test_non_positive_duration(self, duration):
        with pytest.raises(InvalidDuration):
            compute_end(pendulum.datetime(2025, 10, 3, 7, 0, tz=TZ), duration)


class TestAccessWindow:
    """Tests for the grace-expanded access window."""

    def test_gimnasio_scenario(self):
        """A 60 minute session at 07:00 with 10 minutes grace opens 06:50-08:10."""
        start = pendulum.datetime(2025, 10, 3, 7, 0, tz=TZ)
        end = compute_end(start, 60)

        window_start, window_end = compute_access_window(start, end, 10)

        assert window_start == pendulum.datetime(2025, 10, 3, 6, 50, tz=TZ)
        assert window_end == pendulum.datetime(2025, 10, 3, 8, 10, tz=TZ)
        assert window_start < start < end < window_end

    def test_zero_grace(self):
        start = pendulum.datetime(2025, 10, 3, 7, 0, tz=TZ)
        end = start.add(hours=1)

        assert compute_access_window(start, end, 0) == (start, end)

    def test_negative_grace(self):
        start = pendulum.datetime(2025, 10, 3, 7, 0, tz=TZ)

        with pytest.raises(InvalidGrace):
            compute_access_window(start, start.add(hours=1), -1)

    def test_within_window_is_inclusive(self):
        """Both bounds are inside the window."""
        window_start = pendulum.datetime(2025, 10, 3, 6, 50, tz=TZ)
        window_end = pendulum.datetime(2025, 10, 3, 8, 10, tz=TZ)

        assert is_within_window(window_start, window_start, window_end)
        assert is_within_window(window_end, window_start, window_end)
        assert is_within_window(window_start.add(minutes=40), window_start, window_end)
        assert not is_within_window(window_start.subtract(seconds=1), window_start, window_end)
        assert not is_within_window(window_end.add(seconds=1), window_start, window_end)


class TestSchedule:
    """Tests for the Schedule value object."""

    def _schedule(self) -> Schedule:
        return Schedule(day_start=time(7, 0), day_end=time(18, 0), slot_minutes=30, grace_minutes=10)

    def test_slot_instants_are_anchored_on_day(self):
        day = pendulum.date(2025, 10, 3)

        instants = self._schedule().slot_instants(day, TZ)

        assert instants[0] == pendulum.datetime(2025, 10, 3, 7, 0, tz=TZ)
        assert instants[-1] == pendulum.datetime(2025, 10, 3, 18, 0, tz=TZ)

    @pytest.mark.parametrize("hour,minute,second,expected", [
        (7, 0, 0, True),
        (12, 30, 0, True),
        (18, 0, 0, True),
        (7, 15, 0, False),
        (18, 30, 0, False),
        (6, 30, 0, False),
        (7, 0, 5, False),
    ])
    def test_is_slot_start(self, hour, minute, second, expected):
        instant = pendulum.datetime(2025, 10, 3, hour, minute, second, tz=TZ)

        assert self._schedule().is_slot_start(instant, TZ) is expected

    def test_is_slot_start_uses_local_time(self):
        """10:00 UTC is 07:00 in Santiago in October."""
        instant = pendulum.datetime(2025, 10, 3, 10, 0, tz="UTC")

        assert self._schedule().is_slot_start(instant, TZ)

    def test_access_window_for_reservation(self):
        reservation = Reservation(
            id="rsv_1",
            subject_id="uai123456",
            class_id="gim",
            start=pendulum.datetime(2025, 10, 3, 7, 0, tz=TZ),
            end=pendulum.datetime(2025, 10, 3, 8, 0, tz=TZ),
        )

        window = self._schedule().access_window(reservation)

        assert window == AccessWindow(
            window_start=pendulum.datetime(2025, 10, 3, 6, 50, tz=TZ),
            window_end=pendulum.datetime(2025, 10, 3, 8, 10, tz=TZ),
        )

    def test_invalid_schedule(self):
        with pytest.raises(InvalidGrace):
            Schedule(day_start=time(7, 0), day_end=time(18, 0), grace_minutes=-5)
        with pytest.raises(InvalidDuration):
            Schedule(day_start=time(7, 0), day_end=time(18, 0), slot_minutes=0)
