"""Tests for booking conflict detection."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from core.scheduling import BookingStatus, Interval, find_conflict, has_conflict


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 3, 10, hour, minute, tzinfo=timezone.utc)


def _slot(start_hour, end_hour, **kwargs) -> Interval:
    return Interval(start=_at(start_hour), end=_at(end_hour), id=kwargs.pop("id", uuid4()), **kwargs)


class TestInterval:

    def test_end_must_be_after_start(self):
        with pytest.raises(ValueError, match="End time must be after start time"):
            Interval(start=_at(10), end=_at(9))

    def test_zero_length_rejected(self):
        with pytest.raises(ValueError):
            Interval(start=_at(10), end=_at(10))

    def test_defaults_to_scheduled(self):
        assert Interval(start=_at(9), end=_at(10)).status == BookingStatus.SCHEDULED


class TestOverlap:
    """Half-open [start, end) semantics."""

    def test_partial_overlap_conflicts(self):
        assert _slot(9, 11).overlaps(_slot(10, 12))

    def test_touching_intervals_do_not_conflict(self):
        """A job ending at 11:00 and one starting at 11:00 can both be booked."""
        assert not _slot(9, 11).overlaps(_slot(11, 12))
        assert not _slot(11, 12).overlaps(_slot(9, 11))

    def test_contained_interval_conflicts(self):
        assert _slot(8, 17).overlaps(_slot(10, 11))
        assert _slot(10, 11).overlaps(_slot(8, 17))

    def test_identical_intervals_conflict(self):
        assert _slot(9, 10).overlaps(_slot(9, 10))

    def test_disjoint_intervals_do_not_conflict(self):
        assert not _slot(8, 9).overlaps(_slot(14, 15))

    @pytest.mark.parametrize("a,b", [
        ((9, 11), (10, 12)),
        ((9, 11), (11, 12)),
        ((8, 17), (10, 11)),
        ((8, 9), (14, 15)),
    ])
    def test_overlap_is_symmetric(self, a, b):
        first, second = _slot(*a), _slot(*b)
        assert first.overlaps(second) == second.overlaps(first)

    def test_one_minute_overlap_conflicts(self):
        existing = Interval(start=_at(9), end=_at(11, 1))
        candidate = Interval(start=_at(11), end=_at(12))
        assert existing.overlaps(candidate)


class TestFindConflict:

    def test_returns_first_blocking_interval(self):
        blocker = _slot(10, 12)
        existing = [_slot(7, 8), blocker, _slot(11, 13)]

        assert find_conflict(existing, _slot(11, 12)) is blocker

    def test_returns_none_when_clear(self):
        existing = [_slot(7, 8), _slot(12, 13)]
        assert find_conflict(existing, _slot(8, 12)) is None

    def test_empty_calendar_never_conflicts(self):
        assert find_conflict([], _slot(9, 10)) is None

    def test_cancelled_bookings_are_ignored(self):
        existing = [_slot(9, 12, status=BookingStatus.CANCELLED)]
        assert not has_conflict(existing, _slot(10, 11))

    @pytest.mark.parametrize("status", [
        BookingStatus.PENDING,
        BookingStatus.SCHEDULED,
        BookingStatus.IN_PROGRESS,
        BookingStatus.COMPLETED,
        BookingStatus.NO_SHOW,
    ])
    def test_every_other_status_blocks(self, status):
        existing = [_slot(9, 12, status=status)]
        assert has_conflict(existing, _slot(10, 11))

    def test_excluded_booking_cannot_conflict_with_itself(self):
        """Rescheduling a booking into a slot overlapping its old one is fine."""
        booking_id = uuid4()
        existing = [_slot(9, 11, id=booking_id)]

        assert not has_conflict(existing, _slot(10, 12), exclude_id=booking_id)

    def test_exclude_id_only_skips_that_booking(self):
        booking_id = uuid4()
        other = _slot(11, 13)
        existing = [_slot(9, 11, id=booking_id), other]

        assert find_conflict(existing, _slot(10, 12), exclude_id=booking_id) is other

    def test_accepts_generator(self):
        existing = (_slot(h, h + 1) for h in range(8, 12))
        assert has_conflict(existing, _slot(10, 11))


class TestBookingInterval:
    """Booking.interval feeds stored bookings into the checker."""

    def test_booking_interval_carries_id_and_status(self, make_booking_row):
        from core.models import Booking

        booking = Booking.model_validate(make_booking_row(status="cancelled"))
        interval = booking.interval

        assert interval.id == booking.id
        assert interval.status == BookingStatus.CANCELLED
        assert interval.end - interval.start == timedelta(hours=2)
