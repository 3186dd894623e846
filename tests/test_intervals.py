"""Unit tests for half-open interval arithmetic"""

from datetime import datetime, timezone

from booking_engine.domain.calendar.intervals import (
    Interval,
    contained_in_any,
    intersect,
    normalize,
    overlaps,
    subtract,
)


def t(hour, minute=0):
    return datetime(2030, 5, 6, hour, minute, tzinfo=timezone.utc)


class TestOverlaps:
    def test_touching_intervals_do_not_overlap(self):
        assert not overlaps(t(10), t(11), t(11), t(12))

    def test_partial_overlap(self):
        assert overlaps(t(10), t(11), t(10, 59), t(12))


class TestNormalize:
    def test_merges_overlapping_and_adjacent(self):
        result = normalize([Interval(t(12), t(13)), Interval(t(9), t(10)), Interval(t(10), t(11))])
        assert result == [Interval(t(9), t(11)), Interval(t(12), t(13))]

    def test_drops_empty_intervals(self):
        assert normalize([Interval(t(9), t(9)), Interval(t(11), t(10))]) == []


class TestIntersectAndSubtract:
    def test_intersect(self):
        result = intersect(
            [Interval(t(9), t(18))],
            [Interval(t(8), t(12)), Interval(t(14), t(20))],
        )
        assert result == [Interval(t(9), t(12)), Interval(t(14), t(18))]

    def test_subtract_splits_interval(self):
        result = subtract([Interval(t(9), t(18))], [Interval(t(12), t(13))])
        assert result == [Interval(t(9), t(12)), Interval(t(13), t(18))]

    def test_subtract_whole_interval(self):
        assert subtract([Interval(t(9), t(10))], [Interval(t(8), t(11))]) == []

    def test_contained_in_any(self):
        windows = [Interval(t(9), t(12)), Interval(t(13), t(18))]
        assert contained_in_any(windows, t(9), t(12))
        assert not contained_in_any(windows, t(11), t(13, 30))
