"""Half-open [start, end) interval arithmetic over aware datetimes"""

from datetime import datetime
from typing import Iterable, NamedTuple


class Interval(NamedTuple):
    start: datetime
    end: datetime

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start

    def contains(self, start: datetime, end: datetime) -> bool:
        return self.start <= start and end <= self.end


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open overlap: touching endpoints do not overlap"""
    return a_start < b_end and b_start < a_end


def normalize(intervals: Iterable[Interval]) -> list[Interval]:
    """Sort, drop empty intervals and merge overlapping or adjacent ones"""
    ordered = sorted((i for i in intervals if not i.is_empty), key=lambda i: i.start)
    merged: list[Interval] = []
    for current in ordered:
        if merged and current.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = Interval(last.start, max(last.end, current.end))
        else:
            merged.append(current)
    return merged


def intersect(left: Iterable[Interval], right: Iterable[Interval]) -> list[Interval]:
    a = normalize(left)
    b = normalize(right)
    result: list[Interval] = []
    i = j = 0
    while i < len(a) and j < len(b):
        start = max(a[i].start, b[j].start)
        end = min(a[i].end, b[j].end)
        if start < end:
            result.append(Interval(start, end))
        if a[i].end < b[j].end:
            i += 1
        else:
            j += 1
    return result


def subtract(base: Iterable[Interval], cuts: Iterable[Interval]) -> list[Interval]:
    remaining = normalize(base)
    for cut in normalize(cuts):
        next_remaining: list[Interval] = []
        for piece in remaining:
            if not overlaps(piece.start, piece.end, cut.start, cut.end):
                next_remaining.append(piece)
                continue
            if piece.start < cut.start:
                next_remaining.append(Interval(piece.start, cut.start))
            if cut.end < piece.end:
                next_remaining.append(Interval(cut.end, piece.end))
        remaining = next_remaining
    return remaining


def contained_in_any(intervals: Iterable[Interval], start: datetime, end: datetime) -> bool:
    return any(interval.contains(start, end) for interval in intervals)
