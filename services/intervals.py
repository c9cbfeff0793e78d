"""Half-open time interval helpers shared by admission and slot generation."""
from typing import Iterable, NamedTuple, Optional
from datetime import datetime


class Interval(NamedTuple):
    start: datetime
    end: datetime

    @property
    def minutes(self) -> float:
        return (self.end - self.start).total_seconds() / 60

    def overlaps(self, other: "Interval") -> bool:
        return overlaps(self, other)


def overlaps(a: Interval, b: Interval) -> bool:
    """[a.start, a.end) and [b.start, b.end) share at least one instant.

    Touching endpoints (a.end == b.start) do not overlap.
    """
    return a.start < b.end and b.start < a.end


def find_overlapping(candidate: Interval, intervals: Iterable[Interval]) -> Optional[Interval]:
    for interval in intervals:
        if overlaps(candidate, interval):
            return interval
    return None
