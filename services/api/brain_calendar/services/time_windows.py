"""Interval arithmetic and free-slot search over busy calendar intervals.

All timestamps are epoch milliseconds. Ranges are half-open: a range that
ends exactly when another starts does not conflict with it.
"""

from dataclasses import dataclass
from typing import Iterable

MINUTE_MS = 60_000


class InvalidTimeRangeError(ValueError):
    """Raised for malformed ranges or non-positive search parameters."""


@dataclass(frozen=True)
class TimeRange:
    """A half-open ``[start_at, end_at)`` interval in epoch milliseconds."""

    start_at: int
    end_at: int

    @classmethod
    def from_bounds(cls, start_at: int, end_at: int) -> "TimeRange":
        """Build a range, rejecting zero or negative durations."""
        if end_at <= start_at:
            raise InvalidTimeRangeError(f"end_at ({end_at}) must be after start_at ({start_at})")
        return cls(start_at=start_at, end_at=end_at)


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    """True iff the two ranges share at least one instant."""
    return a.start_at < b.end_at and b.start_at < a.end_at


def clamp_within_window(candidate: TimeRange, window: TimeRange) -> TimeRange | None:
    """Clip ``candidate`` to ``window``; None if nothing usable remains."""
    start_at = max(candidate.start_at, window.start_at)
    end_at = min(candidate.end_at, window.end_at)
    if end_at <= start_at:
        return None
    return TimeRange(start_at=start_at, end_at=end_at)


def merge_ranges(ranges: Iterable[TimeRange]) -> list[TimeRange]:
    """Sort ranges and fuse any that overlap or touch."""
    merged: list[TimeRange] = []
    for r in sorted(ranges, key=lambda r: r.start_at):
        if merged and r.start_at <= merged[-1].end_at:
            last = merged[-1]
            merged[-1] = TimeRange(start_at=last.start_at, end_at=max(last.end_at, r.end_at))
        else:
            merged.append(r)
    return merged


def find_free_slots(
    search_window: TimeRange,
    busy: Iterable[TimeRange],
    duration_minutes: int,
    step_minutes: int = 15,
    max_slots: int = 3,
) -> list[TimeRange]:
    """Greedy first-fit scan for slots that conflict with no busy interval.

    Candidates start at ``search_window.start_at`` and advance by
    ``step_minutes``. Results come back in ascending start order and the
    scan stops after ``max_slots`` hits or once a slot would end past the
    window.

    Raises:
        InvalidTimeRangeError: if duration or step is not positive, or
            max_slots is negative.
    """
    if duration_minutes <= 0:
        raise InvalidTimeRangeError(f"duration_minutes must be positive, got {duration_minutes}")
    if step_minutes <= 0:
        raise InvalidTimeRangeError(f"step_minutes must be positive, got {step_minutes}")
    if max_slots < 0:
        raise InvalidTimeRangeError(f"max_slots must not be negative, got {max_slots}")

    busy = list(busy)
    step = step_minutes * MINUTE_MS
    duration = duration_minutes * MINUTE_MS

    results: list[TimeRange] = []
    if max_slots == 0:
        return results

    t = search_window.start_at
    while t + duration <= search_window.end_at:
        slot = TimeRange(start_at=t, end_at=t + duration)
        if not any(overlaps(slot, b) for b in busy):
            results.append(slot)
            if len(results) >= max_slots:
                break
        t += step
    return results
