"""
Interval algebra over half-open [start, end) UTC intervals.

All operations are pure and discard degenerate (end <= start) pieces.
"""

from collections.abc import Iterable
from datetime import datetime

from slotwise.models.domain.scheduling_domain import Interval


def subtract(free_windows: Iterable[Interval], busy: Iterable[Interval]) -> list[Interval]:
    """
    Remove every busy interval from the free windows.

    Each busy interval splits every free interval it overlaps into the part
    before it and the part after it. The order of ``busy`` does not affect
    the resulting set; the order of surviving free pieces follows the input.

    Args:
        free_windows: Candidate free intervals
        busy: Intervals to remove (any order, may overlap)

    Returns:
        Free intervals with all busy time removed
    """
    result = [w for w in free_windows if not w.is_degenerate]

    for blocker in busy:
        if blocker.is_degenerate:
            continue

        remaining: list[Interval] = []
        for window in result:
            if not window.overlaps(blocker):
                remaining.append(window)
                continue

            before = Interval(window.start, blocker.start)
            after = Interval(blocker.end, window.end)
            if not before.is_degenerate:
                remaining.append(before)
            if not after.is_degenerate:
                remaining.append(after)
        result = remaining

    return result


def clip(interval: Interval, lower: datetime, upper: datetime) -> Interval | None:
    """Restrict an interval to [lower, upper); None when nothing is left."""
    clipped = Interval(max(interval.start, lower), min(interval.end, upper))
    if clipped.is_degenerate:
        return None
    return clipped


def merge(intervals: Iterable[Interval]) -> list[Interval]:
    """Coalesce overlapping or touching intervals, ascending by start."""
    ordered = sorted((i for i in intervals if not i.is_degenerate), key=lambda i: i.start)
    merged: list[Interval] = []

    for interval in ordered:
        if merged and interval.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = Interval(last.start, max(last.end, interval.end))
        else:
            merged.append(interval)

    return merged


def total_minutes(intervals: Iterable[Interval]) -> int:
    return sum(i.minutes for i in intervals)
