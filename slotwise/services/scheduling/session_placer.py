"""
Greedy session placer.

Places tasks one by one into an ordered list of free windows. Each window
hosts at most one session per task, taken from the window's front; the
shrunk free list carries over to the next task so sessions never overlap.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from slotwise.infrastructure.observability.logging import get_logger
from slotwise.models.domain.scheduling_domain import Interval, ScheduledSession, Task
from slotwise.services.errors import InsufficientCapacity, InvalidPlan

logger = get_logger(__name__)


@dataclass
class PlacementResult:
    sessions: list[ScheduledSession] = field(default_factory=list)
    free: list[Interval] = field(default_factory=list)
    task_order: list[Task] = field(default_factory=list)

    def sessions_for(self, task_id: str) -> list[ScheduledSession]:
        return [s for s in self.sessions if s.task_id == task_id]


def order_tasks(tasks: list[Task]) -> list[Task]:
    """
    Stable topological ordering by declared dependencies.

    Tasks keep the caller's order unless a dependency forces one later.
    Dependency ids not present in the batch are ignored.

    Raises:
        InvalidPlan: Duplicate task ids or a dependency cycle
    """
    ids = [t.id for t in tasks]
    if len(set(ids)) != len(ids):
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        raise InvalidPlan(f"Duplicate task ids: {', '.join(duplicates)}")

    known = set(ids)
    for task in tasks:
        unknown = [d for d in task.dependencies if d not in known]
        if unknown:
            logger.warning("Ignoring unknown task dependencies", task_id=task.id, unknown=unknown)

    ordered: list[Task] = []
    done: set[str] = set()
    pending = list(tasks)

    while pending:
        for index, task in enumerate(pending):
            if all(d in done or d not in known for d in task.dependencies):
                ordered.append(task)
                done.add(task.id)
                del pending[index]
                break
        else:
            raise InvalidPlan(
                "Dependency cycle between tasks: " + ", ".join(t.id for t in pending)
            )

    return ordered


def place_task(
    task: Task, free: list[Interval], not_before: datetime | None = None
) -> tuple[list[ScheduledSession], list[Interval]]:
    """
    Place one task into the free windows.

    Args:
        task: Task to place
        free: Ordered free windows (not mutated)
        not_before: Earliest instant a session may start

    Returns:
        (sessions, updated free list)

    Raises:
        InvalidPlan: An unsplittable task is longer than its session cap
        InsufficientCapacity: The free windows cannot hold the whole estimate
    """
    low, high = task.session_bounds()

    if not task.allow_splitting:
        if task.estimated_minutes > high:
            raise InvalidPlan(
                f"Task '{task.title}' cannot be split but needs {task.estimated_minutes} "
                f"minutes, more than its {high}-minute session limit"
            )
        return _place_whole(task, free, not_before)

    remaining = task.estimated_minutes
    sessions: list[ScheduledSession] = []
    updated: list[Interval] = []

    for window in free:
        if remaining <= 0:
            updated.append(window)
            continue

        head, usable = _split_at(window, not_before)
        if head is not None:
            updated.append(head)
        if usable is None:
            continue

        if usable.minutes < low:
            updated.append(usable)
            continue

        length = min(high, remaining, usable.minutes)
        end = usable.start + timedelta(minutes=length)
        sessions.append(ScheduledSession(task.id, task.title, usable.start, end))
        remaining -= length

        rest = Interval(end, usable.end)
        if not rest.is_degenerate:
            updated.append(rest)

    if remaining > 0:
        raise InsufficientCapacity(task.title, remaining)

    return sessions, updated


def _place_whole(
    task: Task, free: list[Interval], not_before: datetime | None
) -> tuple[list[ScheduledSession], list[Interval]]:
    """Single session of the full estimate in the first window that fits it."""
    needed = task.estimated_minutes
    updated: list[Interval] = []
    session: ScheduledSession | None = None

    for window in free:
        if session is not None:
            updated.append(window)
            continue

        head, usable = _split_at(window, not_before)
        if head is not None:
            updated.append(head)
        if usable is None:
            continue

        if usable.minutes < needed:
            updated.append(usable)
            continue

        end = usable.start + timedelta(minutes=needed)
        session = ScheduledSession(task.id, task.title, usable.start, end)
        rest = Interval(end, usable.end)
        if not rest.is_degenerate:
            updated.append(rest)

    if session is None:
        raise InsufficientCapacity(task.title, needed)

    return [session], updated


def _split_at(
    window: Interval, not_before: datetime | None
) -> tuple[Interval | None, Interval | None]:
    """Split a window into the part before not_before and the usable part."""
    if not_before is None or window.start >= not_before:
        return None, window
    if window.end <= not_before:
        return window, None
    return Interval(window.start, not_before), Interval(not_before, window.end)


def place_sessions(tasks: list[Task], free: list[Interval]) -> PlacementResult:
    """
    Place a batch of tasks in dependency order over a shrinking free list.

    The whole batch fails with InsufficientCapacity as soon as one task
    cannot be fully placed.
    """
    ordered = order_tasks(tasks)
    result = PlacementResult(free=list(free), task_order=ordered)
    last_end: dict[str, datetime] = {}

    for task in ordered:
        bounds = [last_end[d] for d in task.dependencies if d in last_end]
        if task.earliest_start_date is not None:
            bounds.append(task.earliest_start_date)
        not_before = max(bounds) if bounds else None

        sessions, result.free = place_task(task, result.free, not_before)
        result.sessions.extend(sessions)
        last_end[task.id] = max(s.end for s in sessions)

        if task.due_date is not None and last_end[task.id] > task.due_date:
            logger.warning(
                "Task scheduled past its due date",
                task_id=task.id,
                due_date=task.due_date.isoformat(),
                last_session_end=last_end[task.id].isoformat(),
            )

    logger.info(
        "Placed task sessions",
        task_count=len(ordered),
        session_count=len(result.sessions),
        free_windows_left=len(result.free),
    )
    return result
