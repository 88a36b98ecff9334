"""Past-due and dependency locking, launchability and display ordering."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Sequence, Tuple

from .models import CourseInstance

STATUS_SORT_ORDER: Tuple[str, ...] = (
    "completed",
    "pastDueStarted",
    "pastDueNotStarted",
    "lockedByPastDue",
    "started",
    "notStarted",
    "lockedByDependencies",
    "upcoming",
)


@dataclass
class ResolvedSchedule:
    courses: List[CourseInstance] = field(default_factory=list)
    current_courses: List[CourseInstance] = field(default_factory=list)
    future_courses: List[CourseInstance] = field(default_factory=list)
    past_courses: List[CourseInstance] = field(default_factory=list)


def within_launch_window(instance: CourseInstance, today: datetime) -> bool:
    """Past instances stay launchable for review; current ones inside [start, due]; future ones never."""
    if instance.due_date <= today:
        return True
    return instance.start_date <= today <= instance.due_date


def is_dependency_complete(instance: CourseInstance, instances: Sequence[CourseInstance]) -> bool:
    """True unless a dependency's instance covering this instance's start date is incomplete."""
    for dependency in instance.depends_on:
        for candidate in instances:
            if (
                candidate.id == dependency
                and candidate.start_date <= instance.start_date <= candidate.due_date
                and not candidate.is_completed
            ):
                return False
    return True


def apply_locks(
    instances: Sequence[CourseInstance],
    *,
    compliant_until: datetime,
    today: datetime,
) -> List[CourseInstance]:
    """Drop stale instances and derive lock, status and launch flags.

    Instances without progress whose due date precedes ``compliant_until`` were
    introduced by a manifest change and are removed. Dependency lookups run
    against the full expanded set as it was before this pass.
    """
    resolved: List[CourseInstance] = []
    for instance in instances:
        if instance.progress is None and instance.due_date < compliant_until:
            continue

        updates = {"can_launch": within_launch_window(instance, today)}
        if compliant_until < instance.start_date:
            updates.update(progress=None, locked=True, can_launch=False, status="lockedByPastDue")
        elif (instance.start_date <= today or instance.due_date <= today) and not is_dependency_complete(
            instance, instances
        ):
            updates.update(locked=True, can_launch=False, status="lockedByDependencies")
        elif instance.progress is None and instance.start_date > today:
            updates.update(locked=True, status="upcoming")
        resolved.append(instance.model_copy(update=updates))
    return resolved


def display_sort_key(instance: CourseInstance) -> tuple:
    return (
        STATUS_SORT_ORDER.index(instance.status),
        instance.start_date,
        instance.due_date,
        instance.due_period,
        instance.title,
    )


def partition(instances: Sequence[CourseInstance], today: datetime) -> ResolvedSchedule:
    schedule = ResolvedSchedule(courses=list(instances))
    for instance in instances:
        if instance.is_completed:
            schedule.past_courses.append(instance)
        elif instance.start_date > today:
            schedule.future_courses.append(instance)
        else:
            schedule.current_courses.append(instance)
    return schedule


def resolve_schedule(
    instances: Sequence[CourseInstance],
    *,
    compliant_until: datetime,
    today: datetime,
) -> ResolvedSchedule:
    locked = apply_locks(instances, compliant_until=compliant_until, today=today)
    ordered = sorted(locked, key=display_sort_key)
    indexed = [
        instance.model_copy(update={"all_course_map_index": index}) for index, instance in enumerate(ordered)
    ]
    return partition(indexed, today)


__all__ = [
    "ResolvedSchedule",
    "STATUS_SORT_ORDER",
    "apply_locks",
    "display_sort_key",
    "is_dependency_complete",
    "partition",
    "resolve_schedule",
    "within_launch_window",
]
