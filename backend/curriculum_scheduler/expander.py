"""Expands course templates into dated instances across recurrence cycles."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from dateutil.relativedelta import relativedelta

from .intervals import compute_occurrences
from .models import CourseInstance, CourseStatus, CourseTemplate, ProgressRecord

logger = logging.getLogger(__name__)

DEFAULT_MAX_CYCLES = 50


def classify_status(days_left: int, progress: Optional[ProgressRecord]) -> CourseStatus:
    if progress is not None and progress.is_completed:
        return "completed"
    if days_left <= 0:
        return "pastDueStarted" if progress is not None else "pastDueNotStarted"
    return "started" if progress is not None else "notStarted"


class CompliantUntilTracker:
    """Running compliant-until over a sequence of instances.

    The first incomplete due date at or after the stored value is taken, then any
    earlier incomplete due date that is still at or after the stored value
    tightens it. The result is the earliest incomplete due date not before the
    stored value, so it never falls below the stored value and does not depend
    on iteration order.
    """

    def __init__(self, stored: datetime) -> None:
        self.floor = stored
        self.value = stored
        self._found = False

    def observe(self, due_date: datetime, completed: bool) -> None:
        if completed:
            return
        if not self._found and due_date >= self.value:
            self.value = due_date
            self._found = True
        elif self._found and self.floor <= due_date <= self.value:
            self.value = due_date


@dataclass
class ExpansionResult:
    instances: List[CourseInstance]
    compliant_until: datetime
    last_compliant_until: datetime
    last_completion_date: Optional[datetime]
    current_cycle: int
    all_courses_completed: bool
    any_course_completed: bool


class ScheduleExpander:
    """Builds the historical and current instance set for one attempt."""

    def __init__(
        self,
        templates: Sequence[CourseTemplate],
        *,
        attempt_id: str,
        anchor: datetime,
        today: datetime,
        progress: Iterable[ProgressRecord] = (),
        repeat_cycle_months: int = 0,
        alignment: Optional[str] = None,
        max_cycles: int = DEFAULT_MAX_CYCLES,
    ) -> None:
        self._templates = list(templates)
        self._attempt_id = attempt_id
        self._anchor = anchor
        self._today = today
        self._progress = [record for record in progress if record.attempt_id == attempt_id]
        self._repeat = max(repeat_cycle_months or 0, 0)
        self._alignment = alignment
        self._max_cycles = max(max_cycles, 1)

    def expand(self, stored_compliant_until: datetime) -> ExpansionResult:
        tracker = CompliantUntilTracker(stored_compliant_until)
        instances: List[CourseInstance] = []
        last_completion: Optional[datetime] = None
        any_completed = False
        cycle_anchor = self._anchor
        base_cycle = 1
        current_cycle = 1
        passes = 0

        while True:
            passes += 1
            pass_instances: List[CourseInstance] = []
            pass_completed = True
            for template in self._templates:
                offsets = sorted(template.start_dates)
                for position, offset in enumerate(offsets):
                    occurrences = compute_occurrences(
                        offset,
                        template.due_period,
                        cycle_anchor,
                        self._today,
                        self._repeat,
                        self._alignment,
                    )
                    for occurrence in occurrences:
                        cycle = base_cycle + occurrence.cycle - 1
                        current_cycle = max(current_cycle, cycle)
                        progress = self._match_progress(template.id, occurrence.start_date)
                        status = classify_status(occurrence.days_left, progress)
                        completed = status == "completed"
                        tracker.observe(occurrence.due_date, completed)
                        if completed:
                            any_completed = True
                            completed_at = progress.completed_date  # type: ignore[union-attr]
                            if last_completion is None or completed_at > last_completion:
                                last_completion = completed_at
                        else:
                            pass_completed = False
                        payload = template.model_dump()
                        payload.update(
                            instance=position + len(offsets) * (cycle - 1),
                            instance_start_period=offset,
                            cycle=cycle,
                            start_date=occurrence.start_date,
                            due_date=occurrence.due_date,
                            due_days_left=occurrence.days_left,
                            status=status,
                            progress=progress,
                        )
                        pass_instances.append(CourseInstance.model_validate(payload))

            instances.extend(pass_instances)
            if not (pass_completed and self._repeat > 0 and pass_instances):
                break
            if passes >= self._max_cycles:
                logger.warning(
                    "Stopped cycle expansion for attempt %s after %s passes", self._attempt_id, passes
                )
                break
            # Every instance so far is completed: schedule the next cycle.
            cycle_anchor = self._anchor + relativedelta(months=current_cycle * self._repeat)
            base_cycle = current_cycle + 1
            current_cycle = base_cycle

        return ExpansionResult(
            instances=instances,
            compliant_until=tracker.value,
            last_compliant_until=tracker.floor,
            last_completion_date=last_completion,
            current_cycle=current_cycle,
            all_courses_completed=pass_completed,
            any_course_completed=any_completed,
        )

    def _match_progress(self, course_id: str, start_date: datetime) -> Optional[ProgressRecord]:
        for record in self._progress:
            if record.course_id == course_id and record.start_date == start_date:
                return record
        return None


__all__ = [
    "CompliantUntilTracker",
    "DEFAULT_MAX_CYCLES",
    "ExpansionResult",
    "ScheduleExpander",
    "classify_status",
]
