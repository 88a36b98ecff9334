"""Compliance verdicts derived from compliant-until and the manifest's policy.

Policies:

* ``start``: compliant from the beginning, uncompliant once compliant-until has passed.
* ``date``: interim until every instance due before ``anchor + date`` months is completed.
* ``coursecompletion``: interim until the listed course instances are completed.

Missing or unparseable policy parameters yield ``compliant`` with a logged
warning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional, Sequence

from dateutil.relativedelta import relativedelta

from .models import CompliancePolicy, ComplianceStatus, CourseInstance

logger = logging.getLogger(__name__)

POLICY_START = "start"
POLICY_DATE = "date"
POLICY_COURSE_COMPLETION = "coursecompletion"


@dataclass(frozen=True)
class CourseDependency:
    course_id: str
    instance: int = 0


def _month_offset(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _course_dependencies(value: Any) -> Optional[List[CourseDependency]]:
    """Parse the ``courses`` list, keeping the first entry per course id. None when unparseable."""
    if not isinstance(value, list):
        return None
    dependencies: List[CourseDependency] = []
    seen = set()
    for entry in value:
        if isinstance(entry, str):
            course_id, instance = entry, 0
        elif isinstance(entry, dict) and isinstance(entry.get("id"), str):
            course_id = entry["id"]
            instance = _month_offset(entry.get("instance")) or 0
        else:
            return None
        key = course_id.lower()
        if key in seen:
            continue
        seen.add(key)
        dependencies.append(CourseDependency(course_id=key, instance=instance))
    return dependencies


def _all_completed(instances: Sequence[CourseInstance]) -> bool:
    return all(instance.status == "completed" for instance in instances)


def evaluate_compliance(
    policy: Optional[CompliancePolicy],
    *,
    compliant_until: datetime,
    today: datetime,
    instances: Sequence[CourseInstance],
    anchor: datetime,
    any_course_completed: bool,
) -> ComplianceStatus:
    kind = (policy.from_ if policy and policy.from_ else POLICY_START).lower()

    if kind not in (POLICY_START, POLICY_DATE, POLICY_COURSE_COMPLETION):
        logger.warning("Unknown compliance policy %r; treating learner as compliant", kind)
        return "compliant"
    if compliant_until < today:
        return "uncompliant"
    if kind == POLICY_START or policy is None:
        return "compliant"

    if kind == POLICY_DATE:
        months = _month_offset(policy.date)
        if months is None:
            logger.warning("Unparseable compliance date %r; treating learner as compliant", policy.date)
            return "compliant"
        cutoff = anchor + relativedelta(months=months)
        due_before_cutoff = [instance for instance in instances if instance.due_date < cutoff]
        if not any_course_completed or not _all_completed(due_before_cutoff):
            return "interim"
        return "compliant"

    dependencies = _course_dependencies(policy.courses)
    if dependencies is None:
        logger.warning("Unparseable compliance courses %r; treating learner as compliant", policy.courses)
        return "compliant"
    if not dependencies or not any_course_completed:
        return "interim"
    required = [
        instance
        for instance in instances
        for dependency in dependencies
        if instance.id.lower() == dependency.course_id and instance.instance == dependency.instance
    ]
    return "compliant" if _all_completed(required) else "interim"


__all__ = [
    "CourseDependency",
    "POLICY_COURSE_COMPLETION",
    "POLICY_DATE",
    "POLICY_START",
    "evaluate_compliance",
]
