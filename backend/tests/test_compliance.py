from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

import pytest
from zoneinfo import ZoneInfo

from curriculum_scheduler.compliance import evaluate_compliance
from curriculum_scheduler.models import CompliancePolicy, CourseInstance, ProgressRecord

DUBLIN = ZoneInfo("Europe/Dublin")
ANCHOR = datetime(2021, 1, 1, tzinfo=DUBLIN)
TODAY = datetime(2021, 6, 1, tzinfo=DUBLIN)
FUTURE_COMPLIANT_UNTIL = datetime(2021, 12, 31, tzinfo=DUBLIN)


def _instance(course_id: str, month: int, *, completed: bool, instance: int = 0) -> CourseInstance:
    start = datetime(2021, month, 1, tzinfo=DUBLIN)
    due = datetime(2021, month, 28, 23, 59, 59, tzinfo=DUBLIN)
    progress = None
    if completed:
        progress = ProgressRecord(
            attempt_id="attempt-1",
            course_id=course_id,
            start_date=start,
            completed_date=start,
        )
    return CourseInstance(
        id=course_id,
        instance=instance,
        start_date=start,
        due_date=due,
        due_days_left=0,
        status="completed" if completed else "notStarted",
        progress=progress,
    )


def _evaluate(
    policy: Optional[dict[str, Any]],
    instances: list[CourseInstance],
    *,
    compliant_until: datetime = FUTURE_COMPLIANT_UNTIL,
    today: datetime = TODAY,
) -> str:
    return evaluate_compliance(
        CompliancePolicy.model_validate(policy) if policy is not None else None,
        compliant_until=compliant_until,
        today=today,
        instances=instances,
        anchor=ANCHOR,
        any_course_completed=any(instance.is_completed for instance in instances),
    )


def test_start_policy_is_uncompliant_once_compliant_until_passed() -> None:
    verdict = _evaluate(
        {"from": "start"},
        [],
        compliant_until=datetime(2020, 1, 1, tzinfo=DUBLIN),
        today=datetime(2023, 1, 1, tzinfo=DUBLIN),
    )

    assert verdict == "uncompliant"


def test_missing_policy_behaves_like_start() -> None:
    assert _evaluate(None, []) == "compliant"
    assert _evaluate(None, [], compliant_until=datetime(2021, 5, 1, tzinfo=DUBLIN)) == "uncompliant"


def test_policy_without_kind_behaves_like_start() -> None:
    instances = [_instance("a", 1, completed=False)]

    assert _evaluate({"date": 3}, instances) == "compliant"
    assert _evaluate({}, instances, compliant_until=datetime(2021, 5, 1, tzinfo=DUBLIN)) == "uncompliant"


@pytest.mark.parametrize("kind", ["date", "coursecompletion"])
def test_passed_compliant_until_is_uncompliant_for_every_policy(kind: str) -> None:
    policy = {"from": kind, "date": 3, "courses": ["a"]}
    instances = [_instance("a", 1, completed=True)]

    verdict = _evaluate(policy, instances, compliant_until=datetime(2021, 5, 31, tzinfo=DUBLIN))

    assert verdict == "uncompliant"


def test_date_policy_requires_courses_due_before_cutoff() -> None:
    policy = {"from": "date", "date": "3"}
    done_early = _instance("a", 1, completed=True)
    missing_early = _instance("b", 2, completed=False)
    after_cutoff = _instance("c", 5, completed=False)

    assert _evaluate(policy, [done_early, after_cutoff]) == "compliant"
    assert _evaluate(policy, [done_early, missing_early, after_cutoff]) == "interim"


def test_date_policy_without_any_completion_is_interim() -> None:
    policy = {"from": "date", "date": 1}

    assert _evaluate(policy, [_instance("c", 5, completed=False)]) == "interim"


def test_coursecompletion_policy() -> None:
    policy = {"from": "coursecompletion", "courses": ["A", {"id": "b", "instance": 1}, "a"]}
    a_first = _instance("a", 1, completed=True)
    b_first = _instance("b", 1, completed=False)
    b_second = _instance("b", 3, completed=True, instance=1)

    assert _evaluate(policy, [a_first, b_first, b_second]) == "compliant"
    assert _evaluate(policy, [a_first, b_first, _instance("b", 3, completed=False, instance=1)]) == "interim"


def test_coursecompletion_with_empty_list_is_interim() -> None:
    policy = {"from": "coursecompletion", "courses": []}

    assert _evaluate(policy, [_instance("a", 1, completed=True)]) == "interim"


@pytest.mark.parametrize(
    "policy",
    [
        {"from": "date", "date": "soon"},
        {"from": "date"},
        {"from": "coursecompletion", "courses": "a,b"},
        {"from": "coursecompletion", "courses": [42]},
        {"from": "somethingelse"},
    ],
)
def test_unparseable_policies_fail_open(policy: dict[str, Any]) -> None:
    assert _evaluate(policy, [_instance("a", 1, completed=False)]) == "compliant"
