"""End-to-end scheduling runs with injected launch context and progress."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List

import pytest
from zoneinfo import ZoneInfo

from curriculum_scheduler.config import Settings
from curriculum_scheduler.errors import (
    AttemptNotFoundError,
    ManifestConfigurationError,
    TestDateValidationError,
)
from curriculum_scheduler.models import LaunchContext, Manifest, ProgressRecord, TestParams
from curriculum_scheduler.scheduler import CurriculumScheduler, build_learner, learner_display_name, normalize_lang
from curriculum_scheduler.telemetry import TelemetryEvent, clear_listeners, register_listener

UTC = timezone.utc
DUBLIN = ZoneInfo("Europe/Dublin")


def _manifest_payload(**overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": "safety",
        "title": "Safety Curriculum",
        "type": "MOC",
        "repeat_cycle": 12,
        "start_date": "learner",
        "notifications": {"relative_to_due_date": [-3], "relative_to_start_date": [0]},
        "compliant": {"from": "start"},
        "courses": [
            {
                "id": "course-a",
                "title": "Hand Hygiene",
                "start_dates": [0],
                "due_period": 1,
                "launch": {"lti_link": "course-a/index.html", "width": 800},
            },
            {
                "id": "course-b",
                "title": "Fire Safety",
                "start_dates": [1],
                "due_period": 1,
                "depends_on": ["course-a"],
                "launch": {"lti_link": "https://cdn.example.com/course-b"},
            },
        ],
    }
    payload.update(overrides)
    return payload


def _context(**overrides: Any) -> LaunchContext:
    payload: Dict[str, Any] = {
        "attempt_id": "attempt-1",
        "user_id": "learner-1",
        "user_name": "Manager|Sam Learner",
        "user_email": "sam@example.com",
        "email_notifications": 7,
        "manifest_id": "manifest/safety",
        "org_id": "org-1",
        "org_name": "Acme Health",
        "org_time_zone": "Europe/Dublin",
        "learner_start_date": datetime(2021, 1, 1, tzinfo=UTC),
        "org_start_date": datetime(2020, 6, 1, tzinfo=UTC),
    }
    payload.update(overrides)
    return LaunchContext.model_validate(payload)


def _settings() -> Settings:
    return Settings(CURRICULUM_CONTENT_SERVICE_URL="https://cs.example.com")  # type: ignore[call-arg]


class _ExplodingStore:
    def get_launch_context(self, attempt_id: str):
        raise AssertionError("datastore should not be queried")

    def list_progress(self, attempt_id: str):
        raise AssertionError("datastore should not be queried")


class _EmptyStore:
    def get_launch_context(self, attempt_id: str):
        return None

    def list_progress(self, attempt_id: str):
        return []


def _scheduler(
    *,
    manifest: Dict[str, Any] | None = None,
    context: LaunchContext | None = None,
    progress: List[ProgressRecord] | None = None,
    test_today_date: str = "2021-01-28",
    **kwargs: Any,
) -> CurriculumScheduler:
    return CurriculumScheduler(
        "attempt-1",
        Manifest.model_validate(manifest or _manifest_payload()),
        store=_ExplodingStore(),
        lang=kwargs.pop("lang", "en"),
        test_params=kwargs.pop("test_params", TestParams(test_today_date=test_today_date)),
        settings=_settings(),
        launch_context=context or _context(),
        progress=progress if progress is not None else [],
        **kwargs,
    )


def test_schedule_without_progress() -> None:
    computed = _scheduler().schedule()

    by_id = {course.id: course for course in computed.courses}
    assert by_id["course-a"].status == "notStarted"
    assert by_id["course-a"].can_launch is True
    assert by_id["course-a"].due_days_left == 4
    assert by_id["course-b"].status == "lockedByPastDue"
    assert by_id["course-b"].can_launch is False
    assert computed.compliant_until == datetime(2021, 1, 31, 23, 59, 59, 999000, tzinfo=DUBLIN)
    assert computed.compliance_status == "compliant"
    assert computed.first_attempt_date == datetime(2021, 1, 1, tzinfo=DUBLIN)
    assert computed.current_cycle == 1
    assert computed.any_course_completed is False
    assert [course.id for course in computed.current_courses] == ["course-a"]
    assert [course.id for course in computed.future_courses] == ["course-b"]
    assert [course.all_course_map_index for course in computed.courses] == [0, 1]


def test_completed_course_unlocks_the_next_one() -> None:
    progress = [
        ProgressRecord(
            attempt_id="attempt-1",
            course_id="course-a",
            start_date=datetime(2021, 1, 1, tzinfo=UTC),
            started_date=datetime(2021, 1, 3, tzinfo=UTC),
            completed_date=datetime(2021, 1, 20, tzinfo=UTC),
        )
    ]

    computed = _scheduler(progress=progress).schedule()

    by_id = {course.id: course for course in computed.courses}
    assert by_id["course-a"].status == "completed"
    assert by_id["course-b"].status == "upcoming"
    assert computed.compliant_until == datetime(2021, 2, 28, 23, 59, 59, 999000, tzinfo=DUBLIN)
    assert computed.last_completion_date == datetime(2021, 1, 20, tzinfo=UTC)
    assert computed.any_course_completed is True
    assert [course.id for course in computed.past_courses] == ["course-a"]


def test_launch_urls_are_normalized() -> None:
    computed = _scheduler().schedule()

    by_id = {course.id: course for course in computed.courses}
    assert by_id["course-a"].launch.lti_link == (
        "https://cs.example.com/launch_lti?manifest=manifest/course-a/index.html"
    )
    assert by_id["course-a"].launch.model_extra == {"width": 800}
    assert by_id["course-b"].launch.lti_link == "https://cdn.example.com/course-b"


def test_json_format_adds_lti_launch_fields() -> None:
    computed = _scheduler(return_format="json").schedule()

    launch = next(course for course in computed.model_dump(by_alias=True)["courses"] if course["id"] == "course-a")[
        "launch"
    ]
    expected_id = "attempt-1|course-a|2021-01-01T00:00:00.000Z|2021-01-31T23:59:59.999Z"
    assert launch["resource_link_id"] == expected_id
    assert launch["context_id"] == expected_id
    assert launch["lis_result_sourcedid"] == expected_id
    assert launch["tool_consumer_info_product_family_code"] == "moc_lti_launch"
    assert launch["lis_outcome_service_url"] == "https://cs.example.com/moc_lis_endpoint"


def test_runs_are_idempotent() -> None:
    first = _scheduler().schedule().model_dump_json(by_alias=True)
    second = _scheduler().schedule().model_dump_json(by_alias=True)

    assert first == second


def test_learner_and_test_params_are_echoed() -> None:
    computed = _scheduler(
        test_params=TestParams(test_today_date="2021-01-28", test_lang="en_US", test_manifest="https://m/x.json")
    ).schedule()

    assert computed.user is not None
    assert computed.user.name == "Sam Learner"
    assert computed.user.full_name == "Manager|Sam Learner"
    assert computed.user.email_validated is True
    assert computed.user.email_pref.before_due is True
    assert computed.test_params.test_lang == "en-US"
    assert computed.test_params.test_manifest == "https://m/x.json"
    assert computed.test_params.test_today_date == datetime(2021, 1, 28, tzinfo=DUBLIN)
    assert computed.org_time_zone == "Europe/Dublin"
    assert computed.lang == "en"
    assert computed.attempt_id == "attempt-1"


def test_fixed_month_anchor_uses_organization_year() -> None:
    computed = _scheduler(manifest=_manifest_payload(start_date=3, repeat_cycle=0)).schedule()

    assert computed.first_attempt_date == datetime(2020, 4, 1, tzinfo=DUBLIN)


def test_organization_anchor() -> None:
    computed = _scheduler(manifest=_manifest_payload(start_date="organization", repeat_cycle=0)).schedule()

    assert computed.first_attempt_date == datetime(2020, 6, 1, tzinfo=UTC)


@pytest.mark.parametrize("start_date", ["institution", "tomorrow", "12", -1])
def test_unknown_start_anchor_is_a_configuration_error(start_date: Any) -> None:
    with pytest.raises(ManifestConfigurationError):
        _scheduler(manifest=_manifest_payload(start_date=start_date)).schedule()


def test_invalid_test_date_fails_before_any_lookup() -> None:
    scheduler = CurriculumScheduler(
        "attempt-1",
        "https://manifests.example.com/safety.json",
        store=_ExplodingStore(),
        test_params=TestParams(test_today_date="28/01/2021"),
        settings=_settings(),
    )

    with pytest.raises(TestDateValidationError):
        scheduler.schedule()


def test_missing_attempt_is_reported() -> None:
    scheduler = CurriculumScheduler(
        "missing",
        Manifest.model_validate(_manifest_payload()),
        store=_EmptyStore(),
        settings=_settings(),
    )

    with pytest.raises(AttemptNotFoundError) as excinfo:
        scheduler.schedule()

    assert str(excinfo.value) == "Attempt not found, the user did not start the course"


def test_uncompliant_when_compliant_until_passed() -> None:
    context = _context(compliant_until=datetime(2020, 12, 31, tzinfo=UTC))
    progress = [
        ProgressRecord(
            attempt_id="attempt-1",
            course_id="course-a",
            start_date=datetime(2021, 1, 1, tzinfo=UTC),
        )
    ]

    computed = _scheduler(context=context, progress=progress, test_today_date="2021-02-10").schedule()

    assert computed.compliance_status == "uncompliant"
    assert computed.last_compliant_until == datetime(2020, 12, 31, tzinfo=UTC)


def test_schedule_run_emits_telemetry() -> None:
    events: List[TelemetryEvent] = []
    clear_listeners()
    register_listener(events.append)
    try:
        _scheduler().schedule()
    finally:
        clear_listeners()

    runs = [event for event in events if event.name == "schedule_run"]
    assert len(runs) == 1
    assert runs[0].payload["attempt_id"] == "attempt-1"
    assert runs[0].payload["manifest_id"] == "safety"
    assert runs[0].payload["compliance_status"] == "compliant"
    assert runs[0].payload["status"] == "success"


def test_normalize_lang() -> None:
    assert normalize_lang("pt_BR") == "pt-BR"
    assert normalize_lang(None) is None


@pytest.mark.parametrize(
    ("user_name", "expected"),
    [
        ("Manager|Sam Learner", "Sam Learner"),
        ("alice|", "alice"),
        ("|bob", ""),
        ("Sam", "Sam"),
        ("a|b|c", "a"),
        ("", ""),
        (None, ""),
    ],
)
def test_learner_display_name(user_name: str | None, expected: str) -> None:
    assert learner_display_name(user_name) == expected


def test_learner_view_keeps_user_part_when_student_part_is_empty() -> None:
    learner = build_learner(_context(user_name="alice|"))

    assert learner.name == "alice"
    assert learner.full_name == "alice|"


def test_quarter_alignment_reaches_the_expander() -> None:
    context = _context(learner_start_date=datetime(2021, 2, 15, tzinfo=UTC))

    computed = _scheduler(
        manifest=_manifest_payload(start_alignment="quarter", repeat_cycle=0),
        context=context,
        test_today_date="2021-02-20",
    ).schedule()

    by_id = {course.id: course for course in computed.courses}
    assert computed.start_alignment == "quarter"
    assert by_id["course-a"].start_date == datetime(2021, 1, 1, tzinfo=DUBLIN)
