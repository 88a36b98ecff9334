from __future__ import annotations

import copy
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

import pytest

from curriculum_scheduler.config import get_settings
from curriculum_scheduler.db.base import Base
from curriculum_scheduler.db.models import (
    AttemptModel,
    CourseProgressModel,
    LearnerModel,
    OrganizationCurriculumModel,
    OrganizationModel,
)
from curriculum_scheduler.db.session import dispose_engine, get_engine, session_scope

UTC = timezone.utc

MANIFEST_DOCUMENT = {
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
            "launch": {"lti_link": "course-a/index.html"},
        },
        {
            "id": "course-b",
            "title": "Fire Safety",
            "start_dates": [1],
            "due_period": 1,
            "depends_on": ["course-a"],
            "launch": {"lti_link": "course-b/index.html"},
        },
    ],
}


@pytest.fixture
def curriculum_db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    db_path = tmp_path / "curriculum.db"
    monkeypatch.setenv("CURRICULUM_DATABASE_URL", f"sqlite:///{db_path}")
    monkeypatch.setenv("CURRICULUM_CONTENT_SERVICE_URL", "https://cs.example.com")
    get_settings.cache_clear()
    dispose_engine()
    engine = get_engine()
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    with session_scope() as session:
        session.add(OrganizationModel(id="org-1", name="Acme Health", time_zone="Europe/Dublin"))
        session.add(
            OrganizationCurriculumModel(
                org_id="org-1",
                manifest_id="manifest/safety",
                created=datetime(2020, 6, 1, tzinfo=UTC),
            )
        )
    yield db_path
    dispose_engine()
    get_settings.cache_clear()


def seed_attempt(
    attempt_id: str,
    *,
    learner_id: Optional[str] = None,
    email: Optional[str] = "sam@example.com",
    user_name: str = "Manager|Sam Learner",
    notifications: Optional[int] = 7,
    validation_code: Optional[str] = None,
    active: bool = True,
    learner_active: bool = True,
    manifest_id: str = "manifest/safety",
    start_date: datetime = datetime(2021, 1, 1, tzinfo=UTC),
    compliant_until: Optional[datetime] = None,
    completed_courses: tuple[str, ...] = (),
) -> None:
    """Insert a learner (unless it exists) and an attempt; completed courses get January progress."""
    learner_id = learner_id or f"learner-{attempt_id}"
    with session_scope() as session:
        if session.get(LearnerModel, learner_id) is None:
            session.add(
                LearnerModel(
                    id=learner_id,
                    lms_user_id=f"lms-{learner_id}",
                    lms_user_name=user_name,
                    lms_user_email=email,
                    validation_code=validation_code,
                    notifications=notifications,
                    active=learner_active,
                )
            )
        session.add(
            AttemptModel(
                id=attempt_id,
                user_id=learner_id,
                org_id="org-1",
                manifest_id=manifest_id,
                start_date=start_date,
                compliant_until=compliant_until,
                active=active,
            )
        )
        session.flush()
        for course_id in completed_courses:
            session.add(
                CourseProgressModel(
                    attempt_id=attempt_id,
                    course_id=course_id,
                    start_date=datetime(2021, 1, 1, tzinfo=UTC),
                    due_date=datetime(2021, 1, 31, 23, 59, 59, 999000, tzinfo=UTC),
                    completed=datetime(2021, 1, 20, tzinfo=UTC),
                    created=datetime(2021, 1, 3, tzinfo=UTC),
                )
            )


@pytest.fixture
def attempt_factory(curriculum_db: Path):
    return seed_attempt


@pytest.fixture
def manifest_document() -> dict:
    return copy.deepcopy(MANIFEST_DOCUMENT)
