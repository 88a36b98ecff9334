"""Attempt, learner and course-progress queries."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, TypeVar

from sqlalchemy import and_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, aliased

from ..db.models import (
    AttemptModel,
    CourseProgressModel,
    LearnerModel,
    OrganizationCurriculumModel,
    OrganizationModel,
)
from ..db.session import session_scope
from ..errors import DatastoreError
from ..models import AttemptContact, LaunchContext, ProgressRecord

logger = logging.getLogger(__name__)

MANIFEST_ID_PREFIX = "manifest/"

T = TypeVar("T")


def qualified_manifest_id(manifest_id: str) -> str:
    if manifest_id.startswith(MANIFEST_ID_PREFIX):
        return manifest_id
    return f"{MANIFEST_ID_PREFIX}{manifest_id}"


class AttemptRepository:
    """Session-taking queries; callers own the transaction."""

    def get_launch_context(self, session: Session, attempt_id: str) -> Optional[LaunchContext]:
        organization = aliased(OrganizationModel)
        institution = aliased(OrganizationModel)
        stmt = (
            select(AttemptModel, LearnerModel, organization, institution, OrganizationCurriculumModel.created)
            .join(LearnerModel, LearnerModel.id == AttemptModel.user_id)
            .outerjoin(organization, organization.id == AttemptModel.org_id)
            .outerjoin(institution, institution.id == AttemptModel.institution_id)
            .outerjoin(
                OrganizationCurriculumModel,
                and_(
                    OrganizationCurriculumModel.org_id == AttemptModel.org_id,
                    OrganizationCurriculumModel.manifest_id == AttemptModel.manifest_id,
                ),
            )
            .where(AttemptModel.id == attempt_id)
        )
        row = session.execute(stmt).first()
        if row is None:
            return None
        attempt, learner, org, inst, org_start_date = row
        return LaunchContext(
            attempt_id=attempt.id,
            user_id=learner.id,
            lms_user_id=learner.lms_user_id,
            user_name=learner.lms_user_name,
            user_email=learner.lms_user_email,
            validation_code=learner.validation_code,
            email_notifications=learner.notifications or 0,
            resource_link_id=attempt.resource_link_id,
            instance_id=attempt.instance_id,
            context_id=attempt.context_id,
            lis_result_source_id=attempt.lis_result_sourcedid,
            oauth_key=attempt.oauth_key,
            oauth_secret=attempt.oauth_secret,
            lis_outcome_service_url=attempt.lis_outcome_service_url,
            manifest_id=attempt.manifest_id,
            tool_consumer_info_product_family_code=attempt.tool_consumer_info_product_family_code,
            org_id=attempt.org_id,
            org_name=org.name if org is not None else None,
            org_time_zone=org.time_zone if org is not None else None,
            institution_id=attempt.institution_id,
            institution_name=inst.name if inst is not None else None,
            license_key=attempt.license_key,
            tool_consumer_instance_guid=attempt.tool_consumer_instance_guid,
            roles=attempt.roles,
            compliant_until=attempt.compliant_until,
            learner_start_date=attempt.start_date,
            org_start_date=org_start_date,
        )

    def list_progress(self, session: Session, attempt_id: str) -> List[ProgressRecord]:
        stmt = (
            select(CourseProgressModel)
            .where(CourseProgressModel.attempt_id == attempt_id)
            .order_by(CourseProgressModel.created.asc())
        )
        return [
            ProgressRecord(
                attempt_id=model.attempt_id,
                course_id=model.course_id,
                start_date=model.start_date,
                due_date=model.due_date,
                started_date=model.created,
                completed_date=model.completed,
                modified_date=model.modified,
            )
            for model in session.execute(stmt).scalars()
        ]

    def list_notifiable_attempts(
        self,
        session: Session,
        *,
        manifest_id: Optional[str] = None,
        attempt_id: Optional[str] = None,
    ) -> List[AttemptContact]:
        """Active attempts of active learners with a validated address and at least one reminder channel."""
        stmt = (
            select(AttemptModel, LearnerModel, OrganizationModel.time_zone)
            .join(LearnerModel, LearnerModel.id == AttemptModel.user_id)
            .outerjoin(OrganizationModel, OrganizationModel.id == AttemptModel.org_id)
            .where(
                AttemptModel.active.is_(True),
                LearnerModel.active.is_(True),
                LearnerModel.notifications.is_not(None),
                LearnerModel.notifications != 0,
                LearnerModel.validation_code.is_(None),
            )
            .order_by(AttemptModel.id)
        )
        if manifest_id is not None:
            stmt = stmt.where(AttemptModel.manifest_id == qualified_manifest_id(manifest_id))
        if attempt_id is not None:
            stmt = stmt.where(AttemptModel.id == attempt_id)

        contacts: List[AttemptContact] = []
        for attempt, learner, time_zone in session.execute(stmt):
            contacts.append(
                AttemptContact(
                    attempt_id=attempt.id,
                    manifest_id=attempt.manifest_id,
                    compliant_until=attempt.compliant_until,
                    active_attempt=attempt.active,
                    org_id=attempt.org_id,
                    user_id=learner.id,
                    email_notification=learner.notifications or 0,
                    active_user=learner.active,
                    user_name=learner.lms_user_name,
                    user_email=learner.lms_user_email,
                    moc_start_date=attempt.start_date,
                    validation_code=learner.validation_code,
                    time_zone=time_zone,
                )
            )
        return contacts


class AttemptStore:
    """Opens a read-only session per call and reports driver failures as ``DatastoreError``."""

    def __init__(self, repository: Optional[AttemptRepository] = None) -> None:
        self._repository = repository or AttemptRepository()

    def _read(self, label: str, query: Callable[[Session], T]) -> T:
        try:
            with session_scope(commit=False) as session:
                return query(session)
        except SQLAlchemyError as exc:
            logger.exception("Datastore query %s failed", label)
            raise DatastoreError(f"Datastore query {label} failed: {exc}") from exc

    def get_launch_context(self, attempt_id: str) -> Optional[LaunchContext]:
        return self._read(
            "get_launch_context",
            lambda session: self._repository.get_launch_context(session, attempt_id),
        )

    def list_progress(self, attempt_id: str) -> List[ProgressRecord]:
        return self._read(
            "list_progress",
            lambda session: self._repository.list_progress(session, attempt_id),
        )

    def list_notifiable_attempts(
        self,
        *,
        manifest_id: Optional[str] = None,
        attempt_id: Optional[str] = None,
    ) -> List[AttemptContact]:
        return self._read(
            "list_notifiable_attempts",
            lambda session: self._repository.list_notifiable_attempts(
                session, manifest_id=manifest_id, attempt_id=attempt_id
            ),
        )


__all__ = [
    "AttemptRepository",
    "AttemptStore",
    "qualified_manifest_id",
]
