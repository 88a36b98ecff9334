"""ORM models for attempts, learners, organizations and course progress."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin


def _uuid() -> str:
    return str(uuid.uuid4())


class OrganizationModel(Base):
    """Organization or institution record; names and time zones for attempts."""

    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str] = mapped_column(Text, default="", nullable=False)
    time_zone: Mapped[str | None] = mapped_column(String(64), nullable=True)


class LearnerModel(TimestampMixin, Base):
    __tablename__ = "learners"
    __table_args__ = (Index("ix_learners_lms_user_id", "lms_user_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    lms_user_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    lms_user_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    lms_user_email: Mapped[str | None] = mapped_column(String(256), nullable=True)
    validation_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    notifications: Mapped[int | None] = mapped_column(Integer, nullable=True, default=0)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    attempts: Mapped[list["AttemptModel"]] = relationship(back_populates="learner")


class OrganizationCurriculumModel(Base):
    """A curriculum assigned to an organization; ``created`` is the organization anchor."""

    __tablename__ = "organization_curricula"
    __table_args__ = (UniqueConstraint("org_id", "manifest_id", name="uq_org_curriculum"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[str] = mapped_column(String(128), nullable=False)
    manifest_id: Mapped[str] = mapped_column(String(256), nullable=False)
    created: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )


class AttemptModel(Base):
    __tablename__ = "attempts"
    __table_args__ = (
        Index("ix_attempts_manifest", "manifest_id"),
        Index("ix_attempts_user", "user_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("learners.id", ondelete="CASCADE"), nullable=False
    )
    org_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    institution_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    manifest_id: Mapped[str] = mapped_column(String(256), nullable=False)
    resource_link_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    instance_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    context_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    lis_result_sourcedid: Mapped[str | None] = mapped_column(Text, nullable=True)
    lis_outcome_service_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    oauth_key: Mapped[str | None] = mapped_column(String(128), nullable=True)
    oauth_secret: Mapped[str | None] = mapped_column(String(128), nullable=True)
    tool_consumer_info_product_family_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tool_consumer_instance_guid: Mapped[str | None] = mapped_column(String(128), nullable=True)
    license_key: Mapped[str | None] = mapped_column(String(128), nullable=True)
    roles: Mapped[str | None] = mapped_column(Text, nullable=True)
    compliant_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    learner: Mapped[LearnerModel] = relationship(back_populates="attempts")
    progress: Mapped[list["CourseProgressModel"]] = relationship(
        back_populates="attempt", cascade="all, delete-orphan"
    )


class CourseProgressModel(TimestampMixin, Base):
    """One launch of a course instance; ``created`` is when the learner started it."""

    __tablename__ = "course_progress"
    __table_args__ = (Index("ix_course_progress_attempt", "attempt_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    attempt_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("attempts.id", ondelete="CASCADE"), nullable=False
    )
    course_id: Mapped[str] = mapped_column(String(128), nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    attempt: Mapped[AttemptModel] = relationship(back_populates="progress")


__all__ = [
    "AttemptModel",
    "CourseProgressModel",
    "LearnerModel",
    "OrganizationCurriculumModel",
    "OrganizationModel",
]
