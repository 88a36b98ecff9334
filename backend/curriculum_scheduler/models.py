"""Curriculum manifest, learner context and computed schedule models."""

from __future__ import annotations

from datetime import datetime
from enum import IntFlag
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

CourseStatus = Literal[
    "completed",
    "pastDueStarted",
    "pastDueNotStarted",
    "lockedByPastDue",
    "started",
    "notStarted",
    "lockedByDependencies",
    "upcoming",
]
ComplianceStatus = Literal["compliant", "interim", "uncompliant"]


class EmailPref(IntFlag):
    NONE = 0x0000
    ONSTART = 0x0001
    BEFOREDUE = 0x0002
    PASTDUE = 0x0004
    ALL = 0x0007


class EmailPreferences(BaseModel):
    """Named view over the three-bit notification mask."""

    on_start: bool = Field(default=False, alias="onStart")
    before_due: bool = Field(default=False, alias="beforeDue")
    past_due: bool = Field(default=False, alias="pastDue")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_bitmask(cls, mask: Optional[int]) -> "EmailPreferences":
        flags = EmailPref((mask or 0) & EmailPref.ALL)
        return cls(
            on_start=EmailPref.ONSTART in flags,
            before_due=EmailPref.BEFOREDUE in flags,
            past_due=EmailPref.PASTDUE in flags,
        )


class LaunchMetadata(BaseModel):
    """LTI launch block of a course; everything except ``lti_link`` is passed through."""

    lti_link: str = ""

    model_config = ConfigDict(extra="allow")


class CourseTemplate(BaseModel):
    """Course definition inside a manifest. Never mutated by a scheduling run."""

    id: str
    title: str = ""
    launch: LaunchMetadata = Field(default_factory=LaunchMetadata)
    start_dates: List[int] = Field(default_factory=list)
    due_period: int = Field(default=0, ge=0)
    depends_on: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow", frozen=True)

    @field_validator("start_dates", "depends_on", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("due_period", mode="before")
    @classmethod
    def _none_as_zero(cls, value: Any) -> Any:
        return 0 if value is None else value


class NotificationSettings(BaseModel):
    relative_to_due_date: Optional[List[int]] = None
    relative_to_start_date: Optional[List[int]] = None
    template: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class CompliancePolicy(BaseModel):
    """Raw ``compliant`` block. Parameters stay loosely typed; the engine fails open on bad values."""

    from_: Optional[str] = Field(default=None, alias="from")
    to: Any = None
    date: Any = None
    courses: Any = None

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class Manifest(BaseModel):
    id: str
    title: str = ""
    type: Optional[str] = None
    repeat_cycle: int = 0
    start_alignment: Optional[str] = None
    start_date: Union[int, str]
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    compliant: Optional[CompliancePolicy] = None
    courses: List[CourseTemplate] = Field(default_factory=list)
    lang: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("repeat_cycle", mode="before")
    @classmethod
    def _repeat_none_as_zero(cls, value: Any) -> Any:
        return 0 if value is None else value


class ProgressRecord(BaseModel):
    attempt_id: str
    course_id: str
    start_date: datetime
    due_date: Optional[datetime] = None
    started_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    modified_date: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.completed_date is not None


class LaunchContext(BaseModel):
    """Attempt, learner and organization data needed to schedule one attempt."""

    attempt_id: str
    user_id: Optional[str] = None
    lms_user_id: Optional[str] = None
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    validation_code: Optional[str] = None
    email_notifications: int = 0
    resource_link_id: Optional[str] = None
    instance_id: Optional[str] = None
    context_id: Optional[str] = None
    lis_result_source_id: Optional[str] = None
    oauth_key: Optional[str] = None
    oauth_secret: Optional[str] = None
    lis_outcome_service_url: Optional[str] = None
    manifest_id: Optional[str] = None
    tool_consumer_info_product_family_code: Optional[str] = None
    org_id: Optional[str] = None
    org_name: Optional[str] = None
    org_time_zone: Optional[str] = None
    institution_id: Optional[str] = None
    institution_name: Optional[str] = None
    department_id: Optional[str] = None
    license_key: Optional[str] = None
    tool_consumer_instance_guid: Optional[str] = None
    roles: Optional[str] = None
    compliant_until: Optional[datetime] = None
    learner_start_date: Optional[datetime] = None
    org_start_date: Optional[datetime] = None


class AttemptContact(BaseModel):
    """Notification-eligible attempt as returned by the datastore."""

    attempt_id: str
    manifest_id: str
    compliant_until: Optional[datetime] = None
    active_attempt: bool = True
    org_id: Optional[str] = None
    user_id: Optional[str] = None
    email_notification: int = 0
    active_user: bool = True
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    moc_start_date: Optional[datetime] = None
    validation_code: Optional[str] = None
    time_zone: Optional[str] = None


class Learner(BaseModel):
    id: Optional[str] = None
    name: str = ""
    full_name: Optional[str] = Field(default=None, alias="fullName")
    email: Optional[str] = None
    email_validated: bool = Field(default=False, alias="emailValidated")
    org_id: Optional[str] = Field(default=None, alias="orgId")
    org_name: Optional[str] = Field(default=None, alias="orgName")
    org_time_zone: Optional[str] = Field(default=None, alias="orgTimeZone")
    institution_id: Optional[str] = Field(default=None, alias="institutionId")
    institution_name: Optional[str] = Field(default=None, alias="institutionName")
    department_id: Optional[str] = Field(default=None, alias="departmentId")
    email_pref: EmailPreferences = Field(default_factory=EmailPreferences, alias="emailPref")

    model_config = ConfigDict(populate_by_name=True)


class TestParams(BaseModel):
    """Request overrides. ``test_today_date`` stays a raw string until the clock parses it."""

    __test__ = False

    test_today_date: Optional[Union[datetime, str]] = None
    test_manifest: Optional[str] = None
    test_lang: Optional[str] = None
    error: Optional[str] = None


class CourseInstance(BaseModel):
    """One dated occurrence of a course template for an offset and a cycle."""

    id: str
    title: str = ""
    launch: LaunchMetadata = Field(default_factory=LaunchMetadata)
    start_dates: List[int] = Field(default_factory=list)
    due_period: int = 0
    depends_on: List[str] = Field(default_factory=list)

    instance: int = 0
    instance_start_period: int = Field(default=0, alias="instanceStartPeriod")
    cycle: int = 1
    start_date: datetime = Field(alias="startDate")
    due_date: datetime = Field(alias="dueDate")
    due_days_left: int = Field(alias="dueDaysLeft")
    status: CourseStatus
    locked: bool = False
    can_launch: bool = Field(default=False, alias="canLaunch")
    progress: Optional[ProgressRecord] = None
    all_course_map_index: Optional[int] = Field(default=None, alias="allCourseMapIndex")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @property
    def is_completed(self) -> bool:
        return self.progress is not None and self.progress.is_completed


class ComputedManifest(Manifest):
    """Manifest augmented with the resolved schedule for one attempt."""

    courses: List[CourseInstance] = Field(default_factory=list)  # type: ignore[assignment]
    attempt_id: str = Field(alias="attemptId")
    user: Optional[Learner] = None
    org_time_zone: str = Field(alias="orgTimeZone")
    current_cycle: int = Field(default=1, alias="currentCycle")
    all_courses_completed: bool = Field(default=False, alias="allCoursesCompleted")
    any_course_completed: bool = Field(default=False, alias="anyCourseCompleted")
    compliant_until: datetime = Field(alias="compliantUntil")
    last_compliant_until: datetime = Field(alias="lastCompliantUntil")
    last_completion_date: Optional[datetime] = Field(default=None, alias="lastCompletionDate")
    first_attempt_date: datetime = Field(alias="firstAttemptDate")
    compliance_status: ComplianceStatus = Field(alias="complianceStatus")
    current_courses: List[CourseInstance] = Field(default_factory=list, alias="currentCourses")
    future_courses: List[CourseInstance] = Field(default_factory=list, alias="futureCourses")
    past_courses: List[CourseInstance] = Field(default_factory=list, alias="pastCourses")
    test_params: TestParams = Field(default_factory=TestParams, alias="testParams")


__all__ = [
    "AttemptContact",
    "ComplianceStatus",
    "CompliancePolicy",
    "ComputedManifest",
    "CourseInstance",
    "CourseStatus",
    "CourseTemplate",
    "EmailPref",
    "EmailPreferences",
    "LaunchContext",
    "LaunchMetadata",
    "Learner",
    "Manifest",
    "NotificationSettings",
    "ProgressRecord",
    "TestParams",
]
