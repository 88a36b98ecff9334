"""Reminder selection for computed schedules and per-learner e-mail payloads."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .intervals import day_diff
from .models import AttemptContact, ComputedManifest, CourseInstance, EmailPref


class CourseReminder(BaseModel):
    name: str
    start_date: str = Field(alias="startDate")
    due_date: str = Field(alias="dueDate")
    diff_start_day: Optional[int] = Field(default=None, alias="diffStartDay")
    diff_due_day: Optional[int] = Field(default=None, alias="diffDueDay")

    model_config = ConfigDict(populate_by_name=True)


class CurriculumReminder(BaseModel):
    moc_title: str = Field(alias="mocTitle")
    courses: List[CourseReminder] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class EmailParams(BaseModel):
    name: str = ""
    lang: Optional[str] = None
    mocs: Dict[str, CurriculumReminder] = Field(default_factory=dict)


class NotificationEmail(BaseModel):
    """One message per learner address, grouping reminders from all of the learner's attempts."""

    to: str
    from_: Optional[str] = Field(default=None, alias="from")
    subject: str
    mail_template: Optional[str] = Field(default=None, alias="mailTemplate")
    params: EmailParams = Field(default_factory=EmailParams)

    model_config = ConfigDict(populate_by_name=True)


def format_display_date(value: datetime) -> str:
    """Short display date without the time of day, e.g. ``Jan 31, 2021``."""
    return f"{value:%b} {value.day}, {value.year}"


def recipient_name(user_name: Optional[str]) -> str:
    """``user|student`` names address the student; single names are used as they are."""
    if not user_name:
        return ""
    parts = user_name.split("|")
    return parts[0] if len(parts) == 1 else parts[1]


def _eligible(instance: CourseInstance) -> bool:
    return instance.can_launch or instance.status == "pastDueNotStarted"


def select_course_reminders(
    manifest: ComputedManifest,
    notification_mask: int,
    today: datetime,
) -> List[CourseReminder]:
    """Reminders due today for one computed manifest and a learner's notification mask.

    On-start reminders fire only on the start day. Due-date offsets at or below zero
    are before-due reminders; positive offsets are past-due reminders.
    """
    settings = manifest.notifications
    start_offsets = settings.relative_to_start_date or []
    due_offsets = settings.relative_to_due_date or []
    mask = EmailPref((notification_mask or 0) & EmailPref.ALL)
    if not start_offsets and not due_offsets:
        return []
    if mask == EmailPref.NONE:
        return []

    reminders: List[CourseReminder] = []
    for instance in manifest.courses:
        if not _eligible(instance) or instance.is_completed:
            continue
        diff_start = math.ceil(day_diff(today, instance.start_date))
        diff_due = math.ceil(day_diff(today, instance.due_date))

        start_hit: Optional[int] = None
        due_hit: Optional[int] = None
        if diff_start == 0 and EmailPref.ONSTART in mask and diff_start in start_offsets:
            start_hit = diff_start
        if diff_due <= 0 and EmailPref.BEFOREDUE in mask and diff_due in due_offsets:
            due_hit = diff_due
        elif diff_due > 0 and EmailPref.PASTDUE in mask and diff_due in due_offsets:
            due_hit = diff_due

        if start_hit is None and due_hit is None:
            continue
        reminders.append(
            CourseReminder(
                name=instance.title,
                start_date=format_display_date(instance.start_date),
                due_date=format_display_date(instance.due_date),
                diff_start_day=start_hit,
                diff_due_day=due_hit,
            )
        )
    return reminders


def build_email(
    contact: AttemptContact,
    manifest: ComputedManifest,
    reminders: List[CourseReminder],
    *,
    subject: str,
    sender: Optional[str] = None,
    mail_template: Optional[str] = None,
    lang: Optional[str] = None,
) -> Optional[NotificationEmail]:
    if not reminders or not contact.user_email:
        return None
    return NotificationEmail(
        to=contact.user_email,
        from_=sender,
        subject=subject,
        mail_template=mail_template,
        params=EmailParams(
            name=recipient_name(contact.user_name),
            lang=lang or manifest.lang,
            mocs={manifest.attempt_id: CurriculumReminder(moc_title=manifest.title, courses=reminders)},
        ),
    )


def merge_emails(emails: Iterable[NotificationEmail]) -> Dict[str, NotificationEmail]:
    """Group messages by recipient. The first message per address keeps its subject and template."""
    merged: Dict[str, NotificationEmail] = {}
    for email in emails:
        existing = merged.get(email.to)
        if existing is None:
            merged[email.to] = email.model_copy(deep=True)
            continue
        existing.params.mocs.update(email.params.mocs)
    return merged


__all__ = [
    "CourseReminder",
    "CurriculumReminder",
    "EmailParams",
    "NotificationEmail",
    "build_email",
    "format_display_date",
    "merge_emails",
    "recipient_name",
    "select_course_reminders",
]
