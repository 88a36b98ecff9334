"""Curriculum scheduling: recurring course instances, compliance and reminders."""

from .errors import SchedulerError
from .models import ComputedManifest, Manifest, TestParams
from .scheduler import CurriculumScheduler, schedule_for_attempt

__all__ = [
    "ComputedManifest",
    "CurriculumScheduler",
    "Manifest",
    "SchedulerError",
    "TestParams",
    "schedule_for_attempt",
]
