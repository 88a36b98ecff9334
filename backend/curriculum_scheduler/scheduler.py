"""End-to-end schedule computation for one attempt."""

from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from typing import Any, Dict, Iterable, List, Optional, Union

import httpx

from .clock import Clock, clock_for, localize, parse_test_today_date, resolve_timezone
from .compliance import evaluate_compliance
from .config import Settings, get_settings
from .content_map import ContentMap
from .errors import AttemptNotFoundError, ManifestConfigurationError
from .expander import ScheduleExpander
from .launch import build_launch
from .manifest_source import fetch_manifest
from .models import (
    ComputedManifest,
    CourseInstance,
    EmailPreferences,
    LaunchContext,
    Learner,
    Manifest,
    ProgressRecord,
    TestParams,
)
from .resolver import resolve_schedule
from .telemetry import timed_event

logger = logging.getLogger(__name__)

ATTEMPT_NOT_STARTED_MESSAGE = "Attempt not found, the user did not start the course"
LEARNER_ANCHOR = "learner"
ORGANIZATION_ANCHOR = "organization"
EPOCH = datetime(1970, 1, 1)


def normalize_lang(lang: Optional[str]) -> Optional[str]:
    """``en_US`` → ``en-US``."""
    if not lang:
        return lang
    return lang.replace("_", "-")


def resolve_anchor(start_date: Union[int, str], context: LaunchContext, tz: tzinfo) -> datetime:
    """Curriculum anchor for the manifest's ``start_date`` setting, in the organization zone.

    ``learner`` and ``organization`` use the learner's and the organization's start
    dates. A month number 0-11 anchors on the first of that month in the year the
    organization (or, failing that, the learner) started.
    """
    kind = start_date.strip().lower() if isinstance(start_date, str) else start_date
    if kind == LEARNER_ANCHOR:
        moment = context.learner_start_date
    elif kind == ORGANIZATION_ANCHOR:
        moment = context.org_start_date
    else:
        month = _fixed_month(kind)
        if month is None:
            raise ManifestConfigurationError("Wrong configuration value of `start_date` in the manifest")
        reference = context.org_start_date or context.learner_start_date
        if reference is None:
            raise ManifestConfigurationError(
                f"Attempt {context.attempt_id} has no start date to anchor month {month} on"
            )
        return datetime(localize(reference, tz).year, month + 1, 1, tzinfo=tz)

    if moment is None:
        raise ManifestConfigurationError(f"Attempt {context.attempt_id} has no {kind} start date")
    return localize(moment, tz)


def _fixed_month(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        if not value.isdigit():
            return None
        value = int(value)
    if isinstance(value, int) and 0 <= value <= 11:
        return value
    return None


def learner_display_name(user_name: Optional[str]) -> str:
    """Display name for ``user|student`` names.

    The student part wins when both parts are set; an empty student part falls
    back to the user part. Anything other than two parts uses the first one.
    """
    if not user_name:
        return ""
    parts = user_name.split("|")
    if len(parts) != 2:
        return parts[0]
    user, student = parts
    if user and student:
        return student
    if not student:
        return user
    return ""


def build_learner(context: LaunchContext) -> Learner:
    return Learner(
        id=context.user_id,
        name=learner_display_name(context.user_name),
        full_name=context.user_name,
        email=context.user_email,
        email_validated=context.validation_code is None,
        org_id=context.org_id,
        org_name=context.org_name,
        org_time_zone=context.org_time_zone,
        institution_id=context.institution_id,
        institution_name=context.institution_name,
        department_id=context.department_id,
        email_pref=EmailPreferences.from_bitmask(context.email_notifications),
    )


def _localize_progress(record: ProgressRecord, tz: tzinfo) -> ProgressRecord:
    updates: Dict[str, Any] = {}
    for name in ("start_date", "due_date", "started_date", "completed_date", "modified_date"):
        value = getattr(record, name)
        if value is not None:
            updates[name] = localize(value, tz)
    return record.model_copy(update=updates)


class CurriculumScheduler:
    """Computes the resolved, compliance-annotated schedule of one attempt.

    ``manifest`` is either a parsed :class:`Manifest` or the URL to fetch it from.
    The datastore is only consulted for whatever ``launch_context`` and
    ``progress`` do not supply.
    """

    def __init__(
        self,
        attempt_id: str,
        manifest: Union[Manifest, str],
        *,
        store: Any = None,
        lang: Optional[str] = None,
        test_params: Optional[TestParams] = None,
        return_format: Optional[str] = None,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.Client] = None,
        launch_context: Optional[LaunchContext] = None,
        progress: Optional[Iterable[ProgressRecord]] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.attempt_id = attempt_id
        self._manifest = manifest
        self._store = store
        self._lang = lang
        self._test_params = test_params or TestParams()
        self._return_format = return_format
        self._settings = settings or get_settings()
        self._http_client = http_client
        self._launch_context = launch_context
        self._progress = list(progress) if progress is not None else None
        self._clock = clock or Clock()

    def _datastore(self) -> Any:
        if self._store is None:
            from .repositories import AttemptStore

            self._store = AttemptStore()
        return self._store

    def load_manifest(self) -> Manifest:
        if isinstance(self._manifest, Manifest):
            return self._manifest
        return fetch_manifest(
            self._manifest,
            client=self._http_client,
            timeout=self._settings.http_timeout_seconds,
        )

    def load_launch_context(self) -> LaunchContext:
        if self._launch_context is None:
            self._launch_context = self._datastore().get_launch_context(self.attempt_id)
        if self._launch_context is None:
            raise AttemptNotFoundError(self.attempt_id, ATTEMPT_NOT_STARTED_MESSAGE)
        return self._launch_context

    def load_progress(self) -> List[ProgressRecord]:
        if self._progress is None:
            self._progress = list(self._datastore().list_progress(self.attempt_id))
        return self._progress

    def schedule(self) -> ComputedManifest:
        with timed_event("schedule_run", attempt_id=self.attempt_id) as event:
            # A malformed override fails the run before any collaborator is called.
            clock = clock_for(self._test_params.test_today_date, default=self._clock)
            context = self.load_launch_context()
            manifest = self.load_manifest()
            event["manifest_id"] = manifest.id

            tz = resolve_timezone(context.org_time_zone, self._settings.default_timezone)
            today = clock.today(tz)
            anchor = resolve_anchor(manifest.start_date, context, tz)
            stored_compliant_until = (
                localize(context.compliant_until, tz)
                if context.compliant_until is not None
                else EPOCH.replace(tzinfo=tz)
            )
            progress = [_localize_progress(record, tz) for record in self.load_progress()]

            expansion = ScheduleExpander(
                manifest.courses,
                attempt_id=self.attempt_id,
                anchor=anchor,
                today=today,
                progress=progress,
                repeat_cycle_months=manifest.repeat_cycle,
                alignment=manifest.start_alignment,
                max_cycles=self._settings.max_cycles,
            ).expand(stored_compliant_until)

            compliance_status = evaluate_compliance(
                manifest.compliant,
                compliant_until=expansion.compliant_until,
                today=today,
                instances=expansion.instances,
                anchor=anchor,
                any_course_completed=expansion.any_course_completed,
            )
            instances = [self._with_launch(instance) for instance in expansion.instances]
            resolved = resolve_schedule(instances, compliant_until=expansion.compliant_until, today=today)

            payload = manifest.model_dump()
            payload.update(
                courses=resolved.courses,
                current_courses=resolved.current_courses,
                future_courses=resolved.future_courses,
                past_courses=resolved.past_courses,
                attempt_id=self.attempt_id,
                user=build_learner(context),
                org_time_zone=getattr(tz, "key", str(tz)),
                lang=self._lang or manifest.lang,
                current_cycle=expansion.current_cycle,
                all_courses_completed=expansion.all_courses_completed,
                any_course_completed=expansion.any_course_completed,
                compliant_until=expansion.compliant_until,
                last_compliant_until=expansion.last_compliant_until,
                last_completion_date=expansion.last_completion_date,
                first_attempt_date=anchor,
                compliance_status=compliance_status,
                test_params=TestParams(
                    test_today_date=today,
                    test_manifest=self._test_params.test_manifest,
                    test_lang=normalize_lang(self._test_params.test_lang),
                ),
            )
            computed = ComputedManifest.model_validate(payload)
            event.update(
                instances=len(computed.courses),
                current=len(computed.current_courses),
                compliance_status=compliance_status,
            )
            return computed

    def _with_launch(self, instance: CourseInstance) -> CourseInstance:
        launch = build_launch(
            instance,
            attempt_id=self.attempt_id,
            content_service_url=self._settings.content_service_url,
            return_format=self._return_format,
            launch_return_url=self._settings.launch_return_url,
        )
        return instance.model_copy(update={"launch": launch})


def schedule_for_attempt(
    attempt_id: str,
    content_map: ContentMap,
    *,
    store: Any = None,
    test_params: Optional[TestParams] = None,
    return_format: Optional[str] = None,
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.Client] = None,
) -> ComputedManifest:
    """Schedule an attempt using the content map entry of the curriculum it belongs to."""
    if store is None:
        from .repositories import AttemptStore

        store = AttemptStore()
    parse_test_today_date((test_params or TestParams()).test_today_date)
    context = store.get_launch_context(attempt_id)
    if context is None:
        raise AttemptNotFoundError(attempt_id, ATTEMPT_NOT_STARTED_MESSAGE)
    entry = content_map.entry_for_manifest_id(context.manifest_id or "")
    return CurriculumScheduler(
        attempt_id,
        entry.manifest,
        store=store,
        lang=entry.lang,
        test_params=test_params,
        return_format=return_format,
        settings=settings,
        http_client=http_client,
        launch_context=context,
    ).schedule()


__all__ = [
    "ATTEMPT_NOT_STARTED_MESSAGE",
    "CurriculumScheduler",
    "build_learner",
    "learner_display_name",
    "normalize_lang",
    "resolve_anchor",
    "schedule_for_attempt",
]
