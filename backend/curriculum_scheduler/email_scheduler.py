"""Reminder e-mail computation for single attempts and content-map-wide sweeps."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .clock import resolve_timezone
from .config import Settings, get_settings
from .content_map import ContentMap, ContentMapEntry
from .errors import AttemptNotFoundError, SchedulerError, TemplateFetchError
from .manifest_source import fetch_mail_template, fetch_manifest
from .models import AttemptContact, ComputedManifest, Manifest, TestParams
from .notifications import NotificationEmail, build_email, merge_emails, select_course_reminders
from .scheduler import CurriculumScheduler, normalize_lang
from .telemetry import timed_event

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_PATH = Path(__file__).resolve().parent / "templates" / "course-reminders-email.html"


class SweepError(BaseModel):
    manifest_id: Optional[str] = Field(default=None, alias="manifestId")
    attempt_id: Optional[str] = Field(default=None, alias="attemptId")
    message: str

    model_config = ConfigDict(populate_by_name=True)


class SweepResult(BaseModel):
    emails: Dict[str, NotificationEmail] = Field(default_factory=dict)
    errors: List[SweepError] = Field(default_factory=list)


def load_default_template(path: Path = DEFAULT_TEMPLATE_PATH) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise TemplateFetchError(f"Error reading default mail template {path}: {exc}") from exc


# (contact, manifest, content map language, mail template)
_Job = Tuple[AttemptContact, Manifest, Optional[str], str]


class EmailScheduler:
    """Computes which learners get a reminder today and the messages to send them."""

    def __init__(
        self,
        content_map: ContentMap,
        *,
        store: Any = None,
        test_params: Optional[TestParams] = None,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.Client] = None,
        default_template: Optional[str] = None,
    ) -> None:
        self._content_map = content_map
        if store is None:
            from .repositories import AttemptStore

            store = AttemptStore()
        self._store = store
        self._test_params = test_params or TestParams()
        self._settings = settings or get_settings()
        self._http_client = http_client
        self._default_template = default_template if default_template is not None else load_default_template()

    def _fetch_manifest(self, entry: ContentMapEntry) -> Manifest:
        return fetch_manifest(
            entry.manifest,
            client=self._http_client,
            timeout=self._settings.http_timeout_seconds,
        )

    def _template_for(self, manifest: Manifest) -> str:
        url = manifest.notifications.template
        if not url:
            return self._default_template
        return fetch_mail_template(url, client=self._http_client, timeout=self._settings.http_timeout_seconds)

    def _email_for(
        self,
        contact: AttemptContact,
        manifest: Manifest,
        lang: Optional[str],
        template: str,
    ) -> Optional[NotificationEmail]:
        computed = CurriculumScheduler(
            contact.attempt_id,
            manifest,
            store=self._store,
            lang=lang,
            test_params=self._test_params,
            settings=self._settings,
        ).schedule()
        reminders = select_course_reminders(computed, contact.email_notification, _today_of(computed))
        return build_email(
            contact,
            computed,
            reminders,
            subject=self._settings.notification_subject,
            sender=self._settings.notification_sender,
            mail_template=template,
            lang=normalize_lang(self._test_params.test_lang) or computed.lang,
        )

    def schedule_email_for_attempt(self, attempt_id: str) -> Dict[str, NotificationEmail]:
        """Messages for one attempt. Unlike a sweep, every failure is raised to the caller."""
        contacts = self._store.list_notifiable_attempts(attempt_id=attempt_id)
        if not contacts:
            raise AttemptNotFoundError(attempt_id)
        contact = contacts[0]
        entry = self._content_map.entry_for_manifest_id(contact.manifest_id)
        manifest = self._fetch_manifest(entry)
        email = self._email_for(contact, manifest, entry.lang, self._template_for(manifest))
        return merge_emails([email] if email is not None else [])

    def schedule_all_emails(self) -> SweepResult:
        """Sweep every curriculum entry of the content map.

        Manifests and templates are fetched once per entry. Attempts are then
        scheduled on a worker pool; a failing attempt or entry is recorded in
        ``errors`` and the sweep continues.
        """
        errors: List[SweepError] = []
        emails: List[Tuple[str, NotificationEmail]] = []
        with timed_event("notification_sweep") as event:
            jobs = self._collect_jobs(errors)
            event["entries"] = len(self._content_map.curriculum_entries())
            event["attempts"] = len(jobs)

            if jobs:
                with ThreadPoolExecutor(max_workers=self._settings.sweep_workers) as executor:
                    futures = {executor.submit(self._email_for, *job): job[0] for job in jobs}
                    for future in as_completed(futures):
                        contact = futures[future]
                        try:
                            email = future.result()
                        except Exception as exc:  # noqa: BLE001
                            logger.exception("Reminder computation failed for attempt %s", contact.attempt_id)
                            errors.append(
                                SweepError(
                                    manifest_id=contact.manifest_id,
                                    attempt_id=contact.attempt_id,
                                    message=str(exc),
                                )
                            )
                            continue
                        if email is not None:
                            emails.append((contact.attempt_id, email))

            # Completion order varies between runs; merge in attempt order.
            emails.sort(key=lambda item: item[0])
            errors.sort(key=lambda error: (error.manifest_id or "", error.attempt_id or ""))
            result = SweepResult(emails=merge_emails(email for _, email in emails), errors=errors)
            event["emails"] = len(result.emails)
            event["errors"] = len(result.errors)
        return result

    def _collect_jobs(self, errors: List[SweepError]) -> List[_Job]:
        jobs: List[_Job] = []
        for entry in self._content_map.curriculum_entries():
            try:
                contacts = self._store.list_notifiable_attempts(manifest_id=entry.manifest_id)
                if not contacts:
                    logger.debug("No notifiable attempts for %s", entry.manifest_id)
                    continue
                manifest = self._fetch_manifest(entry)
                template = self._template_for(manifest)
            except SchedulerError as exc:
                logger.warning("Skipping content map entry %s: %s", entry.manifest_id, exc)
                errors.append(SweepError(manifest_id=entry.manifest_id, message=str(exc)))
                continue
            jobs.extend((contact, manifest, entry.lang, template) for contact in contacts)
        return jobs


def _today_of(computed: ComputedManifest) -> datetime:
    today = computed.test_params.test_today_date
    if isinstance(today, datetime):
        return today
    return datetime.now(resolve_timezone(computed.org_time_zone))


__all__ = [
    "DEFAULT_TEMPLATE_PATH",
    "EmailScheduler",
    "SweepError",
    "SweepResult",
    "load_default_template",
]
