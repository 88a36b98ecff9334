"""Schedule and notification endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from .clock import parse_test_today_date
from .config import Settings, get_settings
from .content_map import ContentMap
from .email_scheduler import EmailScheduler
from .errors import (
    AttemptNotFoundError,
    CollaboratorError,
    ContentMapError,
    ManifestConfigurationError,
    SchedulerError,
    TestDateValidationError,
)
from .models import TestParams
from .repositories import AttemptStore
from .scheduler import schedule_for_attempt

router = APIRouter(prefix="/api", tags=["curriculum"])
logger = logging.getLogger(__name__)

_ERROR_STATUS = (
    (TestDateValidationError, status.HTTP_400_BAD_REQUEST),
    (ManifestConfigurationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (AttemptNotFoundError, status.HTTP_404_NOT_FOUND),
    (ContentMapError, status.HTTP_404_NOT_FOUND),
    (CollaboratorError, status.HTTP_502_BAD_GATEWAY),
)


def http_error(exc: SchedulerError) -> HTTPException:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def get_attempt_store() -> AttemptStore:
    return AttemptStore()


def get_content_map(settings: Settings = Depends(get_settings)) -> ContentMap:
    if not settings.content_map_path:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="CURRICULUM_CONTENT_MAP_PATH is not configured.",
        )
    try:
        return ContentMap.load(settings.content_map_path)
    except ContentMapError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


@router.get("/attempts/{attempt_id}/schedule")
def get_schedule(
    attempt_id: str,
    test_today_date: Optional[str] = Query(default=None),
    test_lang: Optional[str] = Query(default=None),
    test_manifest: Optional[str] = Query(default=None),
    return_format: Optional[str] = Query(default=None, alias="format"),
    store: AttemptStore = Depends(get_attempt_store),
    content_map: ContentMap = Depends(get_content_map),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    test_params = TestParams(test_today_date=test_today_date, test_lang=test_lang, test_manifest=test_manifest)
    try:
        computed = schedule_for_attempt(
            attempt_id,
            content_map,
            store=store,
            test_params=test_params,
            return_format=return_format,
            settings=settings,
        )
    except SchedulerError as exc:
        logger.warning("Schedule for attempt %s failed: %s", attempt_id, exc)
        raise http_error(exc) from exc
    return computed.model_dump(mode="json", by_alias=True)


@router.get("/attempts/{attempt_id}/notifications")
def get_attempt_notifications(
    attempt_id: str,
    test_today_date: Optional[str] = Query(default=None),
    test_lang: Optional[str] = Query(default=None),
    store: AttemptStore = Depends(get_attempt_store),
    content_map: ContentMap = Depends(get_content_map),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    test_params = TestParams(test_today_date=test_today_date, test_lang=test_lang)
    try:
        scheduler = EmailScheduler(content_map, store=store, test_params=test_params, settings=settings)
        emails = scheduler.schedule_email_for_attempt(attempt_id)
    except SchedulerError as exc:
        logger.warning("Notifications for attempt %s failed: %s", attempt_id, exc)
        raise http_error(exc) from exc
    return {address: email.model_dump(mode="json", by_alias=True) for address, email in emails.items()}


@router.post("/notifications/sweep")
def run_notification_sweep(
    test_today_date: Optional[str] = Query(default=None),
    test_lang: Optional[str] = Query(default=None),
    store: AttemptStore = Depends(get_attempt_store),
    content_map: ContentMap = Depends(get_content_map),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    test_params = TestParams(test_today_date=test_today_date, test_lang=test_lang)
    try:
        # A malformed override fails the whole sweep.
        parse_test_today_date(test_today_date)
        result = EmailScheduler(content_map, store=store, test_params=test_params, settings=settings).schedule_all_emails()
    except SchedulerError as exc:
        raise http_error(exc) from exc
    return result.model_dump(mode="json", by_alias=True)


__all__ = ["get_attempt_store", "get_content_map", "http_error", "router"]
