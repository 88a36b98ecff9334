"""LTI launch payload helpers for scheduled course instances."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from .models import CourseInstance, LaunchMetadata

LTI_PRODUCT_FAMILY_CODE = "moc_lti_launch"
LIS_OUTCOME_PATH = "/moc_lis_endpoint"
LAUNCH_PATH = "/launch_lti?manifest=manifest/"
JSON_RETURN_FORMAT = "JSON"


def normalize_launch_url(lti_link: str, content_service_url: str) -> str:
    """Absolute http(s) links are kept; anything else is resolved against the content service."""
    parsed = urlparse(lti_link)
    if parsed.scheme in ("http", "https") and parsed.netloc:
        return lti_link
    return f"{content_service_url.rstrip('/')}{LAUNCH_PATH}{lti_link.lstrip('/')}"


def _utc_stamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def resource_link_id(attempt_id: str, course_id: str, start_date: datetime, due_date: datetime) -> str:
    """Deterministic LTI resource/context id: ``attempt|course|utc start|utc due``."""
    return "|".join([attempt_id, course_id, _utc_stamp(start_date), _utc_stamp(due_date)])


def build_launch(
    instance: CourseInstance,
    *,
    attempt_id: str,
    content_service_url: str,
    return_format: Optional[str] = None,
    launch_return_url: Optional[str] = None,
) -> LaunchMetadata:
    payload: Dict[str, Any] = instance.launch.model_dump()
    payload["lti_link"] = normalize_launch_url(instance.launch.lti_link, content_service_url)
    if return_format and return_format.upper() == JSON_RETURN_FORMAT:
        link_id = resource_link_id(attempt_id, instance.id, instance.start_date, instance.due_date)
        payload.update(
            {
                "resource_link_id": link_id,
                "context_id": link_id,
                "lis_result_sourcedid": link_id,
                "tool_consumer_info_product_family_code": LTI_PRODUCT_FAMILY_CODE,
                "lis_outcome_service_url": f"{content_service_url.rstrip('/')}{LIS_OUTCOME_PATH}",
                "custom_start_date": instance.start_date.isoformat(),
                "custom_due_date": instance.due_date.isoformat(),
            }
        )
        if launch_return_url:
            payload["launch_presentation_return_url"] = launch_return_url
    return LaunchMetadata.model_validate(payload)


__all__ = [
    "JSON_RETURN_FORMAT",
    "LIS_OUTCOME_PATH",
    "LTI_PRODUCT_FAMILY_CODE",
    "build_launch",
    "normalize_launch_url",
    "resource_link_id",
]
