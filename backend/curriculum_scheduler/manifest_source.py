"""HTTP collaborators: curriculum manifests and notification mail templates."""

from __future__ import annotations

import json
import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from .errors import ManifestFetchError, TemplateFetchError
from .models import Manifest

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0
UTF8_BOM = b"\xef\xbb\xbf"


def strip_bom(payload: bytes) -> str:
    if payload.startswith(UTF8_BOM):
        payload = payload[len(UTF8_BOM):]
    return payload.decode("utf-8")


def _get(url: str, client: Optional[httpx.Client], timeout: float) -> httpx.Response:
    local_client = client or httpx.Client(timeout=timeout, follow_redirects=True)
    close_client = client is None
    try:
        response = local_client.get(url)
        response.raise_for_status()
        return response
    finally:
        if close_client:
            local_client.close()


def fetch_manifest(
    url: str,
    *,
    client: Optional[httpx.Client] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> Manifest:
    """Fetch and validate a manifest. Any transport, status or parse failure aborts the run."""
    try:
        response = _get(url, client, timeout)
    except httpx.HTTPError as exc:
        raise ManifestFetchError(f"Failed loading manifest from: {url}, Error: '{exc}'") from exc

    try:
        document = json.loads(strip_bom(response.content))
    except (UnicodeDecodeError, ValueError) as exc:
        raise ManifestFetchError(f"Exception: '{exc}' while parsing: {url}") from exc

    try:
        manifest = Manifest.model_validate(document)
    except ValidationError as exc:
        raise ManifestFetchError(f"Manifest at {url} does not match the manifest shape: {exc}") from exc
    logger.debug("Fetched manifest %s (%s courses) from %s", manifest.id, len(manifest.courses), url)
    return manifest


def fetch_mail_template(
    url: str,
    *,
    client: Optional[httpx.Client] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> str:
    try:
        response = _get(url, client, timeout)
    except httpx.HTTPError as exc:
        raise TemplateFetchError(f"Error reading mail template from {url}: {exc}") from exc
    return strip_bom(response.content)


__all__ = [
    "fetch_mail_template",
    "fetch_manifest",
    "strip_bom",
]
