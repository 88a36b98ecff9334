"""Content map: manifest keys mapped to their course-type entries."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ContentMapError

CURRICULUM_COURSE_TYPE = "MOC"
MANIFEST_ID_PREFIX = "manifest/"


class ContentMapEntry(BaseModel):
    manifest: str
    lang: Optional[str] = None
    course_type: Optional[str] = Field(default=None, alias="courseType")
    requested_macros: Optional[str] = Field(default=None, alias="requestedMacros")
    requested_program_code: Optional[str] = Field(default=None, alias="requestedProgramCode")
    manifest_id: Optional[str] = Field(default=None, alias="manifestId")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @property
    def is_curriculum(self) -> bool:
        return (self.course_type or "").upper() == CURRICULUM_COURSE_TYPE


def manifest_key(manifest_id: str) -> str:
    """``manifest/<key>`` → ``<key>``."""
    if manifest_id.startswith(MANIFEST_ID_PREFIX):
        return manifest_id[len(MANIFEST_ID_PREFIX):]
    return manifest_id


class ContentMap:
    def __init__(self, entries: Dict[str, List[ContentMapEntry]]) -> None:
        self._entries = entries

    @classmethod
    def from_payload(cls, payload: Union[str, bytes, Dict[str, Any]]) -> "ContentMap":
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except ValueError as exc:
                raise ContentMapError(f"Content map is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise ContentMapError("Content map must be a JSON object keyed by manifest id.")
        entries: Dict[str, List[ContentMapEntry]] = {}
        try:
            for key, raw_entries in payload.items():
                items = raw_entries if isinstance(raw_entries, list) else [raw_entries]
                entries[key] = [
                    ContentMapEntry.model_validate({**item, "manifest_id": key}) for item in items
                ]
        except (TypeError, ValidationError) as exc:
            raise ContentMapError(f"Invalid content map entry: {exc}") from exc
        return cls(entries)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "ContentMap":
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise ContentMapError(f"Unable to read content map {path}: {exc}") from exc
        return cls.from_payload(text)

    def entry_for_manifest_id(self, manifest_id: str) -> ContentMapEntry:
        entries = self._entries.get(manifest_key(manifest_id))
        if not entries:
            raise ContentMapError(f"no content map entry found for {manifest_id}")
        return entries[0]

    def curriculum_entries(self) -> List[ContentMapEntry]:
        return [entry for entries in self._entries.values() for entry in entries if entry.is_curriculum]


__all__ = [
    "CURRICULUM_COURSE_TYPE",
    "ContentMap",
    "ContentMapEntry",
    "manifest_key",
]
