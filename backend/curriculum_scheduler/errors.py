"""Error taxonomy for scheduling runs and notification sweeps."""

from __future__ import annotations

from typing import Optional


class SchedulerError(RuntimeError):
    """Base class for failures that abort a scheduling run."""


class ManifestConfigurationError(SchedulerError):
    """Manifest field carries a value the scheduler cannot interpret."""


class TestDateValidationError(SchedulerError):
    """The test_today_date override is not in YYYY-MM-DD[THH:MM:SS] form."""

    __test__ = False


class AttemptNotFoundError(SchedulerError):
    def __init__(self, attempt_id: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"No attempt found for attemptId {attempt_id}")
        self.attempt_id = attempt_id


class CollaboratorError(SchedulerError):
    """I/O failure in a collaborator (HTTP source or datastore)."""


class ManifestFetchError(CollaboratorError):
    pass


class TemplateFetchError(CollaboratorError):
    pass


class DatastoreError(CollaboratorError):
    pass


class ContentMapError(SchedulerError):
    pass


__all__ = [
    "AttemptNotFoundError",
    "CollaboratorError",
    "ContentMapError",
    "DatastoreError",
    "ManifestConfigurationError",
    "ManifestFetchError",
    "SchedulerError",
    "TemplateFetchError",
    "TestDateValidationError",
]
