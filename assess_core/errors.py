"""Error taxonomy for the assessment engine.

Every error carries a ``category`` tag and a ``details`` mapping so a failure
can be reconstructed from logs and telemetry (section id, attempt number,
error class).  Only :class:`InvalidOperation` is ever raised out of the
public engine operations; the rest are recovered internally.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class AssessmentError(Exception):
    category: str = "assessment"

    def __init__(
        self,
        message: str,
        *,
        category: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        if category is not None:
            self.category = category
        self.details: Dict[str, Any] = dict(details or {})
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": str(self),
            "name": type(self).__name__,
            "category": self.category,
            "details": self.details,
            "timestamp": self.timestamp,
        }


class AcquisitionFailure(AssessmentError):
    """Remote fetch, timeout or validation shortfall; always recovered via fallback."""

    category = "question-loading-failed"


class RetryableFetchError(AcquisitionFailure):
    """Timeout, transport error, non-2xx status or malformed payload."""

    category = "fetch-retryable"


class FetchAborted(AcquisitionFailure):
    """The caller explicitly aborted the fetch; never retried."""

    category = "fetch-aborted"


class InvalidOperation(AssessmentError):
    """A candidate intent the engine refuses; surfaced to the UI as a notice."""

    category = "invalid-operation"


class ScoringFailure(AssessmentError):
    category = "score-calculation"


class PersistenceFailure(AssessmentError):
    category = "persistence"


__all__ = [
    "AssessmentError",
    "AcquisitionFailure",
    "RetryableFetchError",
    "FetchAborted",
    "InvalidOperation",
    "ScoringFailure",
    "PersistenceFailure",
]
