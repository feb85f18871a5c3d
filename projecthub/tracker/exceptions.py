"""
Error kinds surfaced by the tracker.

Hierarchy:
    TrackerError
    ├── Unauthenticated   (401) no caller identity, or bad login credentials
    ├── Unauthorized      (403) caller lacks the required relation to the target
    ├── NotFound          (404) referenced entity does not exist
    ├── ValidationFailed  (422) input fails schema constraints
    ├── Conflict          (409) uniqueness violation, e.g. a duplicate email
    └── StoreUnavailable  (503) the store kept failing after retries
"""

from typing import Any, Dict, Optional


class TrackerError(Exception):
    """Base error for every tracker failure. ``kind`` is stable and safe to show callers."""

    kind: str = "TrackerError"
    status_code: int = 500

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context: Dict[str, Any] = context
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "message": self.message}

    def __repr__(self) -> str:
        return f"{self.kind}: {self.message}"


class Unauthenticated(TrackerError):
    kind = "Unauthenticated"
    status_code = 401


class Unauthorized(TrackerError):
    kind = "Unauthorized"
    status_code = 403


class NotFound(TrackerError):
    kind = "NotFound"
    status_code = 404

    def __init__(self, message: str, entity: Optional[str] = None, **context: Any):
        self.entity = entity
        super().__init__(message, **context)


class ValidationFailed(TrackerError):
    kind = "ValidationFailed"
    status_code = 422

    def __init__(self, message: str, errors: Optional[list] = None, **context: Any):
        self.errors = errors or []
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["details"] = [
            {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg", "")} for error in self.errors
        ]
        return d


class Conflict(TrackerError):
    kind = "Conflict"
    status_code = 409


class StoreUnavailable(TrackerError):
    kind = "StoreUnavailable"
    status_code = 503
