"""
wms/errors.py

Typed errors surfaced by the repository, the milestone lifecycle engine and
the blob store.

Every error carries:
- code: machine-readable identifier returned to API clients
- status_code: HTTP status used by the Flask error handler
- message: user-displayable text

Hierarchy:

    WMSError
    +-- NotFoundError            project / milestone / monument / user id unresolved
    +-- InvalidTransitionError   lifecycle precondition violated
    +-- ValidationError          malformed input payload
    +-- ForbiddenError           actor role not allowed for the operation
    +-- ConflictError            document changed since it was read (or duplicate key)
    +-- PersistenceError         underlying store read/write failure

Callers must treat "no error" as the only success signal: any of these means
the operation had zero effect.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class WMSError(Exception):
    """Base class for all portal errors."""

    code = "error"
    status_code = 500

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"message": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(WMSError):
    code = "not_found"
    status_code = 404


class InvalidTransitionError(WMSError):
    code = "invalid_transition"
    status_code = 409


class ValidationError(WMSError):
    code = "validation_error"
    status_code = 400


class ForbiddenError(WMSError):
    code = "forbidden"
    status_code = 403


class ConflictError(WMSError):
    code = "conflict"
    status_code = 409


class PersistenceError(WMSError):
    code = "persistence_error"
    status_code = 500
