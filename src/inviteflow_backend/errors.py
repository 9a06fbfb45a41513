"""
Error taxonomy for the InviteFlow backend.

Every failure the orchestration layer can surface is an ``InviteFlowError``
tagged with an ``ErrorKind``. The kind decides the HTTP status the API
reports; the ``cause`` mapping carries structured context (task ids, remote
status codes, attempt counts) for logs and debugging.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    REMOTE_REQUEST = "remote_request"
    TASK_FAILED = "task_failed"
    TASK_TIMEOUT = "task_timeout"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"


_HTTP_STATUS = {
    ErrorKind.REMOTE_REQUEST: 500,
    ErrorKind.TASK_FAILED: 500,
    ErrorKind.TASK_TIMEOUT: 500,
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
}


class InviteFlowError(Exception):
    kind: ErrorKind = ErrorKind.REMOTE_REQUEST

    def __init__(self, message: str, cause: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause: Dict[str, Any] = dict(cause or {})

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self.kind]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r}, cause={self.cause!r})"


class RemoteRequestError(InviteFlowError):
    """Non-2xx answer or transport failure talking to the PDF platform."""

    kind = ErrorKind.REMOTE_REQUEST


class TaskFailedError(InviteFlowError):
    """A remote task reached the FAILED state."""

    kind = ErrorKind.TASK_FAILED


class TaskTimeoutError(InviteFlowError):
    """The poll budget ran out before the remote task finished."""

    kind = ErrorKind.TASK_TIMEOUT


class ValidationError(InviteFlowError):
    kind = ErrorKind.VALIDATION


class NotFoundError(InviteFlowError):
    kind = ErrorKind.NOT_FOUND
