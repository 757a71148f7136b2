"""open311_shared.errors — Tagged error type shared by repository and handlers.

Callers branch on `Open311Error.kind` instead of on exception classes:

    try:
        service = repo.get_service(code)
    except Open311Error as exc:
        if exc.kind is ErrorKind.NOT_FOUND:
            ...
"""

from __future__ import annotations

import enum
from typing import Optional

__all__ = ["ErrorKind", "Open311Error"]


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    BACKEND = "backend"


_KIND_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.BACKEND: 500,
}


class Open311Error(Exception):
    """Failure of a repository or workflow operation.

    `status_code` defaults to the HTTP status for `kind`; pass `status_code`
    to override it (malformed JSON bodies are a VALIDATION error answered
    with 422).
    """

    def __init__(self, kind: ErrorKind, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.kind = ErrorKind(kind)
        self.message = message
        self.status_code = status_code or _KIND_STATUS[self.kind]

    def __repr__(self) -> str:
        return f"Open311Error({self.kind.value!r}, {self.message!r})"

    @property
    def is_client_error(self) -> bool:
        return self.status_code < 500

    @classmethod
    def validation(cls, message: str, *, status_code: Optional[int] = None) -> "Open311Error":
        return cls(ErrorKind.VALIDATION, message, status_code=status_code)

    @classmethod
    def not_found(cls, message: str) -> "Open311Error":
        return cls(ErrorKind.NOT_FOUND, message)

    @classmethod
    def conflict(cls, message: str) -> "Open311Error":
        return cls(ErrorKind.CONFLICT, message)

    @classmethod
    def backend(cls, message: str) -> "Open311Error":
        return cls(ErrorKind.BACKEND, message)
