from __future__ import annotations

from typing import Any


class FlagError(Exception):
    """
    Base for registry errors. `code` is machine-readable, `details` carries
    per-field validation errors when there are any.
    """

    code = "FLAG_ERROR"

    def __init__(self, message: str, *, code: str | None = None, details: Any = None) -> None:
        super().__init__(message)
        if code:
            self.code = code
        self.details = details

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"

    def as_dict(self) -> dict:
        body = {"code": self.code, "message": self.args[0]}
        if self.details:
            body["details"] = self.details
        return body


class FlagNotFoundError(FlagError):
    code = "NOT_FOUND"


class FlagValidationError(FlagError):
    code = "VALIDATION_ERROR"


class DependencyCycleError(FlagValidationError):
    code = "DEPENDENCY_CYCLE"
