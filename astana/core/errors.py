"""Error taxonomy shared by the services and the JSON API.

Every error is a ``ValueError`` so callers that only care about "the
request was rejected" can keep catching ``ValueError``. The ``code`` and
``status`` attributes drive the API error payload.
"""
from __future__ import annotations


class LedgerError(ValueError):
    code = "error"
    status = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"error": self.code, "message": self.message}


class ValidationError(LedgerError):
    code = "validation_error"
    status = 400


class NotFoundError(LedgerError):
    code = "not_found"
    status = 404


class ConflictError(LedgerError):
    code = "conflict"
    status = 409


class DuplicateYearError(ConflictError):
    code = "duplicate_year"


class DuplicateGraveNumberError(ConflictError):
    code = "duplicate_grave_number"


class DuplicateBlockCodeError(ConflictError):
    code = "duplicate_block_code"


class ReferentialIntegrityError(ConflictError):
    code = "referential_integrity"
