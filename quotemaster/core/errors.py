"""Tagged errors raised by the procurement services.

Services raise :class:`ProcurementError` with an :class:`ErrorKind` and a stable
``code``; the HTTP layer maps kinds to status codes and renders the structured
context. User-facing wording is left to the client.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from fastapi import status


class ErrorKind(str, Enum):
    unauthorized = "unauthorized"
    validation = "validation"
    not_found = "not_found"
    invalid_state_transition = "invalid_state_transition"
    empty_result_set = "empty_result_set"
    transaction_aborted = "transaction_aborted"


HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.unauthorized: status.HTTP_403_FORBIDDEN,
    ErrorKind.validation: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.not_found: status.HTTP_404_NOT_FOUND,
    ErrorKind.invalid_state_transition: status.HTTP_409_CONFLICT,
    ErrorKind.empty_result_set: status.HTTP_409_CONFLICT,
    ErrorKind.transaction_aborted: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class ProcurementError(Exception):
    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.code = code or kind.value.upper()
        self.context = dict(context or {})

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND.get(self.kind, status.HTTP_400_BAD_REQUEST)

    def to_dict(self) -> dict[str, Any]:
        return {
            "detail": self.message,
            "code": self.code,
            "kind": self.kind.value,
            "context": self.context,
        }

    def __repr__(self) -> str:
        return f"ProcurementError(kind={self.kind.value!r}, code={self.code!r}, message={self.message!r})"


def validation_error(message: str, **context: Any) -> ProcurementError:
    return ProcurementError(ErrorKind.validation, message, code="VALIDATION_ERROR", context=context)


def not_found(entity: str, entity_id: Any) -> ProcurementError:
    return ProcurementError(
        ErrorKind.not_found,
        f"{entity} not found",
        code=f"{entity.upper()}_NOT_FOUND",
        context={"id": entity_id},
    )
