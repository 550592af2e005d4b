"""Service-layer error taxonomy.

ValidationError and NotFoundError are surfaced unchanged. An IntegrityError from a
unique-constraint race is retried once by the transaction runner, then raised as ConflictError.
StateError is never retried.
"""

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    default_code = "ServiceError"

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        code: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code or self.default_code

    def to_detail(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(ServiceError):
    """Malformed input, raised before any write."""

    default_code = "InvalidInput"

    def __init__(self, message: str, code: str = "") -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST, code)


class NotFoundError(ServiceError):
    default_code = "NotFound"

    def __init__(self, message: str, code: str = "") -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND, code)


class ConflictError(ServiceError):
    """Uniqueness or ledger invariant violation."""

    default_code = "Conflict"

    def __init__(self, message: str, code: str = "") -> None:
        super().__init__(message, status.HTTP_409_CONFLICT, code)


class StateError(ServiceError):
    """Illegal transition for the current state of a record."""

    default_code = "InvalidState"

    def __init__(self, message: str, code: str = "") -> None:
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY, code)
