import re
from dataclasses import dataclass

from fastapi import status


@dataclass(frozen=True)
class ErrorDefinition:
    code: str
    message: str
    status_code: int


class ErrorCatalog:
    INVALID_TOKEN = ErrorDefinition("INVALID_TOKEN", "Invalid token", status.HTTP_401_UNAUTHORIZED)
    INVALID_CREDENTIALS = ErrorDefinition(
        "INVALID_CREDENTIALS",
        "Invalid credentials",
        status.HTTP_401_UNAUTHORIZED,
    )
    USER_INACTIVE = ErrorDefinition(
        "USER_INACTIVE",
        "User is inactive",
        status.HTTP_403_FORBIDDEN,
    )
    PERMISSION_DENIED = ErrorDefinition(
        "PERMISSION_DENIED",
        "Permission denied",
        status.HTTP_403_FORBIDDEN,
    )
    WAREHOUSE_SCOPE_DENIED = ErrorDefinition(
        "WAREHOUSE_SCOPE_DENIED",
        "Warehouse is not assigned to the current user",
        status.HTTP_403_FORBIDDEN,
    )
    VALIDATION_ERROR = ErrorDefinition(
        "VALIDATION_ERROR",
        "Validation error",
        status.HTTP_400_BAD_REQUEST,
    )
    NOT_FOUND = ErrorDefinition(
        "NOT_FOUND",
        "Resource not found",
        status.HTTP_404_NOT_FOUND,
    )
    INSUFFICIENT_STOCK = ErrorDefinition(
        "INSUFFICIENT_STOCK",
        "Insufficient stock",
        status.HTTP_400_BAD_REQUEST,
    )
    INVALID_STATE_TRANSITION = ErrorDefinition(
        "INVALID_STATE_TRANSITION",
        "Invalid state transition",
        status.HTTP_400_BAD_REQUEST,
    )
    NEGATIVE_STOCK_INVARIANT = ErrorDefinition(
        "NEGATIVE_STOCK_INVARIANT",
        "Stock counter would become negative",
        status.HTTP_409_CONFLICT,
    )
    PERSISTENCE_ERROR = ErrorDefinition(
        "PERSISTENCE_ERROR",
        "Storage failure, the operation was rolled back",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )
    TRANSACTION_TIMEOUT = ErrorDefinition(
        "TRANSACTION_TIMEOUT",
        "Transaction timed out and was rolled back",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )
    DB_UNAVAILABLE = ErrorDefinition(
        "DB_UNAVAILABLE",
        "Database unavailable",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )
    LOCK_TIMEOUT = ErrorDefinition(
        "LOCK_TIMEOUT",
        "Lock wait timeout",
        status.HTTP_409_CONFLICT,
    )
    INTERNAL_ERROR = ErrorDefinition(
        "INTERNAL_ERROR",
        "Internal server error",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD = ErrorDefinition(
        "IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD",
        "Idempotency key reused with different payload",
        status.HTTP_409_CONFLICT,
    )
    IDEMPOTENCY_REQUEST_IN_PROGRESS = ErrorDefinition(
        "IDEMPOTENCY_REQUEST_IN_PROGRESS",
        "Idempotency request already in progress",
        status.HTTP_409_CONFLICT,
    )
    IDEMPOTENCY_REPLAY = ErrorDefinition(
        "IDEMPOTENCY_REPLAY",
        "Idempotent replay",
        status.HTTP_200_OK,
    )


class AppError(Exception):
    def __init__(self, error: ErrorDefinition, details: object | None = None):
        self.error = error
        self.details = details
        super().__init__(error.message)


class ValidationError(AppError):
    def __init__(self, message: str, **details):
        super().__init__(ErrorCatalog.VALIDATION_ERROR, details={"message": message, **details})


class NotFoundError(AppError):
    def __init__(self, entity: str, entity_id: object):
        super().__init__(
            ErrorCatalog.NOT_FOUND,
            details={"message": f"{entity} not found", "entity": entity, "id": str(entity_id)},
        )


class InsufficientStockError(AppError):
    def __init__(self, *, available: int, requested: int, **details):
        super().__init__(
            ErrorCatalog.INSUFFICIENT_STOCK,
            details={"available": available, "requested": requested, **details},
        )


class InvalidStateTransitionError(AppError):
    def __init__(self, *, action: str, status: str):
        super().__init__(
            ErrorCatalog.INVALID_STATE_TRANSITION,
            details={"message": f"cannot {action} transfer with status {status}", "action": action, "status": status},
        )


class NegativeStockInvariantError(AppError):
    def __init__(self, *, bucket: str, delta: int | None = None, **details):
        super().__init__(
            ErrorCatalog.NEGATIVE_STOCK_INVARIANT,
            details={"bucket": bucket, "delta": delta, **details},
        )


NegativeStockError = NegativeStockInvariantError


class PersistenceError(AppError):
    def __init__(self, details: object | None = None, *, error: ErrorDefinition = ErrorCatalog.PERSISTENCE_ERROR):
        super().__init__(error, details)


class TransactionTimeoutError(PersistenceError):
    def __init__(self, *, elapsed_ms: float, timeout_ms: int):
        super().__init__(
            {"elapsed_ms": round(elapsed_ms, 2), "timeout_ms": timeout_ms},
            error=ErrorCatalog.TRANSACTION_TIMEOUT,
        )


_STOCK_CHECK_PATTERN = re.compile(r"ck_stock_(?P<column>[a-z_]+)_non_negative")


def negative_counter_from(exc: BaseException) -> str | None:
    """Counter column named by a violated ``ck_stock_<column>_non_negative`` constraint, if any."""
    match = _STOCK_CHECK_PATTERN.search(str(getattr(exc, "orig", None) or exc))
    return match.group("column") if match else None
