"""
Error taxonomy for the contract lifecycle services.

Services raise these; clm.main renders them as
{"error": {"code": "...", "message": "..."}}.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import structlog

logger = structlog.get_logger()


class ContractLifecycleError(Exception):
    status_code: int = 400
    code: str = "CONTRACT_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class NotFoundError(ContractLifecycleError):
    status_code = 404
    code = "NOT_FOUND"


class ValidationError(ContractLifecycleError):
    status_code = 422
    code = "VALIDATION_ERROR"


class ConflictError(ContractLifecycleError):
    status_code = 409
    code = "CONFLICT"


class PermissionDeniedError(ContractLifecycleError):
    status_code = 403
    code = "INSUFFICIENT_PERMISSIONS"


class PersistenceError(ContractLifecycleError):
    """A required write or read against the database failed."""

    status_code = 500
    code = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, step: str, cause: Exception):
        self.operation = operation
        self.step = step
        self.cause = cause
        super().__init__(f"Failed to {operation}: {describe_error(cause)}")

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "step": self.step}


@dataclass
class PartialFailure:
    """A best-effort step that failed after the primary record was written.

    Never raised; logged and handed back to the caller as a warning.
    """

    step: str
    message: str

    def to_dict(self) -> dict:
        return {"step": self.step, "message": self.message}


def describe_error(exc: Exception) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


@asynccontextmanager
async def persistence_step(operation: str, step: str, conflict_message: Optional[str] = None):
    """Wrap database errors from one required step into PersistenceError.

    When conflict_message is given, a unique/foreign-key violation becomes a
    ConflictError instead.
    """
    try:
        yield
    except ContractLifecycleError:
        raise
    except IntegrityError as e:
        if conflict_message:
            logger.warning("persistence_conflict", operation=operation, step=step, error=describe_error(e))
            raise ConflictError(conflict_message) from e
        logger.error("persistence_step_failed", operation=operation, step=step, error=describe_error(e))
        raise PersistenceError(operation, step, e) from e
    except SQLAlchemyError as e:
        logger.error("persistence_step_failed", operation=operation, step=step, error=describe_error(e))
        raise PersistenceError(operation, step, e) from e
