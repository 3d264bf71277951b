# app/core/exceptions.py
"""
Workflow error taxonomy and the FastAPI handlers that render it.

Validation-class errors (TransitionDenied, ReasonRequired, EditNotAllowed,
DriverUnavailable, ReferentialConflict) are raised before any write.
PersistenceFailure is the only one that crosses the I/O boundary.
"""

import enum
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DenialKind(str, enum.Enum):
    MISSING_DRIVER = "missing_driver"
    IN_TRANSIT_LOCK = "in_transit_lock"
    ROLE_INSUFFICIENT = "role_insufficient"
    ORDER_CLOSED = "order_closed"
    NOT_IN_TRANSIT = "not_in_transit"


class WorkflowError(Exception):
    """Base class for every refusal raised by the order workflow."""

    code = "workflow_error"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "detail": self.message}


class TransitionDenied(WorkflowError):
    code = "transition_denied"

    def __init__(self, kind: DenialKind, message: str):
        super().__init__(message)
        self.kind = kind

    def to_dict(self) -> dict:
        return {**super().to_dict(), "kind": self.kind.value}


class ReasonRequired(WorkflowError):
    code = "reason_required"
    status_code = 422


class EditNotAllowed(WorkflowError):
    code = "edit_not_allowed"


class DriverUnavailable(WorkflowError):
    code = "driver_unavailable"

    def __init__(self, driver_name: str, date: str):
        super().__init__(
            f"{driver_name} is marked as unavailable today ({date}). "
            "Please choose another driver."
        )
        self.driver_name = driver_name
        self.date = date

    def to_dict(self) -> dict:
        return {**super().to_dict(), "driver": self.driver_name, "date": self.date}


class ReferentialConflict(WorkflowError):
    code = "referential_conflict"

    def __init__(self, entity: str, message: str):
        super().__init__(message)
        self.entity = entity

    def to_dict(self) -> dict:
        return {**super().to_dict(), "entity": self.entity}


class PersistenceFailure(WorkflowError):
    """Any store error during a workflow write."""

    code = "persistence_failure"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, operation: str, cause: Exception | None = None):
        super().__init__(f"Could not {operation}. Please try again.")
        self.operation = operation
        self.__cause__ = cause


def register_exception_handlers(app: FastAPI) -> None:
    """Render every WorkflowError as JSON with its own status code."""

    @app.exception_handler(WorkflowError)
    async def _workflow_error_handler(request: Request, exc: WorkflowError):
        if isinstance(exc, PersistenceFailure):
            logger.error("Persistence failure on %s: %r", request.url.path, exc.__cause__)
        else:
            logger.info("Refused %s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
