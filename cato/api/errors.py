"""Map workflow errors to HTTP responses."""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from cato.api.schemas.common import ErrorResponse
from cato.core.approval.errors import (
    InsufficientAuthorityError,
    InvalidStateError,
    MissingDelegateError,
    NoHigherAuthorityError,
    NotFoundError,
    VersionConflictError,
    WorkflowError,
)

STATUS_CODES = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InsufficientAuthorityError: status.HTTP_403_FORBIDDEN,
    InvalidStateError: status.HTTP_409_CONFLICT,
    NoHigherAuthorityError: status.HTTP_409_CONFLICT,
    VersionConflictError: status.HTTP_409_CONFLICT,
    MissingDelegateError: status.HTTP_422_UNPROCESSABLE_ENTITY,
}

ERROR_TITLES = {
    NotFoundError: "Not found",
    InsufficientAuthorityError: "Insufficient authority",
    InvalidStateError: "Invalid state",
    NoHigherAuthorityError: "No higher authority",
    VersionConflictError: "Version conflict",
    MissingDelegateError: "Missing delegate",
}


async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    error_type = type(exc)
    status_code = STATUS_CODES.get(error_type, status.HTTP_400_BAD_REQUEST)
    body = ErrorResponse(
        error=ERROR_TITLES.get(error_type, "Workflow error"),
        detail=str(exc),
        code=exc.code,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(WorkflowError, workflow_error_handler)
