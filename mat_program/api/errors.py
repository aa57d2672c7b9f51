import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mat_program.services.result import ServiceResult

logger = logging.getLogger("mat.api")

CONFLICT_MARKERS = ("already has an active or pending application", "too recently")


def _get_request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _envelope(request: Request, status_code: int, detail) -> JSONResponse:
    request_id = _get_request_id(request)
    response = JSONResponse(status_code=status_code, content={"detail": detail, "request_id": request_id})
    if request_id:
        response.headers["X-Request-ID"] = request_id
    return response


def raise_for_failure(result: ServiceResult, *, status_code: int = 422) -> None:
    """Turn a service Failure into an HTTP error (409 for conflicts)."""

    if result.ok:
        return
    if any(marker in result.message for marker in CONFLICT_MARKERS):
        status_code = 409
    raise HTTPException(status_code=status_code, detail=result.message)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _envelope(request, exc.status_code, exc.detail)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _envelope(request, 422, jsonable_errors(exc))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("unhandled_error request_id=%s", _get_request_id(request), exc_info=exc)
        return _envelope(request, 500, "Internal Server Error")


def jsonable_errors(exc) -> list[dict]:
    # pydantic puts the raw exception in ctx for custom validators
    errors = []
    for err in exc.errors():
        err = dict(err)
        if "ctx" in err:
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        errors.append(err)
    return errors
