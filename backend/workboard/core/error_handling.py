"""Global exception handlers and request-id propagation for the HTTP surface."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from uuid import uuid4

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError, ResponseValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from workboard.core.errors import WorkboardError
from workboard.core.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from starlette.responses import Response

logger = get_logger(__name__)
REQUEST_ID_HEADER = "X-Request-Id"


def _get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
    request.state.request_id = request_id
    return request_id


def _error_payload(*, detail: Any, request_id: str, code: str | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"detail": detail, "request_id": request_id}
    if code is not None:
        payload["code"] = code
    return payload


def _json_error(
    request: Request,
    *,
    status_code: int,
    detail: Any,
    code: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    request_id = _get_request_id(request)
    response_headers = dict(headers or {})
    response_headers[REQUEST_ID_HEADER] = request_id
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(_error_payload(detail=detail, request_id=request_id, code=code)),
        headers=response_headers,
    )


async def _request_validation_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    assert isinstance(exc, RequestValidationError)
    # Raw bytes bodies are not JSON serializable; keep error structure only.
    errors = [
        {key: value for key, value in error.items() if key != "input" or not isinstance(value, bytes)}
        for error in exc.errors()
    ]
    return _json_error(request, status_code=422, detail=errors)


async def _response_validation_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    logger.error(
        "http.response_validation_failed",
        extra={"path": request.url.path, "error": str(exc)},
    )
    return _json_error(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal Server Error",
    )


async def _http_exception_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    assert isinstance(exc, StarletteHTTPException)
    return _json_error(
        request,
        status_code=exc.status_code,
        detail=exc.detail,
        headers=getattr(exc, "headers", None),
    )


async def _workboard_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, WorkboardError)
    logger.info(
        "http.domain_error",
        extra={"path": request.url.path, "code": exc.code, "status_code": exc.status_code},
    )
    return _json_error(
        request,
        status_code=exc.status_code,
        detail=exc.to_detail(),
        code=exc.code,
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "http.unhandled_exception",
        extra={"path": request.url.path, "error": str(exc)},
    )
    return _json_error(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal Server Error",
    )


def install_error_handling(app: FastAPI) -> None:
    """Register request-id middleware and JSON error handlers on an app."""

    @app.middleware("http")
    async def _request_id_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = _get_request_id(request)
        response = await call_next(request)
        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        return response

    app.add_exception_handler(RequestValidationError, _request_validation_exception_handler)
    app.add_exception_handler(ResponseValidationError, _response_validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_exception_handler)
    app.add_exception_handler(WorkboardError, _workboard_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
