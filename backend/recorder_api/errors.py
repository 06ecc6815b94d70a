from __future__ import annotations

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import structlog

from recorder_api.integrations import IntegrationNotFoundError
from recorder_api.oauth import OAuthError

logger = structlog.get_logger(__name__)


class APIError(Exception):
    def __init__(self, code: str, message: str, status_code: int = status.HTTP_400_BAD_REQUEST) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def _error_body(*, request: Request, code: str, message: str) -> dict[str, dict[str, str]]:
    return {"error": {"code": code, "message": message, "request_id": _request_id(request)}}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request=request, code=exc.code, message=exc.message),
        )

    @app.exception_handler(IntegrationNotFoundError)
    async def integration_not_found_handler(request: Request, exc: IntegrationNotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=_error_body(
                request=request,
                code="INTEGRATION_NOT_FOUND",
                message=f"No {exc.provider} integration connected",
            ),
        )

    @app.exception_handler(OAuthError)
    async def oauth_error_handler(request: Request, exc: OAuthError) -> JSONResponse:
        logger.warning("provider_request_failed", provider=exc.provider, status_code=exc.status_code, error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content=_error_body(request=request, code="PROVIDER_ERROR", message=str(exc)),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        message = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_error_body(request=request, code="VALIDATION_ERROR", message=message),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        message = str(exc.detail) if exc.detail else "Request failed"
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request=request, code="HTTP_ERROR", message=message),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_exception", error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(
                request=request,
                code="INTERNAL_SERVER_ERROR",
                message="An unexpected error occurred.",
            ),
        )
