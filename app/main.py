import logging
from typing import Any

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.deps import get_storage_client, require_api_key
from app.api.v1.routers.files import router as files_router
from app.app.services.object_storage import ObjectStorageClient
from app.common.config import Settings, StorageNotConfiguredError, get_settings
from app.common.logging import setup_logging
from app.infra.observability.metrics import metrics_app
from app.infra.observability.middleware import MetricsMiddleware

ERROR_CODE_BY_STATUS = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    413: "payload_too_large",
    415: "unsupported_media_type",
    429: "too_many_requests",
    500: "internal_error",
    502: "bad_gateway",
    503: "service_unavailable",
}


def _normalize_detail(detail):
    if isinstance(detail, dict):
        maybe_code = detail.get("error_code")
        cleaned = {k: v for k, v in detail.items() if k != "error_code"}
        if len(cleaned) == 1 and "message" in cleaned:
            cleaned = cleaned["message"]
        if not cleaned:
            cleaned = None
        return cleaned, maybe_code if isinstance(maybe_code, str) else None
    return detail, None


def _resolve_error_code(status_code: int, override: str | None = None) -> str:
    if override:
        return override
    if status_code == 422:
        return "validation_error"
    return ERROR_CODE_BY_STATUS.get(status_code, "unknown_error")


def _describe_storage(settings: Settings) -> str:
    try:
        described = settings.storage_config().describe()
    except StorageNotConfiguredError as exc:
        return f"storage=<not configured: {exc}>"
    return ", ".join(f"{key}={value}" for key, value in described.items())


def _problem_response(
    request: Request,
    *,
    status_code: int,
    title: str,
    detail: Any,
    error_code: str,
) -> JSONResponse:
    """RFC 7807 body shared by every error handler."""
    return JSONResponse(
        status_code=status_code,
        media_type="application/problem+json",
        content={
            "type": "about:blank",
            "title": title,
            "status": status_code,
            "detail": detail,
            "error_code": error_code,
            "instance": str(request.url),
            "request_id": request.headers.get("X-Request-Id"),
        },
    )


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    app = FastAPI(
        title="MinIO File Service",
        version="v1.0",
        description="Upload, list, search, delete and link to files in a MinIO bucket",
    )

    # Optional CORS
    if settings.CORS_ENABLED:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ORIGINS or ["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(
        files_router,
        prefix="/api/v1",
        tags=["files"],
        dependencies=[Depends(require_api_key)],
    )

    # Metrics
    if settings.ENABLE_METRICS:
        app.add_middleware(MetricsMiddleware)
        app.mount("/metrics", metrics_app)

    @app.on_event("startup")
    def on_startup() -> None:
        logging.getLogger("app.startup").info(
            "Storage configuration [event=storage_config] (%s)",
            _describe_storage(settings),
        )

    # Registered on Starlette's class so routing 404/405 use the same body
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        normalized_detail, code_override = _normalize_detail(exc.detail)
        request_id = request.headers.get("X-Request-Id")
        logging.getLogger("http").log(
            logging.WARNING if exc.status_code < 500 else logging.ERROR,
            "http_exception status=%s detail=%s method=%s path=%s request_id=%s",
            exc.status_code,
            normalized_detail,
            request.method,
            request.url.path,
            request_id,
            extra={
                "extra": {
                    "status": exc.status_code,
                    "detail": normalized_detail,
                    "error_code": code_override,
                    "method": request.method,
                    "route": request.url.path,
                    "request_id": request_id,
                }
            },
        )
        return _problem_response(
            request,
            status_code=exc.status_code,
            title="HTTP Error",
            detail=normalized_detail,
            error_code=_resolve_error_code(exc.status_code, code_override),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        return _problem_response(
            request,
            status_code=422,
            title="Validation Error",
            detail=jsonable_encoder(exc.errors()),
            error_code=_resolve_error_code(422),
        )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/ready")
    async def ready(storage: ObjectStorageClient = Depends(get_storage_client)):
        if await storage.check_connection():
            return {"status": "ready"}
        return {
            "status": "not_ready",
            "detail": {"bucket": f"{storage.config.bucket} is not accessible"},
        }

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
