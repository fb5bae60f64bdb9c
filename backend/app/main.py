from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1 import api_router
from app.core.config import settings
from app.core.logging_config import configure_logging
from app.core.sentry import init_sentry
from app.core.startup_checks import validate_production_settings
from app.middleware import CorsPreflightMiddleware, RequestLoggingMiddleware
from app.schemas.report import ErrorResponse


def get_application() -> FastAPI:
    configure_logging(settings.log_json, settings.log_level)
    validate_production_settings()
    init_sentry()
    tags_metadata = [
        {"name": "reports", "description": "Browser report ingestion (CSP, NEL, Reporting API)"},
        {"name": "health", "description": "Liveness and readiness probes"},
        {"name": "metrics", "description": "In-process counters"},
    ]
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        openapi_tags=tags_metadata,
    )
    app.add_middleware(CorsPreflightMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(api_router)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        headers = dict(exc.headers or {})
        payload = ErrorResponse(detail=exc.detail, code=headers.get("X-Error-Code"))
        return JSONResponse(
            status_code=exc.status_code,
            content=jsonable_encoder(payload.model_dump()),
            headers=headers or None,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        payload = ErrorResponse(detail=errors, code="validation_error")
        return JSONResponse(status_code=422, content=payload.model_dump())

    return app


app = get_application()
