"""
Main FastAPI application for the NeoMed backend.
"""

import time
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from neomed.core.config import Settings, get_settings
from neomed.core.errors import ApiError
from neomed.core.logging import configure_logging, get_logger, request_logger
from neomed.db.base import AppContext
from neomed.middleware.mount_prefix import MountPrefixMiddleware
from neomed.services.mevo_client import MevoClient
from neomed.api.v1 import admin, auth, data, emergency, integrations, patient, public


logger = get_logger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-User-Id",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}


def error_response(status_code: int, code: str, message: str, **extra) -> JSONResponse:
    content = {"success": False, "code": code, "message": message}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content, headers=CORS_HEADERS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    context: AppContext = app.state.context
    logger.info("Starting NeoMed backend", version=context.settings.app_version)
    yield
    logger.info("Shutting down NeoMed backend")
    await context.close()


def register_exception_handlers(app: FastAPI):
    """Map every error to the ``{success: false, code, message}`` envelope."""

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        if exc.status_code >= 500:
            logger.error("API error", code=exc.code, message=exc.message, path=request.url.path)
        else:
            logger.info("API error", code=exc.code, status_code=exc.status_code, path=request.url.path)
        headers = dict(CORS_HEADERS)
        headers.update(exc.headers or {})
        return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Unmatched routes and framework-raised HTTP errors."""
        if exc.status_code in (404, 405):
            return error_response(
                404, "route/not-found", f"Route not found: {request.method} {request.url.path}"
            )
        logger.warning("HTTP exception", status_code=exc.status_code, detail=exc.detail, path=request.url.path)
        return error_response(exc.status_code, f"http/{exc.status_code}", str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle validation errors with detailed logging."""
        error_details = exc.errors()
        logger.warning(
            "Validation error",
            path=request.url.path,
            method=request.method,
            errors=[{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in error_details],
        )
        return error_response(400, "request/invalid-body", "Request body is invalid.")

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle general exceptions."""
        logger.error(
            "Unhandled exception",
            exception=str(exc),
            path=request.url.path,
            exc_info=True
        )
        return error_response(500, "server/internal-error", "Internal server error.")


def create_app(settings: Optional[Settings] = None, mevo_client: Optional[MevoClient] = None) -> FastAPI:
    """Build the application and its per-process context."""
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Clinic management API for NeoMed",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan
    )
    app.state.context = AppContext(settings, mevo_client=mevo_client)

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all HTTP requests."""
        start_time = time.time()

        response = await call_next(request)

        process_time = time.time() - start_time
        request_logger.log_request(request, response, process_time)

        return response

    # CORS: preflight on any path, fixed headers on every response
    @app.middleware("http")
    async def cors_handler(request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=CORS_HEADERS)

        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    app.add_middleware(MountPrefixMiddleware, prefixes=settings.mount_prefixes_list)

    register_exception_handlers(app)

    app.include_router(public.router)
    app.include_router(auth.router)
    app.include_router(admin.router)
    app.include_router(integrations.router)
    app.include_router(patient.router)
    app.include_router(emergency.router)
    # Catch-all "/{type}" routes go last
    app.include_router(data.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "neomed.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level="info" if not settings.debug else "debug"
    )
