"""
Main FastAPI application for the DocQA service.
"""
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog

from docqa.api.v1.router import api_router
from docqa.config.settings import Settings, get_settings
from docqa.core.exceptions import DocQAException, handle_exception
from docqa.core.logging import configure_logging
from docqa.core.metrics import setup_metrics
from docqa.services.container import ServiceContainer, build_services

logger = structlog.get_logger(__name__)

# Prometheus metrics
REQUEST_COUNT = Counter('docqa_http_requests_total', 'Total HTTP requests', ['method', 'endpoint', 'status'])
REQUEST_LATENCY = Histogram('docqa_http_request_duration_seconds', 'HTTP request latency')


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[ServiceContainer] = None
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Settings override (defaults to the process settings)
        services: Pre-built services; built in the lifespan when omitted

    Returns:
        Configured application
    """
    settings = settings or (services.settings if services else get_settings())
    configure_logging(settings.monitoring.log_level, settings.monitoring.log_format)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info(
            "Starting DocQA service",
            version=settings.service.version,
            environment=settings.service.environment
        )
        app.state.services = services or build_services(settings)
        if settings.monitoring.metrics_enabled:
            setup_metrics(app.state.services.index.count())

        try:
            yield
        finally:
            logger.info("Shutting down DocQA service")

    app = FastAPI(
        title="DocQA Service",
        description="Question answering and tool-using agent over uploaded documents",
        version=settings.service.version,
        docs_url="/docs" if settings.service.debug else None,
        redoc_url="/redoc" if settings.service.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api")

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Record latency and status for every request."""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time

        response.headers["X-Process-Time"] = str(process_time)
        REQUEST_LATENCY.observe(process_time)
        route = request.scope.get("route")
        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=getattr(route, "path", request.url.path),
            status=response.status_code
        ).inc()
        return response

    @app.exception_handler(DocQAException)
    async def docqa_exception_handler(request: Request, exc: DocQAException):
        """Map typed service errors onto their HTTP status."""
        payload = handle_exception(exc)
        return JSONResponse(status_code=payload["status_code"], content=payload)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle validation errors."""
        logger.warning("Validation error", path=request.url.path, errors=exc.errors())
        return JSONResponse(
            status_code=422,
            content={
                "error": "validation_error",
                "message": "Request validation failed",
                "details": jsonable_errors(exc),
                "status_code": 422,
            }
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "http_error", "message": exc.detail, "status_code": exc.status_code}
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle anything that escaped the typed hierarchy."""
        payload = handle_exception(exc)
        return JSONResponse(status_code=500, content=payload)

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


def jsonable_errors(exc: RequestValidationError):
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
