"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from invoice_delivery.api.routes import router
from invoice_delivery.bootstrap import ServiceContainer, build_container
from invoice_delivery.config import settings
from invoice_delivery.core.errors import (
    AccessDeniedError,
    ConfigurationError,
    DeliveryError,
    InvoiceNotFoundError,
    ValidationError,
)
from invoice_delivery.queue.base import QueueClosedError
from invoice_delivery.queue.immediate import ImmediateJobQueue
from invoice_delivery.services.scheduler import SchedulerService
from invoice_delivery.utils.logger import logger


def create_app(container: ServiceContainer | None = None) -> FastAPI:
    """Create the application; the service graph is built at startup unless one is given."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        # Startup
        logger.info(f"Starting {settings.app_name} v{settings.app_version}")
        services = container or build_container()
        app.state.container = services

        # In-process mode runs jobs inside the API process
        if isinstance(services.queue, ImmediateJobQueue):
            services.register_delivery_worker()

        scheduler_service = SchedulerService(services.maintenance, services.config)
        scheduler_service.start()
        logger.info("Application startup complete")
        yield
        # Shutdown
        scheduler_service.shutdown()
        await services.close()
        logger.info("Application shutdown")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Render invoices and deliver them by email and SMS.",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api/v1")

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Return 422 with validation details."""
        detail = exc.errors()
        logger.warning("Validation error on %s: %s", request.url.path, detail)
        return JSONResponse(status_code=422, content={"detail": jsonable_encoder(detail)})

    @app.exception_handler(DeliveryError)
    async def delivery_exception_handler(request: Request, exc: DeliveryError):
        """Map the delivery error taxonomy to HTTP status codes."""
        if isinstance(exc, AccessDeniedError):
            # Never reveal why verification failed
            return JSONResponse(status_code=403, content={"detail": "Invalid or expired token"})
        if isinstance(exc, InvoiceNotFoundError):
            status_code = 404
        elif isinstance(exc, ValidationError):
            status_code = 400
        elif isinstance(exc, ConfigurationError):
            status_code = 503
        else:
            status_code = 500
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind.value}: {exc.message}")
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.message, "kind": exc.kind.value, "code": exc.code},
        )

    @app.exception_handler(QueueClosedError)
    async def queue_closed_handler(request: Request, exc: QueueClosedError):
        return JSONResponse(status_code=503, content={"detail": "Service is shutting down"})

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "status": "operational",
        }

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()
