"""
MedVault Records API - Main FastAPI Application

A role-based healthcare records API for admins, doctors and patients:
account lifecycle, doctor assignment, medical records and record sharing.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import Settings, get_settings
from app.database import init_db
from app.errors import AppError, ValidationError
from app.models.common import error_envelope
from app.routers import (
    auth_router,
    users_router,
    patients_router,
    records_router,
    uploads_router
)
from app.services.audit import AuditLogger
from app.services.rate_limit import RateLimiters, build_rate_limiters

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events."""
    logger.info("Starting MedVault Records API...")
    init_db()
    logger.info("Database tables ready")

    yield

    logger.info("Shutting down application...")


def _validation_messages(exc: RequestValidationError) -> list:
    messages = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{field}: {error.get('msg')}" if field else error.get("msg"))
    return messages


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain errors and framework errors onto the response envelope."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        errors = exc.errors if isinstance(exc, ValidationError) else None
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=error_envelope(exc.message, errors))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content=error_envelope("Validation failed", _validation_messages(exc)),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        if exc.status_code == 404:
            message = f"Not found - {request.url.path}"
        return JSONResponse(status_code=exc.status_code, content=error_envelope(message))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content=error_envelope("Server error"))


def create_app(settings: Optional[Settings] = None,
               rate_limiters: Optional[RateLimiters] = None,
               audit_logger: Optional[AuditLogger] = None) -> FastAPI:
    """Build the application. Tests pass their own limiters and audit logger."""
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.project_name,
        description="""
## MedVault Records API

Role-based access to medical records:
- **Admins** manage accounts and doctor assignments
- **Doctors** author records and share them with colleagues
- **Patients** read their own records

### Security
- Authentication via JWT bearer tokens or an HTTP-only cookie
- Account lockout after repeated failed logins
- Rate limiting on authentication and password operations
- Audit trail of sensitive actions
        """,
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.state.settings = settings
    app.state.rate_limiters = rate_limiters or build_rate_limiters(settings)
    app.state.audit_logger = audit_logger or AuditLogger()

    # Configure CORS - Must be before any other middleware
    origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Include routers
    app.include_router(auth_router, prefix=settings.api_prefix)
    app.include_router(users_router, prefix=settings.api_prefix)
    app.include_router(patients_router, prefix=settings.api_prefix)
    app.include_router(records_router, prefix=settings.api_prefix)
    app.include_router(uploads_router, prefix=settings.api_prefix)

    @app.get("/", tags=["Health Check"])
    async def root():
        """Root endpoint - API health check."""
        return {
            "status": "healthy",
            "application": settings.project_name,
            "version": "1.0.0",
            "documentation": "/docs"
        }

    @app.get("/health", tags=["Health Check"])
    async def health_check():
        return {
            "success": True,
            "message": "MedVault Records API is running",
            "environment": settings.environment
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
