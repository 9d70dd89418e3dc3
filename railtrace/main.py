"""Main FastAPI application entry point."""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from railtrace import config
from railtrace.database import engine, Base
from railtrace.api.routes import router
from railtrace.logging_config import RequestContextMiddleware, configure_logging, get_logger
# Import models to register them with SQLAlchemy Base
from railtrace.models.domain import Material, Fault, LedgerChange
from railtrace.models.audit import AuditEvent
from railtrace.services.errors import (
    AuthenticationError,
    ConcurrentUpdateError,
    NotFoundError,
    PermissionDeniedError,
    RailtraceError,
    RefusalError,
    UpstreamError,
    UpstreamTimeoutError,
    ValidationError,
)

configure_logging(environment=config.ENVIRONMENT, log_level=config.LOG_LEVEL)
logger = get_logger(__name__)

# Create database tables
Base.metadata.create_all(bind=engine)

# Most specific first: UpstreamTimeoutError is an UpstreamError
ERROR_STATUS_CODES = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (RefusalError, 409),
    (ConcurrentUpdateError, 409),
    (UpstreamTimeoutError, 504),
    (UpstreamError, 502),
    (AuthenticationError, 401),
    (PermissionDeniedError, 403),
)

app = FastAPI(
    title="Railtrace - Track Fitting Lifecycle",
    description="Reconciles manufacturer, installer, AI, hardware, engineer and depot updates "
                "into one record per track fitting.",
    version="0.1.0"
)

app.add_middleware(RequestContextMiddleware)

# Enable CORS for the field and depot web clients
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RailtraceError)
async def handle_domain_error(request: Request, exc: RailtraceError):
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES if isinstance(exc, error_type)),
        500,
    )
    if status_code >= 500:
        logger.warning("Request failed upstream", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=status_code, content={"ok": False, **exc.to_dict()})


# Include API routes
app.include_router(router, prefix="/api", tags=["Lifecycle"])


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "railtrace"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
