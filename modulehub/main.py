"""FastAPI application initialization."""

from contextlib import asynccontextmanager
from uuid import uuid4

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from modulehub.api.health import router as health_router
from modulehub.api.middleware import CorrelationIdMiddleware
from modulehub.api.module_info import router as module_info_router
from modulehub.api.tokens import router as tokens_router
from modulehub.api.users import router as users_router
from modulehub.config import get_settings
from modulehub.services.logging_service import configure_logging, get_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger = get_logger("main")

    from modulehub.database import close_database, init_database, run_migrations

    # The store is required: fail startup rather than serve without it
    await init_database()
    await run_migrations()
    logger.info("database_initialized")

    sweeper = None
    if settings.sweeper_enabled:
        from modulehub.services.activation_sweeper import ActivationSweeper

        sweeper = ActivationSweeper()
        sweeper.start()

    logger.info("application_started", log_level=settings.log_level)

    yield

    if sweeper is not None:
        await sweeper.stop()

    from modulehub.services.background import await_pending_tasks

    await await_pending_tasks(timeout=settings.background_drain_timeout_seconds)

    await close_database()
    logger.info("application_shutdown")


app = FastAPI(
    title="Module Hub API",
    description="Course module records with token-authenticated user accounts",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return 400 with the first failing field and a correlation ID."""
    correlation_id = getattr(request.state, "correlation_id", None) or str(uuid4())
    logger = structlog.get_logger()

    errors = exc.errors()
    if errors:
        first_error = errors[0]
        field = ".".join(str(loc) for loc in first_error.get("loc", ["unknown"]))
        message = first_error.get("msg", "Validation failed")
        detail = f"Field '{field}': {message}"
    else:
        detail = "Request validation failed"

    logger.warning(
        "validation_error",
        correlation_id=correlation_id,
        detail=detail,
    )

    return JSONResponse(
        status_code=400,
        content={
            "error": "Validation error",
            "detail": detail,
            "correlation_id": correlation_id,
        },
        headers={"X-Correlation-Id": correlation_id},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(CorrelationIdMiddleware)

app.include_router(health_router)
app.include_router(users_router)
app.include_router(tokens_router)
app.include_router(module_info_router)
