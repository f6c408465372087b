"""
AdStudio - Metered AI ad-creative generation

FastAPI application entry point.
"""
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

# Import observability modules
from adstudio.config import settings
from adstudio.database import get_db
from adstudio.errors import StudioError
from adstudio.logging_config import configure_logging, logger
from adstudio.sentry_config import configure_sentry
from adstudio.middleware.logging import LoggingMiddleware
from adstudio.routes.metrics import router as metrics_router

# Import route modules
from adstudio.routes.credits import router as credits_router
from adstudio.routes.generate import router as generate_router

# Initialize logging first
configure_logging()

# Initialize Sentry (if SENTRY_DSN is set)
configure_sentry()

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Credit-metered image generation with model fallback, fidelity retries and refunds",
)

# Add logging middleware FIRST (runs before other middleware)
app.add_middleware(LoggingMiddleware)

# Add CORS middleware for the studio frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StudioError)
async def studio_error_handler(request: Request, exc: StudioError):
    """Map the error taxonomy onto JSON responses."""
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    issues = exc.errors()
    first = issues[0] if issues else {}
    path = ".".join(str(part) for part in first.get("loc", ())) or "body"
    return JSONResponse(
        status_code=400,
        content={
            "error": f"Invalid request. ({path}: {first.get('msg', 'invalid payload')})",
            "detail": [
                {"loc": [str(part) for part in issue.get("loc", ())], "msg": issue.get("msg")}
                for issue in issues
            ],
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("unhandled_error", route=request.url.path, error=str(exc), exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Something went wrong. Please try again in a moment."},
    )


# Include metrics endpoint FIRST (so it's always available)
app.include_router(metrics_router)

# Include credit routes
app.include_router(credits_router)

# Include generation routes
app.include_router(generate_router)

# Serve locally stored generated assets at ASSET_BASE_URL
app.mount(
    "/assets",
    StaticFiles(directory=settings.ASSET_STORAGE_PATH, check_dir=False),
    name="assets",
)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health(db: AsyncSession = Depends(get_db)):
    """Detailed health check. Reports 503 when the database is unreachable."""
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("health_check_failed", error=str(e))
        return JSONResponse(
            status_code=503,
            content={"status": "degraded", "database": "unreachable"},
        )
    return {
        "status": "healthy",
        "database": "connected"
    }
