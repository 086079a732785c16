import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from app.core.config import settings
from app.core.container import build_container
from app.core.exceptions import GarudError, error_response
from app.core.logging_config import logger
from app.core.middleware import RequestLoggingMiddleware, RequestSizeLimitMiddleware
from app.api.v1.router import api_router


def validate_config() -> None:
    """Warn about configuration that degrades features without blocking startup"""
    if not settings.smtp_configured:
        logger.warning("[Startup] SMTP_USER/SMTP_PASSWORD not set - emails will fail with auth errors")
    if not settings.ADMIN_EMAIL:
        logger.warning("[Startup] ADMIN_EMAIL not set - contact/enrollment notifications go to SMTP_USER")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    logger.info("=" * 60)
    logger.info(f"Starting {settings.APP_NAME}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Upload directory: {settings.UPLOAD_DIR}")
    logger.info("=" * 60)

    validate_config()

    container = build_container(settings)
    app.state.container = container

    # Relay check runs in the background so a slow SMTP host never delays startup
    verify_task = asyncio.create_task(container.email.verify())

    yield

    logger.info(f"Shutting down {settings.APP_NAME}...")
    if not verify_task.done():
        verify_task.cancel()
    await container.email.close()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="File uploads and transactional email for Garud Classes",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add middleware (order matters - last added runs first)
app.add_middleware(RequestSizeLimitMiddleware, max_size=settings.MAX_REQUEST_SIZE)
app.add_middleware(RequestLoggingMiddleware, static_prefix=settings.UPLOAD_URL_PREFIX)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Response-Time"],
)


# Exception handlers
@app.exception_handler(GarudError)
async def garud_exception_handler(request: Request, exc: GarudError):
    return JSONResponse(status_code=exc.status_code, content=error_response(exc))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "message": str(exc) if settings.DEBUG else "An error occurred"
        }
    )


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "app_name": settings.APP_NAME,
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT,
        "smtp_configured": settings.smtp_configured,
    }


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Root endpoint"""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health"
    }


# Include API router
app.include_router(api_router, prefix=f"/api/{settings.API_VERSION}")

# Stored uploads are served as-is; the directory is created on first upload
app.mount(
    settings.UPLOAD_URL_PREFIX,
    StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False),
    name="uploads",
)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.DEBUG
    )
