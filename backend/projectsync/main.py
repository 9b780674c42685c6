import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError

from projectsync.core.config import settings
from projectsync.core.exceptions import (
    AppException,
    app_exception_handler,
    validation_exception_handler,
    generic_exception_handler,
)
from projectsync.api.routes import files, health, messages, projects, user_profile, workbench

# Configure logging
log_level = logging.DEBUG if settings.ENV == "development" else logging.INFO
logging.basicConfig(
    level=log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

# Suppress verbose logging from third-party libraries
noisy_loggers = [
    "httpx",
    "httpcore",
    "sqlalchemy.engine",
    "multipart",
    "python_multipart",
]
for logger_name in noisy_loggers:
    logging.getLogger(logger_name).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Persistence and sync API for projects, chat messages, files and workbench state",
    version="0.1.0",
    docs_url="/api/docs" if settings.ENV == "development" else None,
    redoc_url="/api/redoc" if settings.ENV == "development" else None,
)

# Register exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# In production, set CORS_ORIGINS environment variable
cors_origins_env = os.getenv("CORS_ORIGINS", "")
if cors_origins_env:
    origins = [origin.strip() for origin in cors_origins_env.split(",")]
else:
    origins = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With"],
)

logger.info(f"Starting {settings.PROJECT_NAME} in {settings.ENV} mode")

app.include_router(health.router)
app.include_router(projects.router, prefix=settings.API_PREFIX)
app.include_router(messages.router, prefix=settings.API_PREFIX)
app.include_router(files.router, prefix=settings.API_PREFIX)
app.include_router(workbench.router, prefix=settings.API_PREFIX)
app.include_router(user_profile.router, prefix=settings.API_PREFIX)


@app.get("/")
def read_root():
    """Root endpoint - basic API status."""
    return {
        "message": "OK",
        "service": settings.PROJECT_NAME,
        "version": "0.1.0",
    }
