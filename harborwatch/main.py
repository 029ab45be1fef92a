"""HarborWatch - Real-time host and container telemetry for Docker hosts."""

import logging
import os
import re
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles

from harborwatch import __version__
from harborwatch.services.collector import Collector
from harborwatch.services.name_mapping import ContainerNameMapper
from harborwatch.services.scheduler import scheduler_service
from harborwatch.services.settings_service import SettingsService
from harborwatch.utils.origin import normalize_origin
from harborwatch.utils.security import sanitize_log_message

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Filter to exclude health check endpoints from access logs
class EndpointFilter(logging.Filter):
    """Filter to exclude specific endpoints from Granian access logs."""

    def __init__(self, excluded_paths: list[str]) -> None:
        super().__init__()
        self.excluded_paths = excluded_paths

    def filter(self, record: logging.LogRecord) -> bool:
        """Return False if the log record is for an excluded endpoint."""
        message = record.getMessage()
        return not any(path in message for path in self.excluded_paths)


logging.getLogger("granian.access").addFilter(EndpointFilter(["/health"]))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info(f"Starting HarborWatch {__version__}...")

    name_mapper = ContainerNameMapper.from_file(SettingsService.get("container_names_file"))
    collector = Collector.from_settings(name_mapper=name_mapper)
    app.state.collector = collector

    # Runs the first tick right away
    await scheduler_service.start(collector)

    yield

    await scheduler_service.stop()
    collector.containers.docker.close()
    logger.info("Shutting down HarborWatch...")


# Create FastAPI app
app = FastAPI(
    title="HarborWatch",
    description="Real-time host and container telemetry streamed to a dashboard",
    version=__version__,
    lifespan=lifespan,
)

# CORS for the REST endpoints uses the same allow-list as the stream
cors_entries = SettingsService.get_list("allowed_origins")
if "*" in cors_entries:
    cors_origins = ["*"]
    logger.warning("⚠️  Allowed origins configured with wildcard (*) - not recommended for production")
    cors_origin_regex = None
else:
    cors_origins = [normalize_origin(entry) for entry in cors_entries]
    # Entries are prefixes (host without port admits every port)
    cors_origin_regex = "|".join(f"{re.escape(o)}.*" for o in cors_origins) or None
    logger.info(f"Allowed origins: {cors_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins if cors_origins == ["*"] else [],
    allow_origin_regex=cors_origin_regex,
    allow_credentials=False,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type", "Accept"],
)


# Security Headers Middleware
@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    """Add security headers to all responses.

    Headers added:
    - X-Content-Type-Options: nosniff (prevents MIME sniffing)
    - X-Frame-Options: DENY (prevents clickjacking)
    - Content-Security-Policy: restricts resource loading
    """
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"

    csp_directives = [
        "default-src 'self'",
        "script-src 'self'",
        "style-src 'self' 'unsafe-inline'",
        "img-src 'self' data:",
        "font-src 'self' data:",
        "connect-src 'self' ws: wss:",
        "frame-ancestors 'none'",
    ]
    response.headers["Content-Security-Policy"] = "; ".join(csp_directives)

    return response


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Generic exception handler to prevent stack trace exposure.

    In DEBUG mode (HARBORWATCH_DEBUG=true), detailed errors are shown for
    development. In production, generic error messages are returned.
    """
    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {sanitize_log_message(str(exc))}",
        exc_info=True,
        extra={
            "path": request.url.path,
            "method": request.method,
            "client": request.client.host if request.client else "unknown",
        },
    )

    if SettingsService.get_bool("debug"):
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc), "type": type(exc).__name__, "debug": True},
        )

    return JSONResponse(
        status_code=500,
        content={"detail": "An internal error occurred."},
    )


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "harborwatch"}


# Prometheus metrics endpoint
@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    from harborwatch.services.metrics import get_content_type, get_metrics

    return Response(content=get_metrics(), media_type=get_content_type())


# API routes
from harborwatch.api import api_router  # noqa: E402
from harborwatch.api.stream import router as stream_router  # noqa: E402

app.include_router(api_router)
app.include_router(stream_router)

# Serve the dashboard build (in production)
static_dir = Path(SettingsService.get("static_dir") or "./static")

if static_dir.is_dir():
    app.mount("/", StaticFiles(directory=str(static_dir), html=True), name="static")
else:
    # Development mode - show API entry points as root
    @app.get("/")
    async def root():
        return {
            "message": "HarborWatch API",
            "docs": "/docs",
            "health": "/health",
            "stream": "/ws",
        }


if __name__ == "__main__":
    import subprocess
    import sys

    # Use same server as production (Granian) for consistency
    cmd = [
        "granian",
        "--interface",
        "asgi",
        "--host",
        "0.0.0.0",
        "--port",
        os.getenv("PORT", "8080"),
        "harborwatch.main:app",
    ]

    sys.exit(subprocess.run(cmd).returncode)
