import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from .api import incidents
from .config import Settings
from .core.errors import register_exception_handlers
from .core.incident_store import IncidentStore
from .core.rate_limiter import RateLimiter
from .core.security import install_pipeline
from .core.uploads import UploadPolicy
from .models.incidents import HealthResponse, utc_timestamp

load_dotenv()


# Define a filter to exclude /health endpoint from logs
class HealthCheckFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return "GET /health" not in record.getMessage()


# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Add the filter to the uvicorn access logger
logging.getLogger("uvicorn.access").addFilter(HealthCheckFilter())


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.upload_policy.ensure_upload_dir()
    logger.info(
        f"Fire Incident API started: incidents={app.state.incident_store.count()} "
        f"data_file={app.state.settings.data_file} upload_dir={app.state.settings.upload_dir}"
    )
    yield
    logger.info("Fire Incident API shutting down")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application and its long-lived collaborators.

    The incident store, rate limiters and upload policy are created once here
    and shared through ``app.state``.
    """
    settings = settings or Settings.from_env()

    app = FastAPI(
        title="Fire Incident API",
        description="Report, list, edit and delete fire incidents.",
        version="1.0.0",
        docs_url="/api-docs",
        redoc_url=None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.incident_store = IncidentStore(settings.data_file)
    app.state.upload_policy = UploadPolicy.from_settings(settings)
    app.state.rate_limiter = RateLimiter(
        points=settings.rate_limit_points,
        duration=settings.rate_limit_duration,
        block_duration=settings.rate_limit_block_duration,
        name="general",
    )
    app.state.auth_rate_limiter = RateLimiter(
        points=settings.auth_rate_limit_points,
        duration=settings.auth_rate_limit_duration,
        block_duration=settings.auth_rate_limit_block_duration,
        name="auth",
    )

    if not settings.api_token:
        logger.warning("API_TOKEN is not set; all mutating requests will be rejected")

    register_exception_handlers(app)
    install_pipeline(app, settings, app.state.rate_limiter)

    app.include_router(incidents.router, prefix="/api")
    app.mount(
        settings.upload_url_prefix,
        StaticFiles(directory=settings.upload_dir, check_dir=False),
        name="uploads",
    )

    @app.get("/health", response_model=HealthResponse)
    async def read_health():
        """
        Checks the health of the application.
        """
        return HealthResponse(status="OK", timestamp=utc_timestamp())

    return app


app = create_app()


def run():
    """Console entry point: serve the API with uvicorn."""
    settings = app.state.settings
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        server_header=False,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
