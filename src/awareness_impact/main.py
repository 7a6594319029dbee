"""FastAPI application entrypoint for awareness impact service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import get_settings
from .db import init_db
from .observability import configure_logging
from .routes.calibration import router as calibration_router
from .routes.scores import router as scores_router
from .routes.validation import router as validation_router
from .routes.weights import router as weights_router

settings = get_settings()
configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Initialize persistence during application startup."""
    init_db()
    yield


app = FastAPI(title=settings.service_name, version=settings.service_version, lifespan=lifespan)
app.include_router(scores_router)
app.include_router(weights_router)
app.include_router(validation_router)
app.include_router(calibration_router)
