# /eirybot/utils/lifecycle.py

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from eirybot.utils.logging import setup_logging
from eirybot.services.db_service import db_service
from eirybot.services.template_catalog import template_catalog

# Startup: logging, indexes, and the template fragments (a broken fragment
# fails startup instead of the first session). Shutdown: close the Mongo client.

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    setup_logging()

    logger.info("Application starting up...")

    await db_service.create_indexes()
    template_catalog.load_templates()

    logger.info("Application startup complete. Ready to accept requests.")

    yield  # Application is now running

    logger.info("Application shutting down...")

    if db_service.client:
        db_service.client.close()
