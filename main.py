"""FastAPI application — entry point for the provider service."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from db import create_tables
from providers.errors import ProviderError
from providers.factory import register_configured_providers
from providers.service import ProviderService
from providers.storage import SqlProviderRepository
from providers.store import ProviderStore
from routes import provider_error_handler, router, set_service

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

store = ProviderStore()
service = ProviderService(store)
repository = SqlProviderRepository()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    logger.info("=" * 70)
    logger.info("Content Studio Providers - Starting Up")
    logger.info("=" * 70)
    logger.info("Port: %d", settings.port)

    logger.info("Creating database tables...")
    await create_tables()

    logger.info("Loading stored providers...")
    await store.load_from(repository)

    registered = await register_configured_providers(store, settings, validate=False)
    if registered:
        logger.info("Registered %d provider(s) from environment", len(registered))

    if settings.validate_on_startup:
        logger.info("Validating credentials...")
        results = await store.validate_all()
        logger.info("%d of %d credential(s) valid", sum(results.values()), len(results))

    await store.save_to(repository)
    set_service(service, repository)

    summary = service.status_summary()
    logger.info("=" * 70)
    logger.info("Provider service is running on http://localhost:%d", settings.port)
    logger.info("Providers: %d total, %d active", summary["total"], summary["active"])
    logger.info("=" * 70)
    yield

    # Shutdown
    logger.info("Saving provider configuration...")
    await store.save_to(repository)
    logger.info("Shutdown complete")


app = FastAPI(
    title="Content Studio Providers",
    description="Unified text, image and video generation across AI vendors",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(ProviderError, provider_error_handler)
app.include_router(router)

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=settings.port, reload=True)
