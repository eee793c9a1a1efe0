from contextlib import asynccontextmanager
import logging
import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from CatalogBridge import __version__
from CatalogBridge.config import get_settings
from CatalogBridge.database.db import create_db_and_tables
from CatalogBridge.handlers.exception_handlers import register_exception_handlers
from CatalogBridge.routers import image_proxy_routes
from CatalogBridge.services.catalog.image_proxy_service import ImageProxyService, ImageProxyTokenService
from CatalogBridge.services.security.credential_cipher import create_credential_cipher

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up...")
    create_db_and_tables()

    settings = get_settings()
    cipher = create_credential_cipher(settings)
    app.state.settings = settings
    app.state.cipher = cipher
    app.state.image_token_service = ImageProxyTokenService(cipher, settings.site_base_url)
    app.state.image_proxy_service = ImageProxyService(
        app.state.image_token_service,
        cache_ttl_seconds=settings.image_proxy_cache_ttl,
        max_image_bytes=settings.image_proxy_max_bytes,
    )
    logger.info(f"Credential cipher ready ({cipher.algorithm})")

    yield

    logger.info("Shutting down...")
    app.state.image_proxy_service.clear_cache()


app = FastAPI(
    title="CatalogBridge",
    description="Supplier and marketplace integration layer for a multi-tenant product catalog.",
    version=__version__,
    lifespan=lifespan,
)

register_exception_handlers(app)

cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in cors_origins.split(",")],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(image_proxy_routes.router, prefix="/api/images", tags=["Images"])


if __name__ == "__main__":
    uvicorn.run("CatalogBridge.main:app", host="0.0.0.0", port=8000, reload=True)
