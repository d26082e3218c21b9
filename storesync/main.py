from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storesync.core.logging_config import configure_logging
from storesync.core.settings import settings
from storesync.domains.sync.routes import router as sync_router

logger = configure_logging(settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    logger.info(
        f"storesync API starting (store: {settings.SHOPIFY_STORE_URL or 'not configured'})"
    )
    yield
    # Shutdown
    logger.info("storesync API stopped")


app = FastAPI(
    title="storesync API",
    description="Shopify to DynamoDB synchronization service",
    version="0.1.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(sync_router, prefix="/api/v1")


@app.get("/")
async def root() -> dict[str, str]:
    return {"message": "storesync API is running"}


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}
