from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from arcline.api.middleware import RequestContextMiddleware
from arcline.api.v1.router import v1_router
from arcline.common.logging import setup_logging
from arcline.config import settings
from arcline.integrations import EmailClient, StorageClient, StripeClient


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    # Ensure local storage directory exists
    storage_path = Path(settings.STORAGE_LOCAL_PATH)
    storage_path.mkdir(parents=True, exist_ok=True)
    yield


app = FastAPI(
    title="Arcline API",
    description="Construction project management: projects, invoices, proposals and e-signature",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
origins = settings.ALLOWED_ORIGINS.split(",") if settings.ALLOWED_ORIGINS != "*" else ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-Id"],
)
app.add_middleware(RequestContextMiddleware)

# API routes
app.include_router(v1_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": "arcline",
        "version": "1.0.0",
        "env": settings.APP_ENV,
        "integrations": [client.describe() for client in (EmailClient(), StripeClient(), StorageClient())],
    }
