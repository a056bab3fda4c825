import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from safescan.api.routers import ai, dataset, lookup, scan, scans
from safescan.config import settings
from safescan.models import init_db
from safescan.services.errors import InputValidationError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    init_db()
    logger.info(f"{settings.app_name} started, AI service configured: {bool(settings.ai_service_url)}")
    yield


app = FastAPI(
    title=settings.app_name,
    description="Cosmetic ingredient risk analysis",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(scan.router, prefix="/api/v1/scan", tags=["scan"])
app.include_router(lookup.router, prefix="/api/v1/lookup", tags=["lookup"])
app.include_router(ai.router, prefix="/api/v1/ai", tags=["ai"])
app.include_router(scans.router, prefix="/api/v1/scans", tags=["scans"])
app.include_router(dataset.router, prefix="/api/v1/dataset", tags=["dataset"])


async def input_validation_error_handler(request: Request, exc: InputValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": exc.to_dict()})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(InputValidationError, input_validation_error_handler)


register_exception_handlers(app)


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": "0.1.0",
        "status": "running",
    }


@app.get("/health")
async def health():
    return {"status": "healthy"}
