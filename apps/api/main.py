"""
Receipt Scan API

Routes:
    POST /api/v1/receipts/scan   batch receipt scan (multipart)
    GET  /health                 database probe + external service configuration
    GET  /metrics                Prometheus exposition
"""
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from starlette.responses import Response

from apps.api.middleware.owner_session import OwnerSessionMiddleware
from apps.api.routers import receipts
from packages.common.config import get_settings
from packages.common.database import sessionmanager
from packages.common.log_config import configure_logging

settings = get_settings()
configure_logging(settings.log_level, json=settings.environment != "development")

logger = structlog.get_logger()

API_VERSION = "0.1.0"
IS_PRODUCTION = settings.environment == "production"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("api_starting",
                environment=settings.environment,
                version=API_VERSION,
                ocr_configured=settings.ocr_configured,
                llm_configured=bool(settings.anthropic_api_key))

    sessionmanager.init(settings.database_url)
    yield

    logger.info("api_stopping")
    await sessionmanager.close()


app = FastAPI(
    title="Receipt Scan API",
    description="Receipt OCR ingestion with duplicate detection and background item categorization",
    version=API_VERSION,
    lifespan=lifespan,
    docs_url=None if IS_PRODUCTION else "/docs",
    redoc_url=None if IS_PRODUCTION else "/redoc",
)

# Production traffic arrives same-origin through the access proxy
app.add_middleware(
    CORSMiddleware,
    allow_origins=[] if IS_PRODUCTION else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(OwnerSessionMiddleware, header_name=settings.owner_header)


@app.middleware("http")
async def bind_request_context(request: Request, call_next):
    """Tag every log line of a request with its id and path"""
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, path=request.url.path)

    response = await call_next(request)
    response.headers["x-request-id"] = request_id
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("request_validation_failed", errors=exc.errors())
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.errors()},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error("unhandled_exception", error=str(exc), exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


app.include_router(receipts.router, prefix="/api/v1/receipts", tags=["Receipts"])


def _configured(flag) -> str:
    return "configured" if flag else "not_configured"


async def _probe_database() -> None:
    async with sessionmanager.session() as session:
        await session.execute(text("SELECT 1"))


@app.get("/health", tags=["System"])
async def health_check():
    """Database connectivity plus OCR / LLM configuration"""
    services: Dict[str, str] = {
        "ocr": _configured(settings.ocr_configured),
        "llm": _configured(settings.anthropic_api_key),
    }
    try:
        await _probe_database()
    except Exception as e:
        logger.error("health_check_failed", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "error": str(e), "services": services},
        )

    services["database"] = "connected"
    return {
        "status": "healthy",
        "environment": settings.environment,
        "version": API_VERSION,
        "services": services,
    }


@app.get("/metrics", tags=["System"])
async def metrics():
    if not settings.metrics_enabled:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": "Metrics disabled"})
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/", tags=["System"])
async def root():
    return {
        "name": "Receipt Scan API",
        "version": API_VERSION,
        "environment": settings.environment,
        "docs": None if IS_PRODUCTION else "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "apps.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
