"""
Knowledge Factory API: application factory and process entry point.

Layout:
  - All pipeline routes are versioned under /api/v1/
  - Services and the vector store are injected per request (api/dependencies.py)
  - Every 4xx/5xx body is an ErrorResponse (schemas/documents.py)

Middleware, innermost first:
  1. CORS — open in development, restricted otherwise
  2. Gzip — compress responses > 1 KB
  3. Request ID + logging — X-Request-ID on every response, one log line per request

Startup:
  With the pgvector backend the schema is created (extension + documents
  table) before the first request; a database that cannot be reached aborts
  startup. The in-memory backend needs no setup.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from knowledge_factory.api.dependencies import Store
from knowledge_factory.api.v1.chat import router as chat_router
from knowledge_factory.api.v1.ingest import router as ingest_router
from knowledge_factory.core.config import settings
from knowledge_factory.core.exceptions import KnowledgeFactoryError
from knowledge_factory.core.logging import configure_logging
from knowledge_factory.schemas.documents import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application lifespan: startup / shutdown hooks
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Starting Knowledge Factory | env=%s vector_store=%s embedding_model=%s chat_model=%s",
        settings.app_env, settings.vector_store_backend,
        settings.embedding_model, settings.chat_model,
    )

    if settings.vector_store_backend.lower() == "pgvector":
        from knowledge_factory.db.session import check_db_health, init_db

        health = await check_db_health()
        if health["status"] != "ok":
            logger.critical("pgvector unreachable at startup | detail=%s", health)
            raise RuntimeError(f"Vector database unavailable: {health}")
        await init_db()
        logger.info("pgvector schema ready")

    yield

    logger.info("Shutting down Knowledge Factory")
    if settings.vector_store_backend.lower() == "pgvector":
        from knowledge_factory.db.session import dispose_engine
        await dispose_engine()


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------

def _envelope(
    request:     Request,
    status_code: int,
    error_code:  str,
    message:     str,
    details:     Optional[list[ErrorDetail]] = None,
) -> JSONResponse:
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    body = ErrorResponse(
        error_code=error_code,
        message=message,
        details=details or [],
        request_id=request_id,
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json"),
        headers={"X-Request-ID": request_id},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Every error leaves the API as an ErrorResponse carrying the request ID."""

    @app.exception_handler(RequestValidationError)
    async def on_validation_error(request: Request, exc: RequestValidationError):
        details = [
            ErrorDetail(
                field=".".join(str(part) for part in err["loc"]),
                message=err["msg"],
                code="VALIDATION_ERROR",
            )
            for err in exc.errors()
        ]
        return _envelope(
            request, status.HTTP_422_UNPROCESSABLE_ENTITY,
            "VALIDATION_ERROR", "Request body did not match the expected schema.", details,
        )

    @app.exception_handler(KnowledgeFactoryError)
    async def on_pipeline_error(request: Request, exc: KnowledgeFactoryError):
        logger.error("Pipeline error | path=%s code=%s error=%s", request.url.path, exc.error_code, exc.message)
        return _envelope(request, status.HTTP_500_INTERNAL_SERVER_ERROR, exc.error_code, exc.message)

    @app.exception_handler(Exception)
    async def on_unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled error | path=%s", request.url.path)
        return _envelope(
            request, status.HTTP_500_INTERNAL_SERVER_ERROR,
            "INTERNAL_ERROR", "Something went wrong while handling the request.",
        )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(use_lifespan: bool = True) -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="Knowledge Factory",
        description=(
            "Document ingestion and retrieval-augmented chat API. "
            "Extracts, classifies, chunks and embeds documents into a vector store, "
            "then answers questions with cited sources."
        ),
        version="1.0.0",
        docs_url="/api/docs" if not settings.is_production else None,
        redoc_url="/api/redoc" if not settings.is_production else None,
        openapi_url="/api/openapi.json" if not settings.is_production else None,
        lifespan=lifespan if use_lifespan else None,
    )

    # ----------------------------------------------------------------
    # Middleware (applied in reverse order: last added = outermost)
    # ----------------------------------------------------------------

    app.add_middleware(GZipMiddleware, minimum_size=1024)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.app_env == "development" else [],
        allow_credentials=settings.app_env == "development",
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    @app.middleware("http")
    async def tag_and_log_request(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        t0 = time.monotonic()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "%s %s -> %d | request_id=%s elapsed_ms=%.0f",
            request.method, request.url.path, response.status_code,
            request_id, (time.monotonic() - t0) * 1000,
        )
        return response

    register_exception_handlers(app)

    # ----------------------------------------------------------------
    # Routers
    # ----------------------------------------------------------------

    app.include_router(ingest_router, prefix="/api/v1")
    app.include_router(chat_router,   prefix="/api/v1")

    # ----------------------------------------------------------------
    # Probes
    # ----------------------------------------------------------------

    @app.get("/health", tags=["Operations"], summary="Liveness probe")
    async def health() -> dict:
        return {"status": "ok", "service": "knowledge-factory"}

    @app.get("/ready", tags=["Operations"], summary="Vector store reachability")
    async def readiness(store: Store) -> JSONResponse:
        store_status = await store.health()
        ready = store_status.get("status") == "ok"
        return JSONResponse(
            status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "ready" if ready else "not_ready", "store": store_status},
        )

    return app


# ---------------------------------------------------------------------------
# Application instance (imported by uvicorn)
# ---------------------------------------------------------------------------

app = create_app()


# ---------------------------------------------------------------------------
# Local development entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "knowledge_factory.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.app_env == "development",
        log_level="debug" if settings.debug else "info",
        access_log=True,
    )
