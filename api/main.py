"""FAQ Bot API Service.

FastAPI application answering customer-support questions from the FAQ
corpus, with short-term conversation memory and resilient LLM synthesis.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import timedelta

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from api.models import HealthResponse
from api.orchestrators.routing_engine import get_routing_engine
from api.routers import search as search_router
from libs.caching.redis_client import close_redis_client, get_redis_client
from libs.common.settings import get_settings
from libs.memory.short_term import RedisConversationBacking

# Configure structured logging
logging.basicConfig(format="%(message)s", level=get_settings().log_level)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect collaborators on startup and release them on shutdown."""
    settings = get_settings()
    engine = get_routing_engine()

    if hasattr(engine.embedder, "initialize"):
        await engine.embedder.initialize()

    if settings.use_redis_backing:
        redis_client = await get_redis_client()
        if redis_client is None:
            engine.store.mark_degraded("redis unavailable")
        else:
            ttl = timedelta(minutes=settings.session_idle_minutes)
            engine.store.attach_backing(
                RedisConversationBacking(
                    redis_client,
                    max_messages=settings.max_session_messages,
                    ttl_seconds=int(ttl.total_seconds()),
                )
            )

    engine.store.start_sweeper()
    logger.info(
        "FAQ bot started",
        app_env=settings.app_env,
        memory_mode=engine.store.mode,
        llm_available=getattr(engine.synthesizer, "available", False),
    )

    yield

    await engine.store.stop_sweeper()
    await engine.dispatcher.drain(timeout=5)
    for resource in (engine.embedder, getattr(engine.search, "client", None)):
        if resource is not None and hasattr(resource, "close"):
            await resource.close()
    await close_redis_client()
    logger.info("FAQ bot stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="FAQ Support Bot API",
        description="Customer-support FAQ answers with confidence-based routing",
        version="0.1.0",
        default_response_class=ORJSONResponse,
        debug=settings.debug,
        lifespan=lifespan,
    )

    # Add CORS middleware - allow all origins for development
    cors_origins = ["*"] if settings.is_development else settings.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=False if settings.is_development else True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Add request size limiter middleware
    @app.middleware("http")
    async def limit_request_size(request: Request, call_next):
        """Limit request body size to prevent abuse."""
        max_size = 64 * 1024  # 64KB

        if request.method in ["POST", "PUT", "PATCH"]:
            content_length = request.headers.get("content-length")
            if content_length and content_length.isdigit() and int(content_length) > max_size:
                return ORJSONResponse(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    content={
                        "error_code": "REQUEST_TOO_LARGE",
                        "message": f"Request body too large. Maximum size: {max_size} bytes"
                    }
                )

        return await call_next(request)

    # Add request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing and structured data."""
        start_time = time.time()
        request_id = f"req_{int(start_time * 1000000)}"

        request.state.request_id = request_id

        logger.info(
            "Request started",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)
            process_time = time.time() - start_time

            logger.info(
                "Request completed",
                request_id=request_id,
                status_code=response.status_code,
                process_time_ms=round(process_time * 1000, 2),
            )

            response.headers["X-Request-ID"] = request_id
            return response
        except Exception as e:
            process_time = time.time() - start_time
            logger.error(
                "Request failed",
                request_id=request_id,
                error=str(e),
                process_time_ms=round(process_time * 1000, 2),
                exc_info=True,
            )
            raise

    app.include_router(search_router.router, prefix="/api", tags=["FAQ"])

    @app.get("/healthz", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Health check endpoint for liveness probes.

        Example:
            ```bash
            curl http://localhost:8000/healthz
            ```
        """
        return HealthResponse(status="healthy")

    @app.get("/readyz", response_model=HealthResponse, tags=["Health"])
    async def readiness_check() -> HealthResponse:
        """Readiness check endpoint for readiness probes.

        Reports ``degraded`` while the embedder is not ready, Supabase is
        not configured or the conversation backing is unavailable. The
        service still answers in each case.
        """
        engine = get_routing_engine()
        embedding_ready = getattr(engine.embedder, "is_ready", True)
        supabase_ready = not engine.query_logger.is_mock
        breaker = getattr(engine.synthesizer, "breaker", None)

        details = {
            "embedding": "ready" if embedding_ready else "not_ready",
            "supabase": "configured" if supabase_ready else "not_configured",
            "memory_mode": engine.store.mode,
            "llm_circuit": breaker.state.value if breaker is not None else "disabled",
        }
        degraded = not embedding_ready or not supabase_ready or engine.store.is_degraded
        return HealthResponse(status="degraded" if degraded else "ok", details=details)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    # For local development only
    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
