"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from topicos.api import router as api_router
from topicos.core.config import get_settings
from topicos.core.logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    backends = [
        name
        for name, key in (("anthropic", settings.ANTHROPIC_API_KEY), ("openai", settings.OPENAI_API_KEY))
        if key
    ]
    if not backends:
        # AI endpoints answer 503 until a key is configured
        logger.warning("No completion backend configured")
    logger.info(
        f"TopicOS starting ({settings.TOPICOS_ENV})",
        extra={"backends": ",".join(backends) or "none", "persistence": bool(settings.SUPABASE_URL)},
    )
    yield


app = FastAPI(
    title="TopicOS",
    description="Topic-centric content organization: enrichment, search, ranking and analysis",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "ok", "env": get_settings().TOPICOS_ENV}, status_code=200)


# Include v1 API router
app.include_router(api_router, prefix="/v1", tags=["v1"])
