from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from loguru import logger

from app.agents.orchestrator import QuoteSearchOrchestrator
from app.api.routes import analyze, quotes
from app.config import settings
from app.models.schemas import HealthResponse
from app.services import logger as log_service  # noqa: F401  configures sinks
from app.services.broadcaster import ProgressBroadcaster
from app.services.session_registry import SessionRegistry


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    registry = SessionRegistry()
    broadcaster = ProgressBroadcaster(registry)
    app.state.registry = registry
    app.state.broadcaster = broadcaster
    app.state.orchestrator = QuoteSearchOrchestrator(registry, broadcaster)
    logger.info(f"QuoteScout started (platforms: {settings.quote_platforms})")
    yield
    # Shutdown
    await app.state.orchestrator.shutdown()
    registry.close()


app = FastAPI(
    title="QuoteScout",
    description="Contractor quote search driven by remote browsing agents",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(quotes.router)
app.include_router(analyze.router)


@app.get("/api/health", response_model=HealthResponse)
async def health():
    return HealthResponse(
        status="ok",
        service="quotescout",
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


# Registered last so /api routes take precedence.
@app.get("/{full_path:path}", include_in_schema=False)
async def frontend(full_path: str):
    """Serve the built frontend; other paths fall back to index.html for client-side routes."""
    if full_path == "api" or full_path.startswith("api/"):
        raise HTTPException(status_code=404, detail="Not Found")
    root = Path(settings.static_dir).resolve()
    requested = (root / full_path).resolve()
    if full_path and requested.is_file() and requested.is_relative_to(root):
        return FileResponse(requested)
    index = root / "index.html"
    if not index.is_file():
        raise HTTPException(status_code=404, detail="Not Found")
    return FileResponse(index)
