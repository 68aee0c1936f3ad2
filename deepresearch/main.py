from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from deepresearch.api.deps import get_research_service
from deepresearch.api.routes import research
from deepresearch.config import settings
from deepresearch.services.logger import log_event


@asynccontextmanager
async def lifespan(app: FastAPI):
    log_event(
        event_type="api_startup",
        message="Research API starting",
        search_provider=settings.search_provider,
        default_effort=settings.default_effort,
    )
    yield
    # Shared adapters own the search and scrape caches.
    get_research_service.cache_clear()
    log_event(event_type="api_shutdown", message="Research API stopped")


app = FastAPI(
    title="DeepResearch",
    description="Multi-phase research engine: decompose, search, rank, extract, analyze, synthesize",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(research.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "deepresearch", "search_provider": settings.search_provider}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("deepresearch.main:app", host="0.0.0.0", port=8000)
