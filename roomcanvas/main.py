"""RoomCanvas — room photo editing API."""

import logging

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import CORS_ORIGINS, MOCK_MODE
from .db import create_store
from .routes.projects import router as projects_router
from .routes.render import router as render_router
from .tools.images import ImageFetcher
from .tools.nanobanana import ImageEditClient, create_openrouter_client
from .workflow.orchestrator import ProjectRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tests install their own registry before the app starts
    if getattr(app.state, "registry", None) is not None:
        yield
        return

    http = httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=10.0), follow_redirects=True)
    openai_client = create_openrouter_client()
    app.state.registry = ProjectRegistry(
        create_store(MOCK_MODE),
        ImageEditClient(openai_client),
        ImageFetcher(http),
    )
    logger.info("RoomCanvas ready (mock_mode=%s)", MOCK_MODE)
    try:
        yield
    finally:
        await http.aclose()
        await openai_client.close()


app = FastAPI(title="RoomCanvas", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(projects_router)
app.include_router(render_router)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "roomcanvas"}
