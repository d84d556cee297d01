from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from dealscout.config import get_settings
from dealscout.models.base import init_db
from dealscout.observability import configure_logging
from dealscout.api import agent_configs, discovery_queue, health, reports, research, workflows


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level, json_format=settings.log_json)
    await init_db()
    yield


app = FastAPI(
    title="DealScout API",
    description="Autonomous M&A deal sourcing: discovery, scoring, review and research",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(agent_configs.router, prefix="/api/agent-configs", tags=["agent-configs"])
app.include_router(workflows.router, prefix="/api/workflows", tags=["workflows"])
app.include_router(discovery_queue.router, prefix="/api/discovery-queue", tags=["discovery-queue"])
app.include_router(reports.router, prefix="/api/reports", tags=["reports"])
app.include_router(research.router, prefix="/api/research", tags=["research"])
app.include_router(health.router, prefix="/api", tags=["health"])


@app.get("/")
async def root():
    return {"message": "DealScout API", "docs": "/docs"}
