import logging

from fastapi import FastAPI
from contextlib import asynccontextmanager

from arns_indexer.config import get_settings
from arns_indexer.models.base import init_db
from arns_indexer.api import indexer

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: initialize database tables
    await init_db()
    yield


app = FastAPI(
    title="ArNS Indexer API",
    description="Resolution and crawl state for ArNS name targets",
    version=settings.version,
    lifespan=lifespan,
)

app.include_router(indexer.router, tags=["indexer"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
