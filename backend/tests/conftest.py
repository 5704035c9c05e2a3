import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from arns_indexer.models.base import build_session_maker, init_db
from arns_indexer.services.gateway import GatewayClient
from arns_indexer.services.repository import (
    CrawledDocumentRepository,
    RecordRepository,
    ResolvedTargetRepository,
)

GATEWAY = "https://arweave.net"


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'indexer.db'}")
    await init_db(engine)
    yield build_session_maker(engine)
    await engine.dispose()


@pytest.fixture
def targets(session_maker):
    return ResolvedTargetRepository(session_maker)


@pytest.fixture
def documents(session_maker):
    return CrawledDocumentRepository(session_maker)


@pytest.fixture
def records(session_maker):
    return RecordRepository(session_maker)


@pytest_asyncio.fixture
async def http_client():
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
def gateway(http_client):
    return GatewayClient(http_client, GATEWAY)
