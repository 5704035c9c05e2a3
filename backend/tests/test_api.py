import httpx
import pytest_asyncio

from arns_indexer.config import Settings, get_settings
from arns_indexer.main import app
from arns_indexer.models import ResolutionStatus, ResolvedTarget, TargetCategory
from arns_indexer.models.base import get_session_maker


@pytest_asyncio.fixture
async def client(session_maker, tmp_path):
    blacklist = tmp_path / "targets.txt"
    blacklist.write_text("tx-blocked\n")
    settings = Settings(_env_file=None, arns_crawl_gateway="ar-io.dev", ant_target_blacklist_file=str(blacklist))

    app.dependency_overrides[get_session_maker] = lambda: session_maker
    app.dependency_overrides[get_settings] = lambda: settings
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    app.dependency_overrides.clear()


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


async def test_stats(client, targets):
    await targets.save(
        ResolvedTarget(transaction_id="a", status=ResolutionStatus.resolved, target_category=TargetCategory.manifest)
    )
    await targets.save(ResolvedTarget(transaction_id="b", status=ResolutionStatus.pending, retry_count=1))

    response = await client.get("/stats")

    assert response.status_code == 200
    assert response.json() == {
        "total": 2,
        "resolved": 1,
        "pending": 1,
        "not_found": 0,
        "by_category": {"manifest": 1},
    }


async def test_crawler_config_domains(client, records):
    await records.upsert_ant_records(
        [
            {"name": "ardrive", "undername": "@", "process_id": "pid", "transaction_id": "tx-1", "ttl_seconds": 60},
            {"name": "hidden", "undername": "@", "process_id": "pid", "transaction_id": "tx-blocked", "ttl_seconds": 60},
        ]
    )

    response = await client.get("/crawler-config-domains.yml")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-yaml")
    assert "crawler-config-domains.yml" in response.headers["content-disposition"]
    assert response.text == "domains:\n  - url: https://ardrive.ar-io.dev\n"
