from datetime import datetime, timezone

import pytest
from sqlalchemy import Text, func, select

from arns_indexer.models import (
    AntRecord,
    AntRecordArchive,
    ArnsRecord,
    ArnsRecordArchive,
    CrawledDocument,
    CrawlStatus,
    ResolutionStatus,
    ResolvedTarget,
    TargetCategory,
)
from arns_indexer.services import repository
from arns_indexer.services.crawler import ContentParser, CrawlConfig

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)
NOW_MS = int(NOW.timestamp() * 1000)


def ant_row(name, undername, transaction_id, process_id="pid", **extra):
    return {
        "name": name,
        "undername": undername,
        "process_id": process_id,
        "transaction_id": transaction_id,
        "ttl_seconds": 3600,
        **extra,
    }


def arns_row(name, process_id="pid", **extra):
    return {"name": name, "process_id": process_id, **extra}


async def count(session_maker, model):
    async with session_maker() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


async def test_find_unresolved_groups_by_transaction(targets, records):
    await records.upsert_ant_records(
        [
            ant_row("beta", "@", "tx1"),
            ant_row("alpha", "docs", "tx1"),
            ant_row("gamma", "@", "tx2"),
            ant_row("delta", "@", None),
        ]
    )

    candidates = await targets.find_unresolved(3, 10)

    assert [(c.transaction_id, c.arns_name, c.undername) for c in candidates] == [
        ("tx1", "alpha", "@"),
        ("tx2", "gamma", "@"),
    ]


async def test_find_unresolved_skips_settled_targets(targets, records):
    await records.upsert_ant_records(
        [ant_row("a", "@", "tx-new"), ant_row("b", "@", "tx-retry"), ant_row("c", "@", "tx-capped"),
         ant_row("d", "@", "tx-done"), ant_row("e", "@", "tx-gone")]
    )
    await targets.save(ResolvedTarget(transaction_id="tx-retry", status=ResolutionStatus.pending, retry_count=2))
    await targets.save(ResolvedTarget(transaction_id="tx-capped", status=ResolutionStatus.pending, retry_count=3))
    await targets.save(ResolvedTarget(transaction_id="tx-done", status=ResolutionStatus.resolved))
    await targets.save(ResolvedTarget(transaction_id="tx-gone", status=ResolutionStatus.not_found, retry_count=3))

    candidates = await targets.find_unresolved(3, 10)
    assert [c.transaction_id for c in candidates] == ["tx-new", "tx-retry"]

    limited = await targets.find_unresolved(3, 1, after="tx-new")
    assert [c.transaction_id for c in limited] == ["tx-retry"]


@pytest.mark.parametrize(
    "allow, deny, expected",
    [
        (None, None, ["tx-a", "tx-b", "tx-c"]),
        ("*", None, ["tx-a", "tx-b", "tx-c"]),
        (["alpha", "beta"], None, ["tx-a", "tx-b"]),
        (["alpha", "beta"], ["beta"], ["tx-a"]),
        ("*", ["gamma"], ["tx-a", "tx-b"]),
        (None, "*", []),
        ("*", "*", []),
    ],
)
async def test_find_unresolved_name_filters(targets, records, allow, deny, expected):
    await records.upsert_ant_records(
        [ant_row("alpha", "@", "tx-a"), ant_row("beta", "@", "tx-b"), ant_row("gamma", "@", "tx-c")]
    )

    candidates = await targets.find_unresolved(3, 10, allow=allow, deny=deny)

    assert [c.transaction_id for c in candidates] == expected


async def test_find_pending_crawl_keeps_unnamed_targets(targets):
    for transaction_id, name, status in [
        ("tx-a", "alpha", CrawlStatus.pending),
        ("tx-b", "beta", CrawlStatus.pending),
        ("tx-c", None, CrawlStatus.pending),
        ("tx-d", "delta", CrawlStatus.crawled),
    ]:
        await targets.save(
            ResolvedTarget(
                transaction_id=transaction_id,
                arns_name=name,
                status=ResolutionStatus.resolved,
                crawl_status=status,
            )
        )

    pending = await targets.find_pending_crawl(10, deny=["beta"])
    assert [target.transaction_id for target in pending] == ["tx-a", "tx-c"]

    allowed = await targets.find_pending_crawl(10, allow=["beta"])
    assert [target.transaction_id for target in allowed] == ["tx-b"]

    assert await targets.find_pending_crawl(10, deny="*") == []

    after_a = await targets.find_pending_crawl(1, deny=["beta"], after="tx-a")
    assert [target.transaction_id for target in after_a] == ["tx-c"]
    assert await targets.find_pending_crawl(10, after="tx-c") == []


async def test_document_upsert_keeps_first_depth(targets, documents):
    await targets.save(ResolvedTarget(transaction_id="tx1", status=ResolutionStatus.resolved))

    await documents.upsert("tx1", "about.html", 2, url="https://arweave.net/tx1/about.html", title="First")
    await documents.upsert("tx1", "about.html", 0, url="https://arweave.net/tx1/about.html", title="Second")

    saved = await documents.list_for_target("tx1")
    assert len(saved) == 1
    assert saved[0].depth == 2
    assert saved[0].title == "Second"
    assert saved[0].last_crawled_at is not None


async def test_document_title_is_not_length_capped(targets, documents):
    assert isinstance(CrawledDocument.__table__.c.title.type, Text)

    title = "t" * 5000
    parsed = ContentParser(CrawlConfig(max_title_size=len(title))).parse_html(f"<title>{title}</title>", "https://arweave.net/tx1")
    await targets.save(ResolvedTarget(transaction_id="tx1", status=ResolutionStatus.resolved))
    await documents.upsert("tx1", "", 0, url="https://arweave.net/tx1", title=parsed.title)

    assert (await documents.get("tx1", "")).title == title


async def test_upsert_records_updates_existing_rows(records):
    await records.upsert_arns_records([arns_row("ardrive", purchase_price=10)])
    await records.upsert_arns_records([arns_row("ardrive", process_id="pid-2"), arns_row("other")])

    rows = {row.name: row for row in await records.list_arns_records()}
    assert sorted(rows) == ["ardrive", "other"]
    assert rows["ardrive"].process_id == "pid-2"
    assert rows["ardrive"].purchase_price is None


async def test_upsert_ant_records_dedupes_within_batch(records):
    written = await records.upsert_ant_records(
        [ant_row("ardrive", "@", "tx1"), ant_row("ardrive", "@", "tx2"), ant_row("ardrive", "docs", "tx3")]
    )

    assert written == 3
    rows = {(row.name, row.undername): row for row in await records.list_ant_records()}
    assert sorted(rows) == [("ardrive", "@"), ("ardrive", "docs")]
    assert rows[("ardrive", "@")].transaction_id == "tx2"


async def test_list_ant_records_applies_blacklists(records):
    await records.upsert_ant_records(
        [
            ant_row("a", "@", "tx-a"),
            ant_row("b", "@", "tx-blocked"),
            ant_row("c", "@", "tx-c", process_id="pid-blocked"),
            ant_row("d", "@", None),
        ]
    )

    rows = await records.list_ant_records(
        exclude_transaction_ids=["tx-blocked"],
        exclude_process_ids=["pid-blocked"],
    )

    assert [row.name for row in rows] == ["a"]


async def seed_expiring_records(records):
    await records.upsert_arns_records(
        [
            arns_row("expired", type="lease", end_timestamp=NOW_MS - 1),
            arns_row("active", type="lease", end_timestamp=NOW_MS + 60_000),
            arns_row("forever", type="permabuy", end_timestamp=NOW_MS - 1),
        ]
    )
    await records.upsert_ant_records([ant_row("expired", "@", "tx-x"), ant_row("active", "@", "tx-y")])


async def test_archive_expired_records(session_maker, records):
    await seed_expiring_records(records)

    result = await records.archive_expired_records(now=NOW)

    assert result == {"archived": 1, "dependents_archived": 1}
    assert sorted(row.name for row in await records.list_arns_records()) == ["active", "forever"]
    assert [row.name for row in await records.list_ant_records()] == ["active"]

    async with session_maker() as session:
        archived = (await session.execute(select(ArnsRecordArchive))).scalar_one()
        archived_ant = (await session.execute(select(AntRecordArchive))).scalar_one()
    assert archived.name == "expired"
    assert archived.archive_reason == "lease_expired"
    assert archived.end_timestamp == NOW_MS - 1
    assert archived_ant.transaction_id == "tx-x"
    assert archived_ant.undername == "@"


async def test_archive_with_nothing_expired(records):
    await records.upsert_arns_records([arns_row("active", type="lease", end_timestamp=NOW_MS + 1)])

    assert await records.archive_expired_records(now=NOW) == {"archived": 0, "dependents_archived": 0}


async def test_archive_rolls_back_on_failure(session_maker, records, monkeypatch):
    await seed_expiring_records(records)

    def explode(record, reason):
        raise RuntimeError("archive write failed")

    monkeypatch.setattr(repository, "archive_ant_record", explode)

    with pytest.raises(RuntimeError):
        await records.archive_expired_records(now=NOW)

    assert await count(session_maker, ArnsRecordArchive) == 0
    assert await count(session_maker, AntRecordArchive) == 0
    assert await count(session_maker, ArnsRecord) == 3
    assert await count(session_maker, AntRecord) == 2


async def test_stats_counts_by_status_and_category(targets):
    await targets.save(
        ResolvedTarget(transaction_id="a", status=ResolutionStatus.resolved, target_category=TargetCategory.manifest)
    )
    await targets.save(
        ResolvedTarget(transaction_id="b", status=ResolutionStatus.resolved, target_category=TargetCategory.transaction)
    )
    await targets.save(ResolvedTarget(transaction_id="c", status=ResolutionStatus.not_found, retry_count=3))

    assert await targets.stats() == {
        "total": 3,
        "resolved": 2,
        "pending": 0,
        "not_found": 1,
        "by_category": {"manifest": 1, "transaction": 1},
    }
