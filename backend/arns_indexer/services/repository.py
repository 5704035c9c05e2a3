"""Narrow persistence interfaces for targets, crawled documents and registry records.

Each operation opens its own short-lived session so concurrent workers never
share an ``AsyncSession``; writes are single-row and keyed, except archival
which runs as one transaction across the record and archive tables.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import and_, delete, false, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from arns_indexer.config import NameFilter
from arns_indexer.models import (
    AntRecord,
    AntRecordArchive,
    ArnsRecord,
    ArnsRecordArchive,
    CrawledDocument,
    CrawlStatus,
    ResolutionStatus,
    ResolvedTarget,
)
from arns_indexer.models.base import utcnow

ARNS_RECORD_FIELDS = (
    "process_id",
    "purchase_price",
    "start_timestamp",
    "end_timestamp",
    "type",
    "undername_limit",
)

ANT_RECORD_FIELDS = (
    "process_id",
    "transaction_id",
    "ttl_seconds",
    "description",
    "priority",
    "owner",
    "display_name",
    "logo",
    "keywords",
    "controllers",
)


@dataclass
class UnresolvedTarget:
    transaction_id: str
    arns_name: str = ""
    undername: str = ""


def apply_name_filters(stmt, column, allow: NameFilter, deny: NameFilter, *, keep_unnamed: bool = False):
    """Restrict ``stmt`` by an allow-list and deny-list on ``column``.

    ``None`` means unset and ``"*"`` matches every name; a deny entry always
    wins over an allow entry for the same name.
    """
    if deny == "*":
        return stmt.where(false())
    if allow is not None and allow != "*":
        stmt = stmt.where(column.in_(list(allow)))
    if deny:
        condition = column.not_in(list(deny))
        if keep_unnamed:
            condition = or_(column.is_(None), condition)
        stmt = stmt.where(condition)
    return stmt


class ResolvedTargetRepository:
    def __init__(self, session_maker: async_sessionmaker) -> None:
        self.session_maker = session_maker

    async def get(self, transaction_id: str) -> Optional[ResolvedTarget]:
        async with self.session_maker() as session:
            return await session.get(ResolvedTarget, transaction_id)

    async def save(self, target: ResolvedTarget) -> ResolvedTarget:
        async with self.session_maker() as session:
            merged = await session.merge(target)
            await session.commit()
            return merged

    async def update(self, transaction_id: str, **values: Any) -> None:
        async with self.session_maker() as session:
            await session.execute(
                update(ResolvedTarget)
                .where(ResolvedTarget.transaction_id == transaction_id)
                .values(**values)
            )
            await session.commit()

    async def find_unresolved(
        self,
        max_retries: int,
        limit: int,
        allow: NameFilter = None,
        deny: NameFilter = None,
        after: Optional[str] = None,
    ) -> List[UnresolvedTarget]:
        """Candidates ordered by transaction id, starting after ``after`` when given."""
        stmt = (
            select(
                AntRecord.transaction_id,
                func.min(AntRecord.name),
                func.min(AntRecord.undername),
            )
            .outerjoin(ResolvedTarget, ResolvedTarget.transaction_id == AntRecord.transaction_id)
            .where(AntRecord.transaction_id.is_not(None))
            .where(
                or_(
                    ResolvedTarget.transaction_id.is_(None),
                    and_(
                        ResolvedTarget.status == ResolutionStatus.pending,
                        ResolvedTarget.retry_count < max_retries,
                    ),
                )
            )
        )
        stmt = apply_name_filters(stmt, AntRecord.name, allow, deny)
        if after is not None:
            stmt = stmt.where(AntRecord.transaction_id > after)
        stmt = stmt.group_by(AntRecord.transaction_id).order_by(AntRecord.transaction_id).limit(limit)

        async with self.session_maker() as session:
            rows = (await session.execute(stmt)).all()
        return [
            UnresolvedTarget(transaction_id=row[0], arns_name=row[1] or "", undername=row[2] or "")
            for row in rows
        ]

    async def find_pending_crawl(
        self,
        limit: int,
        allow: NameFilter = None,
        deny: NameFilter = None,
        after: Optional[str] = None,
    ) -> List[ResolvedTarget]:
        stmt = select(ResolvedTarget).where(ResolvedTarget.crawl_status == CrawlStatus.pending)
        stmt = apply_name_filters(stmt, ResolvedTarget.arns_name, allow, deny, keep_unnamed=True)
        if after is not None:
            stmt = stmt.where(ResolvedTarget.transaction_id > after)
        stmt = stmt.order_by(ResolvedTarget.transaction_id).limit(limit)
        async with self.session_maker() as session:
            return list((await session.execute(stmt)).scalars().all())

    async def stats(self) -> Dict[str, Any]:
        async with self.session_maker() as session:
            status_rows = (
                await session.execute(
                    select(ResolvedTarget.status, func.count()).group_by(ResolvedTarget.status)
                )
            ).all()
            category_rows = (
                await session.execute(
                    select(ResolvedTarget.target_category, func.count())
                    .where(ResolvedTarget.target_category.is_not(None))
                    .group_by(ResolvedTarget.target_category)
                )
            ).all()

        by_status = {status.value: count for status, count in status_rows}
        return {
            "total": sum(by_status.values()),
            "resolved": by_status.get(ResolutionStatus.resolved.value, 0),
            "pending": by_status.get(ResolutionStatus.pending.value, 0),
            "not_found": by_status.get(ResolutionStatus.not_found.value, 0),
            "by_category": {category.value: count for category, count in category_rows},
        }


class CrawledDocumentRepository:
    def __init__(self, session_maker: async_sessionmaker) -> None:
        self.session_maker = session_maker

    async def get(self, transaction_id: str, manifest_path: str) -> Optional[CrawledDocument]:
        async with self.session_maker() as session:
            return (
                await session.execute(
                    select(CrawledDocument).where(
                        CrawledDocument.transaction_id == transaction_id,
                        CrawledDocument.manifest_path == manifest_path,
                    )
                )
            ).scalar_one_or_none()

    async def list_for_target(self, transaction_id: str) -> List[CrawledDocument]:
        async with self.session_maker() as session:
            return list(
                (
                    await session.execute(
                        select(CrawledDocument)
                        .where(CrawledDocument.transaction_id == transaction_id)
                        .order_by(CrawledDocument.manifest_path)
                    )
                ).scalars().all()
            )

    async def upsert(self, transaction_id: str, manifest_path: str, depth: int, **fields: Any) -> None:
        """Insert or overwrite the document for (transaction, path); depth is set on insert only."""
        fields["last_crawled_at"] = utcnow()
        for attempt in range(2):
            async with self.session_maker() as session:
                existing = (
                    await session.execute(
                        select(CrawledDocument.id).where(
                            CrawledDocument.transaction_id == transaction_id,
                            CrawledDocument.manifest_path == manifest_path,
                        )
                    )
                ).scalar_one_or_none()

                if existing is not None:
                    await session.execute(
                        update(CrawledDocument).where(CrawledDocument.id == existing).values(**fields)
                    )
                    await session.commit()
                    return

                session.add(
                    CrawledDocument(
                        transaction_id=transaction_id,
                        manifest_path=manifest_path,
                        depth=depth,
                        **fields,
                    )
                )
                try:
                    await session.commit()
                    return
                except IntegrityError:
                    # A concurrent worker inserted the same pair first
                    await session.rollback()
                    if attempt:
                        raise


def archive_arns_record(record: ArnsRecord, reason: str) -> ArnsRecordArchive:
    return ArnsRecordArchive(
        archive_reason=reason,
        original_id=record.id,
        original_created_at=record.created_at,
        original_updated_at=record.updated_at,
        name=record.name,
        **{field: getattr(record, field) for field in ARNS_RECORD_FIELDS},
    )


def archive_ant_record(record: AntRecord, reason: str) -> AntRecordArchive:
    return AntRecordArchive(
        archive_reason=reason,
        original_id=record.id,
        original_created_at=record.created_at,
        original_updated_at=record.updated_at,
        name=record.name,
        undername=record.undername,
        **{field: getattr(record, field) for field in ANT_RECORD_FIELDS},
    )


class RecordRepository:
    def __init__(self, session_maker: async_sessionmaker) -> None:
        self.session_maker = session_maker

    async def upsert_arns_records(self, records: List[Dict[str, Any]]) -> int:
        if not records:
            return 0
        async with self.session_maker() as session:
            names = [record["name"] for record in records]
            existing = {
                row.name: row
                for row in (
                    await session.execute(select(ArnsRecord).where(ArnsRecord.name.in_(names)))
                ).scalars()
            }
            for record in records:
                values = {field: record.get(field) for field in ARNS_RECORD_FIELDS}
                row = existing.get(record["name"])
                if row is None:
                    row = existing[record["name"]] = ArnsRecord(name=record["name"], **values)
                    session.add(row)
                else:
                    for field, value in values.items():
                        setattr(row, field, value)
            await session.commit()
        return len(records)

    async def upsert_ant_records(self, records: List[Dict[str, Any]]) -> int:
        if not records:
            return 0
        async with self.session_maker() as session:
            names = list({record["name"] for record in records})
            existing = {
                (row.name, row.undername): row
                for row in (
                    await session.execute(select(AntRecord).where(AntRecord.name.in_(names)))
                ).scalars()
            }
            for record in records:
                values = {field: record.get(field) for field in ANT_RECORD_FIELDS}
                row = existing.get((record["name"], record["undername"]))
                if row is None:
                    row = AntRecord(name=record["name"], undername=record["undername"], **values)
                    existing[(record["name"], record["undername"])] = row
                    session.add(row)
                else:
                    for field, value in values.items():
                        setattr(row, field, value)
            await session.commit()
        return len(records)

    async def list_arns_records(self, offset: int = 0, limit: int = 1000) -> List[ArnsRecord]:
        async with self.session_maker() as session:
            return list(
                (
                    await session.execute(
                        select(ArnsRecord).order_by(ArnsRecord.id).offset(offset).limit(limit)
                    )
                ).scalars().all()
            )

    async def list_ant_records(
        self,
        exclude_transaction_ids: Iterable[str] = (),
        exclude_process_ids: Iterable[str] = (),
    ) -> List[AntRecord]:
        stmt = select(AntRecord).where(AntRecord.transaction_id.is_not(None))
        excluded_targets = [value for value in exclude_transaction_ids if value]
        if excluded_targets:
            stmt = stmt.where(AntRecord.transaction_id.not_in(excluded_targets))
        excluded_processes = [value for value in exclude_process_ids if value]
        if excluded_processes:
            stmt = stmt.where(AntRecord.process_id.not_in(excluded_processes))
        async with self.session_maker() as session:
            return list((await session.execute(stmt.order_by(AntRecord.id))).scalars().all())

    async def archive_expired_records(
        self,
        now: Optional[datetime] = None,
        reason: str = "lease_expired",
    ) -> Dict[str, int]:
        """Move expired leases and their ANT records into the archive tables atomically."""
        now_ms = int((now.timestamp() if now else time.time()) * 1000)

        async with self.session_maker() as session:
            async with session.begin():
                expired = list(
                    (
                        await session.execute(
                            select(ArnsRecord).where(
                                ArnsRecord.type == "lease",
                                ArnsRecord.end_timestamp.is_not(None),
                                ArnsRecord.end_timestamp < now_ms,
                            )
                        )
                    ).scalars().all()
                )
                if not expired:
                    return {"archived": 0, "dependents_archived": 0}

                names = [record.name for record in expired]
                dependents = list(
                    (
                        await session.execute(select(AntRecord).where(AntRecord.name.in_(names)))
                    ).scalars().all()
                )

                for record in expired:
                    session.add(archive_arns_record(record, reason))
                for record in dependents:
                    session.add(archive_ant_record(record, reason))
                await session.flush()

                if dependents:
                    await session.execute(
                        delete(AntRecord).where(AntRecord.id.in_([record.id for record in dependents]))
                    )
                await session.execute(
                    delete(ArnsRecord).where(ArnsRecord.id.in_([record.id for record in expired]))
                )

        return {"archived": len(expired), "dependents_archived": len(dependents)}
