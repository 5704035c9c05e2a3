"""Name and process record discovery from the AO registry, plus the legacy domains export."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from arns_indexer.services.errors import TransientNetworkError
from arns_indexer.services.repository import RecordRepository

logger = logging.getLogger(__name__)

PAGINATED_RECORDS_ACTION = "Paginated-Records"
STATE_ACTION = "State"
APEX_UNDERNAME = "@"
DEFAULT_TTL_SECONDS = 3600

# Placeholder identity for read-only dry-run messages
DRY_RUN_ADDRESS = "1234"


class RecordSource(Protocol):
    async def fetch_name_records(self) -> List[Dict[str, Any]]:
        ...

    async def fetch_process_state(self, process_id: str) -> Optional[Dict[str, Any]]:
        ...


def load_blacklist(path: Optional[str]) -> List[str]:
    """Read a newline-separated id list; a missing setting means an empty list."""
    if not path:
        return []
    entries = [line.strip() for line in Path(path).read_text(encoding="utf-8").splitlines()]
    return [entry for entry in entries if entry]


def name_record_from_item(item: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": item.get("name"),
        "process_id": item.get("processId"),
        "purchase_price": item.get("purchasePrice"),
        "start_timestamp": item.get("startTimestamp"),
        "end_timestamp": item.get("endTimestamp"),
        "type": item.get("type"),
        "undername_limit": item.get("undernameLimit"),
    }


def ant_records_from_state(name: str, process_id: str, state: Dict[str, Any]) -> List[Dict[str, Any]]:
    records = state.get("Records") or {}
    controllers = state.get("Controllers")
    rows = []
    for undername, record in records.items():
        record = record or {}
        rows.append(
            {
                "name": name,
                "undername": undername,
                "process_id": process_id,
                "transaction_id": record.get("transactionId"),
                "ttl_seconds": record.get("ttlSeconds") or DEFAULT_TTL_SECONDS,
                "description": record.get("description"),
                "priority": record.get("priority"),
                "owner": record.get("owner"),
                "display_name": record.get("displayName"),
                "logo": record.get("logo"),
                "keywords": record.get("keywords"),
                "controllers": controllers,
            }
        )
    return rows


class AoComputeUnitSource:
    """Reads registry and ANT state through compute-unit dry-runs."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        cu_url: str,
        registry_process_id: str,
        page_size: int = 1000,
    ):
        self.client = client
        self.cu_url = cu_url.rstrip("/")
        self.registry_process_id = registry_process_id
        self.page_size = page_size

    async def dry_run(self, process_id: str, tags: Sequence[Dict[str, str]]) -> Any:
        body = {
            "Id": DRY_RUN_ADDRESS,
            "Target": process_id,
            "Owner": DRY_RUN_ADDRESS,
            "Anchor": "0",
            "Data": DRY_RUN_ADDRESS,
            "Tags": [
                {"name": "Data-Protocol", "value": "ao"},
                {"name": "Type", "value": "Message"},
                {"name": "Variant", "value": "ao.TN.1"},
                *tags,
            ],
        }
        response = await self.client.post(
            f"{self.cu_url}/dry-run",
            params={"process-id": process_id},
            json=body,
        )
        if not response.is_success:
            raise TransientNetworkError(
                f"Dry-run against {process_id} failed: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        messages = response.json().get("Messages") or []
        if not messages:
            return None
        data = messages[0].get("Data")
        if isinstance(data, str):
            return json.loads(data) if data else None
        return data

    async def fetch_name_records(self) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        while True:
            logger.info("Fetching ArNS records using cursor [%s] and limit [%d]", cursor, self.page_size)
            tags = [
                {"name": "Action", "value": PAGINATED_RECORDS_ACTION},
                {"name": "Limit", "value": str(self.page_size)},
                {"name": "Sort-By", "value": "startTimestamp"},
                {"name": "Sort-Order", "value": "asc"},
            ]
            if cursor:
                tags.append({"name": "Cursor", "value": cursor})

            page = await self.dry_run(self.registry_process_id, tags) or {}
            page_items = page.get("items") or []
            items.extend(page_items)
            logger.info("Fetched [%d] ArNS records", len(page_items))

            cursor = page.get("nextCursor")
            if not page.get("hasMore") or not cursor:
                break
        return items

    async def fetch_process_state(self, process_id: str) -> Optional[Dict[str, Any]]:
        try:
            state = await self.dry_run(process_id, [{"name": "Action", "value": STATE_ACTION}])
        except (httpx.HTTPError, TransientNetworkError, ValueError) as exc:
            logger.error("Failed to fetch ANT state for [%s]: %s", process_id, exc)
            return None
        return state if isinstance(state, dict) else None


class RecordDiscovery:
    """Keeps arns_records / ant_records in sync with the registry."""

    def __init__(
        self,
        source: RecordSource,
        records: RecordRepository,
        gateway_host: str = "arweave.net",
        target_blacklist: Optional[List[str]] = None,
        process_blacklist: Optional[List[str]] = None,
        page_size: int = 1000,
    ):
        self.source = source
        self.records = records
        self.gateway_host = gateway_host
        self.target_blacklist = target_blacklist or []
        self.process_blacklist = process_blacklist or []
        self.page_size = page_size

    @classmethod
    def from_settings(cls, source: RecordSource, records: RecordRepository, settings) -> "RecordDiscovery":
        target_blacklist = load_blacklist(settings.ant_target_blacklist_file)
        process_blacklist = load_blacklist(settings.ant_process_id_blacklist_file)
        if settings.ant_target_blacklist_file:
            logger.info("Got [%d] blacklisted ANT targets", len(target_blacklist))
        else:
            logger.warning("No ANT target blacklist file configured")
        if settings.ant_process_id_blacklist_file:
            logger.info("Got [%d] blacklisted ANT process IDs", len(process_blacklist))
        else:
            logger.warning("No ANT process blacklist file configured")
        return cls(
            source,
            records,
            gateway_host=settings.arns_crawl_gateway,
            target_blacklist=target_blacklist,
            process_blacklist=process_blacklist,
            page_size=settings.name_records_page_size,
        )

    async def update_name_records_index(self) -> int:
        items = await self.source.fetch_name_records()
        logger.info("Updating database for [%d] ArNS records", len(items))

        rows = []
        for item in items:
            if item.get("processId") in self.process_blacklist:
                logger.warning("Skipping ArNS record with blacklisted process ID [%s]", item.get("processId"))
                continue
            if not item.get("name") or not item.get("processId"):
                continue
            rows.append(name_record_from_item(item))

        logger.info("Upserting [%d] ArNS records into database", len(rows))
        return await self.records.upsert_arns_records(rows)

    async def update_process_records_index(self) -> int:
        upserted = 0
        offset = 0
        while True:
            names = await self.records.list_arns_records(offset=offset, limit=self.page_size)
            if not names:
                break
            offset += len(names)

            for record in names:
                if record.process_id in self.process_blacklist:
                    logger.warning("Skipping ANT record with blacklisted process ID [%s]", record.process_id)
                    continue
                if not record.process_id:
                    continue

                state = await self.source.fetch_process_state(record.process_id)
                if not state:
                    logger.warning(
                        "No ANT records found for name [%s] & process ID [%s]", record.name, record.process_id
                    )
                    continue

                rows = ant_records_from_state(record.name, record.process_id, state)
                logger.info("Upserting [%d] undername records for ArNS name [%s]", len(rows), record.name)
                upserted += await self.records.upsert_ant_records(rows)

        logger.info("Process records index updated: %d undername records", upserted)
        return upserted

    async def generate_crawl_domains_config(self) -> str:
        return await generate_crawl_domains_config(
            self.records,
            self.gateway_host,
            target_blacklist=self.target_blacklist,
            process_blacklist=self.process_blacklist,
        )


async def generate_crawl_domains_config(
    records: RecordRepository,
    gateway_host: str,
    target_blacklist: Sequence[str] = (),
    process_blacklist: Sequence[str] = (),
) -> str:
    """YAML list of ``https://<sub>.<gateway>`` domains for every ANT record with a target."""
    rows = await records.list_ant_records(
        exclude_transaction_ids=target_blacklist,
        exclude_process_ids=process_blacklist,
    )
    logger.info("Found [%d] ArNS records with valid primary targets", len(rows))

    urls: Dict[str, None] = {}
    for row in rows:
        name = row.name or ""
        undername = row.undername or ""
        if any(char in value for value in (name, undername) for char in (" ", "+")):
            continue
        subdomain = name if undername == APEX_UNDERNAME else f"{undername}_{name}"
        url = f"https://{subdomain}.{gateway_host}".lower()
        urls.setdefault(url)

    logger.info("Generated crawl domains config with [%d] domains", len(urls))
    return "domains:\n" + "".join(f"  - url: {url}\n" for url in urls)
