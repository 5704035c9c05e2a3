#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from arns_indexer.config import get_settings
from arns_indexer.models.base import build_engine, build_session_maker
from arns_indexer.services.records import generate_crawl_domains_config, load_blacklist
from arns_indexer.services.repository import RecordRepository


async def _export(gateway: str) -> str:
    settings = get_settings()
    engine = build_engine(settings.database_url)
    try:
        return await generate_crawl_domains_config(
            RecordRepository(build_session_maker(engine)),
            gateway,
            target_blacklist=load_blacklist(settings.ant_target_blacklist_file),
            process_blacklist=load_blacklist(settings.ant_process_id_blacklist_file),
        )
    finally:
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Write the crawler domains YAML for every ANT record with a target.")
    parser.add_argument("--gateway", default=None, help="Gateway host, defaults to ARNS_CRAWL_GATEWAY")
    parser.add_argument("--out", default="crawler-config-domains.yml")
    args = parser.parse_args()

    content = asyncio.run(_export(args.gateway or get_settings().arns_crawl_gateway))
    out_path = Path(args.out)
    out_path.write_text(content)
    print(f"Wrote {content.count('- url:')} domains to {out_path}")


if __name__ == "__main__":
    main()
