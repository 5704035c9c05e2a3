"""Indexer API routes - resolution stats and the legacy crawler domains export."""
from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import async_sessionmaker
from typing import Dict

from arns_indexer.config import Settings, get_settings
from arns_indexer.models.base import get_session_maker
from arns_indexer.services.records import generate_crawl_domains_config, load_blacklist
from arns_indexer.services.repository import RecordRepository, ResolvedTargetRepository

router = APIRouter()


class StatsResponse(BaseModel):
    total: int
    resolved: int
    pending: int
    not_found: int
    by_category: Dict[str, int]


@router.get("/stats", response_model=StatsResponse)
async def get_stats(session_maker: async_sessionmaker = Depends(get_session_maker)):
    return await ResolvedTargetRepository(session_maker).stats()


@router.get("/crawler-config-domains.yml", response_class=PlainTextResponse)
async def crawler_config_domains(
    session_maker: async_sessionmaker = Depends(get_session_maker),
    settings: Settings = Depends(get_settings),
):
    content = await generate_crawl_domains_config(
        RecordRepository(session_maker),
        settings.arns_crawl_gateway,
        target_blacklist=load_blacklist(settings.ant_target_blacklist_file),
        process_blacklist=load_blacklist(settings.ant_process_id_blacklist_file),
    )
    return PlainTextResponse(
        content,
        media_type="application/x-yaml",
        headers={"Content-Disposition": 'attachment; filename="crawler-config-domains.yml"'},
    )
