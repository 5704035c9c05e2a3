"""Resolution and crawl state for a single target transaction."""
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional
import enum

from sqlalchemy import Column, DateTime, Enum, Integer, JSON, String, Text

from arns_indexer.models.base import Base, utcnow


class TargetCategory(enum.Enum):
    manifest = "manifest"
    ao_process = "ao_process"
    transaction = "transaction"


class ResolutionStatus(enum.Enum):
    pending = "pending"
    resolved = "resolved"
    not_found = "not_found"


class CrawlStatus(enum.Enum):
    pending = "pending"
    crawling = "crawling"
    crawled = "crawled"
    skipped = "skipped"
    failed = "failed"


@dataclass
class ManifestValidation:
    is_valid: bool
    error: Optional[str] = None
    path_count: Optional[int] = None
    has_index: Optional[bool] = None
    has_fallback: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["ManifestValidation"]:
        if not data:
            return None
        return cls(
            is_valid=bool(data.get("is_valid")),
            error=data.get("error"),
            path_count=data.get("path_count"),
            has_index=data.get("has_index"),
            has_fallback=data.get("has_fallback"),
        )


class ResolvedTarget(Base):
    __tablename__ = "ant_resolved_targets"

    transaction_id = Column(String(64), primary_key=True)
    arns_name = Column(String(255), nullable=True, index=True)
    undername = Column(String(255), nullable=True, index=True)

    status = Column(Enum(ResolutionStatus), nullable=False, default=ResolutionStatus.pending, index=True)
    content_type = Column(String(255), nullable=True)
    target_category = Column(Enum(TargetCategory), nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    manifest_validation = Column(JSON, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    crawl_status = Column(Enum(CrawlStatus), nullable=True, index=True)
    crawled_at = Column(DateTime(timezone=True), nullable=True)
    robots_txt = Column(Text, nullable=True)
    sitemap_xml = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def validation(self) -> Optional[ManifestValidation]:
        return ManifestValidation.from_dict(self.manifest_validation)
