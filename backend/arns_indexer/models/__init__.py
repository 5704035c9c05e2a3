from arns_indexer.models.base import Base
from arns_indexer.models.records import ArnsRecord, AntRecord, ArnsRecordArchive, AntRecordArchive
from arns_indexer.models.resolved_target import (
    ResolvedTarget,
    ResolutionStatus,
    TargetCategory,
    CrawlStatus,
    ManifestValidation,
)
from arns_indexer.models.crawled_document import CrawledDocument, ROOT_DOCUMENT_PATH

__all__ = [
    "Base",
    # Registry records
    "ArnsRecord", "AntRecord", "ArnsRecordArchive", "AntRecordArchive",
    # Resolution and crawl state
    "ResolvedTarget", "ResolutionStatus", "TargetCategory", "CrawlStatus", "ManifestValidation",
    "CrawledDocument", "ROOT_DOCUMENT_PATH",
]
