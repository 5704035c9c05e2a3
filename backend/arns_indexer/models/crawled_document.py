"""Parsed content of one crawled path of a target."""
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Text, UniqueConstraint

from arns_indexer.models.base import Base, utcnow

# Manifest path stored for documents that are not part of a manifest.
ROOT_DOCUMENT_PATH = ""


class CrawledDocument(Base):
    __tablename__ = "crawled_documents"
    __table_args__ = (
        UniqueConstraint("transaction_id", "manifest_path", name="uq_crawled_documents_tx_path"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    transaction_id = Column(
        String(64),
        ForeignKey("ant_resolved_targets.transaction_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    manifest_path = Column(String(1000), nullable=False, default=ROOT_DOCUMENT_PATH)
    url = Column(String(2000), nullable=False, index=True)

    title = Column(Text, nullable=True)
    body = Column(Text, nullable=True)
    body_truncated = Column(Boolean, nullable=False, default=False)
    meta_description = Column(Text, nullable=True)
    meta_keywords = Column(Text, nullable=True)
    headings = Column(JSON, default=list)
    links = Column(JSON, default=list)

    content_hash = Column(String(64), nullable=True, index=True)
    content_type = Column(String(255), nullable=True)
    depth = Column(Integer, nullable=False, default=0)
    content_length = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    last_crawled_at = Column(DateTime(timezone=True), nullable=True)
