"""Name and process records discovered from the ArNS registry, plus their archives."""
from sqlalchemy import BigInteger, Column, DateTime, Integer, JSON, String, UniqueConstraint

from arns_indexer.models.base import Base, utcnow


class ArnsRecord(Base):
    """A registered ArNS name and the ANT process that resolves it."""

    __tablename__ = "arns_records"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, unique=True, index=True)
    process_id = Column(String(64), nullable=False, index=True)

    purchase_price = Column(BigInteger, nullable=True)
    start_timestamp = Column(BigInteger, nullable=True)  # ms since epoch
    end_timestamp = Column(BigInteger, nullable=True)  # ms since epoch, leases only
    type = Column(String(20), nullable=True)  # lease | permabuy
    undername_limit = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class AntRecord(Base):
    """One undername record of an ANT process, pointing at a target transaction."""

    __tablename__ = "ant_records"
    __table_args__ = (UniqueConstraint("name", "undername", name="uq_ant_records_name_undername"),)

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    process_id = Column(String(64), nullable=False, index=True)
    undername = Column(String(255), nullable=False)
    transaction_id = Column(String(64), nullable=True, index=True)
    ttl_seconds = Column(Integer, nullable=False, default=3600)

    description = Column(String(1000), nullable=True)
    priority = Column(Integer, nullable=True)
    owner = Column(String(64), nullable=True, index=True)
    display_name = Column(String(255), nullable=True)
    logo = Column(String(64), nullable=True)
    keywords = Column(JSON, default=list)
    controllers = Column(JSON, default=list)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class ArnsRecordArchive(Base):
    __tablename__ = "arns_record_archive"

    id = Column(Integer, primary_key=True, index=True)
    archived_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    archive_reason = Column(String(255), nullable=True)

    original_id = Column(Integer, nullable=False)
    original_created_at = Column(DateTime(timezone=True), nullable=False)
    original_updated_at = Column(DateTime(timezone=True), nullable=False)

    name = Column(String(255), nullable=False, index=True)
    process_id = Column(String(64), nullable=False)
    purchase_price = Column(BigInteger, nullable=True)
    start_timestamp = Column(BigInteger, nullable=True)
    end_timestamp = Column(BigInteger, nullable=True)
    type = Column(String(20), nullable=True)
    undername_limit = Column(Integer, nullable=True)


class AntRecordArchive(Base):
    __tablename__ = "ant_record_archive"

    id = Column(Integer, primary_key=True, index=True)
    archived_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    archive_reason = Column(String(255), nullable=True)

    original_id = Column(Integer, nullable=False)
    original_created_at = Column(DateTime(timezone=True), nullable=False)
    original_updated_at = Column(DateTime(timezone=True), nullable=False)

    name = Column(String(255), nullable=False, index=True)
    process_id = Column(String(64), nullable=False)
    undername = Column(String(255), nullable=False)
    transaction_id = Column(String(64), nullable=True)
    ttl_seconds = Column(Integer, nullable=False)
    description = Column(String(1000), nullable=True)
    priority = Column(Integer, nullable=True)
    owner = Column(String(64), nullable=True)
    display_name = Column(String(255), nullable=True)
    logo = Column(String(64), nullable=True)
    keywords = Column(JSON, default=list)
    controllers = Column(JSON, default=list)
