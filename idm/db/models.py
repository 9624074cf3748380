"""SQLAlchemy ORM models."""

from sqlalchemy import BigInteger, Column, DateTime, Index, Text
from sqlalchemy.sql import func

from idm.db.base import Base


class CacheEntry(Base):
    """Encrypted key/value cache entries, partitioned by segment."""

    __tablename__ = "idm_cache"

    segment = Column(Text, primary_key=True)
    key_hash = Column(Text, primary_key=True)
    encrypted_value = Column(Text, nullable=False)
    nonce = Column(Text, nullable=False)
    expires_at_ms = Column(BigInteger, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    __table_args__ = (Index("idm_cache_expires_at_idx", "expires_at_ms"),)

    def __repr__(self):
        return f"<CacheEntry(segment={self.segment}, key_hash={self.key_hash[:8]}...)>"
