"""Cache repository for database operations."""

import time
from typing import Optional

from sqlalchemy import and_, delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from idm.core.logging import get_logger
from idm.db.models import CacheEntry
from idm.models.domain import CacheRecord

logger = get_logger(__name__)

# Dialects with INSERT ... ON CONFLICT DO UPDATE
UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


class CacheRepository:
    """Repository for cache table operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, segment: str, key_hash: str) -> Optional[CacheRecord]:
        """Retrieve a live (unexpired) entry."""
        start_time = time.time()
        logger.debug("db_query", operation="get", segment=segment)

        result = await self.session.execute(
            select(CacheEntry).where(
                and_(
                    CacheEntry.segment == segment,
                    CacheEntry.key_hash == key_hash,
                    CacheEntry.expires_at_ms > now_ms(),
                )
            )
        )
        entry = result.scalar_one_or_none()

        duration_ms = (time.time() - start_time) * 1000
        logger.debug(
            "db_query_complete",
            operation="get",
            segment=segment,
            found=entry is not None,
            duration_ms=round(duration_ms, 2),
        )

        return CacheRecord.model_validate(entry) if entry else None

    async def upsert(
        self,
        segment: str,
        key_hash: str,
        encrypted_value: str,
        nonce: str,
        expires_at_ms: int,
    ) -> CacheRecord:
        """Insert an entry or overwrite the existing one for the same key.

        A single ``INSERT ... ON CONFLICT DO UPDATE``, so concurrent writers of
        a new key do not collide on the primary key.
        """
        start_time = time.time()
        logger.debug("db_query", operation="upsert", segment=segment)

        insert = self._insert()
        statement = insert(CacheEntry).values(
            segment=segment,
            key_hash=key_hash,
            encrypted_value=encrypted_value,
            nonce=nonce,
            expires_at_ms=expires_at_ms,
        )
        statement = statement.on_conflict_do_update(
            index_elements=[CacheEntry.segment, CacheEntry.key_hash],
            set_={
                "encrypted_value": statement.excluded.encrypted_value,
                "nonce": statement.excluded.nonce,
                "expires_at_ms": statement.excluded.expires_at_ms,
                "updated_at": func.now(),
            },
        )
        await self.session.execute(statement)

        result = await self.session.execute(
            select(CacheEntry)
            .where(and_(CacheEntry.segment == segment, CacheEntry.key_hash == key_hash))
            .execution_options(populate_existing=True)
        )
        entry = result.scalar_one()

        duration_ms = (time.time() - start_time) * 1000
        logger.debug(
            "db_query_complete",
            operation="upsert",
            segment=segment,
            duration_ms=round(duration_ms, 2),
        )

        return CacheRecord.model_validate(entry)

    async def delete(self, segment: str, key_hash: str) -> bool:
        """Delete an entry. Returns whether a row was removed.

        Of several concurrent deletes of one entry exactly one returns True.
        """
        start_time = time.time()
        logger.debug("db_query", operation="delete", segment=segment)

        result = await self.session.execute(
            delete(CacheEntry).where(
                and_(CacheEntry.segment == segment, CacheEntry.key_hash == key_hash)
            )
        )
        deleted = result.rowcount > 0

        duration_ms = (time.time() - start_time) * 1000
        logger.debug(
            "db_query_complete",
            operation="delete",
            segment=segment,
            deleted=deleted,
            duration_ms=round(duration_ms, 2),
        )

        return deleted

    async def purge_expired(self, segment: Optional[str] = None) -> int:
        """Delete expired entries, optionally only within one segment."""
        query = delete(CacheEntry).where(CacheEntry.expires_at_ms <= now_ms())
        if segment:
            query = query.where(CacheEntry.segment == segment)

        result = await self.session.execute(query)
        if result.rowcount:
            logger.debug("cache_purged", segment=segment, deleted=result.rowcount)
        return result.rowcount

    def _insert(self):
        dialect = self.session.bind.dialect.name
        try:
            return UPSERT_INSERTS[dialect]
        except KeyError:
            raise RuntimeError(f"Cache upsert is not supported on dialect '{dialect}'")
