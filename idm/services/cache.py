"""Segment-scoped cache backed by the encrypted cache table."""

import json
import time
from typing import Any, Optional

from idm.core.logging import get_logger
from idm.db.base import DatabaseSessionManager
from idm.db.repositories.cache import CacheRepository, now_ms
from idm.services.encryption import EncryptionService

logger = get_logger(__name__)


class SegmentCache:
    """Key/value cache for one segment with a default TTL.

    Values must be JSON-serialisable. They are encrypted at rest and bound to
    their segment and key; keys are only stored as keyed digests.
    """

    def __init__(
        self,
        db: DatabaseSessionManager,
        encryption: EncryptionService,
        segment: str,
        ttl_ms: int,
    ):
        self.db = db
        self.encryption = encryption
        self.segment = segment
        self.ttl_ms = ttl_ms

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value for ``key`` or None if absent or expired."""
        start_time = time.time()
        key_hash = self.encryption.hash_key(key)

        async with self.db.session_scope() as session:
            record = await CacheRepository(session).get(self.segment, key_hash)

        value = None
        if record is not None:
            plaintext = self.encryption.decrypt(
                record.encrypted_value, record.nonce, self._associated_data(key_hash)
            )
            value = json.loads(plaintext)

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "cache_operation",
            operation="get",
            segment=self.segment,
            found=value is not None,
            duration_ms=round(duration_ms, 2),
        )
        return value

    async def set(self, key: str, value: Any, ttl_ms: Optional[int] = None) -> None:
        """Store ``value`` under ``key``, replacing any previous value.

        Expired rows of the segment are purged in the same transaction.
        """
        start_time = time.time()
        key_hash = self.encryption.hash_key(key)
        nonce = self.encryption.generate_nonce()
        encrypted_value = self.encryption.encrypt(
            json.dumps(value), nonce, self._associated_data(key_hash)
        )
        expires_at_ms = now_ms() + (ttl_ms if ttl_ms is not None else self.ttl_ms)

        async with self.db.session_scope() as session:
            repository = CacheRepository(session)
            purged = await repository.purge_expired(self.segment)
            await repository.upsert(
                segment=self.segment,
                key_hash=key_hash,
                encrypted_value=encrypted_value,
                nonce=nonce,
                expires_at_ms=expires_at_ms,
            )

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "cache_operation",
            operation="set",
            segment=self.segment,
            purged=purged,
            duration_ms=round(duration_ms, 2),
        )

    async def drop(self, key: str) -> bool:
        """Remove ``key``. Returns whether it was present; a missing key is not an error."""
        start_time = time.time()
        key_hash = self.encryption.hash_key(key)

        async with self.db.session_scope() as session:
            deleted = await CacheRepository(session).delete(self.segment, key_hash)

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "cache_operation",
            operation="drop",
            segment=self.segment,
            deleted=deleted,
            duration_ms=round(duration_ms, 2),
        )
        return deleted

    async def take(self, key: str) -> Optional[Any]:
        """Return the value for ``key`` and remove it.

        When several callers take the same key concurrently, only the one whose
        delete removed the row gets the value; the others get None.
        """
        value = await self.get(key)
        if value is None:
            return None

        if not await self.drop(key):
            logger.warning("cache_take_lost", segment=self.segment)
            return None
        return value

    async def purge_expired(self) -> int:
        """Delete this segment's expired rows. Returns the number removed."""
        async with self.db.session_scope() as session:
            return await CacheRepository(session).purge_expired(self.segment)

    def _associated_data(self, key_hash: str) -> str:
        return f"{self.segment}:{key_hash}"
