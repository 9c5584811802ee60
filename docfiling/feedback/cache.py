"""
Content-addressed cache of classification results.

At most one valid entry exists per content hash. That is kept true by
store() patching the existing row instead of inserting a second one, and
by invalidation on correction. Rows are never deleted.
"""

import uuid
from datetime import datetime
from typing import Callable, Optional

import structlog

from docfiling.clock import as_utc, utcnow
from docfiling.observability.metrics import cache_invalidations_total, cache_lookups_total
from docfiling.repositories.base import CacheRepository
from docfiling.schemas.classification import Classification
from docfiling.schemas.feedback import CacheCheckResult, CacheEntryRecord

logger = structlog.get_logger(__name__)


class ClassificationCache:
    def __init__(self, repo: CacheRepository, clock: Callable[[], datetime] = utcnow):
        self.repo = repo
        self.clock = clock

    async def check(self, content_hash: str) -> CacheCheckResult:
        """Most recent valid entry for the hash, if any."""
        for entry in await self.repo.list_for_hash(content_hash):
            if entry.is_valid:
                cache_lookups_total.labels(outcome="hit").inc()
                logger.debug("cache_hit", content_hash=content_hash, cache_id=entry.id)
                return CacheCheckResult(
                    hit=True,
                    classification=entry.classification,
                    hit_count=entry.hit_count,
                    cache_id=entry.id,
                )

        cache_lookups_total.labels(outcome="miss").inc()
        return CacheCheckResult(hit=False)

    async def record_hit(self, cache_id: str) -> bool:
        """
        Bump hit_count and last_hit_at. Best-effort: failures are logged and
        reported as False, never raised into the classification flow.
        """
        try:
            entry = await self.repo.get(cache_id)
            if entry is None:
                logger.warning("cache_hit_unknown_entry", cache_id=cache_id)
                return False
            await self.repo.update(
                cache_id,
                hit_count=entry.hit_count + 1,
                last_hit_at=self.clock(),
            )
        except Exception as e:
            logger.warning("cache_hit_record_failed", cache_id=cache_id, error=str(e))
            return False
        return True

    async def store(
        self,
        content_hash: str,
        file_name_pattern: str,
        classification: Classification,
        client_type: Optional[str] = None,
    ) -> str:
        """
        Merge-on-store: an existing row for the hash is overwritten and made
        valid again; otherwise a fresh row is inserted. Returns the entry id.
        """
        now = self.clock()
        existing = await self.repo.list_for_hash(content_hash)

        if existing:
            entry = existing[0]
            await self.repo.update(
                entry.id,
                classification=classification,
                is_valid=True,
                invalidated_at=None,
                last_hit_at=now,
            )
            logger.info("cache_entry_refreshed", content_hash=content_hash, cache_id=entry.id)
            return entry.id

        entry = CacheEntryRecord(
            id=str(uuid.uuid4()),
            content_hash=content_hash,
            file_name_pattern=file_name_pattern,
            classification=classification,
            hit_count=0,
            last_hit_at=now,
            created_at=now,
            correction_count=0,
            is_valid=True,
            client_type=client_type,
        )
        await self.repo.insert(entry)
        logger.info("cache_entry_stored", content_hash=content_hash, cache_id=entry.id)
        return entry.id

    async def invalidate_by_hash(self, content_hash: str) -> int:
        """
        Mark every entry for the hash invalid and count the correction
        against it. Valid and already-invalid rows are both touched.
        """
        now = self.clock()
        entries = await self.repo.list_for_hash(content_hash)
        for entry in entries:
            await self.repo.update(
                entry.id,
                is_valid=False,
                invalidated_at=now,
                correction_count=entry.correction_count + 1,
            )

        if entries:
            cache_invalidations_total.labels(reason="correction").inc(len(entries))
            logger.info("cache_invalidated", content_hash=content_hash, count=len(entries))
        return len(entries)

    async def invalidate_by_pattern(
        self,
        pattern: Optional[str] = None,
        client_type: Optional[str] = None,
        older_than: Optional[datetime] = None,
    ) -> int:
        """
        Maintenance sweep. Within client_type (if given), invalidate entries
        whose file_name_pattern contains pattern or whose last hit predates
        older_than. Does not touch correction_count.
        """
        older_than = as_utc(older_than)
        now = self.clock()
        count = 0
        for entry in await self.repo.list_all(client_type=client_type):
            matches_pattern = bool(pattern) and pattern in entry.file_name_pattern
            is_stale = older_than is not None and entry.last_hit_at < older_than
            if not (matches_pattern or is_stale):
                continue
            await self.repo.update(entry.id, is_valid=False, invalidated_at=now)
            count += 1

        if count:
            cache_invalidations_total.labels(reason="sweep").inc(count)
        logger.info(
            "cache_pattern_sweep",
            pattern=pattern,
            client_type=client_type,
            older_than=older_than.isoformat() if older_than else None,
            invalidated=count,
        )
        return count
