"""Content-addressed, claim-based memoisation of generated artifacts.

Flow for ``get_or_generate``:
1. Try to claim ``(user, artifact_type, sha256(input))`` by inserting a
   ``pending`` row (insert-if-absent) and commit the claim.
2. The claimant runs the generator, stores the artifact as ``ready``.
   On failure the claim is deleted so a later request can retry.
3. Everyone else reads the row: ``ready`` is returned from cache,
   ``pending`` is polled until ready, a vanished claim is re-claimed and a
   stale claim is taken over with a compare-and-swap on ``claimed_at``.
"""

from __future__ import annotations

import asyncio
import hashlib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pathquest.config import get_settings
from pathquest.db.base import dialect_insert
from pathquest.db.models import GenerationCacheEntry
from pathquest.errors import GenerationFailed, QuotaExceeded

logger = structlog.get_logger()

Generator = Callable[[], Awaitable[dict[str, Any]]]
OnGenerated = Callable[[dict[str, Any]], Awaitable[None]]


class EntryStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"


@dataclass
class CachedArtifact:
    artifact: dict[str, Any]
    from_cache: bool
    entry_id: int


def normalize_text(text: str) -> str:
    """Collapse runs of whitespace and strip the ends."""
    return " ".join(text.split())


def content_hash(text: str) -> str:
    return hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back naive
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class GenerationCache:
    """Memoises one artifact per ``(user_id, artifact_type, content_hash)``.

    Commits the session: the claim must be visible to concurrent requests
    before the generator runs.
    """

    def __init__(
        self,
        db: AsyncSession,
        poll_interval: float | None = None,
        stale_after: float | None = None,
    ) -> None:
        settings = get_settings()
        self.db = db
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.generation_poll_interval_seconds
        )
        self.stale_after = timedelta(
            seconds=stale_after if stale_after is not None else settings.generation_stale_after_seconds
        )

    async def get_or_generate(
        self,
        user_id: int,
        artifact_type: str,
        normalized_input: str,
        generator: Generator,
        timeout: float | None = None,
        source_ref: str | None = None,
        on_generated: OnGenerated | None = None,
    ) -> CachedArtifact:
        """Return the cached artifact or generate it exactly once.

        ``on_generated`` runs inside the transaction that marks the entry
        ready, so artifact-derived rows commit atomically with it.
        """
        if timeout is None:
            timeout = get_settings().generation_timeout_seconds
        key = content_hash(normalized_input)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            entry_id = await self._claim(user_id, artifact_type, key, source_ref)
            if entry_id is not None:
                logger.info("generation_claimed", user_id=user_id, artifact_type=artifact_type, entry_id=entry_id)
                return await self._run_claim(entry_id, generator, timeout, on_generated)

            entry = await self._read(user_id, artifact_type, key)
            if entry is None:
                # Claimant failed and released the row; try to claim again
                await self.db.commit()
                continue

            if entry.status == EntryStatus.READY.value:
                await self.db.commit()
                logger.info("generation_cache_hit", user_id=user_id, artifact_type=artifact_type, entry_id=entry.id)
                return CachedArtifact(artifact=entry.artifact or {}, from_cache=True, entry_id=entry.id)

            if self._is_stale(entry) and await self._take_over(entry):
                logger.warning("generation_claim_taken_over", user_id=user_id, entry_id=entry.id)
                return await self._run_claim(entry.id, generator, timeout, on_generated)

            await self.db.commit()
            if loop.time() >= deadline:
                raise GenerationFailed("generation still in progress")
            await asyncio.sleep(self.poll_interval)

    # ------------------------------------------------------------------

    async def _claim(
        self, user_id: int, artifact_type: str, key: str, source_ref: str | None,
    ) -> int | None:
        now = datetime.now(timezone.utc)
        stmt = (
            dialect_insert(self.db, GenerationCacheEntry)
            .values(
                user_id=user_id,
                artifact_type=artifact_type,
                content_hash=key,
                status=EntryStatus.PENDING.value,
                source_ref=source_ref,
                claimed_at=now,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["user_id", "artifact_type", "content_hash"])
            .returning(GenerationCacheEntry.id)
        )
        entry_id = (await self.db.execute(stmt)).scalar_one_or_none()
        await self.db.commit()
        return entry_id

    async def _read(self, user_id: int, artifact_type: str, key: str) -> GenerationCacheEntry | None:
        result = await self.db.execute(
            select(GenerationCacheEntry)
            .where(
                GenerationCacheEntry.user_id == user_id,
                GenerationCacheEntry.artifact_type == artifact_type,
                GenerationCacheEntry.content_hash == key,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def _is_stale(self, entry: GenerationCacheEntry) -> bool:
        return datetime.now(timezone.utc) - _as_utc(entry.claimed_at) > self.stale_after

    async def _take_over(self, entry: GenerationCacheEntry) -> bool:
        result = await self.db.execute(
            update(GenerationCacheEntry)
            .where(
                GenerationCacheEntry.id == entry.id,
                GenerationCacheEntry.status == EntryStatus.PENDING.value,
                GenerationCacheEntry.claimed_at == entry.claimed_at,
            )
            .values(claimed_at=datetime.now(timezone.utc))
            .returning(GenerationCacheEntry.id)
            .execution_options(synchronize_session=False)
        )
        taken = result.scalar_one_or_none() is not None
        await self.db.commit()
        return taken

    async def _release(self, entry_id: int) -> None:
        await self.db.rollback()
        await self.db.execute(
            delete(GenerationCacheEntry).where(
                GenerationCacheEntry.id == entry_id,
                GenerationCacheEntry.status == EntryStatus.PENDING.value,
            )
        )
        await self.db.commit()

    async def _run_claim(
        self,
        entry_id: int,
        generator: Generator,
        timeout: float,
        on_generated: OnGenerated | None,
    ) -> CachedArtifact:
        try:
            artifact = await asyncio.wait_for(generator(), timeout=timeout)
        except (QuotaExceeded, GenerationFailed):
            await self._release(entry_id)
            raise
        except asyncio.TimeoutError as exc:
            await self._release(entry_id)
            raise GenerationFailed("Generation timed out") from exc
        except Exception as exc:
            await self._release(entry_id)
            logger.exception("generation_failed", entry_id=entry_id)
            raise GenerationFailed(f"Generation failed: {exc}") from exc

        try:
            await self.db.execute(
                update(GenerationCacheEntry)
                .where(GenerationCacheEntry.id == entry_id)
                .values(
                    status=EntryStatus.READY.value,
                    artifact=artifact,
                    updated_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )
            if on_generated is not None:
                await on_generated(artifact)
            await self.db.commit()
        except Exception:
            await self._release(entry_id)
            raise

        logger.info("generation_stored", entry_id=entry_id)
        return CachedArtifact(artifact=artifact, from_cache=False, entry_id=entry_id)
