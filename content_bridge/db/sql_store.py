"""SQLAlchemy implementations of the job store and the content source."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, select, union
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from content_bridge.db.models import (
    PostModel,
    TranslationErrorModel,
    TranslationJobModel,
    TranslationResultModel,
)
from content_bridge.services.content_source import ContentSource
from content_bridge.services.job_store import JobStore
from content_bridge.services.models import (
    JobStatus,
    SourceItem,
    TranslationItemError,
    TranslationItemResult,
    TranslationJob,
)
from content_bridge.utils.helpers import ensure_utc, utcnow

LOGGER = logging.getLogger(__name__)


def _to_job(row: TranslationJobModel) -> TranslationJob:
    return TranslationJob(
        id=row.id,
        status=JobStatus(row.status),
        source_language=row.source_language,
        target_language=row.target_language,
        total_items=row.total_items,
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


def _to_result(row: TranslationResultModel) -> TranslationItemResult:
    return TranslationItemResult(
        job_id=row.job_id,
        item_id=row.item_id,
        translated_title=row.translated_title,
        translated_body=row.translated_body,
        translated_excerpt=row.translated_excerpt,
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


def _to_error(row: TranslationErrorModel) -> TranslationItemError:
    return TranslationItemError(
        job_id=row.job_id,
        item_id=row.item_id,
        message=row.message,
        code=row.code,
        retry_count=row.retry_count,
        created_at=ensure_utc(row.created_at),
    )


class SqlJobStore(JobStore):
    """Job store over the ``translation_*`` tables; one session per operation."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def create_job(self, job: TranslationJob) -> TranslationJob:
        async with self._sessions() as session:
            row = TranslationJobModel(
                id=job.id,
                status=job.status.value,
                source_language=job.source_language,
                target_language=job.target_language,
                total_items=job.total_items,
                created_at=job.created_at,
                updated_at=job.updated_at,
            )
            session.add(row)
            await session.commit()
            return _to_job(row)

    async def get_job(self, job_id: str) -> Optional[TranslationJob]:
        async with self._sessions() as session:
            row = await session.get(TranslationJobModel, job_id)
            return _to_job(row) if row else None

    async def update_status(self, job_id: str, status: JobStatus) -> Optional[TranslationJob]:
        async with self._sessions() as session:
            row = await session.get(TranslationJobModel, job_id)
            if row is None:
                return None
            row.status = status.value
            row.updated_at = utcnow()
            await session.commit()
            return _to_job(row)

    async def list_jobs(
        self,
        offset: int,
        limit: int,
        status: Optional[JobStatus] = None,
    ) -> Tuple[List[TranslationJob], int]:
        filters = []
        if status is not None:
            filters.append(TranslationJobModel.status == status.value)

        async with self._sessions() as session:
            total = await session.scalar(
                select(func.count()).select_from(TranslationJobModel).where(*filters)
            )
            rows = await session.scalars(
                select(TranslationJobModel)
                .where(*filters)
                .order_by(TranslationJobModel.created_at.desc(), TranslationJobModel.id.desc())
                .offset(offset)
                .limit(limit)
            )
            return [_to_job(row) for row in rows.all()], int(total or 0)

    async def delete_job(self, job_id: str) -> bool:
        async with self._sessions() as session:
            row = await session.get(TranslationJobModel, job_id)
            if row is None:
                return False
            await session.execute(
                delete(TranslationResultModel).where(TranslationResultModel.job_id == job_id)
            )
            await session.execute(
                delete(TranslationErrorModel).where(TranslationErrorModel.job_id == job_id)
            )
            await session.delete(row)
            await session.commit()
        LOGGER.info("Deleted job %s", job_id)
        return True

    async def upsert_result(self, result: TranslationItemResult) -> TranslationItemResult:
        async with self._sessions() as session:
            row = await session.scalar(
                select(TranslationResultModel).where(
                    TranslationResultModel.job_id == result.job_id,
                    TranslationResultModel.item_id == result.item_id,
                )
            )
            now = utcnow()
            if row is None:
                row = TranslationResultModel(
                    job_id=result.job_id,
                    item_id=result.item_id,
                    created_at=now,
                )
                session.add(row)
            row.updated_at = now
            row.translated_title = result.translated_title
            row.translated_body = result.translated_body
            row.translated_excerpt = result.translated_excerpt
            await session.commit()
            return _to_result(row)

    async def add_error(self, error: TranslationItemError) -> TranslationItemError:
        async with self._sessions() as session:
            row = TranslationErrorModel(
                job_id=error.job_id,
                item_id=error.item_id,
                message=error.message,
                code=error.code,
                retry_count=error.retry_count,
                created_at=error.created_at,
            )
            session.add(row)
            await session.commit()
            return _to_error(row)

    async def list_results(self, job_id: str) -> List[TranslationItemResult]:
        async with self._sessions() as session:
            rows = await session.scalars(
                select(TranslationResultModel)
                .where(TranslationResultModel.job_id == job_id)
                .order_by(TranslationResultModel.id)
            )
            return [_to_result(row) for row in rows.all()]

    async def list_errors(self, job_id: str) -> List[TranslationItemError]:
        async with self._sessions() as session:
            rows = await session.scalars(
                select(TranslationErrorModel)
                .where(TranslationErrorModel.job_id == job_id)
                .order_by(TranslationErrorModel.id)
            )
            return [_to_error(row) for row in rows.all()]

    async def count_processed(self, job_id: str) -> int:
        item_ids = union(
            select(TranslationResultModel.item_id).where(TranslationResultModel.job_id == job_id),
            select(TranslationErrorModel.item_id).where(TranslationErrorModel.job_id == job_id),
        ).subquery()
        async with self._sessions() as session:
            count = await session.scalar(select(func.count()).select_from(item_ids))
            return int(count or 0)


class SqlContentSource(ContentSource):
    """Reads source items from the ``posts`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def load_items(self, item_ids: Sequence[str]) -> List[SourceItem]:
        if not item_ids:
            return []
        async with self._sessions() as session:
            rows = await session.scalars(select(PostModel).where(PostModel.id.in_(list(item_ids))))
            by_id = {row.id: row for row in rows.all()}

        return [
            SourceItem(
                id=row.id,
                title=row.title,
                content=row.content,
                excerpt=row.excerpt,
            )
            for row in (by_id.get(item_id) for item_id in item_ids)
            if row is not None
        ]

    async def add_post(self, item: SourceItem) -> None:
        """Insert or replace a post (used by seeding and tests)."""
        async with self._sessions() as session:
            await session.merge(
                PostModel(id=item.id, title=item.title, content=item.content, excerpt=item.excerpt)
            )
            await session.commit()
