"""Job Store contract and an in-process implementation."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from content_bridge.services.models import (
    JobStatus,
    TranslationItemError,
    TranslationItemResult,
    TranslationJob,
)
from content_bridge.utils.helpers import utcnow

LOGGER = logging.getLogger(__name__)


class JobStore(ABC):
    """Durable record of jobs, item results and item errors.

    Implementations serialise writes per job; the job controller is the only
    writer.
    """

    @abstractmethod
    async def create_job(self, job: TranslationJob) -> TranslationJob:
        """Persist a new job."""

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[TranslationJob]:
        """Return the job or ``None``."""

    @abstractmethod
    async def update_status(self, job_id: str, status: JobStatus) -> Optional[TranslationJob]:
        """Set the job status and bump ``updated_at``."""

    @abstractmethod
    async def list_jobs(
        self,
        offset: int,
        limit: int,
        status: Optional[JobStatus] = None,
    ) -> Tuple[List[TranslationJob], int]:
        """Return one page (newest first) and the total matching count."""

    @abstractmethod
    async def delete_job(self, job_id: str) -> bool:
        """Delete a job together with its results and errors."""

    @abstractmethod
    async def upsert_result(self, result: TranslationItemResult) -> TranslationItemResult:
        """Insert or replace the result of (job, item)."""

    @abstractmethod
    async def add_error(self, error: TranslationItemError) -> TranslationItemError:
        """Append an item error."""

    @abstractmethod
    async def list_results(self, job_id: str) -> List[TranslationItemResult]:
        """Return every result of the job."""

    @abstractmethod
    async def list_errors(self, job_id: str) -> List[TranslationItemError]:
        """Return every error of the job, oldest first."""

    @abstractmethod
    async def count_processed(self, job_id: str) -> int:
        """Number of distinct items of the job having a result or an error."""


class InMemoryJobStore(JobStore):
    """Dictionary-backed store for development and tests."""

    def __init__(self) -> None:
        self._jobs: Dict[str, TranslationJob] = {}
        self._results: Dict[str, Dict[str, TranslationItemResult]] = {}
        self._errors: Dict[str, List[TranslationItemError]] = {}

    async def create_job(self, job: TranslationJob) -> TranslationJob:
        self._jobs[job.id] = replace(job)
        self._results[job.id] = {}
        self._errors[job.id] = []
        return replace(job)

    async def get_job(self, job_id: str) -> Optional[TranslationJob]:
        job = self._jobs.get(job_id)
        return replace(job) if job else None

    async def update_status(self, job_id: str, status: JobStatus) -> Optional[TranslationJob]:
        job = self._jobs.get(job_id)
        if job is None:
            return None
        job.status = status
        job.updated_at = utcnow()
        return replace(job)

    async def list_jobs(
        self,
        offset: int,
        limit: int,
        status: Optional[JobStatus] = None,
    ) -> Tuple[List[TranslationJob], int]:
        jobs = [j for j in self._jobs.values() if status is None or j.status == status]
        jobs.sort(key=lambda j: (j.created_at, j.id), reverse=True)
        return [replace(j) for j in jobs[offset : offset + limit]], len(jobs)

    async def delete_job(self, job_id: str) -> bool:
        if self._jobs.pop(job_id, None) is None:
            return False
        self._results.pop(job_id, None)
        self._errors.pop(job_id, None)
        LOGGER.info("Deleted job %s", job_id)
        return True

    async def upsert_result(self, result: TranslationItemResult) -> TranslationItemResult:
        results = self._results.setdefault(result.job_id, {})
        existing = results.get(result.item_id)
        if existing is not None:
            result = replace(result, created_at=existing.created_at, updated_at=utcnow())
        results[result.item_id] = result
        return replace(result)

    async def add_error(self, error: TranslationItemError) -> TranslationItemError:
        self._errors.setdefault(error.job_id, []).append(error)
        return replace(error)

    async def list_results(self, job_id: str) -> List[TranslationItemResult]:
        return [replace(r) for r in self._results.get(job_id, {}).values()]

    async def list_errors(self, job_id: str) -> List[TranslationItemError]:
        return [replace(e) for e in self._errors.get(job_id, [])]

    async def count_processed(self, job_id: str) -> int:
        item_ids = set(self._results.get(job_id, {}))
        item_ids.update(e.item_id for e in self._errors.get(job_id, []))
        return len(item_ids)
