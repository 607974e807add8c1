"""Job controller: creates translation jobs and runs them in the background."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import Counter
from collections.abc import Sequence as SequenceABC
from dataclasses import dataclass, field
from functools import partial
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Set

from content_bridge.exceptions import ContentBridgeError, NotFoundError, ValidationError
from content_bridge.services.batch_dispatcher import BatchDispatcher
from content_bridge.services.content_source import ContentSource
from content_bridge.services.job_store import JobStore
from content_bridge.services.models import (
    BatchItem,
    BatchItemError,
    BatchItemResult,
    JobPage,
    JobStatus,
    JobStatusView,
    JobSubmission,
    ProgressSnapshot,
    SourceItem,
    TranslatedResult,
    TranslationItemError,
    TranslationItemResult,
    TranslationJob,
    TranslationOptions,
)
from content_bridge.services.notifier import (
    ProgressNotifier,
    error_occurred_event,
    item_completed_event,
    job_completed_event,
    job_started_event,
    translation_progress_event,
)
from content_bridge.utils.config import Settings, get_settings
from content_bridge.utils.helpers import (
    combine_item_text,
    ensure_utc,
    progress_percent,
    split_title_body,
    utcnow,
)

if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from content_bridge.chains.translation_chain import TranslationClient

LOGGER = logging.getLogger(__name__)


def _can_transition(current: JobStatus, target: JobStatus) -> bool:
    """Terminal states are final; a queued job may only start or fail."""
    if current.is_terminal:
        return False
    if current == JobStatus.QUEUED:
        return target in (JobStatus.PROCESSING, JobStatus.FAILED)
    return target.is_terminal


@dataclass
class _JobRun:
    """Bookkeeping for one execution of a job."""

    job_id: str
    total_items: int
    source_lang: str
    target_lang: str
    options: TranslationOptions
    succeeded: Set[str] = field(default_factory=set)
    failed: Set[str] = field(default_factory=set)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def summary(self) -> Dict[str, Any]:
        return {
            "total": self.total_items,
            "successful": len(self.succeeded),
            "failed": len(self.failed),
        }


class JobController:
    """Creates translation jobs, executes them off the request path and reports progress.

    The controller is the only writer of job state. Each job runs in its own
    ``asyncio.Task``; the task handle is kept until it finishes so the
    application can cancel in-flight work on shutdown.
    """

    def __init__(
        self,
        store: JobStore,
        source: ContentSource,
        client: "TranslationClient",
        notifier: ProgressNotifier,
        dispatcher: Optional[BatchDispatcher] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._store = store
        self._source = source
        self._client = client
        self._notifier = notifier
        self._dispatcher = dispatcher or BatchDispatcher(client)
        self._settings = settings or get_settings()
        self._tasks: Dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Request-path operations
    # ------------------------------------------------------------------

    @staticmethod
    def _normalize_item_ids(item_ids: Any) -> List[str]:
        if item_ids is None or isinstance(item_ids, (str, bytes)) or not isinstance(item_ids, SequenceABC):
            raise ValidationError("itemIds array is required")
        if len(item_ids) == 0:
            raise ValidationError("itemIds array is required")

        normalized: List[str] = []
        for raw in item_ids:
            if isinstance(raw, bool) or not isinstance(raw, (str, int)):
                raise ValidationError("Invalid item id", details={"itemId": repr(raw)})
            value = str(raw).strip()
            if not value:
                raise ValidationError("Item ids must not be empty")
            normalized.append(value)

        duplicates = sorted(v for v, count in Counter(normalized).items() if count > 1)
        if duplicates:
            raise ValidationError("Duplicate item ids", details={"itemIds": duplicates})
        return normalized

    async def create_job(
        self,
        item_ids: Sequence[Any],
        source_lang: str = "en",
        target_lang: str = "ms",
        options: Optional[TranslationOptions] = None,
    ) -> JobSubmission:
        """Validate the request, persist a queued job and schedule its execution.

        Returns without waiting for any translation work.

        Raises:
            ValidationError: Missing, empty or malformed item ids or languages,
                or options the provider client rejects.
            ConfigurationError: The provider has no credentials.
        """

        ids = self._normalize_item_ids(item_ids)
        if not source_lang or not target_lang:
            raise ValidationError("sourceLanguage and targetLanguage are required")
        options = options or TranslationOptions()
        if options.concurrency is not None and options.concurrency < 1:
            raise ValidationError("options.concurrency must be >= 1")

        self._client.ensure_configured()
        self._client.validate_options(options)

        job = TranslationJob(
            id=str(uuid.uuid4()),
            status=JobStatus.QUEUED,
            source_language=source_lang,
            target_language=target_lang,
            total_items=len(ids),
        )
        await self._store.create_job(job)
        self._schedule(job, ids, options)

        LOGGER.info(
            "Created translation job %s: %d items, %s -> %s",
            job.id,
            job.total_items,
            source_lang,
            target_lang,
        )

        return JobSubmission(
            job_id=job.id,
            status=JobStatus.QUEUED,
            total_items=job.total_items,
            estimated_duration=self._settings.estimated_seconds_per_item * job.total_items,
        )

    async def get_job_status(self, job_id: str) -> JobStatusView:
        """Return status, progress snapshot and recorded errors of a job."""

        job = await self._store.get_job(job_id)
        if job is None:
            raise NotFoundError("Translation job")

        processed = await self._store.count_processed(job_id)
        errors = await self._store.list_errors(job_id)

        estimated_completion = None
        if job.status == JobStatus.PROCESSING and processed > 0:
            now = utcnow()
            average = (now - ensure_utc(job.created_at)) / processed
            remaining = max(job.total_items - processed, 0)
            estimated_completion = now + average * remaining

        snapshot = ProgressSnapshot(
            processed_count=processed,
            total_items=job.total_items,
            progress_percent=progress_percent(processed, job.total_items),
            estimated_completion=estimated_completion,
        )
        return JobStatusView(job=job, snapshot=snapshot, errors=errors)

    async def list_jobs(
        self,
        page: int = 1,
        limit: int = 20,
        status: Optional[str] = None,
    ) -> JobPage:
        """Return one page of jobs, newest first, optionally filtered by status."""

        if page < 1:
            raise ValidationError("page must be >= 1")
        if limit < 1:
            raise ValidationError("limit must be >= 1")

        status_filter: Optional[JobStatus] = None
        if status:
            try:
                status_filter = JobStatus(status)
            except ValueError:
                raise ValidationError(
                    f"Invalid status: {status}",
                    details={"allowed": [s.value for s in JobStatus]},
                ) from None

        jobs, total = await self._store.list_jobs((page - 1) * limit, limit, status_filter)
        return JobPage(jobs=jobs, page=page, limit=limit, total=total)

    async def translate_single(
        self,
        target_lang: str,
        source_lang: str = "en",
        text: Optional[str] = None,
        item_id: Optional[str] = None,
        options: Optional[TranslationOptions] = None,
    ) -> TranslatedResult:
        """Translate a raw text, or one stored item, on the request path."""

        if not text and not item_id:
            raise ValidationError("Either text or itemId is required")

        self._client.ensure_configured()
        self._client.validate_options(options)

        if not text:
            item = await self._source.get_item(str(item_id))
            if item is None:
                raise NotFoundError("Item")
            text = combine_item_text(item.title, item.content)

        return await self._client.translate(text, target_lang, source_lang, options)

    # ------------------------------------------------------------------
    # Task handling
    # ------------------------------------------------------------------

    @property
    def running_count(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    def get_task(self, job_id: str) -> Optional[asyncio.Task]:
        """Return the execution task of a job while it is tracked."""
        return self._tasks.get(job_id)

    def _schedule(
        self, job: TranslationJob, item_ids: List[str], options: TranslationOptions
    ) -> asyncio.Task:
        existing = self._tasks.get(job.id)
        if existing is not None and not existing.done():
            LOGGER.warning("Job %s is already running; not scheduling it again", job.id)
            return existing

        task = asyncio.create_task(
            self._execute(job, item_ids, options),
            name=f"translation-job-{job.id}",
        )
        self._tasks[job.id] = task
        task.add_done_callback(partial(self._forget_task, job.id))
        return task

    def _forget_task(self, job_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]

    async def shutdown(self) -> None:
        """Cancel every in-flight job and wait for the tasks to finish."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            LOGGER.info("Cancelling %d running translation jobs", len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Background execution
    # ------------------------------------------------------------------

    async def _transition(self, job_id: str, status: JobStatus) -> Optional[TranslationJob]:
        job = await self._store.get_job(job_id)
        if job is None:
            raise NotFoundError("Translation job")

        if not _can_transition(job.status, status):
            LOGGER.info(
                "Job %s is %s, ignoring transition to %s",
                job_id,
                job.status.value,
                status.value,
            )
            return None

        return await self._store.update_status(job_id, status)

    async def _execute(
        self, job: TranslationJob, item_ids: List[str], options: TranslationOptions
    ) -> None:
        """Run a job to a terminal state. Never raises except on cancellation."""

        run = _JobRun(
            job_id=job.id,
            total_items=job.total_items,
            source_lang=job.source_language,
            target_lang=job.target_language,
            options=options,
        )

        try:
            await self._transition(job.id, JobStatus.PROCESSING)
            self._notifier.publish(job.id, job_started_event(job.id, job.total_items))

            items = await self._source.load_items(item_ids)
            if not items:
                LOGGER.warning("No source items found for job %s", job.id)
                await self._finish(run, JobStatus.FAILED)
                return

            found = {item.id for item in items}
            for item_id in item_ids:
                if item_id not in found:
                    await self._record_error(run, item_id, "Item not found", "ITEM_NOT_FOUND")

            items_by_id = {item.id: item for item in items}
            batch_items = [
                BatchItem(id=item.id, text=combine_item_text(item.title, item.content))
                for item in items
            ]

            await self._dispatcher.run_batch(
                batch_items,
                run.target_lang,
                run.source_lang,
                options,
                concurrency_limit=options.concurrency or self._settings.max_concurrency,
                inter_chunk_delay=self._settings.chunk_delay_seconds,
                on_chunk=partial(self._store_chunk, run, items_by_id),
            )

            final_status = JobStatus.COMPLETED if not run.failed else JobStatus.COMPLETED_WITH_ERRORS
            await self._finish(run, final_status)

        except asyncio.CancelledError:
            LOGGER.info("Translation job %s was cancelled", job.id)
            await self._mark_failed(run)
            raise
        except Exception as exc:
            LOGGER.exception("Translation job %s failed: %s", job.id, exc)
            await self._mark_failed(run)

    async def _store_chunk(
        self,
        run: _JobRun,
        items_by_id: Dict[str, SourceItem],
        results: List[BatchItemResult],
        errors: List[BatchItemError],
    ) -> None:
        """Persist one settled chunk and publish the matching events."""

        for outcome in results:
            item = items_by_id[outcome.id]
            title, body = split_title_body(outcome.result.translated_text)

            excerpt: Optional[str] = None
            if item.excerpt:
                try:
                    excerpt_result = await self._client.translate(
                        item.excerpt, run.target_lang, run.source_lang, run.options
                    )
                except ContentBridgeError as exc:
                    await self._record_error(
                        run,
                        item.id,
                        f"Excerpt translation failed: {exc}",
                        exc.code,
                        retry_count=self._settings.max_retries - 1,
                    )
                    continue
                excerpt = excerpt_result.translated_text

            await self._store.upsert_result(
                TranslationItemResult(
                    job_id=run.job_id,
                    item_id=item.id,
                    translated_title=title,
                    translated_body=body,
                    translated_excerpt=excerpt,
                )
            )
            run.succeeded.add(item.id)
            await self._publish_item(run, item.id, "completed")

        for failure in errors:
            await self._record_error(
                run,
                failure.id,
                failure.message,
                failure.code,
                retry_count=self._settings.max_retries - 1,
            )

    async def _record_error(
        self,
        run: _JobRun,
        item_id: str,
        message: str,
        code: Optional[str] = None,
        retry_count: int = 0,
    ) -> None:
        await self._store.add_error(
            TranslationItemError(
                job_id=run.job_id,
                item_id=item_id,
                message=message,
                code=code,
                retry_count=retry_count,
            )
        )
        run.failed.add(item_id)
        run.errors.append({"itemId": item_id, "message": message})
        self._notifier.publish(run.job_id, error_occurred_event(run.job_id, item_id, message, code))
        await self._publish_item(run, item_id, "failed")

    async def _publish_item(self, run: _JobRun, item_id: str, status: str) -> None:
        processed = await self._store.count_processed(run.job_id)
        progress = progress_percent(processed, run.total_items)
        self._notifier.publish(run.job_id, item_completed_event(run.job_id, item_id, status, progress))
        self._notifier.publish(
            run.job_id,
            translation_progress_event(
                run.job_id,
                progress,
                processed,
                run.total_items,
                list(run.errors),
            ),
        )

    async def _finish(self, run: _JobRun, status: JobStatus) -> None:
        job = await self._transition(run.job_id, status)
        if job is None:
            # Report what was persisted, never the refused status.
            job = await self._store.get_job(run.job_id)
            if job is None or not job.status.is_terminal:
                return
        summary = dict(run.summary, status=job.status.value)
        self._notifier.publish(run.job_id, job_completed_event(run.job_id, summary))
        LOGGER.info(
            "Translation job %s finished: status=%s, successful=%d, failed=%d, total=%d",
            run.job_id,
            job.status.value,
            summary["successful"],
            summary["failed"],
            summary["total"],
        )

    async def _mark_failed(self, run: _JobRun) -> None:
        try:
            await self._finish(run, JobStatus.FAILED)
        except Exception as exc:
            LOGGER.exception("Could not mark job %s as failed: %s", run.job_id, exc)
