"""Service layer for translation jobs."""

from content_bridge.services.models import (
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
from content_bridge.services.batch_dispatcher import BatchDispatcher
from content_bridge.services.content_source import ContentSource, InMemoryContentSource
from content_bridge.services.job_store import InMemoryJobStore, JobStore
from content_bridge.services.notifier import ProgressNotifier
from content_bridge.services.job_controller import JobController

__all__ = [
    "JobPage",
    "JobStatus",
    "JobStatusView",
    "JobSubmission",
    "ProgressSnapshot",
    "SourceItem",
    "TranslatedResult",
    "TranslationItemError",
    "TranslationItemResult",
    "TranslationJob",
    "TranslationOptions",
    "BatchDispatcher",
    "ContentSource",
    "InMemoryContentSource",
    "InMemoryJobStore",
    "JobStore",
    "ProgressNotifier",
    "JobController",
]
