"""Data models for the translation job engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from content_bridge.utils.helpers import utcnow


class JobStatus(str, Enum):
    """Translation job lifecycle state."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.COMPLETED_WITH_ERRORS, JobStatus.FAILED)


@dataclass
class TranslationOptions:
    """Per-request provider options."""

    model: Optional[str] = None
    context: Optional[str] = None
    preserve_formatting: bool = True
    max_output_tokens: Optional[int] = None
    concurrency: Optional[int] = None


@dataclass
class TranslatedResult:
    """Provider answer for one text unit."""

    translated_text: str
    source_language: str
    target_language: str
    model: str
    usage: Optional[Dict[str, int]] = None
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class SourceItem:
    """A translatable document loaded from the content store."""

    id: str
    title: str
    content: str
    excerpt: Optional[str] = None


@dataclass
class TranslationJob:
    """Persisted job metadata."""

    id: str
    status: JobStatus
    source_language: str
    target_language: str
    total_items: int
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class TranslationItemResult:
    """Translated title/body/excerpt of one item within one job."""

    job_id: str
    item_id: str
    translated_title: str
    translated_body: str
    translated_excerpt: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class TranslationItemError:
    """A recorded failure for one item within one job."""

    job_id: str
    item_id: str
    message: str
    code: Optional[str] = None
    retry_count: int = 0
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class ProgressSnapshot:
    """Point-in-time completion view of a job (derived, never stored)."""

    processed_count: int
    total_items: int
    progress_percent: int
    estimated_completion: Optional[datetime] = None


@dataclass
class JobSubmission:
    """Response to a job creation request."""

    job_id: str
    status: JobStatus
    total_items: int
    estimated_duration: int


@dataclass
class JobStatusView:
    """Job metadata, progress snapshot and accumulated errors."""

    job: TranslationJob
    snapshot: ProgressSnapshot
    errors: List[TranslationItemError] = field(default_factory=list)


@dataclass
class JobPage:
    """One page of the job listing."""

    jobs: List[TranslationJob]
    page: int
    limit: int
    total: int

    @property
    def has_next(self) -> bool:
        return (self.page - 1) * self.limit + self.limit < self.total


@dataclass
class BatchItem:
    """One text unit handed to the batch dispatcher."""

    id: str
    text: str


@dataclass
class BatchItemResult:
    id: str
    original_text: str
    result: TranslatedResult


@dataclass
class BatchItemError:
    id: str
    original_text: str
    message: str
    code: Optional[str] = None


@dataclass
class BatchResult:
    """Aggregated outcome of a dispatched batch."""

    results: List[BatchItemResult] = field(default_factory=list)
    errors: List[BatchItemError] = field(default_factory=list)

    @property
    def summary(self) -> Dict[str, Any]:
        return {
            "total": len(self.results) + len(self.errors),
            "successful": len(self.results),
            "failed": len(self.errors),
        }
