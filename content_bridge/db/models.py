"""SQLAlchemy ORM models for posts and translation jobs."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from content_bridge.utils.helpers import utcnow


class Base(DeclarativeBase):
    """Declarative base for every table of the application."""


class TimestampMixin:
    """``created_at`` set on insert, ``updated_at`` refreshed on every update (UTC)."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


class PostModel(Base, TimestampMixin):
    """Source document imported from the origin site."""

    __tablename__ = "posts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    excerpt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class TranslationJobModel(Base, TimestampMixin):
    """One batch translation request."""

    __tablename__ = "translation_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    source_language: Mapped[str] = mapped_column(String(16), nullable=False, default="en")
    target_language: Mapped[str] = mapped_column(String(16), nullable=False)
    total_items: Mapped[int] = mapped_column(Integer, nullable=False)


class TranslationResultModel(Base, TimestampMixin):
    """Translated item; unique per (job, item)."""

    __tablename__ = "translation_results"
    __table_args__ = (UniqueConstraint("job_id", "item_id", name="uq_translation_results_job_item"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("translation_jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    translated_title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    translated_body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    translated_excerpt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class TranslationErrorModel(Base):
    """Failure recorded for one item of a job."""

    __tablename__ = "translation_errors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("translation_jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
