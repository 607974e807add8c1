"""Relational persistence adapters."""

from content_bridge.db.connection import create_engine_and_sessions, init_models
from content_bridge.db.models import (
    Base,
    PostModel,
    TranslationErrorModel,
    TranslationJobModel,
    TranslationResultModel,
)
from content_bridge.db.sql_store import SqlContentSource, SqlJobStore

__all__ = [
    "create_engine_and_sessions",
    "init_models",
    "Base",
    "PostModel",
    "TranslationErrorModel",
    "TranslationJobModel",
    "TranslationResultModel",
    "SqlContentSource",
    "SqlJobStore",
]
