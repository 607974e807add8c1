"""FastAPI server for the content translation API."""

from __future__ import annotations

import json
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from content_bridge.chains.llm_factory import get_models_for_provider
from content_bridge.chains.translation_chain import TranslationClient
from content_bridge.db import SqlContentSource, SqlJobStore, create_engine_and_sessions, init_models
from content_bridge.exceptions import ContentBridgeError
from content_bridge.services import (
    JobController,
    JobStatusView,
    ProgressNotifier,
    TranslationJob,
    TranslationOptions,
)
from content_bridge.services.notifier import build_event
from content_bridge.utils.config import get_settings
from content_bridge.utils.helpers import LANGUAGE_NAMES, isoformat

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(), format="[%(levelname)s] %(name)s: %(message)s"
)
LOGGER = logging.getLogger(__name__)


# ============================================================================
# Pydantic Models for API requests and responses
# ============================================================================


class TranslationOptionsPayload(BaseModel):
    """Provider options accepted from clients."""

    model: Optional[str] = None
    context: Optional[str] = None
    preserveFormatting: bool = True
    maxTokens: Optional[int] = Field(None, ge=1)
    concurrency: Optional[int] = Field(None, ge=1, le=20)

    def to_options(self) -> TranslationOptions:
        return TranslationOptions(
            model=self.model,
            context=self.context,
            preserve_formatting=self.preserveFormatting,
            max_output_tokens=self.maxTokens,
            concurrency=self.concurrency,
        )


class BatchTranslationRequest(BaseModel):
    """Batch translation request; item ids are validated by the controller."""

    itemIds: Any = None
    sourceLanguage: str = "en"
    targetLanguage: str = "ms"
    options: TranslationOptionsPayload = Field(default_factory=TranslationOptionsPayload)


class SingleTranslationRequest(BaseModel):
    """One-off translation of a raw text or of one stored item."""

    text: Optional[str] = None
    itemId: Optional[str] = None
    sourceLanguage: str = "en"
    targetLanguage: str = "ms"
    options: TranslationOptionsPayload = Field(default_factory=TranslationOptionsPayload)


class JobCreateResponse(BaseModel):
    """Job creation response."""

    jobId: str
    status: str
    totalItems: int
    estimatedDuration: int


class ItemErrorInfo(BaseModel):
    itemId: str
    message: str


class JobStatusResponse(BaseModel):
    """Job status response."""

    jobId: str
    status: str
    progress: int
    processedItems: int
    totalItems: int
    errors: List[ItemErrorInfo]
    estimatedCompletion: Optional[str]
    createdAt: str
    updatedAt: str


class JobInfo(BaseModel):
    id: str
    status: str
    sourceLanguage: str
    targetLanguage: str
    totalItems: int
    createdAt: str
    updatedAt: str


class PaginationInfo(BaseModel):
    page: int
    limit: int
    total: int
    hasNext: bool


class JobListResponse(BaseModel):
    """Paginated job listing."""

    jobs: List[JobInfo]
    pagination: PaginationInfo


class SingleTranslationResponse(BaseModel):
    success: bool
    translation: str
    sourceLanguage: str
    targetLanguage: str
    model: str
    usage: Optional[Dict[str, Any]] = None


class LanguageInfo(BaseModel):
    code: str
    name: str


class LanguagesResponse(BaseModel):
    languages: List[LanguageInfo]


class ModelsResponse(BaseModel):
    provider: str
    default_model: str
    models: List[str]


class JobsHealthInfo(BaseModel):
    running: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str
    provider: str
    provider_configured: bool
    jobs: JobsHealthInfo
    observers: int


def _job_info(job: TranslationJob) -> JobInfo:
    return JobInfo(
        id=job.id,
        status=job.status.value,
        sourceLanguage=job.source_language,
        targetLanguage=job.target_language,
        totalItems=job.total_items,
        createdAt=isoformat(job.created_at),
        updatedAt=isoformat(job.updated_at),
    )


def _status_response(view: JobStatusView) -> JobStatusResponse:
    job = view.job
    return JobStatusResponse(
        jobId=job.id,
        status=job.status.value,
        progress=view.snapshot.progress_percent,
        processedItems=view.snapshot.processed_count,
        totalItems=job.total_items,
        errors=[ItemErrorInfo(itemId=e.item_id, message=e.message) for e in view.errors],
        estimatedCompletion=isoformat(view.snapshot.estimated_completion),
        createdAt=isoformat(job.created_at),
        updatedAt=isoformat(job.updated_at),
    )


# ============================================================================
# Dependencies
# ============================================================================


def get_controller(request: Request) -> JobController:
    return request.app.state.controller


def get_notifier(request: Request) -> ProgressNotifier:
    return request.app.state.notifier


router = APIRouter()


# ============================================================================
# Health & Config Endpoints
# ============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check(
    controller: JobController = Depends(get_controller),
    notifier: ProgressNotifier = Depends(get_notifier),
) -> HealthResponse:
    """Health check endpoint."""
    settings = get_settings()
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now().isoformat(),
        provider=settings.translation_provider,
        provider_configured=settings.provider_configured,
        jobs=JobsHealthInfo(running=controller.running_count),
        observers=notifier.connection_count,
    )


@router.get("/api/translation/languages", response_model=LanguagesResponse)
async def get_languages() -> LanguagesResponse:
    """Get languages with a known display name."""
    return LanguagesResponse(
        languages=[LanguageInfo(code=code, name=name) for code, name in LANGUAGE_NAMES.items()]
    )


@router.get("/api/translation/models", response_model=ModelsResponse)
async def get_models() -> ModelsResponse:
    """Get models available for the configured provider."""
    settings = get_settings()
    return ModelsResponse(
        provider=settings.translation_provider,
        default_model=settings.default_model,
        models=get_models_for_provider(settings.translation_provider),
    )


# ============================================================================
# Translation Job Endpoints
# ============================================================================


@router.post("/api/translation/batch", response_model=JobCreateResponse, status_code=202)
async def create_batch_job(
    payload: BatchTranslationRequest,
    controller: JobController = Depends(get_controller),
) -> JobCreateResponse:
    """Start a background batch translation job."""
    submission = await controller.create_job(
        payload.itemIds,
        source_lang=payload.sourceLanguage,
        target_lang=payload.targetLanguage,
        options=payload.options.to_options(),
    )
    return JobCreateResponse(
        jobId=submission.job_id,
        status=submission.status.value,
        totalItems=submission.total_items,
        estimatedDuration=submission.estimated_duration,
    )


@router.get("/api/translation/status/{job_id}", response_model=JobStatusResponse)
async def get_job_status(
    job_id: str,
    controller: JobController = Depends(get_controller),
) -> JobStatusResponse:
    """Get job status and progress."""
    view = await controller.get_job_status(job_id)
    return _status_response(view)


@router.get("/api/translation/jobs", response_model=JobListResponse)
async def list_jobs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None, description="Filter by job status"),
    controller: JobController = Depends(get_controller),
) -> JobListResponse:
    """List translation jobs, newest first."""
    result = await controller.list_jobs(page=page, limit=limit, status=status)
    return JobListResponse(
        jobs=[_job_info(job) for job in result.jobs],
        pagination=PaginationInfo(
            page=result.page,
            limit=result.limit,
            total=result.total,
            hasNext=result.has_next,
        ),
    )


@router.post("/api/translation/single", response_model=SingleTranslationResponse)
async def translate_single(
    payload: SingleTranslationRequest,
    controller: JobController = Depends(get_controller),
) -> SingleTranslationResponse:
    """Translate one text or one stored item synchronously."""
    result = await controller.translate_single(
        target_lang=payload.targetLanguage,
        source_lang=payload.sourceLanguage,
        text=payload.text,
        item_id=payload.itemId,
        options=payload.options.to_options(),
    )
    return SingleTranslationResponse(
        success=True,
        translation=result.translated_text,
        sourceLanguage=result.source_language,
        targetLanguage=result.target_language,
        model=result.model,
        usage=result.usage,
    )


# ============================================================================
# Real-time progress channel
# ============================================================================


def _handle_client_message(
    notifier: ProgressNotifier, connection_id: str, message: Dict[str, Any]
) -> None:
    message_type = message.get("type")

    if message_type == "subscribe":
        job_id = message.get("jobId")
        if job_id:
            notifier.subscribe(connection_id, str(job_id))
        return

    if message_type == "ping":
        notifier.send(connection_id, build_event("pong"))
        return

    LOGGER.debug("Unknown WebSocket message type: %s", message_type)


@router.websocket("/ws/translation-progress")
async def translation_progress_socket(websocket: WebSocket) -> None:
    """Push job progress events; clients subscribe with ``{"type": "subscribe", "jobId": ...}``."""
    notifier: ProgressNotifier = websocket.app.state.notifier
    await websocket.accept()
    connection_id = notifier.register(websocket)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                message = None
            if not isinstance(message, dict):
                LOGGER.warning("Invalid WebSocket message from %s", connection_id)
                notifier.send(connection_id, build_event("error", message="Invalid message format"))
                continue
            _handle_client_message(notifier, connection_id, message)
    except WebSocketDisconnect:
        LOGGER.debug("WebSocket %s closed by client", connection_id)
    finally:
        notifier.unregister(connection_id)


# ============================================================================
# Application factory
# ============================================================================


async def _handle_app_error(request: Request, exc: ContentBridgeError) -> JSONResponse:
    if exc.status_code >= 500:
        LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        LOGGER.info("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "error": {
                "type": "ValidationError",
                "code": "VALIDATION_ERROR",
                "message": "Invalid request",
                "details": {"errors": json.loads(json.dumps(exc.errors(), default=str))},
            }
        },
    )


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Build the default components on startup unless they were injected."""
    engine = None
    if getattr(application.state, "controller", None) is None:
        settings = get_settings()
        engine, sessions = create_engine_and_sessions(settings.database_url)
        await init_models(engine)
        notifier = ProgressNotifier()
        application.state.notifier = notifier
        application.state.controller = JobController(
            store=SqlJobStore(sessions),
            source=SqlContentSource(sessions),
            client=TranslationClient(settings=settings),
            notifier=notifier,
            settings=settings,
        )
        LOGGER.info("Translation service started with provider %s", settings.translation_provider)

    try:
        yield
    finally:
        await application.state.controller.shutdown()
        await application.state.notifier.close()
        if engine is not None:
            await engine.dispose()
            application.state.controller = None
            application.state.notifier = None


def create_app(
    controller: Optional[JobController] = None,
    notifier: Optional[ProgressNotifier] = None,
) -> FastAPI:
    """Create the API application.

    Args:
        controller: Prebuilt job controller. Built from settings on startup if omitted.
        notifier: Notifier shared with ``controller``; required with it.
    """
    if (controller is None) != (notifier is None):
        raise ValueError("controller and notifier must be provided together")

    application = FastAPI(
        title="Content Bridge Translation API",
        description="Batch machine translation of CMS content with real-time progress",
        version="1.0.0",
        lifespan=lifespan,
    )
    application.state.controller = controller
    application.state.notifier = notifier

    application.add_middleware(
        CORSMiddleware,
        allow_origins=get_settings().cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_exception_handler(ContentBridgeError, _handle_app_error)
    application.add_exception_handler(RequestValidationError, _handle_request_validation)
    application.include_router(router)
    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "3001")))
