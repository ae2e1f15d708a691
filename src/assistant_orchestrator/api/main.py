"""FastAPI app entrypoint for assistant-orchestrator."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from assistant_orchestrator.config.settings import Settings, get_settings
from assistant_orchestrator.engine.context import TaskContext
from assistant_orchestrator.engine.ingest import (
    process_chat,
    process_email,
    process_text,
    process_webhook,
)
from assistant_orchestrator.errors import (
    AccessDeniedError,
    InvalidTaskStateError,
    NotFoundError,
)
from assistant_orchestrator.jobs.queue import JobQueue, JobRecord
from assistant_orchestrator.llm.gateway import LLMGateway
from assistant_orchestrator.memory.embeddings import Embedder
from assistant_orchestrator.runtime import Runtime, build_runtime
from assistant_orchestrator.storage.base import AssistantStorage
from assistant_orchestrator.storage.models import TaskRecord, TaskStatus
from assistant_orchestrator.tools import list_tools

logger = logging.getLogger(__name__)


class EventRequest(BaseModel):
    user_id: str = Field(min_length=1)
    source: str = Field(default="webhook", min_length=1)
    text: str | None = None
    payload: Any = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ChatRequest(BaseModel):
    user_id: str = Field(min_length=1)
    session_id: str = Field(min_length=1)
    message: str = Field(min_length=1)


class ResumeTaskRequest(BaseModel):
    user_id: str = Field(min_length=1)
    next_instruction: str | None = None


class JobAccepted(BaseModel):
    job_id: str
    kind: str
    status: str


class TaskView(BaseModel):
    id: str
    user_id: str
    task_instruction: str
    current_summary: str
    next_instruction: str
    status: TaskStatus
    is_done: bool
    step_index: int
    notes: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: TaskRecord) -> "TaskView":
        working_memory = TaskContext.from_raw(record.context)
        return cls(
            id=record.id,
            user_id=record.user_id,
            task_instruction=record.task_instruction,
            current_summary=record.current_summary,
            next_instruction=record.next_instruction,
            status=record.status,
            is_done=record.is_done,
            step_index=working_memory.step_index,
            notes=working_memory.notes,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    overrides: dict[str, Any],
) -> None:
    if not hasattr(app.state, "runtime"):
        app.state.runtime = build_runtime(settings, migrate=True, **overrides)
    if not hasattr(app.state, "settings"):
        app.state.settings = settings


def create_app(
    *,
    storage: AssistantStorage | None = None,
    queue: JobQueue | None = None,
    gateway: LLMGateway | None = None,
    embedder: Embedder | None = None,
    settings_override: Settings | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()
    overrides = {"storage": storage, "queue": queue, "gateway": gateway, "embedder": embedder}

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure_runtime_state(app, settings=settings, overrides=overrides)
        yield

    app_lifespan = lifespan if storage is None else None
    app = FastAPI(title=settings.app_name, lifespan=app_lifespan)

    # Keep test paths reliable when lifespan is not executed by the client.
    if storage is not None:
        _ensure_runtime_state(app, settings=settings, overrides=overrides)

    def _get_runtime(request: Request) -> Runtime:
        if not hasattr(request.app.state, "runtime"):
            _ensure_runtime_state(request.app, settings=settings, overrides=overrides)
        return request.app.state.runtime

    def _owned_task(runtime: Runtime, task_id: str, user_id: str) -> TaskRecord:
        record = runtime.storage.get_task(task_id)
        # Other users' tasks look exactly like missing ones.
        if record is None or record.user_id != user_id:
            raise HTTPException(status_code=404, detail="Task not found")
        return record

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/tools")
    def tools() -> dict[str, list[str]]:
        return {"tools": list_tools()}

    @app.post("/events", response_model=JobAccepted, status_code=202)
    def post_event(payload: EventRequest, request: Request) -> JobAccepted:
        runtime = _get_runtime(request)
        source = payload.source.lower().strip()
        if source == "webhook" and payload.payload is not None:
            webhook_source = str(payload.metadata.get("webhook_source", "api"))
            job = process_webhook(
                runtime.queue,
                payload=payload.payload,
                user_id=payload.user_id,
                webhook_source=webhook_source,
            )
        elif not payload.text:
            raise HTTPException(status_code=422, detail="text is required")
        elif source == "email":
            job = process_email(
                runtime.queue,
                content=payload.text,
                user_id=payload.user_id,
                email_metadata=payload.metadata,
            )
        else:
            job = process_text(
                runtime.queue,
                text=payload.text,
                user_id=payload.user_id,
                source=source,
                metadata=payload.metadata,
            )
        return _accepted(job)

    @app.post("/chat", response_model=JobAccepted, status_code=202)
    def post_chat(payload: ChatRequest, request: Request) -> JobAccepted:
        runtime = _get_runtime(request)
        try:
            job = process_chat(
                runtime.queue,
                runtime.memory,
                message=payload.message,
                user_id=payload.user_id,
                session_id=payload.session_id,
            )
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except AccessDeniedError as exc:
            raise HTTPException(status_code=403, detail=str(exc)) from exc
        return _accepted(job)

    @app.get("/tasks/{task_id}", response_model=TaskView)
    def get_task(task_id: str, user_id: str, request: Request) -> TaskView:
        runtime = _get_runtime(request)
        return TaskView.from_record(_owned_task(runtime, task_id, user_id))

    @app.post("/tasks/{task_id}/resume", response_model=TaskView)
    def resume_task(task_id: str, payload: ResumeTaskRequest, request: Request) -> TaskView:
        runtime = _get_runtime(request)
        _owned_task(runtime, task_id, payload.user_id)
        try:
            record = runtime.engine.resume_task(
                task_id,
                user_id=payload.user_id,
                next_instruction=payload.next_instruction,
            )
        except InvalidTaskStateError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        logger.info("event=task_resume_requested task_id=%s user_id=%s", task_id, payload.user_id)
        return TaskView.from_record(record)

    return app


app = create_app()


def _accepted(job: JobRecord) -> JobAccepted:
    return JobAccepted(job_id=job.id, kind=job.kind, status=job.status)
