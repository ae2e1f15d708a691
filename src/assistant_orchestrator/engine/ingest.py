"""Entry points that turn chat messages, emails, and webhooks into inbound-event jobs."""

from __future__ import annotations

import json
import logging
from typing import Any

from assistant_orchestrator.errors import AccessDeniedError, NotFoundError
from assistant_orchestrator.jobs.queue import (
    InboundEventJob,
    JobQueue,
    JobRecord,
    enqueue_inbound_event,
)
from assistant_orchestrator.memory.service import MemoryService

logger = logging.getLogger(__name__)

WEBHOOK_TEXT_FIELDS = ("message", "text", "content", "body", "description")


def process_text(
    queue: JobQueue,
    *,
    text: str,
    user_id: str,
    source: str,
    metadata: dict[str, Any] | None = None,
) -> JobRecord:
    metadata = dict(metadata or {})
    session_id = metadata.get("session_id")
    job = enqueue_inbound_event(
        queue,
        InboundEventJob(
            text=text,
            user_id=user_id,
            source=source,
            metadata=metadata,
            session_id=str(session_id) if session_id else None,
        ),
    )
    logger.info(
        "event=inbound_enqueued job_id=%s user_id=%s source=%s", job.id, user_id, source
    )
    return job


def process_chat(
    queue: JobQueue,
    memory: MemoryService,
    *,
    message: str,
    user_id: str,
    session_id: str,
) -> JobRecord:
    """Persist the user's chat message, then hand it to the dispatcher."""
    session = memory.storage.get_chat_session(session_id)
    if session is None:
        raise NotFoundError(f"Chat session {session_id} not found")
    if session.user_id != user_id:
        raise AccessDeniedError()

    record = memory.create_message(
        user_id=user_id, session_id=session_id, role="user", message=message
    )
    return process_text(
        queue,
        text=message,
        user_id=user_id,
        source="chat",
        metadata={"session_id": session_id, "message_id": record.id},
    )


def process_email(
    queue: JobQueue,
    *,
    content: str,
    user_id: str,
    email_metadata: dict[str, Any] | None = None,
) -> JobRecord:
    email_metadata = dict(email_metadata or {})
    metadata = {
        key: email_metadata.get(key) for key in ("sender", "subject", "thread_id", "message_id")
    }
    metadata.update(email_metadata)
    return process_text(queue, text=content, user_id=user_id, source="email", metadata=metadata)


def process_webhook(
    queue: JobQueue,
    *,
    payload: Any,
    user_id: str,
    webhook_source: str,
) -> JobRecord:
    return process_text(
        queue,
        text=extract_webhook_text(payload),
        user_id=user_id,
        source="webhook",
        metadata={"webhook_source": webhook_source, "payload": payload},
    )


def extract_webhook_text(payload: Any) -> str:
    if isinstance(payload, str):
        return payload
    if isinstance(payload, dict):
        for field in WEBHOOK_TEXT_FIELDS:
            value = payload.get(field)
            if value:
                return value if isinstance(value, str) else json.dumps(value, default=str)
    return json.dumps(payload, ensure_ascii=False, default=str, sort_keys=True)
