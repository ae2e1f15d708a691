"""Read-only tools over conversations, the user profile, and synced mail."""

from __future__ import annotations

from typing import Any

from assistant_orchestrator.errors import AccessDeniedError, NotFoundError
from assistant_orchestrator.tools.access import owned_session
from assistant_orchestrator.tools.registry import ToolContext
from assistant_orchestrator.tools.schemas import (
    GetChatMessagesInput,
    GetEmailsInput,
    GetUserInfoInput,
)

_EMAIL_PREVIEW_CHARS = 2000


def get_chat_messages(payload: GetChatMessagesInput, context: ToolContext) -> dict[str, Any]:
    owned_session(context, payload.session_id)
    records = context.storage.list_messages(
        payload.session_id, limit=payload.limit, offset=payload.offset
    )
    return {
        "session_id": payload.session_id,
        "messages": [
            {
                "id": record.id,
                "role": record.role,
                "message": record.message,
                "inserted_at": record.inserted_at.isoformat(),
            }
            for record in records
        ],
        "limit": payload.limit,
        "offset": payload.offset,
    }


def get_user_info(payload: GetUserInfoInput, context: ToolContext) -> dict[str, Any]:
    if payload.user_id != context.user_id:
        raise AccessDeniedError()
    user = context.storage.get_user(payload.user_id)
    if user is None:
        raise NotFoundError(f"User {payload.user_id} not found")
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "username": user.username,
        "picture": user.picture,
        "verified": user.verified,
        "permissions": {
            "gmail_read": user.gmail_read,
            "gmail_write": user.gmail_write,
            "calendar_read": user.calendar_read,
            "calendar_write": user.calendar_write,
            "hubspot": user.hubspot,
        },
    }


def get_emails(payload: GetEmailsInput, context: ToolContext) -> dict[str, Any]:
    records, total = context.storage.list_emails(
        context.user_id,
        limit=payload.limit,
        offset=payload.offset,
        unread_only=payload.unread_only,
        sender=payload.sender,
    )
    return {
        "emails": [
            {
                "id": record.id,
                "subject": record.subject,
                "sender": record.sender,
                "recipients": record.recipients,
                "content": record.content[:_EMAIL_PREVIEW_CHARS],
                "thread_id": record.thread_id,
                "labels": record.labels,
                "is_unread": record.is_unread,
                "received_at": record.received_at.isoformat(),
            }
            for record in records
        ],
        "total": total,
        "unread_count": context.storage.count_unread_emails(context.user_id),
    }
