"""PostgreSQL-backed storage with automatic table migration and pgvector search."""

from __future__ import annotations

import json
import threading
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

from assistant_orchestrator.errors import NotFoundError, PersistenceError
from assistant_orchestrator.memory.similarity import similarity_from_distance
from assistant_orchestrator.storage.base import INSTRUCTION_FIELDS
from assistant_orchestrator.storage.models import (
    ChatSessionRecord,
    EmailRecord,
    InstructionRecord,
    MessageMatch,
    MessageRecord,
    TaskMatch,
    TaskRecord,
    TaskStatus,
    UserRecord,
)

_USER_PROFILE_FIELDS = (
    "name",
    "username",
    "picture",
    "verified",
    "gmail_read",
    "gmail_write",
    "calendar_read",
    "calendar_write",
    "hubspot",
)
_EMAIL_FIELDS = (
    "gmail_message_id",
    "subject",
    "sender",
    "recipients",
    "content",
    "thread_id",
    "labels",
    "received_at",
)


class PostgresStorage:
    """Persist users, tasks, instructions, messages, and emails in PostgreSQL."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("ASSISTANT_ORCHESTRATOR_DATABASE_URL is required")
        self.database_url = database_url
        self._lock = threading.Lock()
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()

    def migrate(self) -> None:
        with self._lock, self._connect() as conn:
            conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id UUID PRIMARY KEY,
                    email TEXT NOT NULL UNIQUE,
                    name TEXT,
                    username TEXT UNIQUE,
                    picture TEXT,
                    verified BOOLEAN NOT NULL DEFAULT FALSE,
                    gmail_read BOOLEAN NOT NULL DEFAULT FALSE,
                    gmail_write BOOLEAN NOT NULL DEFAULT FALSE,
                    calendar_read BOOLEAN NOT NULL DEFAULT FALSE,
                    calendar_write BOOLEAN NOT NULL DEFAULT FALSE,
                    hubspot BOOLEAN NOT NULL DEFAULT FALSE,
                    created_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS chat_sessions (
                    id UUID PRIMARY KEY,
                    user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    title TEXT,
                    is_archived BOOLEAN NOT NULL DEFAULT FALSE,
                    created_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id UUID PRIMARY KEY,
                    user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    task_instruction TEXT NOT NULL,
                    current_summary TEXT NOT NULL DEFAULT '',
                    next_instruction TEXT NOT NULL DEFAULT '',
                    context JSONB NOT NULL DEFAULT '{}'::jsonb,
                    is_done BOOLEAN NOT NULL DEFAULT FALSE,
                    status TEXT NOT NULL DEFAULT 'pending',
                    embedding vector,
                    lease_owner TEXT,
                    lease_expires_at TIMESTAMPTZ,
                    created_at TIMESTAMPTZ NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_tasks_user_open
                ON tasks(user_id) WHERE is_done = FALSE
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS instructions (
                    id UUID PRIMARY KEY,
                    user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    name TEXT NOT NULL,
                    description TEXT NOT NULL,
                    trigger_conditions JSONB,
                    actions JSONB,
                    ai_prompt TEXT NOT NULL DEFAULT '',
                    is_active BOOLEAN NOT NULL DEFAULT TRUE,
                    created_at TIMESTAMPTZ NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_instructions_user_active
                ON instructions(user_id, is_active)
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS chat_messages (
                    id UUID PRIMARY KEY,
                    user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    session_id UUID REFERENCES chat_sessions(id) ON DELETE CASCADE,
                    role TEXT NOT NULL CHECK (role IN ('user', 'assistant', 'system')),
                    message TEXT NOT NULL,
                    embedding vector,
                    inserted_at TIMESTAMPTZ NOT NULL,
                    seq BIGSERIAL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_chat_messages_session
                ON chat_messages(session_id, inserted_at, seq)
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS emails (
                    id UUID PRIMARY KEY,
                    user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    gmail_message_id TEXT NOT NULL UNIQUE,
                    subject TEXT NOT NULL DEFAULT '',
                    sender TEXT NOT NULL DEFAULT '',
                    recipients TEXT NOT NULL DEFAULT '',
                    content TEXT NOT NULL DEFAULT '',
                    thread_id TEXT NOT NULL DEFAULT '',
                    labels JSONB NOT NULL DEFAULT '[]'::jsonb,
                    received_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_emails_user_received
                ON emails(user_id, received_at DESC)
                """)
            conn.commit()

    def create_user(self, email: str, **profile: Any) -> UserRecord:
        user_id = profile.pop("id", None) or uuid.uuid4()
        values = {key: profile[key] for key in _USER_PROFILE_FIELDS if key in profile}
        columns = ["id", "email", "created_at", *values.keys()]
        params = [user_id, email, _now(), *values.values()]
        row = self._execute_returning(
            f"INSERT INTO users ({', '.join(columns)}) "
            f"VALUES ({', '.join(['%s'] * len(columns))}) RETURNING *",
            params,
        )
        return self._row_to_user(row)

    def get_user(self, user_id: str) -> UserRecord | None:
        row = self._fetch_one("SELECT * FROM users WHERE id::text = %s", (user_id,))
        return self._row_to_user(row) if row else None

    def create_chat_session(self, user_id: str, title: str | None = None) -> ChatSessionRecord:
        row = self._execute_returning(
            """
            INSERT INTO chat_sessions (id, user_id, title, is_archived, created_at)
            VALUES (%s, %s, %s, FALSE, %s)
            RETURNING *
            """,
            (uuid.uuid4(), user_id, title, _now()),
        )
        return self._row_to_session(row)

    def get_chat_session(self, session_id: str) -> ChatSessionRecord | None:
        row = self._fetch_one("SELECT * FROM chat_sessions WHERE id::text = %s", (session_id,))
        return self._row_to_session(row) if row else None

    def create_task(
        self,
        *,
        user_id: str,
        task_instruction: str,
        current_summary: str = "",
        next_instruction: str = "",
        context: dict[str, Any] | None = None,
        embedding: list[float] | None = None,
    ) -> TaskRecord:
        now = _now()
        row = self._execute_returning(
            """
            INSERT INTO tasks (
                id,
                user_id,
                task_instruction,
                current_summary,
                next_instruction,
                context,
                is_done,
                status,
                embedding,
                created_at,
                updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s, FALSE, 'pending', %s::vector, %s, %s)
            RETURNING *
            """,
            (
                uuid.uuid4(),
                user_id,
                task_instruction,
                current_summary,
                next_instruction,
                self._json_wrapper(context or {}),
                _vector_literal(embedding),
                now,
                now,
            ),
        )
        return self._row_to_task(row)

    def get_task(self, task_id: str) -> TaskRecord | None:
        row = self._fetch_one("SELECT * FROM tasks WHERE id::text = %s", (task_id,))
        return self._row_to_task(row) if row else None

    def list_open_tasks(self, user_id: str) -> list[TaskRecord]:
        rows = self._fetch_all(
            """
            SELECT * FROM tasks
            WHERE user_id::text = %s AND is_done = FALSE
            ORDER BY created_at
            """,
            (user_id,),
        )
        return [self._row_to_task(row) for row in rows]

    def update_task(
        self,
        task_id: str,
        *,
        current_summary: str | None = None,
        next_instruction: str | None = None,
        context: dict[str, Any] | None = None,
        status: TaskStatus | None = None,
        embedding: list[float] | None = None,
        mark_done: bool = False,
    ) -> TaskRecord:
        assignments: list[str] = ["updated_at = %s"]
        params: list[Any] = [_now()]
        if current_summary is not None:
            assignments.append("current_summary = %s")
            params.append(current_summary)
        if next_instruction is not None:
            assignments.append("next_instruction = %s")
            params.append(next_instruction)
        if context is not None:
            assignments.append("context = %s")
            params.append(self._json_wrapper(context))
        if embedding is not None:
            assignments.append("embedding = %s::vector")
            params.append(_vector_literal(embedding))
        if mark_done:
            assignments.append("is_done = TRUE")
        if status is not None or mark_done:
            # Done tasks stay done whatever status a caller asks for.
            assignments.append("status = CASE WHEN is_done OR %s THEN 'done' ELSE %s END")
            params.extend([mark_done, status or "done"])
        params.append(task_id)
        row = self._execute_returning(
            f"UPDATE tasks SET {', '.join(assignments)} WHERE id::text = %s RETURNING *",
            params,
            missing=f"Task {task_id} does not exist",
        )
        return self._row_to_task(row)

    def acquire_task_lease(self, task_id: str, owner: str, ttl_s: float) -> bool:
        now = _now()
        with self._lock, self._connect() as conn:
            row = conn.execute(
                """
                UPDATE tasks
                SET lease_owner = %s,
                    lease_expires_at = %s
                WHERE id::text = %s
                  AND (
                    lease_owner IS NULL
                    OR lease_owner = %s
                    OR lease_expires_at IS NULL
                    OR lease_expires_at < %s
                  )
                RETURNING id
                """,
                (owner, now + timedelta(seconds=ttl_s), task_id, owner, now),
            ).fetchone()
            conn.commit()
        if row is not None:
            return True
        if self.get_task(task_id) is None:
            raise NotFoundError(f"Task {task_id} does not exist")
        return False

    def release_task_lease(self, task_id: str, owner: str) -> None:
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                UPDATE tasks
                SET lease_owner = NULL,
                    lease_expires_at = NULL
                WHERE id::text = %s AND lease_owner = %s
                """,
                (task_id, owner),
            )
            conn.commit()

    def search_tasks(
        self,
        user_id: str,
        query_embedding: list[float],
        *,
        max_distance: float,
        limit: int,
        include_completed: bool = True,
    ) -> list[TaskMatch]:
        vector = _vector_literal(query_embedding)
        completed_clause = "" if include_completed else "AND is_done = FALSE"
        rows = self._fetch_all(
            f"""
            SELECT *, (embedding <=> %s::vector) AS distance
            FROM tasks
            WHERE user_id::text = %s
              AND embedding IS NOT NULL
              AND (embedding <=> %s::vector) <= %s
              {completed_clause}
            ORDER BY distance
            LIMIT %s
            """,
            (vector, user_id, vector, max_distance, limit),
        )
        return [
            TaskMatch(
                task=self._row_to_task(row),
                distance=float(row["distance"]),
                similarity=similarity_from_distance(float(row["distance"])),
            )
            for row in rows
        ]

    def list_tasks_missing_embedding(self, limit: int) -> list[TaskRecord]:
        rows = self._fetch_all(
            """
            SELECT * FROM tasks
            WHERE embedding IS NULL AND task_instruction <> ''
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (limit,),
        )
        return [self._row_to_task(row) for row in rows]

    def create_instruction(self, user_id: str, **fields: Any) -> InstructionRecord:
        now = _now()
        row = self._execute_returning(
            """
            INSERT INTO instructions (
                id,
                user_id,
                name,
                description,
                trigger_conditions,
                actions,
                ai_prompt,
                is_active,
                created_at,
                updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                uuid.uuid4(),
                user_id,
                fields["name"],
                fields["description"],
                self._optional_json(fields.get("trigger_conditions")),
                self._optional_json(fields.get("actions")),
                fields.get("ai_prompt") or "",
                fields.get("is_active", True),
                now,
                now,
            ),
        )
        return self._row_to_instruction(row)

    def get_instruction(self, instruction_id: str) -> InstructionRecord | None:
        row = self._fetch_one("SELECT * FROM instructions WHERE id::text = %s", (instruction_id,))
        return self._row_to_instruction(row) if row else None

    def list_instructions(
        self, user_id: str, *, active_only: bool = False
    ) -> list[InstructionRecord]:
        active_clause = "AND is_active = TRUE" if active_only else ""
        rows = self._fetch_all(
            f"""
            SELECT * FROM instructions
            WHERE user_id::text = %s {active_clause}
            ORDER BY created_at
            """,
            (user_id,),
        )
        return [self._row_to_instruction(row) for row in rows]

    def update_instruction(self, instruction_id: str, **fields: Any) -> InstructionRecord:
        assignments: list[str] = ["updated_at = %s"]
        params: list[Any] = [_now()]
        for key in INSTRUCTION_FIELDS:
            if key not in fields:
                continue
            assignments.append(f"{key} = %s")
            if key in {"trigger_conditions", "actions"}:
                params.append(self._optional_json(fields[key]))
            else:
                params.append(fields[key])
        params.append(instruction_id)
        row = self._execute_returning(
            f"UPDATE instructions SET {', '.join(assignments)} WHERE id::text = %s RETURNING *",
            params,
            missing=f"Instruction {instruction_id} does not exist",
        )
        return self._row_to_instruction(row)

    def delete_instruction(self, instruction_id: str) -> bool:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "DELETE FROM instructions WHERE id::text = %s RETURNING id",
                (instruction_id,),
            ).fetchone()
            conn.commit()
        return row is not None

    def create_message(
        self,
        *,
        user_id: str,
        session_id: str | None,
        role: str,
        message: str,
        embedding: list[float] | None = None,
    ) -> MessageRecord:
        row = self._execute_returning(
            """
            INSERT INTO chat_messages (
                id, user_id, session_id, role, message, embedding, inserted_at
            )
            VALUES (%s, %s, %s, %s, %s, %s::vector, %s)
            RETURNING *
            """,
            (
                uuid.uuid4(),
                user_id,
                session_id,
                role,
                message,
                _vector_literal(embedding),
                _now(),
            ),
        )
        return self._row_to_message(row)

    def list_messages(self, session_id: str, *, limit: int, offset: int) -> list[MessageRecord]:
        rows = self._fetch_all(
            """
            SELECT * FROM chat_messages
            WHERE session_id::text = %s
            ORDER BY inserted_at ASC, seq ASC
            LIMIT %s OFFSET %s
            """,
            (session_id, limit, offset),
        )
        return [self._row_to_message(row) for row in rows]

    def search_messages(
        self,
        user_id: str,
        query_embedding: list[float],
        *,
        max_distance: float,
        limit: int,
        role: str | None = None,
        session_id: str | None = None,
    ) -> list[MessageMatch]:
        vector = _vector_literal(query_embedding)
        clauses = [
            "user_id::text = %s",
            "embedding IS NOT NULL",
            "(embedding <=> %s::vector) <= %s",
        ]
        params: list[Any] = [vector, user_id, vector, max_distance]
        if role is not None:
            clauses.append("role = %s")
            params.append(role)
        if session_id is not None:
            clauses.append("session_id::text = %s")
            params.append(session_id)
        params.append(limit)
        rows = self._fetch_all(
            f"""
            SELECT *, (embedding <=> %s::vector) AS distance
            FROM chat_messages
            WHERE {' AND '.join(clauses)}
            ORDER BY distance
            LIMIT %s
            """,
            params,
        )
        return [
            MessageMatch(
                message=self._row_to_message(row),
                distance=float(row["distance"]),
                similarity=similarity_from_distance(float(row["distance"])),
            )
            for row in rows
        ]

    def list_messages_missing_embedding(
        self, limit: int, roles: tuple[str, ...]
    ) -> list[MessageRecord]:
        rows = self._fetch_all(
            """
            SELECT * FROM chat_messages
            WHERE embedding IS NULL AND message <> '' AND role = ANY(%s)
            ORDER BY inserted_at DESC
            LIMIT %s
            """,
            (list(roles), limit),
        )
        return [self._row_to_message(row) for row in rows]

    def set_message_embedding(self, message_id: str, embedding: list[float]) -> None:
        self._execute_returning(
            "UPDATE chat_messages SET embedding = %s::vector WHERE id::text = %s RETURNING id",
            (_vector_literal(embedding), message_id),
            missing=f"Message {message_id} does not exist",
        )

    def create_email(self, user_id: str, **fields: Any) -> EmailRecord:
        values = {key: fields[key] for key in _EMAIL_FIELDS if key in fields}
        values.setdefault("gmail_message_id", str(uuid.uuid4()))
        values.setdefault("received_at", _now())
        values["labels"] = self._json_wrapper(list(values.get("labels") or []))
        columns = ["id", "user_id", *values.keys()]
        params = [uuid.uuid4(), user_id, *values.values()]
        row = self._execute_returning(
            f"INSERT INTO emails ({', '.join(columns)}) "
            f"VALUES ({', '.join(['%s'] * len(columns))}) RETURNING *",
            params,
        )
        return self._row_to_email(row)

    def list_emails(
        self,
        user_id: str,
        *,
        limit: int,
        offset: int = 0,
        unread_only: bool = False,
        sender: str | None = None,
    ) -> tuple[list[EmailRecord], int]:
        clauses = ["user_id::text = %s"]
        params: list[Any] = [user_id]
        if unread_only:
            clauses.append("labels ? 'UNREAD'")
        if sender:
            clauses.append("sender ILIKE %s")
            params.append(f"%{sender}%")
        where = " AND ".join(clauses)
        rows = self._fetch_all(
            f"""
            SELECT *, COUNT(*) OVER () AS total_count
            FROM emails
            WHERE {where}
            ORDER BY received_at DESC
            LIMIT %s OFFSET %s
            """,
            [*params, limit, offset],
        )
        if rows:
            total = int(rows[0]["total_count"])
        else:
            count_row = self._fetch_one(
                f"SELECT COUNT(*) AS total_count FROM emails WHERE {where}", params
            )
            total = int(count_row["total_count"]) if count_row else 0
        return [self._row_to_email(row) for row in rows], total

    def count_unread_emails(self, user_id: str) -> int:
        row = self._fetch_one(
            "SELECT COUNT(*) AS unread FROM emails WHERE user_id::text = %s AND labels ? 'UNREAD'",
            (user_id,),
        )
        return int(row["unread"]) if row else 0

    def _connect(self) -> Any:
        return self._psycopg.connect(self.database_url, row_factory=self._dict_row)

    def _fetch_one(self, query: str, params: Any) -> dict[str, Any] | None:
        with self._lock, self._connect() as conn:
            return conn.execute(query, params).fetchone()

    def _fetch_all(self, query: str, params: Any) -> list[dict[str, Any]]:
        with self._lock, self._connect() as conn:
            return list(conn.execute(query, params).fetchall())

    def _execute_returning(
        self, query: str, params: Any, *, missing: str | None = None
    ) -> dict[str, Any]:
        try:
            with self._lock, self._connect() as conn:
                row = conn.execute(query, params).fetchone()
                conn.commit()
        except self._psycopg.Error as exc:
            raise PersistenceError(str(exc)) from exc
        if row is None:
            if missing is not None:
                raise NotFoundError(missing)
            raise PersistenceError("Write returned no row")
        return row

    def _optional_json(self, value: Any) -> Any:
        return self._json_wrapper(value) if value is not None else None

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "PostgreSQL storage requires psycopg. "
                'Install with: python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row, Json

    @staticmethod
    def _parse_json(raw: Any) -> Any:
        if isinstance(raw, str):
            return json.loads(raw)
        return raw

    @staticmethod
    def _parse_datetime(raw: Any) -> datetime:
        if isinstance(raw, datetime):
            return raw
        if isinstance(raw, str):
            return datetime.fromisoformat(raw)
        raise TypeError(f"Unsupported datetime value: {type(raw)!r}")

    @classmethod
    def _row_to_user(cls, row: Any) -> UserRecord:
        return UserRecord(
            id=str(row["id"]),
            email=row["email"],
            created_at=cls._parse_datetime(row["created_at"]),
            **{key: row[key] for key in _USER_PROFILE_FIELDS},
        )

    @classmethod
    def _row_to_session(cls, row: Any) -> ChatSessionRecord:
        return ChatSessionRecord(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            title=row["title"],
            is_archived=bool(row["is_archived"]),
            created_at=cls._parse_datetime(row["created_at"]),
        )

    @classmethod
    def _row_to_task(cls, row: Any) -> TaskRecord:
        context = cls._parse_json(row["context"])
        return TaskRecord(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            task_instruction=row["task_instruction"],
            current_summary=row["current_summary"] or "",
            next_instruction=row["next_instruction"] or "",
            context=context if isinstance(context, dict) else {},
            is_done=bool(row["is_done"]),
            status=row["status"],
            embedding=_parse_vector(row["embedding"]),
            lease_owner=row["lease_owner"],
            lease_expires_at=(
                cls._parse_datetime(row["lease_expires_at"]) if row["lease_expires_at"] else None
            ),
            created_at=cls._parse_datetime(row["created_at"]),
            updated_at=cls._parse_datetime(row["updated_at"]),
        )

    @classmethod
    def _row_to_instruction(cls, row: Any) -> InstructionRecord:
        return InstructionRecord(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            name=row["name"],
            description=row["description"],
            trigger_conditions=cls._parse_json(row["trigger_conditions"]),
            actions=cls._parse_json(row["actions"]),
            ai_prompt=row["ai_prompt"] or "",
            is_active=bool(row["is_active"]),
            created_at=cls._parse_datetime(row["created_at"]),
            updated_at=cls._parse_datetime(row["updated_at"]),
        )

    @classmethod
    def _row_to_message(cls, row: Any) -> MessageRecord:
        return MessageRecord(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            session_id=str(row["session_id"]) if row["session_id"] else None,
            role=row["role"],
            message=row["message"],
            embedding=_parse_vector(row["embedding"]),
            inserted_at=cls._parse_datetime(row["inserted_at"]),
        )

    @classmethod
    def _row_to_email(cls, row: Any) -> EmailRecord:
        labels = cls._parse_json(row["labels"])
        return EmailRecord(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            gmail_message_id=row["gmail_message_id"],
            subject=row["subject"],
            sender=row["sender"],
            recipients=row["recipients"],
            content=row["content"],
            thread_id=row["thread_id"],
            labels=[str(item) for item in labels] if isinstance(labels, list) else [],
            received_at=cls._parse_datetime(row["received_at"]),
        )


def _vector_literal(values: list[float] | None) -> str | None:
    if not values:
        return None
    return "[" + ",".join(repr(float(value)) for value in values) + "]"


def _parse_vector(raw: Any) -> list[float] | None:
    if raw is None:
        return None
    if isinstance(raw, str):
        text = raw.strip().strip("[]")
        if not text:
            return []
        return [float(part) for part in text.split(",")]
    return [float(value) for value in raw]


def _now() -> datetime:
    return datetime.now(tz=UTC)
