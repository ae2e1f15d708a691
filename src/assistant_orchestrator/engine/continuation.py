"""Task continuation engine: advance one durable task by exactly one step.

A step runs as a small LangGraph workflow (load -> decide -> execute ->
commit). Instead of looping in process, a step that should keep going ends
by enqueueing a continuation job for the same task id, so a crash loses at
most the step in flight and the last committed task row is always the
restart point.
"""

from __future__ import annotations

import json
import logging
import socket
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TypedDict
from uuid import uuid4

from langgraph.graph import END, StateGraph

from assistant_orchestrator.config.prompts import get_prompt
from assistant_orchestrator.config.settings import Settings
from assistant_orchestrator.engine.context import LogEntry, TaskContext
from assistant_orchestrator.errors import (
    AccessDeniedError,
    InvalidTaskStateError,
    NotFoundError,
)
from assistant_orchestrator.jobs.queue import ContinuationJob, JobQueue, schedule_continuation
from assistant_orchestrator.llm.gateway import GatewayReply, LLMGateway, require_gateway
from assistant_orchestrator.memory.service import MemoryService
from assistant_orchestrator.storage.base import AssistantStorage
from assistant_orchestrator.storage.models import TaskRecord
from assistant_orchestrator.tools.catalogue import (
    FINISHING_TOOLS,
    HALTING_TOOLS,
    continuation_registry,
)
from assistant_orchestrator.tools.gateway import ToolExecutor
from assistant_orchestrator.tools.registry import ToolContext, ToolRegistry
from assistant_orchestrator.tools.schemas import ToolResult

logger = logging.getLogger(__name__)

EARLIER_RESULTS_SHOWN = 10


class StepOutcome(str, Enum):
    CONTINUED = "continued"
    PAUSED = "paused"
    DONE = "done"
    ALREADY_DONE = "already_done"
    SKIPPED = "skipped"
    MISSING = "missing"


class StepState(TypedDict, total=False):
    task_id: str
    user_id: str | None
    step_index: int | None
    lease_owner: str
    task: TaskRecord
    working_memory: TaskContext
    reply: GatewayReply
    results: list[ToolResult]
    outcome: StepOutcome


class ContinuationEngine:
    def __init__(
        self,
        *,
        storage: AssistantStorage,
        memory: MemoryService,
        gateway: LLMGateway | None,
        queue: JobQueue,
        settings: Settings,
        registry: ToolRegistry | None = None,
        worker_id: str | None = None,
    ) -> None:
        self.storage = storage
        self.memory = memory
        self.gateway = gateway
        self.queue = queue
        self.settings = settings
        self.registry = continuation_registry(registry)
        self.executor = ToolExecutor(self.registry)
        self.prompt = get_prompt("continuation", settings.continuation_prompt_version)
        self.worker_id = worker_id or socket.gethostname()
        self.graph = self._build_graph()

    def handle_job(self, payload: dict[str, Any]) -> StepOutcome:
        job = ContinuationJob.model_validate(payload)
        return self.run(job.task_id, user_id=job.user_id, step_index=job.step_index)

    def run(
        self,
        task_id: str,
        *,
        user_id: str | None = None,
        step_index: int | None = None,
    ) -> StepOutcome:
        """Run one step; schedule the next one only after the lease is released.

        ``step_index`` is the committed step count the job was scheduled
        against. A job whose count no longer matches the row, or that arrives
        for a paused task, is stale and is skipped.
        """
        owner = f"{self.worker_id}:{uuid4().hex[:8]}"
        try:
            acquired = self.storage.acquire_task_lease(
                task_id, owner, self.settings.task_lease_ttl_s
            )
        except NotFoundError:
            logger.warning("event=continuation_missing task_id=%s", task_id)
            return StepOutcome.MISSING
        if not acquired:
            logger.info("event=continuation_skipped task_id=%s reason=lease_held", task_id)
            return StepOutcome.SKIPPED

        try:
            final_state = self.graph.invoke(
                {
                    "task_id": task_id,
                    "user_id": user_id,
                    "step_index": step_index,
                    "lease_owner": owner,
                }
            )
        except Exception:
            self._mark_failed(task_id)
            raise
        finally:
            self.storage.release_task_lease(task_id, owner)

        outcome = final_state["outcome"]
        if outcome is StepOutcome.CONTINUED:
            task = final_state["task"]
            schedule_continuation(
                self.queue,
                task_id=task.id,
                user_id=task.user_id,
                step_index=TaskContext.from_raw(task.context).step_index,
            )
        logger.info("event=continuation_step task_id=%s outcome=%s", task_id, outcome.value)
        return outcome

    def resume_task(
        self,
        task_id: str,
        *,
        user_id: str,
        next_instruction: str | None = None,
    ) -> TaskRecord:
        task = self.storage.get_task(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        if task.user_id != user_id:
            raise AccessDeniedError()
        if task.is_done:
            raise InvalidTaskStateError(f"Task {task_id} is already done")
        if _lease_held(task):
            raise InvalidTaskStateError(f"Task {task_id} is currently processing")

        working_memory = TaskContext.from_raw(task.context)
        working_memory.notes.pop("pause_reason", None)
        working_memory.budget_start = working_memory.step_index
        updated = self.storage.update_task(
            task_id,
            next_instruction=next_instruction,
            context=working_memory.to_dict(),
            status="pending",
        )
        schedule_continuation(
            self.queue,
            task_id=updated.id,
            user_id=updated.user_id,
            step_index=working_memory.step_index,
        )
        logger.info("event=task_resumed task_id=%s user_id=%s", task_id, user_id)
        return updated

    def _mark_failed(self, task_id: str) -> None:
        logger.exception("event=continuation_step_failed task_id=%s", task_id)
        try:
            task = self.storage.get_task(task_id)
            if task is not None and not task.is_done:
                self.storage.update_task(task_id, status="error")
        except Exception:  # noqa: BLE001
            logger.exception("event=continuation_mark_failed_error task_id=%s", task_id)

    def _build_graph(self):
        def _after_load(state: StepState) -> str:
            outcome = state.get("outcome")
            if outcome is None:
                return "decide"
            if outcome is StepOutcome.PAUSED:
                return "step_limit"
            return "stop"

        def _after_execute(state: StepState) -> str:
            return "stop" if state.get("outcome") is StepOutcome.SKIPPED else "commit"

        graph = StateGraph(StepState)

        graph.add_node("load", self._load)
        graph.add_node("step_limit", self._step_limit)
        graph.add_node("decide", self._decide)
        graph.add_node("execute", self._execute)
        graph.add_node("commit", self._commit)

        graph.set_entry_point("load")
        graph.add_conditional_edges(
            "load",
            _after_load,
            {"decide": "decide", "step_limit": "step_limit", "stop": END},
        )
        graph.add_edge("step_limit", END)
        graph.add_edge("decide", "execute")
        graph.add_conditional_edges(
            "execute",
            _after_execute,
            {"commit": "commit", "stop": END},
        )
        graph.add_edge("commit", END)

        return graph.compile()

    def _load(self, state: StepState) -> dict[str, Any]:
        task = self.storage.get_task(state["task_id"])
        if task is None:
            return {"outcome": StepOutcome.MISSING}
        expected_user = state.get("user_id")
        if expected_user and task.user_id != expected_user:
            logger.warning(
                "event=continuation_user_mismatch task_id=%s job_user_id=%s",
                task.id,
                expected_user,
            )
            return {"outcome": StepOutcome.MISSING}
        if task.is_done:
            return {"task": task, "outcome": StepOutcome.ALREADY_DONE}
        if task.status == "paused":
            logger.info("event=continuation_skipped task_id=%s reason=paused", task.id)
            return {"task": task, "outcome": StepOutcome.SKIPPED}

        working_memory = TaskContext.from_raw(task.context)
        expected_step = state.get("step_index")
        if expected_step is not None and expected_step != working_memory.step_index:
            logger.info(
                "event=continuation_skipped task_id=%s reason=stale job_step=%d task_step=%d",
                task.id,
                expected_step,
                working_memory.step_index,
            )
            return {"task": task, "outcome": StepOutcome.SKIPPED}
        steps_used = working_memory.step_index - working_memory.budget_start
        if steps_used >= self.settings.max_task_steps:
            return {
                "task": task,
                "working_memory": working_memory,
                "outcome": StepOutcome.PAUSED,
            }

        task = self.storage.update_task(task.id, status="processing")
        return {"task": task, "working_memory": working_memory}

    def _step_limit(self, state: StepState) -> dict[str, Any]:
        task = state["task"]
        working_memory = state["working_memory"]
        reason = (
            f"Paused after {self.settings.max_task_steps} steps without finishing. "
            "Resume the task to let it continue."
        )
        working_memory.notes["pause_reason"] = reason
        task = self.storage.update_task(task.id, context=working_memory.to_dict(), status="paused")
        self.memory.create_message(
            user_id=task.user_id,
            session_id=_session_of(working_memory),
            role="system",
            message=f"Task '{task.task_instruction}' {reason[0].lower()}{reason[1:]}",
        )
        logger.warning(
            "event=task_step_limit task_id=%s steps=%d", task.id, working_memory.step_index
        )
        return {"task": task}

    def _decide(self, state: StepState) -> dict[str, Any]:
        task = state["task"]
        working_memory = state["working_memory"]
        user_prompt = self.prompt.render(
            task_id=task.id,
            task_instruction=task.task_instruction,
            current_summary=task.current_summary or "(none yet)",
            next_instruction=task.next_instruction or "(none)",
            step_index=working_memory.step_index + 1,
            notes=_to_json(working_memory.notes),
            last_results=_entries_json(working_memory.last_results()),
            earlier_results=_entries_json(
                working_memory.earlier_results(EARLIER_RESULTS_SHOWN)
            ),
            created_at=task.created_at.isoformat(),
            updated_at=task.updated_at.isoformat(),
            now=datetime.now(UTC).isoformat(),
        )
        reply = require_gateway(self.gateway).complete(
            [{"role": "user", "content": user_prompt}],
            system_prompt=self.prompt.render_system(tool_overview=self.registry.describe()),
            tools=self.registry.openai_tool_definitions(),
            tool_choice="required",
        )
        return {"reply": reply}

    def _execute(self, state: StepState) -> dict[str, Any]:
        """Run the reply's tool calls in order, renewing the lease before each one.

        If another worker took the lease over, the remaining calls are not run
        and nothing is committed.
        """
        task = state["task"]
        context = ToolContext(
            user_id=task.user_id,
            storage=self.storage,
            memory=self.memory,
            settings=self.settings,
            queue=self.queue,
            task_id=task.id,
            session_id=_session_of(state["working_memory"]),
        )
        results: list[ToolResult] = []
        for call in state["reply"].tool_calls:
            renewed = self.storage.acquire_task_lease(
                task.id, state["lease_owner"], self.settings.task_lease_ttl_s
            )
            if not renewed:
                logger.warning(
                    "event=continuation_lease_lost task_id=%s calls_run=%d", task.id, len(results)
                )
                return {"results": results, "outcome": StepOutcome.SKIPPED}
            results.append(self.executor.execute_call(call, context))
        return {"results": results}

    def _commit(self, state: StepState) -> dict[str, Any]:
        reply = state["reply"]
        results = list(state.get("results", []))
        current = self.storage.get_task(state["task_id"])
        if current is None:
            return {"outcome": StepOutcome.MISSING}

        # Handlers may have written notes, so merge onto the row as it is now.
        working_memory = TaskContext.from_raw(current.context)
        succeeded = {result.tool for result in results if result.ok}

        if not reply.has_tool_calls:
            snippet = (reply.content or "")[:200]
            results.append(
                ToolResult(
                    tool="reply",
                    status="error",
                    reason=f"Model replied without tool calls: {snippet}",
                )
            )
            working_memory.notes["pause_reason"] = "model replied without tool calls"
            outcome, status = StepOutcome.PAUSED, "paused"
        elif current.is_done or succeeded & FINISHING_TOOLS:
            outcome, status = StepOutcome.DONE, "done"
        elif succeeded & HALTING_TOOLS:
            outcome, status = StepOutcome.PAUSED, "paused"
        else:
            outcome, status = StepOutcome.CONTINUED, "continued"

        working_memory.record_step(results, limit=self.settings.context_log_limit)
        task = self.storage.update_task(
            current.id,
            context=working_memory.to_dict(),
            status=status,
        )
        return {"task": task, "outcome": outcome}


def _lease_held(task: TaskRecord) -> bool:
    return (
        task.lease_owner is not None
        and task.lease_expires_at is not None
        and task.lease_expires_at > datetime.now(UTC)
    )


def _session_of(working_memory: TaskContext) -> str | None:
    session_id = working_memory.notes.get("session_id")
    return str(session_id) if session_id else None


def _entries_json(entries: list[LogEntry]) -> str:
    return _to_json([entry.model_dump(mode="json", exclude_none=True) for entry in entries])


def _to_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)
