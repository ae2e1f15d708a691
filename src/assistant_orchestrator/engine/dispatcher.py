"""Entry dispatcher: turn one inbound event into tool calls."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from assistant_orchestrator.config.prompts import TOOL_CALL_REMINDER, get_prompt
from assistant_orchestrator.config.settings import Settings
from assistant_orchestrator.errors import DispatchError
from assistant_orchestrator.jobs.queue import InboundEventJob, JobQueue
from assistant_orchestrator.llm.gateway import GatewayReply, LLMGateway, require_gateway
from assistant_orchestrator.memory.service import MemoryService, RelevantContext
from assistant_orchestrator.storage.base import AssistantStorage
from assistant_orchestrator.storage.models import InstructionRecord, TaskRecord
from assistant_orchestrator.tools.catalogue import dispatcher_registry
from assistant_orchestrator.tools.gateway import ToolExecutor
from assistant_orchestrator.tools.registry import ToolContext, ToolRegistry
from assistant_orchestrator.tools.schemas import ToolResult

logger = logging.getLogger(__name__)


class DispatchResult(BaseModel):
    results: list[ToolResult] = Field(default_factory=list)
    created_task_ids: list[str] = Field(default_factory=list)
    llm_attempts: int = 1


class OrchestratorDispatcher:
    def __init__(
        self,
        *,
        storage: AssistantStorage,
        memory: MemoryService,
        gateway: LLMGateway | None,
        queue: JobQueue,
        settings: Settings,
        registry: ToolRegistry | None = None,
    ) -> None:
        self.storage = storage
        self.memory = memory
        self.gateway = gateway
        self.queue = queue
        self.settings = settings
        self.registry = dispatcher_registry(registry)
        self.executor = ToolExecutor(self.registry)
        self.prompt = get_prompt("dispatcher", settings.dispatcher_prompt_version)

    def handle_job(self, payload: dict[str, Any]) -> DispatchResult:
        return self.dispatch(InboundEventJob.model_validate(payload))

    def dispatch(self, event: InboundEventJob) -> DispatchResult:
        instructions = self.storage.list_instructions(event.user_id, active_only=True)
        running_tasks = self.storage.list_open_tasks(event.user_id)
        relevant = self._relevant_memory(event)

        user_prompt = self.prompt.render(
            source=event.source,
            text=event.text,
            timestamp=datetime.now(UTC).isoformat(),
            metadata_block=_metadata_block(event),
            instructions=_format_instructions(instructions),
            running_tasks=_format_tasks(running_tasks),
            relevant_memory=_format_relevant(relevant),
        )
        messages: list[dict[str, Any]] = [*event.history, {"role": "user", "content": user_prompt}]
        reply, attempts = self._complete_with_tool_calls(messages)

        context = ToolContext(
            user_id=event.user_id,
            storage=self.storage,
            memory=self.memory,
            settings=self.settings,
            queue=self.queue,
            session_id=event.session_id,
        )
        results = [self.executor.execute_call(call, context) for call in reply.tool_calls]
        created = [
            str(result.result["task_id"])
            for result in results
            if result.tool == "create_task" and result.ok and isinstance(result.result, dict)
        ]
        logger.info(
            "event=dispatch_done user_id=%s source=%s tool_calls=%d errors=%d tasks_created=%d",
            event.user_id,
            event.source,
            len(results),
            sum(1 for result in results if not result.ok),
            len(created),
        )
        return DispatchResult(results=results, created_task_ids=created, llm_attempts=attempts)

    def _complete_with_tool_calls(
        self, messages: list[dict[str, Any]]
    ) -> tuple[GatewayReply, int]:
        system_prompt = self.prompt.render_system()
        tools = self.registry.openai_tool_definitions()
        gateway = require_gateway(self.gateway)

        reply = gateway.complete(
            messages, system_prompt=system_prompt, tools=tools, tool_choice="required"
        )
        if reply.has_tool_calls:
            return reply, 1

        logger.warning("event=dispatch_plain_text_reply action=retry_with_reminder")
        retry_messages = [
            *messages,
            {"role": "assistant", "content": reply.content or ""},
            {"role": "system", "content": TOOL_CALL_REMINDER},
        ]
        reply = gateway.complete(
            retry_messages, system_prompt=system_prompt, tools=tools, tool_choice="required"
        )
        if reply.has_tool_calls:
            return reply, 2
        raise DispatchError("LLM returned plain text instead of tool calls twice")

    def _relevant_memory(self, event: InboundEventJob) -> RelevantContext:
        if self.settings.memory_task_limit == 0 and self.settings.memory_message_limit == 0:
            return RelevantContext()
        try:
            return self.memory.find_relevant_context(
                event.user_id,
                event.text,
                task_limit=self.settings.memory_task_limit,
                message_limit=self.settings.memory_message_limit,
                threshold=self.settings.similarity_threshold,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("event=relevant_memory_failed user_id=%s reason=%s", event.user_id, exc)
            return RelevantContext()


def _metadata_block(event: InboundEventJob) -> str:
    metadata = dict(event.metadata)
    if event.session_id:
        metadata.setdefault("session_id", event.session_id)
    metadata.setdefault("user_id", event.user_id)
    return "Metadata: " + json.dumps(metadata, ensure_ascii=False, default=str, sort_keys=True)


def _format_instructions(instructions: list[InstructionRecord]) -> str:
    if not instructions:
        return "None"
    lines: list[str] = []
    for item in instructions:
        line = f"- [{item.id}] {item.name}: {item.description}"
        if item.trigger_conditions:
            line += f" | trigger: {_compact(item.trigger_conditions)}"
        if item.actions:
            line += f" | actions: {_compact(item.actions)}"
        if item.ai_prompt:
            line += f" | prompt: {item.ai_prompt}"
        lines.append(line)
    return "\n".join(lines)


def _format_tasks(tasks: list[TaskRecord]) -> str:
    if not tasks:
        return "None"
    return "\n".join(
        f"- [{task.id}] {task.task_instruction} | status: {task.status}"
        f" | next: {task.next_instruction or '(none)'}"
        for task in tasks
    )


def _format_relevant(relevant: RelevantContext) -> str:
    lines = [
        f"- task ({match.similarity:.2f}): {match.task.task_instruction}"
        f"{' [done]' if match.task.is_done else ''}"
        for match in relevant.tasks
    ]
    lines.extend(
        f"- user message ({match.similarity:.2f}): {match.message.message}"
        for match in relevant.messages
    )
    return "\n".join(lines) if lines else "None"


def _compact(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str, sort_keys=True)
