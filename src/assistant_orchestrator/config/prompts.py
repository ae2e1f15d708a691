"""Versioned prompt templates for the dispatcher and the task continuation engine.

Prompts are policy: each revision is a frozen object addressed by
``(name, version)`` so a change shows up as a new entry instead of an edit
buried in dispatch code.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class PromptTemplate:
    name: str
    version: str
    system: str
    user_template: str

    @property
    def key(self) -> str:
        return f"{self.name}/{self.version}"

    def render(self, **values: Any) -> str:
        return self.user_template.format(**values)

    def render_system(self, **values: Any) -> str:
        if not values:
            return self.system
        return self.system.format(**values)


DISPATCHER_V1 = PromptTemplate(
    name="dispatcher",
    version="v1",
    system=(
        "You are an assistant that turns incoming events into actions.\n"
        "You MUST respond only with tool calls, never with plain text.\n"
        "Every action that uses a tool must be wrapped in a task: call create_task with a "
        "task_instruction describing the goal and a next_instruction naming the first tool "
        "to run. Use create_assistant_message only to acknowledge the user.\n"
        "Manage automation rules with create_instruction, update_instruction and "
        "delete_instruction."
    ),
    user_template=(
        "INCOMING TEXT:\n"
        "Source: {source}\n"
        "Content: {text}\n"
        "Timestamp: {timestamp}\n"
        "{metadata_block}\n"
        "ACTIVE INSTRUCTIONS:\n{instructions}\n\n"
        "RUNNING TASKS:\n{running_tasks}\n\n"
        "RELEVANT MEMORY:\n{relevant_memory}\n"
    ),
)

DISPATCHER_V2 = PromptTemplate(
    name="dispatcher",
    version="v2",
    system=(
        "You are an assistant that analyzes incoming text (chat, email, webhooks) for one "
        "user and decides what to do about it.\n\n"
        "CRITICAL: respond ONLY with tool calls. Never answer with plain text.\n\n"
        "DECISION POLICY:\n"
        "- If the request can be satisfied right now, act directly: reply with "
        "create_assistant_message, log with create_system_message, or manage automation "
        "rules with create_instruction / update_instruction / delete_instruction.\n"
        "- Call create_task ONLY when the goal must wait for an external event (a reply, a "
        "meeting, a future email) or needs several dependent steps that call data tools. "
        "task_instruction states the finished goal; next_instruction states the first "
        "concrete step.\n"
        "- Check RUNNING TASKS first and never create a task that duplicates one already "
        "in progress.\n"
        "- Apply ACTIVE INSTRUCTIONS whose trigger matches the incoming text.\n"
        "- Use RELEVANT MEMORY to avoid repeating earlier work.\n"
        "- If the request is unclear or impossible, explain it with "
        "create_assistant_message.\n\n"
        "Task steps can use these operations: get_chat_messages, get_user_info, get_emails, "
        "search_tasks, search_chat_messages, find_relevant_context, list_instructions."
    ),
    user_template=DISPATCHER_V1.user_template
    + "\nAnalyze the incoming text and respond with tool calls.\n",
)

CONTINUATION_V1 = PromptTemplate(
    name="continuation",
    version="v1",
    system=(
        "You are the task executor. You advance one durable task by one step.\n\n"
        "CRITICAL: respond ONLY with tool calls. Never answer with plain text.\n\n"
        "Each response may contain several tool calls; they run in order. The results are "
        "shown to you on the next step under LAST STEP RESULTS.\n\n"
        "DECISION FLOW:\n"
        "1. If the task goal is achieved, call end_task with a final_summary.\n"
        "2. If the task must wait for something external, call pause_task with a reason.\n"
        "3. Otherwise execute next_instruction now. When LAST STEP RESULTS is empty, assume "
        "its preconditions hold and call the tools it names directly.\n"
        "4. Call update_task whenever current_summary or next_instruction should change.\n"
        "5. You may finish in the same response that does the work, for example "
        "get_emails, then create_assistant_message, then end_task.\n\n"
        "The task keeps running until you call pause_task or end_task. Do not repeat a step "
        "whose results are already in LAST STEP RESULTS; if results show an error, try a "
        "different approach, and end the task with an explanation if no progress is "
        "possible.\n\n"
        "AVAILABLE TOOLS:\n{tool_overview}"
    ),
    user_template=(
        "TASK TO PROCESS:\n"
        "Task ID: {task_id}\n"
        "Task Instruction: {task_instruction}\n"
        "Current Summary: {current_summary}\n"
        "Next Instruction: {next_instruction}\n"
        "Step: {step_index}\n"
        "Notes: {notes}\n"
        "LAST STEP RESULTS: {last_results}\n"
        "EARLIER RESULTS: {earlier_results}\n"
        "Created: {created_at}\n"
        "Updated: {updated_at}\n"
        "Now: {now}\n"
    ),
)

TOOL_CALL_REMINDER = (
    "Your previous answer was plain text. You MUST respond with one or more tool calls. "
    "If you only want to talk to the user, call create_assistant_message."
)

_CATALOGUE: dict[str, PromptTemplate] = {
    template.key: template for template in (DISPATCHER_V1, DISPATCHER_V2, CONTINUATION_V1)
}


def get_prompt(name: str, version: str) -> PromptTemplate:
    key = f"{name}/{version}"
    template = _CATALOGUE.get(key)
    if template is None:
        available = ", ".join(sorted(_CATALOGUE))
        raise KeyError(f"Unknown prompt revision {key}; available: {available}")
    return template


def list_prompts() -> list[str]:
    return sorted(_CATALOGUE)
