"""Default tool registry and the catalogues offered to each caller."""

from __future__ import annotations

from assistant_orchestrator.tools import (
    communication,
    instructions,
    memory_search,
    records,
    task_control,
)
from assistant_orchestrator.tools.registry import ToolRegistry, ToolSpec
from assistant_orchestrator.tools.schemas import (
    CreateAssistantMessageInput,
    CreateInstructionInput,
    CreateSystemMessageInput,
    CreateTaskInput,
    DeleteInstructionInput,
    EndTaskInput,
    FindRelevantContextInput,
    GetChatMessagesInput,
    GetEmailsInput,
    GetUserInfoInput,
    ListInstructionsInput,
    PauseTaskInput,
    SearchChatMessagesInput,
    SearchTasksInput,
    UpdateInstructionInput,
    UpdateTaskInput,
)

DISPATCHER_TOOLS = (
    "create_task",
    "create_instruction",
    "update_instruction",
    "delete_instruction",
    "create_assistant_message",
    "create_system_message",
)
TASK_CONTROL_TOOLS = ("update_task", "pause_task", "end_task", "complete_task")
HALTING_TOOLS = frozenset({"pause_task", "end_task", "complete_task"})
FINISHING_TOOLS = frozenset({"end_task", "complete_task"})


def build_registry() -> ToolRegistry:
    return ToolRegistry(
        [
            ToolSpec(
                name="create_task",
                description=(
                    "Create a durable task for work that must wait on an external event or "
                    "needs several dependent steps. Its first step is scheduled automatically."
                ),
                input_model=CreateTaskInput,
                handler=task_control.create_task,
            ),
            ToolSpec(
                name="update_task",
                description="Record progress on the running task and set its next instruction.",
                input_model=UpdateTaskInput,
                handler=task_control.update_task,
            ),
            ToolSpec(
                name="pause_task",
                description="Stop the running task until an external event resumes it.",
                input_model=PauseTaskInput,
                handler=task_control.pause_task,
            ),
            ToolSpec(
                name="end_task",
                description="Mark the running task as finished with a final summary.",
                input_model=EndTaskInput,
                handler=task_control.end_task,
            ),
            ToolSpec(
                name="complete_task",
                description="Same as end_task.",
                input_model=EndTaskInput,
                handler=task_control.end_task,
            ),
            ToolSpec(
                name="create_assistant_message",
                description="Send a message to the user in a chat session.",
                input_model=CreateAssistantMessageInput,
                handler=communication.create_assistant_message,
                ambient_fields=("session_id",),
            ),
            ToolSpec(
                name="create_system_message",
                description="Log a system notice, optionally inside a chat session.",
                input_model=CreateSystemMessageInput,
                handler=communication.create_system_message,
            ),
            ToolSpec(
                name="create_instruction",
                description="Save a new automation rule for the user.",
                input_model=CreateInstructionInput,
                handler=instructions.create_instruction,
            ),
            ToolSpec(
                name="update_instruction",
                description="Change fields of one of the user's automation rules.",
                input_model=UpdateInstructionInput,
                handler=instructions.update_instruction,
            ),
            ToolSpec(
                name="delete_instruction",
                description="Delete one of the user's automation rules.",
                input_model=DeleteInstructionInput,
                handler=instructions.delete_instruction,
            ),
            ToolSpec(
                name="list_instructions",
                description="List the user's automation rules.",
                input_model=ListInstructionsInput,
                handler=instructions.list_instructions,
            ),
            ToolSpec(
                name="get_chat_messages",
                description="Read messages from one of the user's chat sessions, oldest first.",
                input_model=GetChatMessagesInput,
                handler=records.get_chat_messages,
                ambient_fields=("session_id",),
            ),
            ToolSpec(
                name="get_user_info",
                description="Read the user's profile and connected-service permissions.",
                input_model=GetUserInfoInput,
                handler=records.get_user_info,
                ambient_fields=("user_id",),
            ),
            ToolSpec(
                name="get_emails",
                description="Read the user's synced emails, newest first, with unread counts.",
                input_model=GetEmailsInput,
                handler=records.get_emails,
            ),
            ToolSpec(
                name="search_tasks",
                description="Find the user's tasks similar to a query.",
                input_model=SearchTasksInput,
                handler=memory_search.search_tasks,
            ),
            ToolSpec(
                name="search_chat_messages",
                description="Find the user's chat messages similar to a query.",
                input_model=SearchChatMessagesInput,
                handler=memory_search.search_chat_messages,
            ),
            ToolSpec(
                name="find_relevant_context",
                description="Find similar tasks and user messages for a query in one call.",
                input_model=FindRelevantContextInput,
                handler=memory_search.find_relevant_context,
            ),
        ]
    )


def dispatcher_registry(registry: ToolRegistry | None = None) -> ToolRegistry:
    return (registry or build_registry()).subset(DISPATCHER_TOOLS)


def continuation_registry(registry: ToolRegistry | None = None) -> ToolRegistry:
    registry = registry or build_registry()
    return registry.subset(registry.names())


def list_tools() -> list[str]:
    return build_registry().names()
