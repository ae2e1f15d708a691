"""Schema-enforcing tool execution gateway.

``ToolExecutor`` is the only place tool exceptions are caught: every call,
including unknown names and malformed arguments, comes back as a
``ToolResult``.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from pydantic import ValidationError

from assistant_orchestrator.errors import OrchestratorError
from assistant_orchestrator.llm.gateway import ToolCall
from assistant_orchestrator.tools.registry import ToolContext, ToolRegistry
from assistant_orchestrator.tools.schemas import ToolResult

logger = logging.getLogger(__name__)


class ToolExecutor:
    """Execute registered tools with strict validation and uniform error results."""

    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry

    def execute_call(self, call: ToolCall, context: ToolContext) -> ToolResult:
        try:
            arguments = json.loads(call.arguments_json or "{}")
        except json.JSONDecodeError as exc:
            return ToolResult(
                tool=call.name,
                status="error",
                reason=f"Invalid JSON arguments for {call.name}: {exc.msg}",
            )
        if not isinstance(arguments, dict):
            return ToolResult(
                tool=call.name,
                status="error",
                reason=f"Arguments for {call.name} must be a JSON object",
            )
        return self.execute(call.name, arguments, context)

    def execute(
        self, tool_name: str, arguments: dict[str, Any], context: ToolContext
    ) -> ToolResult:
        started_at = time.perf_counter()
        spec = self.registry.get(tool_name)
        if spec is None:
            logger.warning("event=tool_unknown tool=%s user_id=%s", tool_name, context.user_id)
            return ToolResult(tool=tool_name, status="error", reason=f"Unknown tool: {tool_name}")

        args = dict(arguments)
        for name in spec.ambient_fields:
            if args.get(name) in (None, ""):
                ambient = getattr(context, name, None)
                if ambient:
                    args[name] = ambient

        logger.debug("event=tool_call tool=%s args=%s", tool_name, args)
        try:
            payload = spec.input_model.model_validate(args)
            output = spec.handler(payload, context)
        except ValidationError as exc:
            reason = f"Invalid arguments for {tool_name}: {_format_validation_error(exc)}"
            return self._error(tool_name, reason, started_at, context)
        except OrchestratorError as exc:
            return self._error(tool_name, str(exc), started_at, context)
        except Exception as exc:  # noqa: BLE001
            logger.exception("event=tool_crashed tool=%s user_id=%s", tool_name, context.user_id)
            return self._error(tool_name, f"{type(exc).__name__}: {exc}", started_at, context)

        duration_ms = _duration_ms(started_at)
        logger.info(
            "event=tool_ok tool=%s user_id=%s task_id=%s duration_ms=%s",
            tool_name,
            context.user_id,
            context.task_id,
            duration_ms,
        )
        return ToolResult(tool=tool_name, status="ok", result=output, duration_ms=duration_ms)

    @staticmethod
    def _error(
        tool_name: str, reason: str, started_at: float, context: ToolContext
    ) -> ToolResult:
        duration_ms = _duration_ms(started_at)
        logger.info(
            "event=tool_error tool=%s user_id=%s task_id=%s reason=%s",
            tool_name,
            context.user_id,
            context.task_id,
            reason,
        )
        return ToolResult(tool=tool_name, status="error", reason=reason, duration_ms=duration_ms)


def _format_validation_error(exc: ValidationError) -> str:
    parts: list[str] = []
    for item in exc.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "arguments"
        parts.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "; ".join(parts)


def _duration_ms(started_at: float) -> float:
    return round((time.perf_counter() - started_at) * 1000.0, 2)
