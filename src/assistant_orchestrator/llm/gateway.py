"""LLM gateway contract and the OpenAI tool-calling adapter."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from assistant_orchestrator.config.settings import Settings
from assistant_orchestrator.errors import LLMGatewayError
from assistant_orchestrator.llm.http import post_json_with_retry

logger = logging.getLogger(__name__)

ToolChoice = Literal["auto", "required", "none"]


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments_json: str = "{}"


@dataclass(frozen=True)
class GatewayReply:
    tool_calls: list[ToolCall] = field(default_factory=list)
    content: str | None = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class LLMGateway(Protocol):
    def complete(
        self,
        messages: list[dict[str, Any]],
        *,
        system_prompt: str,
        tools: list[dict[str, Any]],
        tool_choice: ToolChoice = "auto",
    ) -> GatewayReply: ...


class OpenAIToolCallingGateway:
    """Chat-completions client that returns structured tool calls."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str = "https://api.openai.com/v1",
        timeout_s: float = 30.0,
        max_retries: int = 1,
        backoff_s: float = 0.5,
        temperature: float = 0.2,
        max_tokens: int = 4096,
    ) -> None:
        if not api_key:
            raise LLMGatewayError("OPENAI_API_KEY is missing")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.backoff_s = backoff_s
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAIToolCallingGateway":
        provider = settings.llm_provider.lower().strip()
        if provider != "openai":
            raise LLMGatewayError(f"Unsupported LLM provider: {settings.llm_provider}")
        return cls(
            api_key=settings.resolved_openai_api_key(),
            model=settings.llm_model,
            base_url=settings.llm_base_url,
            timeout_s=settings.llm_timeout_s,
            max_retries=settings.llm_max_retries,
            backoff_s=settings.llm_backoff_s,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )

    def complete(
        self,
        messages: list[dict[str, Any]],
        *,
        system_prompt: str,
        tools: list[dict[str, Any]],
        tool_choice: ToolChoice = "auto",
    ) -> GatewayReply:
        body: dict[str, Any] = {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "system", "content": system_prompt}, *messages],
        }
        if tools:
            body["tools"] = tools
            body["tool_choice"] = tool_choice

        logger.info(
            "event=llm_request model=%s messages=%d tools=%d tool_choice=%s",
            self.model,
            len(body["messages"]),
            len(tools),
            tool_choice,
        )
        response_json = post_json_with_retry(
            url=f"{self.base_url}/chat/completions",
            api_key=self.api_key,
            body=body,
            timeout_s=self.timeout_s,
            max_retries=self.max_retries,
            backoff_s=self.backoff_s,
            error_cls=LLMGatewayError,
        )
        reply = parse_reply(response_json)
        logger.info(
            "event=llm_response model=%s tool_calls=%d has_content=%s",
            self.model,
            len(reply.tool_calls),
            bool(reply.content),
        )
        return reply


def parse_reply(response_json: dict[str, Any]) -> GatewayReply:
    choices = response_json.get("choices", [])
    if not choices:
        raise LLMGatewayError("LLM response missing choices")

    message = choices[0].get("message") or {}
    calls: list[ToolCall] = []
    for index, raw_call in enumerate(message.get("tool_calls") or []):
        function = raw_call.get("function") if isinstance(raw_call, dict) else None
        if not isinstance(function, dict) or not function.get("name"):
            raise LLMGatewayError("LLM response contained a malformed tool call")
        calls.append(
            ToolCall(
                id=str(raw_call.get("id") or f"call_{index}"),
                name=str(function["name"]),
                arguments_json=_arguments_json(function.get("arguments")),
            )
        )

    content = message.get("content")
    if isinstance(content, list):
        content = "".join(
            item["text"]
            for item in content
            if isinstance(item, dict) and isinstance(item.get("text"), str)
        )
    text = content.strip() if isinstance(content, str) else ""
    return GatewayReply(tool_calls=calls, content=text or None)


def require_gateway(gateway: LLMGateway | None) -> LLMGateway:
    if gateway is None:
        raise LLMGatewayError("No LLM gateway configured; set OPENAI_API_KEY")
    return gateway


def _arguments_json(arguments: Any) -> str:
    if isinstance(arguments, str):
        return arguments or "{}"
    if arguments is None:
        return "{}"
    # Some OpenAI-compatible providers send the arguments already decoded.
    return json.dumps(arguments)
