"""Name-keyed tool registry and the per-call context handlers receive."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from assistant_orchestrator.config.settings import Settings
from assistant_orchestrator.memory.service import MemoryService
from assistant_orchestrator.storage.base import AssistantStorage

if TYPE_CHECKING:
    from assistant_orchestrator.jobs.queue import JobQueue


@dataclass
class ToolContext:
    """Ambient state a handler acts under: always the calling user, sometimes a task."""

    user_id: str
    storage: AssistantStorage
    memory: MemoryService
    settings: Settings
    queue: JobQueue | None = None
    task_id: str | None = None
    session_id: str | None = None


Handler = Callable[[Any, ToolContext], Any]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_model: type[BaseModel]
    handler: Handler
    # Argument names filled from ToolContext when the model call leaves them out.
    ambient_fields: tuple[str, ...] = field(default=())

    def openai_definition(self) -> dict[str, Any]:
        schema = self.input_model.model_json_schema()
        schema.pop("title", None)
        for prop in schema.get("properties", {}).values():
            prop.pop("title", None)
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": schema,
            },
        }


class ToolRegistry:
    """Lookup table of tools; registering a name twice is an error."""

    def __init__(self, specs: Iterable[ToolSpec] = ()) -> None:
        self._specs: dict[str, ToolSpec] = {}
        for spec in specs:
            self.register(spec)

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._specs:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._specs[spec.name] = spec

    def get(self, name: str) -> ToolSpec | None:
        return self._specs.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def names(self) -> list[str]:
        return sorted(self._specs)

    def subset(self, names: Iterable[str]) -> "ToolRegistry":
        names = list(names)
        missing = [name for name in names if name not in self._specs]
        if missing:
            raise KeyError(f"Unknown tools: {', '.join(missing)}")
        return ToolRegistry(self._specs[name] for name in names)

    def openai_tool_definitions(self) -> list[dict[str, Any]]:
        return [self._specs[name].openai_definition() for name in self.names()]

    def describe(self) -> str:
        return "\n".join(f"- {name}: {self._specs[name].description}" for name in self.names())
