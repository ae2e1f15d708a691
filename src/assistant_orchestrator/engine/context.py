"""Versioned working memory stored in ``TaskRecord.context``."""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field, ValidationError

if TYPE_CHECKING:
    from assistant_orchestrator.tools.schemas import ToolResult

CONTEXT_VERSION = 1
LEGACY_RESULTS_KEY = "last_tool_results"
_RESERVED_KEYS = frozenset(
    {LEGACY_RESULTS_KEY, "version", "step_index", "log", "notes", "budget_start"}
)


class LogEntry(BaseModel):
    step_index: int
    tool_name: str
    status: Literal["ok", "error"]
    result: Any = None
    reason: str | None = None


class TaskContext(BaseModel):
    """Append-bounded tool log plus free-form notes.

    ``step_index`` counts completed steps. Entries written by a step carry
    that step's index, so the previous step's results are the entries whose
    ``step_index`` equals the current value.
    """

    version: int = CONTEXT_VERSION
    step_index: int = 0
    log: list[LogEntry] = Field(default_factory=list)
    notes: dict[str, Any] = Field(default_factory=dict)
    # Step index at which the current run budget started; moved forward on resume.
    budget_start: int = 0

    @classmethod
    def from_raw(cls, raw: dict[str, Any] | None) -> "TaskContext":
        if not raw:
            return cls()
        if raw.get("version") == CONTEXT_VERSION and "log" in raw:
            try:
                return cls.model_validate(raw)
            except ValidationError:
                pass
        return cls._upgrade_legacy(raw)

    @classmethod
    def _upgrade_legacy(cls, raw: dict[str, Any]) -> "TaskContext":
        entries: list[LogEntry] = []
        legacy = raw.get(LEGACY_RESULTS_KEY)
        if isinstance(legacy, str):
            try:
                legacy = json.loads(legacy)
            except json.JSONDecodeError:
                legacy = [{"tool": "unknown", "status": "ok", "result": legacy}]
        if isinstance(legacy, list):
            for item in legacy:
                if isinstance(item, dict):
                    entries.append(_legacy_entry(item))
        notes = {
            key: value
            for key, value in raw.items()
            if key not in _RESERVED_KEYS
        }
        if isinstance(raw.get("notes"), dict):
            notes.update(raw["notes"])
        return cls(log=entries, notes=notes)

    def merge_notes(self, notes: dict[str, Any] | None) -> None:
        if notes:
            self.notes.update(notes)

    def record_step(self, results: Iterable[ToolResult], *, limit: int) -> int:
        """Append one step's results and advance ``step_index``; returns the new index."""
        self.step_index += 1
        for item in results:
            self.log.append(
                LogEntry(
                    step_index=self.step_index,
                    tool_name=item.tool,
                    status=item.status,
                    result=item.result if item.ok else None,
                    reason=item.reason,
                )
            )
        if len(self.log) > limit:
            del self.log[: len(self.log) - limit]
        return self.step_index

    def last_results(self) -> list[LogEntry]:
        return [entry for entry in self.log if entry.step_index == self.step_index]

    def earlier_results(self, limit: int = 10) -> list[LogEntry]:
        earlier = [entry for entry in self.log if entry.step_index < self.step_index]
        return earlier[-limit:] if limit > 0 else []

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


def _legacy_entry(item: dict[str, Any]) -> LogEntry:
    status = "error" if item.get("status") in {"error", "failed"} else "ok"
    return LogEntry(
        step_index=0,
        tool_name=str(item.get("tool") or item.get("tool_name") or item.get("name") or "unknown"),
        status=status,
        result=item.get("result"),
        reason=item.get("reason") or item.get("error"),
    )
