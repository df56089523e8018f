"""Tool events emitted around every tool invocation.

RepoToolset takes an EventLog in its constructor and emits a ``tool:start``
event before each call, followed by ``tool:success`` or ``tool:error``.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional, Protocol, Union

from pydantic import BaseModel, ConfigDict, Field


class ToolStartEvent(BaseModel):
    type: Literal["tool:start"] = "tool:start"
    tool: str
    input: Any = None


class ToolSuccessEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["tool:success"] = "tool:success"
    tool: str
    duration_ms: float = Field(alias="durationMs")
    output_summary: Any = Field(default=None, alias="outputSummary")


class ToolErrorEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["tool:error"] = "tool:error"
    tool: str
    duration_ms: float = Field(alias="durationMs")
    error: Any = None


ToolEvent = Annotated[
    Union[ToolStartEvent, ToolSuccessEvent, ToolErrorEvent],
    Field(discriminator="type"),
]


def event_to_dict(event: ToolEvent) -> dict[str, Any]:
    """Dump an event using its wire names (``durationMs``, ``outputSummary``)."""
    return event.model_dump(mode="json", by_alias=True)


class EventLog(Protocol):
    """Collaborator that receives tool events."""

    def emit(self, event: ToolEvent) -> None: ...


class LoggingEventLog:
    """Writes each event as one JSON line to a stdlib logger."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or logging.getLogger("pydantic_ai_repo_tools.events")

    def emit(self, event: ToolEvent) -> None:
        level = logging.WARNING if event.type == "tool:error" else logging.INFO
        if not self._logger.isEnabledFor(level):
            return
        record = {"ts": datetime.now(timezone.utc).isoformat(), **event_to_dict(event)}
        self._logger.log(level, json.dumps(record, default=str))


class MemoryEventLog:
    """Keeps events in memory. Handy for tests and for tracing a single run."""

    def __init__(self) -> None:
        self.events: list[ToolEvent] = []

    def emit(self, event: ToolEvent) -> None:
        self.events.append(event)

    def of_type(self, type_: str) -> list[ToolEvent]:
        return [e for e in self.events if e.type == type_]

    def clear(self) -> None:
        self.events.clear()


class SilentEventLog:
    """Discards every event."""

    def emit(self, event: ToolEvent) -> None:
        pass
