"""RepoToolset: Read-only repository exploration tools for PydanticAI agents.

This module provides the RepoToolset, a PydanticAI AbstractToolset with three
tools (listFiles, searchText, readFile) confined to a Sandbox root.

The toolset uses a Sandbox for path resolution and policy, keeping concerns
cleanly separated. Tool arguments arrive as untrusted JSON; each tool coerces
and validates its own input.

Example:
    from pydantic_ai_repo_tools import RepoToolset

    toolset = RepoToolset.create_default("./repo")
    agent = Agent(..., toolsets=[toolset])
"""
from __future__ import annotations

import codecs
import hashlib
import logging
import math
import os
import re
import sys
import time
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic_ai.toolsets import AbstractToolset, ToolsetTool
from pydantic_ai.tools import RunContext, ToolDefinition

from .events import (
    EventLog,
    LoggingEventLog,
    SilentEventLog,
    ToolErrorEvent,
    ToolStartEvent,
    ToolSuccessEvent,
)
from .sandbox import (
    DENIED_DIRECTORIES,
    RepoSandboxConfig,
    ResolvedPath,
    Sandbox,
    ToolError,
    ToolFsError,
    ToolInputError,
    is_denied_rel_path,
)
from .settings import RepoToolsSettings

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


BINARY_EXTENSIONS = re.compile(
    r"\.(png|jpg|jpeg|gif|webp|ico|zip|gz|tgz|jar|pdf|woff2?)$", re.IGNORECASE
)
"""Files searchText never opens."""

_LINE_SPLIT = re.compile(r"\r?\n")

_READ_CHUNK_BYTES = 64 * 1024


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ReadResult(BaseModel):
    """Bytes read from a file, decoded as UTF-8."""

    content: str = Field(description="Decoded content, at most max_bytes bytes of the file")
    truncated: bool = Field(description="True if the file is larger than max_bytes")


class ListFilesResult(BaseModel):
    root: str
    files: list[str]


class SearchMatch(BaseModel):
    path: str
    line: int = Field(description="1-based line number")
    preview: str


class SearchTextResult(BaseModel):
    root: str
    query: str
    matches: list[SearchMatch]


class ReadFileResult(BaseModel):
    path: str
    content: str
    truncated: bool


# ---------------------------------------------------------------------------
# Tool Argument Models
#
# These only describe the schema offered to the model. The transport does not
# enforce them, so the tools validate raw input themselves.
# ---------------------------------------------------------------------------


class ListFilesArgs(BaseModel):
    """Arguments for listFiles tool."""

    model_config = ConfigDict(extra="forbid")

    max: Optional[int] = Field(
        default=None, ge=1, description="Maximum number of files to return"
    )


class SearchTextArgs(BaseModel):
    """Arguments for searchText tool."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    query: str = Field(min_length=1, description="String to search for")
    max_matches: Optional[int] = Field(
        default=None, ge=1, alias="maxMatches", description="Maximum matches to return"
    )


class ReadFileArgs(BaseModel):
    """Arguments for readFile tool."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    path: str = Field(min_length=1, description="File path relative to target directory")
    max_bytes: Optional[int] = Field(
        default=None, ge=1, alias="maxBytes", description="Maximum bytes to read (truncates)"
    )


# ---------------------------------------------------------------------------
# Safe Reader
# ---------------------------------------------------------------------------


def read_text_capped(tool: str, path: Path, max_bytes: int) -> ReadResult:
    """Read at most ``max_bytes`` bytes of a file and decode them as UTF-8.

    Invalid bytes become U+FFFD. When the file is truncated, a multi-byte
    character cut in half by the limit is dropped instead of being replaced,
    so the content may be up to three bytes shorter than ``max_bytes``.

    Raises:
        ToolFsError: If the file cannot be opened or read
    """
    chunks: list[bytes] = []
    remaining = max_bytes + 1
    try:
        with open(path, "rb") as f:
            while remaining > 0:
                chunk = f.read(min(remaining, _READ_CHUNK_BYTES))
                if not chunk:
                    break
                chunks.append(chunk)
                remaining -= len(chunk)
    except (OSError, ValueError) as e:
        raise ToolFsError(tool, str(e) or "Failed to read file", e)

    data = b"".join(chunks)
    truncated = len(data) > max_bytes
    if truncated:
        data = data[:max_bytes]

    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    content = decoder.decode(data, final=not truncated)
    return ReadResult(content=content, truncated=truncated)


# ---------------------------------------------------------------------------
# Directory Walker
# ---------------------------------------------------------------------------


def walk_files(root: Path, max_files: int, tool: str = "listFiles") -> list[str]:
    """List regular files under root as sorted POSIX paths relative to root.

    Denied directories are pruned and symbolic links are never followed or
    listed. Files are filtered by Path Policy, sorted, then capped.

    Raises:
        ToolFsError: If a directory cannot be read
    """
    files: list[str] = []
    stack = [str(root)]

    try:
        while stack:
            directory = stack.pop()
            with os.scandir(directory) as entries:
                for entry in entries:
                    if entry.name in DENIED_DIRECTORIES:
                        continue
                    if entry.is_symlink():
                        continue
                    if entry.is_dir(follow_symlinks=False):
                        stack.append(entry.path)
                    elif entry.is_file(follow_symlinks=False):
                        rel = os.path.relpath(entry.path, root)
                        files.append(Path(rel).as_posix())
    except OSError as e:
        raise ToolFsError(tool, str(e) or "Failed to list files", e)

    allowed = [rel for rel in files if not is_denied_rel_path(rel).denied]
    allowed.sort()
    return allowed[:max_files]


# ---------------------------------------------------------------------------
# Input Coercion
# ---------------------------------------------------------------------------


def _as_mapping(raw: Any) -> Optional[dict[str, Any]]:
    return raw if isinstance(raw, dict) else None


def _positive_int(value: Any, default: int) -> int:
    """Floor a positive finite number; anything else falls back to default."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if isinstance(value, float) and not math.isfinite(value):
        return default
    if value <= 0:
        return default
    # Clamp so huge ints stay usable as slice bounds and read sizes.
    return min(max(1, math.floor(value)), sys.maxsize)


def _required_str(tool: str, raw: Any, key: str) -> str:
    obj = _as_mapping(raw)
    value = obj.get(key) if obj is not None else None
    if not isinstance(value, str) or not value.strip():
        raise ToolInputError(tool, f"Invalid input: expected {{ {key}: string }}", raw)
    return value


def _content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]


# ---------------------------------------------------------------------------
# RepoToolset Implementation
# ---------------------------------------------------------------------------


class RepoToolset(AbstractToolset[Any]):
    """Read-only repository toolset for PydanticAI agents.

    Provides listFiles, searchText and readFile, all confined to the
    sandbox root. Every call emits tool events to the injected EventLog.

    Example:
        # Simple usage
        toolset = RepoToolset.create_default("./repo")

        # Custom limits and a recording event log
        events = MemoryEventLog()
        sandbox = Sandbox(RepoSandboxConfig(root="./repo", max_files=100))
        toolset = RepoToolset(sandbox, event_log=events)
    """

    def __init__(
        self,
        sandbox: Sandbox,
        event_log: Optional[EventLog] = None,
        id: Optional[str] = None,
        max_retries: int = 1,
    ):
        """Initialize the repository toolset.

        Args:
            sandbox: Sandbox for path resolution and policy
            event_log: Receiver for tool events (default: LoggingEventLog)
            id: Optional toolset ID for durable execution
            max_retries: Maximum number of retries for tool calls (default: 1)
        """
        self._sandbox = sandbox
        self._event_log: EventLog = event_log if event_log is not None else LoggingEventLog()
        self._toolset_id = id
        self._max_retries = max_retries
        self._handlers: dict[str, Callable[[Any], BaseModel]] = {
            "listFiles": self.list_files,
            "searchText": self.search_text,
            "readFile": self.read_file,
        }

    @classmethod
    def create_default(
        cls,
        root: str | Path,
        event_log: Optional[EventLog] = None,
        id: Optional[str] = None,
    ) -> "RepoToolset":
        """Create a toolset for a root directory with default limits."""
        return cls(Sandbox(RepoSandboxConfig(root=root)), event_log=event_log, id=id)

    @classmethod
    def from_settings(
        cls, settings: RepoToolsSettings, event_log: Optional[EventLog] = None
    ) -> "RepoToolset":
        """Create a toolset from environment settings."""
        if event_log is None and settings.silent_events:
            event_log = SilentEventLog()
        return cls(Sandbox(settings.to_sandbox_config()), event_log=event_log)

    @property
    def sandbox(self) -> Sandbox:
        """Access the underlying sandbox."""
        return self._sandbox

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    @property
    def root(self) -> str:
        return str(self._sandbox.root)

    # ---------------------------------------------------------------------------
    # Tools
    # ---------------------------------------------------------------------------

    def list_files(self, raw: Any = None) -> ListFilesResult:
        """List files under the root.

        Args:
            raw: Untrusted input, ``{max?: int}``. An invalid ``max`` is
                replaced with the default rather than rejected.

        Raises:
            ToolFsError: If the tree cannot be walked
        """
        obj = _as_mapping(raw) or {}
        max_files = _positive_int(obj.get("max"), self._sandbox.config.max_files)

        def run() -> ListFilesResult:
            files = walk_files(self._sandbox.root, max_files)
            return ListFilesResult(root=self.root, files=files)

        return self._logged(
            "listFiles",
            {"max": max_files},
            run,
            lambda out: {"fileCount": len(out.files), "sample": out.files[:20]},
        )

    def search_text(self, raw: Any) -> SearchTextResult:
        """Search text files for a literal, case-sensitive substring.

        Args:
            raw: Untrusted input, ``{query: str, maxMatches?: int}``

        Raises:
            ToolInputError: If query is missing or blank
            ToolDeniedError: If a candidate file resolves outside the root
            ToolFsError: If listing or reading fails
        """
        query = _required_str("searchText", raw, "query")
        config = self._sandbox.config
        max_matches = _positive_int(raw.get("maxMatches"), config.max_matches)

        def run() -> SearchTextResult:
            files = walk_files(self._sandbox.root, config.max_files, tool="searchText")
            matches: list[SearchMatch] = []

            for rel in files:
                if len(matches) >= max_matches:
                    break
                if BINARY_EXTENSIONS.search(rel):
                    continue

                resolved = self._resolve_checked("searchText", rel)
                text = read_text_capped("searchText", resolved.absolute, config.search_file_bytes)

                for number, line in enumerate(_LINE_SPLIT.split(text.content), start=1):
                    if len(matches) >= max_matches:
                        break
                    if query in line:
                        matches.append(
                            SearchMatch(
                                path=rel, line=number, preview=line[: config.preview_chars]
                            )
                        )

            return SearchTextResult(root=self.root, query=query, matches=matches)

        return self._logged(
            "searchText",
            {"query": query, "maxMatches": max_matches},
            run,
            lambda out: {
                "matchCount": len(out.matches),
                "sample": [m.model_dump() for m in out.matches[:10]],
            },
        )

    def read_file(self, raw: Any) -> ReadFileResult:
        """Read a UTF-8 text file under the root, truncated to maxBytes.

        Args:
            raw: Untrusted input, ``{path: str, maxBytes?: int}``

        Raises:
            ToolInputError: If path is missing or blank
            ToolDeniedError: If the path escapes the root or is deny-listed
            ToolFsError: If the file cannot be read
        """
        path = _required_str("readFile", raw, "path")
        max_bytes = _positive_int(raw.get("maxBytes"), self._sandbox.config.max_read_bytes)

        def run() -> ReadFileResult:
            resolved = self._resolve_checked("readFile", path)
            text = read_text_capped("readFile", resolved.absolute, max_bytes)
            return ReadFileResult(
                path=resolved.relative, content=text.content, truncated=text.truncated
            )

        return self._logged(
            "readFile",
            {"path": path, "maxBytes": max_bytes},
            run,
            lambda out: {
                "path": out.path,
                "bytes": len(out.content.encode("utf-8")),
                "truncated": out.truncated,
                "sha256_16": _content_hash(out.content),
            },
        )

    def execute(self, name: str, raw: Any) -> dict[str, Any]:
        """Run a tool by name on raw JSON input and return a plain JSON result."""
        handler = self._handlers.get(name)
        if handler is None:
            raise ValueError(f"Unknown tool: {name}")
        return handler(raw).model_dump(mode="json")

    # ---------------------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------------------

    def _resolve_checked(self, tool: str, path: str) -> ResolvedPath:
        resolved = self._sandbox.resolve(tool, path)
        self._sandbox.ensure_realpath_inside_root(tool, resolved)
        return resolved

    def _logged(
        self,
        tool: str,
        input: dict[str, Any],
        run: Callable[[], T],
        summarize: Callable[[T], Any],
    ) -> T:
        """Emit start/success/error events around run(); errors are re-raised as-is."""
        self._event_log.emit(ToolStartEvent(tool=tool, input=input))
        started = time.perf_counter()
        try:
            result = run()
        except Exception as e:
            duration_ms = (time.perf_counter() - started) * 1000
            error = e.to_dict() if isinstance(e, ToolError) else {
                "type": type(e).__name__,
                "message": str(e),
            }
            if not isinstance(e, ToolError):
                logger.exception("Unexpected failure in %s", tool)
            self._event_log.emit(
                ToolErrorEvent(tool=tool, duration_ms=duration_ms, error=error)
            )
            raise

        duration_ms = (time.perf_counter() - started) * 1000
        self._event_log.emit(
            ToolSuccessEvent(
                tool=tool, duration_ms=duration_ms, output_summary=summarize(result)
            )
        )
        return result

    # ---------------------------------------------------------------------------
    # AbstractToolset Implementation
    # ---------------------------------------------------------------------------

    @property
    def id(self) -> str | None:
        """Unique identifier for this toolset."""
        return self._toolset_id

    async def get_tools(self, ctx: RunContext[Any]) -> dict[str, ToolsetTool[Any]]:
        """Return the tools provided by this toolset."""
        descriptions = {
            "listFiles": (
                "List files under the target directory (safe subset).",
                ListFilesArgs,
            ),
            "searchText": (
                "Search for a string in text files under the target directory. "
                "Returns matching lines (capped).",
                SearchTextArgs,
            ),
            "readFile": (
                "Read a UTF-8 text file under the target directory (safe subset). "
                "Returns truncated content if needed.",
                ReadFileArgs,
            ),
        }
        # Any JSON object is accepted here; the tools validate it themselves.
        validator = TypeAdapter(dict[str, Any]).validator

        tools = {}
        for name, (description, args_model) in descriptions.items():
            tools[name] = ToolsetTool(
                toolset=self,
                tool_def=ToolDefinition(
                    name=name,
                    description=description,
                    parameters_json_schema=args_model.model_json_schema(by_alias=True),
                ),
                max_retries=self._max_retries,
                args_validator=validator,
            )
        return tools

    async def call_tool(
        self,
        name: str,
        tool_args: Any,
        ctx: RunContext[Any],
        tool: ToolsetTool[Any],
    ) -> Any:
        """Call a tool with the given arguments.

        Args:
            name: Tool name
            tool_args: Raw argument dict from the model
            ctx: PydanticAI run context
            tool: ToolsetTool instance
        """
        return self.execute(name, tool_args)
