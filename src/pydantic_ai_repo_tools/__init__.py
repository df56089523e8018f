"""Read-only repository tools for PydanticAI agents, confined to one root.

This package lets an agent explore a directory tree with:
- Sandbox: Path resolution, deny-list policy and symlink escape checks
- RepoToolset: listFiles, searchText and readFile tools
- Tool events: start/success/error events sent to an injected EventLog
- Structured errors tagged ToolInputError, ToolDeniedError or ToolFsError

Architecture:
    Sandbox handles policy (root containment, deny-list, realpath checks).
    RepoToolset handles input validation, file I/O and event emission.

Usage (simple):
    from pydantic_ai_repo_tools import RepoToolset

    toolset = RepoToolset.create_default("./repo")
    agent = Agent(..., toolsets=[toolset])

Usage (custom limits and event log):
    from pydantic_ai_repo_tools import (
        MemoryEventLog, RepoSandboxConfig, RepoToolset, Sandbox
    )

    events = MemoryEventLog()
    sandbox = Sandbox(RepoSandboxConfig(root="./repo", max_files=100))
    toolset = RepoToolset(sandbox, event_log=events)
    toolset.read_file({"path": "README.md", "maxBytes": 4096})

Usage (from environment):
    from pydantic_ai_repo_tools import RepoToolset, RepoToolsSettings, configure_logging

    settings = RepoToolsSettings()
    configure_logging(settings.log_level)
    toolset = RepoToolset.from_settings(settings)
"""

from .sandbox import (
    # Configuration
    RepoSandboxConfig,
    # Sandbox
    Sandbox,
    ResolvedPath,
    # Policy
    DenialVerdict,
    is_denied_rel_path,
    # Errors
    ToolError,
    ToolInputError,
    ToolDeniedError,
    ToolFsError,
)

from .events import (
    ToolEvent,
    ToolStartEvent,
    ToolSuccessEvent,
    ToolErrorEvent,
    EventLog,
    LoggingEventLog,
    MemoryEventLog,
    SilentEventLog,
)

from .settings import (
    RepoToolsSettings,
    configure_logging,
)

from .toolset import (
    # Toolset
    RepoToolset,
    # Results
    ReadResult,
    ListFilesResult,
    SearchMatch,
    SearchTextResult,
    ReadFileResult,
    # Building blocks
    read_text_capped,
    walk_files,
)

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "RepoSandboxConfig",
    "RepoToolsSettings",
    "configure_logging",
    # Sandbox (security boundary)
    "Sandbox",
    "ResolvedPath",
    "DenialVerdict",
    "is_denied_rel_path",
    # Toolset
    "RepoToolset",
    "read_text_capped",
    "walk_files",
    # Results
    "ReadResult",
    "ListFilesResult",
    "SearchMatch",
    "SearchTextResult",
    "ReadFileResult",
    # Events
    "ToolEvent",
    "ToolStartEvent",
    "ToolSuccessEvent",
    "ToolErrorEvent",
    "EventLog",
    "LoggingEventLog",
    "MemoryEventLog",
    "SilentEventLog",
    # Errors
    "ToolError",
    "ToolInputError",
    "ToolDeniedError",
    "ToolFsError",
]
