"""Sandbox: Path policy and root-relative resolution with structured errors.

This module provides the security boundary for repository exploration:
- RepoSandboxConfig for configuration
- Tool error classes (input, denied, filesystem) with a discriminant tag
- Path policy (deny-list of sensitive names and noisy directories)
- Sandbox class for lexical resolution and the realpath escape check

The Sandbox doesn't read files or walk directories.
For file operations, use RepoToolset which wraps a Sandbox.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class RepoSandboxConfig(BaseModel):
    """Configuration for a single-root repository sandbox."""

    root: Path = Field(description="Directory all tools are confined to")
    max_files: int = Field(
        default=400, ge=1, description="Default cap for listFiles and searchText"
    )
    max_read_bytes: int = Field(
        default=20_000, ge=1, description="Default byte cap for readFile"
    )
    max_matches: int = Field(
        default=50, ge=1, description="Default match cap for searchText"
    )
    search_file_bytes: int = Field(
        default=200_000, ge=1, description="Byte cap per file scanned by searchText"
    )
    preview_chars: int = Field(
        default=200, ge=1, description="Maximum characters in a search match preview"
    )

    @field_validator("root", mode="before")
    @classmethod
    def _absolute_root(cls, v: Any) -> Path:
        return Path(os.path.abspath(os.path.expanduser(str(v))))


# ---------------------------------------------------------------------------
# Tool Errors
# ---------------------------------------------------------------------------


class ToolError(Exception):
    """Base class for failures surfaced to the calling agent.

    Every subclass carries a ``tag`` naming its kind, so callers can branch
    on ``err.tag`` the same way they would on a tagged union.
    """

    tag = "ToolError"

    def __init__(self, tool: str, message: str):
        self.tool = tool
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"_tag": self.tag, "tool": self.tool, "message": self.message}


class ToolInputError(ToolError):
    """Raised when caller-supplied input is missing, wrong-typed or blank."""

    tag = "ToolInputError"

    def __init__(self, tool: str, message: str, input: Any):
        self.input = input
        super().__init__(tool, message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["input"] = self.input
        return data


class ToolDeniedError(ToolError):
    """Raised when a path is denied by policy or escapes the root."""

    tag = "ToolDeniedError"

    def __init__(self, tool: str, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(tool, f"Cannot access '{path}': {reason}")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(path=self.path, reason=self.reason)
        return data


class ToolFsError(ToolError):
    """Raised when an underlying filesystem operation fails."""

    tag = "ToolFsError"

    def __init__(self, tool: str, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(tool, message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["cause"] = repr(self.cause) if self.cause is not None else None
        return data


# ---------------------------------------------------------------------------
# Path Policy
# ---------------------------------------------------------------------------


DENIED_DIRECTORIES = (".git", "node_modules", "output")
"""Directory names whose whole subtree is blocked."""


class DenialVerdict(BaseModel):
    """Outcome of checking a root-relative path against the deny-list."""

    denied: bool
    reason: Optional[str] = None


_ALLOWED = DenialVerdict(denied=False)


def _posix_segments(rel: str) -> list[str]:
    normalized = rel.replace(os.sep, "/").replace("\\", "/")
    return [s for s in normalized.split("/") if s]


def is_denied_rel_path(rel: str) -> DenialVerdict:
    """Classify a root-relative path. Pure, no filesystem access."""
    segments = _posix_segments(rel)
    base = segments[-1] if segments else rel

    for name in DENIED_DIRECTORIES:
        if name in segments:
            return DenialVerdict(denied=True, reason=f"Reading {name} is blocked")

    if base == ".env" or base.startswith(".env."):
        return DenialVerdict(denied=True, reason="Reading .env is blocked")
    if base == "id_rsa" or base.startswith("id_rsa."):
        return DenialVerdict(denied=True, reason="Reading SSH keys is blocked")
    if base.endswith(".pem"):
        return DenialVerdict(denied=True, reason="Reading .pem files is blocked")
    if base.endswith(".key"):
        return DenialVerdict(denied=True, reason="Reading .key files is blocked")

    return _ALLOWED


def is_escaping_rel_path(rel: str) -> bool:
    """True if a relative path leaves the directory it is relative to."""
    if rel in ("", "."):
        return False
    if os.path.isabs(rel) or Path(rel).is_absolute():
        return True
    return ".." in _posix_segments(rel)


# ---------------------------------------------------------------------------
# Sandbox Implementation
# ---------------------------------------------------------------------------


class ResolvedPath(BaseModel):
    """A candidate path resolved against the root.

    ``relative`` never contains ``..`` and is never absolute. This is a
    lexical guarantee only; see Sandbox.ensure_realpath_inside_root.
    """

    absolute: Path
    relative: str


class Sandbox:
    """Security boundary for repository access.

    The Sandbox is responsible for:
    - Lexical resolution of caller paths against the root
    - Deny-list enforcement (Path Policy)
    - Realpath containment (symlink escapes)

    Example:
        sandbox = Sandbox(RepoSandboxConfig(root="./repo"))
        resolved = sandbox.resolve("readFile", "src/main.py")
        sandbox.ensure_realpath_inside_root("readFile", resolved)
    """

    def __init__(self, config: RepoSandboxConfig):
        self.config = config
        self._root = config.root

    @property
    def root(self) -> Path:
        """Absolute root directory. Never changes for the sandbox's lifetime."""
        return self._root

    # ---------------------------------------------------------------------------
    # Path Resolution
    # ---------------------------------------------------------------------------

    def resolve(self, tool: str, path: str) -> ResolvedPath:
        """Resolve a caller path inside the root.

        Args:
            tool: Tool name, used in errors
            path: Untrusted path, relative to the root

        Returns:
            ResolvedPath with absolute and POSIX relative forms

        Raises:
            ToolDeniedError: If the path escapes the root or is deny-listed
        """
        root = str(self._root)
        absolute = os.path.normpath(os.path.join(root, path))
        try:
            rel = os.path.relpath(absolute, root)
        except ValueError:
            # Different drives on Windows.
            raise ToolDeniedError(tool, path, "Path escapes target root")

        if is_escaping_rel_path(rel):
            raise ToolDeniedError(tool, path, "Path escapes target root")

        rel_posix = Path(rel).as_posix()
        verdict = is_denied_rel_path(rel_posix)
        if verdict.denied:
            raise ToolDeniedError(tool, rel_posix, verdict.reason or "Denied")

        return ResolvedPath(absolute=Path(absolute), relative=rel_posix)

    def ensure_realpath_inside_root(self, tool: str, resolved: ResolvedPath) -> None:
        """Check that the target still lies inside the root after following symlinks.

        A missing target is not checked here; the read that follows reports it.

        Raises:
            ToolDeniedError: If the real path is outside the root or deny-listed
            ToolFsError: If the real path cannot be determined
        """
        try:
            real_root = os.path.realpath(self._root, strict=True)
            real_target = os.path.realpath(resolved.absolute, strict=True)
        except FileNotFoundError:
            return
        except (OSError, ValueError) as e:
            raise ToolFsError(tool, f"Cannot resolve '{resolved.relative}': {e}", e)

        try:
            real_rel = os.path.relpath(real_target, real_root)
        except ValueError:
            real_rel = real_target

        if is_escaping_rel_path(real_rel):
            raise ToolDeniedError(
                tool, resolved.relative, "Path resolves outside target root"
            )

        verdict = is_denied_rel_path(Path(real_rel).as_posix())
        if verdict.denied:
            raise ToolDeniedError(tool, resolved.relative, verdict.reason or "Denied")
