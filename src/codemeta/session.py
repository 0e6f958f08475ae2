"""Per-workspace session state.

Holds what would otherwise be process globals: the active fragment set and
the flag that hides the engine's own edits from its edit observer. Two
sessions over two workspaces never share either.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from codemeta.config import CodeMetaConfig
from codemeta.errors import InvalidSetNameError, NoWorkspaceError

logger = logging.getLogger(__name__)

DEFAULT_SET = "default"


def sanitize_set_name(name: str | None) -> str:
    """Trim and hyphenate a set name; reject empty names and path separators."""
    trimmed = (name or "").strip()
    if not trimmed:
        raise InvalidSetNameError("switch_set", "set name cannot be empty")
    if re.search(r"[\\/]", trimmed):
        raise InvalidSetNameError("switch_set", f"slashes are not allowed: {trimmed!r}")
    if trimmed in (".", ".."):
        raise InvalidSetNameError("switch_set", f"not a folder name: {trimmed!r}")
    return re.sub(r"\s+", "-", trimmed)


class Session:
    """Explicit editing-session context for one workspace."""

    def __init__(self, workspace_root: Path | None, config: CodeMetaConfig | None = None) -> None:
        self.workspace_root = workspace_root
        self.config = config or CodeMetaConfig()
        self._active_set = DEFAULT_SET
        self._suppress_depth = 0

    # ── Workspace ─────────────────────────────────────────────

    def require_root(self, operation: str) -> Path:
        if self.workspace_root is None:
            raise NoWorkspaceError(operation)
        return self.workspace_root

    @property
    def cms_dir(self) -> Path | None:
        if self.workspace_root is None:
            return None
        return self.workspace_root / self.config.cms_folder

    def relative_path(self, path: Path) -> str:
        """Workspace-relative POSIX path, used as the refs cache key."""
        root = self.require_root("relative_path")
        try:
            return path.resolve().relative_to(root.resolve()).as_posix()
        except ValueError:
            return path.as_posix()

    # ── Active set ────────────────────────────────────────────

    @property
    def active_set(self) -> str:
        return self._active_set

    def switch_set(self, name: str) -> str:
        """Make ``name`` the active set, creating its directory."""
        set_name = sanitize_set_name(name)
        cms_dir = self.require_root("switch_set") / self.config.cms_folder
        (cms_dir / set_name).mkdir(parents=True, exist_ok=True)
        if set_name != self._active_set:
            logger.info("Active set switched to %r", set_name)
        self._active_set = set_name
        return set_name

    def list_sets(self) -> list[str]:
        """Active set first, then ``default``, then every other set directory."""
        names = [self._active_set, DEFAULT_SET]
        cms_dir = self.cms_dir
        if cms_dir is not None and cms_dir.is_dir():
            names.extend(sorted(p.name for p in cms_dir.iterdir() if p.is_dir()))
        return list(dict.fromkeys(names))

    # ── Self-observation guard ────────────────────────────────

    @contextmanager
    def suppress_observation(self) -> Iterator[None]:
        """Hide edits made inside this block from the edit observer."""
        self._suppress_depth += 1
        try:
            yield
        finally:
            self._suppress_depth -= 1

    @property
    def observing(self) -> bool:
        return self._suppress_depth == 0
