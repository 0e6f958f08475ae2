"""CodeMeta orchestrator — one object per open workspace.

Responsibilities:
1. Own the session (active set, self-edit guard)
2. Wire store, allocator, reference index and rewriter together
3. Expose the operations the UI layer and the CLI call
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from codemeta.config import CodeMetaConfig
from codemeta.decorations import Debouncer, LineDecoration, line_decorations
from codemeta.fragments.store import FragmentStore
from codemeta.ids import IdAllocator
from codemeta.references import Occurrence, ReferenceIndex
from codemeta.rewriter import BindResult, ChangeEvent, EditableDocument, MarkerRewriter
from codemeta.session import DEFAULT_SET, Session
from codemeta.summary import SummaryFormat, write_summary

logger = logging.getLogger(__name__)


class CodeMeta:
    """Marker–fragment engine for one workspace."""

    def __init__(self, workspace_root: Path | None, config: CodeMetaConfig | None = None) -> None:
        self.session = Session(workspace_root, config)
        self.store = FragmentStore(self.session)
        self.allocator = IdAllocator(self.session, self.store)
        self.index = ReferenceIndex(self.session, self.store)
        self.rewriter = MarkerRewriter(self.session, self.allocator, self.store)

    @property
    def config(self) -> CodeMetaConfig:
        return self.session.config

    # ── Lifecycle ─────────────────────────────────────────────

    def activate(self, active_set: str | None = None) -> None:
        """Create the default and active set folders."""
        if self.session.workspace_root is None:
            logger.info("No workspace open, fragment storage disabled")
            return
        self.store.ensure_set(DEFAULT_SET)
        if active_set:
            self.session.switch_set(active_set)

    def switch_set(self, name: str) -> str:
        return self.session.switch_set(name)

    def list_sets(self) -> list[str]:
        return self.session.list_sets()

    # ── Editing ───────────────────────────────────────────────

    async def on_change(self, document: EditableDocument, event: ChangeEvent) -> BindResult | None:
        return await self.rewriter.handle_change(document, event)

    async def create_fragment(self, document: EditableDocument, line: int) -> BindResult | None:
        return await self.rewriter.bind(document, line)

    async def open_fragment_at_line(
        self, document: EditableDocument, line: int
    ) -> BindResult | None:
        return await self.rewriter.open_at_line(document, line)

    def on_save(self, relative_path: str, text: str) -> dict[str, int]:
        """Refresh cached reference counts from a saved document."""
        if self.session.workspace_root is None:
            return {}
        return self.index.observe_document(relative_path, text)

    # ── Queries ───────────────────────────────────────────────

    def decorations(self, lines: list[str]) -> list[LineDecoration]:
        return line_decorations(lines, self.store)

    def refresh_debouncer(self, refresh: Callable[[], Awaitable[None]]) -> Debouncer:
        return Debouncer(refresh, self.config.refresh_debounce_ms / 1000)

    async def references(self, fragment_id: str) -> list[Occurrence]:
        return await self.index.find_references(fragment_id)

    async def summarize(self, set_name: str | None = None, fmt: SummaryFormat = "markdown") -> Path:
        self.session.require_root("summarize_set")
        return await write_summary(self.store, self.index, set_name, fmt)
