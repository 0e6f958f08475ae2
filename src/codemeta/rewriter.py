"""Marker rewriter: bind an unbound marker to a freshly allocated fragment.

Flow for one keystroke:

    edit observed → activation gesture? → allocate ID → rewrite the marker
    token in one edit (observer muted) → ensure the fragment record

Bound markers are never rewritten, and undo/redo never allocates.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from codemeta.fragments.store import FragmentStore
from codemeta.ids import IdAllocator
from codemeta.scanner import ACTIVATION_CHARS, canonical_token, is_activation, scan_line
from codemeta.session import Session

logger = logging.getLogger(__name__)


class ChangeReason(enum.Enum):
    TYPING = "typing"
    UNDO = "undo"
    REDO = "redo"


@dataclass(frozen=True)
class ChangeEvent:
    """A single-range text insertion as reported by the editor."""

    line: int
    column: int
    text: str
    reason: ChangeReason = ChangeReason.TYPING


@dataclass(frozen=True)
class TextEdit:
    """Replace columns ``[start, end)`` of ``line`` with ``text``."""

    line: int
    start: int
    end: int
    text: str


@dataclass
class BindResult:
    """Outcome of binding or opening a marker."""

    fragment_id: str
    path: Path
    created: bool
    line_text: str


@runtime_checkable
class EditableDocument(Protocol):
    """What the rewriter needs from an open editor document."""

    @property
    def relative_path(self) -> str: ...

    @property
    def line_count(self) -> int: ...

    def line_text(self, line: int) -> str: ...

    async def apply_edit(self, edit: TextEdit) -> bool:
        """Apply one edit without an undo stop. Returns False if rejected."""
        ...


ChangeObserver = Callable[["BufferDocument", ChangeEvent], object]


class BufferDocument:
    """In-memory document; notifies observers synchronously after each edit."""

    def __init__(self, text: str, relative_path: str = "untitled") -> None:
        self._lines = text.split("\n")
        self._relative_path = relative_path
        self._observers: list[ChangeObserver] = []
        self.edits: list[TextEdit] = []

    @property
    def relative_path(self) -> str:
        return self._relative_path

    @property
    def line_count(self) -> int:
        return len(self._lines)

    @property
    def text(self) -> str:
        return "\n".join(self._lines)

    def line_text(self, line: int) -> str:
        return self._lines[line]

    def subscribe(self, observer: ChangeObserver) -> None:
        self._observers.append(observer)

    def type_text(self, line: int, column: int, text: str) -> ChangeEvent:
        """Simulate the user typing ``text`` at a position."""
        current = self._lines[line]
        self._lines[line] = current[:column] + text + current[column:]
        event = ChangeEvent(line=line, column=column, text=text)
        self._notify(event)
        return event

    async def apply_edit(self, edit: TextEdit) -> bool:
        current = self._lines[edit.line]
        if edit.end > len(current) or edit.start > edit.end:
            return False
        self._lines[edit.line] = current[: edit.start] + edit.text + current[edit.end :]
        self.edits.append(edit)
        self._notify(ChangeEvent(line=edit.line, column=edit.start, text=edit.text))
        return True

    def _notify(self, event: ChangeEvent) -> None:
        for observer in self._observers:
            observer(self, event)


class MarkerRewriter:
    """Turns bare markers into ``//codemeta[ID]`` exactly once."""

    def __init__(self, session: Session, allocator: IdAllocator, store: FragmentStore) -> None:
        self.session = session
        self.allocator = allocator
        self.store = store

    def _pre_change_line(self, document: EditableDocument, event: ChangeEvent) -> str:
        line = document.line_text(event.line)
        if line[event.column : event.column + 1] == event.text:
            return line[: event.column] + line[event.column + 1 :]
        return line

    def should_handle(self, document: EditableDocument, event: ChangeEvent) -> bool:
        """Whether a change event is the activation gesture on an unbound marker."""
        if event.reason in (ChangeReason.UNDO, ChangeReason.REDO):
            return False
        if not self.session.observing:
            return False
        if event.text not in ACTIVATION_CHARS:
            return False
        return is_activation(self._pre_change_line(document, event), event.column, event.text)

    async def handle_change(
        self, document: EditableDocument, event: ChangeEvent
    ) -> BindResult | None:
        """React to one observed edit; binds the marker when the gesture matches."""
        if not self.should_handle(document, event):
            return None
        # The trigger sits at the marker end, so pre-change offsets still apply.
        consume = 1 if event.text == "_" else 0
        pre_line = self._pre_change_line(document, event)
        return await self._bind(document, event.line, consume, pre_line)

    async def bind(self, document: EditableDocument, line: int) -> BindResult | None:
        """Bind the marker on ``line``. A no-op for bound or missing markers."""
        return await self._bind(document, line, 0)

    async def open_at_line(self, document: EditableDocument, line: int) -> BindResult | None:
        """Resolve the fragment behind a marker, binding it first if needed."""
        text = document.line_text(line)
        marker = scan_line(text, line)
        if marker is None:
            return None
        if marker.fragment_id is None:
            return await self.bind(document, line)
        path = self.store.locate(marker.fragment_id)
        created = False
        if path is None:
            path, created = self.store.ensure(self.session.active_set, marker.fragment_id)
        return BindResult(marker.fragment_id, path, created, text)

    async def _bind(
        self, document: EditableDocument, line: int, consume: int, source: str | None = None
    ) -> BindResult | None:
        text = document.line_text(line)
        marker = scan_line(source if source is not None else text, line)
        if marker is None or marker.bound:
            return None

        fragment_id = self.allocator.allocate()
        edit = TextEdit(
            line=line,
            start=marker.start,
            end=min(len(text), marker.end + consume),
            text=canonical_token(marker, fragment_id),
        )
        with self.session.suppress_observation():
            applied = await document.apply_edit(edit)
        if not applied:
            logger.warning("Editor rejected rewrite of %s:%d", document.relative_path, line + 1)
            return None

        path, created = self.store.ensure(self.session.active_set, fragment_id)
        logger.info(
            "Bound marker %s:%d to fragment %s", document.relative_path, line + 1, fragment_id
        )
        return BindResult(fragment_id, path, created, document.line_text(line))
