"""Data the editor decoration layer renders for bound markers.

The core only computes; drawing pills and hovers is the UI's job. Refreshes
triggered by typing go through ``Debouncer`` so a burst of keystrokes costs
one recomputation.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

from codemeta.config import DEFAULT_CATEGORY, CategoryStyle, CodeMetaConfig
from codemeta.fragments.store import FragmentStore
from codemeta.scanner import scan_line

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineDecoration:
    line: int
    start: int
    end: int
    fragment_id: str
    category: str
    preview: str | None = None
    inline: str | None = None

    @property
    def label(self) -> str:
        return f"{self.category}: {self.inline}" if self.inline else f"{self.category}:"


def line_decorations(lines: Iterable[str], store: FragmentStore) -> list[LineDecoration]:
    """One decoration per line carrying a bound marker; unbound markers get none."""
    decorations = []
    previews = {}
    for number, text in enumerate(lines):
        marker = scan_line(text, number)
        if marker is None or marker.fragment_id is None:
            continue
        if marker.fragment_id not in previews:
            previews[marker.fragment_id] = store.preview(marker.fragment_id)
        preview = previews[marker.fragment_id]
        decorations.append(
            LineDecoration(
                line=number,
                start=marker.start,
                end=marker.end,
                fragment_id=marker.fragment_id,
                category=preview.category,
                preview=preview.preview,
                inline=preview.inline,
            )
        )
    return decorations


def style_for(label: str, config: CodeMetaConfig) -> CategoryStyle:
    """Configured style for a label, else the INFO style, else no colors."""
    by_label = {style.label: style for style in config.category_styles}
    if label in by_label:
        return by_label[label]
    for style in config.category_styles:
        if style.label.upper() == DEFAULT_CATEGORY:
            return CategoryStyle(label=label, foreground=style.foreground, background=style.background)
    return CategoryStyle(label=label)


class Debouncer:
    """Trailing-edge debounce: only the last call in a burst runs."""

    def __init__(self, callback: Callable[[], Awaitable[None]], delay: float = 0.15) -> None:
        self._callback = callback
        self._delay = delay
        self._task: asyncio.Task | None = None

    def __call__(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        await asyncio.sleep(self._delay)
        try:
            await self._callback()
        except Exception as e:
            logger.error("Debounced refresh failed: %s", e)

    async def flush(self) -> None:
        """Wait for a pending call, if any, to finish."""
        if self._task:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
