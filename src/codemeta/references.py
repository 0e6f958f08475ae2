"""Reference index: where each fragment ID is used across the workspace.

Two strategies:

1. Full scan: read every eligible workspace file and collect the lines whose
   bound marker carries one of the requested IDs. Always correct, costs a pass
   over the workspace.
2. Cached counts: a fragment's ``refs`` header block holds ``count@path``
   entries updated one observation at a time. It is a display hint only and
   is replaced wholesale by ``refresh_cached_refs``.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path, PurePath

from codemeta.discovery import iter_workspace_files, read_text_file
from codemeta.fragments.store import FragmentStore, fragment_id_from_path
from codemeta.scanner import scan_text
from codemeta.session import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True, order=True)
class Occurrence:
    """A bound marker on one line of one workspace file (1-based line)."""

    relative_path: str
    line: int
    fragment_id: str = field(compare=False)
    path: Path = field(compare=False)


class ReferenceIndex:
    """Compute and cache marker occurrences for fragments."""

    def __init__(self, session: Session, store: FragmentStore) -> None:
        self.session = session
        self.store = store

    def _excluded_dirs(self) -> list[str]:
        cms_name = PurePath(self.session.config.cms_folder).name
        return [*self.session.config.exclude_dirs, cms_name]

    # ── Full scan ─────────────────────────────────────────────

    async def scan(self, ids: Iterable[str]) -> dict[str, list[Occurrence]]:
        """Occurrences of each requested ID, sorted by (path, line).

        Files that cannot be read are skipped; the scan never aborts on them.
        """
        wanted = set(ids)
        results: dict[str, set[Occurrence]] = {fid: set() for fid in wanted}
        if not wanted:
            return {}
        root = self.session.require_root("scan_references")
        files = await asyncio.to_thread(
            lambda: list(iter_workspace_files(root, self._excluded_dirs()))
        )
        semaphore = asyncio.Semaphore(max(1, self.session.config.scan_concurrency))

        async def scan_file(path: Path) -> list[Occurrence]:
            async with semaphore:
                text = await asyncio.to_thread(read_text_file, path)
            if text is None:
                return []
            rel = path.relative_to(root).as_posix()
            return [
                Occurrence(relative_path=rel, line=m.line + 1, fragment_id=m.fragment_id, path=path)
                for m in scan_text(text)
                if m.fragment_id in wanted
            ]

        for found in await asyncio.gather(*(scan_file(p) for p in files)):
            for occurrence in found:
                results[occurrence.fragment_id].add(occurrence)

        logger.debug("Scanned %d files for %d ids", len(files), len(wanted))
        return {fid: sorted(occs) for fid, occs in results.items()}

    async def find_references(self, fragment_id: str) -> list[Occurrence]:
        results = await self.scan([fragment_id])
        return results.get(fragment_id, [])

    async def scan_set(self, set_name: str | None = None) -> dict[str, list[Occurrence]]:
        """Occurrences for every fragment stored in a set."""
        ids = self.store.list_ids(set_name)
        results = await self.scan(ids)
        return {fid: results.get(fid, []) for fid in ids}

    # ── Cached counts ─────────────────────────────────────────

    def record_observation(
        self, fragment_id: str, relative_path: str, count: int
    ) -> dict[str, int] | None:
        """Merge one ``(path, count)`` observation into a fragment's refs block.

        Returns the merged mapping, or None when the fragment is missing or unreadable.
        The file is only rewritten when the mapping changes.
        """
        path = self.store.locate(fragment_id)
        if path is None:
            logger.debug("No fragment for id %s, observation dropped", fragment_id)
            return None
        try:
            header = self.store.read_header(path)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read fragment %s: %s", path, e)
            return None
        before = dict(header.refs)
        header.merge_ref(relative_path, count)
        if header.refs != before:
            self.store.write_header(path, header)
        return dict(header.refs)

    def observe_document(self, relative_path: str, text: str) -> dict[str, int]:
        """Record per-fragment marker counts for one document.

        Fragments whose cache still lists this document but whose markers are
        gone from it get their entry removed.
        """
        counts = Counter(m.fragment_id for m in scan_text(text) if m.fragment_id is not None)
        for fragment_id, count in counts.items():
            self.record_observation(fragment_id, relative_path, count)
        for path in self.store.iter_fragment_paths():
            fragment_id = fragment_id_from_path(path)
            if fragment_id is None or fragment_id in counts:
                continue
            try:
                header = self.store.read_header(path)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Cannot read fragment %s: %s", path, e)
                continue
            if relative_path in header.refs:
                header.merge_ref(relative_path, 0)
                self.store.write_header(path, header)
        return dict(counts)

    async def refresh_cached_refs(self, fragment_id: str) -> dict[str, int] | None:
        """Replace a fragment's refs block with counts from a full scan."""
        path = self.store.locate(fragment_id)
        if path is None:
            return None
        occurrences = await self.find_references(fragment_id)
        counts = dict(Counter(o.relative_path for o in occurrences))
        header = self.store.read_header(path)
        if header.refs != counts:
            header.refs = counts
            self.store.write_header(path, header)
        return counts

    def cached_refs(self, fragment_id: str) -> dict[str, int]:
        path = self.store.locate(fragment_id)
        if path is None:
            return {}
        try:
            return dict(self.store.read_header(path).refs)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read fragment %s: %s", path, e)
            return {}

    def cached_count(self, fragment_id: str) -> int:
        return sum(self.cached_refs(fragment_id).values())
