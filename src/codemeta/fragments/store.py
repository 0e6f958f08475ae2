"""Fragment store: one markdown file per fragment ID.

Layout under the workspace root:

    <cms_folder>/
    ├── state.json            # {"nextId": N}
    ├── 17.md                 # legacy flat location, read-only fallback
    ├── default/
    │   ├── 0.md
    │   └── 1.md
    └── <set>/...

IDs are unique across the whole workspace, so ``locate`` may find an ID in
any set directory, not just the active one.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from codemeta.errors import CodeMetaError
from codemeta.fragments.header import FragmentHeader, parse_fragment, render_fragment
from codemeta.session import DEFAULT_SET, Session, sanitize_set_name

logger = logging.getLogger(__name__)

_FRAGMENT_FILE = re.compile(r"^([0-9]{1,32})\.md$", re.IGNORECASE)

PREVIEW_MAX_LINES = 12
PREVIEW_MAX_CHARS = 600


@dataclass
class Fragment:
    """A fragment record as read from disk."""

    id: str
    path: Path
    set_name: str | None
    category: str
    created: str | None
    body: str
    refs: dict[str, int] = field(default_factory=dict)


@dataclass
class FragmentPreview:
    """What the decoration layer shows for a bound marker."""

    category: str
    preview: str | None = None
    inline: str | None = None


def truncate_lines(text: str, max_lines: int, max_chars: int) -> str:
    lines = text.splitlines()
    out = "\n".join(lines[:max_lines])
    if len(out) > max_chars:
        out = out[:max_chars].rstrip()
    if len(lines) > max_lines or len(text) > max_chars:
        out += "\n\n…"
    return out


def fragment_id_from_path(path: Path) -> str | None:
    m = _FRAGMENT_FILE.match(path.name)
    return m.group(1) if m else None


class FragmentStore:
    """Read/write access to fragment records of one workspace."""

    def __init__(self, session: Session) -> None:
        self.session = session

    @property
    def default_category(self) -> str:
        return self.session.config.default_category

    # ── Paths ─────────────────────────────────────────────────

    def cms_dir(self, operation: str = "cms_dir") -> Path:
        return self.session.require_root(operation) / self.session.config.cms_folder

    def set_dir(self, set_name: str | None = None) -> Path:
        name = sanitize_set_name(set_name) if set_name else self.session.active_set
        return self.cms_dir("set_dir") / (name or DEFAULT_SET)

    def ensure_set(self, set_name: str) -> Path:
        path = self.set_dir(set_name)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def set_names(self) -> list[str]:
        cms_dir = self.session.cms_dir
        if cms_dir is None or not cms_dir.is_dir():
            return []
        return sorted(p.name for p in cms_dir.iterdir() if p.is_dir())

    def list_ids(self, set_name: str | None = None) -> list[str]:
        """Fragment IDs stored in a set, in numeric order."""
        folder = self.set_dir(set_name)
        if not folder.is_dir():
            return []
        ids = [
            fid
            for p in folder.iterdir()
            if p.is_file() and (fid := fragment_id_from_path(p)) is not None
        ]
        return sorted(ids, key=lambda s: (int(s), s))

    # ── Lookup & creation ─────────────────────────────────────

    def locate(self, fragment_id: str) -> Path | None:
        """Find a fragment: legacy flat location first, then every set directory."""
        cms_dir = self.session.cms_dir
        if cms_dir is None or not cms_dir.is_dir():
            return None
        flat = cms_dir / f"{fragment_id}.md"
        if flat.is_file():
            return flat
        for set_name in self.set_names():
            candidate = cms_dir / set_name / f"{fragment_id}.md"
            if candidate.is_file():
                return candidate
        return None

    def iter_fragment_paths(self) -> list[Path]:
        """Every fragment file: flat legacy ones, then each set's."""
        cms_dir = self.session.cms_dir
        if cms_dir is None or not cms_dir.is_dir():
            return []
        folders = [cms_dir] + [cms_dir / name for name in self.set_names()]
        return [
            p
            for folder in folders
            for p in sorted(folder.iterdir())
            if p.is_file() and fragment_id_from_path(p) is not None
        ]

    def exists(self, fragment_id: str) -> bool:
        return self.locate(fragment_id) is not None

    def _render_new(self, fragment_id: str) -> str:
        now = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        header = FragmentHeader(
            fields=[("id", fragment_id), ("created", now), ("category", self.default_category)]
        )
        return render_fragment(header, "")

    def ensure(self, set_name: str | None, fragment_id: str) -> tuple[Path, bool]:
        """Return the fragment's path, creating the record only when absent.

        Creation is an exclusive create, so of two racing callers exactly one
        writes the initial record and the other sees ``created=False``.
        """
        self.session.require_root("ensure_fragment")
        folder = self.ensure_set(set_name or self.session.active_set)
        path = folder / f"{fragment_id}.md"
        try:
            with path.open("x", encoding="utf-8") as f:
                f.write(self._render_new(fragment_id))
        except FileExistsError:
            return path, False
        except OSError as e:
            raise CodeMetaError("ensure_fragment", f"cannot create {path}", e) from e
        logger.info("Created fragment %s in set %r", fragment_id, folder.name)
        return path, True

    # ── Reading ───────────────────────────────────────────────

    def _load(self, path: Path) -> tuple[FragmentHeader, str]:
        return parse_fragment(path.read_text(encoding="utf-8"))

    def read_header(self, path: Path) -> FragmentHeader:
        header, _ = self._load(path)
        fid = fragment_id_from_path(path)
        if fid is not None:
            header.set("id", fid)
        return header

    def read(self, path: Path) -> Fragment:
        header, body = self._load(path)
        fid = fragment_id_from_path(path) or header.get("id") or path.stem
        cms_dir = self.session.cms_dir
        set_name = path.parent.name if cms_dir is not None and path.parent != cms_dir else None
        return Fragment(
            id=fid,
            path=path,
            set_name=set_name,
            category=header.category(self.default_category),
            created=header.get("created"),
            body=body,
            refs=dict(header.refs),
        )

    def preview(self, fragment_id: str) -> FragmentPreview:
        """Category, hover preview and one-line inline text for a fragment."""
        path = self.locate(fragment_id)
        if path is None:
            return FragmentPreview(category=self.default_category)
        try:
            fragment = self.read(path)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read fragment %s: %s", path, e)
            return FragmentPreview(category=self.default_category)
        trimmed = fragment.body.strip()
        if not trimmed:
            return FragmentPreview(category=fragment.category)
        lines = trimmed.splitlines()
        first = lines[0].strip()
        inline = f"{first}…" if len(lines) > 1 else first
        return FragmentPreview(
            category=fragment.category,
            preview=truncate_lines(trimmed, PREVIEW_MAX_LINES, PREVIEW_MAX_CHARS),
            inline=inline or None,
        )

    # ── Writing ───────────────────────────────────────────────

    def write_header(self, path: Path, header: FragmentHeader) -> None:
        """Replace the header, keeping the body as it is."""
        _, body = self._load(path)
        fid = fragment_id_from_path(path)
        if fid is not None:
            header.set("id", fid)
        path.write_text(render_fragment(header, body), encoding="utf-8")

    def write_body(self, path: Path, body: str) -> None:
        """Replace the body, keeping the header as it is."""
        header = self.read_header(path)
        path.write_text(render_fragment(header, body), encoding="utf-8")
