"""Fragment header: an ordered key/value block with one multi-line ``refs`` entry.

    ---
    id: 42
    created: 2026-01-01T00:00:00.000Z
    category: TODO
    refs: |
      3@src/a.ts
      1@src/b.ts
    ---

    body text

Values are kept as raw strings, and indented lines under a key other than
``refs`` stay attached to it verbatim. YAML typing would turn ``0042`` into an
integer and ``created`` into a datetime, and neither survives a rewrite.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

import frontmatter

logger = logging.getLogger(__name__)

REFS_KEY = "refs"

_HANDLER = frontmatter.YAMLHandler()
_PAIR = re.compile(r"^([A-Za-z_][\w-]*)\s*:\s?(.*)$")
_REF_LINE = re.compile(r"^([0-9]+)@(.+)$")


@dataclass
class FragmentHeader:
    """Parsed header fields in file order, plus the reference-count cache."""

    fields: list[tuple[str, str]] = field(default_factory=list)
    refs: dict[str, int] = field(default_factory=dict)
    refs_position: int | None = None

    def get(self, key: str, default: str | None = None) -> str | None:
        for k, v in self.fields:
            if k == key:
                return v
        return default

    def set(self, key: str, value: str) -> None:
        for i, (k, _) in enumerate(self.fields):
            if k == key:
                self.fields[i] = (key, value)
                return
        self.fields.append((key, value))

    def category(self, default: str) -> str:
        """Category label, or ``default`` when missing or malformed."""
        raw = (self.get("category") or "").strip().strip("\"'").strip()
        if not raw or "\n" in raw:
            return default
        return raw

    def merge_ref(self, relative_path: str, count: int) -> None:
        """Upsert (count > 0) or remove (count <= 0) one reference entry."""
        if count > 0:
            self.refs[relative_path] = count
        else:
            self.refs.pop(relative_path, None)

    @property
    def total_refs(self) -> int:
        return sum(self.refs.values())


def _parse_refs_line(line: str) -> tuple[str, int] | None:
    m = _REF_LINE.match(line.strip())
    if not m:
        return None
    return m.group(2).strip(), int(m.group(1))


def parse_header_block(block: str) -> FragmentHeader:
    """Parse the text between the ``---`` delimiters. Never raises."""
    header = FragmentHeader()
    in_refs = False
    for raw in block.splitlines():
        if not raw.strip():
            continue
        if in_refs and raw[:1] in (" ", "\t"):
            entry = _parse_refs_line(raw)
            if entry is None:
                logger.warning("Ignoring malformed refs entry: %r", raw.strip())
                continue
            path, count = entry
            header.merge_ref(path, count)
            continue
        in_refs = False
        if raw[:1] in (" ", "\t") and header.fields:
            # Continuation line of a multi-line value.
            key, value = header.fields[-1]
            header.fields[-1] = (key, f"{value}\n{raw.rstrip()}")
            continue
        m = _PAIR.match(raw)
        if not m:
            logger.warning("Ignoring malformed header line: %r", raw)
            continue
        key, value = m.group(1), m.group(2).strip()
        if key == REFS_KEY:
            if header.refs_position is None:
                header.refs_position = len(header.fields)
            in_refs = True
            continue
        header.fields.append((key, value))
    return header


def parse_fragment(text: str) -> tuple[FragmentHeader, str]:
    """Split a fragment file into header and body.

    A file without a closed header block is all body with an empty header.
    """
    if not _HANDLER.detect(text):
        return FragmentHeader(), text
    try:
        block, content = _HANDLER.split(text)
    except ValueError:
        logger.warning("Fragment header is not closed, treating file as body")
        return FragmentHeader(), text
    return parse_header_block(block), content.lstrip("\r\n")


def render_header(header: FragmentHeader) -> str:
    """Serialize a header block; refs are written sorted by path, or omitted when empty."""
    lines = ["---"]
    refs_lines: list[str] = []
    if header.refs:
        refs_lines.append(f"{REFS_KEY}: |")
        refs_lines.extend(f"  {header.refs[path]}@{path}" for path in sorted(header.refs))
    position = header.refs_position if header.refs_position is not None else len(header.fields)
    for i, (key, value) in enumerate(header.fields):
        if i == position:
            lines.extend(refs_lines)
        lines.append(f"{key}: {value}")
    if position >= len(header.fields):
        lines.extend(refs_lines)
    lines.append("---")
    return "\n".join(lines) + "\n"


def render_fragment(header: FragmentHeader, body: str) -> str:
    return f"{render_header(header)}\n{body}"
