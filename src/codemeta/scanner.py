"""Marker grammar and line scanner.

A marker is a comment opener followed by the keyword ``codemeta`` (or the
deprecated ``cm``) and, optionally, a fragment ID:

    //codemeta[42]        canonical
    # codemeta[42] note   canonical, whitespace after the opener is kept
    //cm 5664210353       legacy, read-only
    <!-- codemeta -->     unbound

Scanning is line-local and language-agnostic. The earliest marker on a line
wins; at the same offset the grammar table order decides, so the canonical
keyword is preferred over the abbreviation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

CANONICAL_KEYWORD = "codemeta"
LEGACY_KEYWORD = "cm"

IdForm = Literal["canonical", "legacy"]

# (opener, keywords) in priority order.
GRAMMAR: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("//", (CANONICAL_KEYWORD, LEGACY_KEYWORD)),
    ("#", (CANONICAL_KEYWORD, LEGACY_KEYWORD)),
    ("<!--", (CANONICAL_KEYWORD, LEGACY_KEYWORD)),
    ("/*", (CANONICAL_KEYWORD, LEGACY_KEYWORD)),
)

ACTIVATION_CHARS = (" ", "_")

_CANONICAL_ID = re.compile(r"^\s*\[([0-9]{1,32})\]")
_LEGACY_ID = re.compile(r"^\s+([0-9]{1,32})\b")


def _compile_rules() -> list[tuple[re.Pattern[str], str, str]]:
    rules = []
    for opener, keywords in GRAMMAR:
        for keyword in keywords:
            # The abbreviation must touch its opener: "# cm of rain" is prose.
            gap = r"[ \t]*" if keyword == CANONICAL_KEYWORD else ""
            pattern = re.compile(
                rf"(?P<opener>{re.escape(opener)})(?P<gap>{gap})(?P<keyword>{keyword})(?![A-Za-z0-9_])"
            )
            rules.append((pattern, opener, keyword))
    return rules


_RULES = _compile_rules()


@dataclass(frozen=True)
class Marker:
    """One recognized marker occurrence on a line."""

    line: int
    start: int
    end: int
    opener: str
    gap: str
    keyword: str
    fragment_id: str | None = None
    id_form: IdForm | None = None
    id_end: int | None = None
    annotation: str | None = None

    @property
    def bound(self) -> bool:
        return self.fragment_id is not None

    @property
    def legacy(self) -> bool:
        return self.keyword == LEGACY_KEYWORD or self.id_form == "legacy"


def _match(line: str) -> re.Match[str] | None:
    best: re.Match[str] | None = None
    for pattern, _, _ in _RULES:
        m = pattern.search(line)
        if m and (best is None or m.start() < best.start()):
            best = m
    return best


def find_marker(line: str) -> tuple[int, int] | None:
    """Return the ``[start, end)`` span of the earliest marker token, or None."""
    m = _match(line)
    if m is None:
        return None
    return m.start(), m.end()


def extract_id(after: str) -> tuple[str, IdForm, int] | None:
    """Extract ``(id, form, consumed_chars)`` from the text following a marker."""
    m = _CANONICAL_ID.match(after)
    if m:
        return m.group(1), "canonical", m.end()
    m = _LEGACY_ID.match(after)
    if m:
        return m.group(1), "legacy", m.end()
    return None


def _annotation(rest: str) -> str | None:
    text = rest.strip()
    for closer in ("-->", "*/"):
        if text.endswith(closer):
            text = text[: -len(closer)].rstrip()
    return text or None


def scan_line(line: str, line_number: int = 0) -> Marker | None:
    """Scan one line of text. Pure: the same input always yields the same marker."""
    m = _match(line)
    if m is None:
        return None
    start, end = m.start(), m.end()
    fragment_id: str | None = None
    form: IdForm | None = None
    id_end: int | None = None
    annotation: str | None = None
    found = extract_id(line[end:])
    if found is not None:
        fragment_id, form, consumed = found
        id_end = end + consumed
        annotation = _annotation(line[id_end:])
    return Marker(
        line=line_number,
        start=start,
        end=end,
        opener=m.group("opener"),
        gap=m.group("gap"),
        keyword=m.group("keyword"),
        fragment_id=fragment_id,
        id_form=form,
        id_end=id_end,
        annotation=annotation,
    )


def split_lines(text: str) -> list[str]:
    """Split on LF or CRLF the same way editors number lines."""
    return [line[:-1] if line.endswith("\r") else line for line in text.split("\n")]


def scan_text(text: str) -> list[Marker]:
    """Scan every line of a document; line numbers are 0-based."""
    markers = []
    for number, line in enumerate(split_lines(text)):
        marker = scan_line(line, number)
        if marker is not None:
            markers.append(marker)
    return markers


def canonical_token(marker: Marker, fragment_id: str) -> str:
    """Render the bound canonical token for ``marker``, keeping its opener."""
    return f"{marker.opener}{marker.gap}{CANONICAL_KEYWORD}[{fragment_id}]"


def is_activation(pre_line: str, column: int, typed: str) -> bool:
    """True when typing ``typed`` at ``column`` of ``pre_line`` should mint an ID.

    Only a single space or underscore typed exactly at the end of an unbound
    marker counts.
    """
    if typed not in ACTIVATION_CHARS:
        return False
    marker = scan_line(pre_line)
    return marker is not None and not marker.bound and column == marker.end
