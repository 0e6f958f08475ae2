"""Set summaries: every fragment of a set with its resolved occurrences.

Rendered as Markdown (``SUMMARY.md``) or TOML (``SUMMARY.toml``) inside the
set directory. The occurrences always come from a full scan.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from codemeta.fragments.store import FragmentStore
from codemeta.references import Occurrence, ReferenceIndex

logger = logging.getLogger(__name__)

SummaryFormat = Literal["markdown", "toml"]

_FILENAMES = {"markdown": "SUMMARY.md", "toml": "SUMMARY.toml"}


@dataclass
class FragmentSummary:
    id: str
    category: str
    path: Path
    relative_path: str
    body: str
    occurrences: list[Occurrence] = field(default_factory=list)


@dataclass
class SetSummary:
    set_name: str
    generated: str
    fragments: list[FragmentSummary] = field(default_factory=list)


async def build_summary(
    store: FragmentStore, index: ReferenceIndex, set_name: str | None = None
) -> SetSummary:
    name = set_name or store.session.active_set
    folder = store.ensure_set(name)
    occurrences = await index.scan_set(name)
    generated = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    summary = SetSummary(set_name=name, generated=generated)
    for fragment_id, found in occurrences.items():
        path = folder / f"{fragment_id}.md"
        category, body = store.default_category, ""
        try:
            fragment = store.read(path)
            category, body = fragment.category, fragment.body
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read fragment %s: %s", path, e)
        summary.fragments.append(
            FragmentSummary(
                id=fragment_id,
                category=category,
                path=path,
                relative_path=store.session.relative_path(path),
                body=body,
                occurrences=found,
            )
        )
    return summary


def _file_link(path: Path, line: int | None = None) -> str:
    target = path.resolve().as_posix().lstrip("/")
    suffix = f":{line}" if line is not None else ""
    return f"vscode://file/{target}{suffix}".replace(" ", "%20")


def render_markdown(summary: SetSummary) -> str:
    out = [
        f"# Summary for set: {summary.set_name}\n\n",
        f"Generated: {summary.generated}\n\n",
        f"Total fragments: {len(summary.fragments)}\n\n",
    ]
    for frag in summary.fragments:
        out.append(f"## {frag.id} ({frag.category})\n\n")
        out.append(f"Fragment: [{frag.relative_path}]({_file_link(frag.path)})\n\n")
        out.append(f"Occurrences ({len(frag.occurrences)}):\n")
        if not frag.occurrences:
            out.append("- none\n\n")
        else:
            for occ in frag.occurrences:
                link = _file_link(occ.path, occ.line)
                out.append(f"- [{occ.relative_path}:{occ.line}]({link})\n")
            out.append("\n")
        if frag.body.strip():
            body = frag.body.replace("```", "\u200b```")
            out.append(f"Content:\n\n```markdown\n{body}\n```\n\n")
        else:
            out.append("Content: (empty)\n\n")
    return "".join(out)


def _toml_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    escaped = escaped.replace("\n", "\\n").replace("\r", "\\r").replace("\t", "\\t")
    return f'"{escaped}"'


def _toml_multiline(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"""', '\\"\\"\\"')
    return f'"""\n{escaped}"""'


def render_toml(summary: SetSummary) -> str:
    out = [
        f"set = {_toml_string(summary.set_name)}\n",
        f"generated = {_toml_string(summary.generated)}\n",
        f"count = {len(summary.fragments)}\n\n",
    ]
    for frag in summary.fragments:
        out.append("[[fragments]]\n")
        out.append(f"id = {_toml_string(frag.id)}\n")
        out.append(f"category = {_toml_string(frag.category)}\n")
        out.append(f"file = {_toml_string(frag.relative_path)}\n")
        out.append(f"content = {_toml_multiline(frag.body)}\n")
        for occ in frag.occurrences:
            out.append("[[fragments.occurrences]]\n")
            out.append(f"file = {_toml_string(occ.relative_path)}\n")
            out.append(f"line = {occ.line}\n")
        out.append("\n")
    return "".join(out)


async def write_summary(
    store: FragmentStore,
    index: ReferenceIndex,
    set_name: str | None = None,
    fmt: SummaryFormat = "markdown",
) -> Path:
    """Build, render and write a summary file; returns its path."""
    summary = await build_summary(store, index, set_name)
    rendered = render_markdown(summary) if fmt == "markdown" else render_toml(summary)
    path = store.set_dir(summary.set_name) / _FILENAMES[fmt]
    path.write_text(rendered, encoding="utf-8")
    logger.info("Wrote %s (%d fragments)", path, len(summary.fragments))
    return path
