"""Batch upgrade of legacy marker text to the canonical form.

    //cm 5664210353 [Remove this]  →  //codemeta[5664210353] [Remove this]
    # codemeta 42                  →  # codemeta[42]

Only bound markers are touched. Everything after the ID is kept verbatim.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePath

from codemeta.config import CodeMetaConfig
from codemeta.discovery import iter_workspace_files, read_text_file
from codemeta.scanner import canonical_token, scan_line

logger = logging.getLogger(__name__)


@dataclass
class UpgradeReport:
    files_changed: list[str] = field(default_factory=list)
    markers_upgraded: int = 0


def upgrade_line(line: str) -> str:
    marker = scan_line(line)
    if marker is None or marker.fragment_id is None or not marker.legacy:
        return line
    return line[: marker.start] + canonical_token(marker, marker.fragment_id) + line[marker.id_end :]


def upgrade_text(text: str) -> tuple[str, int]:
    """Upgrade every line; returns the new text and the number of markers changed."""
    lines = text.split("\n")
    changed = 0
    for i, line in enumerate(lines):
        cr = line.endswith("\r")
        body = line[:-1] if cr else line
        upgraded = upgrade_line(body)
        if upgraded != body:
            lines[i] = upgraded + ("\r" if cr else "")
            changed += 1
    return "\n".join(lines), changed


def upgrade_workspace(root: Path, config: CodeMetaConfig, dry_run: bool = False) -> UpgradeReport:
    """Rewrite legacy markers in every eligible file, writing only changed files."""
    report = UpgradeReport()
    excluded = [*config.exclude_dirs, PurePath(config.cms_folder).name]
    for path in iter_workspace_files(root, excluded):
        text = read_text_file(path)
        if text is None:
            continue
        upgraded, count = upgrade_text(text)
        if not count:
            continue
        rel = path.relative_to(root).as_posix()
        report.files_changed.append(rel)
        report.markers_upgraded += count
        if dry_run:
            continue
        try:
            path.write_text(upgraded, encoding="utf-8", newline="")
        except OSError as e:
            logger.warning("Cannot rewrite %s: %s", rel, e)
            report.files_changed.remove(rel)
            report.markers_upgraded -= count
            continue
        logger.info("Upgraded %d marker(s) in %s", count, rel)
    return report
