"""Configuration loading from environment variables and codemeta.toml."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

logger = logging.getLogger(__name__)

_CONFIG_FILENAME = "codemeta.toml"

ID_MIN = 6
ID_MAX = 32
DEFAULT_ID_LENGTH = 10
DEFAULT_CMS_FOLDER = ".cms"
DEFAULT_CATEGORY = "INFO"
DEFAULT_EXCLUDE_DIRS = ("node_modules", ".git", "dist", "out", "build", "__pycache__", ".venv")


@dataclass
class CategoryStyle:
    """Display colors for one category label."""

    label: str
    foreground: str | None = None
    background: str | None = None


@dataclass
class CodeMetaConfig:
    """Top-level CodeMeta configuration."""

    id_length: int = DEFAULT_ID_LENGTH
    cms_folder: str = DEFAULT_CMS_FOLDER
    default_category: str = DEFAULT_CATEGORY
    category_styles: list[CategoryStyle] = field(default_factory=list)
    exclude_dirs: tuple[str, ...] = DEFAULT_EXCLUDE_DIRS
    scan_concurrency: int = 8
    refresh_debounce_ms: int = 150
    log_level: str = "INFO"


def clamp_id_length(value: object) -> int:
    """Clamp an ID length into 6..32; anything unparseable yields the default."""
    try:
        length = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return DEFAULT_ID_LENGTH
    if length <= 0:
        return DEFAULT_ID_LENGTH
    return max(ID_MIN, min(ID_MAX, length))


def _as_int(value: object, default: int, minimum: int = 0) -> int:
    try:
        result = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return result if result >= minimum else default


def _as_label(value: object, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _parse_styles(raw: object) -> list[CategoryStyle]:
    styles: list[CategoryStyle] = []
    if not isinstance(raw, list):
        return styles
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        label = str(entry.get("label") or "").strip()
        if not label:
            continue
        styles.append(
            CategoryStyle(
                label=label,
                foreground=entry.get("foreground"),
                background=entry.get("background"),
            )
        )
    return styles


def _read_file(config_path: Path | None) -> dict:
    candidates = (
        [config_path]
        if config_path
        else [Path.cwd() / _CONFIG_FILENAME, Path.home() / ".codemeta" / _CONFIG_FILENAME]
    )
    for candidate in candidates:
        if candidate and candidate.exists():
            try:
                return tomllib.loads(candidate.read_text(encoding="utf-8"))
            except (tomllib.TOMLDecodeError, OSError) as e:
                logger.warning("Ignoring unreadable config %s: %s", candidate, e)
                return {}
    return {}


def load_config(config_path: Path | None = None) -> CodeMetaConfig:
    """Load configuration from environment variables and optional codemeta.toml.

    Priority: environment variables > codemeta.toml > defaults. Invalid values
    fall back to defaults instead of raising.
    """
    data = _read_file(config_path)
    scan_data = data.get("scan", {}) if isinstance(data.get("scan"), dict) else {}

    exclude = scan_data.get("exclude_dirs", DEFAULT_EXCLUDE_DIRS)
    if not isinstance(exclude, (list, tuple)):
        exclude = DEFAULT_EXCLUDE_DIRS

    return CodeMetaConfig(
        id_length=clamp_id_length(os.getenv("CODEMETA_ID_LENGTH", data.get("id_length"))),
        cms_folder=_as_label(
            os.getenv("CODEMETA_CMS_FOLDER", data.get("cms_folder")), DEFAULT_CMS_FOLDER
        ),
        default_category=_as_label(
            os.getenv("CODEMETA_DEFAULT_CATEGORY", data.get("default_category")),
            DEFAULT_CATEGORY,
        ),
        category_styles=_parse_styles(data.get("category_styles")),
        exclude_dirs=tuple(str(d) for d in exclude),
        scan_concurrency=_as_int(
            os.getenv("CODEMETA_SCAN_CONCURRENCY", scan_data.get("concurrency")), 8, minimum=1
        ),
        refresh_debounce_ms=_as_int(data.get("refresh_debounce_ms"), 150),
        log_level=os.getenv("CODEMETA_LOG_LEVEL", data.get("log_level", "INFO")),
    )
