"""Entry point: python -m codemeta <command> [args]

- summary [--toml] [--set NAME]   Write SUMMARY.md / SUMMARY.toml for a set
- refs ID                         List every occurrence of a fragment ID
- refresh-refs ID                 Rewrite a fragment's cached reference counts
- upgrade [--dry-run]             Rewrite legacy markers to canonical form
- sets                            List fragment sets (active first)
- new FILE LINE [--set NAME]      Bind the marker on a 1-based line of FILE
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

from codemeta.config import load_config
from codemeta.errors import CodeMetaError

USAGE = """\
Usage: python -m codemeta <command> [args]
  summary [--toml] [--set NAME]  Write a set summary
  refs ID                        List occurrences of a fragment
  refresh-refs ID                Recompute a fragment's cached refs
  upgrade [--dry-run]            Upgrade legacy markers
  sets                           List fragment sets
  new FILE LINE [--set NAME]     Bind the marker on a line"""


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _pop_option(args: list[str], name: str) -> str | None:
    if name not in args:
        return None
    i = args.index(name)
    if i + 1 >= len(args):
        raise CodeMetaError(name, "option needs a value")
    value = args[i + 1]
    del args[i : i + 2]
    return value


def _pop_flag(args: list[str], name: str) -> bool:
    if name in args:
        args.remove(name)
        return True
    return False


async def _new(engine, file_arg: str, line_arg: str) -> None:
    from codemeta.rewriter import BufferDocument

    path = Path(file_arg)
    try:
        line = int(line_arg) - 1
        # newline="" keeps CRLF files byte-for-byte outside the rewritten marker
        with path.open(encoding="utf-8", newline="") as f:
            text = f.read()
    except (ValueError, OSError) as e:
        raise CodeMetaError("create_fragment", f"cannot open {file_arg}:{line_arg}", e) from e
    document = BufferDocument(text, engine.session.relative_path(path))
    if not 0 <= line < document.line_count:
        raise CodeMetaError("create_fragment", f"line {line_arg} is out of range")
    result = await engine.create_fragment(document, line)
    if result is None:
        print("No unbound marker on that line.")
        return
    path.write_text(document.text, encoding="utf-8", newline="")
    state = "created" if result.created else "reused"
    print(f"{result.fragment_id}\t{result.path}\t{state}")


async def _run(cmd: str, args: list[str]) -> int:
    from codemeta.core import CodeMeta
    from codemeta.upgrade import upgrade_workspace

    config = load_config()
    _setup_logging(config.log_level)
    root = Path.cwd()
    engine = CodeMeta(root, config)
    set_name = _pop_option(args, "--set")
    engine.activate(set_name)

    if cmd == "summary":
        fmt = "toml" if _pop_flag(args, "--toml") else "markdown"
        print(await engine.summarize(set_name, fmt))
    elif cmd == "refs" and args:
        for occ in await engine.references(args[0]):
            print(f"{occ.relative_path}:{occ.line}")
    elif cmd == "refresh-refs" and args:
        counts = await engine.index.refresh_cached_refs(args[0])
        if counts is None:
            raise CodeMetaError("refresh_refs", f"fragment {args[0]} not found")
        for rel, count in sorted(counts.items()):
            print(f"{count}@{rel}")
    elif cmd == "upgrade":
        report = upgrade_workspace(root, config, dry_run=_pop_flag(args, "--dry-run"))
        for rel in report.files_changed:
            print(rel)
        print(f"{report.markers_upgraded} marker(s) in {len(report.files_changed)} file(s)")
    elif cmd == "sets":
        for name in engine.list_sets():
            print(name)
    elif cmd == "new" and len(args) >= 2:
        await _new(engine, args[0], args[1])
    else:
        print(USAGE)
        return 1
    return 0


def main() -> None:
    if len(sys.argv) < 2:
        print(USAGE)
        sys.exit(1)
    cmd, args = sys.argv[1], sys.argv[2:]
    try:
        code = asyncio.run(_run(cmd, args))
    except CodeMetaError as e:
        print(f"CodeMeta: {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
