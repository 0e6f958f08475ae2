"""Tests for set summaries."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from codemeta.config import CodeMetaConfig
from codemeta.fragments.store import FragmentStore
from codemeta.references import ReferenceIndex
from codemeta.session import Session
from codemeta.summary import build_summary, render_markdown, render_toml, write_summary


@pytest.fixture
def session(tmp_path: Path) -> Session:
    return Session(tmp_path, CodeMetaConfig())


@pytest.fixture
def store(session: Session) -> FragmentStore:
    return FragmentStore(session)


@pytest.fixture
def index(session: Session, store: FragmentStore) -> ReferenceIndex:
    return ReferenceIndex(session, store)


@pytest.fixture
def populated(tmp_path: Path, store: FragmentStore) -> Path:
    path, _ = store.ensure("default", "7")
    store.write_body(path, 'Check the "retry" loop\nsecond line')
    store.ensure("default", "12")
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.py").write_text("x = 1\n# codemeta[7]\n", encoding="utf-8")
    (tmp_path / "b.ts").write_text("// codemeta[7]\n", encoding="utf-8")
    return tmp_path


class TestBuild:
    @pytest.mark.asyncio
    async def test_fragments_and_occurrences(self, populated: Path, store, index):
        summary = await build_summary(store, index, "default")
        assert summary.set_name == "default"
        assert [f.id for f in summary.fragments] == ["7", "12"]
        frag = summary.fragments[0]
        assert frag.relative_path == ".cms/default/7.md"
        assert [(o.relative_path, o.line) for o in frag.occurrences] == [
            ("b.ts", 1),
            ("src/a.py", 2),
        ]
        assert summary.fragments[1].occurrences == []

    @pytest.mark.asyncio
    async def test_defaults_to_active_set(self, session: Session, store, index):
        session.switch_set("review")
        store.ensure("review", "3")
        summary = await build_summary(store, index)
        assert summary.set_name == "review"
        assert [f.id for f in summary.fragments] == ["3"]


class TestMarkdown:
    @pytest.mark.asyncio
    async def test_layout(self, populated: Path, store, index):
        text = render_markdown(await build_summary(store, index, "default"))
        assert text.startswith("# Summary for set: default\n\n")
        assert "Total fragments: 2" in text
        assert "## 7 (INFO)" in text
        assert "Occurrences (2):" in text
        assert "- [b.ts:1](vscode://file/" in text
        assert "```markdown\nCheck the \"retry\" loop\nsecond line\n```" in text
        assert "Occurrences (0):\n- none" in text
        assert "Content: (empty)" in text

    @pytest.mark.asyncio
    async def test_fences_in_body_are_escaped(self, tmp_path: Path, store, index):
        path, _ = store.ensure("default", "1")
        store.write_body(path, "```py\nprint()\n```")
        text = render_markdown(await build_summary(store, index, "default"))
        assert "\u200b```py" in text


class TestToml:
    @pytest.mark.asyncio
    async def test_parses_back(self, populated: Path, store, index):
        data = tomllib.loads(render_toml(await build_summary(store, index, "default")))
        assert data["set"] == "default"
        assert data["count"] == 2
        by_id = {f["id"]: f for f in data["fragments"]}
        assert by_id["7"]["content"] == 'Check the "retry" loop\nsecond line'
        assert by_id["7"]["category"] == "INFO"
        assert by_id["7"]["occurrences"] == [
            {"file": "b.ts", "line": 1},
            {"file": "src/a.py", "line": 2},
        ]
        assert "occurrences" not in by_id["12"]


class TestWrite:
    @pytest.mark.asyncio
    async def test_writes_into_set_dir(self, populated: Path, store, index):
        md = await write_summary(store, index, "default")
        toml_path = await write_summary(store, index, "default", "toml")
        assert md == populated / ".cms" / "default" / "SUMMARY.md"
        assert toml_path.name == "SUMMARY.toml"
        assert md.read_text(encoding="utf-8").startswith("# Summary for set: default")

    @pytest.mark.asyncio
    async def test_summary_file_is_not_a_fragment(self, populated: Path, store, index):
        await write_summary(store, index, "default")
        assert store.list_ids("default") == ["7", "12"]
