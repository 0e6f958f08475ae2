"""Tests for fragment ID allocation."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from codemeta.config import CodeMetaConfig
from codemeta.errors import IdCollisionError, NoWorkspaceError
from codemeta.fragments.store import FragmentStore
from codemeta.ids import IdAllocator
from codemeta.session import Session


def _allocator(root: Path | None) -> IdAllocator:
    session = Session(root, CodeMetaConfig(cms_folder=".cms"))
    return IdAllocator(session, FragmentStore(session))


@pytest.fixture
def allocator(tmp_path: Path) -> IdAllocator:
    return _allocator(tmp_path)


def _state(root: Path) -> dict:
    return json.loads((root / ".cms" / "state.json").read_text(encoding="utf-8"))


class TestSequential:
    def test_starts_at_zero(self, allocator: IdAllocator, tmp_path: Path):
        assert allocator.allocate() == "0"
        assert _state(tmp_path) == {"nextId": 1}

    def test_strictly_increasing(self, allocator: IdAllocator):
        ids = [allocator.allocate() for _ in range(5)]
        assert ids == ["0", "1", "2", "3", "4"]

    def test_survives_restart(self, tmp_path: Path):
        first = _allocator(tmp_path)
        issued = {first.allocate() for _ in range(3)}
        restarted = _allocator(tmp_path)
        assert restarted.allocate() not in issued

    def test_resumes_from_state(self, tmp_path: Path):
        (tmp_path / ".cms").mkdir()
        (tmp_path / ".cms" / "state.json").write_text('{"nextId": 41}', encoding="utf-8")
        assert _allocator(tmp_path).allocate() == "41"
        assert _state(tmp_path) == {"nextId": 42}

    @pytest.mark.parametrize("content", ["not json", '{"nextId": -3}', '{"nextId": "7"}', "[]"])
    def test_malformed_state_reads_as_zero(self, tmp_path: Path, content: str):
        (tmp_path / ".cms").mkdir()
        (tmp_path / ".cms" / "state.json").write_text(content, encoding="utf-8")
        assert _allocator(tmp_path).allocate() == "0"

    def test_skips_ids_in_use(self, allocator: IdAllocator):
        allocator.store.ensure("default", "0")
        allocator.store.ensure("legacy", "1")
        assert allocator.allocate() == "2"
        assert allocator.read_next_id() == 3

    def test_no_leftover_temp_files(self, allocator: IdAllocator, tmp_path: Path):
        allocator.allocate()
        assert [p.name for p in (tmp_path / ".cms").iterdir()] == ["state.json"]

    def test_no_workspace(self):
        with pytest.raises(NoWorkspaceError) as exc:
            _allocator(None).allocate()
        assert exc.value.operation == "allocate"


class TestRandom:
    def test_length(self, allocator: IdAllocator):
        fid = allocator.generate_random(10)
        assert len(fid) == 10
        assert fid.isdigit()

    def test_length_clamped(self, allocator: IdAllocator):
        assert len(allocator.generate_random(2)) == 6
        assert len(allocator.generate_random(99)) == 32

    def test_rerolls_on_collision(self, allocator: IdAllocator, monkeypatch):
        taken = {"111111"}
        rolls = iter(["1"] * 6 + ["2"] * 6)
        monkeypatch.setattr(allocator.store, "exists", lambda fid: fid in taken)
        monkeypatch.setattr("codemeta.ids.random.choice", lambda _: next(rolls))
        assert allocator.generate_random(6) == "222222"

    def test_gives_up_after_cap(self, allocator: IdAllocator, monkeypatch):
        monkeypatch.setattr(allocator.store, "exists", lambda fid: True)
        with pytest.raises(IdCollisionError):
            allocator.generate_random(6)
