"""Tests for the legacy marker upgrade."""

from __future__ import annotations

from pathlib import Path

from codemeta.config import CodeMetaConfig
from codemeta.upgrade import upgrade_line, upgrade_text, upgrade_workspace


class TestUpgradeLine:
    def test_abbreviated_legacy_marker(self):
        assert upgrade_line("//cm 5664210353 [Remove this]") == "//codemeta[5664210353] [Remove this]"

    def test_canonical_keyword_with_bare_id(self):
        assert upgrade_line("    # codemeta 42") == "    # codemeta[42]"

    def test_block_comment_tail_kept(self):
        assert upgrade_line("/* codemeta 9 */") == "/* codemeta[9] */"

    def test_canonical_marker_untouched(self):
        line = "// codemeta[42] note"
        assert upgrade_line(line) == line

    def test_unbound_marker_untouched(self):
        assert upgrade_line("// codemeta") == "// codemeta"
        assert upgrade_line("#cm later") == "#cm later"

    def test_plain_text_untouched(self):
        assert upgrade_line("x = 1") == "x = 1"


class TestUpgradeText:
    def test_counts_changed_markers(self):
        text = "a\n//cm 1\n// codemeta[2]\n# codemeta 3\n"
        upgraded, count = upgrade_text(text)
        assert count == 2
        assert upgraded == "a\n//codemeta[1]\n// codemeta[2]\n# codemeta[3]\n"

    def test_crlf_preserved(self):
        upgraded, count = upgrade_text("//cm 1\r\nx\r\n")
        assert count == 1
        assert upgraded == "//codemeta[1]\r\nx\r\n"


class TestUpgradeWorkspace:
    def _seed(self, root: Path) -> None:
        (root / "src").mkdir()
        (root / "src" / "a.ts").write_text("//cm 5 [todo]\n", encoding="utf-8")
        (root / "src" / "b.ts").write_text("// codemeta[6]\n", encoding="utf-8")
        (root / "node_modules").mkdir()
        (root / "node_modules" / "c.js").write_text("//cm 7\n", encoding="utf-8")

    def test_dry_run_reports_without_writing(self, tmp_path: Path):
        self._seed(tmp_path)
        report = upgrade_workspace(tmp_path, CodeMetaConfig(), dry_run=True)
        assert report.files_changed == ["src/a.ts"]
        assert report.markers_upgraded == 1
        assert (tmp_path / "src" / "a.ts").read_text(encoding="utf-8") == "//cm 5 [todo]\n"

    def test_rewrites_changed_files_only(self, tmp_path: Path):
        self._seed(tmp_path)
        report = upgrade_workspace(tmp_path, CodeMetaConfig())
        assert report.files_changed == ["src/a.ts"]
        assert (tmp_path / "src" / "a.ts").read_text(encoding="utf-8") == "//codemeta[5] [todo]\n"
        assert (tmp_path / "node_modules" / "c.js").read_text(encoding="utf-8") == "//cm 7\n"

    def test_crlf_file_keeps_line_endings(self, tmp_path: Path):
        path = tmp_path / "win.cs"
        path.write_bytes(b"//cm 8\r\nint x;\r\n")
        upgrade_workspace(tmp_path, CodeMetaConfig())
        assert path.read_bytes() == b"//codemeta[8]\r\nint x;\r\n"

    def test_fragment_folder_skipped(self, tmp_path: Path):
        cms = tmp_path / ".cms" / "default"
        cms.mkdir(parents=True)
        (cms / "1.md").write_text("see //cm 3\n", encoding="utf-8")
        report = upgrade_workspace(tmp_path, CodeMetaConfig())
        assert report.files_changed == []
