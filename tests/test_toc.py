"""Tests for navigation manifest generation."""

import re
import tempfile
from pathlib import Path
from unittest.mock import patch

from docsync.core.report import RunReport, WarningKind
from docsync.core.toc import TocGenerator, extract_title, title_from_filename
from docsync.core.tree import iter_markdown_files
from docsync.models.config import TocOrdering, TocSettings


def _write(root: Path, rel: str, text: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def _sample_tree(root: Path) -> None:
    _write(root, "README.md", "# Introduction\n")
    _write(root, "architecture/README.md", "# Architecture Overview\n")
    _write(root, "architecture/crate-architecture.md", "# Crate Architecture\n\nBody.\n")
    _write(root, "architecture/zeta.md", "No heading here.\n")
    _write(root, "guides/quick-start.md", "# Quick Start\n")
    _write(root, "guides/advanced/deep.md", "Deep Dive\n=========\n")
    _write(root, "assets/logo.md", "# Logo\n")
    _write(root, "notes.txt", "not markdown")


class TestExtractTitle:
    """Tests for title extraction."""

    def test_atx_heading(self) -> None:
        assert extract_title("Intro text\n\n# Crate Architecture\n\n# Second\n") == "Crate Architecture"

    def test_closing_hashes_are_stripped(self) -> None:
        assert extract_title("# Title #\n") == "Title"

    def test_setext_heading(self) -> None:
        assert extract_title("Deep Dive\n=========\n") == "Deep Dive"

    def test_h2_is_not_a_title(self) -> None:
        assert extract_title("## Section\n\ntext\n") is None

    def test_code_fence_is_skipped(self) -> None:
        text = "```bash\n# install the gem\ngem install tasker\n```\n\n# Ruby Worker\n"

        assert extract_title(text) == "Ruby Worker"

    def test_front_matter_is_skipped(self) -> None:
        assert extract_title("---\ntitle: ignored\n---\n# Real Title\n") == "Real Title"

    def test_no_heading(self) -> None:
        assert extract_title("plain text\n") is None

    def test_title_from_filename(self) -> None:
        assert title_from_filename("crate-architecture.md") == "Crate Architecture"
        assert title_from_filename("ffi_safety.md") == "Ffi Safety"


class TestTocBuild:
    """Tests for walking the destination tree."""

    def test_every_file_appears_once(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _sample_tree(root)

            tree = TocGenerator(TocSettings(), root).build()
            listed = tree.iter_files()

            assert sorted(listed) == sorted(set(listed))
            assert sorted(listed) == [
                "README.md",
                "architecture/README.md",
                "architecture/crate-architecture.md",
                "architecture/zeta.md",
                "guides/advanced/deep.md",
                "guides/quick-start.md",
            ]
            assert tree.count_entries() == 6

    def test_manifest_and_claude_files_are_not_listed(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _write(root, "SUMMARY.md", "# Summary\n")
            _write(root, "guides/CLAUDE.md", "# Notes\n")
            _write(root, "guides/a.md", "# A\n")
            _write(root, ".hidden/b.md", "# B\n")

            tree = TocGenerator(TocSettings(), root).build()

            assert tree.iter_files() == ["guides/a.md"]

    def test_title_fallback_is_reported(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _sample_tree(root)
            report = RunReport()

            TocGenerator(TocSettings(), root, report).build()

            fallbacks = report.of_kind(WarningKind.TITLE_FALLBACK)
            assert [w.subject for w in fallbacks] == ["architecture/zeta.md"]
            assert "using 'Zeta'" in fallbacks[0].message

    def test_group_title_prefers_configured_title(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _write(root, "generated/README.md", "# Generated Docs\n")
            settings = TocSettings(titles={"generated": "Generated Reference"})

            tree = TocGenerator(settings, root).build()

            assert tree.children[0].title == "Generated Reference"
            assert tree.children[0].index.title == "Generated Docs"


class TestTocOrdering:
    """Tests for sibling ordering."""

    def _names(self, settings: TocSettings, root: Path) -> list[str]:
        return [child.name for child in TocGenerator(settings, root).build().children]

    def test_explicit_order_then_lexicographic(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            for name in ["zeta", "architecture", "guides", "benchmarks"]:
                _write(root, f"{name}/a.md", "# A\n")
            settings = TocSettings(order={"": ["guides", "missing", "architecture"]})

            assert self._names(settings, root) == ["guides", "architecture", "benchmarks", "zeta"]

    def test_lexicographic_ignores_order(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            for name in ["zeta", "architecture", "guides"]:
                _write(root, f"{name}/a.md", "# A\n")
            settings = TocSettings(ordering=TocOrdering.LEXICOGRAPHIC, order={"": ["zeta"]})

            assert self._names(settings, root) == ["architecture", "guides", "zeta"]

    def test_nested_order(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            for name in ["install.md", "next-steps.md", "quick-start.md"]:
                _write(root, f"building/{name}", "# Page\n")
            settings = TocSettings(order={"building": ["quick-start.md", "install.md"]})

            building = TocGenerator(settings, root).build().children[0]

            assert [c.name for c in building.children] == ["quick-start.md", "install.md", "next-steps.md"]


class TestTocRender:
    """Tests for the rendered manifest."""

    def test_render_layout(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _sample_tree(root)

            result = TocGenerator(TocSettings(), root).run()

            assert result.manifest == (
                "# Summary\n"
                "\n"
                "[Introduction](README.md)\n"
                "\n"
                "---\n"
                "\n"
                "# Architecture Overview\n"
                "\n"
                "- [Architecture Overview](architecture/README.md)\n"
                "  - [Crate Architecture](architecture/crate-architecture.md)\n"
                "  - [Zeta](architecture/zeta.md)\n"
                "\n"
                "---\n"
                "\n"
                "# Guides\n"
                "\n"
                "- [Advanced]()\n"
                "  - [Deep Dive](guides/advanced/deep.md)\n"
                "- [Quick Start](guides/quick-start.md)\n"
            )
            assert (root / "SUMMARY.md").read_text() == result.manifest
            assert result.written

    def test_manifest_links_every_markdown_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _sample_tree(root)

            manifest = TocGenerator(TocSettings(), root).run().manifest
            linked = re.findall(r"\]\(([^)]+)\)", manifest)
            on_disk = [
                p.relative_to(root).as_posix()
                for p in iter_markdown_files(root)
                if not p.relative_to(root).as_posix().startswith("assets/") and p.name != "SUMMARY.md"
            ]

            assert sorted(linked) == sorted(on_disk)

    def test_regeneration_is_byte_identical(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _sample_tree(root)

            first = TocGenerator(TocSettings(), root).run()
            first_bytes = (root / "SUMMARY.md").read_bytes()
            second = TocGenerator(TocSettings(), root).run()

            assert second.manifest == first.manifest
            assert (root / "SUMMARY.md").read_bytes() == first_bytes

    def test_removed_file_disappears(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _sample_tree(root)
            TocGenerator(TocSettings(), root).run()

            (root / "guides/quick-start.md").unlink()
            manifest = TocGenerator(TocSettings(), root).run().manifest

            assert "quick-start.md" not in manifest
            assert "(guides/advanced/deep.md)" in manifest

    def test_empty_tree(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir) / "src"

            result = TocGenerator(TocSettings(), root).run()

            assert result.manifest == "# Summary\n"
            assert result.entries == 0
            assert (root / "SUMMARY.md").read_text() == "# Summary\n"

    def test_titles_are_escaped(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _write(root, "guides/a.md", "# Using [brackets]\n")

            manifest = TocGenerator(TocSettings(), root).run(dry_run=True).manifest

            assert "- [Using \\[brackets\\]](guides/a.md)" in manifest
            assert not (root / "SUMMARY.md").exists()

    def test_paths_with_spaces_are_bracketed(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _write(root, "guides/my page.md", "# My Page\n")
            _write(root, "guides/retry (old).md", "# Old Retry\n")

            manifest = TocGenerator(TocSettings(), root).run(dry_run=True).manifest

            assert "- [My Page](<guides/my page.md>)" in manifest
            assert "- [Old Retry](<guides/retry (old).md>)" in manifest

    def test_unwritable_manifest_is_reported(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _write(root, "guides/a.md", "# A\n")
            report = RunReport()

            with patch.object(Path, "write_text", side_effect=PermissionError(13, "Permission denied")):
                result = TocGenerator(TocSettings(), root, report).run()

            assert not result.written
            assert [w.subject for w in report.of_kind(WarningKind.UNWRITABLE)] == ["SUMMARY.md"]


class TestTocUnreadable:
    """Tests that unreadable content never stops manifest generation."""

    def test_unlistable_directory_is_skipped(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            _sample_tree(root)
            report = RunReport()
            blocked = root / "guides"
            real_iterdir = Path.iterdir

            def iterdir(self):
                if self == blocked:
                    raise PermissionError(13, "Permission denied", str(self))
                return real_iterdir(self)

            with patch.object(Path, "iterdir", iterdir):
                result = TocGenerator(TocSettings(), root, report).run(dry_run=True)

            assert [w.subject for w in report.of_kind(WarningKind.UNREADABLE)] == ["guides"]
            assert "guides/" not in result.manifest
            assert "(architecture/crate-architecture.md)" in result.manifest

    def test_unreadable_file_keeps_its_entry(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            blocked = _write(root, "guides/retry-policy.md", "# Retry Policy\n")
            report = RunReport()
            real_read_bytes = Path.read_bytes

            def read_bytes(self):
                if self == blocked:
                    raise PermissionError(13, "Permission denied", str(self))
                return real_read_bytes(self)

            with patch.object(Path, "read_bytes", read_bytes):
                result = TocGenerator(TocSettings(), root, report).run(dry_run=True)

            assert "- [Retry Policy](guides/retry-policy.md)" in result.manifest
            fallbacks = report.of_kind(WarningKind.TITLE_FALLBACK)
            assert fallbacks[0].subject == "guides/retry-policy.md"
            assert fallbacks[0].message.startswith("unreadable")
