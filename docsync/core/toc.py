"""Navigation manifest (mdBook ``SUMMARY.md``) generation.

The manifest is rebuilt from scratch on every run by walking the destination
tree. Nothing from a previous manifest is kept, so it always reflects the
current tree: one entry per navigable markdown file, nothing more.

Layout of the generated file::

    # Summary

    [Introduction](README.md)          <- root-level files: prefix chapters

    ---

    # Architecture                     <- one part per top-level directory

    - [Architecture Overview](architecture/README.md)
      - [Crate Architecture](architecture/crate-architecture.md)

Sibling ordering follows a single rule. In ``explicit`` mode, names listed in
``toc.order`` for the parent directory come first in the listed order and
everything else follows sorted by name. In ``lexicographic`` mode the order
lists are ignored. A directory's landing page (``README.md`` or ``index.md``)
is never a sibling; it is the directory's own entry.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from ..models.config import TocOrdering, TocSettings, matches_any
from .report import RunReport, WarningKind
from .tree import prose_lines


logger = logging.getLogger(__name__)

ATX_H1_RE = re.compile(r"^ {0,3}#[ \t]+(.+?)(?:[ \t]+#+)?[ \t]*$")
SETEXT_H1_RE = re.compile(r"^ {0,3}=+[ \t]*$")


def title_from_filename(name: str) -> str:
    """Turn ``crate-architecture.md`` into ``Crate Architecture``."""
    stem = name[:-3] if name.endswith(".md") else name
    words = stem.replace("-", " ").replace("_", " ").split()
    return " ".join(w[:1].upper() + w[1:] for w in words) or stem


def extract_title(text: str) -> str | None:
    """First level-one heading of a markdown document, or None.

    Front matter and fenced code blocks are skipped, so a ``# comment`` in a
    shell snippet is never mistaken for a title.
    """
    previous: tuple[int, str] | None = None
    for number, line in prose_lines(text):
        match = ATX_H1_RE.match(line)
        if match:
            return match.group(1).strip()
        if (
            previous is not None
            and previous[0] == number - 1
            and previous[1].strip()
            and not previous[1].lstrip().startswith("#")
            and SETEXT_H1_RE.match(line)
        ):
            return previous[1].strip()
        previous = (number, line)
    return None


@dataclass
class DocumentNode:
    """One navigation entry: a markdown file or a directory group."""

    path: str  # relative to the tree root; "" for the root itself
    title: str
    is_dir: bool = False
    untitled: bool = False  # title was derived from the file name
    index: "DocumentNode | None" = None  # landing page of a directory
    children: list["DocumentNode"] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    def count_entries(self) -> int:
        """Number of markdown files represented under this node."""
        if not self.is_dir:
            return 1
        own = 1 if self.index is not None else 0
        return own + sum(child.count_entries() for child in self.children)

    def iter_files(self) -> list[str]:
        """Paths of every markdown file under this node, in manifest order."""
        if not self.is_dir:
            return [self.path]
        paths = [self.index.path] if self.index is not None else []
        for child in self.children:
            paths.extend(child.iter_files())
        return paths


@dataclass
class TocResult:
    """Outcome of a manifest regeneration."""

    root: DocumentNode
    manifest: str
    output: Path
    written: bool = False

    @property
    def entries(self) -> int:
        return self.root.count_entries()


def _escape(title: str) -> str:
    return title.replace("[", "\\[").replace("]", "\\]")


def _target(path: str) -> str:
    """Link destination for a path, angle-bracketed when it holds spaces or parentheses."""
    if not re.search(r"[\s()<>]", path):
        return path
    return "<" + path.replace("<", "\\<").replace(">", "\\>") + ">"


class TocGenerator:
    """Builds the DocumentNode tree and renders it as a navigation manifest."""

    def __init__(self, settings: TocSettings, root: Path, report: RunReport | None = None) -> None:
        """Initialize the generator.

        Args:
            settings: Manifest layout and ordering settings
            root: Destination tree to walk
            report: Collects title fallback warnings (created if not provided)
        """
        self.settings = settings
        self.root = Path(root)
        self.report = report if report is not None else RunReport()

    @property
    def output_path(self) -> Path:
        return self.root / self.settings.output

    # -------------------------------------------------------------------------
    # Tree walk
    # -------------------------------------------------------------------------

    def build(self) -> DocumentNode:
        """Walk the destination tree depth-first. An empty tree gives an empty root."""
        root = self._build_dir(self.root, "")
        return root or DocumentNode(path="", title=self.settings.title, is_dir=True)

    def _is_navigable_dir(self, path: Path, rel: str) -> bool:
        if path.name.startswith("."):
            return False
        return not matches_any(rel, self.settings.exclude_dirs)

    def _is_navigable_file(self, path: Path, rel: str) -> bool:
        if path.suffix != ".md" or path.name.startswith("."):
            return False
        if rel == self.settings.output.strip("/"):
            return False
        return not matches_any(path.name, self.settings.exclude_files)

    def _build_dir(self, directory: Path, rel: str) -> DocumentNode | None:
        index: DocumentNode | None = None
        index_name: str | None = None
        files: dict[str, Path] = {}
        subdirs: dict[str, Path] = {}

        try:
            entries = sorted(directory.iterdir())
        except OSError as e:
            self.report.warn(WarningKind.UNREADABLE, rel or ".", f"cannot list directory: {e.strerror or e}")
            entries = []

        for entry in entries:
            entry_rel = f"{rel}/{entry.name}" if rel else entry.name
            try:
                if entry.is_dir():
                    if self._is_navigable_dir(entry, entry_rel):
                        subdirs[entry.name] = entry
                elif entry.is_file() and self._is_navigable_file(entry, entry_rel):
                    files[entry.name] = entry
            except OSError as e:
                self.report.warn(WarningKind.UNREADABLE, entry_rel, f"cannot stat: {e.strerror or e}")

        for candidate in self.settings.index_files:
            if candidate in files:
                index_name = candidate
                break

        children: dict[str, DocumentNode] = {}
        for name, path in subdirs.items():
            node = self._build_dir(path, f"{rel}/{name}" if rel else name)
            if node is not None:
                children[name] = node
        for name, path in files.items():
            node = self._build_file(path, f"{rel}/{name}" if rel else name)
            if name == index_name:
                index = node
            else:
                children[name] = node

        if index is None and not children:
            return None

        return DocumentNode(
            path=rel,
            title=self._group_title(rel, index),
            is_dir=True,
            index=index,
            children=[children[name] for name in self._ordered(rel, list(children))],
        )

    def _build_file(self, path: Path, rel: str) -> DocumentNode:
        try:
            title = extract_title(path.read_bytes().decode("utf-8"))
        except UnicodeDecodeError:
            title = None
            reason = "not valid UTF-8"
        except OSError as e:
            title = None
            reason = f"unreadable ({e.strerror or e})"
        else:
            reason = "no top-level heading"

        if title is not None:
            return DocumentNode(path=rel, title=title)

        title = title_from_filename(path.name)
        self.report.warn(WarningKind.TITLE_FALLBACK, rel, f"{reason}, using '{title}'")
        return DocumentNode(path=rel, title=title, untitled=True)

    def _group_title(self, rel: str, index: DocumentNode | None) -> str:
        if rel in self.settings.titles:
            return self.settings.titles[rel]
        if not rel:
            return self.settings.title
        if index is not None and not index.untitled:
            return index.title
        return title_from_filename(rel.rsplit("/", 1)[-1])

    def _ordered(self, rel: str, names: list[str]) -> list[str]:
        """Apply the sibling ordering rule."""
        remaining = sorted(names)
        if self.settings.ordering == TocOrdering.LEXICOGRAPHIC:
            return remaining

        explicit = [n for n in self.settings.order.get(rel, []) if n in remaining]
        explicit = list(dict.fromkeys(explicit))
        return explicit + [n for n in remaining if n not in explicit]

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def render(self, root: DocumentNode) -> str:
        """Serialize the tree as an mdBook SUMMARY.md."""
        lines = [f"# {self.settings.title}", ""]

        top_files = [c for c in root.children if not c.is_dir]
        top_dirs = [c for c in root.children if c.is_dir]

        prefix = ([root.index] if root.index is not None else []) + top_files
        for node in prefix:
            lines.append(f"[{_escape(node.title)}]({_target(node.path)})")

        for group in top_dirs:
            if len(lines) > 2:
                lines.extend(["", "---", ""])
            lines.extend([f"# {group.title}", ""])
            if group.index is not None:
                lines.append(f"- [{_escape(group.index.title)}]({_target(group.index.path)})")
                self._render_children(group.children, 1, lines)
            else:
                self._render_children(group.children, 0, lines)

        return "\n".join(lines).rstrip("\n") + "\n"

    def _render_children(self, nodes: list[DocumentNode], depth: int, lines: list[str]) -> None:
        indent = "  " * depth
        for node in nodes:
            if not node.is_dir:
                lines.append(f"{indent}- [{_escape(node.title)}]({_target(node.path)})")
            elif node.index is not None:
                lines.append(f"{indent}- [{_escape(node.index.title)}]({_target(node.index.path)})")
                self._render_children(node.children, depth + 1, lines)
            else:
                # draft chapter: a heading in the sidebar with no page of its own
                lines.append(f"{indent}- [{_escape(node.title)}]()")
                self._render_children(node.children, depth + 1, lines)

    def run(self, dry_run: bool = False) -> TocResult:
        """Rebuild and overwrite the manifest."""
        if self.root.is_dir():
            root = self.build()
        else:
            root = DocumentNode(path="", title=self.settings.title, is_dir=True)

        manifest = self.render(root)
        result = TocResult(root=root, manifest=manifest, output=self.output_path)
        if not dry_run:
            try:
                self.root.mkdir(parents=True, exist_ok=True)
                self.output_path.write_text(manifest, encoding="utf-8")
            except OSError as e:
                self.report.warn(WarningKind.UNWRITABLE, self.settings.output, f"cannot write: {e.strerror or e}")
                return result
            result.written = True
            logger.debug("wrote %s (%d entries)", self.output_path, result.entries)
        return result
