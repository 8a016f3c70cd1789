"""In-memory view of the markdown documents in a destination tree.

Link repair and link checking work on a list of ``Document`` objects read up
front and write back only the ones that changed. Files are read and written
as raw UTF-8 so line endings survive a round trip untouched.
"""

import os
import re
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from .report import RunReport, WarningKind


FRONT_MATTER_RE = re.compile(r"\A---[ \t]*\r?\n.*?\r?\n(?:---|\.\.\.)[ \t]*(?:\r?\n|\Z)", re.DOTALL)
FENCE_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})")


@dataclass
class Document:
    """A markdown file, keyed by its POSIX path relative to the tree root."""

    path: str
    text: str


def iter_markdown_files(root: Path, report: RunReport | None = None) -> list[Path]:
    """All markdown files under ``root``, sorted by relative path.

    Directories that cannot be listed are reported and skipped.
    """
    if not root.is_dir():
        return []

    def _skip(error: OSError) -> None:
        if report is not None:
            subject = Path(error.filename).relative_to(root).as_posix() if error.filename else "."
            report.warn(WarningKind.UNREADABLE, subject, f"cannot list directory: {error.strerror or error}")

    paths: list[Path] = []
    for current, _dirnames, filenames in os.walk(root, onerror=_skip):
        for name in filenames:
            path = Path(current) / name
            if path.suffix == ".md" and path.is_file():
                paths.append(path)
    return sorted(paths, key=lambda p: p.relative_to(root).as_posix())


def load_documents(root: Path, report: RunReport | None = None) -> list[Document]:
    """Read every markdown file under ``root``.

    Files that cannot be read, or are not valid UTF-8, are skipped and reported.
    """
    documents: list[Document] = []
    for path in iter_markdown_files(root, report):
        rel_path = path.relative_to(root).as_posix()
        try:
            text = path.read_bytes().decode("utf-8")
        except UnicodeDecodeError as e:
            if report is not None:
                report.warn(WarningKind.UNREADABLE, rel_path, f"not valid UTF-8: {e.reason}")
            continue
        except OSError as e:
            if report is not None:
                report.warn(WarningKind.UNREADABLE, rel_path, f"cannot read: {e.strerror or e}")
            continue
        documents.append(Document(path=rel_path, text=text))
    return documents


def save_documents(root: Path, documents: list[Document], report: RunReport | None = None) -> list[str]:
    """Write documents back under ``root``.

    A file that cannot be written is reported and left as it was; the rest
    are still written.

    Returns:
        Paths of the documents that were written
    """
    written: list[str] = []
    for doc in documents:
        target = root / doc.path
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(doc.text.encode("utf-8"))
        except OSError as e:
            if report is not None:
                report.warn(WarningKind.UNWRITABLE, doc.path, f"cannot write: {e.strerror or e}")
            continue
        written.append(doc.path)
    return written


def prose_lines(text: str) -> Iterator[tuple[int, str]]:
    """Yield ``(line_number, line)`` for lines outside front matter and code fences.

    Line numbers are 1-based and refer to the original text.
    """
    offset = 0
    match = FRONT_MATTER_RE.match(text)
    if match:
        offset = match.group(0).count("\n")
        text = text[match.end():]

    fence: str | None = None
    for number, line in enumerate(text.splitlines(), start=offset + 1):
        marker = FENCE_RE.match(line)
        if fence is None:
            if marker:
                fence = marker.group(1)
                continue
            yield number, line
        elif marker and marker.group(1)[0] == fence[0] and len(marker.group(1)) >= len(fence):
            fence = None
