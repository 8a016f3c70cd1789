"""Mirror sync from sibling repositories into the destination tree.

Each included subdirectory is mirrored with delete-on-missing semantics, the
same way ``rsync -a --delete --exclude=...`` would do it:

- source files missing from, or different in, the destination are written
- destination files with no source counterpart are deleted
- excluded paths are neither copied nor deleted, which is how book-owned
  files living inside a synced directory survive

A sync run is split into ``plan`` (read-only, builds the full list of writes
and deletions in memory) and ``apply``. Every source root is validated while
planning, so a missing checkout aborts the run before anything is written.
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from ..models.config import PipelineConfig, SourceRepository
from .report import RunReport, WarningKind


logger = logging.getLogger(__name__)


class MirrorSyncError(Exception):
    """Base class for fatal mirror sync failures."""


class MissingSourceError(MirrorSyncError):
    """A source repository root is absent or unreadable."""

    def __init__(self, source: SourceRepository, path: Path) -> None:
        self.source = source
        self.path = path
        hint = f" Set {source.env_var} to point to your {source.name} checkout." if source.env_var else ""
        super().__init__(f"{source.name} docs not found at {path}.{hint}")


class SyncIOError(MirrorSyncError):
    """Reading or writing a single file failed."""

    def __init__(self, path: Path, error: OSError) -> None:
        self.path = path
        self.error = error
        super().__init__(f"I/O error on {path}: {error.strerror or error}")


@dataclass
class SyncedFile:
    """A source file whose content has to land in the destination."""

    source: Path
    destination: str  # relative to the destination root
    content: bytes


@dataclass
class SyncResult:
    """Outcome for one mirrored subdirectory (or single file)."""

    source: str  # source repository name
    path: str  # docs-relative path that was mirrored
    destination: str
    files: int = 0  # files present in source after exclusion
    copied: int = 0
    deleted: int = 0
    skipped: bool = False
    message: str = ""


@dataclass
class MirrorPlan:
    """Every filesystem change a sync run will make."""

    writes: list[SyncedFile] = field(default_factory=list)
    deletions: list[str] = field(default_factory=list)
    prune_dirs: list[str] = field(default_factory=list)  # candidates, removed only if empty
    results: list[SyncResult] = field(default_factory=list)
    applied: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.writes or self.deletions)


def _walk(directory: Path) -> tuple[list[str], list[str]]:
    """Relative POSIX paths of every file and every directory under ``directory``, sorted.

    Raises:
        SyncIOError: If any directory in the tree cannot be listed
    """
    if not directory.is_dir():
        return [], []

    def _raise(error: OSError) -> None:
        raise SyncIOError(Path(error.filename or directory), error)

    files: list[str] = []
    dirs: list[str] = []
    for current, dirnames, filenames in os.walk(directory, onerror=_raise):
        base = Path(current).relative_to(directory)
        dirs.extend((base / name).as_posix() for name in dirnames)
        files.extend((base / name).as_posix() for name in filenames if (Path(current) / name).is_file())
    return sorted(files), sorted(dirs)


def _read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise SyncIOError(path, e) from e


class MirrorSync:
    """Mirrors every configured source repository into the destination tree."""

    def __init__(self, config: PipelineConfig, report: RunReport | None = None) -> None:
        """Initialize the mirror.

        Args:
            config: Pipeline configuration (sources and destination)
            report: Collects warnings (created if not provided)
        """
        self.config = config
        self.dest_root = config.dest_root
        self.report = report if report is not None else RunReport()

    def check_sources(self) -> list[SourceRepository]:
        """Validate every source root before anything is touched.

        Returns:
            The sources to mirror (optional sources that are missing are left out)

        Raises:
            MissingSourceError: If a required source root is absent or unreadable
        """
        available: list[SourceRepository] = []
        for source in self.config.sources:
            docs_root = source.docs_root
            readable = docs_root.is_dir() and os.access(docs_root, os.R_OK | os.X_OK)
            if readable:
                available.append(source)
                continue

            if source.required:
                raise MissingSourceError(source, docs_root)

            self.report.warn(
                WarningKind.SOURCE_SKIPPED,
                source.name,
                f"optional source not found at {docs_root}",
            )
        return available

    def plan(self) -> MirrorPlan:
        """Compute the writes and deletions needed to bring the destination in line.

        Nothing is written. Source content is read into memory.

        Raises:
            MissingSourceError: If a required source root is missing
            SyncIOError: If a source or destination file cannot be read
        """
        plan = MirrorPlan()
        for source in self.check_sources():
            for subdir in source.include:
                plan.results.append(self._plan_directory(source, subdir, plan))
            for filename in source.files:
                plan.results.append(self._plan_file(source, filename, plan))
        return plan

    def _plan_directory(self, source: SourceRepository, subdir: str, plan: MirrorPlan) -> SyncResult:
        subdir = subdir.strip("/")
        src_dir = source.docs_root / subdir
        dest_rel = source.destination_for(subdir)
        dest_dir = self.dest_root / dest_rel
        result = SyncResult(source=source.name, path=subdir, destination=dest_rel)

        if not src_dir.is_dir():
            result.skipped = True
            result.message = "not found in source"
            self.report.warn(WarningKind.MISSING_PATH, f"{source.name}:{subdir}", "included directory not found in source")
            return result

        def excluded(rel: str) -> bool:
            return source.should_exclude(f"{subdir}/{rel}", self.config.global_exclude)

        src_all, src_dirs = _walk(src_dir)
        dest_files, dest_dirs = _walk(dest_dir)

        src_files = [rel for rel in src_all if not excluded(rel)]
        src_set = set(src_files)
        result.files = len(src_files)

        for rel in src_files:
            src_path = src_dir / rel
            content = _read_bytes(src_path)
            dest_path = dest_dir / rel
            if dest_path.is_file() and _read_bytes(dest_path) == content:
                continue
            plan.writes.append(SyncedFile(source=src_path, destination=f"{dest_rel}/{rel}", content=content))
            result.copied += 1

        for rel in dest_files:
            if rel not in src_set and not excluded(rel):
                plan.deletions.append(f"{dest_rel}/{rel}")
                result.deleted += 1

        source_dirs = set(src_dirs)
        for rel in reversed(dest_dirs):
            if rel not in source_dirs and not excluded(rel):
                plan.prune_dirs.append(f"{dest_rel}/{rel}")

        result.message = f"{result.files} files ({result.copied} copied, {result.deleted} deleted)"
        return result

    def _plan_file(self, source: SourceRepository, filename: str, plan: MirrorPlan) -> SyncResult:
        filename = filename.strip("/")
        src_path = source.docs_root / filename
        dest_rel = source.destination_for(filename)
        result = SyncResult(source=source.name, path=filename, destination=dest_rel)

        if not src_path.is_file():
            result.skipped = True
            result.message = "not found in source"
            self.report.warn(WarningKind.MISSING_PATH, f"{source.name}:{filename}", "included file not found in source")
            return result

        result.files = 1
        content = _read_bytes(src_path)
        dest_path = self.dest_root / dest_rel
        if not (dest_path.is_file() and _read_bytes(dest_path) == content):
            plan.writes.append(SyncedFile(source=src_path, destination=dest_rel, content=content))
            result.copied = 1

        result.message = "copied" if result.copied else "unchanged"
        return result

    def apply(self, plan: MirrorPlan) -> MirrorPlan:
        """Materialize a plan on disk.

        Deletions and pruning run before writes, so a path that switched
        between file and directory upstream is cleared before it is written.

        Raises:
            SyncIOError: On the first file that cannot be written or removed
        """
        for rel in plan.deletions:
            target = self.dest_root / rel
            try:
                target.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                raise SyncIOError(target, e) from e
            logger.debug("deleted %s", rel)

        for rel in plan.prune_dirs:
            target = self.dest_root / rel
            try:
                if target.is_dir() and not any(target.iterdir()):
                    target.rmdir()
                    logger.debug("pruned %s/", rel)
            except OSError as e:
                raise SyncIOError(target, e) from e

        for synced in plan.writes:
            target = self.dest_root / synced.destination
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(synced.content)
                shutil.copystat(synced.source, target)
            except OSError as e:
                raise SyncIOError(target, e) from e
            logger.debug("copied %s -> %s", synced.source, synced.destination)

        plan.applied = True
        return plan

    def run(self, dry_run: bool = False) -> MirrorPlan:
        """Plan and (unless ``dry_run``) apply a full mirror of every source."""
        plan = self.plan()
        if dry_run:
            return plan
        return self.apply(plan)
