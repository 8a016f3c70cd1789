"""Warning collection for a pipeline run.

Stages never print warnings as they find them. They record them here and the
CLI prints one summary at the end of the run.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field


logger = logging.getLogger(__name__)


class WarningKind:
    """Kinds of non-fatal problems a run can report."""

    STALE_RULE = "stale-rule"  # link rule matched nothing in its scope
    TITLE_FALLBACK = "title-fallback"  # no heading, title taken from filename
    MISSING_PATH = "missing-path"  # included subdirectory or file absent in source
    SOURCE_SKIPPED = "source-skipped"  # optional source repository not found
    UNREADABLE = "unreadable-file"  # file or directory could not be read or decoded
    UNWRITABLE = "unwritable-file"  # repaired file or manifest could not be written


@dataclass
class PipelineWarning:
    """A single non-fatal problem."""

    kind: str
    subject: str  # path or rule the warning is about
    message: str


@dataclass
class RunReport:
    """Warnings accumulated over one run of one or more stages."""

    warnings: list[PipelineWarning] = field(default_factory=list)

    def warn(self, kind: str, subject: str, message: str) -> None:
        """Record a warning."""
        self.warnings.append(PipelineWarning(kind=kind, subject=subject, message=message))
        logger.debug("%s: %s (%s)", kind, subject, message)

    def counts(self) -> dict[str, int]:
        """Warning counts by kind, in first-seen order."""
        return dict(Counter(w.kind for w in self.warnings))

    def of_kind(self, kind: str) -> list[PipelineWarning]:
        return [w for w in self.warnings if w.kind == kind]

    def __len__(self) -> int:
        return len(self.warnings)
