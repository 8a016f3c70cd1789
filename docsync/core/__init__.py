"""Core pipeline stages."""

from .links import BrokenLink, LinkRepair, RepairResult, RuleOutcome, find_broken_links, repair_documents
from .mirror import MirrorPlan, MirrorSync, MirrorSyncError, MissingSourceError, SyncedFile, SyncIOError
from .pipeline import Pipeline, PipelineResult, PipelineState, Stage
from .report import PipelineWarning, RunReport, WarningKind
from .toc import DocumentNode, TocGenerator, TocResult

__all__ = [
    "BrokenLink",
    "DocumentNode",
    "LinkRepair",
    "MirrorPlan",
    "MirrorSync",
    "MirrorSyncError",
    "MissingSourceError",
    "Pipeline",
    "PipelineResult",
    "PipelineState",
    "PipelineWarning",
    "RepairResult",
    "RuleOutcome",
    "RunReport",
    "Stage",
    "SyncIOError",
    "SyncedFile",
    "TocGenerator",
    "TocResult",
    "WarningKind",
    "find_broken_links",
    "repair_documents",
]
