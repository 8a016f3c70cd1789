"""Pipeline state machine tying the three stages together.

::

    Idle -> Syncing -> Repairing -> GeneratingTOC -> Done
               |
               +-> Failed

Only the mirror sync can fail a run. Link repair and TOC generation always
produce a usable result and report problems as warnings. After an
interruption the whole pipeline is re-run from the first stage; there is no
resume.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from ..models.config import PipelineConfig
from .links import LinkRepair, RepairResult
from .mirror import MirrorPlan, MirrorSync, MirrorSyncError
from .report import RunReport
from .toc import TocGenerator, TocResult


logger = logging.getLogger(__name__)


class PipelineState(Enum):
    """States a pipeline run moves through."""

    IDLE = "idle"
    SYNCING = "syncing"
    REPAIRING = "repairing"
    GENERATING_TOC = "generating-toc"
    DONE = "done"
    FAILED = "failed"


class Stage:
    """Stage names, as used on the command line."""

    SYNC = "sync"
    REPAIR_LINKS = "repair-links"
    GENERATE_TOC = "generate-toc"

    ALL = (SYNC, REPAIR_LINKS, GENERATE_TOC)


_STAGE_STATES = {
    Stage.SYNC: PipelineState.SYNCING,
    Stage.REPAIR_LINKS: PipelineState.REPAIRING,
    Stage.GENERATE_TOC: PipelineState.GENERATING_TOC,
}

# Single stages may be run on their own, so Idle can enter any of them.
_TRANSITIONS: dict[PipelineState, set[PipelineState]] = {
    PipelineState.IDLE: {PipelineState.SYNCING, PipelineState.REPAIRING, PipelineState.GENERATING_TOC},
    PipelineState.SYNCING: {
        PipelineState.REPAIRING,
        PipelineState.GENERATING_TOC,
        PipelineState.DONE,
        PipelineState.FAILED,
    },
    PipelineState.REPAIRING: {PipelineState.GENERATING_TOC, PipelineState.DONE},
    PipelineState.GENERATING_TOC: {PipelineState.DONE},
    PipelineState.DONE: set(),
    PipelineState.FAILED: set(),
}


@dataclass
class PipelineResult:
    """Everything a run produced."""

    state: PipelineState
    report: RunReport
    mirror: MirrorPlan | None = None
    repair: RepairResult | None = None
    toc: TocResult | None = None
    error: MirrorSyncError | None = None
    history: list[PipelineState] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.state == PipelineState.DONE


class Pipeline:
    """Runs the mirror sync, link repair and TOC stages in order."""

    def __init__(self, config: PipelineConfig, dry_run: bool = False, jobs: int = 1) -> None:
        """Initialize the pipeline.

        Args:
            config: Pipeline configuration
            dry_run: Compute every stage without writing to the destination
            jobs: Worker threads for link repair (1 = serial)
        """
        self.config = config
        self.dry_run = dry_run
        self.jobs = max(1, jobs)
        self.state = PipelineState.IDLE
        self.history: list[PipelineState] = [PipelineState.IDLE]

    def _transition(self, new_state: PipelineState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid pipeline transition: {self.state.value} -> {new_state.value}")
        logger.debug("pipeline: %s -> %s", self.state.value, new_state.value)
        self.state = new_state
        self.history.append(new_state)

    def run(self, stages: tuple[str, ...] = Stage.ALL) -> PipelineResult:
        """Run the given stages in pipeline order.

        A mirror sync failure moves the pipeline to ``FAILED`` and the later
        stages are not run; the error is returned on the result rather than
        raised.
        """
        unknown = [s for s in stages if s not in Stage.ALL]
        if unknown:
            raise ValueError(f"Unknown stage(s): {', '.join(unknown)}")
        if self.state != PipelineState.IDLE:
            raise RuntimeError("A pipeline instance runs once; create a new one to run again")

        report = RunReport()
        result = PipelineResult(state=self.state, report=report, history=self.history)

        for stage in Stage.ALL:
            if stage not in stages:
                continue
            self._transition(_STAGE_STATES[stage])

            if stage == Stage.SYNC:
                try:
                    result.mirror = MirrorSync(self.config, report).run(dry_run=self.dry_run)
                except MirrorSyncError as e:
                    logger.debug("mirror sync failed: %s", e)
                    result.error = e
                    self._transition(PipelineState.FAILED)
                    result.state = self.state
                    return result

            elif stage == Stage.REPAIR_LINKS:
                result.repair = LinkRepair(self.config, report).run(dry_run=self.dry_run, jobs=self.jobs)

            elif stage == Stage.GENERATE_TOC:
                generator = TocGenerator(self.config.toc, self.config.dest_root, report)
                result.toc = generator.run(dry_run=self.dry_run)

        self._transition(PipelineState.DONE)
        result.state = self.state
        return result
