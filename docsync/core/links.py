"""Link repair and broken-link detection for the mirrored tree.

Relative links break when a document moves from its source repository's
layout into the book's layout. The known breakages live in the configured
rule table. This module holds the one function that interprets that table,
plus the checker that finds links still pointing nowhere.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import unquote

from ..models.config import LinkRule, PipelineConfig
from .report import RunReport, WarningKind
from .tree import Document, load_documents, prose_lines, save_documents


logger = logging.getLogger(__name__)

LINK_TARGET_RE = re.compile(r"\]\(([^)]*)\)")
URL_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")


@dataclass
class RuleOutcome:
    """What one rule did across the whole tree."""

    rule: LinkRule
    files: list[str] = field(default_factory=list)
    replacements: int = 0

    @property
    def stale(self) -> bool:
        return self.replacements == 0


@dataclass
class RepairResult:
    """Result of applying the rule table to a set of documents."""

    repaired: list[Document] = field(default_factory=list)  # only documents whose text changed
    outcomes: list[RuleOutcome] = field(default_factory=list)
    scanned: int = 0

    @property
    def stale_rules(self) -> list[RuleOutcome]:
        return [o for o in self.outcomes if o.stale]

    @property
    def replacements(self) -> int:
        return sum(o.replacements for o in self.outcomes)


def repair_text(path: str, text: str, rules: list[LinkRule]) -> tuple[str, list[int]]:
    """Apply every in-scope rule, in table order, to one document.

    Returns:
        The rewritten text and one match count per rule (0 for out-of-scope rules)
    """
    counts: list[int] = []
    for rule in rules:
        if not rule.applies_to(path):
            counts.append(0)
            continue
        text, count = rule.apply(text)
        counts.append(count)
    return text, counts


def repair_documents(documents: list[Document], rules: list[LinkRule], jobs: int = 1) -> RepairResult:
    """Apply the rule table to every document.

    Each document is repaired independently, so running with ``jobs > 1``
    gives exactly the same result as running serially.
    """

    def _repair(doc: Document) -> tuple[str, list[int]]:
        return repair_text(doc.path, doc.text, rules)

    if jobs > 1 and len(documents) > 1:
        with ThreadPoolExecutor(max_workers=jobs) as pool:
            repaired_texts = list(pool.map(_repair, documents))
    else:
        repaired_texts = [_repair(doc) for doc in documents]

    result = RepairResult(outcomes=[RuleOutcome(rule=rule) for rule in rules], scanned=len(documents))
    for doc, (text, counts) in zip(documents, repaired_texts):
        for outcome, count in zip(result.outcomes, counts):
            if count:
                outcome.files.append(doc.path)
                outcome.replacements += count
        if text != doc.text:
            result.repaired.append(Document(path=doc.path, text=text))
    return result


class LinkRepair:
    """Runs the configured rule table against the destination tree."""

    def __init__(self, config: PipelineConfig, report: RunReport | None = None) -> None:
        self.rules = config.rules
        self.dest_root = config.dest_root
        self.report = report if report is not None else RunReport()

    def run(self, dry_run: bool = False, jobs: int = 1) -> RepairResult:
        """Repair links in place. Never raises for content problems.

        Rules that matched nothing are reported as stale so maintainers can
        retire them once upstream fixes the link.
        """
        documents = load_documents(self.dest_root, self.report)
        result = repair_documents(documents, self.rules, jobs=jobs)

        for outcome in result.outcomes:
            if outcome.stale:
                self.report.warn(WarningKind.STALE_RULE, outcome.rule.label, "pattern not found in scope")
            else:
                logger.debug("%s (%d files)", outcome.rule.label, len(outcome.files))

        if not dry_run:
            save_documents(self.dest_root, result.repaired, self.report)
        return result


@dataclass
class BrokenLink:
    """A relative link whose target does not exist."""

    source: str
    line: int
    target: str


def link_targets(text: str) -> list[tuple[int, str]]:
    """Relative link targets in a document, with line numbers.

    External URLs, ``mailto:`` and other schemes, and fragment-only links are
    skipped. Fragments and link titles are stripped from what remains.
    """
    targets: list[tuple[int, str]] = []
    for number, line in prose_lines(text):
        for match in LINK_TARGET_RE.finditer(line):
            target = match.group(1).strip()
            if target.startswith("<") and ">" in target:
                target = target[1:target.index(">")]
            else:
                target = target.split(" ", 1)[0]
            target = target.split("#", 1)[0]
            if not target or URL_SCHEME_RE.match(target):
                continue
            targets.append((number, unquote(target)))
    return targets


def find_broken_links(root: Path, report: RunReport | None = None) -> tuple[int, list[BrokenLink]]:
    """Check every relative link under ``root``.

    Returns:
        (number of links checked, broken links)
    """
    checked = 0
    broken: list[BrokenLink] = []
    for doc in load_documents(root, report):
        doc_dir = (root / doc.path).parent
        for number, target in link_targets(doc.text):
            checked += 1
            resolved = root / target.lstrip("/") if target.startswith("/") else doc_dir / target
            if not resolved.exists():
                broken.append(BrokenLink(source=doc.path, line=number, target=target))
    return checked, broken
