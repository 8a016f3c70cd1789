#!/usr/bin/env python3
"""CLI entry point for the documentation sync pipeline."""

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.tree import Tree

from .core.links import find_broken_links
from .core.pipeline import Pipeline, PipelineResult, Stage
from .core.report import RunReport
from .core.toc import DocumentNode
from .models.config import ConfigError, PipelineConfig

console = Console()

DEFAULT_CONFIG = "docsync.yaml"


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)],
        force=True,
    )


def _load_config(args: argparse.Namespace) -> PipelineConfig | None:
    """Load the config named on the command line, printing any error."""
    config_path = Path(args.config)

    if not config_path.exists():
        console.print(f"[red]Config not found: {config_path}")
        return None

    try:
        return PipelineConfig.load(config_path)
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}")
        return None


def _print_warnings(report: RunReport, verbose: bool) -> None:
    """One end-of-run summary instead of a warning per file."""
    if not report.warnings:
        return

    counts = ", ".join(f"{count} {kind}" for kind, count in report.counts().items())
    console.print(f"\n[yellow]Warnings:[/yellow] {len(report)} ({counts})")

    if not verbose:
        console.print("[dim]Run with --verbose to list them.[/dim]")
        return

    table = Table()
    table.add_column("Kind")
    table.add_column("Subject")
    table.add_column("Detail")
    for warning in report.warnings:
        table.add_row(warning.kind, warning.subject, warning.message)
    console.print(table)


def _print_result(result: PipelineResult, args: argparse.Namespace) -> int:
    """Show what each stage did and turn the outcome into an exit code."""
    if result.mirror is not None:
        for r in result.mirror.results:
            if r.skipped:
                console.print(f"  [dim]{r.source}: {r.path} -> SKIP ({r.message})[/dim]")
            else:
                console.print(f"  {r.source}: {r.path} -> {r.destination} [dim]{r.message}[/dim]")
        verb = "would change" if args.dry_run else "changed"
        console.print(
            f"[bold]Sync:[/bold] {len(result.mirror.writes)} written, "
            f"{len(result.mirror.deletions)} deleted ({verb if result.mirror.changed else 'no changes'})"
        )

    if result.repair is not None:
        for outcome in result.repair.outcomes:
            if not outcome.stale:
                console.print(f"  [green]{outcome.rule.label}[/green] ({len(outcome.files)} files)")
        console.print(
            f"[bold]Links:[/bold] {result.repair.replacements} replacements in "
            f"{len(result.repair.repaired)} of {result.repair.scanned} files"
        )

    if result.toc is not None:
        action = "Wrote" if result.toc.written else "Would write"
        console.print(f"[bold]TOC:[/bold] {action} {result.toc.output} ({result.toc.entries} entries)")

    _print_warnings(result.report, args.verbose)

    if result.error is not None:
        console.print(f"\n[red]FAILED: {result.error}")
        return 1

    if args.dry_run:
        console.print("[yellow](DRY RUN - no changes were made)")
    return 0


def _run_stages(args: argparse.Namespace, stages: tuple[str, ...]) -> int:
    config = _load_config(args)
    if config is None:
        return 1

    pipeline = Pipeline(config, dry_run=args.dry_run, jobs=getattr(args, "jobs", 1))
    result = pipeline.run(stages)
    return _print_result(result, args)


def cmd_sync(args: argparse.Namespace) -> int:
    """Mirror the source repositories into the destination tree."""
    console.print("Syncing documentation...", style="blue")
    return _run_stages(args, (Stage.SYNC,))


def cmd_repair_links(args: argparse.Namespace) -> int:
    """Rewrite known broken links."""
    console.print("Fixing synced link patterns...", style="blue")
    return _run_stages(args, (Stage.REPAIR_LINKS,))


def cmd_generate_toc(args: argparse.Namespace) -> int:
    """Regenerate the navigation manifest."""
    config = _load_config(args)
    if config is None:
        return 1

    result = Pipeline(config, dry_run=args.dry_run).run((Stage.GENERATE_TOC,))

    if args.tree and result.toc is not None:
        tree = Tree(f"[bold blue]{result.toc.root.title}[/bold blue]")
        _add_tree_nodes(tree, result.toc.root)
        console.print(tree)

    return _print_result(result, args)


def _add_tree_nodes(parent: Tree, node: DocumentNode) -> None:
    """Recursively add navigation nodes to a rich tree."""
    if node.index is not None and node.path:
        parent.add(f"[green]{node.index.title}[/green] [dim]{node.index.path}[/dim]")
    for child in node.children:
        if child.is_dir:
            _add_tree_nodes(parent.add(f"[blue]{child.title}/[/blue]"), child)
        else:
            parent.add(f"{child.title} [dim]{child.path}[/dim]")


def cmd_refresh(args: argparse.Namespace) -> int:
    """Run sync, link repair and TOC generation in order."""
    console.print("Refreshing documentation...", style="blue")
    return _run_stages(args, Stage.ALL)


def cmd_check_links(args: argparse.Namespace) -> int:
    """Report relative links whose target doesn't exist."""
    config = _load_config(args)
    if config is None:
        return 1

    report = RunReport()
    checked, broken = find_broken_links(config.dest_root, report)

    for link in broken:
        console.print(f"  {link.source}:{link.line} -> {link.target}")

    console.print(f"\nChecked {checked} internal links across {config.destination}/")
    _print_warnings(report, args.verbose)

    if broken:
        console.print(f"[red]Found {len(broken)} broken link(s)")
        return 1
    console.print("[green]No broken links found")
    return 0


def cmd_rules(args: argparse.Namespace) -> int:
    """Show the link rule table in evaluation order."""
    config = _load_config(args)
    if config is None:
        return 1

    if not config.rules:
        console.print("[yellow]No link rules configured")
        return 0

    table = Table(title="Link Rules")
    table.add_column("#", justify="right")
    table.add_column("Scope")
    table.add_column("Pattern")
    table.add_column("Replacement")
    table.add_column("Kind")

    for i, rule in enumerate(config.rules, start=1):
        scope = rule.region if rule.file is not None else f"{rule.region or '.'}/"
        table.add_row(str(i), scope, rule.pattern, rule.replacement, rule.kind)

    console.print(table)
    return 0


def cmd_sources(args: argparse.Namespace) -> int:
    """Show the configured source repositories and where they resolve."""
    config = _load_config(args)
    if config is None:
        return 1

    console.print(f"\n[bold]Destination:[/bold] {config.dest_root}")

    if not config.sources:
        console.print("[yellow]No sources configured")
        return 0

    table = Table()
    table.add_column("Name")
    table.add_column("Root")
    table.add_column("Env")
    table.add_column("Found")
    table.add_column("Included")

    for source in config.sources:
        found = "[green]Yes" if source.docs_root.is_dir() else ("[red]No" if source.required else "[yellow]No (optional)")
        table.add_row(
            source.name,
            str(source.docs_root),
            source.env_var or "-",
            found,
            ", ".join(list(source.include) + list(source.files)),
        )

    console.print(table)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="docsync",
        description="Mirror docs from sibling repositories, repair links and regenerate SUMMARY.md",
    )
    parser.add_argument("--config", default=DEFAULT_CONFIG, help=f"Config file (default: {DEFAULT_CONFIG})")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging and full warning list")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # sync command
    sync_parser = subparsers.add_parser("sync", help="Mirror source repositories into the book")
    sync_parser.add_argument("--dry-run", action="store_true", help="Show what would happen")

    # repair-links command
    repair_parser = subparsers.add_parser("repair-links", help="Rewrite known broken link patterns")
    repair_parser.add_argument("--dry-run", action="store_true", help="Show what would happen")
    repair_parser.add_argument("--jobs", "-j", type=int, default=1, help="Worker threads (default: 1)")

    # generate-toc command
    toc_parser = subparsers.add_parser("generate-toc", help="Regenerate the navigation manifest")
    toc_parser.add_argument("--dry-run", action="store_true", help="Show what would happen")
    toc_parser.add_argument("--tree", action="store_true", help="Print the navigation tree")

    # refresh command
    refresh_parser = subparsers.add_parser("refresh", help="Run sync, repair-links and generate-toc")
    refresh_parser.add_argument("--dry-run", action="store_true", help="Show what would happen")
    refresh_parser.add_argument("--jobs", "-j", type=int, default=1, help="Worker threads for link repair")

    # check-links command
    subparsers.add_parser("check-links", help="Report relative links that point nowhere")

    # rules command
    subparsers.add_parser("rules", help="Show the link rule table")

    # sources command
    subparsers.add_parser("sources", help="Show configured source repositories")

    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if args.command == "sync":
        return cmd_sync(args)
    elif args.command == "repair-links":
        return cmd_repair_links(args)
    elif args.command == "generate-toc":
        return cmd_generate_toc(args)
    elif args.command == "refresh":
        return cmd_refresh(args)
    elif args.command == "check-links":
        return cmd_check_links(args)
    elif args.command == "rules":
        return cmd_rules(args)
    elif args.command == "sources":
        return cmd_sources(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
