"""Data models for the docs pipeline."""

from .config import (
    ConfigError,
    LinkRule,
    PipelineConfig,
    RuleKind,
    RuleTableError,
    SourceRepository,
    TocOrdering,
    TocSettings,
    matches_any,
    validate_rule_table,
)

__all__ = [
    "ConfigError",
    "LinkRule",
    "PipelineConfig",
    "RuleKind",
    "RuleTableError",
    "SourceRepository",
    "TocOrdering",
    "TocSettings",
    "matches_any",
    "validate_rule_table",
]
