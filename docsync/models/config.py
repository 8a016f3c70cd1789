"""Configuration models for the documentation sync pipeline.

The whole pipeline is driven by one YAML file (``docsync.yaml``) describing:

- the sibling repositories to mirror from (the source registry)
- the ordered table of link rewrite rules applied after the mirror
- how the navigation manifest (``SUMMARY.md``) is laid out
"""

import fnmatch
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv


DEFAULT_GLOBAL_EXCLUDE = [".DS_Store", "CLAUDE.md"]


class ConfigError(ValueError):
    """Raised when the configuration file is missing fields or malformed."""


class RuleTableError(ConfigError):
    """Raised when the link rule table is mis-ordered or cannot converge."""


def _as_tuple(value: Any, field_name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list):
        raise ConfigError(f"'{field_name}' must be a list, got {type(value).__name__}")
    return tuple(str(v) for v in value)


def matches_any(path: str, patterns: tuple[str, ...] | list[str]) -> bool:
    """Check a relative POSIX path against exclude patterns.

    A pattern without a slash matches any single path component, so
    ``CLAUDE.md`` or ``drafts`` match at any depth. A pattern containing a
    slash matches the full path or any of its parent directories, so
    ``generated/adr-summary.md`` or ``reference/internal`` are anchored.
    """
    parts = path.strip("/").split("/")
    prefixes = ["/".join(parts[:i]) for i in range(1, len(parts) + 1)]

    for pattern in patterns:
        pattern = pattern.strip("/")
        if "/" in pattern:
            if any(fnmatch.fnmatchcase(prefix, pattern) for prefix in prefixes):
                return True
        elif any(fnmatch.fnmatchcase(part, pattern) for part in parts):
            return True
    return False


@dataclass(frozen=True)
class SourceRepository:
    """A sibling repository whose docs subtree is mirrored into the book."""

    name: str
    root: Path
    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()
    files: tuple[str, ...] = ()  # individual files copied without delete semantics
    docs_dir: str = "docs"  # subdirectory of the repository holding the docs
    dest_prefix: str = ""  # where the docs land inside the destination tree
    env_var: str = ""
    default_root: str = ""
    required: bool = True

    @property
    def docs_root(self) -> Path:
        """Directory the include list is relative to."""
        return self.root / self.docs_dir if self.docs_dir else self.root

    def destination_for(self, rel_path: str) -> str:
        """Map a docs-relative path to its destination-relative path."""
        rel_path = rel_path.strip("/")
        if not self.dest_prefix:
            return rel_path
        return f"{self.dest_prefix.strip('/')}/{rel_path}"

    def should_exclude(self, rel_path: str, global_exclude: list[str] | None = None) -> bool:
        """Check if a docs-relative path is excluded from the mirror."""
        patterns = list(self.exclude) + list(global_exclude or [])
        return matches_any(rel_path, patterns)

    @staticmethod
    def resolve_root(env_var: str, default_root: str, base_dir: Path) -> Path:
        """Resolve a repository root from its environment variable or default.

        Relative paths are taken relative to ``base_dir`` (the directory that
        holds the configuration file).
        """
        raw = os.getenv(env_var, "") if env_var else ""
        root = Path(raw or default_root).expanduser()
        if not root.is_absolute():
            root = base_dir / root
        return root

    @classmethod
    def from_dict(cls, data: dict[str, Any], base_dir: Path) -> "SourceRepository":
        """Create from dictionary, resolving the root against the environment."""
        try:
            name = data["name"]
        except KeyError:
            raise ConfigError("Every source needs a 'name'") from None

        env_var = data.get("env", "")
        default_root = data.get("default", data.get("root", ""))
        if not env_var and not default_root:
            raise ConfigError(f"Source '{name}' needs an 'env' variable or a 'default' root")

        return cls(
            name=name,
            root=cls.resolve_root(env_var, default_root, base_dir),
            include=_as_tuple(data.get("include"), "include"),
            exclude=_as_tuple(data.get("exclude"), "exclude"),
            files=_as_tuple(data.get("files"), "files"),
            docs_dir=data.get("docs_dir", "docs") or "",
            dest_prefix=data.get("dest_prefix", "") or "",
            env_var=env_var,
            default_root=default_root,
            required=data.get("required", True),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for YAML serialization."""
        result: dict[str, Any] = {"name": self.name}
        if self.env_var:
            result["env"] = self.env_var
        if self.default_root:
            result["default"] = self.default_root
        result["docs_dir"] = self.docs_dir
        if self.dest_prefix:
            result["dest_prefix"] = self.dest_prefix
        result["include"] = list(self.include)
        if self.exclude:
            result["exclude"] = list(self.exclude)
        if self.files:
            result["files"] = list(self.files)
        if not self.required:
            result["required"] = False
        return result


class RuleKind:
    """Match strategies a link rule can use."""

    LITERAL = "literal"
    REGEX = "regex"

    ALL = (LITERAL, REGEX)


@dataclass(frozen=True)
class LinkRule:
    """One scoped rewrite of a known broken link pattern.

    The scope is either a directory (``scope``, relative to the destination
    root, empty for the whole tree) or a single file (``file``).
    """

    pattern: str
    replacement: str
    scope: str = ""
    file: str | None = None
    kind: str = RuleKind.LITERAL
    description: str = ""

    @property
    def region(self) -> str:
        """The path this rule is confined to."""
        if self.file is not None:
            return self.file.strip("/")
        return self.scope.strip("/")

    @property
    def label(self) -> str:
        """Human description, falling back to a generated one."""
        if self.description:
            return self.description
        where = self.region or "."
        if self.file is None:
            where += "/"
        return f"{where}: {self.pattern} -> {self.replacement}"

    def applies_to(self, rel_path: str) -> bool:
        """Check whether a destination-relative path is in this rule's scope."""
        rel_path = rel_path.strip("/")
        if self.file is not None:
            return rel_path == self.region
        if not self.region:
            return True
        return rel_path == self.region or rel_path.startswith(self.region + "/")

    def overlaps(self, other: "LinkRule") -> bool:
        """Check whether two rules can ever see the same file."""
        return (
            self.region == other.region
            or self.applies_to(other.region)
            or other.applies_to(self.region)
        )

    def apply(self, text: str) -> tuple[str, int]:
        """Rewrite every match in ``text``. Returns (new_text, match_count)."""
        if self.kind == RuleKind.REGEX:
            return re.subn(self.pattern, self.replacement, text)

        count = text.count(self.pattern)
        if count:
            text = text.replace(self.pattern, self.replacement)
        return text, count

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LinkRule":
        """Create from dictionary."""
        if "pattern" not in data or "replacement" not in data:
            raise ConfigError(f"Link rule needs 'pattern' and 'replacement': {data!r}")
        if "scope" in data and "file" in data:
            raise ConfigError(f"Link rule takes either 'scope' or 'file', not both: {data!r}")

        kind = data.get("kind", RuleKind.LITERAL)
        if kind not in RuleKind.ALL:
            raise ConfigError(f"Unknown link rule kind '{kind}' (expected one of {', '.join(RuleKind.ALL)})")
        if kind == RuleKind.REGEX:
            try:
                re.compile(data["pattern"])
            except re.error as e:
                raise ConfigError(f"Invalid regex pattern {data['pattern']!r}: {e}") from e

        if not data["pattern"]:
            raise ConfigError("Link rule pattern must not be empty")

        return cls(
            pattern=data["pattern"],
            replacement=data["replacement"],
            scope=data.get("scope", "") or "",
            file=data.get("file"),
            kind=kind,
            description=data.get("description", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for YAML serialization."""
        result: dict[str, Any] = {}
        if self.file is not None:
            result["file"] = self.file
        else:
            result["scope"] = self.scope
        result["pattern"] = self.pattern
        result["replacement"] = self.replacement
        if self.kind != RuleKind.LITERAL:
            result["kind"] = self.kind
        if self.description:
            result["description"] = self.description
        return result


def validate_rule_table(rules: list[LinkRule]) -> None:
    """Reject rule tables that shadow a rule or never settle.

    Three checks, all limited to literal rules:

    - a rule whose replacement still contains its own pattern would rewrite
      the same text again on every run
    - a rule whose pattern is a substring of a later rule's pattern in an
      overlapping scope rewrites the text the later rule is looking for, so
      the more specific rule has to come first
    - a rule whose replacement contains an earlier rule's pattern in an
      overlapping scope hands that rule new work on the next run

    Raises:
        RuleTableError: Describing every problem found
    """
    problems: list[str] = []

    for i, rule in enumerate(rules):
        if rule.kind != RuleKind.LITERAL:
            continue

        if rule.pattern in rule.replacement:
            problems.append(f"rule {i + 1} ({rule.label}) never converges: replacement contains the pattern")

        for j in range(i + 1, len(rules)):
            later = rules[j]
            if later.kind != RuleKind.LITERAL:
                continue
            if rule.pattern in later.pattern and rule.overlaps(later):
                problems.append(
                    f"rule {i + 1} ({rule.label}) shadows rule {j + 1} ({later.label}); "
                    f"move the more specific rule first"
                )
            if rule.pattern in later.replacement and rule.overlaps(later):
                problems.append(
                    f"rule {j + 1} ({later.label}) reintroduces the pattern of rule {i + 1} ({rule.label}); "
                    f"every run would rewrite it again"
                )

    if problems:
        raise RuleTableError("Invalid link rule table:\n  " + "\n  ".join(problems))


class TocOrdering:
    """Sibling ordering modes for the navigation manifest."""

    EXPLICIT = "explicit"
    LEXICOGRAPHIC = "lexicographic"

    ALL = (EXPLICIT, LEXICOGRAPHIC)


@dataclass
class TocSettings:
    """Navigation manifest settings."""

    output: str = "SUMMARY.md"
    title: str = "Summary"
    ordering: str = TocOrdering.EXPLICIT
    # parent directory ("" for the root) -> names listed first, in this order
    order: dict[str, list[str]] = field(default_factory=dict)
    # directory -> group title shown as part header / draft chapter
    titles: dict[str, str] = field(default_factory=dict)
    exclude_dirs: list[str] = field(default_factory=lambda: ["assets", "images", "theme"])
    exclude_files: list[str] = field(default_factory=lambda: ["CLAUDE.md"])
    index_files: list[str] = field(default_factory=lambda: ["README.md", "index.md"])

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TocSettings":
        """Create from dictionary."""
        defaults = cls()
        ordering = data.get("ordering", defaults.ordering)
        if ordering not in TocOrdering.ALL:
            raise ConfigError(f"Unknown toc ordering '{ordering}' (expected one of {', '.join(TocOrdering.ALL)})")

        order = {
            str(k or "").strip("/"): [str(v) for v in (names or [])]
            for k, names in (data.get("order") or {}).items()
        }
        titles = {str(k).strip("/"): str(v) for k, v in (data.get("titles") or {}).items()}

        return cls(
            output=data.get("output", defaults.output),
            title=data.get("title", defaults.title),
            ordering=ordering,
            order=order,
            titles=titles,
            exclude_dirs=list(data.get("exclude_dirs", defaults.exclude_dirs)),
            exclude_files=list(data.get("exclude_files", defaults.exclude_files)),
            index_files=list(data.get("index_files", defaults.index_files)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for YAML serialization."""
        return {
            "output": self.output,
            "title": self.title,
            "ordering": self.ordering,
            "order": self.order,
            "titles": self.titles,
            "exclude_dirs": self.exclude_dirs,
            "exclude_files": self.exclude_files,
            "index_files": self.index_files,
        }


@dataclass
class PipelineConfig:
    """Root configuration: sources, link rules and manifest layout."""

    destination: str = "src"
    sources: list[SourceRepository] = field(default_factory=list)
    rules: list[LinkRule] = field(default_factory=list)
    toc: TocSettings = field(default_factory=TocSettings)
    global_exclude: list[str] = field(default_factory=lambda: list(DEFAULT_GLOBAL_EXCLUDE))
    base_dir: Path = field(default_factory=Path.cwd)

    @property
    def dest_root(self) -> Path:
        """Absolute path of the destination tree."""
        dest = Path(self.destination).expanduser()
        return dest if dest.is_absolute() else self.base_dir / dest

    def get_source(self, name: str) -> SourceRepository | None:
        """Get source by name."""
        for source in self.sources:
            if source.name == name:
                return source
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any], base_dir: Path) -> "PipelineConfig":
        """Create from dictionary and validate the rule table."""
        sources = [SourceRepository.from_dict(s, base_dir) for s in data.get("sources") or []]

        names = [s.name for s in sources]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigError(f"Duplicate source names: {', '.join(duplicates)}")

        rules = [LinkRule.from_dict(r) for r in data.get("rules") or []]
        validate_rule_table(rules)

        return cls(
            destination=data.get("destination", "src"),
            sources=sources,
            rules=rules,
            toc=TocSettings.from_dict(data.get("toc") or {}),
            global_exclude=list(data.get("exclude", DEFAULT_GLOBAL_EXCLUDE)),
            base_dir=base_dir,
        )

    @classmethod
    def load(cls, config_path: Path) -> "PipelineConfig":
        """Load configuration from a YAML file.

        A ``.env`` file next to the configuration is loaded first so source
        roots can be overridden without exporting variables. Variables that
        are already set in the environment win.

        Raises:
            FileNotFoundError: If the config file doesn't exist
            ConfigError: If the file is malformed
        """
        config_path = Path(config_path).resolve()
        base_dir = config_path.parent
        load_dotenv(base_dir / ".env")

        with open(config_path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Cannot parse {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"{config_path} must contain a mapping at the top level")

        return cls.from_dict(data, base_dir)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for YAML serialization."""
        return {
            "destination": self.destination,
            "exclude": self.global_exclude,
            "sources": [s.to_dict() for s in self.sources],
            "rules": [r.to_dict() for r in self.rules],
            "toc": self.toc.to_dict(),
        }

    def save(self, config_path: Path) -> None:
        """Save configuration to a YAML file."""
        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
