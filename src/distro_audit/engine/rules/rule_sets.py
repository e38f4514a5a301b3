"""
Exclusion rule sets -- named (variant, path) lists steering classification.

Each rule list is a plain text file, one rule per line::

    osName,osVersion,osArchitecture,/relative/path

The first three commas delimit the variant; everything after the third comma
is the path, verbatim.  Blank lines and ``#`` comments are skipped.  A line
with fewer than three commas, a duplicate rule or an unknown variant is a
fatal configuration error: a half-loaded rule list would silently change how
paths are classified.

Every rule remembers whether any lookup matched it, so that rules no staging
path exercises can be reported as stale at the end of a generation run.
"""
from __future__ import annotations

import enum
import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from importlib import resources
from pathlib import Path

import structlog

from distro_audit.domain.value_objects.os_variant import OsVariant
from distro_audit.shared.exceptions import ConfigurationError, RuleSetFormatError

logger = structlog.get_logger(__name__)

_RESOURCE_PACKAGE = "distro_audit.engine.rules"
_RESOURCE_DIR = "data"


class RuleSetName(str, enum.Enum):
    """Rule list names; each is stored as ``<name>.txt``."""

    CONFIGS = "configs"
    NEVERS = "nevers"
    NO_RECURSES = "no_recurses"
    OPTIONALS = "optionals"
    PRELINKS = "prelinks"
    USERS = "users"


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class ExclusionRule:
    """A single (variant, path) rule and whether any lookup has hit it."""

    os_variant: OsVariant
    relative_path: str
    matched: bool = False

    @property
    def label(self) -> str:
        return f"{self.os_variant.label},{self.relative_path}"


def parse_rule_lines(name: str, lines: Iterable[str]) -> dict[tuple[OsVariant, str], ExclusionRule]:
    """Parse rule-list lines into rules keyed by (variant, path)."""
    rules: dict[tuple[OsVariant, str], ExclusionRule] = {}
    for lineno, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        fields = line.split(",", 3)
        if len(fields) < 4:
            raise RuleSetFormatError(
                f"{name}:{lineno}: expected osName,osVersion,osArchitecture,path: {line!r}",
                context={"rule_set": name, "line": lineno},
            )
        os_name, os_version, architecture, path = fields
        variant = OsVariant.resolve(os_name, os_version, architecture)
        key = (variant, path)
        if key in rules:
            raise RuleSetFormatError(
                f"{name}:{lineno}: duplicate rule {line!r}",
                context={"rule_set": name, "line": lineno},
            )
        rules[key] = ExclusionRule(os_variant=variant, relative_path=path)
    return rules


# ---------------------------------------------------------------------------
# RuleSet
# ---------------------------------------------------------------------------


class RuleSet:
    """One named rule list, loaded on first use.

    Loading happens at most once, under the set's load lock.  Lookups after
    that only take the short-lived match lock needed to flip a rule's
    ``matched`` flag, so concurrent generator workers can classify freely.
    """

    def __init__(self, name: str, loader: Callable[[], Iterable[str]]) -> None:
        self.name = name
        self._loader = loader
        self._load_lock = threading.Lock()
        self._match_lock = threading.Lock()
        self._rules: dict[tuple[OsVariant, str], ExclusionRule] | None = None

    @classmethod
    def from_lines(cls, name: str, lines: Iterable[str]) -> RuleSet:
        materialised = list(lines)
        return cls(name, lambda: materialised)

    def _loaded(self) -> dict[tuple[OsVariant, str], ExclusionRule]:
        rules = self._rules
        if rules is None:
            with self._load_lock:
                if self._rules is None:
                    self._rules = parse_rule_lines(self.name, self._loader())
                    logger.debug("rule_set.loaded", rule_set=self.name, rules=len(self._rules))
                rules = self._rules
        return rules

    def contains(self, variant: OsVariant, relative_path: str) -> bool:
        """Whether (variant, path) is listed; marks the rule as matched."""
        rule = self._loaded().get((variant, relative_path))
        if rule is None:
            return False
        if not rule.matched:
            with self._match_lock:
                rule.matched = True
        return True

    def rules(self) -> list[ExclusionRule]:
        """All rules ordered by (variant, path)."""
        return sorted(
            self._loaded().values(),
            key=lambda r: (int(r.os_variant), r.relative_path),
        )

    def unmatched(self) -> list[ExclusionRule]:
        return [r for r in self.rules() if not r.matched]

    def reset_matches(self) -> None:
        with self._match_lock:
            for rule in self._loaded().values():
                rule.matched = False

    def __len__(self) -> int:
        return len(self._loaded())


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def _packaged_loader(name: str) -> Callable[[], Iterable[str]]:
    def load() -> list[str]:
        resource = resources.files(_RESOURCE_PACKAGE).joinpath(_RESOURCE_DIR).joinpath(f"{name}.txt")
        if not resource.is_file():
            raise ConfigurationError(f"Rule list resource not found: {name}.txt")
        return resource.read_text(encoding="utf-8").splitlines()
    return load


def _directory_loader(directory: Path, name: str) -> Callable[[], Iterable[str]]:
    def load() -> list[str]:
        path = directory / f"{name}.txt"
        try:
            return path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError as exc:
            raise ConfigurationError(f"Rule list not found: {path}") from exc
    return load


class RuleSetRegistry:
    """Every rule set a run consults, constructed once and injected.

    Usage::

        registry = RuleSetRegistry.from_resources()
        if registry.is_config(OsVariant.CENTOS_7_X86_64, "/etc/fstab"):
            ...
    """

    def __init__(self, rule_sets: Mapping[RuleSetName, RuleSet]) -> None:
        missing = [n.value for n in RuleSetName if n not in rule_sets]
        if missing:
            raise ConfigurationError(f"Rule sets missing from registry: {', '.join(missing)}")
        self._sets: dict[RuleSetName, RuleSet] = dict(rule_sets)

    @classmethod
    def from_resources(cls, rules_dir: Path | None = None) -> RuleSetRegistry:
        """Rule lists from *rules_dir* if given, else the lists shipped with the package."""
        sets: dict[RuleSetName, RuleSet] = {}
        for name in RuleSetName:
            loader = (
                _directory_loader(rules_dir, name.value)
                if rules_dir is not None
                else _packaged_loader(name.value)
            )
            sets[name] = RuleSet(name.value, loader)
        return cls(sets)

    @classmethod
    def from_lines(cls, lines_by_name: Mapping[RuleSetName, Iterable[str]] | None = None) -> RuleSetRegistry:
        """Synthetic registry; unnamed sets are empty."""
        lines_by_name = lines_by_name or {}
        return cls({
            name: RuleSet.from_lines(name.value, lines_by_name.get(name, ()))
            for name in RuleSetName
        })

    def get(self, name: RuleSetName) -> RuleSet:
        return self._sets[name]

    # -- lookups ------------------------------------------------------------

    def is_never(self, variant: OsVariant, relative_path: str) -> bool:
        return self._sets[RuleSetName.NEVERS].contains(variant, relative_path)

    def is_config(self, variant: OsVariant, relative_path: str) -> bool:
        return self._sets[RuleSetName.CONFIGS].contains(variant, relative_path)

    def is_no_recurse(self, variant: OsVariant, relative_path: str) -> bool:
        return self._sets[RuleSetName.NO_RECURSES].contains(variant, relative_path)

    def is_optional(self, variant: OsVariant, relative_path: str) -> bool:
        return self._sets[RuleSetName.OPTIONALS].contains(variant, relative_path)

    def is_prelink(self, variant: OsVariant, relative_path: str) -> bool:
        return self._sets[RuleSetName.PRELINKS].contains(variant, relative_path)

    def is_user(self, variant: OsVariant, relative_path: str) -> bool:
        return self._sets[RuleSetName.USERS].contains(variant, relative_path)

    # -- run bookkeeping ----------------------------------------------------

    def load_all(self) -> None:
        """Force every rule list to load so format errors surface before a run."""
        for rule_set in self._sets.values():
            len(rule_set)

    def reset_matches(self) -> None:
        for rule_set in self._sets.values():
            rule_set.reset_matches()

    def report_unmatched(self, name: RuleSetName) -> list[ExclusionRule]:
        """Rules of *name* no lookup matched; call once after a complete run."""
        unmatched = self._sets[name].unmatched()
        for rule in unmatched:
            logger.warning(
                "rule_set.unmatched",
                rule_set=name.value,
                rule=rule.label,
            )
        return unmatched
