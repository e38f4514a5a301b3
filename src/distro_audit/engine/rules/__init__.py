"""Rule lists steering classification, recursion and forbidden paths."""
from __future__ import annotations

from distro_audit.engine.rules.rule_sets import (
    ExclusionRule,
    RuleSet,
    RuleSetName,
    RuleSetRegistry,
    parse_rule_lines,
)

__all__ = ["ExclusionRule", "RuleSet", "RuleSetName", "RuleSetRegistry", "parse_rule_lines"]
