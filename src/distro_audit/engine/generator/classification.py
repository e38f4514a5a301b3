"""Path classification rules shared by generation."""
from __future__ import annotations

from distro_audit.domain.value_objects.file_category import FileCategory
from distro_audit.domain.value_objects.os_variant import OsVariant
from distro_audit.engine.rules.rule_sets import RuleSetRegistry


def classify(rules: RuleSetRegistry, variant: OsVariant, relative_path: str) -> FileCategory:
    """Category of a path, first match wins: user, config, no-recurse, prelink, system."""
    if rules.is_user(variant, relative_path):
        return FileCategory.USER
    if rules.is_config(variant, relative_path):
        return FileCategory.CONFIG
    if rules.is_no_recurse(variant, relative_path):
        return FileCategory.NO_RECURSE
    if rules.is_prelink(variant, relative_path):
        return FileCategory.PRELINK
    return FileCategory.SYSTEM


def descends_into(rules: RuleSetRegistry, variant: OsVariant | None, relative_path: str | None) -> bool:
    """Whether the generator walks below a directory.

    Directories above the variant level are always walked.
    """
    if variant is None or relative_path is None:
        return True
    return not rules.is_user(variant, relative_path) and not rules.is_no_recurse(variant, relative_path)
