"""Unit tests for category precedence and recursion decisions."""
from __future__ import annotations

from distro_audit.domain.value_objects.file_category import FileCategory
from distro_audit.domain.value_objects.os_variant import OsVariant
from distro_audit.engine.generator.classification import classify, descends_into

C7 = OsVariant.CENTOS_7_X86_64


class TestClassify:
    def test_unlisted_path_is_system(self, make_rules) -> None:
        assert classify(make_rules(), C7, "/etc/hostname") is FileCategory.SYSTEM

    def test_user_wins_over_everything(self, make_rules) -> None:
        rules = make_rules(users=["/x"], configs=["/x"], no_recurses=["/x"], prelinks=["/x"])
        assert classify(rules, C7, "/x") is FileCategory.USER

    def test_config_wins_over_no_recurse(self, make_rules) -> None:
        rules = make_rules(configs=["/x"], no_recurses=["/x"])
        assert classify(rules, C7, "/x") is FileCategory.CONFIG

    def test_no_recurse_wins_over_prelink(self, make_rules) -> None:
        rules = make_rules(no_recurses=["/x"], prelinks=["/x"])
        assert classify(rules, C7, "/x") is FileCategory.NO_RECURSE

    def test_prelink(self, make_rules) -> None:
        assert classify(make_rules(prelinks=["/usr/bin/x"]), C7, "/usr/bin/x") is FileCategory.PRELINK

    def test_rules_for_other_variants_do_not_apply(self, make_rules) -> None:
        rules = make_rules(configs=["/etc/fstab"])
        assert classify(rules, OsVariant.ROCKY_9_X86_64, "/etc/fstab") is FileCategory.SYSTEM


class TestDescendsInto:
    def test_above_variant_level(self, make_rules) -> None:
        assert descends_into(make_rules(), None, None)

    def test_user_and_no_recurse_are_not_descended(self, make_rules) -> None:
        rules = make_rules(users=["/home"], no_recurses=["/proc"])
        assert not descends_into(rules, C7, "/home")
        assert not descends_into(rules, C7, "/proc")

    def test_config_directory_is_descended(self, make_rules) -> None:
        assert descends_into(make_rules(configs=["/etc/sysconfig"]), C7, "/etc/sysconfig")
