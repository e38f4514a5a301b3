"""Unit tests for drift verification against a generated snapshot."""
from __future__ import annotations

import os
from pathlib import Path

import pytest

from distro_audit.domain.entities.discrepancy import DiscrepancyCode
from distro_audit.domain.entities.snapshot_entry import SnapshotEntry
from distro_audit.domain.value_objects.file_category import FileCategory
from distro_audit.domain.value_objects.os_variant import OsVariant
from distro_audit.engine.digest.content_digest import PrelinkVerifier
from distro_audit.engine.digest.throttle import NoThrottle, Throttle
from distro_audit.engine.verifier import drift_verifier
from distro_audit.engine.verifier.drift_verifier import DriftVerifier, missing_records
from distro_audit.infrastructure.identity import StaticServerIdentity
from distro_audit.infrastructure.persistence.memory_store import MemorySnapshotStore
from distro_audit.shared.exceptions import RunCancelledError, VerificationError

C7 = OsVariant.CENTOS_7_X86_64


def _verify(store, staging, identity, **kwargs):
    kwargs.setdefault("throttle", NoThrottle())
    verifier = DriftVerifier(store, C7, identity, live_root=str(staging.variant_root), **kwargs)
    return verifier.run()


def _codes(report) -> list[tuple[str, str]]:
    return [(r.code.value, r.path) for r in report.discrepancies]


def _nest(base: Path, depth: int) -> Path:
    """``depth`` directories named ``d``, each inside the previous one."""
    current = base
    for _ in range(depth):
        current = current / "d"
        current.mkdir()
    return current


def _base_entries(staging, entry_from_disk) -> list[SnapshotEntry]:
    """Root plus an unchecked /etc, for hand-built snapshots."""
    return [
        entry_from_disk("/", staging.variant_root),
        entry_from_disk("/etc", staging.path("/etc"), category=FileCategory.NO_RECURSE),
    ]


# ---------------------------------------------------------------------------
# Clean runs
# ---------------------------------------------------------------------------

class TestCleanRun:
    def test_unchanged_tree_has_no_discrepancies(self, staging, make_rules, generate, server_identity) -> None:
        staging.file("/etc/hostname", b"www1\n")
        staging.symlink("/etc/localtime", "../usr/share/zoneinfo/UTC")
        staging.dir("/var/empty", mode=0o711)
        store = generate(staging, make_rules())
        report = _verify(store, staging, server_identity)
        assert report.is_clean
        assert report.os_variant == int(C7)

    def test_stats_balance(self, staging, make_rules, generate, server_identity) -> None:
        staging.file("/etc/hostname", b"www1\n")
        staging.file("/home/alice/.profile", b"x")
        staging.file("/proc/1/status", b"x")
        store = generate(staging, make_rules(users=["/home"], no_recurses=["/proc"]))
        stats = _verify(store, staging, server_identity).stats
        assert stats.is_balanced
        assert stats.user_count == 3  # /home, /home/alice, /home/alice/.profile
        assert stats.no_recurse_count == 1
        assert stats.digest_files == 3  # passwd, group, hostname
        assert stats.finished_at is not None

    def test_deeply_nested_system_tree(self, staging, make_rules, generate, server_identity) -> None:
        depth = 1100
        deepest = _nest(staging.dir("/srv"), depth)
        store = generate(staging, make_rules())
        report = _verify(store, staging, server_identity)
        assert report.is_clean
        assert report.stats.scanned == depth + 5  # /, /etc, passwd, group, /srv
        assert report.stats.system_count == report.stats.scanned

        (deepest / "rogue").write_bytes(b"x")
        report = _verify(store, staging, server_identity)
        rogue = "/srv" + "/d" * depth + "/rogue"
        assert _codes(report) == [("rm", rogue)]


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------

class TestLookup:
    def test_extra_directory_reported_once_without_visiting_children(
        self, staging, make_rules, generate, server_identity,
    ) -> None:
        store = generate(staging, make_rules())
        for name in ("a", "b", "c"):
            staging.file(f"/opt/rogue/{name}", b"payload")
        report = _verify(store, staging, server_identity)
        assert _codes(report) == [("rm", "/opt")]
        assert report.discrepancies[0].action == "rm -rf /opt"

    def test_extra_file(self, staging, make_rules, generate, server_identity) -> None:
        store = generate(staging, make_rules())
        staging.file("/etc/rogue.conf")
        report = _verify(store, staging, server_identity)
        assert [r.action for r in report.discrepancies] == ["rm -f /etc/rogue.conf"]

    def test_hostname_substitution(self, staging, make_rules, generate, server_identity) -> None:
        staging.file("/etc/httpd/conf/$h.conf", b"ServerName")
        store = generate(staging, make_rules())
        os.rename(staging.path("/etc/httpd/conf/$h.conf"), staging.path("/etc/httpd/conf/www1.conf"))
        assert _verify(store, staging, server_identity, hostname="www1").is_clean

    def test_without_hostname_match_generic_entry_is_missing(
        self, staging, make_rules, generate, server_identity,
    ) -> None:
        staging.file("/etc/httpd/conf/$h.conf", b"ServerName")
        store = generate(staging, make_rules())
        os.rename(staging.path("/etc/httpd/conf/$h.conf"), staging.path("/etc/httpd/conf/www1.conf"))
        report = _verify(store, staging, server_identity, hostname="www2")
        assert _codes(report) == [("rm", "/etc/httpd/conf/www1.conf"), ("MI", "/etc/httpd/conf/$h.conf")]

    def test_literal_entry_preferred_over_generic(self, staging, make_rules, generate, server_identity) -> None:
        staging.file("/etc/www1.conf", b"literal")
        staging.file("/etc/$h.conf", b"generic-and-longer")
        store = generate(staging, make_rules())
        os.remove(staging.path("/etc/$h.conf"))
        report = _verify(store, staging, server_identity, hostname="www1")
        assert _codes(report) == [("MI", "/etc/$h.conf")]


# ---------------------------------------------------------------------------
# Check battery
# ---------------------------------------------------------------------------

class TestChecks:
    def test_length_mismatch_skips_digest(
        self, staging, make_rules, generate, server_identity, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        store = generate(staging, make_rules())
        stored_size = staging.path("/etc/passwd").stat().st_size
        with open(staging.path("/etc/passwd"), "ab") as fh:
            fh.write(b"intruder:x:0:0::/:/bin/sh\n")
        live_size = staging.path("/etc/passwd").stat().st_size

        digested: list[str] = []
        real_digest = drift_verifier.digest_file
        monkeypatch.setattr(drift_verifier, "digest_file", lambda p: digested.append(str(p)) or real_digest(p))

        report = _verify(store, staging, server_identity)
        assert [r.render() for r in report.discrepancies] == [f"LE /etc/passwd {live_size}!={stored_size}"]
        assert not any(p.endswith("/etc/passwd") for p in digested)

    def test_digest_mismatch(self, staging, make_rules, generate, server_identity) -> None:
        staging.file("/etc/hostname", b"aaaa")
        store = generate(staging, make_rules())
        staging.path("/etc/hostname").write_bytes(b"bbbb")
        report = _verify(store, staging, server_identity)
        assert _codes(report) == [("M5", "/etc/hostname")]

    def test_config_content_not_checked(self, staging, make_rules, generate, server_identity) -> None:
        staging.file("/etc/fstab", b"short")
        store = generate(staging, make_rules(configs=["/etc/fstab"]))
        staging.path("/etc/fstab").write_bytes(b"a much longer fstab")
        assert _verify(store, staging, server_identity).is_clean

    def test_permissions_mismatch(self, staging, make_rules, generate, server_identity) -> None:
        staging.file("/etc/hostname", b"x", mode=0o644)
        store = generate(staging, make_rules())
        os.chmod(staging.path("/etc/hostname"), 0o666)
        report = _verify(store, staging, server_identity)
        assert [r.render() for r in report.discrepancies] == ["chmod 644 /etc/hostname # 666!=644"]

    def test_owner_and_group_mismatch(self, staging, make_rules, generate, owner_names) -> None:
        staging.file("/etc/hostname", b"x")
        store = generate(staging, make_rules())
        uid, gid = os.getuid(), os.getgid()
        renamed = StaticServerIdentity({uid: "impostor"}, {gid: "impostors"})
        report = _verify(store, staging, renamed)
        owners = report.by_code(DiscrepancyCode.OWNER_MISMATCH)
        groups = report.by_code(DiscrepancyCode.GROUP_MISMATCH)
        assert len(owners) == len(groups) == 5
        assert owners[0].action == f"chown {owner_names[0]} /"

    def test_ownership_exempt_path(self, staging, make_rules, generate) -> None:
        staging.file("/etc/opt/agent.env", b"x", mode=0o600)
        store = generate(staging, make_rules())
        os.chmod(staging.path("/etc/opt/agent.env"), 0o644)
        uid, gid = os.getuid(), os.getgid()
        renamed = StaticServerIdentity({uid: "impostor"}, {gid: "impostors"})
        report = _verify(store, staging, renamed, ownership_exempt_path="/etc/opt/agent.env")
        assert "/etc/opt/agent.env" not in {r.path for r in report.discrepancies}
        assert "/etc/opt" in {r.path for r in report.by_code(DiscrepancyCode.OWNER_MISMATCH)}

    def test_type_mismatch_skips_checks_but_descends_live_directory(
        self, staging, server_identity, entry_from_disk,
    ) -> None:
        staging.dir("/srv")
        staging.file("/srv/inner", b"x")
        entries = [
            *_base_entries(staging, entry_from_disk),
            entry_from_disk("/srv", staging.path("/srv"), mode=0o100600, size=0),
        ]
        report = _verify(MemorySnapshotStore(entries), staging, server_identity)
        assert _codes(report) == [("TY", "/srv"), ("rm", "/srv/inner")]
        assert report.discrepancies[0].detail == "directory!=regular file"

    def test_symlink_alternatives(self, staging, server_identity, entry_from_disk) -> None:
        staging.symlink("/python", "/usr/bin/python3.9")
        entries = [
            *_base_entries(staging, entry_from_disk),
            entry_from_disk("/python", staging.path("/python"), symlink_target="/usr/bin/python3|/usr/bin/python3.9"),
        ]
        assert _verify(MemorySnapshotStore(entries), staging, server_identity).is_clean

        os.remove(staging.path("/python"))
        os.symlink("/usr/bin/python", staging.path("/python"))
        report = _verify(MemorySnapshotStore(entries), staging, server_identity)
        assert [r.action for r in report.discrepancies] == ["rm -f /python; ln -s /usr/bin/python3 /python"]

    def test_prelink_content(self, staging, server_identity, entry_from_disk) -> None:
        staging.file("/tool", b"\x7fELF")

        class _Prelink(PrelinkVerifier):
            def verify(self, path: str, chroot: str | None = None) -> str:
                return "f" * 32

        entries = [
            *_base_entries(staging, entry_from_disk),
            entry_from_disk("/tool", staging.path("/tool"), category=FileCategory.PRELINK, size=4, content_digest="0" * 32),
        ]
        report = _verify(MemorySnapshotStore(entries), staging, server_identity, prelink=_Prelink())
        assert _codes(report) == [("M5", "/tool")]
        assert report.stats.prelink_files == 1

    def test_weird_names(self, staging, make_rules, generate, server_identity) -> None:
        staging.file("/tmp/... ", b"x")
        staging.file("/tmp/.. x", b"x")
        staging.file("/tmp/   ", b"x")
        store = generate(staging, make_rules())
        report = _verify(store, staging, server_identity)
        assert sorted(r.path for r in report.by_code(DiscrepancyCode.WEIRD_NAME)) == ["/tmp/   ", "/tmp/.. x", "/tmp/... "]

    def test_big_directory(self, staging, make_rules, generate, server_identity) -> None:
        for name in ("a", "b", "c"):
            staging.file(f"/var/spool/{name}")
        store = generate(staging, make_rules())
        report = _verify(store, staging, server_identity, big_directory_threshold=3)
        assert [r.render() for r in report.discrepancies] == ["BD /var/spool 3>=3"]

    def test_user_tree_checked_only_when_enabled(self, staging, make_rules, generate, server_identity) -> None:
        staging.dir("/home/alice")
        store = generate(staging, make_rules(users=["/home"]))
        staging.file("/home/alice/...", b"x")
        assert _codes(_verify(store, staging, server_identity)) == [("3D", "/home/alice/...")]
        assert _verify(store, staging, server_identity, include_user_trees=False).is_clean

    def test_throttle_applied_after_digest(self, staging, make_rules, generate, server_identity, fake_clock) -> None:
        staging.file("/etc/hostname", b"x")
        store = generate(staging, make_rules())
        slept: list[float] = []
        fake_clock.ticks = [0.0, 4.0] * 10
        throttle = Throttle(cap_seconds=1.5, clock=fake_clock, sleeper=slept.append)
        _verify(store, staging, server_identity, throttle=throttle)
        assert slept == [1.5, 1.5, 1.5]


# ---------------------------------------------------------------------------
# Missing entries
# ---------------------------------------------------------------------------

def _entry(path: str, optional: bool = False) -> SnapshotEntry:
    return SnapshotEntry(
        os_variant=C7,
        path=path,
        optional=optional,
        category=FileCategory.SYSTEM,
        mode=0o040755,
        owner_account="root",
        owner_group="root",
    )


class TestMissing:
    def test_descendants_of_missing_directory_suppressed(self) -> None:
        records = missing_records([_entry("/a"), _entry("/a/b"), _entry("/a/c")])
        assert [r.path for r in records] == ["/a"]

    def test_unrelated_paths_all_reported(self) -> None:
        records = missing_records([_entry("/a"), _entry("/b")])
        assert [r.path for r in records] == ["/a", "/b"]

    def test_sibling_sharing_a_prefix_is_not_suppressed(self) -> None:
        records = missing_records([_entry("/a"), _entry("/ab")])
        assert [r.path for r in records] == ["/a", "/ab"]

    def test_optional_entries_skipped(self) -> None:
        records = missing_records([_entry("/a", optional=True), _entry("/a/b")])
        assert [r.path for r in records] == ["/a/b"]

    def test_missing_file_reported_after_walk(self, staging, make_rules, generate, server_identity) -> None:
        staging.file("/etc/hostname", b"x")
        staging.file("/usr/lib/a/b", b"x")
        store = generate(staging, make_rules())
        os.remove(staging.path("/etc/hostname"))
        os.remove(staging.path("/usr/lib/a/b"))
        os.rmdir(staging.path("/usr/lib/a"))
        report = _verify(store, staging, server_identity)
        assert _codes(report) == [("MI", "/etc/hostname"), ("MI", "/usr/lib/a")]


# ---------------------------------------------------------------------------
# Run control
# ---------------------------------------------------------------------------

class TestRunControl:
    def test_records_streamed_as_found(self, staging, make_rules, generate, server_identity) -> None:
        store = generate(staging, make_rules())
        staging.file("/etc/rogue")
        seen = []
        report = _verify(store, staging, server_identity, on_record=seen.append)
        assert seen == report.discrepancies

    def test_stop_request(self, staging, make_rules, generate, server_identity) -> None:
        store = generate(staging, make_rules())
        staging.file("/etc/rogue1")
        staging.file("/etc/rogue2")
        verifier = DriftVerifier(
            store, C7, server_identity, live_root=str(staging.variant_root), throttle=NoThrottle(),
        )
        verifier._on_record = lambda record: verifier.request_stop()
        with pytest.raises(RunCancelledError):
            verifier.run()

    def test_missing_live_root(self, tmp_path: Path, server_identity) -> None:
        verifier = DriftVerifier(MemorySnapshotStore(), C7, server_identity, live_root=str(tmp_path / "absent"))
        with pytest.raises(VerificationError):
            verifier.run()
