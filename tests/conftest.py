"""Root conftest -- shared fixtures for all test suites."""
from __future__ import annotations

import os
import stat
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

# Insert the src directory at the front of sys.path so that
# ``import distro_audit`` works without an installed package.
_src = str(Path(__file__).resolve().parent.parent / "src")
if _src not in sys.path:
    sys.path.insert(0, _src)

from distro_audit.domain.entities.snapshot_entry import SnapshotEntry  # noqa: E402
from distro_audit.domain.value_objects.file_category import FileCategory  # noqa: E402
from distro_audit.domain.value_objects.os_variant import OsVariant  # noqa: E402
from distro_audit.engine.generator.snapshot_generator import SnapshotGenerator  # noqa: E402
from distro_audit.engine.rules.rule_sets import RuleSetName, RuleSetRegistry  # noqa: E402
from distro_audit.infrastructure.identity import StaticServerIdentity  # noqa: E402
from distro_audit.infrastructure.persistence.memory_store import MemorySnapshotStore  # noqa: E402

UID = os.getuid()
GID = os.getgid()
OWNER = "root" if UID == 0 else "tester"
GROUP = "root" if GID == 0 else "testers"

VARIANT = OsVariant.CENTOS_7_X86_64


def _account_lines(name: str, numeric: int, extra: str) -> str:
    lines = [f"root:x:0:0{extra}"]
    if numeric != 0:
        lines.append(f"{name}:x:{numeric}:{numeric}{extra}")
    return "\n".join(lines) + "\n"


class StagingTree:
    """A staging root with one variant laid out below it.

    ``etc/passwd`` and ``etc/group`` name the ids of the user running the
    tests, so every file created here resolves to ``OWNER``/``GROUP``.
    """

    def __init__(self, root: Path, variant: OsVariant = VARIANT) -> None:
        self.root = root
        self.variant = variant
        self.variant_root = root / variant.staging_prefix.lstrip("/")
        self.dir("/etc")
        self.file("/etc/passwd", _account_lines(OWNER, UID, ":test:/home/test:/bin/bash").encode())
        self.file("/etc/group", _account_lines(GROUP, GID, ":").encode())

    def path(self, relative: str) -> Path:
        return self.variant_root / relative.lstrip("/")

    def dir(self, relative: str, mode: int = 0o755) -> Path:
        target = self.path(relative)
        target.mkdir(parents=True, exist_ok=True)
        os.chmod(target, mode)
        return target

    def file(self, relative: str, content: bytes = b"", mode: int = 0o644) -> Path:
        target = self.path(relative)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        os.chmod(target, mode)
        return target

    def symlink(self, relative: str, link_target: str) -> Path:
        target = self.path(relative)
        target.parent.mkdir(parents=True, exist_ok=True)
        os.symlink(link_target, target)
        return target


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def staging(tmp_path: Path) -> StagingTree:
    return StagingTree(tmp_path / "distro")


@pytest.fixture
def make_rules() -> Callable[..., RuleSetRegistry]:
    """``make_rules(configs=["/etc/fstab"], ...)`` for the default variant."""

    def _make(**paths_by_set: list[str]) -> RuleSetRegistry:
        lines = {
            RuleSetName(name): [f"{VARIANT.label},{p}" for p in paths]
            for name, paths in paths_by_set.items()
        }
        return RuleSetRegistry.from_lines(lines)

    return _make


@pytest.fixture
def server_identity() -> StaticServerIdentity:
    users = {0: "root", UID: OWNER}
    groups = {0: "root", GID: GROUP}
    return StaticServerIdentity(users, groups)


@pytest.fixture
def generate() -> Callable[..., MemorySnapshotStore]:
    """Generate a snapshot of a staging tree into a fresh in-memory store."""

    def _generate(tree: StagingTree, rules: RuleSetRegistry, **kwargs) -> MemorySnapshotStore:
        store = MemorySnapshotStore()
        kwargs.setdefault("worker_count", 2)
        SnapshotGenerator(tree.root, rules, store, **kwargs).run()
        return store

    return _generate


@pytest.fixture
def entry_from_disk() -> Callable[..., SnapshotEntry]:
    """Snapshot entry matching what ``lstat`` reports for *full*, with overrides."""

    def _entry(path: str, full: Path, **overrides) -> SnapshotEntry:
        st = os.lstat(full)
        fields = {
            "os_variant": VARIANT,
            "path": path,
            "category": FileCategory.SYSTEM,
            "mode": st.st_mode,
            "owner_account": OWNER,
            "owner_group": GROUP,
        }
        if stat.S_ISLNK(st.st_mode):
            fields["symlink_target"] = os.readlink(full)
        fields.update(overrides)
        return SnapshotEntry(**fields)

    return _entry


@pytest.fixture
def fake_clock() -> Callable[[], float]:
    """Clock that advances by the amounts pushed onto ``fake_clock.ticks``."""

    class _Clock:
        def __init__(self) -> None:
            self.now = 0.0
            self.ticks: list[float] = []

        def __call__(self) -> float:
            if self.ticks:
                self.now += self.ticks.pop(0)
            return self.now

    return _Clock()


@pytest.fixture
def owner_names() -> tuple[str, str]:
    """(account, group) names every file created by the tests resolves to."""
    return OWNER, GROUP


@pytest.fixture
def ids() -> tuple[int, int]:
    """(uid, gid) of the user running the tests."""
    return UID, GID
