"""``distro-audit`` command line.

    distro-audit generate            build the snapshot from the staging tree
    distro-audit verify              compare this server against its snapshot
    distro-audit register-accounts   record the account names owners may use

Settings come from ``DISTRO_AUDIT_*`` environment variables (see
``infrastructure.config``); options given here override them.
"""
from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import structlog

from distro_audit import __version__
from distro_audit.domain.entities.discrepancy import DiscrepancyRecord
from distro_audit.domain.entities.run_report import VerificationStats
from distro_audit.engine.digest.content_digest import PrelinkVerifier
from distro_audit.engine.digest.throttle import Throttle
from distro_audit.engine.generator.identity import parse_id_file
from distro_audit.engine.generator.snapshot_generator import SnapshotGenerator
from distro_audit.engine.rules.rule_sets import RuleSetRegistry
from distro_audit.engine.verifier.drift_verifier import DriftVerifier
from distro_audit.infrastructure.config import Settings, get_settings
from distro_audit.infrastructure.identity import LocalServerIdentity
from distro_audit.infrastructure.logging import setup_logging
from distro_audit.infrastructure.os_release import resolve_variant
from distro_audit.infrastructure.persistence import MemorySnapshotStore, SqlSnapshotStore
from distro_audit.shared.exceptions import ConfigurationError, DistroAuditError, ForbiddenPathError

logger = structlog.get_logger(__name__)

# sysexits.h
EX_OK = 0
EX_DRIFT = 1
EX_SOFTWARE = 70
EX_IOERR = 74
EX_CONFIG = 78
EX_INTERRUPTED = 130


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="distro-audit", description="Distribution snapshot and drift verification")
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    ap.add_argument("--database-url", help="snapshot database (SQLAlchemy URL)")
    ap.add_argument("--log-level", help="debug, info, warning, error or critical")
    ap.add_argument("--log-json", action="store_true", default=None, help="JSON log lines on stderr")
    sub = ap.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="build the snapshot from a staging tree")
    gen.add_argument("--staging-root", type=Path)
    gen.add_argument("--rules-dir", type=Path, help="directory of <rule-set>.txt files")
    gen.add_argument("--workers", type=int, dest="worker_count")
    gen.add_argument("--batch-size", type=int)
    gen.add_argument("--dry-run", action="store_true", help="walk and report, keep the stored snapshot")

    ver = sub.add_parser("verify", help="compare this server against its snapshot")
    ver.add_argument("--live-root", type=Path)
    ver.add_argument("--hostname")
    ver.add_argument("--no-user-trees", action="store_false", dest="include_user_trees", default=None)
    ver.add_argument("--no-throttle", action="store_true", help="do not sleep after digest checks")
    ver.add_argument("--quiet", action="store_true", help="print only the summary")

    reg = sub.add_parser("register-accounts", help="record account and group names owners may use")
    reg.add_argument("--passwd", type=Path, default=Path("/etc/passwd"))
    reg.add_argument("--group", type=Path, default=Path("/etc/group"))
    return ap


def _settings(args: argparse.Namespace) -> Settings:
    overrides: dict[str, Any] = {}
    for field in (
        "database_url",
        "log_level",
        "log_json",
        "staging_root",
        "rules_dir",
        "worker_count",
        "batch_size",
        "live_root",
        "hostname",
        "include_user_trees",
    ):
        value = getattr(args, field, None)
        if value is not None:
            overrides[field] = value
    settings = get_settings()
    if not overrides:
        return settings
    try:
        return Settings.model_validate({**settings.model_dump(), **overrides})
    except ValueError as exc:
        raise ConfigurationError(f"Invalid option: {exc}") from exc


def _print_stats(stats: VerificationStats) -> None:
    print(
        f"# scanned={stats.scanned} system={stats.system_count} user={stats.user_count} "
        f"no_recurse={stats.no_recurse_count} prelink={stats.prelink_files}/{stats.prelink_bytes}B "
        f"digest={stats.digest_files}/{stats.digest_bytes}B duration={stats.duration_seconds:.1f}s"
    )


def cmd_generate(args: argparse.Namespace, settings: Settings) -> int:
    store = MemorySnapshotStore() if args.dry_run else SqlSnapshotStore.from_url(settings.database_url)
    generator = SnapshotGenerator(
        settings.staging_root,
        RuleSetRegistry.from_resources(settings.rules_dir),
        store,
        prelink=PrelinkVerifier(settings.prelink_path, settings.chroot_path),
        worker_count=settings.worker_count,
        batch_size=settings.batch_size,
    )
    result = generator.run()
    for variant, count in sorted(result.entries_by_variant.items()):
        print(f"variant {variant}: {count} entries")
    for name, labels in sorted(result.unmatched_rules.items()):
        for label in labels:
            print(f"# unmatched {name}: {label}")
    for orphan in result.owner_orphans:
        print(f"# no account: {orphan.path} {orphan.owner_account}:{orphan.owner_group}")
    return EX_OK


def cmd_verify(args: argparse.Namespace, settings: Settings) -> int:
    variant = resolve_variant(settings.os_name, settings.os_version, settings.architecture)

    def show(record: DiscrepancyRecord) -> None:
        print(record.render(), flush=True)

    verifier = DriftVerifier(
        SqlSnapshotStore.from_url(settings.database_url),
        variant,
        LocalServerIdentity(),
        hostname=settings.hostname,
        live_root=str(settings.live_root),
        throttle=Throttle(0.0 if args.no_throttle else settings.throttle_cap_seconds),
        prelink=PrelinkVerifier(settings.prelink_path, settings.chroot_path),
        include_user_trees=settings.include_user_trees,
        big_directory_threshold=settings.big_directory_threshold,
        uid_min=settings.uid_min,
        gid_min=settings.gid_min,
        ownership_exempt_path=settings.ownership_exempt_path,
        on_record=None if args.quiet else show,
    )
    report = verifier.run()
    _print_stats(report.stats)
    return EX_OK if report.is_clean else EX_DRIFT


def cmd_register_accounts(args: argparse.Namespace, settings: Settings) -> int:
    users = parse_id_file(args.passwd.read_text(encoding="utf-8")).values()
    groups = parse_id_file(args.group.read_text(encoding="utf-8")).values()
    store = SqlSnapshotStore.from_url(settings.database_url)
    added_users, added_groups = store.register_accounts(users, groups)
    print(f"registered {added_users} accounts, {added_groups} groups")
    return EX_OK


_COMMANDS = {
    "generate": cmd_generate,
    "verify": cmd_verify,
    "register-accounts": cmd_register_accounts,
}


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        settings = _settings(args)
    except DistroAuditError as exc:
        print(f"distro-audit: {exc.message}", file=sys.stderr)
        for detail in exc.context.get("errors", []):
            print(f"  {detail}", file=sys.stderr)
        return EX_CONFIG

    setup_logging(settings.log_level, settings.log_json, settings.log_file)
    try:
        return _COMMANDS[args.command](args, settings)
    except ForbiddenPathError as exc:
        print("One or more files exist that are listed in nevers:", file=sys.stderr)
        for path in exc.paths:
            print(path, file=sys.stderr)
        return EX_SOFTWARE
    except ConfigurationError as exc:
        logger.error("cli.configuration_error", **exc.to_dict())
        return EX_CONFIG
    except DistroAuditError as exc:
        logger.error("cli.run_failed", **exc.to_dict())
        return EX_IOERR if isinstance(exc.__cause__, OSError) else EX_SOFTWARE
    except OSError as exc:
        logger.error("cli.io_error", error=str(exc))
        return EX_IOERR
    except KeyboardInterrupt:
        logger.warning("cli.interrupted")
        return EX_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
