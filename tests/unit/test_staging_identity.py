"""Unit tests for owner/group name resolution inside a staging tree."""
from __future__ import annotations

from pathlib import Path

import pytest

from distro_audit.domain.value_objects.os_variant import OsVariant
from distro_audit.engine.generator.identity import StagingIdentityResolver, parse_id_file
from distro_audit.shared.exceptions import IdentityError

C7 = OsVariant.CENTOS_7_X86_64


class TestParseIdFile:
    def test_first_name_per_id_wins(self) -> None:
        names = parse_id_file("root:x:0:0:root:/root:/bin/bash\ntoor:x:0:0::/:/bin/sh\nbin:x:1:1::/:/sbin/nologin\n")
        assert names == {0: "root", 1: "bin"}

    def test_group_format(self) -> None:
        assert parse_id_file("wheel:x:10:alice,bob\n") == {10: "wheel"}

    def test_skips_blank_and_comments(self) -> None:
        assert parse_id_file("\n# comment\nmail:x:12:\n") == {12: "mail"}

    @pytest.mark.parametrize("line", ["broken", "name:x:notanumber:0"])
    def test_malformed(self, line: str) -> None:
        with pytest.raises(IdentityError):
            parse_id_file(line)


class TestStagingIdentityResolver:
    @pytest.fixture
    def root(self, tmp_path: Path) -> Path:
        etc = tmp_path / "centos" / "7" / "x86_64" / "etc"
        etc.mkdir(parents=True)
        (etc / "passwd").write_text("root:x:0:0::/root:/bin/bash\napache:x:48:48::/:/sbin/nologin\n")
        (etc / "group").write_text("root:x:0:\nmail:x:12:\n")
        return tmp_path

    def test_resolves_names(self, root: Path) -> None:
        resolver = StagingIdentityResolver(root)
        assert resolver.username_for_uid(C7, 48) == "apache"
        assert resolver.groupname_for_gid(C7, 12) == "mail"

    def test_unknown_id_is_fatal(self, root: Path) -> None:
        resolver = StagingIdentityResolver(root)
        with pytest.raises(IdentityError, match="4242"):
            resolver.username_for_uid(C7, 4242)
        with pytest.raises(IdentityError):
            resolver.groupname_for_gid(C7, 4242)

    def test_files_read_once(self, root: Path) -> None:
        resolver = StagingIdentityResolver(root)
        resolver.username_for_uid(C7, 0)
        (root / "centos" / "7" / "x86_64" / "etc" / "passwd").write_text("other:x:0:0::/:/bin/sh\n")
        assert resolver.username_for_uid(C7, 0) == "root"

    def test_missing_variant_files(self, root: Path) -> None:
        resolver = StagingIdentityResolver(root)
        with pytest.raises(IdentityError, match="Unable to read"):
            resolver.username_for_uid(OsVariant.ROCKY_9_X86_64, 0)
