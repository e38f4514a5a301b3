"""Operating-system variant value objects.

An OS variant is a (distribution name, version, CPU architecture) triple
reduced to a small integer.  The table is closed: anything not listed here is
rejected with ``UnsupportedVariantError``.

Staging trees lay every variant out as ``/<name>/<version>/<arch>/...``;
``split_staging_path`` turns such a path back into a variant plus the path
the file will have on a real server.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass

from distro_audit.shared.exceptions import UnsupportedVariantError

# ---------------------------------------------------------------------------
# Variant table
# ---------------------------------------------------------------------------


class OsVariant(enum.IntEnum):
    """Supported OS variants.  Values are stable persistence keys."""

    REDHAT_ES_4_X86_64 = 1
    CENTOS_5_DOM0_X86_64 = 2
    CENTOS_7_X86_64 = 3
    CENTOS_7_DOM0_X86_64 = 4
    ROCKY_9_X86_64 = 5

    @property
    def os_name(self) -> str:
        return _TRIPLES[self][0]

    @property
    def os_version(self) -> str:
        return _TRIPLES[self][1]

    @property
    def architecture(self) -> str:
        return _TRIPLES[self][2]

    @property
    def staging_prefix(self) -> str:
        """Directory of this variant below a staging root, e.g. ``/centos/7/x86_64``."""
        return f"/{self.os_name}/{self.os_version}/{self.architecture}"

    @property
    def label(self) -> str:
        """Rule-list spelling of the variant: ``centos,7,x86_64``."""
        return f"{self.os_name},{self.os_version},{self.architecture}"

    @classmethod
    def resolve(cls, name: str, version: str, architecture: str) -> OsVariant:
        """Exact-match lookup of a triple.

        Raises ``UnsupportedVariantError`` for anything outside the table.
        """
        variant = _BY_TRIPLE.get((name, version, architecture))
        if variant is None:
            raise UnsupportedVariantError(name, version, architecture)
        return variant


_TRIPLES: dict[OsVariant, tuple[str, str, str]] = {
    OsVariant.REDHAT_ES_4_X86_64: ("redhat", "ES 4", "x86_64"),
    OsVariant.CENTOS_5_DOM0_X86_64: ("centos", "5.dom0", "x86_64"),
    OsVariant.CENTOS_7_X86_64: ("centos", "7", "x86_64"),
    OsVariant.CENTOS_7_DOM0_X86_64: ("centos", "7.dom0", "x86_64"),
    OsVariant.ROCKY_9_X86_64: ("rocky", "9", "x86_64"),
}

_BY_TRIPLE: dict[tuple[str, str, str], OsVariant] = {
    triple: variant for variant, triple in _TRIPLES.items()
}


# ---------------------------------------------------------------------------
# Staging path parsing
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StagingPath:
    """A staging-tree path split into its variant and server-relative path.

    Both fields are ``None`` when the path sits above the variant level
    (``/``, ``/centos``, ``/centos/7``); such paths are walked but never
    classified or emitted.
    """

    variant: OsVariant | None
    relative_path: str | None

    @property
    def is_classifiable(self) -> bool:
        return self.variant is not None and self.relative_path is not None


_UNCLASSIFIABLE = StagingPath(variant=None, relative_path=None)


def split_staging_path(path: str) -> StagingPath:
    """Split ``/<name>/<version>/<arch>/<relative...>`` into variant and path.

    ``/centos/7/x86_64`` itself maps to relative path ``/``.  Fewer than three
    segments is not an error; the result is simply unclassifiable.
    """
    if path.startswith("/"):
        path = path[1:]
    parts = path.split("/", 3)
    if len(parts) < 3:
        return _UNCLASSIFIABLE
    name, version, architecture = parts[0], parts[1], parts[2]
    variant = OsVariant.resolve(name, version, architecture)
    if len(parts) == 3:
        return StagingPath(variant=variant, relative_path="/")
    return StagingPath(variant=variant, relative_path="/" + parts[3])
