"""Content digests and verification throttling."""
from __future__ import annotations

from distro_audit.engine.digest.content_digest import (
    FileDigest,
    PrelinkVerifier,
    digest_file,
    parse_helper_digest,
)
from distro_audit.engine.digest.throttle import NoThrottle, Throttle

__all__ = [
    "FileDigest",
    "NoThrottle",
    "PrelinkVerifier",
    "Throttle",
    "digest_file",
    "parse_helper_digest",
]
