"""Exception hierarchy for distro-audit.

Every exception carries a machine-readable ``error_code``, a ``severity``
telling the caller how to treat it, and an arbitrary ``context`` dict for
structured logging.

Severity decides control flow, not the exception subtype:

* ``FATAL`` -- unwinds the whole generation or verification run.
* ``RECOVERABLE`` -- the run continues; the condition is recorded.
* ``IGNORABLE`` -- expected races (a home directory entry deleted while
  being walked); swallowed without a record.

Per-path drift is never an exception: it is a ``DiscrepancyRecord`` value.
"""
from __future__ import annotations

from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Severity levels
# ---------------------------------------------------------------------------

class Severity(str, Enum):
    """How a failure affects the run that raised it."""

    FATAL = "fatal"
    RECOVERABLE = "recoverable"
    IGNORABLE = "ignorable"


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class DistroAuditError(Exception):
    """Root exception for every distro-audit failure.

    Attributes:
        message:    Human-readable description.
        error_code: Machine-readable code (e.g. ``"DA_RULE_FORMAT"``).
        severity:   How the run should react.
        context:    Arbitrary key-value context for structured logging.
    """

    def __init__(
        self,
        message: str = "distro-audit error",
        error_code: str = "DA_ERROR",
        severity: Severity = Severity.FATAL,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.error_code = error_code
        self.severity = severity
        self.context: dict[str, Any] = context or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}("
            f"error_code={self.error_code!r}, "
            f"severity={self.severity.value!r}, "
            f"message={self.message!r})"
        )

    @property
    def is_fatal(self) -> bool:
        return self.severity is Severity.FATAL

    def to_dict(self) -> dict[str, Any]:
        """Serialise the exception for logs and CLI error output."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "context": self.context,
        }


# ---------------------------------------------------------------------------
# Configuration exceptions
# ---------------------------------------------------------------------------

class ConfigurationError(DistroAuditError):
    """Raised when settings, rule lists or host detection are unusable."""

    def __init__(self, message: str = "Configuration error", **kwargs: Any) -> None:
        super().__init__(message, error_code=kwargs.pop("error_code", "DA_CONFIG_ERROR"), **kwargs)


class UnsupportedVariantError(ConfigurationError):
    """Raised for an (os name, version, architecture) triple outside the variant table."""

    def __init__(self, name: str, version: str, architecture: str, **kwargs: Any) -> None:
        self.os_name = name
        self.os_version = version
        self.architecture = architecture
        super().__init__(
            f"Unsupported operating system: name={name}, version={version}, architecture={architecture}",
            error_code=kwargs.pop("error_code", "DA_UNSUPPORTED_VARIANT"),
            context={"name": name, "version": version, "architecture": architecture},
            **kwargs,
        )


class RuleSetFormatError(ConfigurationError):
    """Raised when a rule list line is malformed or duplicated."""

    def __init__(self, message: str = "Malformed rule list", **kwargs: Any) -> None:
        super().__init__(message, error_code=kwargs.pop("error_code", "DA_RULE_FORMAT"), **kwargs)


# ---------------------------------------------------------------------------
# Generation exceptions
# ---------------------------------------------------------------------------

class GenerationError(DistroAuditError):
    """Raised when a snapshot generation run cannot complete."""

    def __init__(self, message: str = "Snapshot generation failed", **kwargs: Any) -> None:
        super().__init__(message, error_code=kwargs.pop("error_code", "DA_GENERATION_ERROR"), **kwargs)


class ForbiddenPathError(GenerationError):
    """Raised when paths listed in ``nevers`` exist in the staging tree."""

    def __init__(self, paths: list[str], **kwargs: Any) -> None:
        self.paths = list(paths)
        super().__init__(
            "One or more files exist that are listed in nevers",
            error_code=kwargs.pop("error_code", "DA_FORBIDDEN_PATH"),
            context={"paths": self.paths},
            **kwargs,
        )


class IdentityError(GenerationError):
    """Raised when a numeric owner or group has no name in the variant's account files."""

    def __init__(self, message: str = "Unable to resolve identity", **kwargs: Any) -> None:
        super().__init__(message, error_code=kwargs.pop("error_code", "DA_IDENTITY_ERROR"), **kwargs)


# ---------------------------------------------------------------------------
# Verification exceptions
# ---------------------------------------------------------------------------

class VerificationError(DistroAuditError):
    """Raised when a verification run cannot complete."""

    def __init__(self, message: str = "Verification failed", **kwargs: Any) -> None:
        super().__init__(message, error_code=kwargs.pop("error_code", "DA_VERIFICATION_ERROR"), **kwargs)


class PathVanishedError(DistroAuditError):
    """A path disappeared between listing its directory and inspecting it."""

    def __init__(self, path: str, **kwargs: Any) -> None:
        self.path = path
        super().__init__(
            f"Path vanished during the walk: {path}",
            error_code=kwargs.pop("error_code", "DA_PATH_VANISHED"),
            severity=kwargs.pop("severity", Severity.IGNORABLE),
            context={"path": path},
            **kwargs,
        )


# ---------------------------------------------------------------------------
# Digest exceptions
# ---------------------------------------------------------------------------

class DigestError(DistroAuditError):
    """Raised when a content digest cannot be computed."""

    def __init__(self, message: str = "Digest computation failed", **kwargs: Any) -> None:
        super().__init__(message, error_code=kwargs.pop("error_code", "DA_DIGEST_ERROR"), **kwargs)


class PrelinkVerifyError(DigestError):
    """Raised when the prelink verification helper fails or prints garbage."""

    def __init__(self, message: str = "prelink --verify failed", **kwargs: Any) -> None:
        super().__init__(message, error_code=kwargs.pop("error_code", "DA_PRELINK_ERROR"), **kwargs)


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

class RunCancelledError(DistroAuditError):
    """Raised when a run was asked to stop before it walked every path."""

    def __init__(self, message: str = "Run cancelled", **kwargs: Any) -> None:
        super().__init__(message, error_code=kwargs.pop("error_code", "DA_CANCELLED"), **kwargs)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    "Severity",
    "DistroAuditError",
    "ConfigurationError",
    "UnsupportedVariantError",
    "RuleSetFormatError",
    "GenerationError",
    "ForbiddenPathError",
    "IdentityError",
    "VerificationError",
    "PathVanishedError",
    "DigestError",
    "PrelinkVerifyError",
    "RunCancelledError",
]
