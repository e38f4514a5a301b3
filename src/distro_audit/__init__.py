"""distro-audit -- snapshot and drift verification for standardized Linux server builds.

The package records the expected on-disk state of every supported OS variant
from a staging tree (``engine.generator``) and later compares a live server
against that snapshot (``engine.verifier``).
"""
from __future__ import annotations

__version__ = "1.0.0"
