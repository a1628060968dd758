"""
CLI tools for APItize versioning.

This module provides command-line tools for:
- compare: Diff two specification documents
- classify: Classify a version bump as major/minor/patch
- plan: Print the step template of a migration strategy

Invariants:
    - Tools work offline (no running server required)
    - Breaking changes cause a non-zero exit code
"""

from .versioning_cli import VersioningCLI

__all__ = ["VersioningCLI"]
