"""
Semantic version helpers.

Thin wrappers around the ``semver`` library used by the version store,
the lifecycle policy engine and the CLI:
- Strict SemVer 2.0.0 validation (a leading "v" is not accepted)
- Precedence ordering (build metadata does not affect precedence)
- patch / minor / major classification between two versions

Example:
    >>> classify_change("1.0.0", "1.1.0")
    'minor'
    >>> sort_versions(["1.10.0", "1.2.0"])
    ['1.2.0', '1.10.0']
"""

from __future__ import annotations

from typing import Iterable, List

import semver


def is_valid(version: str) -> bool:
    """Whether ``version`` is valid semantic-version syntax."""
    if not isinstance(version, str):
        return False
    return semver.Version.is_valid(version)


def parse(version: str) -> semver.Version:
    """Parse a version string.

    Raises:
        ValueError: If the string is not a semantic version
    """
    return semver.Version.parse(version)


def precedence_key(version: str) -> semver.Version:
    """Sort key implementing semantic-version precedence."""
    return parse(version).replace(build=None)


def compare(left: str, right: str) -> int:
    """Compare two versions by precedence (-1, 0, 1)."""
    return precedence_key(left).compare(precedence_key(right))


def sort_versions(versions: Iterable[str], reverse: bool = False) -> List[str]:
    """Sort version strings by precedence."""
    return sorted(versions, key=precedence_key, reverse=reverse)


def classify_change(previous: str, current: str) -> str:
    """Classify ``current`` relative to ``previous``.

    Returns:
        "major" if the major component differs, "minor" if the minor
        component differs, otherwise "patch" (including prerelease-only
        and identical versions).
    """
    old = parse(previous)
    new = parse(current)
    if old.major != new.major:
        return "major"
    if old.minor != new.minor:
        return "minor"
    return "patch"
