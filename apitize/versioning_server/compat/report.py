"""
Compatibility report types.

A CompatibilityReport is computed on demand and never stored on its own;
migration plans embed a copy for audit.

Invariants:
    - compatible is True iff breaking_changes is empty
    - score = max(0, 100 - sum of severity deductions)
    - Warnings never affect compatible or score
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional


class Severity(Enum):
    """Severity of a breaking change."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def deduction(self) -> int:
        """Score points removed per finding."""
        return _DEDUCTIONS[self]


_DEDUCTIONS = {
    Severity.CRITICAL: 25,
    Severity.HIGH: 15,
    Severity.MEDIUM: 10,
    Severity.LOW: 5,
}


class ChangeType(Enum):
    """Kinds of breaking change."""

    REMOVED_ENDPOINT = "removed-endpoint"
    CHANGED_SCHEMA = "changed-schema"
    ADDED_REQUIRED_FIELD = "added-required-field"
    CHANGED_RESPONSE_FORMAT = "changed-response-format"


@dataclass(frozen=True)
class BreakingChange:
    """A change that breaks existing callers.

    Attributes:
        type: Kind of change
        path: Affected element ("/orders", "GET /orders", "components.schemas.Order")
        description: What changed
        severity: How bad it is
        impact: What callers will experience
        mitigation: How to avoid the break, if known
    """

    type: ChangeType
    path: str
    description: str
    severity: Severity
    impact: str
    mitigation: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "type": self.type.value,
            "path": self.path,
            "description": self.description,
            "severity": self.severity.value,
            "impact": self.impact,
        }
        if self.mitigation is not None:
            data["mitigation"] = self.mitigation
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BreakingChange:
        return cls(
            type=ChangeType(data["type"]),
            path=data["path"],
            description=data.get("description", ""),
            severity=Severity(data["severity"]),
            impact=data.get("impact", ""),
            mitigation=data.get("mitigation"),
        )

    def __str__(self) -> str:
        severity = self.severity.value.upper()
        return f"[{severity}] {self.type.value}: {self.path} - {self.description}"


@dataclass(frozen=True)
class CompatWarning:
    """A non-breaking change worth telling callers about."""

    type: str
    description: str
    recommendation: str

    def to_dict(self) -> dict[str, str]:
        return {
            "type": self.type,
            "description": self.description,
            "recommendation": self.recommendation,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CompatWarning:
        return cls(
            type=data["type"],
            description=data.get("description", ""),
            recommendation=data.get("recommendation", ""),
        )


def compute_score(changes: Iterable[BreakingChange]) -> int:
    """100 minus the severity deductions, floored at 0."""
    return max(0, 100 - sum(change.severity.deduction for change in changes))


@dataclass(frozen=True)
class CompatibilityReport:
    """Result of comparing two versions of an API.

    Attributes:
        version1: Baseline version
        version2: Candidate version
        breaking_changes: Findings that break existing callers
        warnings: Non-breaking findings
    """

    version1: str
    version2: str
    breaking_changes: List[BreakingChange] = field(default_factory=list)
    warnings: List[CompatWarning] = field(default_factory=list)

    @property
    def compatible(self) -> bool:
        return not self.breaking_changes

    @property
    def score(self) -> int:
        return compute_score(self.breaking_changes)

    @property
    def max_severity(self) -> Optional[Severity]:
        """Highest severity among findings (None when compatible)."""
        if not self.breaking_changes:
            return None
        order = list(Severity)
        return max((c.severity for c in self.breaking_changes), key=order.index)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version1": self.version1,
            "version2": self.version2,
            "compatible": self.compatible,
            "breaking_changes": [c.to_dict() for c in self.breaking_changes],
            "warnings": [w.to_dict() for w in self.warnings],
            "score": self.score,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CompatibilityReport:
        return cls(
            version1=data["version1"],
            version2=data["version2"],
            breaking_changes=[
                BreakingChange.from_dict(c) for c in data.get("breaking_changes", [])
            ],
            warnings=[CompatWarning.from_dict(w) for w in data.get("warnings", [])],
        )
