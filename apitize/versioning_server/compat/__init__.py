"""
Compatibility analysis between API versions.
"""

from .analyzer import CompatibilityAnalyzer, compare_specifications
from .report import (
    BreakingChange,
    ChangeType,
    CompatibilityReport,
    CompatWarning,
    Severity,
    compute_score,
)

__all__ = [
    "CompatibilityAnalyzer",
    "compare_specifications",
    "BreakingChange",
    "ChangeType",
    "CompatibilityReport",
    "CompatWarning",
    "Severity",
    "compute_score",
]
