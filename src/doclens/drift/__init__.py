"""Drift detection between documents and the feature inventory."""

from doclens.drift.detector import detect_drift, select_features
from doclens.drift.model import DriftIssue, DriftReport, IssueType, Quality, Severity, rollup_quality

__all__ = [
    "DriftIssue",
    "DriftReport",
    "IssueType",
    "Quality",
    "Severity",
    "detect_drift",
    "rollup_quality",
    "select_features",
]
