from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import StrEnum

from doclens.artifacts import JSONObject


class IssueType(StrEnum):
    MISSING_CONTENT = "missing_content"
    OUTDATED_INFORMATION = "outdated_information"
    INCORRECT_EXAMPLE = "incorrect_example"
    INCOMPLETE_EXPLANATION = "incomplete_explanation"
    MISSING_BEST_PRACTICES = "missing_best_practices"
    UNCLEAR_CONTENT = "unclear_content"
    BROKEN_LINK = "broken_link"


class Severity(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Quality(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    GOOD = "good"


DEFAULT_SEVERITY: dict[IssueType, Severity] = {
    IssueType.MISSING_CONTENT: Severity.HIGH,
    IssueType.OUTDATED_INFORMATION: Severity.HIGH,
    IssueType.INCORRECT_EXAMPLE: Severity.MEDIUM,
    IssueType.INCOMPLETE_EXPLANATION: Severity.MEDIUM,
    IssueType.MISSING_BEST_PRACTICES: Severity.LOW,
    IssueType.UNCLEAR_CONTENT: Severity.LOW,
    IssueType.BROKEN_LINK: Severity.MEDIUM,
}


@dataclass(frozen=True)
class DriftIssue:
    type: IssueType
    severity: Severity
    description: str
    fix_suggestion: str
    section_ref: str | None = None
    source_reference: str | None = None
    current: str | None = None
    should_be: str | None = None

    def as_json_dict(self) -> JSONObject:
        payload: JSONObject = {
            "type": self.type.value,
            "severity": self.severity.value,
            "section_ref": self.section_ref,
            "description": self.description,
            "fix_suggestion": self.fix_suggestion,
            "source_reference": self.source_reference,
        }
        if self.current is not None or self.should_be is not None:
            payload["current"] = self.current
            payload["should_be"] = self.should_be
        return payload


def rollup_quality(issues: tuple[DriftIssue, ...] | list[DriftIssue]) -> Quality:
    counts = Counter(issue.severity for issue in issues)
    if counts[Severity.CRITICAL]:
        return Quality.CRITICAL
    if counts[Severity.HIGH] >= 1 and len(issues) >= 3:
        return Quality.HIGH
    if counts[Severity.HIGH] or counts[Severity.MEDIUM] >= 2:
        return Quality.MEDIUM
    if counts[Severity.LOW]:
        return Quality.LOW
    return Quality.GOOD


@dataclass(frozen=True)
class DriftReport:
    document_id: str
    issues: tuple[DriftIssue, ...]
    quality: Quality
    positive_aspects: tuple[str, ...] = ()
    cross_references: tuple[str, ...] = ()

    def counts(self) -> dict[str, int]:
        counts = Counter(issue.severity.value for issue in self.issues)
        return {severity.value: counts.get(severity.value, 0) for severity in Severity}

    def as_json_dict(self) -> JSONObject:
        return {
            "document_id": self.document_id,
            "quality": self.quality.value,
            "counts": self.counts(),
            "issues": [issue.as_json_dict() for issue in self.issues],
            "positive_aspects": list(self.positive_aspects),
            "cross_references": list(self.cross_references),
        }
