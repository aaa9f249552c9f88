"""Prose synthesis seam.

Rationales for target files and fix suggestions for drift issues come from
a ``ContentSynthesizer``. The default implementation is deterministic and
fills fixed phrasings; callers can plug in anything that honours the
protocol.
"""

from __future__ import annotations

from typing import Protocol, Sequence


class ContentSynthesizer(Protocol):
    def fix_suggestion(self, issue_type: str, subject: str, detail: str = "") -> str: ...

    def rationale(self, slot_name: str, description: str, sections: Sequence[str]) -> str: ...

    def index_blurb(self, slot_name: str, description: str) -> str: ...


_FIXES: dict[str, str] = {
    "missing_content": "Document {subject}: describe what it does and add a configuration example.",
    "outdated_information": "Update {subject}{detail}.",
    "incorrect_example": "Complete the example for {subject}{detail}.",
    "incomplete_explanation": "Explain {subject} in at least one full sentence or add an example.",
    "missing_best_practices": "Add a best-practices or tips section to {subject}.",
    "unclear_content": "Clarify {subject}{detail}.",
    "broken_link": "Fix the link to {subject}{detail}.",
}


class TemplateSynthesizer:
    """Deterministic phrasing used when no external synthesizer is configured."""

    def fix_suggestion(self, issue_type: str, subject: str, detail: str = "") -> str:
        pattern = _FIXES.get(issue_type, "Review {subject}{detail}.")
        suffix = f" ({detail})" if detail else ""
        return pattern.format(subject=subject, detail=suffix)

    def rationale(self, slot_name: str, description: str, sections: Sequence[str]) -> str:
        joined = ", ".join(sections) if sections else "no sections"
        if description:
            return f"{slot_name}: {description.rstrip('.')}. Holds {joined}."
        return f"{slot_name}: groups {joined}."

    def index_blurb(self, slot_name: str, description: str) -> str:
        return description or slot_name


DEFAULT_SYNTHESIZER = TemplateSynthesizer()
