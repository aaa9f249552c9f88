"""Error taxonomy for doclens runs.

Per-document errors (``ValidationError``, ``FsOperationError``) never abort
sibling documents; ``ManifestMergeError`` and ``BuildValidationFailure`` are
all-or-nothing for the commit.
"""

from __future__ import annotations


class DoclensError(Exception):
    """Base error carrying the document, the failing phase and a remedy."""

    def __init__(
        self,
        message: str,
        *,
        document: str = "",
        phase: str = "",
        remedy: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.document = document
        self.phase = phase
        self.remedy = remedy

    def describe(self) -> str:
        subject = self.document or "<corpus>"
        phase = self.phase or "run"
        text = f"{subject}: {phase} failed: {self.message}"
        if self.remedy:
            text += f" (fix: {self.remedy})"
        return text

    def as_json_dict(self) -> dict[str, str]:
        return {
            "kind": type(self).__name__,
            "document": self.document,
            "phase": self.phase,
            "message": self.message,
            "remedy": self.remedy,
        }


class InputError(DoclensError):
    """Malformed inventory, catalog, manifest or configuration input."""


class ValidationError(DoclensError):
    """Fatal for one document; the batch skips it and continues."""


class TemplateNotFound(ValidationError):
    pass


class ChapterNotFound(ValidationError):
    pass


class LinkResolutionFailure(DoclensError):
    """A link that cannot be resolved. Recorded, never raised past the graph."""


class FsOperationError(DoclensError):
    """A filesystem operation failed while applying one document."""

    def __init__(
        self,
        message: str,
        *,
        document: str = "",
        phase: str = "apply",
        remedy: str = "",
        completed: tuple[str, ...] = (),
    ) -> None:
        super().__init__(message, document=document, phase=phase, remedy=remedy)
        self.completed = completed

    def as_json_dict(self) -> dict[str, str]:
        payload = super().as_json_dict()
        payload["completed"] = ", ".join(self.completed)
        return payload


class ManifestMergeError(DoclensError):
    """The navigation manifest could not absorb the batch deltas."""


class BuildValidationFailure(DoclensError):
    """The external build rejected the committed corpus."""

    def __init__(
        self,
        message: str,
        *,
        suspects: tuple[str, ...] = (),
        log: str = "",
        remedy: str = "inspect the build log and rerun `doclens validate`",
    ) -> None:
        super().__init__(message, phase="build", remedy=remedy)
        self.suspects = suspects
        self.log = log
