from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from doclens.artifacts import JSONObject
from doclens.links.anchors import AnchorTable


class FsOperationKind(StrEnum):
    CREATE_DIR = "create_dir"
    CREATE_FILE = "create_file"
    UPDATE_FILE = "update_file"
    DELETE_FILE = "delete_file"


@dataclass(frozen=True)
class CreateDir:
    path: str
    kind: FsOperationKind = field(default=FsOperationKind.CREATE_DIR, init=False)

    def describe(self) -> str:
        return f"mkdir {self.path}"

    def as_json_dict(self) -> JSONObject:
        return {"kind": self.kind.value, "path": self.path}


@dataclass(frozen=True)
class CreateFile:
    path: str
    content: str
    kind: FsOperationKind = field(default=FsOperationKind.CREATE_FILE, init=False)

    def describe(self) -> str:
        return f"create {self.path}"

    def as_json_dict(self) -> JSONObject:
        return {
            "kind": self.kind.value,
            "path": self.path,
            "lines": len(self.content.splitlines()),
        }


@dataclass(frozen=True)
class UpdateFile:
    path: str
    diff: str
    content: str
    kind: FsOperationKind = field(default=FsOperationKind.UPDATE_FILE, init=False)

    def describe(self) -> str:
        return f"update {self.path}"

    def as_json_dict(self) -> JSONObject:
        return {"kind": self.kind.value, "path": self.path, "diff": self.diff}


@dataclass(frozen=True)
class DeleteFile:
    path: str
    kind: FsOperationKind = field(default=FsOperationKind.DELETE_FILE, init=False)

    def describe(self) -> str:
        return f"delete {self.path}"

    def as_json_dict(self) -> JSONObject:
        return {"kind": self.kind.value, "path": self.path}


FsOperation = CreateDir | CreateFile | UpdateFile | DeleteFile


@dataclass(frozen=True)
class TargetFile:
    title: str
    member_sections: tuple[str, ...]
    file_path: str
    rationale: str
    order: int
    required: bool
    content: str
    slot_name: str = ""

    def as_json_dict(self) -> JSONObject:
        return {
            "title": self.title,
            "slot": self.slot_name,
            "file_path": self.file_path,
            "member_sections": list(self.member_sections),
            "rationale": self.rationale,
            "order": self.order,
            "required": self.required,
            "lines": len(self.content.splitlines()),
        }


@dataclass(frozen=True)
class NavEntry:
    title: str
    file_path: str | None = None
    children: tuple["NavEntry", ...] = ()

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()

    def as_json_dict(self) -> JSONObject:
        payload: JSONObject = {"title": self.title, "file_path": self.file_path}
        if self.children:
            payload["children"] = [child.as_json_dict() for child in self.children]
        return payload


@dataclass(frozen=True)
class ManifestDelta:
    document_path: str
    replacement: NavEntry

    def as_json_dict(self) -> JSONObject:
        return {"document_path": self.document_path, "replacement": self.replacement.as_json_dict()}


@dataclass(frozen=True)
class ReorganizationProposal:
    source_document: str
    template_used: str | None
    confidence: float
    target_files: tuple[TargetFile, ...] = ()
    validation_issues: tuple[str, ...] = ()
    compliance_score: float = 0.0
    changes_required: tuple[FsOperation, ...] = ()
    mode: str = "template"
    noop_reason: str | None = None

    @property
    def noop(self) -> bool:
        return self.noop_reason is not None

    def as_json_dict(self) -> JSONObject:
        return {
            "source_document": self.source_document,
            "template_used": self.template_used,
            "mode": self.mode,
            "confidence": round(self.confidence, 6),
            "compliance_score": round(self.compliance_score, 6),
            "noop_reason": self.noop_reason,
            "target_files": [target.as_json_dict() for target in self.target_files],
            "validation_issues": list(self.validation_issues),
            "changes_required": [change.as_json_dict() for change in self.changes_required],
        }


@dataclass(frozen=True)
class DocumentPlan:
    """Everything one worker hands to the reduce step, as plain data."""

    document_id: str
    proposal: ReorganizationProposal
    anchors: AnchorTable = field(default_factory=AnchorTable)
    manifest_delta: ManifestDelta | None = None

    def as_json_dict(self) -> JSONObject:
        return {
            "document_id": self.document_id,
            "proposal": self.proposal.as_json_dict(),
            "anchors": self.anchors.as_json_dict(),
            "manifest_delta": self.manifest_delta.as_json_dict() if self.manifest_delta else None,
        }
