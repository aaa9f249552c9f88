from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Iterator

from doclens.artifacts import JSONObject


@dataclass(frozen=True)
class ParseWarning:
    """Non-fatal parser finding (unterminated fence, malformed heading)."""

    document: str
    line: int
    message: str
    fix: str = ""

    def as_json_dict(self) -> JSONObject:
        return {
            "document": self.document,
            "line": self.line,
            "message": self.message,
            "fix": self.fix,
        }


@dataclass(frozen=True)
class CodeBlock:
    language: str
    content: str
    start_line: int
    end_line: int
    terminated: bool = True


@dataclass(frozen=True)
class Section:
    level: int
    title: str
    slug: str
    start_line: int
    end_line: int
    heading_line: str
    body_text: str
    children: tuple["Section", ...] = ()
    code_blocks: tuple[CodeBlock, ...] = ()

    @property
    def text(self) -> str:
        return self.heading_line + self.body_text

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1

    def walk(self) -> Iterator["Section"]:
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass(frozen=True)
class SectionTree:
    preamble: str = ""
    roots: tuple[Section, ...] = ()

    def walk(self) -> Iterator[Section]:
        for root in self.roots:
            yield from root.walk()

    def by_slug(self, slug: str) -> Section | None:
        for section in self.walk():
            if section.slug == slug:
                return section
        return None

    def slugs(self) -> set[str]:
        return {section.slug for section in self.walk()}

    def topical_sections(self) -> list[Section]:
        return [section for section in self.walk() if section.level == 2]

    def serialize(self) -> str:
        return self.preamble + "".join(root.text for root in self.roots)


class LinkKind(StrEnum):
    EXTERNAL = "external"
    ANCHOR = "anchor"
    INTERNAL = "internal"


@dataclass(frozen=True)
class LinkRef:
    source_doc: str
    raw_target: str
    text: str
    line: int
    kind: LinkKind
    target_doc: str | None = None
    target_path: str | None = None
    anchor: str | None = None
    resolved: bool = False

    def as_json_dict(self) -> JSONObject:
        return {
            "source_doc": self.source_doc,
            "raw_target": self.raw_target,
            "text": self.text,
            "line": self.line,
            "kind": self.kind.value,
            "target_doc": self.target_doc,
            "target_path": self.target_path,
            "anchor": self.anchor,
            "resolved": self.resolved,
        }


@dataclass(frozen=True)
class Document:
    id: str
    path: str
    title: str
    raw_text: str
    sections: SectionTree
    code_blocks: tuple[CodeBlock, ...] = ()
    warnings: tuple[ParseWarning, ...] = ()
    inbound_links: tuple[LinkRef, ...] = ()
    outbound_links: tuple[LinkRef, ...] = ()

    @property
    def line_count(self) -> int:
        return len(self.raw_text.splitlines())

    @property
    def stem(self) -> str:
        return self.path.rsplit("/", 1)[-1].removesuffix(".md")


@dataclass(frozen=True)
class Cluster:
    id: str
    label: str
    members: tuple[tuple[str, str], ...]
    topics: tuple[str, ...]
    confidence: float
    weight: int = 0
    split_recommended: bool = True

    @property
    def member_slugs(self) -> tuple[str, ...]:
        return tuple(slug for _doc, slug in self.members)

    def as_json_dict(self) -> JSONObject:
        return {
            "id": self.id,
            "label": self.label,
            "members": [[doc, slug] for doc, slug in self.members],
            "topics": list(self.topics),
            "confidence": round(self.confidence, 6),
            "weight": self.weight,
        }


@dataclass(frozen=True)
class FieldSpec:
    name: str
    required: bool = False
    deprecated: bool = False


@dataclass(frozen=True)
class FeatureDescriptor:
    path: str
    fields: tuple[FieldSpec, ...] = ()
    examples: tuple[str, ...] = ()
    deprecated: bool = False
    replacement: str | None = None

    @property
    def leaf(self) -> str:
        return self.path.rsplit(".", 1)[-1]

    @property
    def category(self) -> str:
        return self.path.split(".", 1)[0]

    @property
    def field_names(self) -> set[str]:
        return {spec.name for spec in self.fields}

    @property
    def required_fields(self) -> set[str]:
        return {spec.name for spec in self.fields if spec.required}

    @property
    def deprecated_fields(self) -> set[str]:
        return {spec.name for spec in self.fields if spec.deprecated}


@dataclass(frozen=True)
class SubsectionSpec:
    name: str
    aliases: tuple[str, ...] = ()
    topics: tuple[str, ...] = ()
    required: bool = False
    description: str = ""
    file_name: str | None = None

    @property
    def names(self) -> tuple[str, ...]:
        return (self.name, *self.aliases)


@dataclass(frozen=True)
class Template:
    name: str
    subsections: tuple[SubsectionSpec, ...]
    keywords: tuple[str, ...] = ()
    max_subsections: int = 8

    @property
    def required_slots(self) -> tuple[SubsectionSpec, ...]:
        return tuple(slot for slot in self.subsections if slot.required)

    @property
    def optional_slots(self) -> tuple[SubsectionSpec, ...]:
        return tuple(slot for slot in self.subsections if not slot.required)


@dataclass(frozen=True)
class TemplateMatch:
    template_name: str | None
    score: int
    confidence: float
    per_template_scores: dict[str, int] = field(default_factory=dict)

    @property
    def mode(self) -> str:
        return "structural" if self.template_name is None else "template"

    def as_json_dict(self) -> JSONObject:
        return {
            "template_name": self.template_name,
            "score": self.score,
            "confidence": round(self.confidence, 6),
            "mode": self.mode,
            "per_template_scores": dict(self.per_template_scores),
        }


@dataclass(frozen=True)
class SlotAssignment:
    name: str
    required: bool
    clusters: tuple[Cluster, ...]
    extra: bool = False
    description: str = ""
    file_name: str | None = None

    @property
    def filled(self) -> bool:
        return bool(self.clusters)

    @property
    def weight(self) -> int:
        return sum(cluster.weight for cluster in self.clusters)

    @property
    def member_slugs(self) -> tuple[str, ...]:
        return tuple(slug for cluster in self.clusters for slug in cluster.member_slugs)


@dataclass(frozen=True)
class Assignment:
    document_id: str
    template_name: str | None
    slots: tuple[SlotAssignment, ...]
    warnings: tuple[str, ...] = ()
    required_total: int = 0
    optional_total: int = 0

    @property
    def mode(self) -> str:
        return "structural" if self.template_name is None else "template"

    @property
    def filled_slots(self) -> tuple[SlotAssignment, ...]:
        return tuple(slot for slot in self.slots if slot.filled)
