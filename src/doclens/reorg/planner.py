"""Turn an assignment into a concrete split of one document.

The planner reads the document and the corpus file list and returns target
file contents, filesystem operations, anchor relocations and the manifest
delta. Nothing here writes to disk.
"""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Sequence
from dataclasses import dataclass, field

from doclens.config import TemplateConfig
from doclens.ingest.corpus import Corpus
from doclens.ingest.markdown import parse_document, shift_headings, slugify
from doclens.links.anchors import AnchorTable
from doclens.links.rewrite import rewrite_links
from doclens.model import Assignment, Document, Section, SlotAssignment, TemplateMatch
from doclens.reorg.model import (
    CreateDir,
    CreateFile,
    DeleteFile,
    DocumentPlan,
    FsOperation,
    ManifestDelta,
    NavEntry,
    ReorganizationProposal,
    TargetFile,
)
from doclens.synthesizer import DEFAULT_SYNTHESIZER, ContentSynthesizer

logger = logging.getLogger(__name__)

INDEX_NAME = "index.md"
_DIRECTORY_PAGES = {"index", "readme"}


@dataclass
class _IndexLayout:
    file_path: str
    title: str
    sections: list[Section] = field(default_factory=list)


@dataclass
class _Layout:
    slot: SlotAssignment
    file_path: str
    sections: list[Section]
    title: str


def target_directory(document: Document) -> str:
    parent = posixpath.dirname(document.path)
    return posixpath.join(parent, document.stem) if parent else document.stem


def _file_name(slot: SlotAssignment) -> str:
    name = slot.file_name or slugify(slot.name)
    return name if name.endswith(".md") else f"{name}.md"


def _unique(name: str, used: set[str]) -> str:
    stem = name.removesuffix(".md")
    candidate = name
    counter = 1
    while candidate in used:
        candidate = f"{stem}-{counter}.md"
        counter += 1
    used.add(candidate)
    return candidate


def _with_newline(text: str) -> str:
    return text if not text or text.endswith("\n") else text + "\n"


def _join_blocks(blocks: Sequence[str]) -> str:
    out = ""
    for block in blocks:
        if not block:
            continue
        if out and not out.endswith("\n\n"):
            out = _with_newline(out)
            if not out.endswith("\n\n"):
                out += "\n"
        out += _with_newline(block)
    return out


def compliance_score(assignment: Assignment) -> float:
    if assignment.mode == "structural":
        return 0.0
    total = assignment.required_total + assignment.optional_total
    if total == 0:
        return 0.0
    filled = sum(1 for slot in assignment.slots if slot.filled and not slot.extra)
    return max(0.0, min(1.0, filled / total))


def _noop(
    document: Document,
    match: TemplateMatch,
    reason: str,
    issues: Sequence[str] = (),
) -> DocumentPlan:
    logger.info("%s: no reorganization (%s)", document.id, reason)
    return DocumentPlan(
        document_id=document.id,
        proposal=ReorganizationProposal(
            source_document=document.id,
            template_used=match.template_name,
            confidence=match.confidence,
            validation_issues=tuple(issues),
            mode=match.mode,
            noop_reason=reason,
        ),
    )


def _intro(document: Document, assigned: set[str]) -> str:
    lines = document.raw_text.splitlines(keepends=True)
    skip: set[int] = set()
    for section in document.sections.topical_sections():
        if section.slug in assigned:
            skip.update(range(section.start_line, section.end_line + 1))
    kept = "".join(line for number, line in enumerate(lines, start=1) if number not in skip)
    if not any(section.level == 1 for section in document.sections.walk()):
        kept = f"# {document.title}\n\n" + kept
    return kept.strip("\n") + "\n" if kept.strip() else ""


def _layout(
    document: Document,
    assignment: Assignment,
    config: TemplateConfig,
    directory: str,
) -> tuple[_IndexLayout, list[_Layout]]:
    index = _IndexLayout(file_path=posixpath.join(directory, INDEX_NAME), title=document.title)
    files: list[_Layout] = []
    used = {INDEX_NAME}
    index_required = config.index_required_slots
    for slot in assignment.filled_slots:
        sections = [
            section
            for slug in slot.member_slugs
            if (section := document.sections.by_slug(slug)) is not None
        ]
        if slot.required and index_required > 0:
            index.sections.extend(sections)
            index_required -= 1
            continue
        title = sections[0].title if len(sections) == 1 else slot.name
        name = _unique(_file_name(slot), used)
        files.append(
            _Layout(
                slot=slot,
                file_path=posixpath.join(directory, name),
                sections=sections,
                title=title,
            )
        )
    return index, files


def _body(layout: _Layout) -> tuple[str, str]:
    """Return ``(generated prefix, member text)`` for a subsection file."""
    if len(layout.sections) == 1:
        return "", shift_headings(layout.sections[0].text, -1)
    prefix = f"# {layout.title}\n\n"
    return prefix, _join_blocks([section.text for section in layout.sections])


def _register_anchors(
    table: AnchorTable,
    document: Document,
    file_path: str,
    content: str,
    old_sections: Sequence[Section],
    *,
    generated: int = 0,
    promoted: bool = False,
) -> None:
    """Record where each old heading landed in ``content``.

    Headings are matched by title in order; the first ``generated`` headings
    of ``content`` are synthetic and never match. A promoted heading becomes
    the file's subject and loses its anchor.
    """
    fresh = list(parse_document(content, path=file_path).sections.walk())
    cursor = generated
    for position, old in enumerate(old_sections):
        if promoted and position == 0:
            table.add(document.path, old.slug, file_path, None)
            cursor = max(cursor, 1)
            continue
        for offset in range(cursor, len(fresh)):
            if fresh[offset].title == old.title:
                table.add(document.path, old.slug, file_path, fresh[offset].slug)
                cursor = offset + 1
                break


def _footer(position: int, files: Sequence[_Layout]) -> str:
    parts: list[str] = []
    if position > 0:
        previous = files[position - 1]
        parts.append(f"Previous: [{previous.title}]({posixpath.basename(previous.file_path)})")
    parts.append(f"[Back to index]({INDEX_NAME})")
    if position + 1 < len(files):
        following = files[position + 1]
        parts.append(f"Next: [{following.title}]({posixpath.basename(following.file_path)})")
    return "\n---\n\n" + " | ".join(parts) + "\n"


def _contents(files: Sequence[_Layout], synthesizer: ContentSynthesizer) -> str:
    if not files:
        return ""
    lines = ["", "**In this section:**", ""]
    for layout in files:
        slot = layout.slot
        blurb = synthesizer.index_blurb(slot.name, slot.description)
        link = f"[{layout.title}]({posixpath.basename(layout.file_path)})"
        lines.append(f"- {link}" if blurb == layout.title else f"- {link}: {blurb}")
    return "\n".join(lines) + "\n"


def plan_reorganization(
    document: Document,
    assignment: Assignment,
    match: TemplateMatch,
    *,
    corpus: Corpus,
    config: TemplateConfig | None = None,
    synthesizer: ContentSynthesizer | None = None,
    split_recommended: bool = True,
) -> DocumentPlan:
    config = config or TemplateConfig()
    synthesizer = synthesizer or DEFAULT_SYNTHESIZER
    directory = target_directory(document)
    if corpus.has_directory(directory) or (corpus.root / directory).is_dir():
        return _noop(document, match, "already organized", assignment.warnings)
    if document.stem.lower() in _DIRECTORY_PAGES:
        return _noop(document, match, "directory index pages are not split", assignment.warnings)
    if not split_recommended or not assignment.filled_slots:
        return _noop(document, match, "nothing to split", assignment.warnings)

    index, files = _layout(document, assignment, config, directory)
    if not files:
        return _noop(document, match, "all content stays in the index", assignment.warnings)
    assigned = {slug for slot in assignment.filled_slots for slug in slot.member_slugs}
    table = AnchorTable()
    table.register_split(document.path, index.file_path)

    intro = _intro(document, assigned)
    index_members = _join_blocks([section.text for section in index.sections])
    index_text = _join_blocks([intro, index_members])
    intro_sections = [
        section
        for section in document.sections.walk()
        if not any(
            top.start_line <= section.start_line <= top.end_line
            for top in document.sections.topical_sections()
            if top.slug in assigned
        )
    ]
    index_old = intro_sections + [sub for section in index.sections for sub in section.walk()]
    has_h1 = any(section.level == 1 for section in document.sections.walk())
    _register_anchors(
        table, document, index.file_path, index_text, index_old, generated=0 if has_h1 else 1
    )

    drafts: list[tuple[_Layout, str, str]] = []
    for layout in files:
        prefix, members = _body(layout)
        old = [sub for section in layout.sections for sub in section.walk()]
        _register_anchors(
            table,
            document,
            layout.file_path,
            prefix + members,
            old,
            generated=1 if prefix else 0,
            promoted=len(layout.sections) == 1,
        )
        drafts.append((layout, prefix, members))

    targets: list[TargetFile] = []
    index_rewritten, _ = rewrite_links(
        index_text, origin_path=document.path, new_path=index.file_path, anchors=table
    )
    index_content = index_rewritten + _contents(files, synthesizer)
    index_slots = [slot.name for slot in assignment.filled_slots if slot.required][
        : config.index_required_slots
    ]
    targets.append(
        TargetFile(
            title=document.title,
            member_sections=tuple(section.slug for section in index.sections),
            file_path=index.file_path,
            rationale=synthesizer.rationale(
                "Index",
                "Landing page with the original introduction",
                index_slots,
            ),
            order=0,
            required=True,
            content=index_content,
            slot_name=", ".join(index_slots),
        )
    )
    for position, (layout, prefix, members) in enumerate(drafts):
        rewritten, _ = rewrite_links(
            members, origin_path=document.path, new_path=layout.file_path, anchors=table
        )
        slot = layout.slot
        targets.append(
            TargetFile(
                title=layout.title,
                member_sections=tuple(section.slug for section in layout.sections),
                file_path=layout.file_path,
                rationale=synthesizer.rationale(
                    slot.name, slot.description, [section.title for section in layout.sections]
                ),
                order=position + 1,
                required=slot.required,
                content=prefix + _with_newline(rewritten) + _footer(position, files),
                slot_name=slot.name,
            )
        )

    operations: list[FsOperation] = [CreateDir(directory)]
    operations.extend(CreateFile(target.file_path, target.content) for target in targets)
    operations.append(DeleteFile(document.path))
    delta = ManifestDelta(
        document_path=document.path,
        replacement=NavEntry(
            title=document.title,
            file_path=index.file_path,
            children=tuple(
                NavEntry(title=target.title, file_path=target.file_path) for target in targets[1:]
            ),
        ),
    )
    proposal = ReorganizationProposal(
        source_document=document.id,
        template_used=assignment.template_name,
        confidence=match.confidence,
        target_files=tuple(targets),
        validation_issues=assignment.warnings,
        compliance_score=compliance_score(assignment),
        changes_required=tuple(operations),
        mode=assignment.mode,
    )
    logger.info(
        "%s: planned %d target files (compliance %.2f)",
        document.id,
        len(targets),
        proposal.compliance_score,
    )
    return DocumentPlan(
        document_id=document.id, proposal=proposal, anchors=table, manifest_delta=delta
    )
