"""Structural markdown parser.

Builds a section tree from raw text. Only ATX headings are recognised and
lines inside fenced code blocks are never treated as headings. Sections keep
their exact source text so that ``heading_line + body_text`` reproduces the
original line range byte for byte.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from doclens.model import CodeBlock, Document, ParseWarning, Section, SectionTree

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^ {0,3}(?P<fence>`{3,}|~{3,})(?P<info>[^\n\r]*)")
_HEADING_RE = re.compile(
    r"^ {0,3}(?P<hashes>#{1,6})(?:[ \t]+(?P<title>.*?))?(?:[ \t]+#+)?[ \t]*$"
)
_MALFORMED_HEADING_RE = re.compile(r"^ {0,3}(?:(?P<run>#{7,})|#{1,6}[^\W_])")
_INLINE_LINK_RE = re.compile(r"!?\[([^\]]*)\]\([^)]*\)")
_SLUG_DROP_RE = re.compile(r"[^\w\- ]", re.UNICODE)


@dataclass(frozen=True)
class HeadingLine:
    index: int
    level: int
    title: str


@dataclass
class ScanResult:
    headings: list[HeadingLine] = field(default_factory=list)
    code_blocks: list[CodeBlock] = field(default_factory=list)
    unterminated: list[int] = field(default_factory=list)
    malformed: list[tuple[int, str, str]] = field(default_factory=list)


def slugify(title: str) -> str:
    text = _INLINE_LINK_RE.sub(r"\1", title).strip().lower()
    text = _SLUG_DROP_RE.sub("", text)
    text = text.replace(" ", "-")
    return text or "section"


def unique_slugs(titles: list[str]) -> list[str]:
    used: set[str] = set()
    out: list[str] = []
    for title in titles:
        base = slugify(title)
        slug = base
        counter = 1
        while slug in used:
            slug = f"{base}-{counter}"
            counter += 1
        used.add(slug)
        out.append(slug)
    return out


def _strip_newline(line: str) -> str:
    return line.rstrip("\r\n")


def _closes_fence(line: str, fence: str) -> bool:
    match = _FENCE_RE.match(_strip_newline(line))
    if match is None:
        return False
    candidate = match.group("fence")
    return (
        candidate[0] == fence[0]
        and len(candidate) >= len(fence)
        and not match.group("info").strip()
    )


def scan_lines(lines: list[str]) -> ScanResult:
    """Classify lines into headings and fenced blocks (0-based indices)."""
    result = ScanResult()
    fence: str | None = None
    fence_start = 0
    fence_info = ""
    for idx, line in enumerate(lines):
        if fence is not None:
            if _closes_fence(line, fence):
                result.code_blocks.append(
                    CodeBlock(
                        language=fence_info,
                        content="".join(lines[fence_start + 1 : idx]),
                        start_line=fence_start + 1,
                        end_line=idx + 1,
                    )
                )
                fence = None
            continue
        stripped = _strip_newline(line)
        opened = _FENCE_RE.match(stripped)
        if opened is not None:
            marker = opened.group("fence")
            info = opened.group("info").strip()
            if not (marker[0] == "`" and "`" in info):
                fence = marker
                fence_start = idx
                fence_info = info.split()[0] if info else ""
                continue
        heading = _HEADING_RE.match(stripped)
        if heading is not None:
            result.headings.append(
                HeadingLine(
                    index=idx,
                    level=len(heading.group("hashes")),
                    title=(heading.group("title") or "").strip(),
                )
            )
        elif (near := _MALFORMED_HEADING_RE.match(stripped)) is not None:
            if near.group("run"):
                result.malformed.append(
                    (idx + 1, "more than six '#'; line is not a heading", "use at most six '#'")
                )
            else:
                result.malformed.append(
                    (idx + 1, "no space after '#'; line is not a heading", "add a space after '#'")
                )
    if fence is not None:
        result.code_blocks.append(
            CodeBlock(
                language=fence_info,
                content="".join(lines[fence_start + 1 :]),
                start_line=fence_start + 1,
                end_line=len(lines),
                terminated=False,
            )
        )
        result.unterminated.append(fence_start + 1)
    return result


@dataclass
class _Node:
    heading: HeadingLine
    slug: str
    end_index: int = 0
    children: list["_Node"] = field(default_factory=list)


def _freeze(node: _Node, lines: list[str], blocks: list[CodeBlock]) -> Section:
    start_line = node.heading.index + 1
    end_line = node.end_index + 1
    return Section(
        level=node.heading.level,
        title=node.heading.title,
        slug=node.slug,
        start_line=start_line,
        end_line=end_line,
        heading_line=lines[node.heading.index],
        body_text="".join(lines[node.heading.index + 1 : node.end_index + 1]),
        children=tuple(_freeze(child, lines, blocks) for child in node.children),
        code_blocks=tuple(
            block for block in blocks if start_line <= block.start_line <= end_line
        ),
    )


def build_section_tree(lines: list[str], scan: ScanResult) -> SectionTree:
    headings = scan.headings
    slugs = unique_slugs([heading.title for heading in headings])
    nodes = [_Node(heading=heading, slug=slug) for heading, slug in zip(headings, slugs)]
    roots: list[_Node] = []
    stack: list[_Node] = []
    for node in nodes:
        while stack and stack[-1].heading.level >= node.heading.level:
            closed = stack.pop()
            closed.end_index = node.heading.index - 1
        if stack:
            stack[-1].children.append(node)
        else:
            roots.append(node)
        stack.append(node)
    for node in stack:
        node.end_index = len(lines) - 1
    preamble_end = headings[0].index if headings else len(lines)
    return SectionTree(
        preamble="".join(lines[:preamble_end]),
        roots=tuple(_freeze(root, lines, scan.code_blocks) for root in roots),
    )


def doc_id_for(path: str) -> str:
    return path[:-3] if path.endswith(".md") else path


def parse_document(raw_text: str, *, path: str, doc_id: str | None = None) -> Document:
    doc_id = doc_id or doc_id_for(path)
    lines = raw_text.splitlines(keepends=True)
    scan = scan_lines(lines)
    found = [
        ParseWarning(
            document=doc_id,
            line=line,
            message="unterminated code fence; remainder of file treated as code",
            fix="close the code fence",
        )
        for line in scan.unterminated
    ]
    found.extend(
        ParseWarning(document=doc_id, line=line, message=message, fix=fix)
        for line, message, fix in scan.malformed
    )
    warnings = tuple(sorted(found, key=lambda warning: warning.line))
    for warning in warnings:
        logger.warning("%s:%d: %s", path, warning.line, warning.message)
    tree = build_section_tree(lines, scan)
    title = next(
        (heading.title for heading in scan.headings if heading.level == 1 and heading.title),
        PurePosixPath(path).stem,
    )
    return Document(
        id=doc_id,
        path=path,
        title=title,
        raw_text=raw_text,
        sections=tree,
        code_blocks=tuple(scan.code_blocks),
        warnings=warnings,
    )


def shift_headings(text: str, delta: int) -> str:
    """Shift every ATX heading in ``text`` by ``delta`` levels (clamped 1..6)."""
    if delta == 0:
        return text
    lines = text.splitlines(keepends=True)
    scan = scan_lines(lines)
    for heading in scan.headings:
        line = lines[heading.index]
        indent = len(line) - len(line.lstrip(" "))
        level = min(6, max(1, heading.level + delta))
        rest = line[indent + heading.level :]
        lines[heading.index] = line[:indent] + "#" * level + rest
    return "".join(lines)
