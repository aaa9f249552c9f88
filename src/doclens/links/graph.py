"""Directed multigraph of cross-document and anchor references."""

from __future__ import annotations

import logging
import posixpath
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from urllib.parse import unquote

from doclens.artifacts import JSONObject
from doclens.exceptions import LinkResolutionFailure
from doclens.model import CodeBlock, Document, LinkKind, LinkRef

logger = logging.getLogger(__name__)

_LINK_BODY = (
    r"\[(?P<text>[^\]\n]*)\]\("
    r"(?P<target><[^>\n]*>|[^)\s]+)"
    r"(?:\s+(?:\"[^\"\n]*\"|'[^'\n]*'))?\)"
)
_LINK_RE = re.compile(r"(?<!!)" + _LINK_BODY)
_LINK_OR_IMAGE_RE = re.compile(_LINK_BODY)
_INLINE_CODE_RE = re.compile(r"``[^\n]*?``|`[^`\n]*`")
_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*:")
_DIRECTORY_INDEXES = ("index.md", "README.md")


@dataclass(frozen=True)
class RawLink:
    line: int
    start: int
    end: int
    text: str
    target: str


@dataclass(frozen=True)
class LinkResolution:
    exists: bool
    resolved_path: str | None
    resolved_anchor: str | None


def _masked(line: str) -> str:
    return _INLINE_CODE_RE.sub(lambda m: " " * len(m.group(0)), line)


def _has_anchor(document: Document, anchor: str | None) -> bool:
    if anchor is None:
        return True
    slugs = document.sections.slugs()
    return anchor in slugs or anchor.lower() in slugs


def fenced_lines(code_blocks: Iterable[CodeBlock]) -> set[int]:
    lines: set[int] = set()
    for block in code_blocks:
        lines.update(range(block.start_line, block.end_line + 1))
    return lines


def iter_raw_links(
    text: str, code_blocks: Iterable[CodeBlock] = (), *, include_images: bool = False
) -> list[RawLink]:
    """Find ``[text](target)`` links outside fenced and inline code.

    Image references are skipped unless ``include_images`` is set; the link
    graph tracks documents only, while rewrites must also move image paths.

    ``start``/``end`` delimit the target inside its line so rewrites can
    splice a new target without touching surrounding bytes.
    """
    skip = fenced_lines(code_blocks)
    pattern = _LINK_OR_IMAGE_RE if include_images else _LINK_RE
    found: list[RawLink] = []
    for number, line in enumerate(text.splitlines(keepends=True), start=1):
        if number in skip or "](" not in line:
            continue
        for match in pattern.finditer(_masked(line)):
            start, end = match.span("target")
            target = line[start:end]
            if target.startswith("<") and target.endswith(">"):
                start, end = start + 1, end - 1
                target = target[1:-1]
            found.append(
                RawLink(line=number, start=start, end=end, text=match.group("text"), target=target)
            )
    return found


def classify_target(raw_target: str) -> LinkKind:
    if raw_target.startswith("#"):
        return LinkKind.ANCHOR
    if _SCHEME_RE.match(raw_target):
        return LinkKind.EXTERNAL
    return LinkKind.INTERNAL


def split_target(raw_target: str) -> tuple[str, str | None]:
    path, _, anchor = raw_target.partition("#")
    path = path.split("?", 1)[0]
    return unquote(path), (anchor or None)


def resolve_relative(path: str, source_path: str) -> str | None:
    """Corpus-relative POSIX path for ``path`` as written in ``source_path``."""
    if path.startswith("/"):
        candidate = posixpath.normpath(path.lstrip("/")) if path.strip("/") else "."
    else:
        candidate = posixpath.normpath(posixpath.join(posixpath.dirname(source_path), path))
    if candidate == ".." or candidate.startswith("../"):
        return None
    if path.endswith("/") and candidate != ".":
        candidate += "/"
    return candidate


@dataclass
class LinkGraph:
    links: tuple[LinkRef, ...] = ()
    edges: dict[tuple[str, str], LinkResolution] = field(default_factory=dict)

    def outbound(self, doc_id: str) -> tuple[LinkRef, ...]:
        return tuple(link for link in self.links if link.source_doc == doc_id)

    def inbound(self, doc_id: str) -> tuple[LinkRef, ...]:
        return tuple(
            link for link in self.links if link.target_doc == doc_id and link.source_doc != doc_id
        )

    def unresolved(self) -> tuple[LinkRef, ...]:
        return tuple(link for link in self.links if not link.resolved)

    def is_unresolved(self, source_doc: str, raw_target: str) -> bool:
        resolution = self.edges.get((source_doc, raw_target))
        return resolution is not None and not resolution.exists

    def failures(self) -> tuple[LinkResolutionFailure, ...]:
        """Unresolved links as non-fatal error records."""
        return tuple(
            LinkResolutionFailure(
                f"line {link.line}: {link.raw_target} does not resolve",
                document=link.source_doc,
                phase="resolve-links",
                remedy=(
                    f"add a heading for #{link.anchor} to {link.target_path}"
                    if link.target_doc is not None
                    else "point the link at an existing file"
                ),
            )
            for link in self.unresolved()
        )

    def as_json_dict(self) -> JSONObject:
        return {
            "links": [link.as_json_dict() for link in self.links],
            "edges": [
                {
                    "source_doc": source,
                    "raw_target": target,
                    "exists": resolution.exists,
                    "resolved_path": resolution.resolved_path,
                    "resolved_anchor": resolution.resolved_anchor,
                }
                for (source, target), resolution in self.edges.items()
            ],
            "unresolved": len(self.unresolved()),
            "failures": [failure.as_json_dict() for failure in self.failures()],
        }


class _Resolver:
    def __init__(self, documents: Mapping[str, Document], files: Iterable[str]) -> None:
        self.by_path = {doc.path: doc for doc in documents.values()}
        self.files = set(files)
        self.directories = {
            posixpath.dirname(path) for path in (*self.files, *self.by_path)
        }

    def _document_for(self, candidate: str) -> Document | None:
        if candidate in self.by_path:
            return self.by_path[candidate]
        base = candidate.rstrip("/")
        if candidate.endswith("/") or base in self.directories or base == ".":
            for index in _DIRECTORY_INDEXES:
                joined = index if base in ("", ".") else f"{base}/{index}"
                if joined in self.by_path:
                    return self.by_path[joined]
        return None

    def resolve(self, source: Document, raw_target: str, line: int, text: str) -> LinkRef:
        kind = classify_target(raw_target)
        if kind is LinkKind.EXTERNAL:
            return LinkRef(
                source_doc=source.id, raw_target=raw_target, text=text, line=line,
                kind=kind, resolved=True,
            )
        path, anchor = split_target(raw_target)
        if kind is LinkKind.ANCHOR:
            return LinkRef(
                source_doc=source.id, raw_target=raw_target, text=text, line=line, kind=kind,
                target_doc=source.id, target_path=source.path, anchor=anchor,
                resolved=_has_anchor(source, anchor),
            )
        candidate = resolve_relative(path, source.path) if path else source.path
        if candidate is None:
            logger.debug("%s: link %r escapes the corpus root", source.path, raw_target)
            return LinkRef(
                source_doc=source.id, raw_target=raw_target, text=text, line=line,
                kind=kind, anchor=anchor,
            )
        target = self._document_for(candidate)
        if target is not None:
            return LinkRef(
                source_doc=source.id, raw_target=raw_target, text=text, line=line, kind=kind,
                target_doc=target.id, target_path=target.path, anchor=anchor,
                resolved=_has_anchor(target, anchor),
            )
        return LinkRef(
            source_doc=source.id, raw_target=raw_target, text=text, line=line, kind=kind,
            target_path=candidate, anchor=anchor, resolved=candidate in self.files,
        )


def document_links(
    document: Document,
    documents: Mapping[str, Document],
    files: Iterable[str] = (),
) -> tuple[LinkRef, ...]:
    resolver = _Resolver(documents, files)
    return tuple(
        resolver.resolve(document, raw.target, raw.line, raw.text)
        for raw in iter_raw_links(document.raw_text, document.code_blocks)
    )


def build_link_graph(
    documents: Mapping[str, Document],
    files: Iterable[str] = (),
) -> LinkGraph:
    resolver = _Resolver(documents, files)
    links: list[LinkRef] = []
    edges: dict[tuple[str, str], LinkResolution] = {}
    for doc_id in sorted(documents):
        document = documents[doc_id]
        for raw in iter_raw_links(document.raw_text, document.code_blocks):
            link = resolver.resolve(document, raw.target, raw.line, raw.text)
            links.append(link)
            edges[(link.source_doc, link.raw_target)] = LinkResolution(
                exists=link.resolved,
                resolved_path=link.target_path,
                resolved_anchor=link.anchor,
            )
    unresolved = sum(1 for link in links if not link.resolved)
    logger.info("link graph: %d links, %d unresolved", len(links), unresolved)
    return LinkGraph(links=tuple(links), edges=edges)
