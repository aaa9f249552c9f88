from __future__ import annotations

import posixpath
from dataclasses import dataclass

from doclens.ingest.markdown import scan_lines
from doclens.links.anchors import AnchorTable
from doclens.links.graph import classify_target, iter_raw_links, resolve_relative, split_target
from doclens.model import LinkKind


@dataclass(frozen=True)
class LinkRewrite:
    line: int
    old_target: str
    new_target: str


def _relative(target_path: str, from_path: str) -> str:
    start = posixpath.dirname(from_path) or "."
    return posixpath.relpath(target_path, start)


def _compose(
    new_target_path: str,
    anchor: str | None,
    *,
    new_path: str,
    root_anchored: bool,
) -> str:
    if new_target_path == new_path:
        if anchor:
            return f"#{anchor}"
        return posixpath.basename(new_path)
    if root_anchored:
        base = "/" + new_target_path
    else:
        base = _relative(new_target_path, new_path)
    return f"{base}#{anchor}" if anchor else base


def retarget(
    raw_target: str,
    *,
    origin_path: str,
    new_path: str,
    anchors: AnchorTable,
) -> str | None:
    """New link target for ``raw_target`` or ``None`` when it stays valid.

    ``origin_path`` is where the containing text was written, ``new_path``
    where it lives now; they differ for content moved by a split.
    """
    kind = classify_target(raw_target)
    if kind is LinkKind.EXTERNAL:
        return None
    path, anchor = split_target(raw_target)
    if kind is LinkKind.ANCHOR or not path:
        target_path: str | None = origin_path
    else:
        target_path = resolve_relative(path, origin_path)
    if target_path is None or target_path.endswith("/"):
        return None
    moved_source = origin_path != new_path
    if not moved_source and not anchors.covers(target_path):
        return None
    new_target_path, new_anchor = anchors.relocate(target_path, anchor)
    candidate = _compose(
        new_target_path,
        new_anchor,
        new_path=new_path,
        root_anchored=path.startswith("/"),
    )
    return None if candidate == raw_target else candidate


def rewrite_links(
    text: str,
    *,
    origin_path: str,
    new_path: str,
    anchors: AnchorTable,
) -> tuple[str, list[LinkRewrite]]:
    lines = text.splitlines(keepends=True)
    scan = scan_lines(lines)
    changes: list[LinkRewrite] = []
    by_line: dict[int, list[tuple[int, int, str]]] = {}
    for raw in iter_raw_links(text, scan.code_blocks, include_images=True):
        replacement = retarget(
            raw.target, origin_path=origin_path, new_path=new_path, anchors=anchors
        )
        if replacement is None:
            continue
        by_line.setdefault(raw.line, []).append((raw.start, raw.end, replacement))
        changes.append(LinkRewrite(line=raw.line, old_target=raw.target, new_target=replacement))
    for number, splices in by_line.items():
        line = lines[number - 1]
        for start, end, replacement in sorted(splices, reverse=True):
            line = line[:start] + replacement + line[end:]
        lines[number - 1] = line
    return "".join(lines), changes
