"""Navigation manifest codec.

Two formats are understood: a ``SUMMARY.md``-style nested markdown list and
the ``nav:`` block of an ``mkdocs.yml``. Deltas are applied by replacing
only the text that describes the split document, so everything else in the
manifest file survives byte for byte.
"""

from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass, replace
from enum import StrEnum
from pathlib import Path

import yaml

from doclens.exceptions import InputError, ManifestMergeError
from doclens.links.graph import split_target
from doclens.reorg.model import ManifestDelta, NavEntry

logger = logging.getLogger(__name__)

_ITEM_RE = re.compile(
    r"^(?P<indent>[ \t]*)(?P<marker>[-*+])[ \t]+"
    r"(?:\[(?P<title>[^\]]*)\]\((?P<target>[^)]*)\)|(?P<label>\S.*?))[ \t]*$"
)
_NAV_START_RE = re.compile(r"^nav\s*:")


class ManifestFormat(StrEnum):
    MARKDOWN = "markdown"
    YAML = "yaml"


@dataclass(frozen=True)
class _Item:
    index: int
    depth: int
    marker: str
    title: str
    target: str | None


def _indent_width(text: str) -> int:
    return len(text.expandtabs(4))


def _markdown_items(lines: list[str]) -> list[_Item]:
    items: list[_Item] = []
    for index, line in enumerate(lines):
        match = _ITEM_RE.match(line.rstrip("\r\n"))
        if match is None:
            continue
        title = match.group("title") if match.group("target") is not None else match.group("label")
        items.append(
            _Item(
                index=index,
                depth=_indent_width(match.group("indent")),
                marker=match.group("marker"),
                title=(title or "").strip(),
                target=match.group("target"),
            )
        )
    return items


def _subtree_end(items: list[_Item], position: int) -> int:
    """Index just past the last descendant of ``items[position]``."""
    depth = items[position].depth
    end = position + 1
    while end < len(items) and items[end].depth > depth:
        end += 1
    return end


def _markdown_tree(items: list[_Item], resolve) -> tuple[NavEntry, ...]:
    def build(start: int, depth: int) -> tuple[list[NavEntry], int]:
        entries: list[NavEntry] = []
        position = start
        while position < len(items) and items[position].depth >= depth:
            item = items[position]
            children, position = build(position + 1, item.depth + 1)
            entries.append(
                NavEntry(
                    title=item.title,
                    file_path=resolve(item.target) if item.target else None,
                    children=tuple(children),
                )
            )
        return entries, position

    roots: list[NavEntry] = []
    position = 0
    while position < len(items):
        built, position = build(position, items[position].depth)
        roots.extend(built)
    return tuple(roots)


def _yaml_tree(nodes: object, resolve) -> tuple[NavEntry, ...]:
    entries: list[NavEntry] = []
    if not isinstance(nodes, list):
        return ()
    for node in nodes:
        if isinstance(node, str):
            entries.append(NavEntry(title=posixpath.basename(node), file_path=resolve(node)))
        elif isinstance(node, dict):
            for title, value in node.items():
                if isinstance(value, list):
                    entries.append(NavEntry(title=str(title), children=_yaml_tree(value, resolve)))
                else:
                    entries.append(NavEntry(title=str(title), file_path=resolve(str(value))))
    return tuple(entries)


@dataclass
class NavigationManifest:
    """Single-owner navigation state, mutated only by the reduce step."""

    path: Path
    format: ManifestFormat
    text: str
    base: str = ""

    @classmethod
    def load(cls, path: Path, docs_root: Path) -> "NavigationManifest":
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise InputError(
                "navigation manifest not found",
                document=str(path),
                phase="load-manifest",
                remedy="pass --manifest pointing at SUMMARY.md or mkdocs.yml",
            ) from exc
        manifest_format = (
            ManifestFormat.YAML if path.suffix in (".yml", ".yaml") else ManifestFormat.MARKDOWN
        )
        try:
            base = path.parent.resolve().relative_to(docs_root.resolve()).as_posix()
        except ValueError:
            base = ""
        manifest = cls(path=path, format=manifest_format, text=text, base="" if base == "." else base)
        if manifest_format is ManifestFormat.YAML:
            manifest._nav_block()
        return manifest

    def resolve(self, target: str) -> str | None:
        path, _anchor = split_target(target)
        if not path or "://" in path:
            return None
        joined = posixpath.normpath(posixpath.join(self.base, path.lstrip("/")))
        return None if joined.startswith("..") else joined

    def relative(self, corpus_path: str) -> str:
        return posixpath.relpath(corpus_path, self.base or ".")

    def entries(self) -> tuple[NavEntry, ...]:
        if self.format is ManifestFormat.MARKDOWN:
            return _markdown_tree(_markdown_items(self.text.splitlines(keepends=True)), self.resolve)
        _start, _end, nav = self._nav_block()
        return _yaml_tree(nav, self.resolve)

    def paths(self) -> set[str]:
        return {
            entry.file_path
            for root in self.entries()
            for entry in root.walk()
            if entry.file_path is not None
        }

    def apply(self, delta: ManifestDelta) -> bool:
        """Replace the entry for ``delta.document_path``; ``False`` if absent."""
        if self.format is ManifestFormat.MARKDOWN:
            return self._apply_markdown(delta)
        return self._apply_yaml(delta)

    def preview(self) -> "NavigationManifest":
        """Detached copy; deltas applied to it never reach the file."""
        return replace(self)

    def render(self) -> str:
        return self.text

    def write(self) -> None:
        self.path.write_text(self.text, encoding="utf-8")

    def _apply_markdown(self, delta: ManifestDelta) -> bool:
        lines = self.text.splitlines(keepends=True)
        items = _markdown_items(lines)
        hits: list[int] = []
        for position, item in enumerate(items):
            if item.target is None or self.resolve(item.target) != delta.document_path:
                continue
            if hits and position < _subtree_end(items, hits[-1]):
                continue
            hits.append(position)
        if not hits:
            logger.warning("%s: %s has no manifest entry", self.path, delta.document_path)
            return False
        if len(hits) > 1:
            raise ManifestMergeError(
                f"{delta.document_path} appears {len(hits)} times in the manifest",
                document=delta.document_path,
                phase="merge-manifest",
                remedy=f"keep a single entry for it in {self.path.name}",
            )
        position = hits[0]
        item = items[position]
        end = items[_subtree_end(items, position) - 1].index + 1
        original = lines[item.index]
        indent = original[: len(original) - len(original.lstrip(" \t"))]
        unit = self._indent_unit(items)
        newline = "\r\n" if original.endswith("\r\n") else "\n"
        rendered = self._render_markdown(
            delta.replacement, indent, unit, item.marker, newline, title=item.title
        )
        lines[item.index : end] = rendered
        self.text = "".join(lines)
        return True

    @staticmethod
    def _indent_unit(items: list[_Item]) -> str:
        steps = sorted(
            {
                later.depth - earlier.depth
                for earlier, later in zip(items, items[1:])
                if later.depth > earlier.depth
            }
        )
        return " " * (steps[0] if steps else 2)

    def _render_markdown(
        self,
        entry: NavEntry,
        indent: str,
        unit: str,
        marker: str,
        newline: str,
        *,
        title: str | None = None,
    ) -> list[str]:
        label = title if title is not None else entry.title
        if entry.file_path is not None:
            line = f"{indent}{marker} [{label}]({self.relative(entry.file_path)}){newline}"
        else:
            line = f"{indent}{marker} {label}{newline}"
        out = [line]
        for child in entry.children:
            out.extend(self._render_markdown(child, indent + unit, unit, marker, newline))
        return out

    def _nav_block(self) -> tuple[int, int, object]:
        lines = self.text.splitlines(keepends=True)
        start = next((i for i, line in enumerate(lines) if _NAV_START_RE.match(line)), None)
        if start is None:
            raise InputError(
                "mkdocs manifest has no top-level nav block",
                document=str(self.path),
                phase="load-manifest",
                remedy="add a nav: section listing the pages",
            )
        end = start + 1
        while end < len(lines):
            line = lines[end]
            stripped = line.strip()
            if stripped and not line[0].isspace() and not line.startswith("-") and not stripped.startswith("#"):
                break
            end += 1
        while end > start + 1 and not lines[end - 1].strip():
            end -= 1
        try:
            payload = yaml.safe_load("".join(lines[start:end]))
        except yaml.YAMLError as exc:
            raise InputError(
                f"nav block does not parse: {exc}",
                document=str(self.path),
                phase="load-manifest",
                remedy="fix the YAML under nav:",
            ) from exc
        nav = payload.get("nav") if isinstance(payload, dict) else None
        return start, end, nav or []

    def _yaml_replace(self, nodes: list, delta: ManifestDelta, hits: list[int]) -> list:
        out: list = []
        for node in nodes:
            if isinstance(node, str) and self.resolve(node) == delta.document_path:
                hits.append(1)
                out.append(self._yaml_entry(delta.replacement, title=delta.replacement.title))
            elif isinstance(node, dict):
                replaced: dict = {}
                for title, value in node.items():
                    if isinstance(value, list):
                        replaced[title] = self._yaml_replace(value, delta, hits)
                    elif isinstance(value, str) and self.resolve(value) == delta.document_path:
                        hits.append(1)
                        replaced[title] = self._yaml_entry(delta.replacement, title=str(title))[
                            str(title)
                        ]
                    else:
                        replaced[title] = value
                out.append(replaced)
            else:
                out.append(node)
        return out

    def _yaml_entry(self, entry: NavEntry, *, title: str) -> dict:
        children: list = []
        if entry.file_path is not None:
            children.append(self.relative(entry.file_path))
        for child in entry.children:
            if child.children:
                children.append(self._yaml_entry(child, title=child.title))
            elif child.file_path is not None:
                children.append({child.title: self.relative(child.file_path)})
        return {title: children}

    def _apply_yaml(self, delta: ManifestDelta) -> bool:
        start, end, nav = self._nav_block()
        hits: list[int] = []
        replaced = self._yaml_replace(list(nav), delta, hits)
        if not hits:
            logger.warning("%s: %s has no manifest entry", self.path, delta.document_path)
            return False
        if len(hits) > 1:
            raise ManifestMergeError(
                f"{delta.document_path} appears {len(hits)} times in the manifest",
                document=delta.document_path,
                phase="merge-manifest",
                remedy=f"keep a single entry for it in {self.path.name}",
            )
        lines = self.text.splitlines(keepends=True)
        block = yaml.safe_dump(
            {"nav": replaced}, sort_keys=False, default_flow_style=False, allow_unicode=True
        )
        lines[start:end] = [block]
        self.text = "".join(lines)
        return True


def apply_deltas(manifest: NavigationManifest, deltas: list[ManifestDelta]) -> list[str]:
    """Apply ``deltas`` in document order; returns paths that had no entry."""
    missing: list[str] = []
    for delta in sorted(deltas, key=lambda item: item.document_path):
        if not manifest.apply(delta):
            missing.append(delta.document_path)
    return missing
