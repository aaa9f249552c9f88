"""Apply planned filesystem operations and the single-threaded reduce step."""

from __future__ import annotations

import difflib
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from doclens.exceptions import FsOperationError
from doclens.links.anchors import AnchorTable
from doclens.links.rewrite import LinkRewrite, rewrite_links
from doclens.reorg.manifest import NavigationManifest, apply_deltas
from doclens.reorg.model import (
    CreateDir,
    CreateFile,
    DeleteFile,
    DocumentPlan,
    FsOperation,
    UpdateFile,
)

logger = logging.getLogger(__name__)


def unified_diff(path: str, before: str, after: str) -> str:
    return "".join(
        difflib.unified_diff(
            before.splitlines(keepends=True),
            after.splitlines(keepends=True),
            fromfile=f"a/{path}",
            tofile=f"b/{path}",
        )
    )


def _perform(root: Path, operation: FsOperation) -> None:
    target = root / operation.path
    if isinstance(operation, CreateDir):
        target.mkdir(parents=True, exist_ok=True)
    elif isinstance(operation, CreateFile):
        with target.open("x", encoding="utf-8") as handle:
            handle.write(operation.content)
    elif isinstance(operation, UpdateFile):
        target.write_text(operation.content, encoding="utf-8")
    elif isinstance(operation, DeleteFile):
        target.unlink()


def apply_operations(
    root: Path, document_id: str, operations: Sequence[FsOperation]
) -> tuple[str, ...]:
    """Run ``operations`` in order; stop at the first failure.

    Completed operations are not reverted. The raised ``FsOperationError``
    lists them so the caller can report the partial state.
    """
    completed: list[str] = []
    for operation in operations:
        try:
            _perform(root, operation)
        except OSError as exc:
            raise FsOperationError(
                f"{operation.describe()} failed: {exc.strerror or exc}",
                document=document_id,
                remedy="fix the filesystem problem, restore the listed files and rerun `doclens apply`",
                completed=tuple(completed),
            ) from exc
        completed.append(operation.describe())
        logger.debug("%s: %s", document_id, operation.describe())
    return tuple(completed)


def merge_anchor_tables(plans: Iterable[DocumentPlan]) -> AnchorTable:
    merged = AnchorTable()
    for plan in sorted(plans, key=lambda item: item.document_id):
        merged.merge(plan.anchors)
    return merged


def link_updates(
    texts: Mapping[str, str], anchors: AnchorTable
) -> tuple[list[UpdateFile], dict[str, list[LinkRewrite]]]:
    """Rewrite links in every text that points at a relocated document."""
    updates: list[UpdateFile] = []
    changes: dict[str, list[LinkRewrite]] = {}
    for path in sorted(texts):
        if anchors.covers(path):
            continue
        before = texts[path]
        after, rewrites = rewrite_links(before, origin_path=path, new_path=path, anchors=anchors)
        if not rewrites:
            continue
        updates.append(UpdateFile(path=path, diff=unified_diff(path, before, after), content=after))
        changes[path] = rewrites
    return updates, changes


def read_markdown_texts(root: Path) -> dict[str, str]:
    texts: dict[str, str] = {}
    for path in sorted(root.rglob("*.md")):
        rel = path.relative_to(root)
        if any(part.startswith(".") for part in rel.parts):
            continue
        texts[rel.as_posix()] = path.read_text(encoding="utf-8")
    return texts


@dataclass
class ReduceResult:
    manifest_missing: list[str] = field(default_factory=list)
    rewritten: dict[str, list[LinkRewrite]] = field(default_factory=dict)
    anchors: AnchorTable = field(default_factory=AnchorTable)


def reduce_plans(
    root: Path,
    plans: Sequence[DocumentPlan],
    manifest: NavigationManifest | None = None,
) -> ReduceResult:
    """Commit step: manifest deltas first, then corpus-wide link rewrites.

    Runs on one thread over plans sorted by document id, after every
    worker has finished its filesystem operations.
    """
    ordered = sorted(plans, key=lambda plan: plan.document_id)
    result = ReduceResult(anchors=merge_anchor_tables(ordered))
    if manifest is not None:
        deltas = [plan.manifest_delta for plan in ordered if plan.manifest_delta is not None]
        result.manifest_missing = apply_deltas(manifest, deltas)
        try:
            manifest.write()
        except OSError as exc:
            raise FsOperationError(
                f"writing {manifest.path.name} failed: {exc.strerror or exc}",
                document=manifest.path.name,
                phase="merge-manifest",
                remedy="restore write access to the manifest and update it by hand",
            ) from exc
    updates, result.rewritten = link_updates(read_markdown_texts(root), result.anchors)
    for update in updates:
        apply_operations(root, update.path, [update])
    logger.info(
        "reduce: %d plans, %d files with rewritten links", len(ordered), len(result.rewritten)
    )
    return result
