"""Map/reduce orchestration for drift detection and reorganization.

Map: a bounded thread pool plans each selected document independently and
returns a ``DocumentOutcome``. Workers never touch the manifest or other
documents. Reduce: one thread applies manifest deltas and corpus-wide link
rewrites in document-id order, then the validator runs once.
"""

from __future__ import annotations

import concurrent.futures
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path

from doclens.artifacts import JSONObject
from doclens.clustering import cluster_document
from doclens.config import DoclensConfig
from doclens.drift import DriftReport, detect_drift
from doclens.exceptions import (
    DoclensError,
    FsOperationError,
    ManifestMergeError,
    ValidationError,
)
from doclens.ingest import Corpus, FeatureInventory
from doclens.model import Cluster, Document, TemplateMatch
from doclens.reorg.executor import (
    apply_operations,
    link_updates,
    merge_anchor_tables,
    reduce_plans,
    unified_diff,
)
from doclens.reorg.manifest import NavigationManifest, apply_deltas
from doclens.reorg.model import DocumentPlan, UpdateFile
from doclens.reorg.planner import plan_reorganization
from doclens.synthesizer import DEFAULT_SYNTHESIZER, ContentSynthesizer
from doclens.templates import TemplateCatalog, assign_subsections, match_template
from doclens.validate import ConsistencyReport, validate_corpus

logger = logging.getLogger(__name__)


@dataclass
class Workspace:
    """Inputs shared read-only by every worker."""

    root: Path
    docs_root: Path
    config: DoclensConfig
    corpus: Corpus
    inventory: FeatureInventory | None = None
    catalog: TemplateCatalog | None = None
    manifest: NavigationManifest | None = None
    synthesizer: ContentSynthesizer = DEFAULT_SYNTHESIZER

    @classmethod
    def load(
        cls,
        root: Path,
        config: DoclensConfig,
        *,
        docs_dir: str | None = None,
        inventory: Path | None = None,
        templates: Path | None = None,
        manifest: Path | None = None,
    ) -> "Workspace":
        paths = config.paths
        docs_root = root / (docs_dir or paths.docs_dir)
        corpus = Corpus.load(docs_root)
        inventory_path = inventory or (root / paths.inventory if paths.inventory else None)
        templates_path = templates or (root / paths.templates if paths.templates else None)
        manifest_path = manifest or (root / paths.manifest if paths.manifest else None)
        return cls(
            root=root,
            docs_root=docs_root,
            config=config,
            corpus=corpus,
            inventory=FeatureInventory.load(inventory_path) if inventory_path else None,
            catalog=(
                TemplateCatalog.load(
                    templates_path,
                    default_max_subsections=config.templates.default_max_subsections,
                )
                if templates_path
                else None
            ),
            manifest=NavigationManifest.load(manifest_path, docs_root) if manifest_path else None,
        )

    def reload(self) -> "Workspace":
        self.corpus = Corpus.load(self.docs_root)
        return self


@dataclass(frozen=True)
class DocumentOutcome:
    document_id: str
    plan: DocumentPlan | None = None
    clusters: tuple[Cluster, ...] = ()
    match: TemplateMatch | None = None
    error: DoclensError | None = None
    completed: tuple[str, ...] = ()

    @property
    def actionable(self) -> bool:
        return self.plan is not None and not self.plan.proposal.noop and self.error is None

    def as_json_dict(self) -> JSONObject:
        return {
            "document_id": self.document_id,
            "clusters": [cluster.as_json_dict() for cluster in self.clusters],
            "match": self.match.as_json_dict() if self.match else None,
            "proposal": self.plan.proposal.as_json_dict() if self.plan else None,
            "manifest_delta": (
                self.plan.manifest_delta.as_json_dict()
                if self.plan and self.plan.manifest_delta
                else None
            ),
            "error": self.error.as_json_dict() if self.error else None,
            "completed": list(self.completed),
        }


@dataclass
class RunResult:
    mode: str
    outcomes: list[DocumentOutcome] = field(default_factory=list)
    corpus_updates: list[UpdateFile] = field(default_factory=list)
    manifest_missing: list[str] = field(default_factory=list)
    reduce_error: DoclensError | None = None
    report: ConsistencyReport | None = None

    @property
    def failed(self) -> list[str]:
        return [outcome.document_id for outcome in self.outcomes if outcome.error is not None]

    @property
    def exit_code(self) -> int:
        if self.report is not None and self.report.failure() is not None:
            return 1
        return 1 if self.failed or self.reduce_error is not None else 0

    def as_json_dict(self) -> JSONObject:
        return {
            "mode": self.mode,
            "documents": [outcome.as_json_dict() for outcome in self.outcomes],
            "corpus_updates": [update.as_json_dict() for update in self.corpus_updates],
            "manifest_missing": list(self.manifest_missing),
            "failed_documents": self.failed,
            "reduce_error": self.reduce_error.as_json_dict() if self.reduce_error else None,
            "report": self.report.as_json_dict() if self.report else None,
        }


def select_documents(
    corpus: Corpus, document_ids: Sequence[str], min_lines: int
) -> list[Document]:
    """Explicit ids, else every document longer than ``min_lines``."""
    if document_ids:
        return [corpus.get(doc_id) for doc_id in document_ids]
    return [
        document
        for doc_id, document in sorted(corpus.documents.items())
        if document.line_count > min_lines
    ]


def plan_document(
    document: Document, workspace: Workspace, *, template_name: str | None = None
) -> DocumentOutcome:
    """Map-stage worker: cluster, match, assign and plan one document."""
    config = workspace.config
    try:
        clusters = cluster_document(document, config.cluster)
        catalog = workspace.catalog or TemplateCatalog({})
        match = match_template(document, clusters, catalog, forced=template_name)
        template = catalog[match.template_name] if match.template_name else None
        assignment = assign_subsections(document, clusters, template)
        plan = plan_reorganization(
            document,
            assignment,
            match,
            corpus=workspace.corpus,
            config=config.templates,
            synthesizer=workspace.synthesizer,
            split_recommended=all(cluster.split_recommended for cluster in clusters),
        )
    except ValidationError as exc:
        logger.warning(exc.describe())
        return DocumentOutcome(document_id=document.id, error=exc)
    return DocumentOutcome(
        document_id=document.id, plan=plan, clusters=tuple(clusters), match=match
    )


def _map(
    documents: Sequence[Document],
    worker: Callable[[Document], DocumentOutcome],
    workers: int,
) -> list[DocumentOutcome]:
    if not documents:
        return []
    outcomes: list[DocumentOutcome] = []
    with concurrent.futures.ThreadPoolExecutor(
        max_workers=max(1, min(workers, len(documents)))
    ) as executor:
        futures = {executor.submit(worker, document): document.id for document in documents}
        for future in concurrent.futures.as_completed(futures):
            outcomes.append(future.result())
    return sorted(outcomes, key=lambda outcome: outcome.document_id)


def plan_batch(
    workspace: Workspace,
    document_ids: Sequence[str] = (),
    *,
    template_name: str | None = None,
) -> list[DocumentOutcome]:
    rejected: list[DocumentOutcome] = []
    documents: list[Document] = []
    if document_ids:
        for doc_id in document_ids:
            try:
                documents.append(workspace.corpus.get(doc_id))
            except ValidationError as exc:
                logger.warning(exc.describe())
                rejected.append(DocumentOutcome(document_id=doc_id, error=exc))
    else:
        documents = select_documents(workspace.corpus, (), workspace.config.pipeline.min_lines)
    logger.info("planning %d document(s)", len(documents))
    outcomes = _map(
        documents,
        lambda document: plan_document(document, workspace, template_name=template_name),
        workspace.config.pipeline.workers,
    )
    return sorted(outcomes + rejected, key=lambda outcome: outcome.document_id)


def _docs_relative(path: Path, docs_root: Path) -> str | None:
    try:
        return path.resolve().relative_to(docs_root.resolve()).as_posix()
    except ValueError:
        return None


def _preview_manifest(
    manifest: NavigationManifest, plans: Sequence[DocumentPlan]
) -> tuple[NavigationManifest, list[str]]:
    """Merge every delta into a detached copy; raises ``ManifestMergeError``."""
    preview = manifest.preview()
    deltas = [plan.manifest_delta for plan in plans if plan.manifest_delta is not None]
    return preview, apply_deltas(preview, deltas)


def _abort_commit(
    outcomes: Sequence[DocumentOutcome], exc: DoclensError
) -> list[DocumentOutcome]:
    return [
        replace(outcome, error=exc) if outcome.actionable else outcome for outcome in outcomes
    ]


def dry_run(
    workspace: Workspace,
    document_ids: Sequence[str] = (),
    *,
    template_name: str | None = None,
) -> RunResult:
    """Plan and preview every change without writing anything."""
    outcomes = plan_batch(workspace, document_ids, template_name=template_name)
    plans = [outcome.plan for outcome in outcomes if outcome.actionable and outcome.plan]
    result = RunResult(mode="dry-run", outcomes=outcomes)
    manifest = workspace.manifest
    preview: NavigationManifest | None = None
    if manifest is not None and plans:
        try:
            preview, result.manifest_missing = _preview_manifest(manifest, plans)
        except ManifestMergeError as exc:
            logger.error(exc.describe())
            result.outcomes = _abort_commit(outcomes, exc)
            return result
    anchors = merge_anchor_tables(plans)
    texts = {document.path: document.raw_text for document in workspace.corpus.documents.values()}
    manifest_rel = _docs_relative(manifest.path, workspace.docs_root) if manifest else None
    if manifest_rel is not None:
        texts.pop(manifest_rel, None)
    result.corpus_updates, _changes = link_updates(texts, anchors)
    if manifest is not None and preview is not None and preview.text != manifest.text:
        label = manifest_rel or manifest.path.name
        result.corpus_updates.append(
            UpdateFile(
                path=label,
                diff=unified_diff(label, manifest.text, preview.text),
                content=preview.text,
            )
        )
    return result


def apply(
    workspace: Workspace,
    document_ids: Sequence[str] = (),
    *,
    template_name: str | None = None,
    build_command: str | None = None,
) -> RunResult:
    """Plan, write, reduce and validate.

    The manifest merge is tried on a detached copy before anything is
    written; a conflict fails every actionable document and leaves the
    corpus untouched. Per-document filesystem failures are recorded and the
    batch continues; the reduce step only sees documents whose operations
    all completed.
    """
    outcomes = plan_batch(workspace, document_ids, template_name=template_name)
    plans = [outcome.plan for outcome in outcomes if outcome.actionable and outcome.plan]
    if workspace.manifest is not None and plans:
        try:
            _preview_manifest(workspace.manifest, plans)
        except ManifestMergeError as exc:
            logger.error(exc.describe())
            outcomes = _abort_commit(outcomes, exc)
    applied: list[DocumentOutcome] = []
    for outcome in outcomes:
        if not outcome.actionable or outcome.plan is None:
            applied.append(outcome)
            continue
        try:
            completed = apply_operations(
                workspace.docs_root, outcome.document_id, outcome.plan.proposal.changes_required
            )
        except FsOperationError as exc:
            logger.error(exc.describe())
            applied.append(replace(outcome, error=exc, completed=exc.completed))
            continue
        applied.append(replace(outcome, completed=completed))
    result = RunResult(mode="apply", outcomes=applied)
    committed = [outcome.plan for outcome in applied if outcome.actionable and outcome.plan]
    if committed:
        try:
            reduced = reduce_plans(workspace.docs_root, committed, workspace.manifest)
        except DoclensError as exc:
            logger.error(exc.describe())
            result.reduce_error = exc
        else:
            result.manifest_missing = reduced.manifest_missing
    workspace.reload()
    reports = run_drift(workspace) if workspace.inventory is not None else []
    failed = set(result.failed)
    if result.reduce_error is not None:
        failed.update(plan.document_id for plan in committed)
    pipeline = workspace.config.pipeline
    result.report = validate_corpus(
        workspace.corpus,
        inventory=workspace.inventory,
        drift_reports=reports,
        build_command=build_command or pipeline.build_command,
        build_cwd=workspace.root,
        build_timeout=pipeline.build_timeout,
        failed_documents=sorted(failed),
        contributing_documents=[plan.document_id for plan in committed],
    )
    return result


def run_drift(
    workspace: Workspace,
    document_ids: Sequence[str] = (),
    *,
    feature_mapping: Sequence[str] | None = None,
) -> list[DriftReport]:
    corpus = workspace.corpus
    inventory = workspace.inventory or FeatureInventory({})
    if document_ids:
        documents = [corpus.get(doc_id) for doc_id in document_ids]
    else:
        documents = [corpus.documents[doc_id] for doc_id in sorted(corpus.documents)]
    paths = corpus.paths()

    def worker(document: Document) -> DriftReport:
        return detect_drift(
            document,
            inventory,
            corpus.link_graph,
            feature_mapping=feature_mapping,
            corpus_paths=paths,
            config=workspace.config.drift,
            synthesizer=workspace.synthesizer,
        )

    if not documents:
        return []
    with concurrent.futures.ThreadPoolExecutor(
        max_workers=max(1, min(workspace.config.pipeline.workers, len(documents)))
    ) as executor:
        return list(executor.map(worker, documents))
