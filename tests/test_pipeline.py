from __future__ import annotations

import shlex
import sys
from pathlib import Path

from doclens.config import DoclensConfig, PipelineConfig
from doclens.exceptions import FsOperationError, ManifestMergeError
from doclens.ingest import FeatureInventory
from doclens.pipeline import Workspace, apply, dry_run, plan_batch, run_drift
from doclens.reorg import ManifestFormat, NavigationManifest
from doclens.validate import Status
from tests.corpus_helpers import mapreduce_workflows, write_json, write_tree


def _python(code: str) -> str:
    return shlex.join([sys.executable, "-c", code])


def _workspace(root: Path, **pipeline) -> Workspace:
    config = DoclensConfig(pipeline=PipelineConfig(**pipeline))
    return Workspace.load(
        root,
        config,
        templates=root / "templates.json",
        manifest=root / "docs" / "SUMMARY.md",
    )


def test_dry_run_touches_nothing(dlq_root: Path) -> None:
    before = {
        path.relative_to(dlq_root).as_posix(): path.read_text(encoding="utf-8")
        for path in dlq_root.rglob("*")
        if path.is_file()
    }
    result = dry_run(_workspace(dlq_root), ["mapreduce"])
    after = {
        path.relative_to(dlq_root).as_posix(): path.read_text(encoding="utf-8")
        for path in dlq_root.rglob("*")
        if path.is_file()
    }
    assert before == after
    assert result.exit_code == 0
    assert [outcome.document_id for outcome in result.outcomes] == ["mapreduce"]
    assert [update.path for update in result.corpus_updates] == ["other.md", "SUMMARY.md"]
    assert "+See the [DLQ](mapreduce/dlq.md) for poisoned input." in result.corpus_updates[0].diff


def test_apply_splits_rewrites_links_and_manifest(dlq_root: Path) -> None:
    docs = dlq_root / "docs"
    result = apply(_workspace(dlq_root), ["mapreduce"])
    assert result.exit_code == 0
    assert result.report is not None and result.report.status is Status.PASS
    assert not (docs / "mapreduce.md").exists()
    assert sorted(path.name for path in (docs / "mapreduce").iterdir()) == [
        "checkpoints.md",
        "dlq.md",
        "index.md",
    ]
    other = (docs / "other.md").read_text(encoding="utf-8")
    assert "[DLQ](mapreduce/dlq.md)" in other
    assert "[workflow guide](mapreduce/index.md)" in other
    assert "[retries](mapreduce/dlq.md#retry-policy)" in other
    assert "[old anchor](mapreduce/index.md#no-such-heading)" in other
    summary = (docs / "SUMMARY.md").read_text(encoding="utf-8")
    assert summary == (
        "# Summary\n\n"
        "- [MapReduce](mapreduce/index.md)\n"
        "  - [Dead Letter Queue](mapreduce/dlq.md)\n"
        "  - [Checkpoints](mapreduce/checkpoints.md)\n"
        "- [Operations](other.md)\n"
    )


def test_second_apply_is_a_noop(dlq_root: Path) -> None:
    apply(_workspace(dlq_root), ["mapreduce"])
    (dlq_root / "docs" / "mapreduce.md").write_text("# MapReduce\n\n## Overview\n\nx\n")
    again = apply(_workspace(dlq_root), ["mapreduce"])
    assert again.outcomes[0].plan is not None
    assert again.outcomes[0].plan.proposal.noop_reason == "already organized"
    assert (dlq_root / "docs" / "mapreduce.md").exists()


def test_build_failure_lists_suspects(dlq_root: Path) -> None:
    workspace = _workspace(dlq_root, build_command=_python("import sys; sys.exit(3)"))
    result = apply(workspace, ["mapreduce"])
    assert result.exit_code == 1
    failure = result.report.failure()
    assert failure is not None
    assert failure.suspects == ("mapreduce",)
    assert (dlq_root / "docs" / "mapreduce" / "index.md").exists()


def test_build_success_passes(dlq_root: Path) -> None:
    workspace = _workspace(dlq_root, build_command=_python("print('built')"))
    result = apply(workspace, ["mapreduce"])
    assert result.exit_code == 0
    assert "built" in result.report.build.log


def test_unknown_document_does_not_abort_batch(dlq_root: Path) -> None:
    outcomes = plan_batch(_workspace(dlq_root), ["ghost", "mapreduce"])
    by_id = {outcome.document_id: outcome for outcome in outcomes}
    assert by_id["ghost"].error is not None
    assert by_id["ghost"].error.phase == "select"
    assert by_id["mapreduce"].actionable


def test_default_selection_uses_min_lines(tmp_path: Path) -> None:
    write_tree(
        tmp_path,
        {
            "docs/mapreduce.md": mapreduce_workflows(),
            "docs/short.md": "# Short\n\n## A\n\ntext\n\n## B\n\nmore\n",
        },
    )
    workspace = Workspace.load(tmp_path, DoclensConfig(pipeline=PipelineConfig(workers=2)))
    outcomes = plan_batch(workspace)
    assert [outcome.document_id for outcome in outcomes] == ["mapreduce"]


def test_run_drift_over_whole_corpus(dlq_root: Path) -> None:
    inventory = write_json(
        dlq_root / "inventory.json",
        {"mapreduce.checkpoint": {"fields": ["interval"]}},
    )
    workspace = Workspace.load(dlq_root, DoclensConfig(), inventory=inventory)
    assert isinstance(workspace.inventory, FeatureInventory)
    reports = run_drift(workspace, feature_mapping=["mapreduce.checkpoint"])
    assert [report.document_id for report in reports] == ["SUMMARY", "mapreduce", "other"]
    flagged = {report.document_id for report in reports if report.issues}
    assert flagged == {"SUMMARY", "mapreduce", "other"}


def test_manifest_conflict_aborts_before_any_write(dlq_root: Path) -> None:
    docs = dlq_root / "docs"
    summary = "# Summary\n\n- [MapReduce](mapreduce.md)\n- [Again](mapreduce.md)\n"
    (docs / "SUMMARY.md").write_text(summary, encoding="utf-8")
    other = (docs / "other.md").read_text(encoding="utf-8")
    result = apply(_workspace(dlq_root), ["mapreduce"])
    assert result.exit_code == 1
    assert isinstance(result.outcomes[0].error, ManifestMergeError)
    assert result.outcomes[0].completed == ()
    assert (docs / "mapreduce.md").exists()
    assert not (docs / "mapreduce").exists()
    assert (docs / "other.md").read_text(encoding="utf-8") == other
    assert (docs / "SUMMARY.md").read_text(encoding="utf-8") == summary
    assert result.report.failure().suspects == ("mapreduce",)

    preview = dry_run(_workspace(dlq_root), ["mapreduce"])
    assert preview.failed == ["mapreduce"]
    assert preview.corpus_updates == []


def test_reduce_failure_is_reported_not_raised(dlq_root: Path) -> None:
    workspace = _workspace(dlq_root)
    blocked = dlq_root / "nav"
    blocked.mkdir()
    workspace.manifest = NavigationManifest(
        path=blocked,
        format=ManifestFormat.MARKDOWN,
        text=workspace.manifest.text,
    )
    result = apply(workspace, ["mapreduce"])
    assert isinstance(result.reduce_error, FsOperationError)
    assert result.reduce_error.phase == "merge-manifest"
    assert result.exit_code == 1
    assert "create mapreduce/dlq.md" in result.outcomes[0].completed
    assert result.report.failure().suspects == ("mapreduce",)
    assert result.as_json_dict()["reduce_error"]["phase"] == "merge-manifest"


def test_images_in_moved_sections_keep_working(dlq_root: Path) -> None:
    docs = dlq_root / "docs"
    text = (docs / "mapreduce.md").read_text(encoding="utf-8").replace(
        "manual inspection.\n", "manual inspection.\n\n![flow](img/dlq.png)\n"
    )
    (docs / "mapreduce.md").write_text(text, encoding="utf-8")
    write_tree(docs, {"img/dlq.png": "png"})
    result = apply(_workspace(dlq_root), ["mapreduce"])
    assert result.exit_code == 0
    moved = (docs / "mapreduce" / "dlq.md").read_text(encoding="utf-8")
    assert "![flow](../img/dlq.png)" in moved
