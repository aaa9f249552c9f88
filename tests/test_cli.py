from __future__ import annotations

import json
import shlex
import sys
from pathlib import Path

from typer.testing import CliRunner

from doclens.cli import app

runner = CliRunner()


def _invoke(args: list[str]):
    return runner.invoke(app, args)


def _project_args(root: Path) -> list[str]:
    return [
        "--root",
        str(root),
        "--templates",
        str(root / "templates.json"),
        "--manifest",
        str(root / "docs" / "SUMMARY.md"),
    ]


def _docs_snapshot(root: Path) -> dict[str, str]:
    return {
        path.relative_to(root).as_posix(): path.read_text(encoding="utf-8")
        for path in (root / "docs").rglob("*")
        if path.is_file()
    }


def test_plan_writes_artifact_and_leaves_docs_alone(dlq_root: Path) -> None:
    before = _docs_snapshot(dlq_root)
    output = dlq_root / "out" / "plan.json"
    result = _invoke(
        ["plan", "mapreduce", *_project_args(dlq_root), "--workers", "1", "-o", str(output)]
    )
    assert result.exit_code == 0
    assert _docs_snapshot(dlq_root) == before
    payload = json.loads(output.read_text(encoding="utf-8"))
    assert payload["mode"] == "dry-run"
    assert [doc["document_id"] for doc in payload["documents"]] == ["mapreduce"]
    assert payload["documents"][0]["proposal"] is not None
    assert [update["path"] for update in payload["corpus_updates"]] == ["other.md", "SUMMARY.md"]


def test_apply_commits_the_split(dlq_root: Path) -> None:
    output = dlq_root / "out" / "apply.json"
    result = _invoke(["apply", "mapreduce", *_project_args(dlq_root), "-o", str(output)])
    assert result.exit_code == 0
    assert (dlq_root / "docs" / "mapreduce" / "dlq.md").exists()
    assert not (dlq_root / "docs" / "mapreduce.md").exists()
    payload = json.loads(output.read_text(encoding="utf-8"))
    assert payload["report"]["status"] == "pass"


def test_drift_requires_an_inventory(dlq_root: Path) -> None:
    result = _invoke(["drift", "--root", str(dlq_root)])
    assert result.exit_code == 2


def test_links_dumps_the_graph(dlq_root: Path) -> None:
    output = dlq_root / "out" / "links.json"
    result = _invoke(["links", "--root", str(dlq_root), "-o", str(output)])
    assert result.exit_code == 0
    payload = json.loads(output.read_text(encoding="utf-8"))
    targets = {link["raw_target"] for link in payload["links"]}
    assert "mapreduce.md#dead-letter-queue" in targets


def test_validate_reports_failed_build(dlq_root: Path) -> None:
    output = dlq_root / "out" / "validate.json"
    command = shlex.join([sys.executable, "-c", "import sys; sys.exit(4)"])
    result = _invoke(
        ["validate", "--root", str(dlq_root), "--build-command", command, "-o", str(output)]
    )
    assert result.exit_code == 1
    payload = json.loads(output.read_text(encoding="utf-8"))
    assert payload["status"] == "fail"
    assert payload["build"]["returncode"] == 4
