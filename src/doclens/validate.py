"""Post-commit consistency validation.

Runs the external site build once and aggregates corpus-wide coverage
metrics into a single report. Nothing on disk is reverted on failure.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from doclens.artifacts import JSONObject
from doclens.drift.detector import term_pattern
from doclens.drift.model import DriftReport, Quality
from doclens.exceptions import BuildValidationFailure, InputError
from doclens.ingest.corpus import Corpus
from doclens.model import FeatureDescriptor, LinkKind

logger = logging.getLogger(__name__)

LOG_TAIL_LINES = 200
LOW_QUALITY = (Quality.CRITICAL, Quality.HIGH)


class Status(StrEnum):
    PASS = "pass"
    FAIL = "fail"


@dataclass(frozen=True)
class BuildResult:
    command: str | None
    returncode: int
    log: str = ""

    @property
    def ran(self) -> bool:
        return self.command is not None

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def as_json_dict(self) -> JSONObject:
        tail = self.log.splitlines()[-LOG_TAIL_LINES:]
        return {
            "command": self.command,
            "ran": self.ran,
            "returncode": self.returncode,
            "log_tail": "\n".join(tail),
        }


def run_build(
    command: str | None,
    *,
    cwd: Path,
    timeout: int,
    run_fn: Callable[..., subprocess.CompletedProcess] = subprocess.run,
) -> BuildResult:
    if not command:
        return BuildResult(command=None, returncode=0, log="no build command configured")
    argv = shlex.split(command)
    if not argv:
        raise InputError(
            "build command is empty",
            phase="build",
            remedy="set [pipeline].build_command or pass --build-command",
        )
    logger.info("running build: %s", command)
    try:
        completed = run_fn(
            argv,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        return BuildResult(command=command, returncode=-1, log=f"build timed out after {timeout}s")
    except FileNotFoundError as exc:
        return BuildResult(command=command, returncode=127, log=f"cannot run build: {exc}")
    log = (completed.stdout or "") + (completed.stderr or "")
    return BuildResult(command=command, returncode=completed.returncode, log=log)


def feature_coverage(
    corpus: Corpus, inventory: Mapping[str, FeatureDescriptor]
) -> tuple[float, list[str]]:
    """Share of non-deprecated features mentioned anywhere in the corpus."""
    live = [feature for feature in inventory.values() if not feature.deprecated]
    if not live:
        return 1.0, []
    text = "\n".join(document.raw_text.lower() for document in corpus.documents.values())
    missing = [feature.path for feature in live if not term_pattern(feature.leaf).search(text)]
    return (len(live) - len(missing)) / len(live), missing


def link_coverage(corpus: Corpus) -> tuple[float, int, int]:
    internal = [link for link in corpus.link_graph.links if link.kind is not LinkKind.EXTERNAL]
    if not internal:
        return 1.0, 0, 0
    resolved = sum(1 for link in internal if link.resolved)
    return resolved / len(internal), resolved, len(internal)


@dataclass(frozen=True)
class ConsistencyReport:
    status: Status
    feature_coverage: float | None
    undocumented_features: tuple[str, ...]
    link_coverage: float
    resolved_links: int
    internal_links: int
    low_quality_documents: tuple[str, ...]
    failed_documents: tuple[str, ...]
    suspect_documents: tuple[str, ...]
    build: BuildResult

    def failure(self) -> BuildValidationFailure | None:
        if self.status is Status.PASS:
            return None
        if not self.build.ok:
            return BuildValidationFailure(
                f"build exited with {self.build.returncode}",
                suspects=self.suspect_documents,
                log=self.build.log,
            )
        return BuildValidationFailure(
            f"{len(self.failed_documents)} document(s) failed to apply",
            suspects=self.failed_documents,
            remedy="fix the listed documents and rerun `doclens apply`",
        )

    def as_json_dict(self) -> JSONObject:
        return {
            "status": self.status.value,
            "feature_coverage": (
                None if self.feature_coverage is None else round(self.feature_coverage, 6)
            ),
            "undocumented_features": list(self.undocumented_features),
            "link_coverage": round(self.link_coverage, 6),
            "resolved_links": self.resolved_links,
            "internal_links": self.internal_links,
            "low_quality_documents": list(self.low_quality_documents),
            "failed_documents": list(self.failed_documents),
            "suspect_documents": list(self.suspect_documents),
            "build": self.build.as_json_dict(),
        }


def validate_corpus(
    corpus: Corpus,
    *,
    inventory: Mapping[str, FeatureDescriptor] | None = None,
    drift_reports: Iterable[DriftReport] = (),
    build_command: str | None = None,
    build_cwd: Path | None = None,
    build_timeout: int = 600,
    failed_documents: Sequence[str] = (),
    contributing_documents: Sequence[str] = (),
    run_fn: Callable[..., subprocess.CompletedProcess] = subprocess.run,
) -> ConsistencyReport:
    build = run_build(
        build_command, cwd=build_cwd or corpus.root, timeout=build_timeout, run_fn=run_fn
    )
    coverage: float | None = None
    undocumented: list[str] = []
    if inventory is not None:
        coverage, undocumented = feature_coverage(corpus, inventory)
    ratio, resolved, internal = link_coverage(corpus)
    low_quality = sorted(
        report.document_id for report in drift_reports if report.quality in LOW_QUALITY
    )
    failed = tuple(sorted(failed_documents))
    status = Status.PASS if build.ok and not failed else Status.FAIL
    suspects = tuple(sorted(set(contributing_documents) | set(failed))) if not build.ok else failed
    if status is Status.FAIL:
        logger.error(
            "validation failed: build rc=%d, %d failed document(s)", build.returncode, len(failed)
        )
    return ConsistencyReport(
        status=status,
        feature_coverage=coverage,
        undocumented_features=tuple(undocumented),
        link_coverage=ratio,
        resolved_links=resolved,
        internal_links=internal,
        low_quality_documents=tuple(low_quality),
        failed_documents=failed,
        suspect_documents=suspects,
        build=build,
    )
