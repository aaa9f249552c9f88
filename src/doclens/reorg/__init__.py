"""Reorganization planning, manifest updates and execution."""

from doclens.reorg.executor import apply_operations, link_updates, reduce_plans
from doclens.reorg.manifest import ManifestFormat, NavigationManifest, apply_deltas
from doclens.reorg.model import (
    CreateDir,
    CreateFile,
    DeleteFile,
    DocumentPlan,
    ManifestDelta,
    NavEntry,
    ReorganizationProposal,
    TargetFile,
    UpdateFile,
)
from doclens.reorg.planner import compliance_score, plan_reorganization, target_directory

__all__ = [
    "CreateDir",
    "CreateFile",
    "DeleteFile",
    "DocumentPlan",
    "ManifestDelta",
    "ManifestFormat",
    "NavEntry",
    "NavigationManifest",
    "ReorganizationProposal",
    "TargetFile",
    "UpdateFile",
    "apply_deltas",
    "apply_operations",
    "compliance_score",
    "link_updates",
    "plan_reorganization",
    "reduce_plans",
    "target_directory",
]
