from __future__ import annotations

import json
import textwrap
from pathlib import Path

MAPREDUCE_SECTIONS = (
    (
        "Quick Start",
        "Install the command line tool and launch your first pipeline from the terminal.",
        256,
    ),
    (
        "Environment Variables",
        "Export shell variables such as API keys and override defaults through environment settings.",
        256,
    ),
    (
        "Checkpoint and Resume",
        "Failed work items are persisted to durable storage so the job can recover state after a crash.",
        257,
    ),
    (
        "Dead Letter Queue",
        "After a crash the job can recover state because failed work items are persisted to durable storage.",
        257,
    ),
)

ADVANCED_FEATURES = {
    "name": "advanced-features",
    "keywords": ["mapreduce", "workflows"],
    "subsections": [
        {
            "name": "Getting Started",
            "aliases": ["Quick Start"],
            "topics": ["install", "launch"],
            "required": True,
            "description": "First steps",
        },
        {
            "name": "Configuration",
            "aliases": ["Environment Variables"],
            "topics": ["environment", "settings"],
            "description": "Runtime settings",
        },
        {
            "name": "State Management",
            "aliases": ["Checkpoint and Resume", "Dead Letter Queue"],
            "topics": ["checkpoint", "durable storage"],
            "description": "Recovery after failures",
        },
    ],
}


def section_body(sentence: str, lines: int) -> str:
    """Blocks of three sentence lines separated by a blank line."""
    return "".join("\n" if index % 4 == 3 else sentence + "\n" for index in range(lines))


def mapreduce_workflows() -> str:
    text = "# MapReduce Workflows\n\nRun distributed jobs over large inputs.\n\n"
    for title, sentence, lines in MAPREDUCE_SECTIONS:
        text += f"## {title}\n\n" + section_body(sentence, lines)
    return text


def dlq_document() -> str:
    return textwrap.dedent(
        """\
        # MapReduce

        Jobs fan work out to mappers and fold results with reducers.

        ## Overview

        Mappers emit keyed records that reducers aggregate per partition.
        Failures are covered under [retry policy](#retry-policy).

        ## Dead Letter Queue

        Poisoned messages land in a quarantine queue for manual inspection.

        ### Retry Policy

        Each message retries with exponential backoff before quarantine.

        ## Checkpoints

        Snapshots persist offsets periodically to object storage buckets.
        """
    )


DLQ_TEMPLATE = {
    "name": "workflow",
    "keywords": ["mapreduce"],
    "subsections": [
        {"name": "Overview", "required": True},
        {"name": "Dead Letter Queue", "file_name": "dlq", "description": "Quarantined messages"},
        {"name": "Checkpoints"},
    ],
}


def other_document() -> str:
    return textwrap.dedent(
        """\
        # Operations

        See the [DLQ](mapreduce.md#dead-letter-queue) for poisoned input.
        The [workflow guide](mapreduce.md) explains the basics.
        Tune [retries](mapreduce.md#retry-policy) per job.
        An [old anchor](mapreduce.md#no-such-heading) still points somewhere.
        """
    )


def write_tree(root: Path, files: dict[str, str]) -> Path:
    for rel, text in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root


def write_json(path: Path, payload: object) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    return path


def dlq_project(root: Path) -> Path:
    write_tree(
        root,
        {
            "docs/mapreduce.md": dlq_document(),
            "docs/other.md": other_document(),
            "docs/SUMMARY.md": "# Summary\n\n- [MapReduce](mapreduce.md)\n- [Operations](other.md)\n",
        },
    )
    write_json(root / "templates.json", {"templates": [DLQ_TEMPLATE]})
    return root
