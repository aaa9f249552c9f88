from __future__ import annotations

import textwrap
from pathlib import Path

import pytest
import yaml

from doclens.exceptions import InputError, ManifestMergeError
from doclens.reorg import ManifestDelta, ManifestFormat, NavEntry, NavigationManifest, apply_deltas


DELTA = ManifestDelta(
    document_path="guide/mapreduce.md",
    replacement=NavEntry(
        title="MapReduce",
        file_path="guide/mapreduce/index.md",
        children=(
            NavEntry(title="Dead Letter Queue", file_path="guide/mapreduce/dlq.md"),
            NavEntry(title="Checkpoints", file_path="guide/mapreduce/checkpoints.md"),
        ),
    ),
)


def _manifest(tmp_path: Path, name: str, text: str) -> NavigationManifest:
    docs = tmp_path / "docs"
    docs.mkdir(exist_ok=True)
    path = docs / name
    path.write_text(text, encoding="utf-8")
    return NavigationManifest.load(path, docs)


def test_summary_entry_is_replaced_in_place(tmp_path: Path) -> None:
    text = textwrap.dedent(
        """\
        # Summary

        - [Home](index.md)
        - Guide
            - [MapReduce Workflows](guide/mapreduce.md)
                - [Old child](guide/mapreduce.md#old)
            - [Storage](guide/storage.md)

        Trailing notes stay.
        """
    )
    manifest = _manifest(tmp_path, "SUMMARY.md", text)
    assert manifest.format is ManifestFormat.MARKDOWN
    assert manifest.apply(DELTA)
    assert manifest.render() == textwrap.dedent(
        """\
        # Summary

        - [Home](index.md)
        - Guide
            - [MapReduce Workflows](guide/mapreduce/index.md)
                - [Dead Letter Queue](guide/mapreduce/dlq.md)
                - [Checkpoints](guide/mapreduce/checkpoints.md)
            - [Storage](guide/storage.md)

        Trailing notes stay.
        """
    )
    assert "guide/mapreduce/dlq.md" in manifest.paths()


def test_summary_missing_entry_and_duplicates(tmp_path: Path) -> None:
    manifest = _manifest(tmp_path, "SUMMARY.md", "- [Home](index.md)\n")
    assert apply_deltas(manifest, [DELTA]) == ["guide/mapreduce.md"]
    assert manifest.render() == "- [Home](index.md)\n"

    doubled = _manifest(
        tmp_path,
        "SUMMARY.md",
        "- [A](guide/mapreduce.md)\n- [B](guide/mapreduce.md)\n",
    )
    with pytest.raises(ManifestMergeError):
        doubled.apply(DELTA)


def test_mkdocs_nav_block_only_is_rewritten(tmp_path: Path) -> None:
    text = textwrap.dedent(
        """\
        site_name: Example
        nav:
          - Home: index.md
          - Guide:
              - MapReduce: guide/mapreduce.md
              - guide/storage.md
        theme:
          name: material
        """
    )
    manifest = _manifest(tmp_path, "mkdocs.yml", text)
    assert manifest.format is ManifestFormat.YAML
    assert manifest.apply(DELTA)
    rendered = manifest.render()
    assert rendered.startswith("site_name: Example\nnav:\n")
    assert rendered.endswith("theme:\n  name: material\n")
    nav = yaml.safe_load(rendered)["nav"]
    assert nav[1]["Guide"][0] == {
        "MapReduce": [
            "guide/mapreduce/index.md",
            {"Dead Letter Queue": "guide/mapreduce/dlq.md"},
            {"Checkpoints": "guide/mapreduce/checkpoints.md"},
        ]
    }
    assert nav[1]["Guide"][1] == "guide/storage.md"


def test_manifest_below_docs_root_uses_relative_paths(tmp_path: Path) -> None:
    docs = tmp_path / "docs"
    (docs / "guide").mkdir(parents=True)
    path = docs / "guide" / "SUMMARY.md"
    path.write_text("- [MapReduce](mapreduce.md)\n", encoding="utf-8")
    manifest = NavigationManifest.load(path, docs)
    assert manifest.base == "guide"
    assert manifest.apply(DELTA)
    assert manifest.render().splitlines() == [
        "- [MapReduce](mapreduce/index.md)",
        "  - [Dead Letter Queue](mapreduce/dlq.md)",
        "  - [Checkpoints](mapreduce/checkpoints.md)",
    ]


def test_mkdocs_without_nav_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(InputError):
        _manifest(tmp_path, "mkdocs.yml", "site_name: Example\n")
