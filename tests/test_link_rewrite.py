from __future__ import annotations

import pytest

from doclens.links import AnchorTable, retarget, rewrite_links


def _table() -> AnchorTable:
    table = AnchorTable()
    table.register_split("mapreduce.md", "mapreduce/index.md")
    table.add("mapreduce.md", "dead-letter-queue", "mapreduce/dlq.md", None)
    table.add("mapreduce.md", "retry-policy", "mapreduce/dlq.md", "retry-policy")
    table.add("mapreduce.md", "overview", "mapreduce/index.md", "overview")
    return table


def test_relocate_prefers_recorded_anchor() -> None:
    table = _table()
    assert table.relocate("mapreduce.md", "dead-letter-queue") == ("mapreduce/dlq.md", None)
    assert table.relocate("mapreduce.md", None) == ("mapreduce/index.md", None)
    assert table.relocate("mapreduce.md", "gone") == ("mapreduce/index.md", "gone")
    assert table.relocate("other.md", "x") == ("other.md", "x")


def test_dlq_link_drops_anchor_when_heading_becomes_subject() -> None:
    text = "See [DLQ](mapreduce.md#dead-letter-queue).\n"
    rewritten, changes = rewrite_links(
        text, origin_path="ops.md", new_path="ops.md", anchors=_table()
    )
    assert rewritten == "See [DLQ](mapreduce/dlq.md).\n"
    assert [(change.line, change.new_target) for change in changes] == [(1, "mapreduce/dlq.md")]


@pytest.mark.parametrize(
    ("raw", "origin", "expected"),
    [
        ("mapreduce.md", "ops.md", "mapreduce/index.md"),
        ("../mapreduce.md#retry-policy", "guides/ops.md", "../mapreduce/dlq.md#retry-policy"),
        ("/mapreduce.md#overview", "guides/ops.md", "/mapreduce/index.md#overview"),
        ("mapreduce.md#gone", "ops.md", "mapreduce/index.md#gone"),
        ("https://example.com/mapreduce.md", "ops.md", None),
        ("unrelated.md#x", "ops.md", None),
    ],
)
def test_retarget_for_unmoved_sources(raw: str, origin: str, expected: str | None) -> None:
    assert retarget(raw, origin_path=origin, new_path=origin, anchors=_table()) == expected


def test_moved_content_is_rebased() -> None:
    table = _table()
    # an in-page anchor that now lives in a sibling file
    assert (
        retarget(
            "#retry-policy",
            origin_path="mapreduce.md",
            new_path="mapreduce/index.md",
            anchors=table,
        )
        == "dlq.md#retry-policy"
    )
    # an anchor that stays in the same new file collapses to a fragment
    assert (
        retarget(
            "#retry-policy",
            origin_path="mapreduce.md",
            new_path="mapreduce/dlq.md",
            anchors=table,
        )
        is None
    )
    # a sibling link written relative to the old location
    assert (
        retarget(
            "other.md",
            origin_path="mapreduce.md",
            new_path="mapreduce/dlq.md",
            anchors=table,
        )
        == "../other.md"
    )


def test_rewrite_preserves_surrounding_bytes_and_code() -> None:
    text = (
        "Two [a](mapreduce.md) and [b](mapreduce.md#overview) on one line.\n"
        "`[code](mapreduce.md)`\n"
        "```\n[fenced](mapreduce.md)\n```\n"
    )
    rewritten, changes = rewrite_links(
        text, origin_path="x.md", new_path="x.md", anchors=_table()
    )
    assert rewritten.splitlines()[0] == (
        "Two [a](mapreduce/index.md) and [b](mapreduce/index.md#overview) on one line."
    )
    assert rewritten.splitlines()[1:] == text.splitlines()[1:]
    assert len(changes) == 2


def test_merge_rejects_double_relocation() -> None:
    table = _table()
    other = AnchorTable()
    other.register_split("mapreduce.md", "elsewhere/index.md")
    with pytest.raises(ValueError):
        table.merge(other)


def test_images_in_moved_content_are_rebased() -> None:
    text = "![flow](img/dlq.png) next to [ops](other.md).\n"
    rewritten, changes = rewrite_links(
        text, origin_path="mapreduce.md", new_path="mapreduce/dlq.md", anchors=_table()
    )
    assert rewritten == "![flow](../img/dlq.png) next to [ops](../other.md).\n"
    assert [change.new_target for change in changes] == ["../img/dlq.png", "../other.md"]
    unmoved, _ = rewrite_links(text, origin_path="ops.md", new_path="ops.md", anchors=_table())
    assert unmoved == text
