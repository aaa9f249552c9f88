from __future__ import annotations

from doclens.clustering import cluster_document
from doclens.ingest.markdown import parse_document
from doclens.model import Cluster, SubsectionSpec, Template
from doclens.templates import TemplateCatalog, assign_subsections
from doclens.templates.assign import name_similarity
from tests.corpus_helpers import ADVANCED_FEATURES, mapreduce_workflows


def _cluster(cluster_id: str, label: str, slug: str, weight: int, topics=()) -> Cluster:
    return Cluster(
        id=cluster_id,
        label=label,
        members=(("doc", slug),),
        topics=tuple(topics),
        confidence=1.0,
        weight=weight,
    )


def _doc(titles: list[str]):
    text = "# Doc\n\n" + "".join(f"## {title}\n\nbody\n\n" for title in titles)
    return parse_document(text, path="doc.md")


def test_mapreduce_assignment_fills_every_slot() -> None:
    document = parse_document(mapreduce_workflows(), path="mapreduce.md")
    template = TemplateCatalog.from_payload({"templates": [ADVANCED_FEATURES]})[
        "advanced-features"
    ]
    assignment = assign_subsections(document, cluster_document(document), template)
    assert [(slot.name, slot.member_slugs) for slot in assignment.slots] == [
        ("Getting Started", ("quick-start",)),
        ("Configuration", ("environment-variables",)),
        ("State Management", ("checkpoint-and-resume", "dead-letter-queue")),
    ]
    assert assignment.warnings == ()
    assert not any(slot.extra for slot in assignment.slots)


def test_missing_required_slot_is_flagged_not_fabricated() -> None:
    document = _doc(["Alpha", "Bravo"])
    template = Template(
        name="t",
        subsections=(
            SubsectionSpec(name="Prerequisites", required=True),
            SubsectionSpec(name="Alpha"),
        ),
    )
    clusters = [
        _cluster("c1", "Alpha", "alpha", 10),
        _cluster("c2", "Bravo", "bravo", 10),
    ]
    assignment = assign_subsections(document, clusters, template)
    by_name = {slot.name: slot for slot in assignment.slots}
    assert by_name["Prerequisites"].clusters == ()
    assert by_name["Alpha"].member_slugs == ("alpha",)
    assert by_name["Bravo"].extra
    assert assignment.warnings == ("required subsection 'Prerequisites' has no matching content",)


def test_required_slots_never_share_a_cluster() -> None:
    document = _doc(["Setup"])
    template = Template(
        name="t",
        subsections=(
            SubsectionSpec(name="Setup", required=True),
            SubsectionSpec(name="Installation", aliases=("Setup",), required=True),
        ),
    )
    assignment = assign_subsections(document, [_cluster("c1", "Setup", "setup", 5)], template)
    filled = [slot.name for slot in assignment.slots if slot.filled]
    assert filled == ["Setup"]
    assert len(assignment.warnings) == 1


def test_extras_merge_down_to_budget() -> None:
    document = _doc(["Main", "One", "Two", "Three"])
    template = Template(
        name="t",
        subsections=(SubsectionSpec(name="Main", required=True),),
        max_subsections=2,
    )
    clusters = [
        _cluster("c1", "Main", "main", 50),
        _cluster("c2", "One", "one", 1),
        _cluster("c3", "Two", "two", 2),
        _cluster("c4", "Three", "three", 30),
    ]
    assignment = assign_subsections(document, clusters, template)
    filled = [slot for slot in assignment.slots if slot.filled]
    assert len(filled) == 2
    assert filled[1].member_slugs == ("one", "two", "three")


def test_lone_extra_folds_into_smallest_optional() -> None:
    document = _doc(["Main", "Small", "Large", "Stray"])
    template = Template(
        name="t",
        subsections=(
            SubsectionSpec(name="Main", required=True),
            SubsectionSpec(name="Small"),
            SubsectionSpec(name="Large"),
        ),
        max_subsections=3,
    )
    clusters = [
        _cluster("c1", "Main", "main", 50),
        _cluster("c2", "Small", "small", 1),
        _cluster("c3", "Large", "large", 40),
        _cluster("c4", "Stray", "stray", 5),
    ]
    assignment = assign_subsections(document, clusters, template)
    by_name = {slot.name: slot for slot in assignment.slots}
    assert "Stray" not in by_name
    assert by_name["Small"].member_slugs == ("small", "stray")
    assert assignment.warnings == ()


def test_structural_mode_is_one_slot_per_cluster() -> None:
    document = _doc(["Alpha", "Bravo"])
    clusters = [_cluster("c1", "Alpha", "alpha", 1), _cluster("c2", "Bravo", "bravo", 1)]
    assignment = assign_subsections(document, clusters, None)
    assert assignment.mode == "structural"
    assert [slot.name for slot in assignment.slots] == ["Alpha", "Bravo"]


def test_name_similarity_uses_aliases() -> None:
    slot = SubsectionSpec(name="Configuration", aliases=("Environment Variables",))
    assert name_similarity(slot, ["environment variables"]) == 1.0
    assert name_similarity(slot, ["Variables"]) == 0.5
