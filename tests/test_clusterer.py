from __future__ import annotations

from doclens.clustering import cluster_document, jaccard, tokenize
from doclens.config import ClusterConfig
from doclens.ingest.markdown import parse_document
from tests.corpus_helpers import mapreduce_workflows, section_body


def _document(sections: list[tuple[str, str]], path: str = "doc.md"):
    text = "# Doc\n\n"
    for title, sentence in sections:
        text += f"## {title}\n\n" + section_body(sentence, 8)
    return parse_document(text, path=path)


def test_tokenize_drops_stopwords_and_link_targets() -> None:
    assert tokenize("Use the [retry queue](retry.md) with an API key") == [
        "retry",
        "queue",
        "api",
        "key",
    ]


def test_mapreduce_sections_form_three_clusters() -> None:
    document = parse_document(mapreduce_workflows(), path="mapreduce.md")
    clusters = cluster_document(document)
    assert [cluster.id for cluster in clusters] == ["c1", "c2", "c3"]
    assert [cluster.member_slugs for cluster in clusters] == [
        ("quick-start",),
        ("environment-variables",),
        ("checkpoint-and-resume", "dead-letter-queue"),
    ]
    assert clusters[0].confidence == 1.0
    assert 0.6 < clusters[2].confidence < 0.62
    assert "checkpoint" in clusters[2].topics
    assert all(cluster.split_recommended for cluster in clusters)


def test_threshold_comes_from_config() -> None:
    document = parse_document(mapreduce_workflows(), path="mapreduce.md")
    strict = cluster_document(document, ClusterConfig(similarity_threshold=0.9))
    assert len(strict) == 4


def test_budget_merges_lowest_weight_pair() -> None:
    document = _document(
        [
            ("Alpha", "Apples grow in orchards every autumn season."),
            ("Bravo", "Bridges span rivers between distant towns."),
            ("Charlie", "Comets orbit beyond planets quietly."),
        ]
    )
    clusters = cluster_document(
        document, ClusterConfig(max_clusters=2, merge_weight="section_count")
    )
    assert [cluster.member_slugs for cluster in clusters] == [("alpha", "bravo"), ("charlie",)]
    assert clusters[0].label == "Alpha"


def test_document_without_topical_sections_is_one_cluster() -> None:
    document = parse_document("# Tiny\n\nJust a paragraph about widgets.\n", path="tiny.md")
    clusters = cluster_document(document)
    assert len(clusters) == 1
    assert clusters[0].split_recommended is False
    assert clusters[0].members == (("tiny", "tiny"),)


def test_clustering_is_deterministic() -> None:
    document = parse_document(mapreduce_workflows(), path="mapreduce.md")
    assert cluster_document(document) == cluster_document(document)


def test_jaccard_of_empty_sets() -> None:
    assert jaccard([], []) == 1.0
    assert jaccard(["a"], []) == 0.0
