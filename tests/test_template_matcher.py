from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from doclens.clustering import cluster_document
from doclens.exceptions import InputError, TemplateNotFound
from doclens.ingest.markdown import parse_document
from doclens.templates import TemplateCatalog, confidences, match_template
from tests.corpus_helpers import ADVANCED_FEATURES, mapreduce_workflows


REFERENCE = {
    "name": "reference",
    "keywords": ["reference", "api"],
    "subsections": [
        {"name": "Parameters", "topics": ["parameters"], "required": True},
        {"name": "Environment Variables", "topics": ["environment"]},
    ],
}


def _catalog(*templates: dict) -> TemplateCatalog:
    return TemplateCatalog.from_payload({"templates": list(templates)})


def test_best_template_wins_and_confidences_sum_to_one() -> None:
    document = parse_document(mapreduce_workflows(), path="mapreduce.md")
    clusters = cluster_document(document)
    match = match_template(document, clusters, _catalog(ADVANCED_FEATURES, REFERENCE))
    assert match.template_name == "advanced-features"
    assert match.mode == "template"
    assert match.per_template_scores["reference"] > 0
    assert sum(confidences(match).values()) == pytest.approx(1.0, abs=1e-9)
    assert match.confidence == pytest.approx(confidences(match)["advanced-features"])


def test_zero_scores_fall_back_to_structural() -> None:
    document = parse_document("# Misc\n\n## Odds\n\nnothing matches here\n", path="misc.md")
    match = match_template(document, cluster_document(document), _catalog(ADVANCED_FEATURES))
    assert match.template_name is None
    assert match.mode == "structural"
    assert match.confidence == 0.0


def test_ties_break_on_name() -> None:
    document = parse_document("# Shared\n\n## Intro\n\ntext\n", path="shared.md")
    first = {"name": "beta", "keywords": ["shared"], "subsections": [{"name": "Other"}]}
    second = {"name": "alpha", "keywords": ["shared"], "subsections": [{"name": "Other"}]}
    match = match_template(document, cluster_document(document), _catalog(first, second))
    assert match.template_name == "alpha"
    assert match.confidence == pytest.approx(0.5)


def test_ties_prefer_more_required_slot_matches() -> None:
    document = parse_document("# Notes\n\n## Intro\n\ntext\n", path="notes.md")
    optional = {"name": "alpha", "keywords": ["notes"], "subsections": [{"name": "Intro"}]}
    required = {
        "name": "beta",
        "keywords": ["notes"],
        "subsections": [{"name": "Intro", "required": True}],
    }
    match = match_template(document, cluster_document(document), _catalog(optional, required))
    assert match.per_template_scores == {"alpha": 15, "beta": 15}
    assert match.template_name == "beta"


def test_forced_template_must_exist() -> None:
    document = parse_document(mapreduce_workflows(), path="mapreduce.md")
    clusters = cluster_document(document)
    catalog = _catalog(ADVANCED_FEATURES, REFERENCE)
    forced = match_template(document, clusters, catalog, forced="reference")
    assert forced.template_name == "reference"
    with pytest.raises(TemplateNotFound) as exc:
        match_template(document, clusters, catalog, forced="nope")
    assert "advanced-features" in exc.value.remedy


def test_catalog_loads_yaml_and_rejects_duplicates(tmp_path: Path) -> None:
    path = tmp_path / "templates.yml"
    path.write_text(yaml.safe_dump({"templates": [ADVANCED_FEATURES]}), encoding="utf-8")
    catalog = TemplateCatalog.load(path, default_max_subsections=5)
    template = catalog.require("advanced-features")
    assert template.max_subsections == 5
    assert [slot.name for slot in template.required_slots] == ["Getting Started"]
    with pytest.raises(InputError):
        _catalog(ADVANCED_FEATURES, ADVANCED_FEATURES)
    with pytest.raises(InputError):
        TemplateCatalog.from_payload({"templates": [{"name": "no-slots"}]})
