"""Score every catalog template against one document.

Templates are plain data; matching is a pure function of the document, its
clusters and the ordered catalog.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from doclens.clustering.signature import normalize_title, tokenize
from doclens.exceptions import TemplateNotFound
from doclens.model import Cluster, Document, Template, TemplateMatch

logger = logging.getLogger(__name__)

TITLE_KEYWORD_POINTS = 10
HEADING_MATCH_POINTS = 5
TOPIC_OVERLAP_POINTS = 2


def _keyword_hits(title: str, keywords: Sequence[str]) -> int:
    title_tokens = set(normalize_title(title).split())
    hits = 0
    for keyword in keywords:
        parts = normalize_title(keyword).split()
        if parts and all(part in title_tokens for part in parts):
            hits += 1
    return hits


def _heading_matches(headings: Sequence[str], template: Template) -> tuple[int, int]:
    """Return ``(matching H2 count, required slots matched)``."""
    matched = 0
    required: set[str] = set()
    for heading in headings:
        for slot in template.subsections:
            if heading in {normalize_title(name) for name in slot.names}:
                matched += 1
                if slot.required:
                    required.add(slot.name)
                break
    return matched, len(required)


def _topic_overlap(clusters: Sequence[Cluster], template: Template) -> int:
    cluster_topics = {topic for cluster in clusters for topic in cluster.topics}
    overlap = 0
    for slot in template.subsections:
        slot_topics = {token for topic in slot.topics for token in tokenize(topic)}
        overlap += len(slot_topics & cluster_topics)
    return overlap


def score_template(
    document: Document, clusters: Sequence[Cluster], template: Template
) -> tuple[int, int]:
    headings = [normalize_title(s.title) for s in document.sections.topical_sections()]
    heading_hits, required_hits = _heading_matches(headings, template)
    score = (
        TITLE_KEYWORD_POINTS * _keyword_hits(document.title, template.keywords)
        + HEADING_MATCH_POINTS * heading_hits
        + TOPIC_OVERLAP_POINTS * _topic_overlap(clusters, template)
    )
    return score, required_hits


def match_template(
    document: Document,
    clusters: Sequence[Cluster],
    catalog: Mapping[str, Template],
    *,
    forced: str | None = None,
) -> TemplateMatch:
    """Pick the best template or fall back to structural mode.

    ``forced`` names a template the caller already chose; it is scored like
    the rest so the confidence still reflects the catalog.
    """
    if forced is not None and forced not in catalog:
        raise TemplateNotFound(
            f"template {forced!r} is not in the catalog",
            document=document.id,
            phase="match-template",
            remedy=f"choose one of: {', '.join(catalog) or '<empty catalog>'}",
        )
    scores: dict[str, int] = {}
    required_hits: dict[str, int] = {}
    for name, template in catalog.items():
        scores[name], required_hits[name] = score_template(document, clusters, template)
    total = sum(scores.values())
    if forced is not None:
        chosen: str | None = forced
    elif total == 0:
        chosen = None
    else:
        chosen = min(scores, key=lambda name: (-scores[name], -required_hits[name], name))
    score = scores.get(chosen, 0) if chosen is not None else 0
    confidence = score / total if total else 0.0
    logger.info(
        "%s: template=%s score=%d confidence=%.3f",
        document.id,
        chosen or "<structural>",
        score,
        confidence,
    )
    return TemplateMatch(
        template_name=chosen,
        score=score,
        confidence=confidence,
        per_template_scores=scores,
    )


def confidences(match: TemplateMatch) -> dict[str, float]:
    total = sum(match.per_template_scores.values())
    if total == 0:
        return {name: 0.0 for name in match.per_template_scores}
    return {name: score / total for name, score in match.per_template_scores.items()}
