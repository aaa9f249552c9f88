"""Group a document's topical (H2) sections into semantic clusters.

Clustering is deterministic: sections are visited in document order, ties
go to the earliest cluster, and budget merges pick the lowest-weight pair
with document order as the tiebreaker.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field

from doclens.clustering.signature import (
    TopicSignature,
    jaccard,
    section_signatures,
    tokenize,
)
from doclens.config import ClusterConfig
from doclens.model import Cluster, Document, Section

logger = logging.getLogger(__name__)

MAX_TOPICS = 12


def _section_weight(section: Section, merge_weight: str) -> int:
    if merge_weight == "line_count":
        return section.line_count
    if merge_weight == "section_count":
        return 1
    return len(section.text)


@dataclass
class _Group:
    positions: list[int] = field(default_factory=list)

    @property
    def first(self) -> int:
        return self.positions[0]


def _best_group(
    position: int,
    groups: list[_Group],
    signatures: list[TopicSignature],
) -> tuple[int | None, float]:
    best_index: int | None = None
    best_score = -1.0
    for index, group in enumerate(groups):
        score = max(
            jaccard(signatures[position].tokens, signatures[member].tokens)
            for member in group.positions
        )
        if score > best_score:
            best_index, best_score = index, score
    return best_index, best_score


def _merge_to_budget(
    groups: list[_Group], weights: list[int], max_clusters: int
) -> list[_Group]:
    while len(groups) > max_clusters:
        ranked = sorted(
            range(len(groups)),
            key=lambda index: (sum(weights[p] for p in groups[index].positions), groups[index].first),
        )
        low, high = sorted(ranked[:2])
        merged = _Group(positions=sorted(groups[low].positions + groups[high].positions))
        logger.debug(
            "cluster budget merge: sections %s + %s", groups[low].positions, groups[high].positions
        )
        groups = [group for index, group in enumerate(groups) if index not in (low, high)]
        groups.append(merged)
        groups.sort(key=lambda group: group.first)
    return groups


def _topics(positions: list[int], signatures: list[TopicSignature]) -> tuple[str, ...]:
    counts: Counter[str] = Counter()
    for position in positions:
        counts.update(signatures[position].tokens)
    ranked = sorted(counts, key=lambda token: (-counts[token], token))
    return tuple(sorted(ranked[:MAX_TOPICS]))


def _confidence(positions: list[int], signatures: list[TopicSignature]) -> float:
    if len(positions) == 1:
        return 1.0
    seed = signatures[positions[0]].tokens
    scores = [jaccard(seed, signatures[position].tokens) for position in positions[1:]]
    return sum(scores) / len(scores)


def _whole_document(document: Document) -> Cluster:
    roots = document.sections.roots
    members = tuple((document.id, section.slug) for section in roots) or ((document.id, ""),)
    counts = Counter(tokenize(document.raw_text))
    topics = tuple(sorted(sorted(counts, key=lambda token: (-counts[token], token))[:MAX_TOPICS]))
    return Cluster(
        id="c1",
        label=document.title,
        members=members,
        topics=topics,
        confidence=1.0,
        weight=len(document.raw_text),
        split_recommended=False,
    )


def cluster_document(document: Document, config: ClusterConfig | None = None) -> list[Cluster]:
    config = config or ClusterConfig()
    sections = document.sections.topical_sections()
    if not sections:
        logger.info("%s: no H2 sections, nothing to split", document.id)
        return [_whole_document(document)]
    signatures = section_signatures(sections, config.salient_terms)
    weights = [_section_weight(section, config.merge_weight) for section in sections]

    groups: list[_Group] = []
    for position in range(len(sections)):
        index, score = _best_group(position, groups, signatures)
        if index is not None and score >= config.similarity_threshold:
            groups[index].positions.append(position)
        else:
            groups.append(_Group(positions=[position]))
    groups = _merge_to_budget(groups, weights, config.max_clusters)

    clusters = [
        Cluster(
            id=f"c{number}",
            label=sections[group.first].title,
            members=tuple((document.id, sections[p].slug) for p in group.positions),
            topics=_topics(group.positions, signatures),
            confidence=_confidence(group.positions, signatures),
            weight=sum(weights[p] for p in group.positions),
        )
        for number, group in enumerate(groups, start=1)
    ]
    logger.info(
        "%s: %d topical sections -> %d clusters", document.id, len(sections), len(clusters)
    )
    return clusters
