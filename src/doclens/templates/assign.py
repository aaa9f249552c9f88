from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace

from doclens.clustering.signature import jaccard, normalize_title, tokenize
from doclens.model import (
    Assignment,
    Cluster,
    Document,
    SlotAssignment,
    SubsectionSpec,
    Template,
)

logger = logging.getLogger(__name__)

NAME_WEIGHT = 5
TOPIC_WEIGHT = 2


def _titles(document: Document, cluster: Cluster) -> list[str]:
    titles = [cluster.label]
    for slug in cluster.member_slugs:
        section = document.sections.by_slug(slug)
        if section is not None:
            titles.append(section.title)
    return titles


def name_similarity(slot: SubsectionSpec, titles: Sequence[str]) -> float:
    best = 0.0
    for name in slot.names:
        wanted = normalize_title(name)
        for title in titles:
            if normalize_title(title) == wanted:
                return 1.0
            best = max(best, jaccard(tokenize(name), tokenize(title)) if tokenize(name) else 0.0)
    return best


def topic_overlap(slot: SubsectionSpec, cluster: Cluster) -> int:
    slot_topics = {token for topic in slot.topics for token in tokenize(topic)}
    return len(slot_topics & set(cluster.topics))


def affinity(slot: SubsectionSpec, cluster: Cluster, titles: Sequence[str]) -> float:
    return NAME_WEIGHT * name_similarity(slot, titles) + TOPIC_WEIGHT * topic_overlap(slot, cluster)


def _claim(
    slot: SubsectionSpec,
    clusters: Sequence[Cluster],
    claimed: set[str],
    titles: dict[str, list[str]],
) -> Cluster | None:
    best: Cluster | None = None
    best_score = 0.0
    for cluster in clusters:
        if cluster.id in claimed:
            continue
        score = affinity(slot, cluster, titles[cluster.id])
        if score > best_score:
            best, best_score = cluster, score
    return best


def _fit_budget(
    slots: list[SlotAssignment], limit: int, warnings: list[str]
) -> list[SlotAssignment]:
    def total() -> int:
        return sum(1 for slot in slots if slot.filled)

    while total() > limit:
        extras = [index for index, slot in enumerate(slots) if slot.extra]
        if len(extras) >= 2:
            low, high = sorted(
                sorted(extras, key=lambda index: (slots[index].weight, index))[:2]
            )
            merged = replace(slots[low], clusters=slots[low].clusters + slots[high].clusters)
            slots[low] = merged
            del slots[high]
            continue
        optional = [
            index
            for index, slot in enumerate(slots)
            if slot.filled and not slot.required and not slot.extra
        ]
        if len(extras) == 1 and optional:
            lone = slots[extras[0]]
            target = min(optional, key=lambda index: (slots[index].weight, index))
            slots[target] = replace(slots[target], clusters=slots[target].clusters + lone.clusters)
            del slots[extras[0]]
            continue
        warnings.append(
            f"{total()} subsections exceed max_subsections={limit}; no extra subsection left to merge"
        )
        break
    return slots


def _structural(document: Document, clusters: Sequence[Cluster]) -> Assignment:
    slots = tuple(
        SlotAssignment(name=cluster.label, required=False, clusters=(cluster,))
        for cluster in clusters
    )
    return Assignment(document_id=document.id, template_name=None, slots=slots)


def assign_subsections(
    document: Document,
    clusters: Sequence[Cluster],
    template: Template | None,
) -> Assignment:
    """Map clusters onto template slots.

    Required slots claim first, then optional ones, each in declared order.
    A required slot with no positive-affinity cluster stays empty and is
    reported in ``warnings``; content is never invented for it.
    """
    if template is None:
        return _structural(document, clusters)
    titles = {cluster.id: _titles(document, cluster) for cluster in clusters}
    claimed: set[str] = set()
    filled: dict[str, Cluster] = {}
    warnings: list[str] = []
    for slot in (*template.required_slots, *template.optional_slots):
        cluster = _claim(slot, clusters, claimed, titles)
        if cluster is None:
            if slot.required:
                warnings.append(f"required subsection {slot.name!r} has no matching content")
            continue
        claimed.add(cluster.id)
        filled[slot.name] = cluster

    slots: list[SlotAssignment] = [
        SlotAssignment(
            name=spec.name,
            required=spec.required,
            clusters=(filled[spec.name],) if spec.name in filled else (),
            description=spec.description,
            file_name=spec.file_name,
        )
        for spec in template.subsections
    ]
    slots.extend(
        SlotAssignment(name=cluster.label, required=False, clusters=(cluster,), extra=True)
        for cluster in clusters
        if cluster.id not in claimed
    )
    slots = _fit_budget(slots, template.max_subsections, warnings)
    for warning in warnings:
        logger.warning("%s: %s", document.id, warning)
    return Assignment(
        document_id=document.id,
        template_name=template.name,
        slots=tuple(slots),
        warnings=tuple(warnings),
        required_total=len(template.required_slots),
        optional_total=len(template.optional_slots),
    )
