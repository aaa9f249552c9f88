from __future__ import annotations

import math
import re
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Sequence

from doclens.model import Section

_TOKEN_RE = re.compile(r"[a-z][a-z0-9_]+")
_LINK_TARGET_RE = re.compile(r"\]\([^)]*\)")

MIN_TOKEN_LENGTH = 3

STOPWORDS = frozenset(
    """
    about above after again against all also and any are because been before
    being below between both but can cannot could did does doing down during
    each etc few for from further had has have having her here hers him his
    how into its itself just let more most must not now off once only other
    our ours out over own same see should some such than that the their them
    then there these they this those through too under until use used uses
    using very was were what when where which while who whom why will with
    would you your yours yourself may might need needs one two get set via
    per like make makes made new example examples following true false null
    """.split()
)


def tokenize(text: str) -> list[str]:
    """Lower-cased word tokens with stopwords and short tokens removed."""
    cleaned = _LINK_TARGET_RE.sub("]", text.lower())
    return [
        token
        for token in _TOKEN_RE.findall(cleaned)
        if len(token) >= MIN_TOKEN_LENGTH and token not in STOPWORDS
    ]


def normalize_title(title: str) -> str:
    return " ".join(_TOKEN_RE.findall(title.lower()))


@dataclass(frozen=True)
class TopicSignature:
    slug: str
    title_tokens: frozenset[str]
    terms: tuple[str, ...]

    @property
    def tokens(self) -> frozenset[str]:
        return self.title_tokens | frozenset(self.terms)


def jaccard(left: Iterable[str], right: Iterable[str]) -> float:
    left_set = set(left)
    right_set = set(right)
    if not left_set and not right_set:
        return 1.0
    return len(left_set & right_set) / len(left_set | right_set)


def salient_terms(
    counts: Counter[str], document_frequency: Counter[str], total: int, limit: int
) -> tuple[str, ...]:
    def score(term: str) -> float:
        return counts[term] * math.log(1 + total / document_frequency[term])

    ranked = sorted(counts, key=lambda term: (-score(term), term))
    return tuple(ranked[:limit])


def section_signatures(sections: Sequence[Section], limit: int) -> list[TopicSignature]:
    """Signature per section: title tokens plus top tf-idf body terms.

    Document frequency is computed across ``sections`` only, so a term that
    shows up in every section carries little weight.
    """
    counts = [Counter(tokenize(section.body_text)) for section in sections]
    document_frequency: Counter[str] = Counter()
    for section_counts in counts:
        document_frequency.update(section_counts.keys())
    total = len(sections)
    return [
        TopicSignature(
            slug=section.slug,
            title_tokens=frozenset(tokenize(section.title)),
            terms=salient_terms(section_counts, document_frequency, total, limit),
        )
        for section, section_counts in zip(sections, counts)
    ]
