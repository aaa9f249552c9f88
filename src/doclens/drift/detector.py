"""Compare one document against the feature inventory and its link graph.

Every rule emits typed issues; the detector never raises for content
problems, only for bad configuration.
"""

from __future__ import annotations

import difflib
import json
import logging
import posixpath
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

import yaml

from doclens.clustering.signature import tokenize
from doclens.config import DriftConfig
from doclens.drift.model import (
    DEFAULT_SEVERITY,
    DriftIssue,
    DriftReport,
    IssueType,
    Severity,
    rollup_quality,
)
from doclens.links.graph import LinkGraph, fenced_lines
from doclens.model import CodeBlock, Document, FeatureDescriptor, LinkKind
from doclens.synthesizer import DEFAULT_SYNTHESIZER, ContentSynthesizer

logger = logging.getLogger(__name__)

STRUCTURED_LANGUAGES = {"yaml": "yaml", "yml": "yaml", "json": "json"}
MIN_SENTENCE_WORDS = 5

_SENTENCE_RE = re.compile(r"[^.!?]+[.!?](?=\s|$)")
_HEADING_PREFIX_RE = re.compile(r"^ {0,3}#{1,6}(?:\s|$)")
_LIST_OR_TABLE_RE = re.compile(r"^\s*(?:[-*+]\s|\d+[.)]\s|\|)")
_TIP_RE = re.compile(
    r"(?i)\b(?:tips?|best[ -]practices?|gotchas?|pitfalls?|caveats?|troubleshooting|"
    r"recommendations?|avoid)\b|^\s*!!!\s*(?:tip|warning|note)|^\s*>\s*\*\*(?:tip|warning|note)",
    re.MULTILINE,
)


@dataclass(frozen=True)
class _Example:
    block: CodeBlock
    keys: frozenset[str]
    payload: object


def term_pattern(term: str) -> re.Pattern[str]:
    parts = [re.escape(part) for part in re.split(r"[_\-\s]+", term.lower()) if part]
    return re.compile(r"(?<![a-z0-9])" + r"[_\-\s]?".join(parts) + r"(?:e?s)?(?![a-z0-9])")


def _prose_lines(document: Document) -> list[tuple[int, str]]:
    skip = fenced_lines(document.code_blocks)
    return [
        (number, line)
        for number, line in enumerate(document.raw_text.splitlines(), start=1)
        if number not in skip
    ]


def _section_ref(document: Document, line: int) -> str | None:
    found: str | None = None
    for section in document.sections.walk():
        if section.start_line <= line <= section.end_line:
            found = section.slug
    return found


def _mapping_keys(payload: object) -> set[str]:
    keys: set[str] = set()
    if isinstance(payload, Mapping):
        for key, value in payload.items():
            keys.add(str(key))
            keys |= _mapping_keys(value)
    elif isinstance(payload, list):
        for item in payload:
            keys |= _mapping_keys(item)
    return keys


def _scoped_keys(example: _Example, feature: FeatureDescriptor) -> set[str] | None:
    """Keys of ``example`` that describe ``feature`` or ``None`` when unrelated."""
    payload = example.payload
    if isinstance(payload, Mapping):
        for key, value in payload.items():
            if str(key).lower() == feature.leaf.lower() and isinstance(value, Mapping):
                return {str(inner) for inner in value}
    if feature.field_names and example.keys & feature.field_names:
        if isinstance(payload, Mapping):
            return {str(key) for key in payload}
        return set(example.keys)
    return None


class _Detector:
    def __init__(
        self,
        document: Document,
        config: DriftConfig,
        synthesizer: ContentSynthesizer,
    ) -> None:
        self.document = document
        self.config = config
        self.synthesizer = synthesizer
        self.issues: list[DriftIssue] = []
        self.prose = _prose_lines(document)
        self.overrides = self._severity_overrides(config.severity_overrides)

    @staticmethod
    def _severity_overrides(raw: Mapping[str, str]) -> dict[IssueType, Severity]:
        overrides: dict[IssueType, Severity] = {}
        for key, value in raw.items():
            try:
                overrides[IssueType(key)] = Severity(str(value).lower())
            except ValueError:
                logger.warning("ignoring severity override %s=%r", key, value)
        return overrides

    def emit(
        self,
        issue_type: IssueType,
        description: str,
        *,
        subject: str,
        detail: str = "",
        section_ref: str | None = None,
        source_reference: str | None = None,
        current: str | None = None,
        should_be: str | None = None,
    ) -> None:
        severity = self.overrides.get(issue_type, DEFAULT_SEVERITY[issue_type])
        self.issues.append(
            DriftIssue(
                type=issue_type,
                severity=severity,
                description=description,
                fix_suggestion=self.synthesizer.fix_suggestion(issue_type.value, subject, detail),
                section_ref=section_ref,
                source_reference=source_reference,
                current=current,
                should_be=should_be,
            )
        )

    def examples(self) -> list[_Example]:
        parsed: list[_Example] = []
        for block in self.document.code_blocks:
            kind = STRUCTURED_LANGUAGES.get(block.language.lower())
            if kind is None:
                continue
            try:
                payload = json.loads(block.content) if kind == "json" else yaml.safe_load(block.content)
            except (json.JSONDecodeError, yaml.YAMLError) as exc:
                self.emit(
                    IssueType.UNCLEAR_CONTENT,
                    f"{kind} example at line {block.start_line} does not parse: "
                    f"{str(exc).splitlines()[0]}",
                    subject=f"the {kind} example at line {block.start_line}",
                    detail="make it valid",
                    section_ref=_section_ref(self.document, block.start_line),
                )
                continue
            parsed.append(_Example(block=block, keys=frozenset(_mapping_keys(payload)), payload=payload))
        return parsed

    def mentions(self, feature: FeatureDescriptor) -> list[tuple[int, str]]:
        pattern = term_pattern(feature.leaf)
        return [(number, line) for number, line in self.prose if pattern.search(line.lower())]

    def paragraphs(self) -> list[str]:
        blocks: list[str] = []
        current: list[str] = []
        for _number, line in self.prose:
            if not line.strip() or _HEADING_PREFIX_RE.match(line) or _LIST_OR_TABLE_RE.match(line):
                if current:
                    blocks.append(" ".join(current))
                    current = []
                continue
            current.append(line.strip())
        if current:
            blocks.append(" ".join(current))
        return blocks

    def explained(self, feature: FeatureDescriptor) -> bool:
        pattern = term_pattern(feature.leaf)
        for paragraph in self.paragraphs():
            for sentence in _SENTENCE_RE.findall(paragraph):
                if pattern.search(sentence.lower()) and len(sentence.split()) >= MIN_SENTENCE_WORDS:
                    return True
        return False

    def check_example(self, feature: FeatureDescriptor, example: _Example, keys: set[str]) -> None:
        line = example.block.start_line
        ref = _section_ref(self.document, line)
        if feature.deprecated:
            self.emit(
                IssueType.OUTDATED_INFORMATION,
                f"example at line {line} uses deprecated feature {feature.path}",
                subject=feature.path,
                detail=f"replace with {feature.replacement}" if feature.replacement else "remove it",
                section_ref=ref,
                source_reference=feature.path,
                current=feature.path,
                should_be=feature.replacement,
            )
            return
        if feature.field_names:
            unknown = sorted(keys - feature.field_names)
            if unknown:
                self.emit(
                    IssueType.OUTDATED_INFORMATION,
                    f"example at line {line} uses fields unknown to {feature.path}: {', '.join(unknown)}",
                    subject=feature.path,
                    detail=f"allowed fields: {', '.join(sorted(feature.field_names))}",
                    section_ref=ref,
                    source_reference=feature.path,
                    current=", ".join(unknown),
                    should_be=", ".join(sorted(feature.field_names)),
                )
        stale = sorted(keys & feature.deprecated_fields)
        if stale:
            self.emit(
                IssueType.OUTDATED_INFORMATION,
                f"example at line {line} uses deprecated fields of {feature.path}: {', '.join(stale)}",
                subject=feature.path,
                detail="drop the deprecated fields",
                section_ref=ref,
                source_reference=feature.path,
                current=", ".join(stale),
                should_be=", ".join(sorted(feature.field_names - feature.deprecated_fields)),
            )
        required = feature.required_fields
        present = keys & required
        if required and present < required:
            missing = sorted(required - present)
            self.emit(
                IssueType.INCORRECT_EXAMPLE,
                f"example at line {line} omits required fields of {feature.path}: {', '.join(missing)}",
                subject=feature.path,
                detail=f"add {', '.join(missing)}",
                section_ref=ref,
                source_reference=feature.path,
                current=", ".join(sorted(present)) or None,
                should_be=", ".join(sorted(required)),
            )

    def check_feature(self, feature: FeatureDescriptor, examples: Sequence[_Example]) -> bool:
        hits = self.mentions(feature)
        related = [
            (example, keys)
            for example in examples
            if (keys := _scoped_keys(example, feature)) is not None
        ]
        if not hits and not related:
            self.emit(
                IssueType.MISSING_CONTENT,
                f"feature {feature.path} is not documented",
                subject=feature.path,
                source_reference=feature.path,
            )
            return False
        for example, keys in related:
            self.check_example(feature, example, keys)
        if feature.deprecated and hits and not related:
            number, _line = hits[0]
            self.emit(
                IssueType.OUTDATED_INFORMATION,
                f"deprecated feature {feature.path} is still described",
                subject=feature.path,
                detail=f"replace with {feature.replacement}" if feature.replacement else "remove it",
                section_ref=_section_ref(self.document, number),
                source_reference=feature.path,
                current=feature.path,
                should_be=feature.replacement,
            )
        if hits and not related and not self.explained(feature):
            number, _line = hits[0]
            self.emit(
                IssueType.INCOMPLETE_EXPLANATION,
                f"feature {feature.path} is named but never explained",
                subject=feature.path,
                section_ref=_section_ref(self.document, number),
                source_reference=feature.path,
            )
        return True

    def check_best_practices(self) -> bool:
        doc_id = self.document.id.lower()
        segments = doc_id.split("/")
        if not any(marker in doc_id for marker in self.config.overview_markers):
            return True
        if any(marker in segment for segment in segments for marker in self.config.reference_markers):
            return True
        if _TIP_RE.search("\n".join(line for _number, line in self.prose)):
            return True
        self.emit(
            IssueType.MISSING_BEST_PRACTICES,
            "overview page has no tips, best practices or gotchas",
            subject=self.document.path,
        )
        return False

    def check_links(self, graph: LinkGraph, corpus_paths: Sequence[str]) -> int:
        names = {posixpath.basename(path): path for path in corpus_paths}
        broken = 0
        for link in graph.outbound(self.document.id):
            if link.resolved or link.kind is LinkKind.EXTERNAL:
                continue
            broken += 1
            wanted = posixpath.basename(link.target_path or link.raw_target.split("#", 1)[0])
            guess = difflib.get_close_matches(wanted, list(names), n=1, cutoff=self.config.fuzzy_cutoff)
            if guess:
                target = posixpath.relpath(names[guess[0]], posixpath.dirname(self.document.path) or ".")
                detail = f"did you mean {target}?"
            else:
                detail = "no similar file in the corpus"
            self.emit(
                IssueType.BROKEN_LINK,
                f"link to {link.raw_target} does not resolve",
                subject=link.raw_target,
                detail=detail,
                section_ref=_section_ref(self.document, link.line),
                source_reference=link.raw_target,
            )
        return broken

    def check_parse_warnings(self) -> None:
        for warning in self.document.warnings:
            self.emit(
                IssueType.UNCLEAR_CONTENT,
                f"line {warning.line}: {warning.message}",
                subject=f"line {warning.line}",
                detail=warning.fix or "fix the markup",
                section_ref=_section_ref(self.document, warning.line),
            )


def select_features(
    document: Document,
    inventory: Mapping[str, FeatureDescriptor],
    feature_mapping: Sequence[str] | None = None,
) -> list[FeatureDescriptor]:
    """Explicit mapping when given, otherwise path-segment/topic overlap."""
    if feature_mapping is not None:
        selected: list[FeatureDescriptor] = []
        for path in feature_mapping:
            descriptor = inventory.get(path)
            if descriptor is None:
                logger.warning("%s: unknown feature %s in mapping, skipped", document.id, path)
                continue
            selected.append(descriptor)
        return selected
    vocabulary = set(tokenize(document.title))
    vocabulary.update(tokenize(document.id.replace("/", " ").replace("-", " ")))
    for section in document.sections.walk():
        vocabulary.update(tokenize(section.title))
    selected = []
    for path, descriptor in inventory.items():
        segments: set[str] = set()
        for segment in path.split("."):
            segments.update(tokenize(segment.replace("_", " ")))
            segments.add(segment.lower())
        if segments & vocabulary:
            selected.append(descriptor)
    return selected


def detect_drift(
    document: Document,
    inventory: Mapping[str, FeatureDescriptor],
    link_graph: LinkGraph,
    *,
    feature_mapping: Sequence[str] | None = None,
    corpus_paths: Iterable[str] = (),
    config: DriftConfig | None = None,
    synthesizer: ContentSynthesizer | None = None,
) -> DriftReport:
    config = config or DriftConfig()
    detector = _Detector(document, config, synthesizer or DEFAULT_SYNTHESIZER)
    features = select_features(document, inventory, feature_mapping)
    detector.check_parse_warnings()
    examples = detector.examples()
    documented = [feature.path for feature in features if detector.check_feature(feature, examples)]
    has_guidance = detector.check_best_practices()
    broken = detector.check_links(link_graph, list(corpus_paths))

    positive: list[str] = []
    if features and len(documented) == len(features):
        positive.append(f"covers all {len(features)} selected features")
    elif documented:
        positive.append(f"covers {len(documented)} of {len(features)} selected features")
    if examples:
        positive.append(f"includes {len(examples)} structured example(s)")
    outbound = link_graph.outbound(document.id)
    if outbound and not broken:
        positive.append("all links resolve")
    if has_guidance and _TIP_RE.search(document.raw_text):
        positive.append("includes practical guidance")
    cross_references = tuple(
        sorted(
            {
                link.target_doc
                for link in outbound
                if link.resolved and link.target_doc and link.target_doc != document.id
            }
        )
    )
    issues = tuple(detector.issues)
    quality = rollup_quality(issues)
    logger.info("%s: %d drift issue(s), quality=%s", document.id, len(issues), quality.value)
    return DriftReport(
        document_id=document.id,
        issues=issues,
        quality=quality,
        positive_aspects=tuple(positive),
        cross_references=cross_references,
    )
