"""Template conformance checker.

A note's template kind is decided by an ordered table of heading
predicates; the first that matches wins. New shapes are added by extending
``TEMPLATE_RULES`` and ``REQUIRED_SECTIONS``.
"""

import logging
import unicodedata
from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..indexer.document import Diagnostic, DiagnosticKind, Document, Heading, TemplateKind
from ..indexer.tokenizer import strip_markdown

logger = logging.getLogger(__name__)


def normalize_heading(text: str) -> str:
    """Case-fold a heading and trim emoji, punctuation and emphasis from both ends.

    ``**Before**``, ``🔴 Before:`` and ``Before ✅`` all normalise to ``before``.
    """
    text = strip_markdown(unicodedata.normalize("NFKC", text))
    start, end = 0, len(text)
    while start < end and not text[start].isalnum():
        start += 1
    while end > start and not text[end - 1].isalnum():
        end -= 1
    return " ".join(text[start:end].lower().split())


def _names(headings: Sequence[Heading]) -> Dict[str, List[int]]:
    names: Dict[str, List[int]] = {}
    for heading in headings:
        names.setdefault(normalize_heading(heading.text), []).append(heading.level)
    return names


def _same_level(first: str, second: str) -> Callable[[Dict[str, List[int]]], bool]:
    def predicate(names: Dict[str, List[int]]) -> bool:
        return bool(set(names.get(first, ())) & set(names.get(second, ())))
    return predicate


def _any_of(*wanted: str) -> Callable[[Dict[str, List[int]]], bool]:
    def predicate(names: Dict[str, List[int]]) -> bool:
        return any(w in names for w in wanted)
    return predicate


@dataclass(frozen=True)
class TemplateRule:
    kind: TemplateKind
    description: str
    matches: Callable[[Dict[str, List[int]]], bool]


TEMPLATE_RULES: Tuple[TemplateRule, ...] = (
    TemplateRule(TemplateKind.BEFORE_AFTER, '"Before" and "After" at the same level',
                 _same_level("before", "after")),
    TemplateRule(TemplateKind.PROBLEM_SOLUTION, '"Problem Description" or "Root Cause"',
                 _any_of("problem description", "root cause")),
    TemplateRule(TemplateKind.PATTERN_GUIDE, '"Pattern Name" or "When to Use"',
                 _any_of("pattern name", "when to use")),
    TemplateRule(TemplateKind.PR_NOTES, '"Issues & Fixes" or "TL;DR"',
                 _any_of("issues & fixes", "tl;dr")),
)

REQUIRED_SECTIONS: Dict[TemplateKind, Tuple[str, ...]] = {
    TemplateKind.BEFORE_AFTER: ("Before", "After"),
    TemplateKind.PROBLEM_SOLUTION: ("Problem Description", "Root Cause", "Solution"),
    TemplateKind.PATTERN_GUIDE: ("Pattern Name", "When to Use", "Example"),
    TemplateKind.PR_NOTES: ("TL;DR", "Issues & Fixes", "Key Learnings"),
}


def required_sections_from_config(overrides: Optional[Dict[str, List[str]]]) -> Dict[TemplateKind, Tuple[str, ...]]:
    """Merge config overrides (keyed by kind value) into the static table."""
    table = dict(REQUIRED_SECTIONS)
    for kind, sections in (overrides or {}).items():
        table[TemplateKind(kind)] = tuple(sections)
    return table


def classify_template(document: Document,
                      required: Optional[Dict[TemplateKind, Tuple[str, ...]]] = None) -> Tuple[TemplateKind, List[Diagnostic]]:
    """Classify a document and check it against its kind's required sections.

    Returns:
        (template kind, TemplateMismatch diagnostics)
    """
    names = _names(document.headings)
    kind = TemplateKind.UNKNOWN
    for rule in TEMPLATE_RULES:
        if rule.matches(names):
            kind = rule.kind
            break

    if kind == TemplateKind.UNKNOWN:
        return kind, []

    table = required if required is not None else REQUIRED_SECTIONS
    diagnostics = []
    for section in table.get(kind, ()):
        if normalize_heading(section) not in names:
            diagnostics.append(Diagnostic.warning(
                DiagnosticKind.TEMPLATE_MISMATCH, document.path,
                f"{kind.value} note is missing required section '{section}'",
            ))
    return kind, diagnostics


def check_templates(documents: Iterable[Document],
                    required: Optional[Dict[TemplateKind, Tuple[str, ...]]] = None) -> Tuple[List[Document], List[Diagnostic]]:
    """Classify every document.

    Returns:
        (new documents with ``template_kind`` set, diagnostics)
    """
    classified = []
    diagnostics = []
    counts: Dict[TemplateKind, int] = {}
    for document in documents:
        kind, found = classify_template(document, required)
        classified.append(replace(document, template_kind=kind))
        diagnostics.extend(found)
        counts[kind] = counts.get(kind, 0) + 1
    logger.info("Template kinds: " + ", ".join(f"{k.value}={v}" for k, v in sorted(counts.items(), key=lambda kv: kv[0].value)))
    return classified, diagnostics
