"""Query engine over a persisted :class:`SearchIndex`."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from ..indexer.search_index import DocumentMeta, SearchIndex
from ..indexer.tokenizer import normalize_phrase, tokenize

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
DEFAULT_TITLE_PHRASE_MULTIPLIER = 3.0


@dataclass(frozen=True)
class QueryFilters:
    """Post-scoring predicates; ``None`` means no restriction."""
    category: Optional[str] = None
    tag: Optional[str] = None
    template_kind: Optional[str] = None

    def accepts(self, meta: DocumentMeta) -> bool:
        if self.category is not None and meta.category != self.category.lower():
            return False
        if self.tag is not None and self.tag.lower() not in meta.tags:
            return False
        if self.template_kind is not None and meta.template_kind != self.template_kind:
            return False
        return True


@dataclass
class RankedResult:
    path: str
    title: str
    category: str
    score: float
    snippet: str = ""
    tags: List[str] = field(default_factory=list)
    template_kind: str = "unknown"
    matched_terms: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "path": self.path,
            "title": self.title,
            "category": self.category,
            "score": self.score,
            "snippet": self.snippet,
            "tags": self.tags,
            "templateKind": self.template_kind,
            "matchedTerms": self.matched_terms,
        }


def make_snippet(meta: DocumentMeta, terms: Set[str]) -> str:
    """First body sentence containing a matched term, else the first sentence."""
    found = [meta.sentence_index[t] for t in terms if t in meta.sentence_index]
    if found:
        return meta.sentences[min(found)]
    return meta.sentences[0] if meta.sentences else ""


def _title_has_phrase(title: str, phrase: str) -> bool:
    return bool(phrase) and f" {phrase} " in f" {normalize_phrase(title)} "


def query(index: SearchIndex, text: str, filters: Optional[QueryFilters] = None,
          limit: int = DEFAULT_LIMIT,
          title_phrase_multiplier: float = DEFAULT_TITLE_PHRASE_MULTIPLIER) -> List[RankedResult]:
    """Rank documents for ``text``.

    Score is the sum of the posting weights of every distinct query token the
    document contains. A title that contains the whole query phrase multiplies
    the score. Ties go to the lexicographically smaller path.

    Args:
        index: Loaded search index
        text: Free-text query
        filters: Optional category/tag/template filters
        limit: Maximum number of results
        title_phrase_multiplier: Boost for an exact phrase match in the title

    Returns:
        Ranked results, best first
    """
    terms = list(dict.fromkeys(tokenize(text)))
    if not terms or limit <= 0:
        return []

    scores: Dict[str, float] = {}
    matched: Dict[str, List[str]] = {}
    for term in terms:
        for posting in index.lookup(term):
            scores[posting.path] = scores.get(posting.path, 0) + posting.weight
            matched.setdefault(posting.path, []).append(term)

    phrase = normalize_phrase(text)
    filters = filters or QueryFilters()
    results = []
    for path, score in scores.items():
        meta = index.document_meta.get(path)
        if meta is None or not filters.accepts(meta):
            continue
        if _title_has_phrase(meta.title, phrase):
            score *= title_phrase_multiplier
        results.append(RankedResult(
            path=path,
            title=meta.title,
            category=meta.category,
            score=float(score),
            tags=list(meta.tags),
            template_kind=meta.template_kind,
            matched_terms=matched[path],
        ))

    results.sort(key=lambda r: (-r.score, r.path))
    results = results[:limit]
    for result in results:
        result.snippet = make_snippet(index.document_meta[result.path], set(result.matched_terms))
    logger.debug(f"Query {text!r}: {len(scores)} candidates, {len(results)} returned")
    return results
