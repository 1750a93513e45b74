"""Inverted search index for kbforge.

The index is a pure cache of the corpus: it is rebuilt from documents,
serialised deterministically and published by renaming a fully written
temp file over the previous one.
"""

from __future__ import annotations
import os
import json
import logging
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from ..config.settings import ZoneWeights
from ..errors import IndexIOError
from .document import Diagnostic, Document, sort_diagnostics
from .tokenizer import Zone, body_sentences, tokenize

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


@dataclass(frozen=True)
class Posting:
    path: str
    weight: int
    positions: Tuple[int, ...] = ()


@dataclass(frozen=True)
class DocumentMeta:
    """What a query result needs without re-parsing the file.

    ``sentences`` holds only the body sentences a snippet can show: the first
    one, plus the first sentence containing each token. ``sentence_index``
    maps a token to that sentence.
    """
    path: str
    title: str
    category: str
    tags: Tuple[str, ...] = ()
    template_kind: str = "unknown"
    sentences: Tuple[str, ...] = ()
    sentence_index: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "path": self.path,
            "title": self.title,
            "category": self.category,
            "tags": list(self.tags),
            "templateKind": self.template_kind,
            "sentences": list(self.sentences),
            "sentenceIndex": dict(self.sentence_index),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'DocumentMeta':
        return cls(
            path=data["path"],
            title=data["title"],
            category=data["category"],
            tags=tuple(data.get("tags", ())),
            template_kind=data.get("templateKind", "unknown"),
            sentences=tuple(data.get("sentences", ())),
            sentence_index=dict(data.get("sentenceIndex", {})),
        )


@dataclass
class SearchIndex:
    postings: Dict[str, List[Posting]] = field(default_factory=dict)
    document_meta: Dict[str, DocumentMeta] = field(default_factory=dict)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    checksums: Dict[str, str] = field(default_factory=dict)

    def lookup(self, token: str) -> List[Posting]:
        return self.postings.get(token, [])

    @property
    def error_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.is_error)

    def to_dict(self) -> Dict:
        return {
            "schemaVersion": SCHEMA_VERSION,
            "documents": [self.document_meta[p].to_dict() for p in sorted(self.document_meta)],
            "postings": {
                token: [[p.path, p.weight, list(p.positions)] for p in plist]
                for token, plist in self.postings.items()
            },
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "builtAtChecksumSet": dict(self.checksums),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'SearchIndex':
        if data.get("schemaVersion") != SCHEMA_VERSION:
            raise ValueError(f"unsupported index schema version: {data.get('schemaVersion')}")
        return cls(
            postings={
                token: [Posting(path, weight, tuple(positions)) for path, weight, positions in plist]
                for token, plist in data["postings"].items()
            },
            document_meta={m["path"]: DocumentMeta.from_dict(m) for m in data["documents"]},
            diagnostics=[Diagnostic.from_dict(d) for d in data.get("diagnostics", [])],
            checksums=dict(data.get("builtAtChecksumSet", {})),
        )


def document_postings(document: Document, weights: Optional[ZoneWeights] = None) -> Dict[str, Tuple[int, List[int]]]:
    """Per-document partial index: token -> (weight, positions).

    weight = title×titleTF + heading×headingTF + body×bodyTF
    """
    weights = weights or ZoneWeights()
    zone_weight = {Zone.TITLE: weights.title, Zone.HEADING: weights.heading, Zone.BODY: weights.body}
    partial: Dict[str, Tuple[int, List[int]]] = {}
    for position, (token, zone) in enumerate(document.zoned_tokens()):
        weight, positions = partial.get(token, (0, []))
        positions.append(position)
        partial[token] = (weight + zone_weight[zone], positions)
    return partial


def document_meta(document: Document) -> DocumentMeta:
    sentences = body_sentences(document.content)
    first: Dict[str, int] = {}
    for i, sentence in enumerate(sentences):
        for token in tokenize(sentence):
            first.setdefault(token, i)
    kept = sorted(set(first.values()) | ({0} if sentences else set()))
    position = {old: new for new, old in enumerate(kept)}
    return DocumentMeta(
        path=document.path,
        title=document.title,
        category=document.category,
        tags=tuple(document.tags),
        template_kind=document.template_kind.value,
        sentences=tuple(sentences[i] for i in kept),
        sentence_index={token: position[i] for token, i in first.items()},
    )


def merge_postings(partials: Iterable[Tuple[str, Dict[str, Tuple[int, List[int]]]]]) -> Dict[str, List[Posting]]:
    """Fold per-document partials into one postings map.

    Lists are ordered by descending weight, then path, so top-k is a prefix.
    """
    merged: Dict[str, List[Posting]] = {}
    for path, partial in partials:
        for token, (weight, positions) in partial.items():
            merged.setdefault(token, []).append(Posting(path, weight, tuple(positions)))
    for plist in merged.values():
        plist.sort(key=lambda p: (-p.weight, p.path))
    return dict(sorted(merged.items()))


def build_index(documents: List[Document],
                diagnostics: Iterable[Diagnostic] = (),
                weights: Optional[ZoneWeights] = None,
                workers: Optional[int] = None) -> SearchIndex:
    """Build the search index from a validated corpus.

    Per-document partials are computed concurrently; the merge is a single
    reducer over results in path order.
    """
    ordered = sorted(documents, key=lambda d: d.path)

    def partial_for(document: Document):
        return document.path, document_postings(document, weights), document_meta(document)

    with ThreadPoolExecutor(max_workers=workers or os.cpu_count() or 1) as executor:
        results = list(executor.map(partial_for, ordered))

    index = SearchIndex(
        postings=merge_postings((path, partial) for path, partial, _ in results),
        document_meta={path: meta for path, _, meta in results},
        diagnostics=sort_diagnostics(diagnostics),
        checksums={d.path: d.checksum for d in ordered},
    )
    logger.info(f"Indexed {len(ordered)} documents, {len(index.postings)} distinct tokens")
    return index


def serialize_index(index: SearchIndex) -> str:
    """Deterministic JSON text; equal indexes serialise to equal bytes."""
    return json.dumps(index.to_dict(), sort_keys=True, indent=2, ensure_ascii=False) + "\n"


def write_index(index: SearchIndex, path) -> Path:
    """Publish the index atomically.

    Raises:
        IndexIOError: If the file cannot be written or moved into place
    """
    path = Path(path)
    payload = serialize_index(index).encode("utf-8")
    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp",
                                         delete=False) as tmp:
            tmp_name = tmp.name
            tmp.write(payload)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise IndexIOError(f"Failed to write index {path}: {e}", path=path) from e
    logger.info(f"Wrote index to {path} ({len(payload)} bytes)")
    return path


def read_index(path) -> SearchIndex:
    """Load a persisted index.

    Raises:
        IndexIOError: If the file is missing, unreadable or not a valid index
    """
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except OSError as e:
        raise IndexIOError(f"Failed to read index {path}: {e}", path=path) from e
    except ValueError as e:
        raise IndexIOError(f"Index {path} is not valid JSON: {e}", path=path) from e
    try:
        return SearchIndex.from_dict(data)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise IndexIOError(f"Index {path} has an unexpected format: {e}", path=path) from e
