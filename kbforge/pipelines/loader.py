"""Corpus loader for kbforge.

Walks the topic-folder tree, parses every markdown file in a bounded worker
pool and reports corpus-level findings (duplicate titles).
"""

import os
import hashlib
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..config.settings import KBConfig
from ..indexer.document import Diagnostic, DiagnosticKind, Document, sort_diagnostics
from ..indexer.parser import parse
from ..observability.logging import log_performance

logger = logging.getLogger(__name__)

CACHE_VERSION = 1


@dataclass
class CacheEntry:
    """Parse result of one file at a given checksum."""
    checksum: str
    document: Document
    diagnostics: List[Diagnostic] = field(default_factory=list)


@dataclass
class Corpus:
    """All documents under a root plus loader diagnostics."""
    documents: List[Document] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    asset_paths: frozenset = frozenset()
    cache: Dict[str, CacheEntry] = field(default_factory=dict)
    reused: int = 0

    def __iter__(self):
        # Unpacks as (documents, diagnostics).
        return iter((self.documents, self.diagnostics))

    @property
    def paths(self) -> List[str]:
        return [d.path for d in self.documents]


@dataclass
class _FileResult:
    path: str
    entry: Optional[CacheEntry]
    diagnostics: List[Diagnostic]
    reused: bool = False


def walk_corpus(root: Path, exclude_dirs=()) -> Tuple[List[str], List[str]]:
    """Depth-first, sorted walk.

    Returns:
        (markdown paths, other file paths), both corpus-relative with forward slashes
    """
    markdown: List[str] = []
    assets: List[str] = []
    excluded = set(exclude_dirs)
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in excluded)
        rel_dir = Path(dirpath).relative_to(root)
        for name in sorted(filenames):
            rel = (rel_dir / name).as_posix()
            if name.lower().endswith(".md"):
                markdown.append(rel)
            else:
                assets.append(rel)
    return markdown, assets


def _load_one(root: Path, rel: str, categories: List[str],
              cached: Optional[CacheEntry]) -> _FileResult:
    try:
        raw = (root / rel).read_bytes()
    except OSError as e:
        logger.error(f"Failed to read {rel}: {e}")
        return _FileResult(rel, None, [Diagnostic.error(
            DiagnosticKind.PARSE_WARNING, rel, f"unreadable file: {e.strerror or e}")])

    if cached is not None:
        if hashlib.sha256(raw).hexdigest() == cached.checksum:
            return _FileResult(rel, cached, list(cached.diagnostics), reused=True)

    try:
        document, diagnostics = parse(rel, raw, categories)
    except Exception as e:
        logger.error(f"Parser failed on {rel}: {e}", exc_info=True)
        return _FileResult(rel, None, [Diagnostic.error(
            DiagnosticKind.PARSE_WARNING, rel, f"unparseable file: {type(e).__name__}: {e}")])
    return _FileResult(rel, CacheEntry(document.checksum, document, diagnostics), diagnostics)


def find_duplicate_titles(documents: List[Document]) -> List[Diagnostic]:
    """Warn for each document whose title repeats an earlier one in its category."""
    first_seen: Dict[Tuple[str, str], str] = {}
    diagnostics = []
    for document in sorted(documents, key=lambda d: d.path):
        key = (document.category, " ".join(document.title.lower().split()))
        if key in first_seen:
            diagnostics.append(Diagnostic.warning(
                DiagnosticKind.DUPLICATE_TITLE, document.path,
                f"title '{document.title}' duplicates {first_seen[key]} in category '{document.category}'",
                document.title_line,
            ))
        else:
            first_seen[key] = document.path
    return diagnostics


@log_performance(threshold_ms=2000.0)
def load_corpus(root, config: Optional[KBConfig] = None,
                previous: Optional[Dict[str, CacheEntry]] = None) -> Corpus:
    """Load and parse every markdown file under ``root``.

    Args:
        root: Corpus root directory
        config: Settings (categories, exclusions, worker count)
        previous: Parse cache from an earlier build; unchanged files reuse it

    Returns:
        Corpus with documents sorted by path and diagnostics in report order
    """
    config = config or KBConfig(root=str(root))
    root = Path(root)
    if not root.is_dir():
        raise NotADirectoryError(f"Corpus root is not a directory: {root}")

    markdown, assets = walk_corpus(root, config.exclude_dirs)
    previous = previous or {}
    logger.info(f"Loading {len(markdown)} markdown files from {root}")

    with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
        results = list(executor.map(
            lambda rel: _load_one(root, rel, config.categories, previous.get(rel)),
            markdown,
        ))

    corpus = Corpus(asset_paths=frozenset(assets))
    diagnostics: List[Diagnostic] = []
    for result in results:
        diagnostics.extend(result.diagnostics)
        if result.entry is None:
            continue
        corpus.documents.append(result.entry.document)
        corpus.cache[result.path] = result.entry
        if result.reused:
            corpus.reused += 1

    diagnostics.extend(find_duplicate_titles(corpus.documents))
    corpus.diagnostics = sort_diagnostics(diagnostics)

    if corpus.reused:
        logger.info(f"Reused {corpus.reused} unchanged files from the parse cache")
    logger.info(f"Loaded {len(corpus.documents)} documents with {len(corpus.diagnostics)} diagnostics")
    return corpus


def cache_path_for(index_path: Path) -> Path:
    index_path = Path(index_path)
    return index_path.with_name(index_path.name + ".cache.json")


def read_parse_cache(path: Path, fingerprint: str) -> Dict[str, CacheEntry]:
    """Load a parse cache; a missing, stale or corrupt cache yields ``{}``."""
    path = Path(path)
    if not path.exists():
        return {}
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable parse cache {path}: {e}")
        return {}
    if not isinstance(data, dict) or data.get("version") != CACHE_VERSION or data.get("fingerprint") != fingerprint:
        logger.info("Parse cache was built with different settings; doing a full parse")
        return {}
    try:
        return {
            rel: CacheEntry(
                checksum=entry["checksum"],
                document=Document.from_dict(entry["document"]),
                diagnostics=[Diagnostic.from_dict(d) for d in entry["diagnostics"]],
            )
            for rel, entry in data.get("entries", {}).items()
        }
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Ignoring malformed parse cache {path}: {e}")
        return {}


def write_parse_cache(path: Path, cache: Dict[str, CacheEntry], fingerprint: str) -> None:
    """Write the parse cache next to the index (replace-into-place)."""
    path = Path(path)
    payload = {
        "version": CACHE_VERSION,
        "fingerprint": fingerprint,
        "entries": {
            rel: {
                "checksum": entry.checksum,
                "document": entry.document.to_dict(),
                "diagnostics": [d.to_dict() for d in entry.diagnostics],
            }
            for rel, entry in sorted(cache.items())
        },
    }
    tmp = path.with_name(path.name + ".tmp")
    with open(tmp, 'w', encoding='utf-8') as f:
        json.dump(payload, f, sort_keys=True, default=str)
    os.replace(tmp, path)
