"""Build orchestration for kbforge.

Loader -> graph -> templates -> index -> publish. Every run produces a new
immutable :class:`Snapshot`; nothing from a previous run is edited.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from ..config.settings import KBConfig
from ..errors import IndexIOError
from ..indexer.document import Diagnostic, DiagnosticKind, Document, sort_diagnostics
from ..indexer.search_index import SearchIndex, build_index, write_index
from ..observability.logging import get_structured_logger, log_performance
from .graph import CorpusGraph, build_graph
from .loader import Corpus, cache_path_for, load_corpus, read_parse_cache, write_parse_cache
from .templates import check_templates, required_sections_from_config

logger = logging.getLogger(__name__)
build_log = get_structured_logger(__name__, component="build")


@dataclass(frozen=True)
class Snapshot:
    """One complete build output."""
    documents: Tuple[Document, ...]
    graph: CorpusGraph
    diagnostics: Tuple[Diagnostic, ...]
    index: Optional[SearchIndex] = None
    reused: int = 0

    @property
    def error_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.is_error)

    @property
    def warning_count(self) -> int:
        return len(self.diagnostics) - self.error_count

    @property
    def has_errors(self) -> bool:
        return self.error_count > 0

    @property
    def exit_code(self) -> int:
        return 1 if self.has_errors else 0


def _check(config: KBConfig, previous=None) -> Tuple[Corpus, List[Document], CorpusGraph, List[Diagnostic]]:
    corpus = load_corpus(config.root_path, config, previous=previous)
    graph, graph_diagnostics = build_graph(corpus.documents, corpus.asset_paths, config.entry_points)
    documents, template_diagnostics = check_templates(
        corpus.documents, required_sections_from_config(config.required_sections))
    diagnostics = sort_diagnostics(list(corpus.diagnostics) + graph_diagnostics + template_diagnostics)
    return corpus, documents, graph, diagnostics


@log_performance(threshold_ms=5000.0)
def run_validate(config: KBConfig) -> Snapshot:
    """Load, link-check and template-check the corpus. Writes nothing."""
    corpus, documents, graph, diagnostics = _check(config)
    snapshot = Snapshot(tuple(documents), graph, tuple(diagnostics))
    build_log.info("Validation finished", documents=len(documents),
                   errors=snapshot.error_count, warnings=snapshot.warning_count)
    return snapshot


@log_performance(threshold_ms=5000.0)
def run_build(config: KBConfig, incremental: bool = False) -> Snapshot:
    """Full pipeline; publishes ``index.json`` on success.

    Args:
        config: Settings
        incremental: Reuse parse results of files whose checksum is unchanged

    Returns:
        The published Snapshot

    Raises:
        IndexIOError: If the index (or its parse cache) cannot be written
    """
    index_path = config.resolved_index_path
    cache_path = cache_path_for(index_path)
    fingerprint = config.fingerprint()
    previous = read_parse_cache(cache_path, fingerprint) if incremental else None

    corpus, documents, graph, diagnostics = _check(config, previous=previous)
    index = build_index(
        documents,
        diagnostics,
        weights=config.zone_weights,
        workers=config.max_workers,
    )
    write_index(index, index_path)
    try:
        write_parse_cache(cache_path, corpus.cache, fingerprint)
    except OSError as e:
        raise IndexIOError(f"Failed to write parse cache {cache_path}: {e}", path=cache_path) from e

    snapshot = Snapshot(tuple(documents), graph, tuple(diagnostics), index, corpus.reused)
    build_log.info("Build finished", documents=len(documents), reused=corpus.reused,
                   errors=snapshot.error_count, warnings=snapshot.warning_count,
                   index=str(index_path))
    return snapshot


def format_report(diagnostics: Iterable[Diagnostic]) -> str:
    """Human-readable diagnostics report."""
    diagnostics = list(diagnostics)
    errors = sum(1 for d in diagnostics if d.is_error)
    lines = ["✅ Validation PASSED" if errors == 0 else "❌ Validation FAILED"]

    counts = {}
    for d in diagnostics:
        counts[d.kind] = counts.get(d.kind, 0) + 1
    summary = ", ".join(f"{kind.value}: {counts[kind]}" for kind in DiagnosticKind if kind in counts)
    lines.append(f"Errors: {errors}, Warnings: {len(diagnostics) - errors}" + (f" ({summary})" if summary else ""))
    if diagnostics:
        lines.append("")
        lines.extend(str(d) for d in diagnostics)
    return "\n".join(lines)
