"""Cross-reference graph builder and link validator.

Resolves every internal link against the corpus, builds the directed
document graph and reports broken links, broken anchors and orphans.
Cycles are expected between related notes and are not reported.
"""

import logging
import posixpath
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Set, Tuple
from urllib.parse import unquote

from ..indexer.document import Diagnostic, DiagnosticKind, Document, Link, sort_diagnostics
from ..indexer.parser import heading_slugs

logger = logging.getLogger(__name__)

DEFAULT_ENTRY_POINTS = ("README.md",)


@dataclass
class CorpusGraph:
    """Directed graph of resolved internal links.

    Edges are kept with multiplicity: linking the same note twice is a
    signal worth seeing.
    """
    nodes: Tuple[str, ...] = ()
    edges: List[Tuple[str, str]] = field(default_factory=list)
    links: Dict[str, List[Link]] = field(default_factory=dict)

    def __post_init__(self):
        node_set = set(self.nodes)
        for source, target in self.edges:
            if source not in node_set or target not in node_set:
                raise ValueError(f"edge {source} -> {target} has an endpoint outside the graph")
        self._in_degree = Counter(t for s, t in self.edges if s != t)

    def in_degree(self, path: str) -> int:
        """Inbound references from other documents (self-links excluded)."""
        return self._in_degree.get(path, 0)

    def inbound(self, path: str) -> List[str]:
        return [s for s, t in self.edges if t == path and s != path]


@dataclass(frozen=True)
class Resolution:
    """Where a link points after resolution."""
    path: Optional[str]          # normalised corpus path (None if it escapes the root)
    fragment: str = ""
    is_document: bool = False
    exists: bool = False


def _directories(paths: Iterable[str]) -> Set[str]:
    dirs = {""}
    for path in paths:
        parent = posixpath.dirname(path)
        while parent and parent not in dirs:
            dirs.add(parent)
            parent = posixpath.dirname(parent)
    return dirs


def resolve_target(source: str, raw_target: str, documents: Set[str],
                   assets: Set[str] = frozenset(), directories: Optional[Set[str]] = None) -> Resolution:
    """Resolve a relative (or root-relative) link target.

    Args:
        source: Path of the referencing document
        raw_target: Link destination as written
        documents: All document paths
        assets: Non-markdown file paths
        directories: Known directories (derived if not given)

    Returns:
        Resolution; matching is case-sensitive
    """
    target = raw_target.strip()
    target, _, fragment = target.partition("#")
    target = target.split("?", 1)[0]
    target = unquote(target)

    if not target:
        return Resolution(source, unquote(fragment), is_document=True, exists=True)

    if target.startswith("/"):
        joined = target.lstrip("/")
    else:
        joined = posixpath.join(posixpath.dirname(source), target)
    normalized = posixpath.normpath(joined) if joined else "."
    if normalized == ".." or normalized.startswith("../") or normalized.startswith("/"):
        return Resolution(None, unquote(fragment))
    if normalized == ".":
        normalized = ""

    if directories is None:
        directories = _directories(documents | set(assets))

    if normalized in documents:
        return Resolution(normalized, unquote(fragment), is_document=True, exists=True)
    if normalized in assets:
        return Resolution(normalized, unquote(fragment), exists=True)
    if normalized in directories or target.endswith("/"):
        readme = posixpath.join(normalized, "README.md") if normalized else "README.md"
        if readme in documents:
            return Resolution(readme, unquote(fragment), is_document=True, exists=True)
        return Resolution(normalized, unquote(fragment), exists=normalized in directories)
    return Resolution(normalized, unquote(fragment))


def build_graph(documents: List[Document], asset_paths: Iterable[str] = (),
                entry_points: Iterable[str] = DEFAULT_ENTRY_POINTS) -> Tuple[CorpusGraph, List[Diagnostic]]:
    """Build the cross-reference graph and validate links.

    Must run after the full document set is known.

    Returns:
        (CorpusGraph, diagnostics)
    """
    by_path = {d.path: d for d in documents}
    paths = set(by_path)
    assets = set(asset_paths)
    directories = _directories(paths | assets)
    slugs: Dict[str, Set[str]] = {}
    edges: List[Tuple[str, str]] = []
    resolved_links: Dict[str, List[Link]] = {}
    diagnostics: List[Diagnostic] = []

    def anchors(path: str) -> Set[str]:
        if path not in slugs:
            slugs[path] = heading_slugs(by_path[path].headings)
        return slugs[path]

    for document in sorted(documents, key=lambda d: d.path):
        links: List[Link] = []
        for link in document.outbound_links:
            if not link.is_internal:
                links.append(link)
                continue

            resolution = resolve_target(document.path, link.raw_target, paths, assets, directories)
            if not resolution.exists:
                where = "escapes the corpus root" if resolution.path is None else f"'{resolution.path}' does not exist"
                diagnostics.append(Diagnostic.error(
                    DiagnosticKind.BROKEN_LINK, document.path,
                    f"broken link [{link.anchor_text}]({link.raw_target}): target {where}",
                    link.line,
                ))
                links.append(link)
                continue

            links.append(replace(link, resolved_path=resolution.path))
            is_fragment_only = link.raw_target.strip().startswith("#")
            if resolution.is_document and not is_fragment_only:
                edges.append((document.path, resolution.path))

            fragment = resolution.fragment
            if resolution.is_document and fragment and fragment.lower() not in anchors(resolution.path):
                diagnostics.append(Diagnostic.warning(
                    DiagnosticKind.BROKEN_ANCHOR, document.path,
                    f"anchor '#{fragment}' not found in {resolution.path}",
                    link.line,
                ))
        resolved_links[document.path] = links

    graph = CorpusGraph(nodes=tuple(sorted(paths)), edges=edges, links=resolved_links)

    exempt = set(entry_points)
    for path in graph.nodes:
        if graph.in_degree(path) == 0 and by_path[path].filename not in exempt:
            diagnostics.append(Diagnostic.warning(
                DiagnosticKind.ORPHAN_DOCUMENT, path,
                "no other document links to this note",
            ))

    logger.info(f"Graph built: {len(graph.nodes)} nodes, {len(edges)} edges")
    return graph, sort_diagnostics(diagnostics)
