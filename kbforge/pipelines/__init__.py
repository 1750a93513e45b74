"""Pipelines package for kbforge.

Provides corpus loading, link validation, template checking, querying and
build orchestration.
"""

from .loader import Corpus, load_corpus
from .graph import CorpusGraph, build_graph, resolve_target
from .templates import classify_template, check_templates
from .query import QueryFilters, RankedResult, query
from .build import Snapshot, run_build, run_validate, format_report

__all__ = [
    # Loader
    'Corpus',
    'load_corpus',

    # Graph
    'CorpusGraph',
    'build_graph',
    'resolve_target',

    # Templates
    'classify_template',
    'check_templates',

    # Query
    'QueryFilters',
    'RankedResult',
    'query',

    # Build
    'Snapshot',
    'run_build',
    'run_validate',
    'format_report'
]
