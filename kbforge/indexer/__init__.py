"""Indexer package for kbforge.

Document model, markdown parser, tokenizer and the inverted search index.
"""

from .document import (
    Document,
    Heading,
    Link,
    Diagnostic,
    DiagnosticKind,
    Severity,
    TemplateKind
)
from .parser import parse, slugify, heading_slug
from .tokenizer import tokenize
from .search_index import (
    SearchIndex,
    Posting,
    DocumentMeta,
    build_index,
    write_index,
    read_index,
    serialize_index
)

__all__ = [
    # Model
    'Document',
    'Heading',
    'Link',
    'Diagnostic',
    'DiagnosticKind',
    'Severity',
    'TemplateKind',

    # Parser
    'parse',
    'slugify',
    'heading_slug',
    'tokenize',

    # Index
    'SearchIndex',
    'Posting',
    'DocumentMeta',
    'build_index',
    'write_index',
    'read_index',
    'serialize_index'
]
