"""Test helpers for building corpora and indexes."""

from pathlib import Path
from typing import Dict

from kbforge.indexer.parser import parse
from kbforge.indexer.search_index import build_index
from kbforge.pipelines.templates import check_templates


def write_files(root: Path, files: Dict[str, str]) -> Path:
    for rel, text in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root


def parse_text(path: str, text: str):
    """Parse a document from a string, returning only the Document."""
    document, _ = parse(path, text.encode("utf-8"))
    return document


def index_from(files: Dict[str, str]):
    """Build an in-memory index from {path: markdown}."""
    documents = [parse_text(path, text) for path, text in sorted(files.items())]
    documents, _ = check_templates(documents)
    return build_index(documents, workers=1)
