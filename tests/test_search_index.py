"""Tests for the inverted index and its persisted form."""

import json

import pytest

from kbforge.config.settings import ZoneWeights
from kbforge.errors import IndexIOError
from kbforge.indexer.document import Diagnostic, DiagnosticKind
from kbforge.indexer.search_index import (
    SCHEMA_VERSION,
    SearchIndex,
    build_index,
    document_meta,
    document_postings,
    read_index,
    serialize_index,
    write_index,
)

from .helpers import index_from, parse_text


class TestDocumentPostings:
    def test_zone_weights(self):
        document = parse_text("react/a.md", "# Title Word\n\n## Section\n\nbody word\n")
        partial = document_postings(document)
        assert partial["word"] == (4, [1, 4])
        assert partial["title"] == (3, [0])
        assert partial["section"] == (2, [2])
        assert partial["body"] == (1, [3])

    def test_custom_weights(self):
        document = parse_text("react/a.md", "# Title\n\ntitle again\n")
        partial = document_postings(document, ZoneWeights(title=10, heading=2, body=1))
        assert partial["title"][0] == 11

    def test_fallback_title_is_indexed(self):
        document = parse_text("react/use-memo.md", "Body only.\n")
        partial = document_postings(document)
        assert partial["use"] == (3, [0])
        assert partial["memo"] == (3, [1])

    def test_front_matter_title_is_indexed(self):
        document = parse_text("react/x.md", "---\ntitle: Memo Guide\n---\nText.\n")
        assert document_postings(document)["memo"][0] == 3


class TestBuildIndex:
    FILES = {
        "react/a.md": "# Hooks\n\nhooks hooks\n",
        "react/b.md": "# Other\n\nhooks\n",
        "react/c.md": "# Hooks Too\n\nhooks\n",
    }

    def test_posting_order(self):
        index = index_from(self.FILES)
        assert [(p.path, p.weight) for p in index.lookup("hooks")] == [
            ("react/a.md", 5),
            ("react/c.md", 4),
            ("react/b.md", 1),
        ]

    def test_unknown_token(self):
        assert index_from(self.FILES).lookup("nothing") == []

    def test_every_document_has_meta(self):
        index = index_from(self.FILES)
        assert sorted(index.document_meta) == sorted(self.FILES)
        assert index.document_meta["react/b.md"].sentences == ("hooks",)

    def test_meta_keeps_first_sentence_per_token(self):
        meta = document_meta(parse_text("react/a.md", "# A\n\nAlpha one. Beta two. Alpha beta. Gamma three.\n"))
        assert meta.sentences == ("Alpha one.", "Beta two.", "Gamma three.")
        assert meta.sentence_index["alpha"] == 0
        assert meta.sentence_index["beta"] == 1
        assert meta.sentence_index["gamma"] == 2
        assert meta.sentence_index["three"] == 2

    def test_checksums_recorded(self):
        index = index_from(self.FILES)
        documents = [parse_text(p, t) for p, t in self.FILES.items()]
        assert index.checksums == {d.path: d.checksum for d in documents}

    def test_worker_count_does_not_change_output(self):
        documents = [parse_text(p, t) for p, t in sorted(self.FILES.items())]
        serial = serialize_index(build_index(documents, workers=1))
        parallel = serialize_index(build_index(list(reversed(documents)), workers=4))
        assert serial == parallel

    def test_diagnostics_sorted(self):
        diagnostics = [
            Diagnostic.warning(DiagnosticKind.ORPHAN_DOCUMENT, "z.md", "orphan"),
            Diagnostic.error(DiagnosticKind.BROKEN_LINK, "a.md", "broken", 3),
        ]
        index = build_index([], diagnostics)
        assert [d.document_path for d in index.diagnostics] == ["a.md", "z.md"]
        assert index.error_count == 1


class TestPersistence:
    def test_round_trip(self, tmp_path):
        index = index_from(TestBuildIndex.FILES)
        path = write_index(index, tmp_path / "index.json")
        loaded = read_index(path)
        assert loaded.postings == index.postings
        assert loaded.document_meta == index.document_meta
        assert loaded.checksums == index.checksums

    def test_schema_shape(self, tmp_path):
        path = write_index(index_from(TestBuildIndex.FILES), tmp_path / "index.json")
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["schemaVersion"] == SCHEMA_VERSION
        assert set(data) == {"schemaVersion", "documents", "postings", "diagnostics", "builtAtChecksumSet"}
        assert data["postings"]["hooks"][0] == ["react/a.md", 5, [0, 1, 2]]

    def test_no_temp_files_left(self, tmp_path):
        write_index(index_from(TestBuildIndex.FILES), tmp_path / "index.json")
        assert [p.name for p in tmp_path.iterdir()] == ["index.json"]

    def test_write_failure_raises(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        with pytest.raises(IndexIOError):
            write_index(SearchIndex(), blocker / "index.json")

    def test_missing_file(self, tmp_path):
        with pytest.raises(IndexIOError):
            read_index(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "index.json"
        path.write_text("{not json")
        with pytest.raises(IndexIOError):
            read_index(path)

    def test_wrong_schema_version(self, tmp_path):
        path = tmp_path / "index.json"
        path.write_text(json.dumps({"schemaVersion": 99, "documents": [], "postings": {}}))
        with pytest.raises(IndexIOError):
            read_index(path)
