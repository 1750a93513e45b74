"""Tests for the HTTP query service.

Tests cover:
- Health and root endpoints
- Search with filters
- Document and diagnostics lookups
- Reloading a rebuilt index
- Behaviour without a published index
"""

import pytest
from fastapi.testclient import TestClient

from kbforge.pipelines.build import run_build
from kbforge.server import api
from kbforge.server.api import IndexStore, create_app


class TestQueryAPI:
    """Test suite for the query API over a built index."""

    @pytest.fixture
    def config(self, make_corpus, guides, config_for):
        make_corpus(guides)
        config = config_for()
        run_build(config)
        return config

    @pytest.fixture
    def client(self, config):
        """Create test client for the FastAPI app."""
        return TestClient(create_app(config))

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["health"] == "/health"

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["ok"] is True
        assert data["generation"] == 1
        assert data["documents"] == 3

    def test_search(self, client):
        response = client.post("/search", json={"q": "Guide B"})
        assert response.status_code == 200
        data = response.json()
        assert data["results"][0]["path"] == "b.md"
        assert data["results"][0]["templateKind"] == "unknown"
        assert data["generation"] == 1

    def test_search_limit_and_category(self, client):
        results = client.post("/search", json={"q": "guide", "k": 2, "category": "root"}).json()["results"]
        assert len(results) == 2

    def test_search_validation(self, client):
        assert client.post("/search", json={"q": "guide", "k": 0}).status_code == 422
        assert client.post("/search", json={"q": "guide", "template_kind": "bogus"}).status_code == 422

    def test_document(self, client):
        data = client.get("/documents/b.md").json()
        assert data["title"] == "Guide B"
        assert data["category"] == "root"

    def test_document_not_found(self, client):
        assert client.get("/documents/missing.md").status_code == 404

    def test_diagnostics_filter(self, client):
        errors = client.get("/diagnostics", params={"severity": "error"}).json()["diagnostics"]
        assert [d["kind"] for d in errors] == ["BrokenLink"]
        orphans = client.get("/diagnostics", params={"kind": "OrphanDocument"}).json()["diagnostics"]
        assert sorted(d["documentPath"] for d in orphans) == ["a.md", "c.md"]

    def test_reload_picks_up_rebuild(self, client, config, tmp_path):
        (tmp_path / "d.md").write_text("# Guide D\n\n[a](a.md)\n", encoding="utf-8")
        run_build(config)
        data = client.post("/reload").json()
        assert data == {"generation": 2, "documents": 4}
        assert client.get("/health").json()["generation"] == 2

    def test_failed_reload_keeps_old_index(self, client, config):
        config.resolved_index_path.write_text("{broken", encoding="utf-8")
        assert client.post("/reload").status_code == 500
        health = client.get("/health").json()
        assert health["generation"] == 1
        assert health["documents"] == 3

    def test_search_reports_generation_of_answering_index(self, client, config, monkeypatch):
        """A reload racing a search must not relabel the results."""
        real_query = api.query

        def query_then_reload(index, *args, **kwargs):
            results = real_query(index, *args, **kwargs)
            client.app.state.store.reload()
            return results

        monkeypatch.setattr(api, "query", query_then_reload)
        data = client.post("/search", json={"q": "guide"}).json()
        assert data["generation"] == 1
        assert client.get("/health").json()["generation"] == 2


class TestWithoutIndex:
    @pytest.fixture
    def client(self, config_for):
        return TestClient(create_app(config_for()))

    def test_health_reports_not_ready(self, client):
        data = client.get("/health").json()
        assert data["ok"] is False
        assert data["generation"] == 0

    def test_search_unavailable(self, client):
        assert client.post("/search", json={"q": "x"}).status_code == 503


def test_index_store_swaps_whole_snapshot(make_corpus, guides, config_for):
    make_corpus(guides)
    config = config_for()
    run_build(config)
    store = IndexStore(config.resolved_index_path)
    first, _ = store.reload()
    second, generation = store.reload()
    assert generation == 2
    assert store.snapshot() == (second, 2)
    assert store.current is second
    assert first is not second
