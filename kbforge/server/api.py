"""Read-only HTTP query service over a published index."""

import datetime
import logging
import threading
from typing import List, Optional, Tuple

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .. import __version__
from ..config.settings import KBConfig
from ..errors import IndexIOError
from ..indexer.document import TemplateKind
from ..indexer.search_index import SearchIndex, read_index
from ..pipelines.query import QueryFilters, query

logger = logging.getLogger(__name__)


class IndexStore:
    """Holds the current index snapshot.

    ``reload`` reads the new file completely before swapping the reference,
    so requests see either the old snapshot or the new one, never a mix.
    """

    def __init__(self, path):
        self.path = path
        self.generation = 0
        self._index: Optional[SearchIndex] = None
        self._lock = threading.Lock()

    def reload(self) -> Tuple[SearchIndex, int]:
        index = read_index(self.path)
        with self._lock:
            self._index = index
            self.generation += 1
            generation = self.generation
        logger.info(f"Loaded index generation {generation} from {self.path}")
        return index, generation

    def snapshot(self) -> Tuple[Optional[SearchIndex], int]:
        """The loaded index and its generation, read together."""
        with self._lock:
            return self._index, self.generation

    @property
    def current(self) -> SearchIndex:
        return self.require()[0]

    def require(self) -> Tuple[SearchIndex, int]:
        index, generation = self.snapshot()
        if index is None:
            raise HTTPException(status_code=503, detail="Index not loaded")
        return index, generation


class SearchRequest(BaseModel):
    q: str
    k: Optional[int] = Field(default=None, ge=1, le=200)
    category: Optional[str] = None
    tag: Optional[str] = None
    template_kind: Optional[TemplateKind] = None


class SearchHit(BaseModel):
    path: str
    title: str
    category: str
    score: float
    snippet: str
    tags: List[str] = []
    templateKind: str


def create_app(config: KBConfig, store: Optional[IndexStore] = None) -> FastAPI:
    """Build the FastAPI app; the index is loaded immediately if present."""
    store = store or IndexStore(config.resolved_index_path)
    app = FastAPI(title="kbforge query API", version=__version__)
    app.state.store = store

    try:
        store.reload()
    except IndexIOError as e:
        logger.warning(f"Starting without an index: {e}")

    @app.get("/")
    async def root():
        return {
            "message": "kbforge query API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    @app.get("/health")
    def health():
        index, generation = store.snapshot()
        return {
            "ok": index is not None,
            "generation": generation,
            "documents": len(index.document_meta) if index else 0,
            "time": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        }

    @app.post("/search")
    def search(req: SearchRequest):
        index, generation = store.require()
        filters = QueryFilters(
            category=req.category,
            tag=req.tag,
            template_kind=req.template_kind.value if req.template_kind else None,
        )
        results = query(index, req.q, filters,
                        limit=req.k or config.default_limit,
                        title_phrase_multiplier=config.title_phrase_multiplier)
        return {
            "results": [SearchHit(**{k: v for k, v in r.to_dict().items() if k != "matchedTerms"})
                        for r in results],
            "generation": generation,
        }

    @app.get("/documents/{path:path}")
    def get_document(path: str):
        meta = store.current.document_meta.get(path)
        if meta is None:
            raise HTTPException(status_code=404, detail="not found")
        return meta.to_dict()

    @app.get("/diagnostics")
    def diagnostics(severity: Optional[str] = None, kind: Optional[str] = None):
        found = store.current.diagnostics
        if severity:
            found = [d for d in found if d.severity.value == severity]
        if kind:
            found = [d for d in found if d.kind.value == kind]
        return {"diagnostics": [d.to_dict() for d in found]}

    @app.post("/reload")
    def reload():
        try:
            index, generation = store.reload()
        except IndexIOError as e:
            logger.error(f"Reload failed, keeping generation {store.snapshot()[1]}: {e}")
            raise HTTPException(status_code=500, detail="Reload failed")
        return {"generation": generation, "documents": len(index.document_meta)}

    return app
