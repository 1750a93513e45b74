"""kbforge: integrity checks and a search index for markdown knowledge bases."""

__version__ = "0.1.0"
