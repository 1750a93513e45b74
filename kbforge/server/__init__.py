"""HTTP service for kbforge."""

from .api import IndexStore, create_app

__all__ = ['IndexStore', 'create_app']
