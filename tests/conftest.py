"""Shared fixtures for kbforge tests."""

import logging
from pathlib import Path
from typing import Dict

import pytest

from kbforge.config.settings import KBConfig

from .helpers import write_files


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep user config and KBFORGE_* variables out of tests."""
    for name in ("KBFORGE_CONFIG", "KBFORGE_ROOT", "KBFORGE_INDEX_PATH", "KBFORGE_WORKERS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


@pytest.fixture
def make_corpus(tmp_path):
    """Write a corpus under a temp dir and return its root."""
    def _make(files: Dict[str, str]) -> Path:
        return write_files(tmp_path, files)
    return _make


@pytest.fixture
def guides():
    """Three linked notes: a -> b, c has a broken link."""
    return {
        "a.md": "# Guide A\n\nSee [Guide B](b.md).\n",
        "b.md": "# Guide B\n\nNothing here.\n",
        "c.md": "# Guide C\n\nBroken [link](missing.md).\n",
    }


@pytest.fixture
def config_for(tmp_path):
    """KBConfig factory rooted at the temp corpus."""
    def _config(**kwargs) -> KBConfig:
        kwargs.setdefault("root", str(tmp_path))
        kwargs.setdefault("workers", 2)
        return KBConfig(**kwargs)
    return _config


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """The CLI reconfigures the root logger; undo that after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
