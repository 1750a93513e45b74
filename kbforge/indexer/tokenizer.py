"""Tokenization shared by the index builder and the query engine.

Both sides must normalise text identically, otherwise a term indexed from a
title would not be found by a query for the same term.
"""

from __future__ import annotations
import re
from enum import Enum
from typing import List, Optional, Tuple

MIN_TOKEN_LENGTH = 2

_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\([^)]*\)")
_LINK_RE = re.compile(r"\[([^\]]*)\]\((?:[^()]|\([^)]*\))*\)")
_AUTOLINK_RE = re.compile(r"<[a-zA-Z][a-zA-Z0-9+.-]*:[^>\s]*>")
_MARKERS_RE = re.compile(r"[#*`_~>\[\]()]")
_WORD_RE = re.compile(r"[^\W_]+")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
_LIST_MARKER_RE = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+")
_HEADING_RE = re.compile(r"^ {0,3}(#{1,6})(?:[ \t]+(.*?))?[ \t]*$")


class Zone(str, Enum):
    TITLE = "title"
    HEADING = "heading"
    BODY = "body"


def strip_markdown(text: str) -> str:
    """Remove markdown syntax, keeping the human-readable words."""
    text = _IMAGE_RE.sub(r"\1", text)
    text = _LINK_RE.sub(r"\1", text)
    text = _AUTOLINK_RE.sub(" ", text)
    return _MARKERS_RE.sub(" ", text)


def tokenize(text: str) -> List[str]:
    """Lower-case, strip markdown and split on non-alphanumeric boundaries.

    Tokens shorter than ``MIN_TOKEN_LENGTH`` characters are dropped.
    """
    words = _WORD_RE.findall(strip_markdown(text).lower())
    return [w for w in words if len(w) >= MIN_TOKEN_LENGTH]


def normalize_phrase(text: str) -> str:
    """Lower-cased words joined by single spaces, short words included."""
    return " ".join(_WORD_RE.findall(strip_markdown(text).lower()))


def match_heading(line: str) -> Optional[Tuple[int, str]]:
    """Return ``(level, text)`` if ``line`` is an ATX heading."""
    m = _HEADING_RE.match(line)
    if not m:
        return None
    text = (m.group(2) or "").strip()
    # Closing sequence: "## Title ##"
    text = re.sub(r"(?:^|[ \t]+)#+$", "", text).strip()
    return len(m.group(1)), text


class FenceTracker:
    """Tracks fenced code blocks during a line scan.

    A fence closes only on a run of the same character at least as long as the
    one that opened it, so a ```` block may contain ``` lines.
    """

    def __init__(self):
        self.char: Optional[str] = None
        self.length = 0
        self.opened_at: Optional[int] = None

    @property
    def inside(self) -> bool:
        return self.char is not None

    def feed(self, line: str, lineno: int = 0) -> bool:
        """Consume one line; return True if it is code or a fence marker."""
        stripped = line.lstrip(" ")
        if len(line) - len(stripped) > 3:
            return self.inside
        run = _fence_run(stripped)
        if self.char is None:
            if run and not (run[0] == "`" and "`" in stripped[len(run):]):
                self.char, self.length, self.opened_at = run[0], len(run), lineno
                return True
            return False
        if run and run[0] == self.char and len(run) >= self.length and not stripped[len(run):].strip():
            self.char, self.length, self.opened_at = None, 0, None
        return True


def _fence_run(stripped: str) -> str:
    for ch in ("`", "~"):
        if stripped.startswith(ch * 3):
            n = len(stripped) - len(stripped.lstrip(ch))
            return ch * n
    return ""


def tokenize_with_zones(content: str, title_line: Optional[int] = None) -> List[Tuple[str, Zone]]:
    """Tokenize ``content`` in document order, tagging each token's zone.

    Args:
        content: Markdown text (front matter already removed)
        title_line: 0-based index of the heading line used as the title

    Returns:
        List of (token, zone) pairs; the list index is the token position.
    """
    tokens: List[Tuple[str, Zone]] = []
    fence = FenceTracker()
    for i, line in enumerate(content.split("\n")):
        was_inside = fence.inside
        if fence.feed(line, i):
            if was_inside and fence.inside:
                tokens.extend((t, Zone.BODY) for t in tokenize(line))
            continue
        heading = match_heading(line)
        if heading:
            zone = Zone.TITLE if i == title_line else Zone.HEADING
            tokens.extend((t, zone) for t in tokenize(heading[1]))
        else:
            tokens.extend((t, Zone.BODY) for t in tokenize(line))
    return tokens


def body_sentences(content: str, limit: Optional[int] = None) -> List[str]:
    """Split body prose into display sentences for snippets.

    Headings and fenced code are skipped; list items and blank lines end a
    paragraph.
    """
    sentences: List[str] = []
    paragraph: List[str] = []
    fence = FenceTracker()

    def flush():
        if paragraph:
            text = " ".join(" ".join(strip_markdown(p).split()) for p in paragraph).strip()
            sentences.extend(s.strip() for s in _SENTENCE_SPLIT_RE.split(text) if s.strip())
            paragraph.clear()

    for line in content.split("\n"):
        if fence.feed(line) or match_heading(line) or not line.strip():
            flush()
            continue
        if _LIST_MARKER_RE.match(line):
            flush()
            line = _LIST_MARKER_RE.sub("", line)
        paragraph.append(line)
        if limit is not None and len(sentences) >= limit:
            break
    flush()
    return sentences[:limit] if limit is not None else sentences
