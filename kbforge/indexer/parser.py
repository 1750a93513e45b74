"""Markdown parser for kbforge.

Turns one file's bytes into a :class:`Document`. Malformed input never raises:
the parser falls back to best-effort values and reports ``ParseWarning``
diagnostics instead.
"""

from __future__ import annotations
import hashlib
import re
import unicodedata
from typing import Any, Dict, Iterable, List, Optional, Tuple

import yaml

from ..config.settings import DEFAULT_CATEGORIES, ROOT_CATEGORY, OTHER_CATEGORY
from .document import Diagnostic, DiagnosticKind, Document, Heading, Link
from .tokenizer import FenceTracker, match_heading

# Title must appear within this many content lines.
TITLE_SCAN_LINES = 20

_NO_SPACE_HEADING_RE = re.compile(r"^ {0,3}#{1,6}[^#\s]")
_TAGS_RE = re.compile(r"^\s*(?:#{1,6}\s+)?[*_]{0,2}tags[*_]{0,2}\s*:\s*[*_]{0,2}\s*(.*)$", re.IGNORECASE)


def slugify(s: str) -> str:
    s = s.lower()
    s = re.sub(r"[^a-z0-9]+", "-", s).strip("-")
    return s[:80] or "untitled"


def heading_slug(text: str) -> str:
    """GitHub-style anchor for a heading."""
    text = unicodedata.normalize("NFC", text).strip().lower()
    kept = "".join(ch for ch in text if ch.isalnum() or ch in " -_")
    return kept.replace(" ", "-")


def heading_slugs(headings: Iterable[Heading]) -> set:
    """All anchors a document exposes, duplicates suffixed ``-1``, ``-2``..."""
    seen: Dict[str, int] = {}
    slugs = set()
    for heading in headings:
        base = heading_slug(heading.text)
        count = seen.get(base, 0)
        slugs.add(base if count == 0 else f"{base}-{count}")
        seen[base] = count + 1
    return slugs


def derive_category(path: str, categories: Optional[Iterable[str]] = None) -> Tuple[str, Optional[str]]:
    """Category from the top-level folder.

    Returns:
        (category, warning message or None)
    """
    known = set(categories) if categories is not None else set(DEFAULT_CATEGORIES)
    parts = path.split("/")
    if len(parts) == 1:
        return ROOT_CATEGORY, None
    folder = parts[0].lower()
    if folder in known:
        return folder, None
    return OTHER_CATEGORY, f"unknown category folder '{parts[0]}'; using '{OTHER_CATEGORY}'"


def _decode(raw: bytes) -> Tuple[str, Optional[str]]:
    if raw.startswith(b"\xef\xbb\xbf"):
        raw = raw[3:]
    try:
        text = raw.decode("utf-8")
        warning = None
    except UnicodeDecodeError as e:
        text = raw.decode("utf-8", errors="replace")
        warning = f"invalid UTF-8 at byte {e.start}; undecodable bytes replaced"
    return text.replace("\r\n", "\n").replace("\r", "\n"), warning


def _split_front_matter(text: str) -> Tuple[Optional[str], str, int, int, Optional[str]]:
    """Returns (front matter text, content, char offset, line offset, warning)."""
    lines = text.split("\n")
    if not lines or lines[0].rstrip() != "---":
        return None, text, 0, 0, None
    for i in range(1, len(lines)):
        if lines[i].rstrip() in ("---", "..."):
            head = "\n".join(lines[1:i])
            consumed = len("\n".join(lines[:i + 1])) + 1
            return head, "\n".join(lines[i + 1:]), consumed, i + 1, None
    return None, text, 0, 0, "unterminated front matter; treating it as body text"


def _parse_front_matter(head: str) -> Tuple[Dict[str, Any], Optional[str]]:
    try:
        data = yaml.safe_load(head)
    except yaml.YAMLError as e:
        fm = {}
        for line in head.splitlines():
            if ':' in line:
                k, v = line.split(':', 1)
                fm[k.strip()] = v.strip().strip("'\"")
        return fm, f"invalid YAML front matter ({e.__class__.__name__}); parsed line by line"
    if data is None:
        return {}, None
    if not isinstance(data, dict):
        return {}, "front matter is not a mapping; ignored"
    return {str(k): v for k, v in data.items()}, None


def _split_tags(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        items = [str(v) for v in value]
    else:
        items = str(value).split(",")
    tags = []
    for item in items:
        tag = item.strip().strip("`*_").lstrip("#").strip().lower()
        if tag:
            tags.append(tag)
    return tags


def _parse_destination(dest: str) -> str:
    dest = dest.strip()
    if dest.startswith("<"):
        end = dest.find(">")
        return dest[1:end] if end != -1 else dest[1:]
    return dest.split()[0] if dest else ""


def _skip_code_span(line: str, i: int) -> int:
    """Index after the code span starting at ``i`` (or after the backtick run)."""
    n = len(line)
    j = i
    while j < n and line[j] == "`":
        j += 1
    run = j - i
    k = j
    while k < n:
        if line[k] == "`":
            m = k
            while m < n and line[m] == "`":
                m += 1
            if m - k == run:
                return m
            k = m
        else:
            k += 1
    return j


def scan_links(line: str) -> Tuple[List[Tuple[str, str]], List[Tuple[str, str]], List[str]]:
    """Extract links from one line without regular expressions.

    Brackets and parentheses are balance-counted so ``[a [b]](x)`` and
    ``[t](url "title (extra)")`` are read whole. Images and code spans are
    skipped.

    Returns:
        (inline links as (text, target), reference uses as (text, label), warnings)
    """
    links: List[Tuple[str, str]] = []
    refs: List[Tuple[str, str]] = []
    warnings: List[str] = []
    n = len(line)
    i = 0
    while i < n:
        c = line[i]
        if c == "\\":
            i += 2
            continue
        if c == "`":
            i = _skip_code_span(line, i)
            continue
        if c != "[":
            i += 1
            continue

        is_image = i > 0 and line[i - 1] == "!"
        depth = 1
        j = i + 1
        while j < n and depth:
            if line[j] == "\\":
                j += 2
                continue
            if line[j] == "[":
                depth += 1
            elif line[j] == "]":
                depth -= 1
            j += 1
        if depth:
            i += 1
            continue
        text = line[i + 1:j - 1]

        if j < n and line[j] == "(":
            pdepth = 1
            k = j + 1
            quote = None
            while k < n and pdepth:
                ch = line[k]
                if ch == "\\":
                    k += 2
                    continue
                if quote:
                    if ch == quote:
                        quote = None
                elif ch in "\"'" and line[k - 1] in " \t":
                    quote = ch
                elif ch == "(":
                    pdepth += 1
                elif ch == ")":
                    pdepth -= 1
                k += 1
            if pdepth:
                warnings.append(f"unterminated link destination after '[{text}]'")
                i = j + 1
                continue
            if not is_image:
                links.append((text, _parse_destination(line[j + 1:k - 1])))
            i = k
            continue

        if j < n and line[j] == "[":
            end = line.find("]", j + 1)
            if end != -1:
                label = line[j + 1:end] or text
                if not is_image:
                    refs.append((text, label))
                i = end + 1
                continue

        # Nested brackets may hold links of their own ([![badge](img)](url)).
        i = i + 1 if "[" in text else j
    return links, refs, warnings


def _reference_definition(line: str) -> Optional[Tuple[str, str]]:
    stripped = line.strip()
    if len(line) - len(line.lstrip(" ")) > 3 or not stripped.startswith("["):
        return None
    end = stripped.find("]:")
    if end <= 1:
        return None
    target = stripped[end + 2:].strip()
    if not target:
        return None
    return stripped[1:end].lower(), _parse_destination(target)


def parse(path: str, raw: bytes, categories: Optional[Iterable[str]] = None) -> Tuple[Document, List[Diagnostic]]:
    """Parse one markdown file.

    Args:
        path: Corpus-relative, forward-slash path
        raw: File bytes
        categories: Known category folder names

    Returns:
        (Document, diagnostics)
    """
    diagnostics: List[Diagnostic] = []

    def warn(message: str, line: Optional[int] = None):
        diagnostics.append(Diagnostic.warning(DiagnosticKind.PARSE_WARNING, path, message, line))

    checksum = hashlib.sha256(raw).hexdigest()
    text, decode_warning = _decode(raw)
    if decode_warning:
        warn(decode_warning)

    head, content, content_offset, line_offset, fm_warning = _split_front_matter(text)
    if fm_warning:
        warn(fm_warning, 1)
    front_matter: Dict[str, Any] = {}
    if head is not None:
        front_matter, fm_warning = _parse_front_matter(head)
        if fm_warning:
            warn(fm_warning, 1)

    category, category_warning = derive_category(path, categories)
    if category_warning:
        warn(category_warning)

    headings: List[Heading] = []
    inline: List[Tuple[str, str, int]] = []
    ref_uses: List[Tuple[str, str, int]] = []
    definitions: Dict[str, str] = {}
    tags = _split_tags(front_matter.get("tags", front_matter.get("tag")))
    title: Optional[str] = None
    title_line: Optional[int] = None

    fence = FenceTracker()
    offset = 0
    for i, line in enumerate(content.split("\n")):
        lineno = line_offset + i + 1
        line_start = offset
        offset += len(line) + 1

        if fence.feed(line, lineno):
            continue

        heading = match_heading(line)
        if heading:
            level, heading_text = heading
            if not heading_text:
                warn("empty heading", lineno)
            else:
                headings.append(Heading(level, heading_text, content_offset + line_start, lineno))
                if title is None and level == 1 and i < TITLE_SCAN_LINES:
                    title, title_line = heading_text, lineno
        elif _NO_SPACE_HEADING_RE.match(line):
            warn("heading marker without a following space; not treated as a heading", lineno)

        tag_match = _TAGS_RE.match(line)
        if tag_match:
            tags.extend(_split_tags(tag_match.group(1)))

        definition = _reference_definition(line)
        if definition:
            definitions.setdefault(*definition)
            continue

        found, refs, link_warnings = scan_links(line)
        inline.extend((t, target, lineno) for t, target in found)
        ref_uses.extend((t, label, lineno) for t, label in refs)
        for message in link_warnings:
            warn(message, lineno)

    if fence.inside:
        warn("unclosed code fence", fence.opened_at)

    links = [Link(anchor_text=t, raw_target=target, line=lineno) for t, target, lineno in inline]
    for t, label, lineno in ref_uses:
        target = definitions.get(label.lower())
        if target is not None:
            links.append(Link(anchor_text=t, raw_target=target, line=lineno))
    links.sort(key=lambda link: link.line or 0)

    if title is None:
        fm_title = front_matter.get("title")
        if isinstance(fm_title, str) and fm_title.strip():
            title = fm_title.strip()
        else:
            stem = path.rsplit("/", 1)[-1]
            if stem.lower().endswith(".md"):
                stem = stem[:-3]
            title = slugify(stem)
            warn(f"no level-1 heading in the first {TITLE_SCAN_LINES} lines; title derived from file name")

    document = Document(
        path=path,
        title=title,
        category=category,
        checksum=checksum,
        content=content,
        tags=sorted(set(tags)),
        headings=headings,
        outbound_links=links,
        front_matter=front_matter,
        content_offset=content_offset,
        line_offset=line_offset,
        title_line=title_line,
    )
    return document, diagnostics
