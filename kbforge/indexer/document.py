"""Document model for kbforge.

Structured representation of one markdown note plus the diagnostics produced
while checking a corpus of them.
"""

from __future__ import annotations
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Any, Tuple
from enum import Enum

from .tokenizer import tokenize, tokenize_with_zones, Zone


class TemplateKind(str, Enum):
    """Structural shape of a note."""
    PR_NOTES = "pr-notes"
    BEFORE_AFTER = "before-after"
    PATTERN_GUIDE = "pattern-guide"
    PROBLEM_SOLUTION = "problem-solution"
    UNKNOWN = "unknown"


class DiagnosticKind(str, Enum):
    """Kinds of structural findings."""
    BROKEN_LINK = "BrokenLink"
    BROKEN_ANCHOR = "BrokenAnchor"
    ORPHAN_DOCUMENT = "OrphanDocument"
    TEMPLATE_MISMATCH = "TemplateMismatch"
    DUPLICATE_TITLE = "DuplicateTitle"
    PARSE_WARNING = "ParseWarning"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    """A structured finding about one document. Never raised."""

    kind: DiagnosticKind
    severity: Severity
    document_path: str
    message: str
    line_hint: Optional[int] = None

    @classmethod
    def warning(cls, kind: DiagnosticKind, path: str, message: str,
                line_hint: Optional[int] = None) -> 'Diagnostic':
        return cls(kind, Severity.WARNING, path, message, line_hint)

    @classmethod
    def error(cls, kind: DiagnosticKind, path: str, message: str,
              line_hint: Optional[int] = None) -> 'Diagnostic':
        return cls(kind, Severity.ERROR, path, message, line_hint)

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    def sort_key(self) -> Tuple[str, int, str, str]:
        return (self.document_path, self.line_hint or 0, self.kind.value, self.message)

    def __str__(self) -> str:
        location = self.document_path
        if self.line_hint is not None:
            location += f":{self.line_hint}"
        return f"[{self.severity.value.upper()}] {self.kind.value} {location}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "severity": self.severity.value,
            "documentPath": self.document_path,
            "message": self.message,
            "lineHint": self.line_hint,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Diagnostic':
        return cls(
            kind=DiagnosticKind(data["kind"]),
            severity=Severity(data["severity"]),
            document_path=data["documentPath"],
            message=data["message"],
            line_hint=data.get("lineHint"),
        )


def sort_diagnostics(diagnostics) -> List[Diagnostic]:
    """Return diagnostics in report order (path, line, kind, message)."""
    return sorted(diagnostics, key=lambda d: d.sort_key())


@dataclass(frozen=True)
class Heading:
    level: int
    text: str
    char_offset: int
    line: int


@dataclass(frozen=True)
class Link:
    """An outbound link as written in the source.

    ``resolved_path`` stays ``None`` until the graph builder resolves it.
    """
    anchor_text: str
    raw_target: str
    resolved_path: Optional[str] = None
    line: Optional[int] = None

    @property
    def is_internal(self) -> bool:
        return is_internal_target(self.raw_target)


def is_internal_target(target: str) -> bool:
    """True if ``target`` has no URL scheme and is not protocol-relative."""
    target = target.strip()
    if not target or target.startswith("//"):
        return False
    head = target.split("/", 1)[0].split("#", 1)[0].split("?", 1)[0]
    if ":" in head:
        scheme = head.split(":", 1)[0]
        if scheme and scheme[0].isalpha() and all(c.isalnum() or c in "+.-" for c in scheme):
            return False
    return True


@dataclass
class Document:
    """One parsed markdown file.

    ``content`` is the decoded text after front matter, ``content_offset`` the
    number of characters (and ``line_offset`` lines) that front matter took up,
    so heading offsets and line hints map back to the file. ``title_line`` is
    the 1-based file line of the heading used as title, if any.
    """
    path: str
    title: str
    category: str
    checksum: str
    content: str = ""
    tags: List[str] = field(default_factory=list)
    template_kind: TemplateKind = TemplateKind.UNKNOWN
    headings: List[Heading] = field(default_factory=list)
    outbound_links: List[Link] = field(default_factory=list)
    front_matter: Dict[str, Any] = field(default_factory=dict)
    content_offset: int = 0
    line_offset: int = 0
    title_line: Optional[int] = None

    @property
    def filename(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def directory(self) -> str:
        return self.path.rsplit("/", 1)[0] if "/" in self.path else ""

    def zoned_tokens(self) -> List[Tuple[str, Zone]]:
        """Tokens in document order tagged with their structural zone.

        A title that does not come from a heading (front matter or file name)
        is emitted first so it is still searchable.
        """
        if self.title_line is None:
            prefix = [(token, Zone.TITLE) for token in tokenize(self.title)]
            return prefix + tokenize_with_zones(self.content)
        return tokenize_with_zones(self.content, title_line=self.title_line - self.line_offset - 1)

    @property
    def body_tokens(self) -> List[str]:
        return [token for token, zone in self.zoned_tokens() if zone == Zone.BODY]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for the parse cache."""
        data = asdict(self)
        data["template_kind"] = self.template_kind.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Document':
        data = dict(data)
        data["template_kind"] = TemplateKind(data.get("template_kind", "unknown"))
        data["headings"] = [Heading(**h) for h in data.get("headings", [])]
        data["outbound_links"] = [Link(**l) for l in data.get("outbound_links", [])]
        return cls(**data)
