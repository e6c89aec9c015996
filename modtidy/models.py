"""Core data models for modtidy."""

import hashlib
from dataclasses import dataclass, field

from lsprotocol.types import Range, TextEdit


@dataclass(frozen=True)
class FileIdentity:
    """Stable key for one version of a file's content."""

    uri: str
    hash: str


@dataclass(frozen=True)
class FileHandle:
    """A file as observed by a snapshot."""

    uri: str
    version: int
    content: str

    @property
    def identity(self) -> FileIdentity:
        digest = hashlib.sha256(self.content.encode("utf-8")).hexdigest()
        return FileIdentity(uri=self.uri, hash=digest)


@dataclass(frozen=True)
class Requirement:
    """A module path at a required version."""

    path: str
    version: str


@dataclass
class SuggestedFix:
    """A named bundle of edits, keyed by target file URI."""

    title: str
    edits: dict[str, list[TextEdit]] = field(default_factory=dict)


@dataclass
class TidyError:
    """One discrepancy reported by the tidy analysis."""

    message: str
    range: Range
    category: str
    suggested_fixes: list[SuggestedFix] = field(default_factory=list)


@dataclass
class TidyResult:
    """Output of the tidy analysis for one manifest."""

    missing: dict[str, Requirement] = field(default_factory=dict)
    errors: list[TidyError] = field(default_factory=list)
