"""Module manifest (go.mod syntax) parsing, editing and formatting.

The manifest is kept as a list of syntax statements so that comments and
statement order survive a parse/format cycle. Semantic records
(``requires``, ``excludes``, ``replaces``) point back at the syntax line
they came from, which is what lets ``add_require`` edit the text in place.
"""

import json
import re
from dataclasses import dataclass, field
from typing import NamedTuple

from packaging.version import InvalidVersion, Version

from .errors import ManifestEditError, ManifestParseError

_SEMVER = re.compile(
    r"^v(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(-[0-9A-Za-z-]+(\.[0-9A-Za-z-]+)*)?"
    r"(\+[0-9A-Za-z-]+(\.[0-9A-Za-z-]+)*)?$"
)
_GO_VERSION = re.compile(r"([1-9]\d*)\.(0|[1-9]\d*)(\.(0|[1-9]\d*))?((rc|beta)[1-9]\d*)?")
_QUOTE_CHARS = set("\"'`()[]{},")
_BLOCK_VERBS = ("require", "exclude", "replace")


class _Token(NamedTuple):
    text: str
    column: int


@dataclass
class Comments:
    before: list[str] = field(default_factory=list)
    suffix: str | None = None


@dataclass(eq=False)
class Line:
    """A single statement, or one entry of a block.

    Lines inside a block omit the block's verb from ``tokens``.
    """

    tokens: list[str]
    comments: Comments = field(default_factory=Comments)
    in_block: bool = False
    start: int = 0


@dataclass(eq=False)
class LineBlock:
    tokens: list[str]
    lines: list[Line] = field(default_factory=list)
    comments: Comments = field(default_factory=Comments)
    rparen: Comments = field(default_factory=Comments)
    start: int = 0


@dataclass(eq=False)
class CommentBlock:
    comments: list[str]


@dataclass(eq=False)
class Require:
    path: str
    version: str
    indirect: bool
    syntax: Line = field(repr=False)


@dataclass(eq=False)
class Exclude:
    path: str
    version: str
    syntax: Line = field(repr=False)


@dataclass(eq=False)
class Replace:
    old_path: str
    old_version: str
    new_path: str
    new_version: str
    syntax: Line = field(repr=False)


def _tokenize(text: str, lineno: int) -> tuple[list[_Token], str | None]:
    """Split one source line into tokens and an optional trailing comment."""
    tokens = []
    i = 0
    while i < len(text):
        char = text[i]
        if char in " \t\r":
            i += 1
        elif text.startswith("//", i):
            return tokens, text[i:].rstrip()
        elif char in "()":
            tokens.append(_Token(char, i + 1))
            i += 1
        elif text.startswith("=>", i):
            tokens.append(_Token("=>", i + 1))
            i += 2
        elif char == '"':
            end = i + 1
            while end < len(text) and text[end] != '"':
                end += 2 if text[end] == "\\" else 1
            if end >= len(text):
                raise ManifestParseError(lineno, i + 1, "unterminated quoted string")
            tokens.append(_Token(text[i : end + 1], i + 1))
            i = end + 1
        elif char == "`":
            end = text.find("`", i + 1)
            if end < 0:
                raise ManifestParseError(lineno, i + 1, "unterminated raw string")
            tokens.append(_Token(text[i : end + 1], i + 1))
            i = end + 1
        else:
            start = i
            while (
                i < len(text)
                and text[i] not in " \t\r()\"`"
                and not text.startswith("//", i)
                and not text.startswith("=>", i)
            ):
                i += 1
            tokens.append(_Token(text[start:i], start + 1))
    return tokens, None


def _parse_syntax(content: str) -> list:
    stmts: list = []
    pending: list[str] = []
    block: LineBlock | None = None

    for lineno, raw in enumerate(content.split("\n"), start=1):
        tokens, comment = _tokenize(raw, lineno)
        words = [token.text for token in tokens]

        if not tokens:
            if comment is not None:
                pending.append(comment)
            elif block is not None:
                # Blank lines inside a block stay attached to the next entry.
                pending.append("")
            elif pending:
                stmts.append(CommentBlock(pending))
                pending = []
            continue

        if block is not None:
            if words == [")"]:
                block.rparen = Comments(before=pending, suffix=comment)
                pending = []
                stmts.append(block)
                block = None
                continue
            for token in tokens:
                if token.text in ("(", ")"):
                    raise ManifestParseError(lineno, token.column, f"unexpected '{token.text}'")
            block.lines.append(
                Line(words, Comments(before=pending, suffix=comment), in_block=True, start=lineno)
            )
            pending = []
            continue

        if words[-1] == "(" and len(words) == 2 and words[0] not in ("(", ")"):
            block = LineBlock([words[0]], comments=Comments(before=pending, suffix=comment), start=lineno)
            pending = []
            continue
        for token in tokens:
            if token.text in ("(", ")"):
                raise ManifestParseError(lineno, token.column, f"unexpected '{token.text}'")
        stmts.append(Line(words, Comments(before=pending, suffix=comment), start=lineno))
        pending = []

    if block is not None:
        raise ManifestParseError(block.start, 1, "unterminated block: missing ')'")
    if pending:
        stmts.append(CommentBlock(pending))
    return stmts


def _unquote(token: str, line: Line) -> str:
    if token.startswith("`"):
        return token[1:-1]
    if token.startswith('"'):
        try:
            return json.loads(token)
        except json.JSONDecodeError:
            raise ManifestParseError(line.start, 1, f"invalid quoted string {token}")
    return token


def must_quote(path: str) -> bool:
    """Report whether a path has to be quoted to survive tokenizing."""
    if not path or "//" in path or "/*" in path or "=>" in path:
        return True
    return any(char.isspace() or char in _QUOTE_CHARS for char in path)


def auto_quote(path: str) -> str:
    return json.dumps(path, ensure_ascii=False) if must_quote(path) else path


def is_valid_version(version: str) -> bool:
    return bool(_SEMVER.fullmatch(version))


def _is_local_path(path: str) -> bool:
    return path.startswith(("./", "../", "/")) or path in (".", "..")


def _is_indirect(line: Line) -> bool:
    if not line.comments.suffix:
        return False
    text = line.comments.suffix[2:].strip()
    return text == "indirect" or text.startswith("indirect;")


class ModFile:
    """A parsed module manifest."""

    def __init__(self, syntax: list):
        self.syntax = syntax
        self.module: str | None = None
        self.go: str | None = None
        self.requires: list[Require] = []
        self.excludes: list[Exclude] = []
        self.replaces: list[Replace] = []

    def _error(self, line: Line, message: str) -> ManifestParseError:
        return ManifestParseError(line.start, 1, message)

    def _version(self, token: str, line: Line) -> str:
        version = _unquote(token, line)
        if not is_valid_version(version):
            raise self._error(line, f"invalid module version {version!r}")
        return version

    def _add(self, verb: str, args: list[str], line: Line) -> None:
        if verb == "module":
            if self.module is not None:
                raise self._error(line, "repeated module statement")
            if len(args) != 1:
                raise self._error(line, "usage: module module/path")
            self.module = _unquote(args[0], line)

        elif verb == "go":
            if self.go is not None:
                raise self._error(line, "repeated go statement")
            if len(args) != 1:
                raise self._error(line, "usage: go 1.23")
            try:
                Version(args[0])
            except InvalidVersion:
                raise self._error(line, f"invalid go version {args[0]!r}")
            if not _GO_VERSION.fullmatch(args[0]):
                raise self._error(line, f"invalid go version {args[0]!r}")
            self.go = args[0]

        elif verb in ("require", "exclude"):
            if len(args) != 2:
                raise self._error(line, f"usage: {verb} module/path v1.2.3")
            path = _unquote(args[0], line)
            version = self._version(args[1], line)
            if verb == "require":
                self.requires.append(Require(path, version, _is_indirect(line), line))
            else:
                self.excludes.append(Exclude(path, version, line))

        elif verb == "replace":
            arrow = 1 if len(args) >= 2 and args[1] == "=>" else 2
            if len(args) < arrow + 2 or len(args) > arrow + 3 or args[arrow] != "=>":
                raise self._error(line, "usage: replace module/path [v1.2.3] => other/module v1.4")
            old_path = _unquote(args[0], line)
            old_version = self._version(args[1], line) if arrow == 2 else ""
            new_path = _unquote(args[arrow + 1], line)
            new_version = self._version(args[arrow + 2], line) if len(args) == arrow + 3 else ""
            if not new_version and not _is_local_path(new_path):
                raise self._error(line, "replacement module without version must be a directory path")
            self.replaces.append(Replace(old_path, old_version, new_path, new_version, line))

        else:
            raise self._error(line, f"unknown directive: {verb}")

    def add_require(self, path: str, version: str) -> None:
        """Require ``path`` at ``version``.

        An existing requirement for the path is updated in place and any
        later duplicates are dropped. Otherwise the requirement joins the
        last ``require`` statement.
        """
        if not path:
            raise ManifestEditError("cannot require an empty module path")
        if not is_valid_version(version):
            raise ManifestEditError(f"invalid module version {version!r} for {path}")

        need = True
        for req in list(self.requires):
            if req.path != path:
                continue
            if need:
                req.version = version
                self._update_line(req.syntax, "require", auto_quote(path), version)
                need = False
            else:
                self._remove_line(req.syntax)
                self.requires.remove(req)

        if need:
            line = self._add_line("require", auto_quote(path), version)
            self.requires.append(Require(path, version, False, line))

    def sort_blocks(self) -> None:
        """Sort the lines of every block by their tokens."""
        self._remove_dups()
        for stmt in self.syntax:
            if isinstance(stmt, LineBlock):
                stmt.lines.sort(key=lambda line: line.tokens)

    def format(self) -> str:
        out: list[str] = []
        for index, stmt in enumerate(self.syntax):
            if index:
                out.append("")
            if isinstance(stmt, CommentBlock):
                out.extend(stmt.comments)
            elif isinstance(stmt, Line):
                out.extend(stmt.comments.before)
                out.append(_render(stmt.tokens, stmt.comments.suffix))
            else:
                out.extend(stmt.comments.before)
                out.append(_render(stmt.tokens + ["("], stmt.comments.suffix))
                for line in stmt.lines:
                    out.extend(_indent(comment) for comment in line.comments.before)
                    out.append("\t" + _render(line.tokens, line.comments.suffix))
                out.extend(_indent(comment) for comment in stmt.rparen.before)
                out.append(_render([")"], stmt.rparen.suffix))
        if not out:
            return ""
        return "\n".join(out) + "\n"

    def _update_line(self, line: Line, verb: str, *args: str) -> None:
        line.tokens = list(args) if line.in_block else [verb, *args]

    def _add_line(self, verb: str, *args: str) -> Line:
        hint = None
        for stmt in reversed(self.syntax):
            if isinstance(stmt, (Line, LineBlock)) and stmt.tokens and stmt.tokens[0] == verb:
                hint = stmt
                break

        if hint is None:
            new = Line([verb, *args])
            self.syntax.append(new)
            return new

        if isinstance(hint, LineBlock):
            new = Line(list(args), in_block=True)
            hint.lines.append(new)
            return new

        # Convert the single-line statement into a block.
        index = next(i for i, stmt in enumerate(self.syntax) if stmt is hint)
        block = LineBlock([verb], comments=Comments(before=hint.comments.before), start=hint.start)
        hint.comments.before = []
        hint.tokens = hint.tokens[1:]
        hint.in_block = True
        new = Line(list(args), in_block=True)
        block.lines = [hint, new]
        self.syntax[index] = block
        return new

    def _remove_line(self, line: Line) -> None:
        for index, stmt in enumerate(self.syntax):
            if stmt is line:
                del self.syntax[index]
                return
            if isinstance(stmt, LineBlock) and any(entry is line for entry in stmt.lines):
                stmt.lines = [entry for entry in stmt.lines if entry is not line]
                if not stmt.lines:
                    del self.syntax[index]
                return

    def _remove_dups(self) -> None:
        seen = set()
        excludes = []
        for exclude in self.excludes:
            key = (exclude.path, exclude.version)
            if key in seen:
                self._remove_line(exclude.syntax)
                continue
            seen.add(key)
            excludes.append(exclude)
        self.excludes = excludes

        # Later replacements take priority over earlier ones.
        seen = set()
        replaces = []
        for replace in reversed(self.replaces):
            key = (replace.old_path, replace.old_version)
            if key in seen:
                self._remove_line(replace.syntax)
                continue
            seen.add(key)
            replaces.append(replace)
        self.replaces = replaces[::-1]


def _indent(comment: str) -> str:
    return "\t" + comment if comment else ""


def _render(tokens: list[str], suffix: str | None) -> str:
    text = " ".join(tokens)
    return f"{text} {suffix}" if suffix else text


def parse(content: str) -> ModFile:
    """Parse manifest content into a ModFile.

    Args:
        content: The manifest file content

    Returns:
        Parsed ModFile

    Raises:
        ManifestParseError: If the content is not a well-formed manifest
    """
    mod = ModFile(_parse_syntax(content))
    for stmt in mod.syntax:
        if isinstance(stmt, Line):
            mod._add(stmt.tokens[0], stmt.tokens[1:], stmt)
        elif isinstance(stmt, LineBlock):
            if stmt.tokens[0] not in _BLOCK_VERBS:
                raise ManifestParseError(stmt.start, 1, f"{stmt.tokens[0]} does not accept a block")
            for line in stmt.lines:
                mod._add(stmt.tokens[0], line.tokens, line)
    return mod
