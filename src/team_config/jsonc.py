"""Comment-preserving JSON-with-comments (JSONC) documents.

Config files may contain ``//`` and ``/* */`` comments and trailing commas.
``loads`` parses them into ``CommentedMap``/``CommentedList`` containers, which
behave exactly like ``dict``/``list`` but remember the comments found around
their members. ``dumps`` writes the comments back next to the same members, so
editing one property does not clobber comments elsewhere in the file.

Comment slots on a container (``container.comments``):
    ("before", key)  comments on their own lines above a member
    ("after", key)   comments on the same line, after a member's value
    ("end",)         comments after the last member, before the closing bracket
    ("leading",)     comments before the document root (root container only)
    ("trailing",)    comments after the document root (root container only)

Examples:
    >>> doc = loads('{\\n  // host name\\n  "host": "example.com", // prod\\n}')
    >>> doc["host"]
    'example.com'
    >>> doc.comments[("before", "host")]
    ['// host name']
"""

import json
import re
from json.decoder import scanstring
from typing import Any
from typing import NamedTuple

from .constants import INDENT

NUMBER_RE = re.compile(r"-?(?:0|[1-9]\d*)(\.\d+)?([eE][-+]?\d+)?")

WHITESPACE = " \t\r\n"

LITERALS = {"true": True, "false": False, "null": None}

JsoncDecodeError = json.JSONDecodeError


class CommentedMap(dict):
    """A dict that carries the comments attached to its members."""

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.comments: dict[tuple, list[str]] = {}


class CommentedList(list):
    """A list that carries the comments attached to its items."""

    def __init__(self, *args: Any):
        super().__init__(*args)
        self.comments: dict[tuple, list[str]] = {}


class _Comment(NamedTuple):
    text: str
    own_line: bool


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def fail(self, message: str, pos: int | None = None) -> None:
        raise JsoncDecodeError(message, self.text, self.pos if pos is None else pos)

    def peek(self) -> str:
        if self.pos >= len(self.text):
            self.fail("Unexpected end of input")
        return self.text[self.pos]

    def skip_trivia(self) -> list[_Comment]:
        """Skip whitespace and comments, returning the comments seen."""
        comments: list[_Comment] = []
        newline = False
        text = self.text
        while self.pos < len(text):
            ch = text[self.pos]
            if ch in WHITESPACE:
                newline = newline or ch == "\n"
                self.pos += 1
            elif text.startswith("//", self.pos):
                end = text.find("\n", self.pos)
                end = len(text) if end == -1 else end
                comments.append(_Comment(text[self.pos : end].rstrip(), newline))
                self.pos = end
                newline = False
            elif text.startswith("/*", self.pos):
                end = text.find("*/", self.pos + 2)
                if end == -1:
                    self.fail("Unterminated comment")
                comments.append(_Comment(text[self.pos : end + 2], newline))
                self.pos = end + 2
                newline = False
            else:
                break
        return comments

    def parse_value(self) -> Any:
        ch = self.peek()
        if ch == "{":
            return self.parse_container(CommentedMap(), "}")
        if ch == "[":
            return self.parse_container(CommentedList(), "]")
        if ch == '"':
            value, self.pos = scanstring(self.text, self.pos + 1, True)
            return value
        for literal, value in LITERALS.items():
            if self.text.startswith(literal, self.pos):
                self.pos += len(literal)
                return value
        match = NUMBER_RE.match(self.text, self.pos)
        if match is None:
            self.fail("Expecting value")
        self.pos = match.end()
        integer = match.group(1) is None and match.group(2) is None
        return int(match.group(0)) if integer else float(match.group(0))

    def parse_container(self, container: CommentedMap | CommentedList, closer: str) -> Any:
        is_map = isinstance(container, CommentedMap)
        self.pos += 1
        pending = self.skip_trivia()
        last: Any = None
        while True:
            if self.peek() == closer:
                self.pos += 1
                _attach(container, last, pending, ("end",))
                return container

            if is_map:
                if self.peek() != '"':
                    self.fail("Expecting property name enclosed in double quotes")
                key, end = scanstring(self.text, self.pos + 1, True)
                _attach(container, last, pending, ("before", key))
                self.pos = end
                inner = self.skip_trivia()
                if self.peek() != ":":
                    self.fail("Expecting ':' delimiter")
                self.pos += 1
                inner += self.skip_trivia()
                if inner:
                    container.comments.setdefault(("before", key), []).extend(c.text for c in inner)
                container[key] = self.parse_value()
            else:
                key = len(container)
                _attach(container, last, pending, ("before", key))
                container.append(self.parse_value())
            last = key

            pending = self.skip_trivia()
            if self.peek() == ",":
                self.pos += 1
                pending += self.skip_trivia()
            elif self.peek() != closer:
                self.fail("Expecting ',' delimiter")


def _attach(container: CommentedMap | CommentedList, last: Any, comments: list[_Comment], slot: tuple) -> None:
    """Split comments between the previous member's line and the given slot."""
    index = 0
    if last is not None:
        while index < len(comments) and not comments[index].own_line:
            index += 1
        if index:
            container.comments.setdefault(("after", last), []).extend(c.text for c in comments[:index])
    if comments[index:]:
        container.comments.setdefault(slot, []).extend(c.text for c in comments[index:])


def loads(text: str) -> Any:
    """Parse JSONC text, keeping comments on the returned containers.

    Raises:
        JsoncDecodeError: If the text is not valid JSONC (has ``lineno``/``colno``)
    """
    parser = _Parser(text)
    leading = parser.skip_trivia()
    if parser.pos >= len(text):
        parser.fail("Expecting value")
    value = parser.parse_value()
    trailing = parser.skip_trivia()
    if parser.pos < len(text):
        parser.fail("Extra data")

    if isinstance(value, (CommentedMap, CommentedList)):
        if leading:
            value.comments[("leading",)] = [c.text for c in leading]
        if trailing:
            value.comments[("trailing",)] = [c.text for c in trailing]
    return value


def dumps(value: Any, indent: int = INDENT) -> str:
    """Serialize a value as indented JSON, writing back any retained comments."""
    comments = getattr(value, "comments", {})
    lines = [*comments.get(("leading",), []), _dump(value, indent, 0), *comments.get(("trailing",), [])]
    return "\n".join(lines)


def _dump(value: Any, indent: int, level: int) -> str:
    if isinstance(value, dict):
        members = [(json.dumps(str(k), ensure_ascii=False) + ": ", k, v) for k, v in value.items()]
        return _dump_container(value, members, "{", "}", indent, level)
    if isinstance(value, (list, tuple)):
        members = [("", i, v) for i, v in enumerate(value)]
        return _dump_container(value, members, "[", "]", indent, level)
    return json.dumps(value, ensure_ascii=False)


def _dump_container(container: Any, members: list, opener: str, closer: str, indent: int, level: int) -> str:
    comments: dict[tuple, list[str]] = getattr(container, "comments", {})
    end_comments = comments.get(("end",), [])
    if not members and not end_comments:
        return opener + closer

    pad = " " * indent * (level + 1)
    lines = [opener]
    for index, (prefix, key, member) in enumerate(members):
        lines.extend(pad + c for c in comments.get(("before", key), []))
        line = pad + prefix + _dump(member, indent, level + 1)
        if index < len(members) - 1:
            line += ","
        after = comments.get(("after", key))
        if after:
            line += " " + " ".join(after)
        lines.append(line)
    lines.extend(pad + c for c in end_comments)
    lines.append(" " * indent * level + closer)
    return "\n".join(lines)
