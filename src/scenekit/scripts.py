"""Recover lifecycle sections from a flat script body.

Scripts attached to objects are plain source with up to two top-level
functions, ``ready`` (run once after every object in the scene exists) and
``update`` (run every frame with the elapsed time). Everything else is setup
code that runs when the object is constructed.

A small lexer skips strings, template literals, comments and regular
expression literals so that braces inside them do not confuse the brace
matcher. Only functions declared at the top level of the script count as
sections; a function with the same name nested inside another block stays
part of that block.

``script_template`` writes the starter source for a newly attached script.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from typing import Mapping

from .components import ScriptMetadata

logger = logging.getLogger(__name__)

LIFECYCLE_NAMES = ("ready", "update")

_REGEX_PRECEDING_KEYWORDS = frozenset(
    {"return", "typeof", "case", "do", "else", "in", "of", "new", "delete", "void", "throw"}
)


class ScriptLexError(ValueError):
    """Raised when the script cannot be tokenised."""


@dataclass(frozen=True)
class Token:
    type: str
    value: str
    start: int
    end: int


class ScriptLexer:
    """Tokenise just enough of a script to match braces reliably."""

    def __init__(self, source: str) -> None:
        self.source = source
        self.length = len(source)
        self.index = 0

    def tokenize(self) -> list[Token]:
        tokens: list[Token] = []
        while self.index < self.length:
            ch = self.source[self.index]
            if ch.isspace() or ch == "\ufeff":
                self.index += 1
                continue
            if self.source.startswith("//", self.index):
                self._skip_line_comment()
                continue
            if self.source.startswith("/*", self.index):
                self._skip_block_comment()
                continue
            if ch in {'"', "'"}:
                tokens.append(self._read_string(ch, "STRING"))
                continue
            if ch == "`":
                tokens.append(self._read_string("`", "TEMPLATE"))
                continue
            if ch == "/" and self._regex_allowed(tokens):
                tokens.append(self._read_regex())
                continue
            if ch.isalpha() or ch in {"_", "$"}:
                tokens.append(self._read_identifier())
                continue
            if ch.isdigit():
                tokens.append(self._read_number())
                continue
            tokens.append(Token("PUNCT", ch, self.index, self.index + 1))
            self.index += 1
        return tokens

    def _skip_line_comment(self) -> None:
        newline = self.source.find("\n", self.index)
        self.index = self.length if newline == -1 else newline + 1

    def _skip_block_comment(self) -> None:
        end = self.source.find("*/", self.index + 2)
        if end == -1:
            raise ScriptLexError(f"Unterminated block comment at offset {self.index}")
        self.index = end + 2

    def _read_string(self, quote: str, token_type: str) -> Token:
        start = self.index
        self.index += 1
        while self.index < self.length:
            ch = self.source[self.index]
            if ch == "\\":
                self.index += 2
                continue
            if ch == quote:
                self.index += 1
                return Token(token_type, self.source[start : self.index], start, self.index)
            if ch == "\n" and quote != "`":
                break
            self.index += 1
        raise ScriptLexError(f"Unterminated string starting at offset {start}")

    def _read_regex(self) -> Token:
        start = self.index
        self.index += 1
        in_class = False
        while self.index < self.length:
            ch = self.source[self.index]
            if ch == "\\":
                self.index += 2
                continue
            if ch == "\n":
                break
            if ch == "[":
                in_class = True
            elif ch == "]":
                in_class = False
            elif ch == "/" and not in_class:
                self.index += 1
                while self.index < self.length and self.source[self.index].isalpha():
                    self.index += 1
                return Token("REGEX", self.source[start : self.index], start, self.index)
            self.index += 1
        raise ScriptLexError(f"Unterminated regular expression at offset {start}")

    def _read_identifier(self) -> Token:
        start = self.index
        while self.index < self.length and (
            self.source[self.index].isalnum() or self.source[self.index] in {"_", "$"}
        ):
            self.index += 1
        return Token("IDENT", self.source[start : self.index], start, self.index)

    def _read_number(self) -> Token:
        start = self.index
        while self.index < self.length and (
            self.source[self.index].isalnum() or self.source[self.index] in {".", "_"}
        ):
            self.index += 1
        return Token("NUMBER", self.source[start : self.index], start, self.index)

    @staticmethod
    def _regex_allowed(tokens: list[Token]) -> bool:
        if not tokens:
            return True
        previous = tokens[-1]
        if previous.type == "IDENT":
            return previous.value in _REGEX_PRECEDING_KEYWORDS
        if previous.type in {"NUMBER", "STRING", "TEMPLATE", "REGEX"}:
            return False
        return previous.value not in {")", "]", "}"}


@dataclass(frozen=True)
class LifecycleSection:
    name: str
    params: str
    body: str


@dataclass(frozen=True)
class ScriptSections:
    """Result of splitting a script into setup code and lifecycle sections.

    ``fallback`` is ``True`` when the structure could not be matched and the
    whole script was kept as opaque setup code.
    """

    setup: str
    ready: LifecycleSection | None = None
    update: LifecycleSection | None = None
    fallback: bool = False

    @property
    def has_lifecycle(self) -> bool:
        return self.ready is not None or self.update is not None

    @property
    def is_empty(self) -> bool:
        return not self.setup and not self.has_lifecycle


@dataclass(frozen=True)
class _Match:
    name: str
    params: str
    body: str
    start: int
    end: int


class _AmbiguousScript(Exception):
    pass


def extract_sections(code: str) -> ScriptSections:
    """Split ``code`` into setup statements and ``ready``/``update`` bodies.

    Scripts that cannot be tokenised, have unbalanced braces, or declare the
    same lifecycle function twice are returned whole as setup code with
    ``fallback`` set.
    """

    if not code.strip():
        return ScriptSections(setup="")

    try:
        tokens = ScriptLexer(code).tokenize()
        matches = _match_sections(code, tokens)
    except (ScriptLexError, _AmbiguousScript) as exc:
        logger.warning("Script structure not recognised, keeping it as setup code: %s", exc)
        return ScriptSections(setup=_tidy(code), fallback=True)

    setup_parts: list[str] = []
    cursor = 0
    for match in matches:
        setup_parts.append(code[cursor : match.start])
        cursor = match.end
    setup_parts.append(code[cursor:])

    sections = {
        match.name: LifecycleSection(
            name=match.name, params=match.params, body=_tidy(match.body)
        )
        for match in matches
    }
    return ScriptSections(
        setup=_tidy("\n".join(part.strip("\n") for part in setup_parts if part.strip())),
        ready=sections.get("ready"),
        update=sections.get("update"),
    )


def _match_sections(code: str, tokens: list[Token]) -> list[_Match]:
    matches: list[_Match] = []
    seen: set[str] = set()
    depth = 0
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if token.type == "PUNCT" and token.value in {"{", "(", "["}:
            depth += 1
        elif token.type == "PUNCT" and token.value in {"}", ")", "]"}:
            depth -= 1
            if depth < 0:
                raise _AmbiguousScript(f"unbalanced '{token.value}' at offset {token.start}")
        elif depth == 0 and token.type == "IDENT" and token.value == "function":
            match = _match_header(code, tokens, index)
            if match is not None:
                if match.name in seen:
                    raise _AmbiguousScript(f"'{match.name}' is declared more than once")
                seen.add(match.name)
                matches.append(match)
                index = _token_index_at(tokens, match.end)
                continue
        index += 1

    if depth != 0:
        raise _AmbiguousScript("unbalanced brackets at end of script")
    return matches


def _match_header(code: str, tokens: list[Token], function_index: int) -> _Match | None:
    """Match ``[export] function <name>(<params>) { ... }`` at ``function_index``."""

    cursor = function_index + 1
    if cursor >= len(tokens) or tokens[cursor].type != "IDENT":
        return None
    name = tokens[cursor].value
    if name not in LIFECYCLE_NAMES:
        return None

    cursor += 1
    if cursor >= len(tokens) or tokens[cursor].value != "(":
        return None
    params_start = tokens[cursor].end
    close_paren = _find_closing(tokens, cursor, "(", ")")
    params = code[params_start : tokens[close_paren].start].strip()

    cursor = close_paren + 1
    if cursor >= len(tokens) or tokens[cursor].value != "{":
        raise _AmbiguousScript(f"'{name}' header is not followed by a body")
    close_brace = _find_closing(tokens, cursor, "{", "}")

    first = function_index
    while first > 0 and tokens[first - 1].value in {"export", "default", "async"}:
        first -= 1
    start = tokens[first].start

    return _Match(
        name=name,
        params=params,
        body=code[tokens[cursor].end : tokens[close_brace].start],
        start=start,
        end=tokens[close_brace].end,
    )


def _find_closing(tokens: list[Token], open_index: int, opener: str, closer: str) -> int:
    depth = 0
    for index in range(open_index, len(tokens)):
        token = tokens[index]
        if token.type != "PUNCT":
            continue
        if token.value == opener:
            depth += 1
        elif token.value == closer:
            depth -= 1
            if depth == 0:
                return index
    raise _AmbiguousScript(f"unbalanced '{opener}' at offset {tokens[open_index].start}")


def _token_index_at(tokens: list[Token], offset: int) -> int:
    """Return the index of the first token starting at or after ``offset``."""

    for index, token in enumerate(tokens):
        if token.start >= offset:
            return index
    return len(tokens)


def _template_lines(text: str) -> frozenset[int]:
    """Return the indices of lines that start inside a template literal."""

    try:
        tokens = ScriptLexer(text).tokenize()
    except ScriptLexError:
        return frozenset()
    inside: set[int] = set()
    for token in tokens:
        if token.type != "TEMPLATE":
            continue
        first = text.count("\n", 0, token.start)
        last = text.count("\n", 0, token.end)
        inside.update(range(first + 1, last + 1))
    return frozenset(inside)


def indent_code(code: str, indent: str) -> list[str]:
    """Prefix every non-blank line of ``code`` with ``indent``.

    Lines continuing a multi-line template literal are string content and are
    returned unchanged.
    """

    protected = _template_lines(code)
    lines: list[str] = []
    for number, line in enumerate(code.split("\n")):
        if number in protected:
            lines.append(line)
        elif line.strip():
            lines.append(f"{indent}{line}")
        else:
            lines.append("")
    return lines


def _tidy(text: str) -> str:
    """Trim blank edges, trailing spaces and the common indentation.

    Template literal continuation lines keep their exact text and do not take
    part in the common indentation.
    """

    text = text.replace("\r\n", "\n")
    protected = _template_lines(text)
    open_ended = protected | {number - 1 for number in protected}
    lines = [
        line if number in open_ended else line.rstrip()
        for number, line in enumerate(text.split("\n"))
    ]
    first = 0
    while first < len(lines) and not lines[first] and first not in protected:
        first += 1
    last = len(lines)
    while last > first and not lines[last - 1] and last - 1 not in protected:
        last -= 1

    margins = [
        line[: len(line) - len(line.lstrip())]
        for number, line in enumerate(lines[first:last], start=first)
        if number not in protected and line
    ]
    margin = len(os.path.commonprefix(margins)) if margins else 0
    return "\n".join(
        line if number in protected else line[margin:]
        for number, line in enumerate(lines[first:last], start=first)
    )


def _template_identifier(raw: str, fallback: str) -> str:
    cleaned = re.sub(r"_{2,}", "_", re.sub(r"[^A-Za-z0-9_]", "_", raw)).strip("_")
    if not cleaned:
        cleaned = fallback
    if not (cleaned[0].isalpha() or cleaned[0] == "_"):
        cleaned = f"{fallback}_{cleaned}"
    return cleaned


def script_template(
    name: str,
    metadata: ScriptMetadata | None = None,
    *,
    tags: Mapping[str, str] | None = None,
) -> str:
    """Return the starter source for a new script attached to ``name``.

    ``metadata.include_ready`` and ``metadata.include_update`` choose which
    lifecycle functions the skeleton declares. Every entry of
    ``metadata.references`` becomes a ``let`` variable that is looked up by
    runtime tag in ``ready`` and retried in ``update`` until found. ``tags``
    maps a reference to the tag to look up; unmapped references are used as
    tags directly.
    """

    metadata = metadata or ScriptMetadata()
    tags = tags or {}
    references: list[tuple[str, str]] = []
    used: set[str] = set()
    for position, reference in enumerate(metadata.references, start=1):
        reference = reference.strip()
        if not reference:
            continue
        base = _template_identifier(reference, f"ref{position}")
        identifier = base
        suffix = 1
        while identifier in used:
            identifier = f"{base}_{suffix}"
            suffix += 1
        used.add(identifier)
        references.append((identifier, json.dumps(tags.get(reference, reference))))

    blocks = [
        f"// {name or 'Script'}\n"
        "// ready() runs once after every object in the scene exists; "
        "update(dt) runs every frame."
    ]
    if references:
        blocks.append("\n".join(f"let {identifier} = null;" for identifier, _tag in references))

    if metadata.include_ready:
        if references:
            body = "\n".join(
                f"  {identifier} = ctx.get({tag})[0] ?? null;" for identifier, tag in references
            )
            body += "\n  // Initialise other state here"
        else:
            body = "  // Called once when the object joins the scene"
        blocks.append(f"export function ready() {{\n{body}\n}}")

    if metadata.include_update:
        if references:
            body = "\n".join(
                f"  if (!{identifier}) {{\n    {identifier} = ctx.get({tag})[0] ?? null;\n  }}"
                for identifier, tag in references
            )
            body += "\n  // Per-frame logic goes here"
        else:
            body = "  // Runs every frame; dt is the time since the last frame in seconds"
        blocks.append(f"export function update(dt) {{\n{body}\n}}")

    return "\n\n".join(blocks) + "\n"


__all__ = [
    "LIFECYCLE_NAMES",
    "LifecycleSection",
    "ScriptLexError",
    "ScriptLexer",
    "ScriptSections",
    "Token",
    "extract_sections",
    "indent_code",
    "script_template",
]
