"""Derive generated-code identifiers and runtime tags from display names."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

_UNSAFE_RUN = re.compile(r"[^a-z0-9]+")

FALLBACK_NAME = "object"
FALLBACK_PREFIX = "obj_"

# Names the emitter declares or imports itself, plus words the target language
# reserves. Generated scenes are ES modules, so the strict-mode words and the
# unbindable `eval` and `arguments` count too.
RESERVED_IDENTIFIERS = frozenset(
    {
        "ctx",
        "viewport",
        "self",
        "refs",
        "pos",
        "anchor",
        "rotate",
        "rect",
        "circle",
        "sprite",
        "text",
        "area",
        "body",
        "break",
        "case",
        "catch",
        "class",
        "const",
        "continue",
        "debugger",
        "default",
        "delete",
        "do",
        "else",
        "enum",
        "export",
        "extends",
        "false",
        "finally",
        "for",
        "function",
        "if",
        "import",
        "in",
        "instanceof",
        "let",
        "new",
        "null",
        "return",
        "super",
        "switch",
        "this",
        "throw",
        "true",
        "try",
        "typeof",
        "undefined",
        "var",
        "void",
        "while",
        "with",
        "yield",
        "await",
        "implements",
        "interface",
        "package",
        "private",
        "protected",
        "public",
        "static",
        "eval",
        "arguments",
    }
)


def sanitise_name(name: str) -> str:
    """Reduce ``name`` to a lowercase identifier-safe token.

    Runs of characters outside ``[a-z0-9]`` collapse to a single underscore;
    leading digits get the ``obj_`` prefix.
    """

    collapsed = _UNSAFE_RUN.sub("_", name.lower()).strip("_")
    if not collapsed:
        return FALLBACK_NAME
    if collapsed[0].isdigit():
        return f"{FALLBACK_PREFIX}{collapsed}"
    return collapsed


class _Scope:
    """Set of names already handed out within one generation pass."""

    def __init__(self, reserved: Iterable[str] = ()) -> None:
        self._taken: set[str] = set(reserved)

    def claim(self, base: str) -> str:
        candidate = base
        suffix = 2
        while candidate in self._taken:
            candidate = f"{base}_{suffix}"
            suffix += 1
        self._taken.add(candidate)
        return candidate


@dataclass(frozen=True)
class NodeNames:
    identifier: str
    tag: str


class NameAllocator:
    """Hand out unique identifiers and tags for one generation pass.

    Identifiers and tags live in separate scopes, each spanning the whole
    tree. Requests for the same node id return the names allocated the first
    time, so callers may look a node up more than once.
    """

    def __init__(self) -> None:
        self._identifiers = _Scope(RESERVED_IDENTIFIERS)
        self._tags = _Scope()
        self._by_node: dict[str, NodeNames] = {}

    def assign(self, node_id: str, display_name: str) -> NodeNames:
        existing = self._by_node.get(node_id)
        if existing is not None:
            return existing

        base = sanitise_name(display_name)
        names = NodeNames(
            identifier=self._identifiers.claim(base),
            tag=self._tags.claim(base),
        )
        self._by_node[node_id] = names
        return names

    def identifier(self, hint: str) -> str:
        """Claim an auxiliary identifier (for example a script wrapper)."""

        return self._identifiers.claim(sanitise_name(hint))

    def names_for(self, node_id: str) -> NodeNames | None:
        return self._by_node.get(node_id)


__all__ = ["NameAllocator", "NodeNames", "RESERVED_IDENTIFIERS", "sanitise_name"]
