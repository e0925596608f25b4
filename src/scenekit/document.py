"""The canonical object tree behind a scene and the commands that edit it."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Iterator, Mapping

from .components import Component, ComponentError, normalise_component
from .game_object import (
    GameObject,
    NodeKind,
    clone_subtree,
    default_components,
    default_transform,
)

logger = logging.getLogger(__name__)

DUPLICATE_OFFSET = (20.0, 20.0)

_PATCHABLE_FIELDS = frozenset({"name", "kind", "transform", "visible", "tags", "components"})


class NodeNotFoundError(KeyError):
    """Raised when a command references a node id absent from the tree."""

    def __init__(self, node_id: str) -> None:
        super().__init__(f"Game object '{node_id}' does not exist")
        self.node_id = node_id


class DuplicateNodeError(ValueError):
    """Raised when inserting a subtree whose ids are already in the tree."""


class MovePosition(str, Enum):
    BEFORE = "before"
    AFTER = "after"
    INTO = "intoAsChild"

    @classmethod
    def parse(cls, value: "MovePosition | str") -> "MovePosition":
        if isinstance(value, MovePosition):
            return value
        lowered = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        if lowered in {"into", "child", "inside"}:
            return cls.INTO
        raise ValueError(f"Unknown move position '{value}'")


@dataclass(frozen=True)
class RemovedSubtree:
    """A detached subtree plus where it used to live, for undo."""

    node: GameObject
    parent_id: str | None
    index: int


def _default_id() -> str:
    return f"obj_{uuid.uuid4().hex[:12]}"


class DocumentStore:
    """Own the scene tree and keep its structural invariants.

    Every node id is unique across the tree, each node lives in exactly one
    children list (or among the roots), and no node is ever moved beneath
    itself. Commands either complete or leave the tree untouched.

    Editor-only state such as the selection is deliberately absent; see
    :class:`scenekit.session.EditorSession`.
    """

    def __init__(
        self,
        roots: Iterable[GameObject] = (),
        *,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._id_factory = id_factory or _default_id
        self.restore(roots)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def roots(self) -> list[GameObject]:
        return list(self._roots)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def walk(self) -> Iterator[GameObject]:
        """Yield every node depth-first in document order."""

        for root in self._roots:
            yield from root.walk()

    def get(self, node_id: str) -> GameObject:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise NodeNotFoundError(node_id) from None

    def parent_of(self, node_id: str) -> str | None:
        self.get(node_id)
        return self._parents[node_id]

    def children_of(self, parent_id: str | None) -> list[GameObject]:
        return list(self._siblings(parent_id))

    def index_of(self, node_id: str) -> int:
        node = self.get(node_id)
        return _identity_index(self._siblings(self._parents[node_id]), node)

    def is_descendant(self, ancestor_id: str, node_id: str) -> bool:
        """Return ``True`` when ``node_id`` sits strictly below ``ancestor_id``."""

        self.get(ancestor_id)
        current = self._parents.get(node_id)
        while current is not None:
            if current == ancestor_id:
                return True
            current = self._parents[current]
        return False

    def snapshot(self) -> list[GameObject]:
        """Return a deep copy of the roots, independent of later edits."""

        return [clone_subtree(root) for root in self._roots]

    def restore(self, roots: Iterable[GameObject]) -> None:
        """Replace the whole tree with ``roots``, usually taken from :meth:`snapshot`.

        Raises:
            DuplicateNodeError: If ``roots`` repeat an id.
        """

        self._roots = []
        self._nodes = {}
        self._parents = {}
        for root in roots:
            self._check_insertable(root)
            self._roots.append(root)
            self._register(root, None)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create(
        self,
        kind: NodeKind | str,
        *,
        parent_id: str | None = None,
        name: str | None = None,
        index: int | None = None,
    ) -> GameObject:
        """Create a node with default transform and components.

        A node created under a parent starts at the parent's anchor position.
        """

        node_kind = NodeKind.parse(kind)
        parent = self.get(parent_id) if parent_id is not None else None

        transform = default_transform(node_kind)
        if parent is not None:
            transform.x = parent.transform.x
            transform.y = parent.transform.y

        if name is None or not name.strip():
            existing = sum(1 for node in self.walk() if node.kind is node_kind)
            name = f"{node_kind.value.title()} {existing + 1}"

        node = GameObject(
            id=self._allocate_id(),
            name=name.strip(),
            kind=node_kind,
            transform=transform,
            components=default_components(node_kind),
        )
        siblings = self._siblings(parent_id)
        siblings.insert(_clamp(index, len(siblings)), node)
        self._register(node, parent_id)
        logger.debug("Created %s '%s' (%s)", node_kind.value, node.name, node.id)
        return node

    def update(self, node_id: str, patch: Mapping[str, Any]) -> GameObject:
        """Apply a partial update to a node.

        ``patch`` may contain ``name``, ``kind``, ``visible``, ``tags``,
        ``transform`` (a partial mapping) and ``components`` (a full
        replacement list, normalised on the way in). Every value is validated
        before anything is written.

        Raises:
            NodeNotFoundError: If ``node_id`` is unknown.
            ValueError: If the patch contains unknown fields or bad values.
        """

        node = self.get(node_id)
        unknown = set(patch) - _PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown game object fields: {', '.join(sorted(unknown))}")

        name = node.name
        if "name" in patch:
            name = _validate_name(patch["name"])

        kind = NodeKind.parse(patch["kind"]) if "kind" in patch else node.kind

        transform = node.transform
        if "transform" in patch:
            raw_transform = patch["transform"]
            if not isinstance(raw_transform, Mapping):
                raise ValueError("transform must be an object")
            try:
                transform = node.transform.patched(raw_transform)
            except TypeError as exc:
                raise ValueError(str(exc)) from exc

        visible = node.visible
        if "visible" in patch:
            if not isinstance(patch["visible"], bool):
                raise ValueError("visible must be a boolean")
            visible = patch["visible"]

        tags = node.tags
        if "tags" in patch:
            tags = _validate_tags(patch["tags"])

        components = node.components
        if "components" in patch:
            components = _normalise_components(patch["components"])

        node.name = name
        node.kind = kind
        node.transform = transform
        node.visible = visible
        node.tags = tags
        node.components = components
        logger.debug("Updated game object %s (%s)", node_id, ", ".join(sorted(patch)))
        return node

    def rename(self, node_id: str, name: str) -> GameObject:
        return self.update(node_id, {"name": name})

    def set_transform(self, node_id: str, **fields: Any) -> GameObject:
        return self.update(node_id, {"transform": fields})

    def add_component(
        self,
        node_id: str,
        component: Component | Mapping[str, Any],
        *,
        index: int | None = None,
    ) -> Component:
        node = self.get(node_id)
        normalised = normalise_component(component)
        node.components.insert(_clamp(index, len(node.components)), normalised)
        return normalised

    def remove_component(self, node_id: str, index: int) -> Component:
        node = self.get(node_id)
        if not 0 <= index < len(node.components):
            raise IndexError(f"Game object '{node_id}' has no component #{index}")
        return node.components.pop(index)

    def update_component(
        self, node_id: str, index: int, patch: Mapping[str, Any]
    ) -> Component:
        """Merge ``patch`` into component ``index`` and re-normalise it."""

        node = self.get(node_id)
        if not 0 <= index < len(node.components):
            raise IndexError(f"Game object '{node_id}' has no component #{index}")

        current = node.components[index]
        merged = current.to_payload()
        merged.update(patch)
        merged["type"] = current.type_name
        node.components[index] = normalise_component(merged)
        return node.components[index]

    def reorder(self, node_id: str, index: int) -> None:
        """Move a node to ``index`` within its current siblings."""

        node = self.get(node_id)
        siblings = self._siblings(self._parents[node_id])
        siblings.pop(_identity_index(siblings, node))
        siblings.insert(_clamp(index, len(siblings)), node)

    def remove(self, node_id: str) -> RemovedSubtree:
        """Detach a node and its descendants, returning them for undo."""

        node = self.get(node_id)
        parent_id = self._parents[node_id]
        siblings = self._siblings(parent_id)
        index = _identity_index(siblings, node)

        siblings.pop(index)
        for removed in node.walk():
            del self._nodes[removed.id]
            del self._parents[removed.id]

        logger.debug(
            "Removed game object %s with %d descendants",
            node_id,
            len(node.subtree_ids()) - 1,
        )
        return RemovedSubtree(node=node, parent_id=parent_id, index=index)

    def insert(
        self,
        subtree: RemovedSubtree | GameObject,
        *,
        parent_id: str | None = None,
        index: int | None = None,
    ) -> GameObject:
        """Attach a detached subtree, restoring its old position by default.

        Raises:
            NodeNotFoundError: If the destination parent is unknown.
            DuplicateNodeError: If any id in ``subtree`` is already present.
        """

        if isinstance(subtree, RemovedSubtree):
            node = subtree.node
            if parent_id is None and index is None:
                parent_id, index = subtree.parent_id, subtree.index
        else:
            node = subtree

        if parent_id is not None:
            self.get(parent_id)
        self._check_insertable(node)

        siblings = self._siblings(parent_id)
        siblings.insert(_clamp(index, len(siblings)), node)
        self._register(node, parent_id)
        return node

    def move(
        self,
        source_id: str,
        target_id: str,
        position: MovePosition | str = MovePosition.INTO,
    ) -> bool:
        """Move ``source_id`` before, after or into ``target_id``.

        Returns:
            ``True`` when the node moved, ``False`` when the move was rejected
            because the target is the source itself or one of its descendants.

        Raises:
            NodeNotFoundError: If either id is unknown.
        """

        placement = MovePosition.parse(position)
        source = self.get(source_id)
        target = self.get(target_id)

        if source_id == target_id or self.is_descendant(source_id, target_id):
            logger.warning(
                "Rejected moving %s %s %s: target is inside the moved subtree",
                source_id,
                placement.value,
                target_id,
            )
            return False

        old_siblings = self._siblings(self._parents[source_id])
        old_siblings.pop(_identity_index(old_siblings, source))

        if placement is MovePosition.INTO:
            target.children.append(source)
            self._parents[source_id] = target_id
        else:
            new_parent_id = self._parents[target_id]
            siblings = self._siblings(new_parent_id)
            target_index = _identity_index(siblings, target)
            if placement is MovePosition.AFTER:
                target_index += 1
            siblings.insert(target_index, source)
            self._parents[source_id] = new_parent_id

        logger.debug("Moved %s %s %s", source_id, placement.value, target_id)
        return True

    def duplicate(
        self,
        node_id: str,
        *,
        offset: tuple[float, float] = DUPLICATE_OFFSET,
    ) -> GameObject:
        """Clone a subtree with fresh ids, placed right after the original.

        Every node of the copy is shifted by ``offset`` so relative placement
        inside the subtree is preserved.
        """

        original = self.get(node_id)
        parent_id = self._parents[node_id]
        copy = clone_subtree(original)

        dx, dy = offset
        assigned: set[str] = set()
        for node in copy.walk():
            node.id = self._allocate_id(reserved=assigned)
            assigned.add(node.id)
            node.transform.x += dx
            node.transform.y += dy

        siblings = self._siblings(parent_id)
        siblings.insert(_identity_index(siblings, original) + 1, copy)
        self._register(copy, parent_id)
        logger.debug("Duplicated %s as %s", node_id, copy.id)
        return copy

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _siblings(self, parent_id: str | None) -> list[GameObject]:
        if parent_id is None:
            return self._roots
        return self.get(parent_id).children

    def _register(self, node: GameObject, parent_id: str | None) -> None:
        self._nodes[node.id] = node
        self._parents[node.id] = parent_id
        for child in node.children:
            self._register(child, node.id)

    def _check_insertable(self, node: GameObject) -> None:
        seen: set[str] = set()
        for candidate in node.walk():
            if candidate.id in self._nodes or candidate.id in seen:
                raise DuplicateNodeError(f"Game object id '{candidate.id}' is already in use")
            seen.add(candidate.id)

    def _allocate_id(self, reserved: set[str] | None = None) -> str:
        while True:
            candidate = self._id_factory()
            if candidate not in self._nodes and (reserved is None or candidate not in reserved):
                return candidate


def _identity_index(nodes: list[GameObject], node: GameObject) -> int:
    for index, candidate in enumerate(nodes):
        if candidate is node:
            return index
    raise NodeNotFoundError(node.id)


def _clamp(index: int | None, length: int) -> int:
    if index is None or index > length:
        return length
    return max(index, 0)


def _validate_name(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("name must be a string")
    stripped = value.strip()
    if not stripped:
        raise ValueError("name must be a non-empty string")
    return stripped


def _validate_tags(value: Any) -> set[str]:
    if isinstance(value, str) or not isinstance(value, (list, tuple, set, frozenset)):
        raise ValueError("tags must be a list of strings")
    tags: set[str] = set()
    for tag in value:
        if not isinstance(tag, str):
            raise ValueError("tags must be a list of strings")
        if tag.strip():
            tags.add(tag.strip())
    return tags


def _normalise_components(value: Any) -> list[Component]:
    if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple)):
        raise ValueError("components must be a list")
    try:
        return [normalise_component(entry) for entry in value]
    except ComponentError as exc:
        raise ValueError(str(exc)) from exc


__all__ = [
    "DUPLICATE_OFFSET",
    "DocumentStore",
    "DuplicateNodeError",
    "MovePosition",
    "NodeNotFoundError",
    "RemovedSubtree",
]
