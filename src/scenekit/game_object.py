"""Scene graph nodes edited by the document store."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Mapping

from .components import (
    Component,
    ComponentError,
    ScriptComponent,
    ShapeComponent,
    ShapeType,
    SpriteComponent,
    TextComponent,
    normalise_component,
)
from .coordinates import ANCHOR_POINTS, DEFAULT_ANCHOR


class NodeKind(str, Enum):
    """Visual archetype of a node, used to pick creation defaults."""

    RECTANGLE = "rectangle"
    CIRCLE = "circle"
    TEXT = "text"
    SPRITE = "sprite"
    EMPTY = "empty"

    @classmethod
    def parse(cls, value: "NodeKind | str") -> "NodeKind":
        if isinstance(value, NodeKind):
            return value
        if not isinstance(value, str):
            raise TypeError(f"node kind must be a string, got {type(value)!r}")
        lowered = value.strip().lower()
        lowered = {"rect": "rectangle"}.get(lowered, lowered)
        try:
            return cls(lowered)
        except ValueError as exc:
            raise ValueError(f"Unknown node kind '{value}'") from exc


_DEFAULT_SIZES: Mapping[NodeKind, tuple[float, float]] = {
    NodeKind.RECTANGLE: (50.0, 50.0),
    NodeKind.CIRCLE: (50.0, 50.0),
    NodeKind.TEXT: (120.0, 24.0),
    NodeKind.SPRITE: (32.0, 32.0),
    NodeKind.EMPTY: (0.0, 0.0),
}

_DEFAULT_POSITIONS: Mapping[NodeKind, tuple[float, float]] = {
    NodeKind.RECTANGLE: (200.0, 200.0),
    NodeKind.CIRCLE: (250.0, 250.0),
    NodeKind.TEXT: (200.0, 200.0),
    NodeKind.SPRITE: (200.0, 200.0),
    NodeKind.EMPTY: (200.0, 200.0),
}


@dataclass
class Transform:
    """Placement of a node in absolute authoring pixels.

    ``x``/``y`` locate the anchor point named by ``anchor``; the rendered
    rectangle is derived from the anchor and the size.
    """

    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    rotation: float = 0.0
    anchor: str = DEFAULT_ANCHOR

    def __post_init__(self) -> None:
        self.anchor = _validate_anchor(self.anchor)

    def to_payload(self) -> dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "rotation": self.rotation,
            "anchor": self.anchor,
        }

    def patched(self, patch: Mapping[str, Any]) -> "Transform":
        """Return a copy with the fields in ``patch`` replaced."""

        unknown = set(patch) - {"x", "y", "width", "height", "rotation", "anchor"}
        if unknown:
            raise ValueError(f"Unknown transform fields: {', '.join(sorted(unknown))}")

        values = self.to_payload()
        for key, value in patch.items():
            if key == "anchor":
                values[key] = value
            else:
                values[key] = _coerce_float(value, f"transform.{key}")
        return Transform(**values)


@dataclass
class GameObject:
    """A node in the scene tree.

    ``children`` are owned exclusively by this node; nodes never hold a
    reference back to their parent.
    """

    id: str
    name: str
    kind: NodeKind = NodeKind.EMPTY
    transform: Transform = field(default_factory=Transform)
    visible: bool = True
    tags: set[str] = field(default_factory=set)
    components: list[Component] = field(default_factory=list)
    children: list["GameObject"] = field(default_factory=list)

    def walk(self) -> Iterator["GameObject"]:
        """Yield this node and its descendants depth-first, parents first."""

        stack: list[GameObject] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def subtree_ids(self) -> list[str]:
        return [node.id for node in self.walk()]

    def find_component(self, component_type: type) -> Component | None:
        """Return the first enabled component of ``component_type``."""

        for component in self.components:
            if isinstance(component, component_type) and component.enabled:
                return component
        return None

    def to_payload(self, *, for_storage: bool = False) -> dict[str, Any]:
        components: list[dict[str, Any]] = []
        for component in self.components:
            if isinstance(component, (ScriptComponent, SpriteComponent)):
                components.append(component.to_payload(for_storage=for_storage))
            else:
                components.append(component.to_payload())

        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "transform": self.transform.to_payload(),
            "visible": self.visible,
            "tags": sorted(self.tags),
            "components": components,
            "children": [child.to_payload(for_storage=for_storage) for child in self.children],
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "GameObject":
        """Build a node (and its subtree) from the persisted representation.

        Raises:
            ValueError: If required fields are missing or malformed.
        """

        if not isinstance(payload, Mapping):
            raise ValueError("Game objects must be objects")

        node_id = payload.get("id")
        if not isinstance(node_id, str) or not node_id.strip():
            raise ValueError("Game objects require a non-empty 'id'")

        kind = NodeKind.parse(payload.get("kind") or payload.get("type") or "empty")
        name = payload.get("name")
        if not isinstance(name, str) or not name.strip():
            name = kind.value.title()

        raw_transform = payload.get("transform") or {}
        if not isinstance(raw_transform, Mapping):
            raise ValueError(f"Game object '{node_id}' has a malformed transform")
        transform = default_transform(kind).patched(
            {
                key: value
                for key, value in raw_transform.items()
                if key in {"x", "y", "width", "height", "rotation", "anchor"}
                and value is not None
            }
        )

        raw_components = payload.get("components") or []
        components: list[Component] = []
        for index, raw_component in enumerate(raw_components):
            try:
                components.append(normalise_component(raw_component))
            except ComponentError as exc:
                raise ValueError(
                    f"Component #{index} of game object '{node_id}' is invalid: {exc}"
                ) from exc

        tags = payload.get("tags") or []
        if isinstance(tags, str):
            raise ValueError(f"Game object '{node_id}' tags must be a list")

        return cls(
            id=node_id.strip(),
            name=name,
            kind=kind,
            transform=transform,
            visible=bool(payload.get("visible", True)),
            tags={str(tag).strip() for tag in tags if str(tag).strip()},
            components=components,
            children=[cls.from_payload(child) for child in payload.get("children") or []],
        )


def default_transform(kind: NodeKind) -> Transform:
    x, y = _DEFAULT_POSITIONS[kind]
    width, height = _DEFAULT_SIZES[kind]
    return Transform(x=x, y=y, width=width, height=height)


def default_components(kind: NodeKind) -> list[Component]:
    """Return the components a freshly created node of ``kind`` carries."""

    if kind is NodeKind.RECTANGLE:
        return [ShapeComponent(shape_type=ShapeType.RECTANGLE, color="#6495ed")]
    if kind is NodeKind.CIRCLE:
        return [ShapeComponent(shape_type=ShapeType.CIRCLE, color="#ff6464")]
    if kind is NodeKind.TEXT:
        return [TextComponent(text="New Text")]
    if kind is NodeKind.SPRITE:
        return [SpriteComponent()]
    return []


def clone_subtree(node: GameObject) -> GameObject:
    """Deep-copy ``node`` so no component, list or child is shared."""

    return copy.deepcopy(node)


def _validate_anchor(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"anchor must be a string, got {type(value)!r}")
    lowered = value.strip().lower()
    if lowered not in ANCHOR_POINTS:
        raise ValueError(f"Unknown anchor '{value}'")
    return lowered


def _coerce_float(value: Any, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{field_name} must be a number, got {type(value)!r}")
    return float(value)


__all__ = [
    "GameObject",
    "NodeKind",
    "Transform",
    "clone_subtree",
    "default_components",
    "default_transform",
]
