"""Component variants attached to game objects and their normaliser.

Every component kind is a dataclass; :data:`Component` is the closed union of
them. Records arrive from the editor or from older scene documents with
optional fields missing, so :func:`normalise_component` fills in defaults and
canonicalises alternate shapes (scalar scale, legacy ``properties`` wrappers,
legacy type names). Normalisation is idempotent.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, ClassVar, Mapping, Union


class ComponentError(ValueError):
    """Raised when a component record cannot be interpreted."""


@dataclass
class Vec2:
    """Mutable 2D vector used for offsets, scales and velocities."""

    x: float = 0.0
    y: float = 0.0

    def __iter__(self):
        return iter((self.x, self.y))

    def to_payload(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def coerce(cls, value: Any, *, default: "Vec2", field_name: str) -> "Vec2":
        """Return ``value`` as a vector.

        Scalars expand to ``{x: v, y: v}``; mappings may omit either axis, in
        which case the axis of ``default`` is used.
        """

        if value is None:
            return cls(default.x, default.y)
        if isinstance(value, Vec2):
            return cls(value.x, value.y)
        if _is_number(value):
            return cls(float(value), float(value))
        if isinstance(value, Mapping):
            x = _coerce_number(value.get("x"), default.x, f"{field_name}.x")
            y = _coerce_number(value.get("y"), default.y, f"{field_name}.y")
            return cls(x, y)
        if isinstance(value, (list, tuple)) and len(value) == 2:
            x = _coerce_number(value[0], default.x, f"{field_name}.x")
            y = _coerce_number(value[1], default.y, f"{field_name}.y")
            return cls(x, y)
        raise ComponentError(f"{field_name} must be a number or an {{x, y}} mapping")


class ShapeType(str, Enum):
    """Visual primitives a shape component can draw."""

    RECTANGLE = "rectangle"
    CIRCLE = "circle"


class TextAlign(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


@dataclass
class ShapeComponent:
    shape_type: ShapeType = ShapeType.RECTANGLE
    color: str = "#ffffff"
    filled: bool = True
    enabled: bool = True

    type_name: ClassVar[str] = "Shape"

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type_name,
            "enabled": self.enabled,
            "shapeType": self.shape_type.value,
            "color": self.color,
            "filled": self.filled,
        }


@dataclass
class SpriteComponent:
    """Image reference drawn at the object's anchor.

    ``image_path`` is a project-relative asset path; ``inline_image_data`` holds
    a data URI for sprites painted inside the editor that were never saved as
    an asset. The origin is measured in pixels from the sprite's top-left.
    """

    image_path: str | None = None
    inline_image_data: str | None = None
    width: float = 32.0
    height: float = 32.0
    origin_x: float = 16.0
    origin_y: float = 16.0
    enabled: bool = True

    type_name: ClassVar[str] = "Sprite"

    def to_payload(self, *, for_storage: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.type_name,
            "enabled": self.enabled,
            "imagePath": self.image_path,
            "inlineImageData": self.inline_image_data,
            "width": self.width,
            "height": self.height,
            "originX": self.origin_x,
            "originY": self.origin_y,
        }
        if for_storage and self.image_path:
            payload["inlineImageData"] = None
        return payload


@dataclass
class TextComponent:
    text: str = ""
    size: float = 16.0
    align: TextAlign = TextAlign.LEFT
    color: str = "#ffffff"
    enabled: bool = True

    type_name: ClassVar[str] = "Text"

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type_name,
            "enabled": self.enabled,
            "text": self.text,
            "size": self.size,
            "align": self.align.value,
            "color": self.color,
        }


@dataclass
class AreaComponent:
    """Collider definition.

    ``shape`` is ``None`` when the collider should follow the object's visual
    shape. Explicit ``width``/``height``/``radius`` override the visual size.
    """

    shape: str | None = None
    width: float | None = None
    height: float | None = None
    radius: float | None = None
    offset: Vec2 = field(default_factory=Vec2)
    scale: Vec2 = field(default_factory=lambda: Vec2(1.0, 1.0))
    collision_ignore_tags: list[str] = field(default_factory=list)
    restitution: float = 0.0
    friction: float = 1.0
    enabled: bool = True

    type_name: ClassVar[str] = "Area"

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type_name,
            "enabled": self.enabled,
            "shape": self.shape,
            "width": self.width,
            "height": self.height,
            "radius": self.radius,
            "offset": self.offset.to_payload(),
            "scale": self.scale.to_payload(),
            "collisionIgnoreTags": list(self.collision_ignore_tags),
            "restitution": self.restitution,
            "friction": self.friction,
        }


@dataclass
class BodyComponent:
    mass: float = 1.0
    gravity: bool = True
    is_static: bool = False
    velocity: Vec2 = field(default_factory=Vec2)
    acceleration: Vec2 = field(default_factory=Vec2)
    enabled: bool = True

    type_name: ClassVar[str] = "Physics"

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type_name,
            "enabled": self.enabled,
            "mass": self.mass,
            "gravity": self.gravity,
            "isStatic": self.is_static,
            "velocity": self.velocity.to_payload(),
            "acceleration": self.acceleration.to_payload(),
        }


@dataclass
class ScriptMetadata:
    include_ready: bool = True
    include_update: bool = True
    references: list[str] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "includeReady": self.include_ready,
            "includeUpdate": self.include_update,
            "references": list(self.references),
        }


@dataclass
class ScriptComponent:
    """Behaviour attached to an object.

    When ``script_path`` is set the code lives in a project file and ``code``
    only holds the hydrated copy used during generation.
    """

    script_path: str | None = None
    code: str = ""
    metadata: ScriptMetadata = field(default_factory=ScriptMetadata)
    enabled: bool = True

    type_name: ClassVar[str] = "Script"

    def to_payload(self, *, for_storage: bool = False) -> dict[str, Any]:
        return {
            "type": self.type_name,
            "enabled": self.enabled,
            "scriptPath": self.script_path,
            "code": "" if for_storage and self.script_path else self.code,
            "scriptMeta": self.metadata.to_payload(),
        }


Component = Union[
    ShapeComponent,
    SpriteComponent,
    TextComponent,
    AreaComponent,
    BodyComponent,
    ScriptComponent,
]

COMPONENT_CLASSES: tuple[type, ...] = (
    ShapeComponent,
    SpriteComponent,
    TextComponent,
    AreaComponent,
    BodyComponent,
    ScriptComponent,
)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _coerce_number(value: Any, default: float, field_name: str) -> float:
    if value is None:
        return default
    if not _is_number(value):
        raise ComponentError(f"{field_name} must be a number, got {type(value)!r}")
    return float(value)


def _coerce_optional_number(value: Any, field_name: str) -> float | None:
    if value is None:
        return None
    return _coerce_number(value, 0.0, field_name)


def _coerce_bool(value: Any, default: bool, field_name: str) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ComponentError(f"{field_name} must be a boolean, got {type(value)!r}")
    return value


def _coerce_str(value: Any, default: str, field_name: str) -> str:
    if value is None:
        return default
    if not isinstance(value, str):
        raise ComponentError(f"{field_name} must be a string, got {type(value)!r}")
    return value


def _coerce_optional_str(value: Any, field_name: str) -> str | None:
    if value is None:
        return None
    text = _coerce_str(value, "", field_name).strip()
    return text or None


def _coerce_string_list(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str) or not isinstance(value, (list, tuple, set, frozenset)):
        raise ComponentError(f"{field_name} must be a list of strings")

    seen: set[str] = set()
    result: list[str] = []
    for entry in value:
        if not isinstance(entry, str):
            raise ComponentError(f"{field_name} entries must be strings")
        stripped = entry.strip()
        if stripped and stripped not in seen:
            seen.add(stripped)
            result.append(stripped)
    return result


def _first(source: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in source and source[key] is not None:
            return source[key]
    return None


def _parse_shape(source: Mapping[str, Any], shape_hint: str | None) -> ShapeComponent:
    raw_shape = _first(source, "shapeType", "shape_type") or shape_hint or "rectangle"
    if not isinstance(raw_shape, str):
        raise ComponentError("shapeType must be a string")
    lowered = raw_shape.strip().lower()
    if lowered in {"rect", "rectangle"}:
        shape_type = ShapeType.RECTANGLE
    elif lowered == "circle":
        shape_type = ShapeType.CIRCLE
    else:
        raise ComponentError(f"Unknown shape type '{raw_shape}'")

    return ShapeComponent(
        shape_type=shape_type,
        color=_coerce_str(source.get("color"), "#ffffff", "color"),
        filled=_coerce_bool(source.get("filled"), True, "filled"),
    )


def _parse_sprite(source: Mapping[str, Any], shape_hint: str | None) -> SpriteComponent:
    width = _coerce_number(source.get("width"), 32.0, "width")
    height = _coerce_number(source.get("height"), 32.0, "height")
    origin = source.get("origin")
    origin_x = _first(source, "originX", "origin_x")
    origin_y = _first(source, "originY", "origin_y")
    if isinstance(origin, Mapping):
        origin_x = origin.get("x") if origin_x is None else origin_x
        origin_y = origin.get("y") if origin_y is None else origin_y

    return SpriteComponent(
        image_path=_coerce_optional_str(
            _first(source, "imagePath", "image_path", "source"), "imagePath"
        ),
        inline_image_data=_coerce_optional_str(
            _first(source, "inlineImageData", "dataUrl", "dataUri", "imageData"),
            "inlineImageData",
        ),
        width=width,
        height=height,
        origin_x=_coerce_number(origin_x, width / 2, "originX"),
        origin_y=_coerce_number(origin_y, height / 2, "originY"),
    )


def _parse_text(source: Mapping[str, Any], shape_hint: str | None) -> TextComponent:
    raw_align = _coerce_str(source.get("align"), "left", "align").strip().lower()
    try:
        align = TextAlign(raw_align)
    except ValueError as exc:
        raise ComponentError(f"Unknown text alignment '{raw_align}'") from exc

    return TextComponent(
        text=_coerce_str(_first(source, "text", "content"), "", "text"),
        size=_coerce_number(_first(source, "size", "textSize"), 16.0, "size"),
        align=align,
        color=_coerce_str(source.get("color"), "#ffffff", "color"),
    )


def _parse_area_shape(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ComponentError("area shape must be a string")
    lowered = value.strip().lower()
    if lowered in {"", "auto"}:
        return None
    if lowered in {"rect", "rectangle"}:
        return "rect"
    if lowered == "circle":
        return "circle"
    raise ComponentError(f"Unknown collider shape '{value}'")


def _parse_area(source: Mapping[str, Any], shape_hint: str | None) -> AreaComponent:
    return AreaComponent(
        shape=_parse_area_shape(source.get("shape")),
        width=_coerce_optional_number(source.get("width"), "width"),
        height=_coerce_optional_number(source.get("height"), "height"),
        radius=_coerce_optional_number(source.get("radius"), "radius"),
        offset=Vec2.coerce(source.get("offset"), default=Vec2(0.0, 0.0), field_name="offset"),
        scale=Vec2.coerce(source.get("scale"), default=Vec2(1.0, 1.0), field_name="scale"),
        collision_ignore_tags=_coerce_string_list(
            _first(source, "collisionIgnoreTags", "collisionIgnore"),
            "collisionIgnoreTags",
        ),
        restitution=_coerce_number(source.get("restitution"), 0.0, "restitution"),
        friction=_coerce_number(source.get("friction"), 1.0, "friction"),
    )


def _parse_body(source: Mapping[str, Any], shape_hint: str | None) -> BodyComponent:
    return BodyComponent(
        mass=_coerce_number(source.get("mass"), 1.0, "mass"),
        gravity=_coerce_bool(source.get("gravity"), True, "gravity"),
        is_static=_coerce_bool(_first(source, "isStatic", "is_static"), False, "isStatic"),
        velocity=Vec2.coerce(source.get("velocity"), default=Vec2(), field_name="velocity"),
        acceleration=Vec2.coerce(
            source.get("acceleration"), default=Vec2(), field_name="acceleration"
        ),
    )


def _parse_script(source: Mapping[str, Any], shape_hint: str | None) -> ScriptComponent:
    raw_meta = _first(source, "scriptMeta", "metadata")
    if raw_meta is None:
        raw_meta = {}
    if not isinstance(raw_meta, Mapping):
        raise ComponentError("scriptMeta must be an object")

    metadata = ScriptMetadata(
        include_ready=_coerce_bool(raw_meta.get("includeReady"), True, "includeReady"),
        include_update=_coerce_bool(raw_meta.get("includeUpdate"), True, "includeUpdate"),
        references=_coerce_string_list(raw_meta.get("references"), "references"),
    )
    return ScriptComponent(
        script_path=_coerce_optional_str(
            _first(source, "scriptPath", "script_path"), "scriptPath"
        ),
        code=_coerce_str(_first(source, "code", "inlineCode"), "", "code"),
        metadata=metadata,
    )


_Parser = Callable[[Mapping[str, Any], "str | None"], Component]

# Legacy documents used the drawn primitive as the component type.
_PARSERS: Mapping[str, tuple[_Parser, str | None]] = {
    "shape": (_parse_shape, None),
    "rect": (_parse_shape, "rectangle"),
    "rectangle": (_parse_shape, "rectangle"),
    "circle": (_parse_shape, "circle"),
    "sprite": (_parse_sprite, None),
    "text": (_parse_text, None),
    "area": (_parse_area, None),
    "collider": (_parse_area, None),
    "physics": (_parse_body, None),
    "body": (_parse_body, None),
    "script": (_parse_script, None),
}


def normalise_component(raw: Component | Mapping[str, Any]) -> Component:
    """Return a canonical component with every optional field defaulted.

    Args:
        raw: Either an existing component instance or a mapping in the
            persisted record format. Mappings may wrap their fields in a
            legacy ``properties`` object.

    Raises:
        ComponentError: If the record names an unknown component type or
            carries values of the wrong type.
    """

    if isinstance(raw, COMPONENT_CLASSES):
        return normalise_component(raw.to_payload())  # type: ignore[union-attr]

    if not isinstance(raw, Mapping):
        raise ComponentError(f"Component records must be objects, got {type(raw)!r}")

    type_name = raw.get("type")
    if not isinstance(type_name, str) or not type_name.strip():
        raise ComponentError("Component records require a 'type' string")

    try:
        parser, shape_hint = _PARSERS[type_name.strip().lower()]
    except KeyError as exc:
        raise ComponentError(f"Unknown component type '{type_name}'") from exc

    source: dict[str, Any] = dict(raw)
    properties = raw.get("properties")
    if isinstance(properties, Mapping):
        source.update(properties)

    component = parser(source, shape_hint)
    component.enabled = _coerce_bool(source.get("enabled"), True, "enabled")
    return component


def clone_component(component: Component) -> Component:
    """Return an independently mutable copy of ``component``."""

    return copy.deepcopy(component)


def component_type_name(component: Component) -> str:
    return type(component).type_name


__all__ = [
    "AreaComponent",
    "BodyComponent",
    "COMPONENT_CLASSES",
    "Component",
    "ComponentError",
    "ScriptComponent",
    "ScriptMetadata",
    "ShapeComponent",
    "ShapeType",
    "SpriteComponent",
    "TextAlign",
    "TextComponent",
    "Vec2",
    "clone_component",
    "component_type_name",
    "normalise_component",
]
