"""Compile a scene tree into scene source for the runtime engine.

The generated file is split into marker-delimited regions. Regions owned by
the generator are rewritten on every pass; user regions are copied verbatim
from the previous file so hand-written code survives regeneration::

    /* <<<AUTO-GENERATED:IMPORTS:START>>> */   rewritten
    /* <<<USER-IMPORTS:START>>> */            preserved
    export function Scene(ctx) {
      /* <<<AUTO-GENERATED:SCENE:START>>> */  rewritten
      /* <<<USER-CODE:SCENE:START>>> */       preserved
    }

Generating twice from the same tree and the same previous output produces
byte-identical text.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from .components import (
    AreaComponent,
    BodyComponent,
    Component,
    ScriptComponent,
    ShapeComponent,
    ShapeType,
    SpriteComponent,
    TextComponent,
    Vec2,
    normalise_component,
)
from .coordinates import (
    Reference,
    encode,
    encode_radius,
    format_number,
    origin_relative_to_anchor,
)
from .game_object import GameObject
from .naming import NameAllocator, NodeNames
from .scripts import LifecycleSection, extract_sections, indent_code
from .viewport import Viewport

logger = logging.getLogger(__name__)

ENGINE_MODULE = "../engine"
INDENT = "  "

RUNTIME_HELPERS = ("pos", "anchor", "rotate", "rect", "circle", "sprite", "text", "area", "body")

USER_IMPORTS_PLACEHOLDER = "// Add your own imports below. These will NOT be overwritten.\n"
USER_SCENE_PLACEHOLDER = f"{INDENT}// Add custom scene logic here (persisted across regenerations)\n"
EMPTY_SCENE_PLACEHOLDER = f"{INDENT}// Add GameObjects using the editor!"


@dataclass(frozen=True)
class RegionMarkers:
    """Start/end comment pair delimiting one region of a generated file."""

    name: str

    @property
    def start(self) -> str:
        return f"/* <<<{self.name}:START>>> */"

    @property
    def end(self) -> str:
        return f"/* <<<{self.name}:END>>> */"


AUTO_IMPORTS = RegionMarkers("AUTO-GENERATED:IMPORTS")
USER_IMPORTS = RegionMarkers("USER-IMPORTS")
AUTO_SCENE = RegionMarkers("AUTO-GENERATED:SCENE")
USER_SCENE = RegionMarkers("USER-CODE:SCENE")


@dataclass(frozen=True)
class UserRegions:
    """User-owned text recovered from a previous file (``None`` if absent)."""

    imports: str | None = None
    scene: str | None = None


@dataclass(frozen=True)
class GenerationResult:
    code: str
    helpers: tuple[str, ...]
    names: Mapping[str, NodeNames]
    warnings: tuple[str, ...] = ()


def extract_region(text: str, markers: RegionMarkers) -> str | None:
    """Return the text between ``markers`` in ``text``, exactly as written.

    The content starts after the line holding the start marker and stops at
    the beginning of the line holding the end marker. Returns ``None`` when
    either marker is missing or they are out of order.
    """

    start = text.find(markers.start)
    if start == -1:
        return None
    content_start = start + len(markers.start)
    if text.startswith("\n", content_start):
        content_start += 1

    end = text.find(markers.end, content_start)
    if end == -1:
        return None

    line_start = text.rfind("\n", 0, end) + 1
    if line_start >= content_start and not text[line_start:end].strip():
        return text[content_start:line_start]
    return text[content_start:end]


def extract_user_regions(existing_code: str | None) -> UserRegions:
    if not existing_code:
        return UserRegions()

    regions = UserRegions(
        imports=extract_region(existing_code, USER_IMPORTS),
        scene=extract_region(existing_code, USER_SCENE),
    )
    if regions.imports is None or regions.scene is None:
        logger.warning("Previous scene file is missing user region markers; using placeholders")
    return regions


def scene_function_name(scene_name: str) -> str:
    """Turn a display name such as ``"main scene"`` into ``MainScene``."""

    parts = [part for part in re.split(r"[^A-Za-z0-9_]+", scene_name) if part]
    name = "".join(part[0].upper() + part[1:] for part in parts)
    if not name:
        return "Scene"
    if name[0].isdigit():
        return f"Scene{name}"
    return name


def _js_string(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


def _vec_literal(vec: Vec2, encoder=None) -> str:
    if encoder is None:
        return f"{{ x: {format_number(vec.x)}, y: {format_number(vec.y)} }}"
    return f"{{ x: {encoder(vec.x)}, y: {encoder(vec.y)} }}"


@dataclass
class _EmitState:
    allocator: NameAllocator
    helpers: set[str] = field(default_factory=set)
    ready_calls: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)


class SceneEmitter:
    """Walk a scene tree and assemble its generated source."""

    def __init__(self, viewport: Viewport) -> None:
        self.viewport = viewport

    def generate(
        self,
        scene_name: str,
        roots: Sequence[GameObject],
        existing_code: str | None = None,
    ) -> GenerationResult:
        state = _EmitState(allocator=NameAllocator())
        index = _NodeIndex(roots)
        for node in index.nodes:
            state.allocator.assign(node.id, node.name)

        blocks: list[list[str]] = []
        for root in roots:
            self._emit_node(root, None, "ctx", state, index, blocks)

        body_lines = [
            f"{INDENT}const viewport = ctx.viewport ?? "
            f"{{ width: {format_number(self.viewport.width)}, "
            f"height: {format_number(self.viewport.height)} }};"
            f" // authored for {self.viewport.preset}",
            "",
        ]
        if blocks:
            for position, block in enumerate(blocks):
                if position:
                    body_lines.append("")
                body_lines.extend(block)
        else:
            body_lines.append(EMPTY_SCENE_PLACEHOLDER)

        if state.ready_calls:
            body_lines.append("")
            body_lines.append(f"{INDENT}// Ready callbacks run once every object exists")
            body_lines.extend(state.ready_calls)

        helpers = tuple(name for name in RUNTIME_HELPERS if name in state.helpers)
        if helpers:
            import_statement = f"import {{ {', '.join(helpers)} }} from '{ENGINE_MODULE}';"
        else:
            import_statement = "// No components used yet"

        user = extract_user_regions(existing_code)
        user_imports = user.imports if user.imports is not None else USER_IMPORTS_PLACEHOLDER
        user_scene = user.scene if user.scene is not None else USER_SCENE_PLACEHOLDER
        if user_imports and not user_imports.endswith("\n"):
            user_imports += "\n"
        if user_scene and not user_scene.endswith("\n"):
            user_scene += "\n"

        code = (
            "// ========================= SCENEKIT SCENE =========================\n"
            "// Generated + user-safe regions. Only edit between USER markers.\n"
            "\n"
            f"{AUTO_IMPORTS.start}\n"
            f"{import_statement}\n"
            f"{AUTO_IMPORTS.end}\n"
            "\n"
            f"{USER_IMPORTS.start}\n"
            f"{user_imports}"
            f"{USER_IMPORTS.end}\n"
            "\n"
            f"export function {scene_function_name(scene_name)}(ctx) {{\n"
            f"{INDENT}{AUTO_SCENE.start}\n"
            + "\n".join(body_lines)
            + "\n"
            f"{INDENT}{AUTO_SCENE.end}\n"
            "\n"
            f"{INDENT}{USER_SCENE.start}\n"
            f"{user_scene}"
            f"{INDENT}{USER_SCENE.end}\n"
            "}\n"
        )

        return GenerationResult(
            code=code,
            helpers=helpers,
            names={node.id: state.allocator.assign(node.id, node.name) for node in index.nodes},
            warnings=tuple(state.warnings),
        )

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def _emit_node(
        self,
        node: GameObject,
        parent: GameObject | None,
        target: str,
        state: _EmitState,
        index: "_NodeIndex",
        blocks: list[list[str]],
    ) -> None:
        names = state.allocator.assign(node.id, node.name)
        components = [normalise_component(component) for component in node.components]
        enabled = [component for component in components if component.enabled]

        lines = [f"{INDENT}// {' '.join(node.name.split())}"]
        lines.append(f"{INDENT}const {names.identifier} = {target}.add([")
        for expression in self._component_expressions(node, parent, enabled, names, state):
            lines.append(f"{INDENT}{INDENT}{expression},")
        lines.append(f"{INDENT}]);")
        if not node.visible:
            lines.append(f"{INDENT}{names.identifier}.hidden = true;")

        for component in enabled:
            if isinstance(component, ScriptComponent):
                lines.extend(self._script_lines(node, component, names, state, index))

        logger.debug("Emitted %s as %s", node.id, names.identifier)
        blocks.append(lines)
        for child in node.children:
            self._emit_node(child, node, names.identifier, state, index, blocks)

    def _component_expressions(
        self,
        node: GameObject,
        parent: GameObject | None,
        components: Iterable[Component],
        names: NodeNames,
        state: _EmitState,
    ) -> list[str]:
        transform = node.transform
        x, y = transform.x, transform.y
        if parent is not None:
            x -= parent.transform.x
            y -= parent.transform.y

        expressions = [f"pos({encode(x, self.viewport)}, {encode(y, self.viewport)})"]
        expressions.append(f"anchor({_js_string(transform.anchor)})")
        state.helpers.update({"pos", "anchor"})
        if transform.rotation:
            expressions.append(f"rotate({format_number(transform.rotation)})")
            state.helpers.add("rotate")

        component_list = list(components)
        has_area = any(isinstance(component, AreaComponent) for component in component_list)
        for component in component_list:
            if isinstance(component, ShapeComponent):
                expressions.append(self._shape(node, component, state))
            elif isinstance(component, SpriteComponent):
                expression = self._sprite(node, component, state)
                if expression is not None:
                    expressions.append(expression)
            elif isinstance(component, TextComponent):
                expressions.append(self._text(component, state))
            elif isinstance(component, AreaComponent):
                expressions.append(self._area(component, state))
            elif isinstance(component, BodyComponent):
                if not has_area:
                    expressions.append("area()")
                    state.helpers.add("area")
                    has_area = True
                expressions.append(self._body(component, state))
            elif isinstance(component, ScriptComponent):
                continue
            else:  # pragma: no cover - the component union is closed
                raise TypeError(f"Unsupported component {type(component)!r}")

        expressions.append(_js_string(names.tag))
        expressions.extend(_js_string(tag) for tag in sorted(node.tags))
        return expressions

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def _enc(self, value: float) -> str:
        return encode(value, self.viewport, Reference.WIDTH)

    def _shape(self, node: GameObject, shape: ShapeComponent, state: _EmitState) -> str:
        width, height = node.transform.width, node.transform.height
        options = "" if shape.filled else ", { fill: false }"
        if shape.shape_type is ShapeType.CIRCLE:
            state.helpers.add("circle")
            radius = encode_radius(min(width, height) / 2, self.viewport)
            return f"circle({radius}, {_js_string(shape.color)}{options})"
        state.helpers.add("rect")
        return f"rect({self._enc(width)}, {self._enc(height)}, {_js_string(shape.color)}{options})"

    def _sprite(
        self, node: GameObject, sprite: SpriteComponent, state: _EmitState
    ) -> str | None:
        source = sprite.image_path or sprite.inline_image_data
        if not source:
            state.warn(f"Sprite on '{node.name}' has no image; skipping it")
            return None

        state.helpers.add("sprite")
        options = [f"width: {self._enc(sprite.width)}", f"height: {self._enc(sprite.height)}"]
        origin_x, origin_y = origin_relative_to_anchor(
            sprite.origin_x,
            sprite.origin_y,
            node.transform.anchor,
            sprite.width,
            sprite.height,
        )
        if origin_x or origin_y:
            options.append(f"origin: {_vec_literal(Vec2(origin_x, origin_y), self._enc)}")
        return f"sprite({_js_string(source)}, {{ {', '.join(options)} }})"

    def _text(self, text: TextComponent, state: _EmitState) -> str:
        state.helpers.add("text")
        options = [
            f"size: {self._enc(text.size)}",
            f"align: {_js_string(text.align.value)}",
            f"color: {_js_string(text.color)}",
        ]
        return f"text({_js_string(text.text)}, {{ {', '.join(options)} }})"

    def _area(self, area: AreaComponent, state: _EmitState) -> str:
        state.helpers.add("area")
        options: list[str] = []
        if area.shape:
            options.append(f"shape: {_js_string(area.shape)}")
        if area.width is not None and area.height is not None:
            options.append(f"width: {self._enc(area.width)}")
            options.append(f"height: {self._enc(area.height)}")
        if area.radius is not None:
            options.append(f"radius: {encode_radius(area.radius, self.viewport)}")
        if area.scale.x != 1 or area.scale.y != 1:
            options.append(f"scale: {_vec_literal(area.scale)}")
        if area.offset.x != 0 or area.offset.y != 0:
            options.append(f"offset: {_vec_literal(area.offset, self._enc)}")
        if area.collision_ignore_tags:
            tags = ", ".join(_js_string(tag) for tag in area.collision_ignore_tags)
            options.append(f"collisionIgnore: [{tags}]")
        if area.restitution != 0:
            options.append(f"restitution: {format_number(area.restitution)}")
        if area.friction != 1:
            options.append(f"friction: {format_number(area.friction)}")
        if not options:
            return "area()"
        return f"area({{ {', '.join(options)} }})"

    def _body(self, body: BodyComponent, state: _EmitState) -> str:
        state.helpers.add("body")
        options: list[str] = []
        if body.mass != 1:
            options.append(f"mass: {format_number(body.mass)}")
        if not body.gravity:
            options.append("gravity: false")
        if body.is_static:
            options.append("isStatic: true")
        if body.velocity.x or body.velocity.y:
            options.append(f"velocity: {_vec_literal(body.velocity, self._enc)}")
        if body.acceleration.x or body.acceleration.y:
            options.append(f"acceleration: {_vec_literal(body.acceleration, self._enc)}")
        if not options:
            return "body()"
        return f"body({{ {', '.join(options)} }})"

    # ------------------------------------------------------------------
    # Scripts
    # ------------------------------------------------------------------

    def _script_lines(
        self,
        node: GameObject,
        script: ScriptComponent,
        names: NodeNames,
        state: _EmitState,
        index: "_NodeIndex",
    ) -> list[str]:
        sections = extract_sections(script.code)
        if sections.fallback:
            state.warn(
                f"Script on '{node.name}' could not be split into lifecycle sections; "
                "emitting it as setup code"
            )

        ready = sections.ready
        update = sections.update
        inner = INDENT * 2

        if ready is None and update is None:
            if not sections.setup:
                return []
            lines = [f"{INDENT}{{", f"{inner}const self = {names.identifier};"]
            lines.extend(indent_code(sections.setup, inner))
            lines.append(f"{INDENT}}}")
            return lines

        wrapper = state.allocator.identifier(f"{names.identifier}_script")
        lines = [f"{INDENT}const {wrapper} = (function (self) {{"]
        lines.extend(self._reference_lines(node, script, state, index))
        if sections.setup:
            lines.extend(indent_code(sections.setup, inner))
        lines.append(f"{inner}return {{")
        lines.append(f"{inner}{INDENT}id: {_js_string(names.tag + '_script')},")
        for section in (ready, update):
            if section is not None:
                lines.extend(_lifecycle_lines(section, inner + INDENT))
        lines.append(f"{inner}}};")
        lines.append(f"{INDENT}}})({names.identifier});")
        lines.append(f"{INDENT}{names.identifier}.add({wrapper});")

        if ready is not None:
            state.ready_calls.append(f"{INDENT}{wrapper}.ready();")
        return lines

    def _reference_lines(
        self,
        node: GameObject,
        script: ScriptComponent,
        state: _EmitState,
        index: "_NodeIndex",
    ) -> list[str]:
        getters: list[str] = []
        seen: set[str] = set()
        for reference in script.metadata.references:
            target = index.resolve(reference)
            if target is None:
                state.warn(f"Script on '{node.name}' references unknown object '{reference}'")
                continue
            identifier = state.allocator.assign(target.id, target.name).identifier
            if identifier in seen:
                continue
            seen.add(identifier)
            getters.append(
                f"{INDENT * 3}get {identifier}() {{ return {identifier}; }},"
            )

        if not getters:
            return []
        return [f"{INDENT * 2}const refs = {{", *getters, f"{INDENT * 2}}};"]


def _lifecycle_lines(section: LifecycleSection, indent: str) -> list[str]:
    lines = [f"{indent}{section.name}({section.params}) {{"]
    if section.body:
        lines.extend(indent_code(section.body, indent + INDENT))
    lines.append(f"{indent}}},")
    return lines


class _NodeIndex:
    """Depth-first listing of a tree with lookup by id or display name."""

    def __init__(self, roots: Sequence[GameObject]) -> None:
        self.nodes: list[GameObject] = [node for root in roots for node in root.walk()]
        self._by_id = {node.id: node for node in self.nodes}
        self._by_name: dict[str, GameObject] = {}
        for node in self.nodes:
            self._by_name.setdefault(node.name, node)

    def resolve(self, reference: str) -> GameObject | None:
        return self._by_id.get(reference) or self._by_name.get(reference)


def generate_scene(
    scene_name: str,
    viewport: Viewport,
    roots: Sequence[GameObject],
    existing_code: str | None = None,
) -> GenerationResult:
    """Generate scene source, merging user regions from ``existing_code``."""

    return SceneEmitter(viewport).generate(scene_name, roots, existing_code)


def generate_scene_code(
    scene_name: str,
    viewport: Viewport,
    roots: Sequence[GameObject],
    existing_code: str | None = None,
) -> str:
    return generate_scene(scene_name, viewport, roots, existing_code).code


def generate_project_index(
    scene_names: Sequence[str],
    viewport: Viewport,
    *,
    background: str = "#2a2a2a",
    scenes_dir: str = "scenes",
) -> str:
    """Return the project entry module that registers every scene."""

    functions = [scene_function_name(name) for name in scene_names]
    imports = "\n".join(
        f"import {{ {function} }} from './{scenes_dir}/{function}';" for function in functions
    )
    registrations = "\n".join(f"{INDENT * 2}{function}," for function in functions)
    first = functions[0] if functions else "MainScene"

    return (
        "import { GameEngine } from './engine';\n"
        f"{imports}\n"
        "\n"
        "// Initialize the game engine\n"
        "const engine = new GameEngine({\n"
        f"{INDENT}width: {format_number(viewport.width)},\n"
        f"{INDENT}height: {format_number(viewport.height)},\n"
        f"{INDENT}background: {_js_string(background)},\n"
        f"{INDENT}scenes: {{\n"
        f"{registrations}\n"
        f"{INDENT}}},\n"
        "});\n"
        "\n"
        "// Start with the first scene\n"
        f"engine.start({_js_string(first)});\n"
    )


__all__ = [
    "AUTO_IMPORTS",
    "AUTO_SCENE",
    "ENGINE_MODULE",
    "GenerationResult",
    "RUNTIME_HELPERS",
    "RegionMarkers",
    "SceneEmitter",
    "USER_IMPORTS",
    "USER_IMPORTS_PLACEHOLDER",
    "USER_SCENE",
    "USER_SCENE_PLACEHOLDER",
    "UserRegions",
    "extract_region",
    "extract_user_regions",
    "generate_project_index",
    "generate_scene",
    "generate_scene_code",
    "scene_function_name",
]
