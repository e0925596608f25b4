"""Core package for the scenekit visual scene editor."""

from .codegen import (
    GenerationResult,
    SceneEmitter,
    generate_project_index,
    generate_scene,
    generate_scene_code,
)
from .components import (
    AreaComponent,
    BodyComponent,
    Component,
    ComponentError,
    ScriptComponent,
    ScriptMetadata,
    ShapeComponent,
    ShapeType,
    SpriteComponent,
    TextAlign,
    TextComponent,
    Vec2,
    normalise_component,
)
from .coordinates import Reference, decode, encode
from .document import (
    DocumentStore,
    DuplicateNodeError,
    MovePosition,
    NodeNotFoundError,
    RemovedSubtree,
)
from .exporter import ExportReport, ProjectExporter
from .game_object import GameObject, NodeKind, Transform
from .naming import NameAllocator, NodeNames, sanitise_name
from .persistence import (
    FileSceneStore,
    HydrationReport,
    InMemorySceneStore,
    SceneAlreadyExistsError,
    SceneDocument,
    SceneNotFoundError,
    SceneStore,
    ScriptFileStore,
    hydrate_scripts,
)
from .scripts import LifecycleSection, ScriptSections, extract_sections, script_template
from .session import EditorSession
from .viewport import PRESETS, Viewport, ViewportPreset, list_presets

__all__ = [
    "AreaComponent",
    "BodyComponent",
    "Component",
    "ComponentError",
    "DocumentStore",
    "DuplicateNodeError",
    "EditorSession",
    "ExportReport",
    "FileSceneStore",
    "GameObject",
    "GenerationResult",
    "HydrationReport",
    "InMemorySceneStore",
    "LifecycleSection",
    "MovePosition",
    "NameAllocator",
    "NodeKind",
    "NodeNames",
    "NodeNotFoundError",
    "PRESETS",
    "ProjectExporter",
    "Reference",
    "RemovedSubtree",
    "SceneAlreadyExistsError",
    "SceneDocument",
    "SceneEmitter",
    "SceneNotFoundError",
    "SceneStore",
    "ScriptComponent",
    "ScriptFileStore",
    "ScriptMetadata",
    "ScriptSections",
    "ShapeComponent",
    "ShapeType",
    "SpriteComponent",
    "TextAlign",
    "TextComponent",
    "Transform",
    "Vec2",
    "Viewport",
    "ViewportPreset",
    "decode",
    "encode",
    "extract_sections",
    "generate_project_index",
    "generate_scene",
    "generate_scene_code",
    "hydrate_scripts",
    "list_presets",
    "normalise_component",
    "sanitise_name",
    "script_template",
]
