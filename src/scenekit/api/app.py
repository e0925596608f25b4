"""FastAPI application exposing scene editing endpoints."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, List, Sequence

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..codegen import GenerationResult, scene_function_name
from ..components import ScriptComponent, ScriptMetadata
from ..document import MovePosition, RemovedSubtree
from ..exporter import ExportReport, ProjectExporter
from ..game_object import GameObject
from ..persistence import (
    FileSceneStore,
    InMemorySceneStore,
    SceneAlreadyExistsError,
    SceneDocument,
    SceneStore,
    ScriptFileStore,
    hydrate_scripts,
    path_backed_scripts,
    persist_scripts,
    validate_scene_name,
)
from ..scripts import script_template
from ..viewport import CUSTOM_PRESET, DEFAULT_PRESET, Viewport, list_presets
from .settings import EditorSettings, validate_preset

logger = logging.getLogger(__name__)


class PresetResource(BaseModel):
    name: str
    label: str
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)


class PresetListResponse(BaseModel):
    data: list[PresetResource]


class ViewportResource(BaseModel):
    preset: str
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)


class SceneSummary(BaseModel):
    """Summary information about a scene."""

    name: str
    viewport: ViewportResource
    object_count: int = Field(..., ge=0)


class SceneListResponse(BaseModel):
    data: list[SceneSummary]


class SceneResource(BaseModel):
    """Full scene document including the nested object tree."""

    name: str
    viewport: ViewportResource
    objects: list[dict[str, Any]]


class SceneCreateRequest(BaseModel):
    """Request payload for creating a new scene."""

    name: str = Field(..., description="Display name of the new scene.")
    preset: str | None = Field(
        None,
        description="Viewport preset. Omit and pass width/height for a custom size.",
    )
    width: float | None = Field(None, gt=0)
    height: float | None = Field(None, gt=0)

    @model_validator(mode="after")
    def _check_size(self) -> "SceneCreateRequest":
        if (self.width is None) != (self.height is None):
            raise ValueError("width and height must be provided together")
        return self


class GameObjectCreateRequest(BaseModel):
    kind: str = Field("rectangle", description="rectangle, circle, text, sprite or empty.")
    parent_id: str | None = None
    name: str | None = None
    index: int | None = Field(None, ge=0)


class GameObjectUpdateRequest(BaseModel):
    """Partial update for a game object. Omitted fields are left untouched."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    kind: str | None = None
    visible: bool | None = None
    tags: List[str] | None = None
    transform: dict[str, Any] | None = Field(
        None,
        description="Partial transform (x, y, width, height, rotation, anchor).",
    )
    components: List[dict[str, Any]] | None = Field(
        None,
        description="Full replacement component list.",
    )


class GameObjectResponse(BaseModel):
    node: dict[str, Any]
    parent_id: str | None
    index: int


class GameObjectMoveRequest(BaseModel):
    target_id: str
    position: str = Field(
        MovePosition.INTO.value,
        description="One of 'before', 'after' or 'intoAsChild'.",
    )


class GameObjectMoveResponse(BaseModel):
    moved: bool
    parent_id: str | None
    index: int


class GameObjectRemoveResponse(BaseModel):
    """The detached subtree together with where it used to live."""

    removed: dict[str, Any]
    removed_ids: list[str]
    parent_id: str | None
    index: int


class ScriptAttachRequest(BaseModel):
    """Options for a new script created from the starter template."""

    script_path: str | None = Field(
        None,
        description="Project-relative file to write, such as scripts/hero.js. Omit for an inline script.",
    )
    include_ready: bool = True
    include_update: bool = True
    references: List[str] = Field(
        default_factory=list,
        description="Node ids, names or runtime tags the script looks up.",
    )


class ViewportUpdateRequest(BaseModel):
    preset: str | None = None
    width: float | None = Field(None, gt=0)
    height: float | None = Field(None, gt=0)

    @model_validator(mode="after")
    def _check_target(self) -> "ViewportUpdateRequest":
        custom = self.preset in (None, CUSTOM_PRESET)
        if custom and (self.width is None or self.height is None):
            raise ValueError("Custom viewports require both width and height")
        return self


class GenerateRequest(BaseModel):
    write: bool = Field(
        False,
        description="Write the scene file and project index under the project root.",
    )


class GenerateResponse(BaseModel):
    code: str
    helpers: list[str]
    identifiers: dict[str, str]
    warnings: list[str]
    written: list[str] = Field(default_factory=list)
    index_path: str | None = None
    script_errors: dict[str, str] = Field(default_factory=dict)


@dataclass(frozen=True)
class GenerationOutcome:
    result: GenerationResult
    report: ExportReport | None = None


def _check_preset(preset: str) -> str:
    if preset == CUSTOM_PRESET:
        return preset
    return validate_preset(preset)


class EditorService:
    """Business logic supporting the API endpoints.

    Scenes are loaded from the backing store on first access and kept in
    memory afterwards. Every mutation is written back immediately.
    """

    def __init__(
        self,
        store: SceneStore | None = None,
        *,
        exporter: ProjectExporter | None = None,
        script_store: ScriptFileStore | None = None,
        default_preset: str = DEFAULT_PRESET,
    ) -> None:
        self._store = store or InMemorySceneStore()
        self._exporter = exporter
        self._script_store = script_store
        self._default_preset = validate_preset(default_preset)
        self._documents: dict[str, SceneDocument] = {}

    @classmethod
    def from_settings(cls, settings: EditorSettings) -> "EditorService":
        if settings.project_root is None:
            return cls(default_preset=settings.default_preset)

        script_store = ScriptFileStore(settings.project_root)
        return cls(
            FileSceneStore(settings.project_root / settings.scene_dir),
            exporter=ProjectExporter(
                settings.project_root,
                output_dir=settings.output_dir,
                script_store=script_store,
            ),
            script_store=script_store,
            default_preset=settings.default_preset,
        )

    @property
    def exporter(self) -> ProjectExporter | None:
        return self._exporter

    # Scenes -------------------------------------------------------------

    def scene_names(self) -> list[str]:
        return sorted(set(self._store.list_scenes()) | set(self._documents))

    def list_scenes(self) -> list[SceneDocument]:
        return [self.get_scene(name) for name in self.scene_names()]

    def load_scenes(
        self, names: Sequence[str]
    ) -> tuple[list[SceneDocument], dict[str, str]]:
        """Load ``names`` one by one, collecting the ones that fail to load.

        Returns:
            The loaded documents and a mapping of scene name to error message.
        """

        documents: list[SceneDocument] = []
        failures: dict[str, str] = {}
        for name in names:
            try:
                documents.append(self.get_scene(name))
            except (KeyError, ValueError) as exc:
                message = _detail(exc) if isinstance(exc, KeyError) else str(exc)
                failures[name] = message
                logger.error("Could not load scene '%s': %s", name, message)
        return documents, failures

    def get_scene(self, name: str) -> SceneDocument:
        key = validate_scene_name(name)
        document = self._documents.get(key)
        if document is None:
            document = self._store.load(key)
            if self._script_store is not None:
                hydrate_scripts(document, self._script_store)
            self._documents[key] = document
        return document

    def create_scene(
        self,
        name: str,
        *,
        preset: str | None = None,
        width: float | None = None,
        height: float | None = None,
    ) -> SceneDocument:
        key = validate_scene_name(name)
        module_name = scene_function_name(key)
        for existing in self.scene_names():
            if existing == key:
                raise SceneAlreadyExistsError(f"Scene '{key}' already exists")
            if scene_function_name(existing) == module_name:
                raise SceneAlreadyExistsError(
                    f"Scene '{key}' would generate the same module '{module_name}' "
                    f"as scene '{existing}'"
                )

        if preset is None and width is None:
            preset = self._default_preset
        if preset is not None:
            _check_preset(preset)

        document = SceneDocument.new(key, preset=preset, width=width, height=height)
        self._documents[key] = document
        try:
            self._save(document)
        except (OSError, ValueError):
            self._documents.pop(key, None)
            raise
        logger.info("Created scene '%s' (%s)", key, document.viewport.preset)
        return document

    def delete_scene(self, name: str) -> None:
        document = self.get_scene(name)
        self._documents.pop(document.name, None)
        self._store.delete(document.name)
        logger.info("Deleted scene '%s'", document.name)

    def set_viewport(
        self,
        name: str,
        *,
        preset: str | None = None,
        width: float | None = None,
        height: float | None = None,
    ) -> Viewport:
        with self._editing(name) as document:
            if preset is not None and preset != CUSTOM_PRESET:
                document.viewport = Viewport.from_preset(_check_preset(preset))
            elif width is not None and height is not None:
                document.viewport = Viewport(width=width, height=height)
            else:
                raise ValueError("Custom viewports require both width and height")
        return document.viewport

    # Objects ------------------------------------------------------------

    def create_object(
        self,
        scene: str,
        kind: str,
        *,
        parent_id: str | None = None,
        name: str | None = None,
        index: int | None = None,
    ) -> GameObject:
        with self._editing(scene) as document:
            node = document.store.create(kind, parent_id=parent_id, name=name, index=index)
        return node

    def update_object(self, scene: str, node_id: str, patch: dict[str, Any]) -> GameObject:
        with self._editing(scene) as document:
            node = document.store.update(node_id, patch)
        return node

    def remove_object(self, scene: str, node_id: str) -> RemovedSubtree:
        with self._editing(scene) as document:
            removed = document.store.remove(node_id)
        logger.info("Removed '%s' from scene '%s'", node_id, document.name)
        return removed

    def move_object(self, scene: str, node_id: str, target_id: str, position: str) -> bool:
        with self._editing(scene) as document:
            moved = document.store.move(node_id, target_id, MovePosition.parse(position))
        return moved

    def duplicate_object(self, scene: str, node_id: str) -> GameObject:
        with self._editing(scene) as document:
            copy = document.store.duplicate(node_id)
        return copy

    def attach_script(
        self,
        scene: str,
        node_id: str,
        *,
        script_path: str | None = None,
        metadata: ScriptMetadata | None = None,
    ) -> ScriptComponent:
        """Give a node a new script generated from the starter template.

        The script replaces the node's first script component, or is appended
        when it has none. With ``script_path`` the template is also written to
        that project file. References naming a node id or display name are
        looked up at runtime by that node's generated tag.
        """

        metadata = metadata or ScriptMetadata()
        if script_path is not None and self._script_store is None:
            raise ValueError("Script files require a configured project root")

        with self._editing(scene) as document:
            node = document.store.get(node_id)
            component = ScriptComponent(
                script_path=script_path,
                code=script_template(
                    node.name, metadata, tags=_reference_tags(document, metadata)
                ),
                metadata=metadata,
            )
            for position, existing in enumerate(node.components):
                if isinstance(existing, ScriptComponent):
                    document.store.remove_component(node_id, position)
                    document.store.add_component(node_id, component, index=position)
                    break
            else:
                document.store.add_component(node_id, component)
        logger.info("Attached a new script to '%s' in scene '%s'", node_id, document.name)
        return document.store.get(node_id).find_component(ScriptComponent)

    def placement(self, scene: str, node_id: str) -> tuple[str | None, int]:
        store = self.get_scene(scene).store
        return store.parent_of(node_id), store.index_of(node_id)

    # Generation ---------------------------------------------------------

    async def generate(self, scene: str, *, write: bool = False) -> GenerationOutcome:
        document = self.get_scene(scene)
        if not write:
            existing = None
            if self._exporter is not None:
                existing = await self._exporter.read_existing(document)
            return GenerationOutcome(result=document.generate(existing))

        if self._exporter is None:
            raise ValueError("Writing generated code requires a configured project root")

        indexed, _failures = self.load_scenes(self.scene_names())
        report = await self._exporter.export([document], index_documents=indexed)
        if document.name in report.errors:
            raise RuntimeError(
                f"Failed to write scene '{document.name}': {report.errors[document.name]}"
            )
        return GenerationOutcome(result=report.results[document.name], report=report)

    async def export_all(self, names: Sequence[str] | None = None) -> ExportReport:
        """Export ``names`` (default: every scene).

        Scenes that cannot be loaded are reported in ``errors`` and the rest
        of the batch is still written.
        """

        if self._exporter is None:
            raise ValueError("Exporting requires a configured project root")
        documents, failures = self.load_scenes(list(names) if names else self.scene_names())
        report = await self._exporter.export(documents)
        report.errors.update(failures)
        return report

    @contextmanager
    def _editing(self, scene: str) -> Iterator[SceneDocument]:
        """Yield ``scene`` for one edit and save it when the edit completes.

        If the edit or the save raises, the cached scene is put back the way
        it was before the edit.
        """

        document = self.get_scene(scene)
        roots = document.store.snapshot()
        viewport = document.viewport
        unreadable = set(document.unreadable_scripts)
        attached = {component.script_path for _node, component in path_backed_scripts(document)}
        try:
            yield document
            self._load_attached_scripts(document, attached)
            self._save(document)
        except Exception:
            document.store.restore(roots)
            document.viewport = viewport
            document.unreadable_scripts = unreadable
            raise

    def _load_attached_scripts(self, document: SceneDocument, attached: set[str | None]) -> None:
        if self._script_store is None:
            return
        fresh = {
            component.script_path or ""
            for _node, component in path_backed_scripts(document)
            if component.script_path not in attached
        }
        for path in fresh:
            self._script_store.resolve(path)
        empty = {
            component.script_path or ""
            for _node, component in path_backed_scripts(document)
            if component.script_path in fresh and not component.code
        }
        if empty:
            hydrate_scripts(document, self._script_store, paths=empty)

    def _save(self, document: SceneDocument) -> None:
        if self._script_store is not None:
            persist_scripts(document, self._script_store)
        self._store.save(document)


def _reference_tags(document: SceneDocument, metadata: ScriptMetadata) -> dict[str, str]:
    names = document.generate().names
    tags: dict[str, str] = {}
    for node in document.store.walk():
        allocated = names.get(node.id)
        if allocated is None:
            continue
        for key in (node.id, node.name):
            if key in metadata.references and key not in tags:
                tags[key] = allocated.tag
    return tags


def _scene_resource(document: SceneDocument) -> SceneResource:
    return SceneResource(
        name=document.name,
        viewport=ViewportResource(**document.viewport.to_payload()),
        objects=[node.to_payload() for node in document.objects],
    )


def _scene_summary(document: SceneDocument) -> SceneSummary:
    return SceneSummary(
        name=document.name,
        viewport=ViewportResource(**document.viewport.to_payload()),
        object_count=len(document.store),
    )


def _detail(exc: KeyError) -> str:
    return str(exc.args[0]) if exc.args else str(exc)


def _handle(action: Callable[[], Any]) -> Any:
    try:
        return action()
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=_detail(exc)) from exc
    except SceneAlreadyExistsError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def create_app(
    settings: EditorSettings | None = None,
    *,
    service: EditorService | None = None,
) -> FastAPI:
    """Create a FastAPI app exposing the scene editing endpoints."""

    resolved_settings = settings or EditorSettings.from_env()
    editor = service or EditorService.from_settings(resolved_settings)

    tags_metadata = [
        {
            "name": "Presets",
            "description": "Viewport presets scenes can be authored for.",
        },
        {
            "name": "Scenes",
            "description": "Create, inspect and delete scene documents.",
        },
        {
            "name": "Objects",
            "description": (
                "Edit the object tree of a scene: create, update, remove, "
                "reparent and duplicate game objects."
            ),
        },
        {
            "name": "Generation",
            "description": "Compile scenes into runtime source files.",
        },
    ]

    app = FastAPI(
        title="Scenekit Editor API",
        version="0.1.0",
        description=(
            "HTTP API backing the visual scene editor. The service owns the "
            "scene documents and generates runtime scene sources from them."
        ),
        openapi_tags=tags_metadata,
    )

    @app.get("/api/presets", response_model=PresetListResponse, tags=["Presets"])
    def get_presets() -> PresetListResponse:
        return PresetListResponse(
            data=[
                PresetResource(
                    name=preset.name,
                    label=preset.label,
                    width=preset.width,
                    height=preset.height,
                )
                for preset in list_presets()
            ]
        )

    @app.get("/api/scenes", response_model=SceneListResponse, tags=["Scenes"])
    def get_scenes() -> SceneListResponse:
        documents = _handle(editor.list_scenes)
        return SceneListResponse(data=[_scene_summary(document) for document in documents])

    @app.post(
        "/api/scenes",
        response_model=SceneResource,
        status_code=201,
        tags=["Scenes"],
    )
    def create_scene(payload: SceneCreateRequest) -> SceneResource:
        document = _handle(
            lambda: editor.create_scene(
                payload.name,
                preset=payload.preset,
                width=payload.width,
                height=payload.height,
            )
        )
        return _scene_resource(document)

    @app.get("/api/scenes/{name}", response_model=SceneResource, tags=["Scenes"])
    def get_scene(name: str) -> SceneResource:
        return _scene_resource(_handle(lambda: editor.get_scene(name)))

    @app.delete("/api/scenes/{name}", status_code=204, tags=["Scenes"])
    def delete_scene(name: str) -> None:
        _handle(lambda: editor.delete_scene(name))

    @app.put(
        "/api/scenes/{name}/viewport",
        response_model=ViewportResource,
        tags=["Scenes"],
    )
    def update_viewport(name: str, payload: ViewportUpdateRequest) -> ViewportResource:
        viewport = _handle(
            lambda: editor.set_viewport(
                name,
                preset=payload.preset,
                width=payload.width,
                height=payload.height,
            )
        )
        return ViewportResource(**viewport.to_payload())

    def _object_response(scene: str, node: GameObject) -> GameObjectResponse:
        parent_id, index = editor.placement(scene, node.id)
        return GameObjectResponse(node=node.to_payload(), parent_id=parent_id, index=index)

    @app.post(
        "/api/scenes/{name}/objects",
        response_model=GameObjectResponse,
        status_code=201,
        tags=["Objects"],
    )
    def create_object(name: str, payload: GameObjectCreateRequest) -> GameObjectResponse:
        node = _handle(
            lambda: editor.create_object(
                name,
                payload.kind,
                parent_id=payload.parent_id,
                name=payload.name,
                index=payload.index,
            )
        )
        return _object_response(name, node)

    @app.patch(
        "/api/scenes/{name}/objects/{node_id}",
        response_model=GameObjectResponse,
        tags=["Objects"],
    )
    def update_object(
        name: str, node_id: str, payload: GameObjectUpdateRequest
    ) -> GameObjectResponse:
        patch = payload.model_dump(exclude_unset=True)
        node = _handle(lambda: editor.update_object(name, node_id, patch))
        return _object_response(name, node)

    @app.delete(
        "/api/scenes/{name}/objects/{node_id}",
        response_model=GameObjectRemoveResponse,
        tags=["Objects"],
    )
    def delete_object(name: str, node_id: str) -> GameObjectRemoveResponse:
        removed = _handle(lambda: editor.remove_object(name, node_id))
        return GameObjectRemoveResponse(
            removed=removed.node.to_payload(),
            removed_ids=removed.node.subtree_ids(),
            parent_id=removed.parent_id,
            index=removed.index,
        )

    @app.post(
        "/api/scenes/{name}/objects/{node_id}/move",
        response_model=GameObjectMoveResponse,
        tags=["Objects"],
    )
    def move_object(
        name: str, node_id: str, payload: GameObjectMoveRequest
    ) -> GameObjectMoveResponse:
        moved = _handle(
            lambda: editor.move_object(name, node_id, payload.target_id, payload.position)
        )
        if not moved:
            raise HTTPException(
                status_code=409,
                detail=f"Cannot move '{node_id}' into itself or one of its descendants.",
            )
        parent_id, index = editor.placement(name, node_id)
        return GameObjectMoveResponse(moved=True, parent_id=parent_id, index=index)

    @app.post(
        "/api/scenes/{name}/objects/{node_id}/duplicate",
        response_model=GameObjectResponse,
        status_code=201,
        tags=["Objects"],
    )
    def duplicate_object(name: str, node_id: str) -> GameObjectResponse:
        copy = _handle(lambda: editor.duplicate_object(name, node_id))
        return _object_response(name, copy)

    @app.post(
        "/api/scenes/{name}/objects/{node_id}/script",
        response_model=GameObjectResponse,
        status_code=201,
        tags=["Objects"],
    )
    def attach_script(
        name: str, node_id: str, payload: ScriptAttachRequest
    ) -> GameObjectResponse:
        metadata = ScriptMetadata(
            include_ready=payload.include_ready,
            include_update=payload.include_update,
            references=list(payload.references),
        )
        _handle(
            lambda: editor.attach_script(
                name, node_id, script_path=payload.script_path, metadata=metadata
            )
        )
        node = _handle(lambda: editor.get_scene(name).store.get(node_id))
        return _object_response(name, node)

    @app.post(
        "/api/scenes/{name}/generate",
        response_model=GenerateResponse,
        tags=["Generation"],
    )
    async def generate_scene(
        name: str, payload: GenerateRequest | None = None
    ) -> GenerateResponse:
        request = payload or GenerateRequest()
        try:
            outcome = await editor.generate(name, write=request.write)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=_detail(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except RuntimeError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc

        result = outcome.result
        report = outcome.report
        return GenerateResponse(
            code=result.code,
            helpers=list(result.helpers),
            identifiers={node_id: names.identifier for node_id, names in result.names.items()},
            warnings=list(result.warnings),
            written=[str(path) for path in report.written] if report else [],
            index_path=str(report.index_path) if report and report.index_path else None,
            script_errors=dict(report.script_errors) if report else {},
        )

    return app


__all__ = [
    "EditorService",
    "GenerateRequest",
    "GenerateResponse",
    "GenerationOutcome",
    "SceneResource",
    "create_app",
]
