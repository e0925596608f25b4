"""Scene documents and the stores that persist them."""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Collection, Dict, List, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .codegen import GenerationResult, generate_scene
from .components import ScriptComponent
from .document import DocumentStore
from .game_object import GameObject
from .viewport import CUSTOM_PRESET, Viewport

logger = logging.getLogger(__name__)

_SCENE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9 _-]*$")


class SceneNotFoundError(KeyError):
    """Raised when a scene is not present in a store."""


class SceneAlreadyExistsError(RuntimeError):
    """Raised when creating a scene whose name is taken."""


class TransformModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    x: float | None = None
    y: float | None = None
    width: float | None = Field(default=None, ge=0)
    height: float | None = Field(default=None, ge=0)
    rotation: float | None = None
    anchor: str | None = None


class GameObjectModel(BaseModel):
    """Validated shape of one persisted game object."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)
    name: str | None = None
    kind: str | None = None
    type: str | None = None
    transform: TransformModel = Field(default_factory=TransformModel)
    visible: bool = True
    tags: List[str] = Field(default_factory=list)
    components: List[Dict[str, Any]] = Field(default_factory=list)
    children: List["GameObjectModel"] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def _strip_id(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("id must be a non-empty string")
        return stripped


class ViewportModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    preset: str | None = None
    width: float | None = Field(default=None, gt=0)
    height: float | None = Field(default=None, gt=0)


class SceneDocumentModel(BaseModel):
    """Validated shape of a persisted scene document."""

    model_config = ConfigDict(extra="ignore")

    name: str
    viewport: ViewportModel | None = None
    objects: List[GameObjectModel] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        return validate_scene_name(value)


GameObjectModel.model_rebuild()


def validate_scene_name(name: str) -> str:
    """Strip and validate a scene name so it is safe to use as a file name."""

    if not isinstance(name, str):
        raise TypeError(f"scene name must be a string, got {type(name)!r}")
    stripped = name.strip()
    if not _SCENE_NAME_PATTERN.match(stripped):
        raise ValueError(
            "scene name must start with a letter or digit and contain only "
            "letters, digits, spaces, '-' or '_'"
        )
    return stripped


@dataclass
class SceneDocument:
    """A named scene: its object tree and the viewport it is authored for."""

    name: str
    viewport: Viewport
    store: DocumentStore = field(default_factory=DocumentStore)
    unreadable_scripts: set[str] = field(default_factory=set, compare=False, repr=False)

    def __post_init__(self) -> None:
        self.name = validate_scene_name(self.name)

    @property
    def objects(self) -> list[GameObject]:
        return self.store.roots

    def generate(self, existing_code: str | None = None) -> GenerationResult:
        return generate_scene(self.name, self.viewport, self.store.roots, existing_code)

    def to_payload(self, *, for_storage: bool = False) -> dict[str, Any]:
        """Return the JSON-serialisable document.

        With ``for_storage`` set, path-backed scripts and sprites keep only
        their path reference.
        """

        return {
            "name": self.name,
            "viewport": self.viewport.to_payload(),
            "objects": [node.to_payload(for_storage=for_storage) for node in self.store.roots],
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "SceneDocument":
        """Validate ``payload`` and build the document.

        Raises:
            ValueError: If the payload does not describe a valid scene.
        """

        try:
            model = SceneDocumentModel.model_validate(payload)
        except ValidationError as exc:
            raise ValueError(f"Invalid scene document: {exc}") from exc

        viewport_payload = (
            model.viewport.model_dump(exclude_none=True) if model.viewport else None
        )
        roots = [
            GameObject.from_payload(node.model_dump(exclude_none=True))
            for node in model.objects
        ]
        try:
            store = DocumentStore(roots)
        except ValueError as exc:
            raise ValueError(f"Invalid scene document '{model.name}': {exc}") from exc

        return cls(name=model.name, viewport=Viewport.from_payload(viewport_payload), store=store)

    @classmethod
    def new(cls, name: str, *, preset: str | None = None, width: float | None = None,
            height: float | None = None) -> "SceneDocument":
        """Create an empty scene for a named preset or a custom size."""

        if preset and preset != CUSTOM_PRESET:
            viewport = Viewport.from_preset(preset)
        elif width is not None and height is not None:
            viewport = Viewport(width=width, height=height)
        else:
            viewport = Viewport.from_payload(None)
        return cls(name=name, viewport=viewport)


class SceneStore(ABC):
    """Interface describing how scene documents are persisted."""

    @abstractmethod
    def save(self, document: SceneDocument) -> None:
        """Persist ``document`` under its name."""

    @abstractmethod
    def load(self, name: str) -> SceneDocument:
        """Return the stored scene.

        Raises:
            SceneNotFoundError: If the scene cannot be found.
        """

    @abstractmethod
    def delete(self, name: str) -> None:
        """Remove the stored scene if it exists."""

    @abstractmethod
    def list_scenes(self) -> List[str]:
        """Return the names of every stored scene."""

    def exists(self, name: str) -> bool:
        return validate_scene_name(name) in self.list_scenes()


class InMemorySceneStore(SceneStore):
    """Keep scene payloads in process memory."""

    def __init__(self) -> None:
        self._scenes: Dict[str, dict[str, Any]] = {}

    def save(self, document: SceneDocument) -> None:
        self._scenes[document.name] = json.loads(json.dumps(document.to_payload()))

    def load(self, name: str) -> SceneDocument:
        key = validate_scene_name(name)
        try:
            payload = self._scenes[key]
        except KeyError as exc:
            raise SceneNotFoundError(f"Scene '{name}' does not exist") from exc
        return SceneDocument.from_payload(payload)

    def delete(self, name: str) -> None:
        self._scenes.pop(validate_scene_name(name), None)

    def list_scenes(self) -> List[str]:
        return sorted(self._scenes)


class FileSceneStore(SceneStore):
    """Persist scene documents as JSON files, one per scene."""

    def __init__(self, storage_dir: Path) -> None:
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def save(self, document: SceneDocument) -> None:
        destination = self._scene_path(document.name)
        temporary = destination.with_name(f"{destination.name}.tmp")
        with temporary.open("w", encoding="utf-8") as handle:
            json.dump(document.to_payload(for_storage=True), handle, ensure_ascii=False, indent=2)
            handle.write("\n")
        temporary.replace(destination)
        logger.info("Saved scene '%s' to %s", document.name, destination)

    def load(self, name: str) -> SceneDocument:
        scene_file = self._scene_path(name)
        if not scene_file.exists():
            raise SceneNotFoundError(f"Scene '{name}' does not exist")
        try:
            payload = json.loads(scene_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Scene file {scene_file} is not valid JSON") from exc
        return SceneDocument.from_payload(payload)

    def delete(self, name: str) -> None:
        scene_file = self._scene_path(name)
        if scene_file.exists():
            scene_file.unlink()

    def list_scenes(self) -> List[str]:
        return sorted(
            scene_path.stem
            for scene_path in self.storage_dir.glob("*.json")
            if scene_path.is_file()
        )

    def _scene_path(self, name: str) -> Path:
        return self.storage_dir / f"{validate_scene_name(name)}.json"


class ScriptFileStore:
    """Read and write script text addressed by project-relative paths."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def resolve(self, relative_path: str) -> Path:
        """Return the absolute path for ``relative_path``.

        Raises:
            ValueError: If the path is absolute or escapes the project root.
        """

        candidate = Path(relative_path)
        if candidate.is_absolute():
            raise ValueError(f"Script path '{relative_path}' must be project-relative")
        root = self.root.resolve()
        resolved = (root / candidate).resolve()
        if resolved != root and root not in resolved.parents:
            raise ValueError(f"Script path '{relative_path}' escapes the project root")
        return resolved

    def exists(self, relative_path: str) -> bool:
        return self.resolve(relative_path).is_file()

    def read(self, relative_path: str) -> str:
        return self.resolve(relative_path).read_text(encoding="utf-8")

    def write(self, relative_path: str, content: str) -> Path:
        destination = self.resolve(relative_path)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_text(content, encoding="utf-8")
        return destination


@dataclass
class HydrationReport:
    loaded: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


def path_backed_scripts(document: SceneDocument):
    for node in document.store.walk():
        for component in node.components:
            if isinstance(component, ScriptComponent) and component.script_path:
                yield node, component


def hydrate_scripts(
    document: SceneDocument,
    scripts: ScriptFileStore,
    *,
    paths: Collection[str] | None = None,
) -> HydrationReport:
    """Load the code of every path-backed script into its component.

    With ``paths`` given, only scripts referring to one of those paths are
    loaded.

    Scripts that cannot be read are reported and left with empty code, which
    drops them from generated output. Their paths are remembered on the
    document so that saving it does not overwrite the files with nothing.
    """

    report = HydrationReport()
    for node, component in path_backed_scripts(document):
        path = component.script_path or ""
        if paths is not None and path not in paths:
            continue
        try:
            component.code = scripts.read(path)
        except (OSError, ValueError) as exc:
            component.code = ""
            document.unreadable_scripts.add(path)
            report.errors[path] = str(exc)
            logger.error("Could not read script %s for '%s': %s", path, node.name, exc)
            continue
        document.unreadable_scripts.discard(path)
        report.loaded.append(path)
    return report


def persist_scripts(document: SceneDocument, scripts: ScriptFileStore) -> list[Path]:
    """Write the inline copy of every path-backed script to its file.

    Empty code is written over an existing file, so clearing a script clears
    its file. Every path is checked before anything is written.

    Raises:
        ValueError: If a script path is absolute or escapes the project root.
    """

    pending = [
        (component.script_path or "", component.code)
        for _node, component in path_backed_scripts(document)
        if component.code
        or (
            component.script_path not in document.unreadable_scripts
            and scripts.exists(component.script_path or "")
        )
    ]
    for path, _code in pending:
        scripts.resolve(path)

    written: list[Path] = []
    for path, code in pending:
        written.append(scripts.write(path, code))
        document.unreadable_scripts.discard(path)
    return written


__all__ = [
    "FileSceneStore",
    "GameObjectModel",
    "HydrationReport",
    "InMemorySceneStore",
    "SceneAlreadyExistsError",
    "SceneDocument",
    "SceneDocumentModel",
    "SceneNotFoundError",
    "SceneStore",
    "ScriptFileStore",
    "TransformModel",
    "ViewportModel",
    "hydrate_scripts",
    "path_backed_scripts",
    "persist_scripts",
    "validate_scene_name",
]
