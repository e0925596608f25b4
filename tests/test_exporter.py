import asyncio
from pathlib import Path

from scenekit.codegen import USER_SCENE, USER_SCENE_PLACEHOLDER, extract_region
from scenekit.document import DocumentStore
from scenekit.exporter import ProjectExporter
from scenekit.persistence import SceneDocument, ScriptFileStore
from scenekit.viewport import Viewport


def test_export_writes_scenes_and_index(tmp_path: Path, sample_document: SceneDocument) -> None:
    second = SceneDocument(name="Level 2", viewport=sample_document.viewport)
    exporter = ProjectExporter(tmp_path)

    report = asyncio.run(exporter.export([sample_document, second]))

    assert report.ok
    assert report.written == [
        tmp_path / "scenes" / "MainScene.js",
        tmp_path / "scenes" / "Level2.js",
    ]
    assert report.index_path == tmp_path / "index.js"
    index = (tmp_path / "index.js").read_text(encoding="utf-8")
    assert "import { Level2 } from './scenes/Level2';" in index
    scene = (tmp_path / "scenes" / "MainScene.js").read_text(encoding="utf-8")
    assert "export function MainScene(ctx) {" in scene
    assert not list((tmp_path / "scenes").glob("*.tmp"))


def test_export_preserves_user_code_on_disk(
    tmp_path: Path, sample_document: SceneDocument
) -> None:
    exporter = ProjectExporter(tmp_path)
    exporter.export_sync([sample_document])
    scene_file = exporter.scene_path(sample_document)
    custom = "  console.log('kept');\n"
    scene_file.write_text(
        scene_file.read_text(encoding="utf-8").replace(USER_SCENE_PLACEHOLDER, custom),
        encoding="utf-8",
    )

    sample_document.store.rename("n3", "Boss")
    exporter.export_sync([sample_document])

    regenerated = scene_file.read_text(encoding="utf-8")
    assert extract_region(regenerated, USER_SCENE) == custom
    assert "const boss = ctx.add([" in regenerated


def test_failed_scene_does_not_stop_the_batch(
    tmp_path: Path, sample_document: SceneDocument
) -> None:
    blocked = SceneDocument(name="Blocked", viewport=Viewport(width=100, height=100))
    exporter = ProjectExporter(tmp_path)
    (tmp_path / "scenes").mkdir()
    exporter.scene_path(blocked).mkdir()

    report = exporter.export_sync([blocked, sample_document])

    assert list(report.errors) == ["Blocked"]
    assert report.written == [tmp_path / "scenes" / "MainScene.js"]
    assert report.ok is False


def test_unreadable_scripts_are_reported_and_dropped(tmp_path: Path) -> None:
    store = DocumentStore()
    node = store.create("rectangle", name="Hero")
    store.add_component(node.id, {"type": "Script", "scriptPath": "scripts/hero.js"})
    document = SceneDocument(name="Main", viewport=Viewport.from_preset("classic"), store=store)
    exporter = ProjectExporter(tmp_path, script_store=ScriptFileStore(tmp_path))

    report = exporter.export_sync([document])

    assert list(report.script_errors) == ["scripts/hero.js"]
    assert report.written == [tmp_path / "scenes" / "Main.js"]
    assert "const self = hero;" not in report.results["Main"].code


def test_hydrated_scripts_are_emitted(tmp_path: Path) -> None:
    scripts = ScriptFileStore(tmp_path)
    scripts.write("scripts/hero.js", "self.speed = 2;\n")
    store = DocumentStore()
    node = store.create("rectangle", name="Hero")
    store.add_component(node.id, {"type": "Script", "scriptPath": "scripts/hero.js"})
    document = SceneDocument(name="Main", viewport=Viewport.from_preset("classic"), store=store)

    report = ProjectExporter(tmp_path, script_store=scripts).export_sync([document])

    assert report.ok
    assert "self.speed = 2;" in report.results["Main"].code


def test_index_can_be_disabled(tmp_path: Path, sample_document: SceneDocument) -> None:
    report = ProjectExporter(tmp_path, write_index=False).export_sync([sample_document])

    assert report.index_path is None
    assert not (tmp_path / "index.js").exists()


def test_index_lists_previously_written_scenes(
    tmp_path: Path, sample_document: SceneDocument
) -> None:
    other = SceneDocument(name="Level 2", viewport=sample_document.viewport)
    exporter = ProjectExporter(tmp_path)
    exporter.export_sync([other])

    report = asyncio.run(
        exporter.export([sample_document], index_documents=[sample_document, other])
    )

    assert report.written == [tmp_path / "scenes" / "MainScene.js"]
    index = (tmp_path / "index.js").read_text(encoding="utf-8")
    assert "import { MainScene } from './scenes/MainScene';" in index
    assert "import { Level2 } from './scenes/Level2';" in index


def test_scenes_sharing_a_module_name_are_not_overwritten(tmp_path: Path) -> None:
    viewport = Viewport.from_preset("classic")
    first = SceneDocument(name="Level 2", viewport=viewport)
    first.store.create("rectangle", name="Only In First")
    second = SceneDocument(name="Level-2", viewport=viewport)

    report = ProjectExporter(tmp_path).export_sync([first, second])

    assert report.written == [tmp_path / "scenes" / "Level2.js"]
    assert "Level 2" in report.errors["Level-2"]
    assert "const only_in_first = ctx.add([" in (tmp_path / "scenes" / "Level2.js").read_text(
        encoding="utf-8"
    )
    index = (tmp_path / "index.js").read_text(encoding="utf-8")
    assert index.count("import { Level2 } from './scenes/Level2';") == 1
