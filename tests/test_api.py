"""Tests for the FastAPI scene editing endpoints."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from scenekit.api import EditorService, EditorSettings, create_app


def _client(settings: EditorSettings | None = None) -> TestClient:
    return TestClient(create_app(settings or EditorSettings()))


def _create_scene(client: TestClient, name: str = "Main", **extra: Any) -> dict[str, Any]:
    response = client.post("/api/scenes", json={"name": name, **extra})
    assert response.status_code == 201, response.text
    return response.json()


def _create_object(client: TestClient, scene: str = "Main", **payload: Any) -> dict[str, Any]:
    response = client.post(f"/api/scenes/{scene}/objects", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_presets_endpoint_lists_table() -> None:
    response = _client().get("/api/presets")

    assert response.status_code == 200
    names = [preset["name"] for preset in response.json()["data"]]
    assert names[0] == "mobile-portrait"
    assert "desktop-fhd" in names


def test_scene_lifecycle() -> None:
    client = _client()

    created = _create_scene(client)
    assert created["viewport"] == {"preset": "mobile-portrait", "width": 360, "height": 640}
    assert created["objects"] == []

    duplicate = client.post("/api/scenes", json={"name": "Main"})
    assert duplicate.status_code == 409

    listing = client.get("/api/scenes").json()["data"]
    assert [summary["name"] for summary in listing] == ["Main"]

    assert client.delete("/api/scenes/Main").status_code == 204
    assert client.get("/api/scenes/Main").status_code == 404


def test_create_scene_validation() -> None:
    client = _client()

    assert client.post("/api/scenes", json={"name": "a/b"}).status_code == 400
    assert client.post("/api/scenes", json={"name": "A", "preset": "watch"}).status_code == 400
    assert client.post("/api/scenes", json={"name": "A", "width": 10}).status_code == 422

    custom = _create_scene(client, "Custom", width=500, height=300)
    assert custom["viewport"]["preset"] == "custom"


def test_object_editing_flow() -> None:
    client = _client()
    _create_scene(client)

    player = _create_object(client, kind="rectangle", name="Player")
    player_id = player["node"]["id"]
    child = _create_object(client, kind="circle", parent_id=player_id)
    assert child["parent_id"] == player_id
    assert child["node"]["transform"]["x"] == 200

    updated = client.patch(
        f"/api/scenes/Main/objects/{player_id}",
        json={"name": "Hero", "transform": {"x": 10}, "tags": ["player"]},
    )
    assert updated.status_code == 200
    assert updated.json()["node"]["name"] == "Hero"
    assert updated.json()["node"]["tags"] == ["player"]

    bad = client.patch(
        f"/api/scenes/Main/objects/{player_id}", json={"transform": {"anchor": "middle"}}
    )
    assert bad.status_code == 400

    unknown_field = client.patch(f"/api/scenes/Main/objects/{player_id}", json={"colour": "x"})
    assert unknown_field.status_code == 422

    missing = client.patch("/api/scenes/Main/objects/nope", json={"name": "X"})
    assert missing.status_code == 404

    scene = client.get("/api/scenes/Main").json()
    assert scene["objects"][0]["name"] == "Hero"
    assert scene["objects"][0]["children"][0]["id"] == child["node"]["id"]


def test_move_duplicate_and_remove() -> None:
    client = _client()
    _create_scene(client)
    parent_id = _create_object(client, name="Parent")["node"]["id"]
    child_id = _create_object(client, name="Child", parent_id=parent_id)["node"]["id"]
    other_id = _create_object(client, name="Other")["node"]["id"]

    rejected = client.post(
        f"/api/scenes/Main/objects/{parent_id}/move",
        json={"target_id": child_id, "position": "intoAsChild"},
    )
    assert rejected.status_code == 409

    moved = client.post(
        f"/api/scenes/Main/objects/{other_id}/move",
        json={"target_id": parent_id, "position": "before"},
    )
    assert moved.status_code == 200
    assert moved.json() == {"moved": True, "parent_id": None, "index": 0}

    copy = client.post(f"/api/scenes/Main/objects/{parent_id}/duplicate")
    assert copy.status_code == 201
    copy_node = copy.json()["node"]
    assert copy_node["id"] not in {parent_id, child_id, other_id}
    assert copy_node["children"][0]["id"] != child_id
    assert copy.json()["index"] == 2

    removed = client.delete(f"/api/scenes/Main/objects/{parent_id}")
    assert removed.status_code == 200
    assert removed.json()["removed_ids"] == [parent_id, child_id]
    assert removed.json()["index"] == 1

    listing = client.get("/api/scenes").json()["data"]
    assert listing[0]["object_count"] == 3


def test_viewport_update() -> None:
    client = _client()
    _create_scene(client)

    preset = client.put("/api/scenes/Main/viewport", json={"preset": "desktop-hd"})
    assert preset.json() == {"preset": "desktop-hd", "width": 1280, "height": 720}

    custom = client.put("/api/scenes/Main/viewport", json={"width": 320, "height": 200})
    assert custom.json()["preset"] == "custom"

    incomplete = client.put("/api/scenes/Main/viewport", json={"width": 320})
    assert incomplete.status_code == 422


def test_generate_without_project_root() -> None:
    client = _client()
    _create_scene(client)
    node_id = _create_object(client, name="Box")["node"]["id"]

    response = client.post("/api/scenes/Main/generate")

    assert response.status_code == 200
    body = response.json()
    assert "export function Main(ctx) {" in body["code"]
    assert body["identifiers"] == {node_id: "box"}
    assert body["helpers"] == ["pos", "anchor", "rect"]
    assert body["written"] == []

    write = client.post("/api/scenes/Main/generate", json={"write": True})
    assert write.status_code == 400


def test_generate_writes_under_project_root(tmp_path: Path) -> None:
    client = _client(EditorSettings(project_root=tmp_path))
    _create_scene(client, "Level One")
    _create_object(client, "Level One", name="Hero")

    response = client.post("/api/scenes/Level One/generate", json={"write": True})

    assert response.status_code == 200, response.text
    scene_file = tmp_path / "scenes" / "LevelOne.js"
    assert response.json()["written"] == [str(scene_file)]
    assert scene_file.read_text(encoding="utf-8") == response.json()["code"]
    assert (tmp_path / "index.js").exists()
    assert (tmp_path / "scenes-data" / "Level One.json").exists()


def test_scenes_reload_from_disk(tmp_path: Path) -> None:
    settings = EditorSettings(project_root=tmp_path)
    first = _client(settings)
    _create_scene(first, "Saved")
    _create_object(first, "Saved", name="Scripted", kind="empty")

    second = _client(settings)
    scene = second.get("/api/scenes/Saved").json()

    assert scene["objects"][0]["name"] == "Scripted"


def test_script_code_round_trips_through_script_files(tmp_path: Path) -> None:
    settings = EditorSettings(project_root=tmp_path)
    client = _client(settings)
    _create_scene(client)
    node_id = _create_object(client, name="Hero")["node"]["id"]
    script = {"type": "Script", "scriptPath": "scripts/hero.js", "code": "self.speed = 4;"}

    response = client.patch(
        f"/api/scenes/Main/objects/{node_id}",
        json={"components": [{"type": "rect"}, script]},
    )

    assert response.status_code == 200, response.text
    assert (tmp_path / "scripts" / "hero.js").read_text(encoding="utf-8") == "self.speed = 4;"

    reloaded = _client(settings).post("/api/scenes/Main/generate").json()
    assert "self.speed = 4;" in reloaded["code"]


def test_service_rejects_unknown_default_preset() -> None:
    with pytest.raises(ValueError):
        EditorService(default_preset="watch")


def test_scene_names_sharing_a_module_are_rejected() -> None:
    client = _client()
    _create_scene(client, "Level 2")

    response = client.post("/api/scenes", json={"name": "Level-2"})

    assert response.status_code == 409
    assert "Level2" in response.json()["detail"]


def test_failed_update_leaves_the_scene_unchanged(tmp_path: Path) -> None:
    client = _client(EditorSettings(project_root=tmp_path))
    _create_scene(client)
    node_id = _create_object(client, name="Hero")["node"]["id"]
    script = {"type": "Script", "scriptPath": "../../evil.js", "code": "x();"}

    response = client.patch(
        f"/api/scenes/Main/objects/{node_id}",
        json={"name": "Renamed", "components": [script]},
    )

    assert response.status_code == 400
    assert client.get("/api/scenes/Main").json()["objects"][0]["name"] == "Hero"
    stored = json.loads((tmp_path / "scenes-data" / "Main.json").read_text(encoding="utf-8"))
    assert stored["objects"][0]["name"] == "Hero"
    assert not (tmp_path.parent.parent / "evil.js").exists()
    _create_object(client, name="Next")


def test_attach_script_writes_template(tmp_path: Path) -> None:
    client = _client(EditorSettings(project_root=tmp_path))
    _create_scene(client)
    hero_id = _create_object(client, name="Hero")["node"]["id"]
    _create_object(client, name="Enemy")

    response = client.post(
        f"/api/scenes/Main/objects/{hero_id}/script",
        json={
            "script_path": "scripts/hero.js",
            "include_update": False,
            "references": ["Enemy"],
        },
    )

    assert response.status_code == 201, response.text
    script = [c for c in response.json()["node"]["components"] if c["type"] == "Script"]
    assert script[0]["scriptPath"] == "scripts/hero.js"
    assert script[0]["scriptMeta"]["references"] == ["Enemy"]
    source = (tmp_path / "scripts" / "hero.js").read_text(encoding="utf-8")
    assert source.startswith("// Hero\n")
    assert '  Enemy = ctx.get("enemy")[0] ?? null;' in source
    assert "update(dt)" not in source

    code = client.post("/api/scenes/Main/generate").json()["code"]
    assert "let Enemy = null;" in code
    assert "get enemy() { return enemy; }," in code
    assert "hero_script.ready();" in code


def test_attach_inline_script_without_project_root() -> None:
    client = _client()
    _create_scene(client)
    node_id = _create_object(client, name="Hero")["node"]["id"]

    inline = client.post(f"/api/scenes/Main/objects/{node_id}/script", json={})
    with_file = client.post(
        f"/api/scenes/Main/objects/{node_id}/script", json={"script_path": "scripts/a.js"}
    )

    assert inline.status_code == 201
    scripts = [c for c in inline.json()["node"]["components"] if c["type"] == "Script"]
    assert len(scripts) == 1
    assert "export function update(dt) {" in scripts[0]["code"]
    assert with_file.status_code == 400


def test_export_all_skips_scenes_that_fail_to_load(tmp_path: Path) -> None:
    service = EditorService.from_settings(EditorSettings(project_root=tmp_path))
    service.create_scene("Good")
    (tmp_path / "scenes-data" / "Broken.json").write_text("{not json", encoding="utf-8")

    report = asyncio.run(service.export_all())

    assert report.written == [tmp_path / "scenes" / "Good.js"]
    assert "not valid JSON" in report.errors["Broken"]
    assert report.index_path == tmp_path / "index.js"
