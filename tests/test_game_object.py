import pytest

from scenekit.components import ScriptComponent, ShapeComponent, ShapeType, TextComponent
from scenekit.game_object import (
    GameObject,
    NodeKind,
    Transform,
    clone_subtree,
    default_components,
    default_transform,
)


def test_creation_defaults_per_kind() -> None:
    rect = default_transform(NodeKind.RECTANGLE)
    circle = default_transform(NodeKind.CIRCLE)

    assert (rect.x, rect.y, rect.width, rect.height) == (200, 200, 50, 50)
    assert (circle.x, circle.y) == (250, 250)
    assert rect.anchor == "center"

    [shape] = default_components(NodeKind.CIRCLE)
    assert isinstance(shape, ShapeComponent)
    assert shape.shape_type is ShapeType.CIRCLE
    assert shape.color == "#ff6464"
    assert isinstance(default_components(NodeKind.TEXT)[0], TextComponent)
    assert default_components(NodeKind.EMPTY) == []


def test_node_kind_parse_accepts_aliases() -> None:
    assert NodeKind.parse("Rect") is NodeKind.RECTANGLE
    with pytest.raises(ValueError):
        NodeKind.parse("hexagon")


def test_transform_patch_validates_fields() -> None:
    transform = Transform(x=1, y=2, width=3, height=4)

    patched = transform.patched({"x": 10, "anchor": "TopLeft"})
    assert (patched.x, patched.y, patched.anchor) == (10.0, 2, "topleft")
    assert transform.x == 1

    with pytest.raises(ValueError):
        transform.patched({"depth": 1})
    with pytest.raises(ValueError):
        transform.patched({"anchor": "middle"})
    with pytest.raises(TypeError):
        transform.patched({"x": "ten"})


def test_walk_is_preorder_in_document_order() -> None:
    root = GameObject(
        id="a",
        name="A",
        children=[
            GameObject(id="b", name="B", children=[GameObject(id="c", name="C")]),
            GameObject(id="d", name="D"),
        ],
    )

    assert root.subtree_ids() == ["a", "b", "c", "d"]


def test_payload_round_trip_with_legacy_fields() -> None:
    payload = {
        "id": "hero",
        "name": "Hero",
        "type": "rect",
        "transform": {"x": 10, "y": 20, "scaleX": 2, "scaleY": 2},
        "tags": ["player", "friendly"],
        "components": [
            {"type": "rect", "properties": {"color": "#00ff00"}},
            {"type": "Script", "scriptPath": "scripts/hero.js", "code": "let a = 1;"},
        ],
        "children": [{"id": "hat", "name": "Hat"}],
    }

    node = GameObject.from_payload(payload)

    assert node.kind is NodeKind.RECTANGLE
    assert (node.transform.x, node.transform.y) == (10, 20)
    assert (node.transform.width, node.transform.height) == (50, 50)
    assert node.transform.anchor == "center"
    assert node.tags == {"player", "friendly"}
    assert node.children[0].kind is NodeKind.EMPTY

    stored = node.to_payload(for_storage=True)
    assert stored["tags"] == ["friendly", "player"]
    assert stored["components"][1]["code"] == ""
    assert GameObject.from_payload(node.to_payload()) == node


def test_from_payload_requires_id() -> None:
    with pytest.raises(ValueError):
        GameObject.from_payload({"name": "Nameless"})


def test_find_component_skips_disabled() -> None:
    disabled = ScriptComponent(code="a", enabled=False)
    enabled = ScriptComponent(code="b")
    node = GameObject(id="n", name="N", components=[disabled, enabled])

    assert node.find_component(ScriptComponent) is enabled


def test_clone_subtree_shares_nothing() -> None:
    node = GameObject(
        id="n",
        name="N",
        tags={"a"},
        components=[ShapeComponent()],
        children=[GameObject(id="m", name="M")],
    )

    copy = clone_subtree(node)
    copy.tags.add("b")
    copy.components[0].color = "#000000"
    copy.children[0].name = "Changed"

    assert node.tags == {"a"}
    assert node.components[0].color == "#ffffff"
    assert node.children[0].name == "M"
