import pytest

from scenekit.components import ShapeComponent
from scenekit.document import (
    DocumentStore,
    DuplicateNodeError,
    MovePosition,
    NodeNotFoundError,
)
from scenekit.game_object import GameObject, NodeKind


def _ids(nodes: list[GameObject]) -> list[str]:
    return [node.id for node in nodes]


def test_create_assigns_defaults_and_names(make_store) -> None:
    store = make_store()

    first = store.create("rectangle")
    second = store.create(NodeKind.RECTANGLE)

    assert (first.id, second.id) == ("n1", "n2")
    assert (first.name, second.name) == ("Rectangle 1", "Rectangle 2")
    assert isinstance(first.components[0], ShapeComponent)
    assert _ids(store.roots) == ["n1", "n2"]


def test_child_starts_at_parent_position(sample_store: DocumentStore) -> None:
    parent = sample_store.get("n1")
    parent.transform.x = 90

    child = sample_store.create("circle", parent_id="n1")

    assert child.transform.x == 90
    assert sample_store.parent_of(child.id) == "n1"
    assert _ids(sample_store.children_of("n1")) == ["n2", child.id]


def test_create_under_unknown_parent_raises(sample_store: DocumentStore) -> None:
    with pytest.raises(NodeNotFoundError):
        sample_store.create("rectangle", parent_id="missing")
    assert len(sample_store) == 3


def test_update_is_all_or_nothing(sample_store: DocumentStore) -> None:
    with pytest.raises(ValueError):
        sample_store.update("n1", {"name": "Renamed", "transform": {"x": "left"}})

    node = sample_store.get("n1")
    assert node.name == "Player"
    assert node.transform.x == 200

    with pytest.raises(ValueError):
        sample_store.update("n1", {"colour": "red"})


def test_update_applies_every_field(sample_store: DocumentStore) -> None:
    node = sample_store.update(
        "n1",
        {
            "name": " Hero ",
            "visible": False,
            "tags": ["player", "player", " "],
            "transform": {"x": 10, "rotation": 45},
            "components": [{"type": "Physics"}],
        },
    )

    assert node.name == "Hero"
    assert node.visible is False
    assert node.tags == {"player"}
    assert (node.transform.x, node.transform.y, node.transform.rotation) == (10, 200, 45)
    assert [component.type_name for component in node.components] == ["Physics"]


def test_component_commands(sample_store: DocumentStore) -> None:
    sample_store.add_component("n1", {"type": "Area", "scale": 2})
    area = sample_store.update_component("n1", 1, {"friction": 0.5})

    assert area.friction == 0.5
    assert area.scale.x == 2

    removed = sample_store.remove_component("n1", 0)
    assert isinstance(removed, ShapeComponent)
    with pytest.raises(IndexError):
        sample_store.remove_component("n1", 5)


def test_remove_then_insert_restores_position(sample_store: DocumentStore) -> None:
    before = [node.to_payload() for node in sample_store.roots]

    removed = sample_store.remove("n1")

    assert "n1" not in sample_store
    assert "n2" not in sample_store
    assert (removed.parent_id, removed.index) == (None, 0)

    sample_store.insert(removed)

    assert [node.to_payload() for node in sample_store.roots] == before
    assert sample_store.parent_of("n2") == "n1"


def test_insert_rejects_ids_already_present(sample_store: DocumentStore) -> None:
    with pytest.raises(DuplicateNodeError):
        sample_store.insert(GameObject(id="n3", name="Clash"))


def test_move_before_after_and_into(sample_store: DocumentStore) -> None:
    assert sample_store.move("n3", "n1", MovePosition.BEFORE) is True
    assert _ids(sample_store.roots) == ["n3", "n1"]

    assert sample_store.move("n3", "n2", "after") is True
    assert _ids(sample_store.children_of("n1")) == ["n2", "n3"]

    assert sample_store.move("n2", "n3", "intoAsChild") is True
    assert sample_store.parent_of("n2") == "n3"
    assert sample_store.is_descendant("n1", "n2")


def test_move_into_own_descendant_is_rejected(sample_store: DocumentStore) -> None:
    before = [node.to_payload() for node in sample_store.roots]

    assert sample_store.move("n1", "n2", MovePosition.INTO) is False
    assert sample_store.move("n1", "n1", MovePosition.AFTER) is False

    assert [node.to_payload() for node in sample_store.roots] == before


def test_move_with_unknown_ids_raises(sample_store: DocumentStore) -> None:
    with pytest.raises(NodeNotFoundError):
        sample_store.move("n1", "nowhere")
    with pytest.raises(ValueError):
        sample_store.move("n1", "n3", "sideways")


def test_duplicate_allocates_fresh_ids_for_whole_subtree(sample_store: DocumentStore) -> None:
    sample_store.create("text", parent_id="n2", name="Label")

    copy = sample_store.duplicate("n1")

    copied_ids = copy.subtree_ids()
    assert len(copied_ids) == 3
    assert not set(copied_ids) & {"n1", "n2", "n4"}
    assert len(sample_store) == 7
    assert _ids(sample_store.roots) == ["n1", copy.id, "n3"]
    assert copy.name == "Player"
    assert (copy.transform.x, copy.transform.y) == (220, 220)
    assert copy.children[0].transform.x == 220

    copy.children[0].name = "Changed"
    assert sample_store.get("n2").name == "Sword"


def test_reorder_within_siblings(sample_store: DocumentStore) -> None:
    sample_store.reorder("n3", 0)

    assert _ids(sample_store.roots) == ["n3", "n1"]
    assert sample_store.index_of("n1") == 1


def test_ids_stay_unique_after_mixed_commands(sample_store: DocumentStore) -> None:
    sample_store.duplicate("n1")
    sample_store.move("n3", "n1", "into")
    removed = sample_store.remove("n2")
    sample_store.insert(removed, parent_id="n3")

    ids = [node.id for node in sample_store.walk()]
    assert len(ids) == len(set(ids)) == len(sample_store)


def test_snapshot_is_independent(sample_store: DocumentStore) -> None:
    snapshot = sample_store.snapshot()
    sample_store.rename("n1", "Changed")

    assert snapshot[0].name == "Player"


def test_restore_puts_a_snapshot_back(sample_store: DocumentStore) -> None:
    snapshot = sample_store.snapshot()
    sample_store.remove("n1")
    sample_store.create("circle", name="Extra")

    sample_store.restore(snapshot)

    assert _ids(sample_store.roots) == ["n1", "n3"]
    assert sample_store.parent_of("n2") == "n1"
    assert sample_store.get("n2").name == "Sword"
    assert len(sample_store) == 3


def test_constructor_rejects_duplicate_ids() -> None:
    with pytest.raises(DuplicateNodeError):
        DocumentStore([GameObject(id="a", name="A"), GameObject(id="a", name="B")])
