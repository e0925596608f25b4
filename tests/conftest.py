"""Test configuration for the scenekit project."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from typing import Callable

import pytest

from scenekit import DocumentStore, SceneDocument, Viewport


class SequentialIds:
    """Deterministic id factory producing ``n1``, ``n2``, ..."""

    def __init__(self, prefix: str = "n") -> None:
        self.prefix = prefix
        self.issued = 0

    def __call__(self) -> str:
        self.issued += 1
        return f"{self.prefix}{self.issued}"


@pytest.fixture()
def id_factory() -> SequentialIds:
    """Return a fresh deterministic id factory."""

    return SequentialIds()


@pytest.fixture()
def make_store(id_factory: SequentialIds) -> Callable[[], DocumentStore]:
    """Factory fixture for empty stores sharing the deterministic ids."""

    def _factory() -> DocumentStore:
        return DocumentStore(id_factory=id_factory)

    return _factory


@pytest.fixture()
def sample_store(id_factory: SequentialIds) -> DocumentStore:
    """A small tree: Player (n1) holding Sword (n2), then Enemy (n3)."""

    store = DocumentStore(id_factory=id_factory)
    player = store.create("rectangle", name="Player")
    store.create("rectangle", parent_id=player.id, name="Sword")
    store.create("circle", name="Enemy")
    return store


@pytest.fixture()
def portrait() -> Viewport:
    return Viewport.from_preset("mobile-portrait")


@pytest.fixture()
def sample_document(sample_store: DocumentStore, portrait: Viewport) -> SceneDocument:
    return SceneDocument(name="Main Scene", viewport=portrait, store=sample_store)


__all__ = ["SequentialIds", "id_factory", "make_store", "sample_store"]
