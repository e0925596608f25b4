"""Disposable UI state that accompanies a document store."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from .document import DocumentStore, MovePosition, RemovedSubtree


@dataclass
class EditorSession:
    """Selection, drag and expansion state for one editing session.

    The document store never reads or writes this state. Commands that remove
    nodes go through :meth:`remove` (or call :meth:`forget` with the removed
    ids) so the session does not keep pointing at nodes that no longer exist.
    """

    selected_ids: list[str] = field(default_factory=list)
    expanded_ids: set[str] = field(default_factory=set)
    drag_source_id: str | None = None
    drop_target_id: str | None = None

    def select(self, node_id: str | None, *, additive: bool = False) -> None:
        if node_id is None:
            self.selected_ids = []
            return
        if not additive:
            self.selected_ids = [node_id]
        elif node_id not in self.selected_ids:
            self.selected_ids.append(node_id)

    @property
    def primary_selection(self) -> str | None:
        return self.selected_ids[-1] if self.selected_ids else None

    def begin_drag(self, node_id: str) -> None:
        self.drag_source_id = node_id
        self.drop_target_id = None

    def hover(self, target_id: str | None) -> None:
        self.drop_target_id = target_id

    def drop(self, store: DocumentStore, position: MovePosition | str) -> bool:
        """Finish a drag by moving the source onto the hovered target."""

        source, target = self.drag_source_id, self.drop_target_id
        self.drag_source_id = None
        self.drop_target_id = None
        if source is None or target is None:
            return False
        placement = MovePosition.parse(position)
        moved = store.move(source, target, placement)
        if moved and placement is MovePosition.INTO:
            self.expanded_ids.add(target)
        return moved

    def forget(self, node_ids: Iterable[str]) -> None:
        """Drop every reference to ``node_ids``."""

        gone = set(node_ids)
        self.selected_ids = [node_id for node_id in self.selected_ids if node_id not in gone]
        self.expanded_ids -= gone
        if self.drag_source_id in gone:
            self.drag_source_id = None
        if self.drop_target_id in gone:
            self.drop_target_id = None

    def remove(self, store: DocumentStore, node_id: str) -> RemovedSubtree:
        removed = store.remove(node_id)
        self.forget(removed.node.subtree_ids())
        return removed

    def prune(self, store: DocumentStore) -> None:
        """Forget ids that are no longer present in ``store``."""

        referenced = set(self.selected_ids) | self.expanded_ids
        referenced.update(
            node_id for node_id in (self.drag_source_id, self.drop_target_id) if node_id
        )
        self.forget(node_id for node_id in referenced if node_id not in store)


__all__ = ["EditorSession"]
