"""
Drag-and-drop session for the file tree.

idle -> dragging(source) -> hovering(source, target) -> committed | cancelled

Committing consults validate_move; persisting the move is left to the caller.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional

from .item_tree import validate_move
from .models import MoveResult, NotesItem


class DragState(str, Enum):
    idle = "idle"
    dragging = "dragging"
    hovering = "hovering"
    committed = "committed"
    cancelled = "cancelled"


class DragStateError(RuntimeError):
    pass


class DragSession:
    def __init__(self):
        self.state = DragState.idle
        self.source_id: Optional[str] = None
        self.target_id: Optional[str] = None
        self.result: Optional[MoveResult] = None

    def _expect(self, *states: DragState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise DragStateError(f"Drag session is {self.state.value}, expected one of: {allowed}")

    def start(self, source_id: str) -> None:
        self._expect(DragState.idle)
        self.state = DragState.dragging
        self.source_id = source_id

    def hover(self, target_id: Optional[str]) -> None:
        """Hover a folder/file, or the root drop zone when target_id is None."""
        self._expect(DragState.dragging, DragState.hovering)
        self.state = DragState.hovering
        self.target_id = target_id

    def leave(self) -> None:
        self._expect(DragState.hovering)
        self.state = DragState.dragging
        self.target_id = None

    def drop(self, items: Iterable[NotesItem]) -> MoveResult:
        """
        Commit the drop. An invalid target ends the session as cancelled and
        the returned result says why; nothing is mutated either way.
        """
        self._expect(DragState.hovering)
        self.result = validate_move(self.source_id, self.target_id, items)
        self.state = DragState.committed if self.result.ok else DragState.cancelled
        return self.result

    def cancel(self) -> None:
        self._expect(DragState.dragging, DragState.hovering)
        self.state = DragState.cancelled

    def reset(self) -> None:
        self.__init__()

    @property
    def finished(self) -> bool:
        return self.state in (DragState.committed, DragState.cancelled)
