"""
Undo/Redo history of per-page marker snapshots.
"""
import copy
import itertools
from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional, Sequence, Tuple

from .models import Marker


@dataclass(frozen=True)
class HistoryEntry:
    """Full marker collection of one page, captured before an operation."""
    page_number: int
    operation: str
    markers: Tuple[Marker, ...]
    serial: int = field(default=0, compare=False)


_serials = itertools.count(1)


def snapshot(page_number: int, operation: str, markers: Sequence[Marker]) -> HistoryEntry:
    return HistoryEntry(page_number, operation,
                        tuple(copy.deepcopy(m) for m in markers), next(_serials))


class HistoryManager:
    """Manages undo/redo stacks of marker snapshots."""

    def __init__(self, max_depth: int = 50):
        """
        Initialize the history.

        Args:
            max_depth: Maximum number of entries to keep; oldest are dropped
        """
        self.undo_stack: List[HistoryEntry] = []
        self.redo_stack: List[HistoryEntry] = []
        self.max_depth = max_depth

    def push(self, page_number: int, operation: str,
             markers: Sequence[Marker]) -> HistoryEntry:
        """
        Record the pre-mutation state of a page.

        Args:
            page_number: Page the operation touches
            operation: Name of the operation, e.g. "add"
            markers: The page's markers before the operation

        Returns:
            The entry pushed, so callers can discard it on rollback
        """
        entry = snapshot(page_number, operation, markers)
        self.undo_stack.append(entry)

        # A new action invalidates everything that was undone
        self.redo_stack.clear()

        if len(self.undo_stack) > self.max_depth:
            self.undo_stack.pop(0)
        return entry

    def can_undo(self) -> bool:
        return len(self.undo_stack) > 0

    def can_redo(self) -> bool:
        return len(self.redo_stack) > 0

    def undo(self, current_for: Callable[[int], Sequence[Marker]]) -> Optional[HistoryEntry]:
        """
        Pop the last entry and stash the page's current state for redo.

        Args:
            current_for: Returns the current markers of a page

        Returns:
            The entry to restore, or None when there is nothing to undo
        """
        if not self.can_undo():
            return None

        entry = self.undo_stack.pop()
        self.redo_stack.append(
            snapshot(entry.page_number, entry.operation, current_for(entry.page_number))
        )
        return entry

    def redo(self, current_for: Callable[[int], Sequence[Marker]]) -> Optional[HistoryEntry]:
        """Mirror of undo()."""
        if not self.can_redo():
            return None

        entry = self.redo_stack.pop()
        self.undo_stack.append(
            snapshot(entry.page_number, entry.operation, current_for(entry.page_number))
        )
        return entry

    def discard(self, entry: HistoryEntry) -> bool:
        """
        Remove a specific entry from the undo stack.

        Returns:
            True if the entry was still on the stack
        """
        for index in range(len(self.undo_stack) - 1, -1, -1):
            if self.undo_stack[index].serial == entry.serial:
                del self.undo_stack[index]
                return True
        return False

    def remap_id(self, old_id: str, new_id: str) -> None:
        """Rewrite a marker id inside every stored snapshot."""
        for stack in (self.undo_stack, self.redo_stack):
            for index, entry in enumerate(stack):
                if not any(m.id == old_id for m in entry.markers):
                    continue
                markers = []
                for marker in entry.markers:
                    if marker.id == old_id:
                        marker = replace(marker, id=new_id)
                    markers.append(marker)
                stack[index] = replace(entry, markers=tuple(markers))

    def forget_marker(self, marker_id: str) -> None:
        """Drop a marker the backend never stored from every snapshot."""
        for stack in (self.undo_stack, self.redo_stack):
            for index, entry in enumerate(stack):
                if any(m.id == marker_id for m in entry.markers):
                    markers = tuple(m for m in entry.markers if m.id != marker_id)
                    stack[index] = replace(entry, markers=markers)

    def pin_marker(self, marker: Marker, after_serial: int,
                   position: Optional[int] = None) -> None:
        """
        Force a marker's state in every snapshot of its page newer than
        after_serial, inserting it where it is missing.

        Args:
            marker: The state the backend holds
            after_serial: Snapshots with this serial or older are left alone
            position: Index to insert at when a snapshot lacks the marker
        """
        for stack in (self.undo_stack, self.redo_stack):
            for index, entry in enumerate(stack):
                if entry.serial <= after_serial or entry.page_number != marker.page_number:
                    continue
                markers = list(entry.markers)
                at = next((i for i, m in enumerate(markers) if m.id == marker.id), None)
                if at is None:
                    at = len(markers) if position is None else min(position, len(markers))
                    markers.insert(at, copy.deepcopy(marker))
                else:
                    markers[at] = copy.deepcopy(marker)
                stack[index] = replace(entry, markers=tuple(markers))

    def remap_layer_id(self, old_id: str, new_id: str) -> None:
        for stack in (self.undo_stack, self.redo_stack):
            for index, entry in enumerate(stack):
                if not any(m.layer_id == old_id for m in entry.markers):
                    continue
                markers = tuple(
                    replace(m, layer_id=new_id) if m.layer_id == old_id else m
                    for m in entry.markers
                )
                stack[index] = replace(entry, markers=markers)

    def clear(self) -> None:
        """Clear both stacks."""
        self.undo_stack.clear()
        self.redo_stack.clear()
