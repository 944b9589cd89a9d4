"""
Authoritative in-memory collection of markers.

Every mutation validates first, then records the page's pre-mutation state
in the history, then applies, then tells listeners (the sync adapter and the
controllers). A rejected mutation leaves the store untouched.
"""
import copy
import itertools
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from planmark.core.errors import NotFoundError, ValidationError
from planmark.core.layers import LayerManager, OrphanPolicy
from planmark.utils.logger import logger

from .geometry import clamp_point
from .history import HistoryEntry, HistoryManager
from .models import Marker, MarkerKind, utc_now


@dataclass(frozen=True)
class StoreMutation:
    """Describes one applied change for store listeners."""
    operation: str
    page_number: int
    before: Optional[Marker] = None
    after: Optional[Marker] = None
    history_entry: Optional[HistoryEntry] = None

    # Whole-page states, set for undo/redo restores
    page_before: Tuple[Marker, ...] = ()
    page_after: Tuple[Marker, ...] = ()

    @property
    def is_restore(self) -> bool:
        return self.operation in ("undo", "redo")


StoreListener = Callable[[StoreMutation], None]


class AnnotationStore:
    """Markers of every loaded page, with undo/redo support."""

    def __init__(self, layers: LayerManager, history: Optional[HistoryManager] = None,
                 epsilon: float = 1.0):
        self.layers = layers
        self.history = history if history is not None else HistoryManager()
        self.epsilon = epsilon

        # page number -> markers in creation order
        self._pages: Dict[int, List[Marker]] = {}
        self._page_of: Dict[str, int] = {}
        self._local_ids = itertools.count(1)
        self._listeners: List[StoreListener] = []

        self.layers.add_orphan_handler(self._handle_orphaned_layer)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, marker_id: str) -> Marker:
        return self._find(marker_id)[1].copy()

    def __contains__(self, marker_id) -> bool:
        return marker_id in self._page_of

    def __len__(self) -> int:
        return len(self._page_of)

    def pages(self) -> List[int]:
        return sorted(page for page, markers in self._pages.items() if markers)

    def list_page(self, page_number: int) -> List[Marker]:
        """All markers of a page in creation order, hidden layers included."""
        return [m.copy() for m in self._pages.get(page_number, [])]

    def list_visible(self, page_number: int) -> List[Marker]:
        """
        Markers to paint for a page.

        Markers on hidden layers are left out. The result is ordered by layer
        order, then creation order; later entries are drawn on top.
        """
        visible = [m for m in self._pages.get(page_number, [])
                   if self.layers.is_visible(m.layer_id)]
        visible.sort(key=lambda m: self.layers.order_of(m.layer_id))
        return [m.copy() for m in visible]

    def next_label_number(self, kind: MarkerKind) -> int:
        """Next free number for auto-labelling equipment of one kind."""
        numbers = [
            int(m.label)
            for markers in self._pages.values()
            for m in markers
            if m.kind == kind and m.label and m.label.isdigit()
        ]
        return max(numbers, default=0) + 1

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, marker: Marker, operation: str = "add") -> Marker:
        """
        Add a new marker and issue it a temporary local id.

        Raises:
            DegenerateShapeError: the shape is below the minimum size
            ValidationError: kind-specific fields are missing or invalid
            LayerLockedError: the target layer is locked
        """
        self._check_layer(marker.layer_id)

        candidate = marker.normalized()
        candidate.validate(self.epsilon)

        now = utc_now()
        candidate.id = f"local-{next(self._local_ids)}"
        candidate.version = 1
        candidate.created_at = now
        candidate.updated_at = now

        page = candidate.page_number
        entry = self.history.push(page, operation, self._pages.get(page, []))
        self._pages.setdefault(page, []).append(candidate)
        self._page_of[candidate.id] = page

        logger.debug("Added %s %s on page %s", candidate.kind.value, candidate.id, page)
        self._notify(StoreMutation(operation, page, None, candidate.copy(), entry))
        return candidate.copy()

    def update(self, marker_id: str, patch: Dict, operation: str = "update") -> Marker:
        """
        Merge `patch` into a marker and bump its version.

        Raises:
            NotFoundError: no marker has this id
            LayerLockedError: the marker's layer, or the target layer, is locked
            ValidationError / DegenerateShapeError: the result is invalid
        """
        page, current = self._find(marker_id)
        self.layers.ensure_unlocked(current.layer_id)

        if "page_number" in patch and patch["page_number"] != current.page_number:
            raise ValidationError("Markers cannot be moved between pages")
        if "layer_id" in patch:
            self._check_layer(patch["layer_id"])

        candidate = current.apply_patch(patch).normalized()
        candidate.validate(self.epsilon)
        if candidate == current:
            return current.copy()

        candidate.version = current.version + 1
        candidate.updated_at = utc_now()

        markers = self._pages[page]
        entry = self.history.push(page, operation, markers)
        markers[self._position(page, marker_id)] = candidate

        self._notify(StoreMutation(operation, page, current.copy(), candidate.copy(), entry))
        return candidate.copy()

    def translate(self, marker_id: str, dx: float, dy: float) -> Marker:
        """Move every vertex of a marker by (dx, dy)."""
        _, current = self._find(marker_id)
        return self.update(marker_id, current.translation_patch(dx, dy), operation="move")

    def remove(self, marker_id: str, operation: str = "remove") -> Marker:
        """
        Delete a marker.

        Raises:
            NotFoundError: no marker has this id
            LayerLockedError: the marker's layer is locked
        """
        page, current = self._find(marker_id)
        self.layers.ensure_unlocked(current.layer_id)

        markers = self._pages[page]
        entry = self.history.push(page, operation, markers)
        del markers[self._position(page, marker_id)]
        del self._page_of[marker_id]

        logger.debug("Removed %s %s from page %s", current.kind.value, marker_id, page)
        self._notify(StoreMutation(operation, page, current.copy(), None, entry))
        return current.copy()

    def duplicate(self, marker_id: str, offset_x: float, offset_y: float,
                  bounds: Optional[Tuple[float, float, float, float]] = None) -> Marker:
        """
        Copy a marker, nudged by the given offset.

        Coordinates are absolute document units, so the copy is not clamped
        unless `bounds` (x0, y0, x1, y1) is given; then its anchor is kept
        inside them and the rest of the geometry follows.
        """
        _, source = self._find(marker_id)

        dx, dy = offset_x, offset_y
        if bounds is not None:
            x, y = clamp_point(source.anchor_x + dx, source.anchor_y + dy, bounds)
            dx, dy = x - source.anchor_x, y - source.anchor_y

        clone = source.apply_patch(source.translation_patch(dx, dy))
        clone.id = None
        clone.version = 0
        clone.created_at = None
        clone.updated_at = None
        if clone.kind.is_equipment:
            # Pins stand for one physical device each
            clone.equipment_ref = None
            if clone.label and clone.label.isdigit():
                clone.label = str(self.next_label_number(clone.kind))
        return self.add(clone, operation="duplicate")

    def undo(self) -> Optional[HistoryEntry]:
        """
        Restore the page state recorded by the last operation.

        Returns:
            The restored entry, or None when there was nothing to undo
        """
        entry = self.history.undo(self._snapshot_of)
        if entry is not None:
            self._restore(entry, "undo")
        return entry

    def redo(self) -> Optional[HistoryEntry]:
        entry = self.history.redo(self._snapshot_of)
        if entry is not None:
            self._restore(entry, "redo")
        return entry

    def can_undo(self) -> bool:
        return self.history.can_undo()

    def can_redo(self) -> bool:
        return self.history.can_redo()

    # ------------------------------------------------------------------
    # Reconciliation hooks; none of these record history or notify
    # ------------------------------------------------------------------

    def load_page(self, page_number: int, markers: Iterable[Marker]) -> None:
        """Replace a page with persisted markers."""
        for marker in self._pages.get(page_number, []):
            self._page_of.pop(marker.id, None)
        loaded = []
        for marker in markers:
            if marker.id is None:
                raise ValidationError("Persisted markers must carry an id")
            loaded.append(copy.deepcopy(marker))
            self._page_of[marker.id] = page_number
        self._pages[page_number] = loaded

    def remap_id(self, old_id: str, new_id: str) -> None:
        """Swap a temporary local id for the persisted one."""
        page = self._page_of.pop(old_id, None)
        if page is not None:
            self._pages[page][self._position(page, old_id)].id = new_id
            self._page_of[new_id] = page
        self.history.remap_id(old_id, new_id)

    def remap_layer_id(self, old_id: str, new_id: str) -> None:
        for markers in self._pages.values():
            for marker in markers:
                if marker.layer_id == old_id:
                    marker.layer_id = new_id
        self.history.remap_layer_id(old_id, new_id)

    def drop(self, marker_id: str) -> Optional[Marker]:
        """Remove a marker without history, used to roll back an add."""
        page = self._page_of.pop(marker_id, None)
        if page is None:
            return None
        markers = self._pages[page]
        return markers.pop(self._position(page, marker_id))

    def overwrite(self, marker: Marker) -> None:
        """Put back a previous version of an existing marker."""
        page, _ = self._find(marker.id)
        self._pages[page][self._position(page, marker.id)] = marker.copy()

    def put_back(self, marker: Marker, index: Optional[int] = None) -> None:
        """Re-insert a removed marker, at its old position when known."""
        markers = self._pages.setdefault(marker.page_number, [])
        if index is None or index > len(markers):
            index = len(markers)
        markers.insert(index, marker.copy())
        self._page_of[marker.id] = marker.page_number

    def position_of(self, marker_id: str) -> int:
        page, _ = self._find(marker_id)
        return self._position(page, marker_id)

    def add_listener(self, listener: StoreListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StoreListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------

    def _find(self, marker_id: str) -> Tuple[int, Marker]:
        page = self._page_of.get(marker_id)
        if page is None:
            raise NotFoundError("Marker", marker_id)
        return page, self._pages[page][self._position(page, marker_id)]

    def _position(self, page: int, marker_id: str) -> int:
        for index, marker in enumerate(self._pages.get(page, [])):
            if marker.id == marker_id:
                return index
        raise NotFoundError("Marker", marker_id)

    def _snapshot_of(self, page_number: int) -> List[Marker]:
        return self._pages.get(page_number, [])

    def _check_layer(self, layer_id: Optional[str]) -> None:
        if layer_id is None:
            return
        self.layers.get(layer_id)
        self.layers.ensure_unlocked(layer_id)

    def _restore(self, entry: HistoryEntry, operation: str) -> None:
        page = entry.page_number
        before = tuple(m.copy() for m in self._pages.get(page, []))
        for marker in before:
            self._page_of.pop(marker.id, None)

        restored = [m.copy() for m in entry.markers]
        self._pages[page] = restored
        for marker in restored:
            self._page_of[marker.id] = page

        logger.debug("%s '%s' on page %s", operation.capitalize(), entry.operation, page)
        self._notify(StoreMutation(
            operation, page,
            page_before=before,
            page_after=tuple(m.copy() for m in restored),
        ))

    def _handle_orphaned_layer(self, layer_id: str, policy: OrphanPolicy,
                               reassign_to: Optional[str]) -> None:
        """Apply the caller's orphan policy before a layer disappears."""
        for page, markers in list(self._pages.items()):
            affected = [m for m in markers if m.layer_id == layer_id]
            if not affected:
                continue

            entry = self.history.push(page, "delete_layer", markers)
            for marker in affected:
                index = self._position(page, marker.id)
                if policy == OrphanPolicy.REASSIGN:
                    moved = marker.copy()
                    moved.layer_id = reassign_to
                    moved.version += 1
                    moved.updated_at = utc_now()
                    markers[index] = moved
                    self._notify(StoreMutation("update", page, marker.copy(), moved.copy(), entry))
                else:
                    del markers[index]
                    del self._page_of[marker.id]
                    self._notify(StoreMutation("remove", page, marker.copy(), None, entry))

    def _notify(self, mutation: StoreMutation) -> None:
        for listener in list(self._listeners):
            listener(mutation)
