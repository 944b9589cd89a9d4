"""
Bridges the in-memory store and layers to a persistence backend.

Store mutations are applied optimistically and queued here. Queued calls are
coalesced per marker and issued by flush(), which a debounce timer triggers
shortly after the last edit. Layer changes are persisted immediately.
"""
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from PyQt5.QtCore import QObject, QTimer, pyqtSignal

from planmark.core.calibration import CalibrationEngine, CalibrationRecord
from planmark.core.errors import NotFoundError, PersistenceError
from planmark.core.layers import LayerAction, LayerChange, LayerManager
from planmark.core.markers.history import HistoryEntry
from planmark.core.markers.models import Marker, changed_fields
from planmark.core.markers.store import AnnotationStore, StoreMutation
from planmark.core.sync.backend import PersistenceBackend
from planmark.utils.logger import logger
from planmark.utils.notifications import NotificationCenter

CREATE = "create"
UPDATE = "update"
DELETE = "delete"


@dataclass
class PendingOp:
    """Coalesced persistence work for one marker."""
    action: str
    marker_id: str
    page_number: int
    # Last state the backend is known to hold, None for unsaved markers
    before: Optional[Marker] = None
    after: Optional[Marker] = None
    position: Optional[int] = None
    entries: List[HistoryEntry] = field(default_factory=list)
    # Set when undo/redo contributed; failures then resync instead of rolling back
    from_restore: bool = False


class SyncAdapter(QObject):
    """Keeps the backend in step with one document's store and layers."""

    marker_remapped = pyqtSignal(str, str)
    layer_remapped = pyqtSignal(str, str)
    page_reconciled = pyqtSignal(int)
    layers_reconciled = pyqtSignal()
    pending_changed = pyqtSignal(int)

    def __init__(self, store: AnnotationStore, layers: LayerManager,
                 backend: PersistenceBackend,
                 notifications: Optional[NotificationCenter] = None,
                 debounce_ms: Optional[int] = 400,
                 parent: Optional[QObject] = None):
        """
        Args:
            store: Marker store to observe
            layers: Layer manager to observe
            backend: Where changes are persisted
            notifications: Receives notices about failed saves
            debounce_ms: Delay before queued changes are flushed; None
                leaves flushing to explicit flush() calls
        """
        super().__init__(parent)
        self.store = store
        self.layers = layers
        self.backend = backend
        self.notifications = notifications

        self._queue: "OrderedDict[str, PendingOp]" = OrderedDict()
        self.aliases: Dict[str, str] = {}

        self._timer: Optional[QTimer] = None
        if debounce_ms is not None:
            self._timer = QTimer(self)
            self._timer.setSingleShot(True)
            self._timer.setInterval(debounce_ms)
            self._timer.timeout.connect(self.flush)

        store.add_listener(self._on_store_mutation)
        layers.add_listener(self._on_layer_change)

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    def pending_for(self, marker_id: str) -> Optional[PendingOp]:
        return self._queue.get(self.resolve(marker_id))

    def resolve(self, marker_id: str) -> str:
        """Follow the alias table from a local id to the persisted one."""
        while marker_id in self.aliases:
            marker_id = self.aliases[marker_id]
        return marker_id

    def _on_store_mutation(self, mutation: StoreMutation) -> None:
        if mutation.is_restore:
            self._queue_restore(mutation)
        elif mutation.before is None and mutation.after is not None:
            self._queue_create(mutation.after, mutation.history_entry)
        elif mutation.after is None and mutation.before is not None:
            self._queue_delete(mutation.before, mutation.history_entry)
        elif mutation.before is not None:
            self._queue_update(mutation.before, mutation.after, mutation.history_entry)
        self._schedule()

    def _queue_create(self, marker: Marker, entry: Optional[HistoryEntry],
                      from_restore: bool = False) -> None:
        op = self._queue.get(marker.id)
        if op is not None and op.action == DELETE:
            # The backend still holds the marker; bring it back in place
            op.action = UPDATE
            op.after = marker.copy()
        else:
            op = PendingOp(CREATE, marker.id, marker.page_number, after=marker.copy())
            self._queue[marker.id] = op
        self._track(op, entry, from_restore)

    def _queue_update(self, before: Marker, after: Marker, entry: Optional[HistoryEntry],
                      from_restore: bool = False) -> None:
        op = self._queue.get(after.id)
        if op is None:
            op = PendingOp(UPDATE, after.id, after.page_number, before=before.copy())
            self._queue[after.id] = op
        op.after = after.copy()
        self._track(op, entry, from_restore)

    def _queue_delete(self, before: Marker, entry: Optional[HistoryEntry],
                      from_restore: bool = False) -> None:
        op = self._queue.get(before.id)
        if op is not None and op.action == CREATE:
            # Never reached the backend, so there is nothing to delete
            del self._queue[before.id]
            return

        if op is None:
            op = PendingOp(DELETE, before.id, before.page_number, before=before.copy())
            self._queue[before.id] = op
        op.action = DELETE
        op.after = None
        if entry is not None:
            op.position = next(
                (i for i, m in enumerate(entry.markers) if m.id == before.id), None
            )
        self._track(op, entry, from_restore)

    def _queue_restore(self, mutation: StoreMutation) -> None:
        """Diff an undo/redo page swap into create/update/delete work."""
        before = {m.id: m for m in mutation.page_before}
        after = {m.id: m for m in mutation.page_after}

        for marker_id, marker in before.items():
            if marker_id not in after:
                self._queue_delete(marker, None, from_restore=True)
        for marker_id, marker in after.items():
            previous = before.get(marker_id)
            if previous is None:
                self._queue_create(marker, None, from_restore=True)
            elif previous != marker:
                self._queue_update(previous, marker, None, from_restore=True)

    @staticmethod
    def _track(op: PendingOp, entry: Optional[HistoryEntry], from_restore: bool) -> None:
        if entry is not None:
            op.entries.append(entry)
        op.from_restore = op.from_restore or from_restore

    def _schedule(self) -> None:
        self.pending_changed.emit(len(self._queue))
        if self._timer is not None and self._queue:
            self._timer.start()

    # ------------------------------------------------------------------
    # Flush
    # ------------------------------------------------------------------

    def flush(self) -> int:
        """
        Issue every queued call.

        Returns:
            Number of calls that reached the backend successfully
        """
        if self._timer is not None:
            self._timer.stop()

        ops = list(self._queue.values())
        self._queue.clear()
        succeeded = 0
        resync_pages = set()

        for op in ops:
            try:
                if self._issue(op):
                    succeeded += 1
            except PersistenceError as e:
                logger.error("Failed to %s marker %s: %s", op.action, op.marker_id, e)
                if op.from_restore:
                    resync_pages.add(op.page_number)
                else:
                    self._roll_back(op)
                self._notify(e)
            except NotFoundError as e:
                logger.warning("Marker %s vanished from the backend", op.marker_id)
                resync_pages.add(op.page_number)
                self._notify(e)

        for page in sorted(resync_pages):
            self._resync(page)

        self.pending_changed.emit(len(self._queue))
        return succeeded

    def _issue(self, op: PendingOp) -> bool:
        if op.action == CREATE:
            payload = op.after.copy()
            payload.id = None
            saved = self.backend.create_marker(payload)
            self._remap_marker(op.marker_id, saved.id)
            return True

        if op.action == UPDATE:
            patch = changed_fields(op.before, op.after)
            if not patch:
                return False
            self.backend.update_marker(op.marker_id, patch)
            return True

        self.backend.delete_marker(op.marker_id)
        return True

    def _remap_marker(self, local_id: str, server_id: str) -> None:
        if local_id == server_id:
            return
        self.aliases[local_id] = server_id
        self.store.remap_id(local_id, server_id)
        logger.debug("Marker %s persisted as %s", local_id, server_id)
        self.marker_remapped.emit(local_id, server_id)

    def _roll_back(self, op: PendingOp) -> None:
        """Undo an optimistic change the backend refused."""
        history = self.store.history
        if op.action == CREATE:
            self.store.drop(op.marker_id)
            history.forget_marker(op.marker_id)
        else:
            if op.action == UPDATE:
                if op.marker_id in self.store:
                    self.store.overwrite(op.before)
            elif op.marker_id not in self.store:
                self.store.put_back(op.before, op.position)
            # Later snapshots still hold the refused state
            if op.entries:
                history.pin_marker(op.before, min(e.serial for e in op.entries), op.position)

        for entry in op.entries:
            self.store.history.discard(entry)
        self.page_reconciled.emit(op.page_number)

    def _resync(self, page_number: int) -> None:
        """Replace a page with whatever the backend holds."""
        for marker_id in [k for k, op in self._queue.items() if op.page_number == page_number]:
            del self._queue[marker_id]
        try:
            self.store.load_page(page_number, self.backend.list_markers(page_number))
        except PersistenceError as e:
            logger.error("Failed to reload page %s: %s", page_number, e)
            self._notify(e)
            return
        self.page_reconciled.emit(page_number)

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    def _on_layer_change(self, change: LayerChange) -> None:
        layer = change.layer
        try:
            if change.action == LayerAction.CREATE:
                saved = self.backend.create_layer(layer)
                if saved.id != layer.id:
                    self.layers.remap_id(layer.id, saved.id)
                    self.store.remap_layer_id(layer.id, saved.id)
                    self.layer_remapped.emit(layer.id, saved.id)
            elif change.action == LayerAction.UPDATE:
                changes = {
                    key: value for key, value in layer.to_dict().items()
                    if key != 'id' and change.previous.to_dict().get(key) != value
                }
                self.backend.update_layer(layer.id, changes)
            else:
                # Orphaned markers must reach the backend before their layer goes
                self.flush()
                self.backend.delete_layer(layer.id)
        except PersistenceError as e:
            logger.error("Failed to %s layer %s: %s", change.action.value, layer.id, e)
            if change.action == LayerAction.CREATE:
                self.layers.discard(layer.id)
            elif change.action == LayerAction.UPDATE:
                self.layers.restore(change.previous)
            else:
                self.layers.restore(layer)
            self.layers_reconciled.emit()
            self._notify(e)
        except NotFoundError as e:
            self._notify(e)
            self.load_layers()

    # ------------------------------------------------------------------
    # Loading and calibration
    # ------------------------------------------------------------------

    def load_page(self, page_number: int) -> List[Marker]:
        """Pull a page from the backend, flushing local edits first."""
        self.flush()
        markers = self.backend.list_markers(page_number)
        self.store.load_page(page_number, markers)
        logger.info("Loaded %d markers for page %s", len(markers), page_number)
        return self.store.list_page(page_number)

    def load_layers(self) -> None:
        self.layers.load(self.backend.list_layers())
        self.layers_reconciled.emit()

    def load_calibration(self, engine: CalibrationEngine, page_number: int) -> Optional[CalibrationRecord]:
        records = self.backend.list_calibration(page_number)
        engine.load(records)
        return engine.record_for(page_number)

    def save_calibration(self, record: CalibrationRecord) -> Optional[CalibrationRecord]:
        """
        Persist a calibration record.

        Returns:
            The saved record, or None if the backend refused it
        """
        try:
            return self.backend.save_calibration(record)
        except PersistenceError as e:
            logger.error("Failed to save calibration for page %s: %s", record.page_number, e)
            self._notify(e)
            return None

    def detach(self) -> None:
        """Stop observing the store and layers."""
        if self._timer is not None:
            self._timer.stop()
        self.store.remove_listener(self._on_store_mutation)
        self.layers.remove_listener(self._on_layer_change)

    def _notify(self, error) -> None:
        if self.notifications is not None:
            self.notifications.notify_error(error)
