"""
Controller wiring the annotation engine together for one document.
"""
from typing import Any, Dict, List, Optional

from PyQt5.QtCore import QObject, pyqtSignal

from planmark.config import EngineConfig
from planmark.controllers.interaction_controller import InteractionController, Tool
from planmark.controllers.view_controller import ViewController
from planmark.core.calibration import CalibrationEngine, CalibrationRecord, Point
from planmark.core.errors import PlanmarkError
from planmark.core.layers import Layer, LayerManager, OrphanPolicy
from planmark.core.markers.history import HistoryManager
from planmark.core.markers.models import Marker
from planmark.core.markers.store import AnnotationStore
from planmark.core.rendering import DrawCommand, build_draw_commands
from planmark.core.sync.adapter import SyncAdapter
from planmark.core.sync.backend import PersistenceBackend
from planmark.utils.logger import logger
from planmark.utils.notifications import NoticeLevel, NoticeType, NotificationCenter


class AnnotationController(QObject):
    """Handles all annotation-related operations for the open document."""

    # Signals
    annotations_changed = pyqtSignal()  # anything that needs a repaint
    layers_changed = pyqtSignal()
    calibration_changed = pyqtSignal(object)  # CalibrationRecord or None

    def __init__(self, backend: PersistenceBackend,
                 config: Optional[EngineConfig] = None,
                 notifications: Optional[NotificationCenter] = None,
                 renderer=None, parent: Optional[QObject] = None):
        """
        Args:
            backend: Persistence for markers, layers and calibrations
            config: Engine settings
            notifications: Receives user-facing notices; one is created if omitted
            renderer: Page renderer providing render_info()
        """
        super().__init__(parent)
        self.config = config or EngineConfig()
        self.notifications = notifications or NotificationCenter(self)

        self.layers = LayerManager()
        self.history = HistoryManager(self.config.history_depth)
        self.store = AnnotationStore(self.layers, self.history, self.config.degenerate_epsilon)
        self.calibration = CalibrationEngine()

        self.view = ViewController(renderer, self.config, self)
        self.interaction = InteractionController(
            self.store, self.view.viewport, self.calibration, self.config, self
        )
        self.sync = SyncAdapter(
            self.store, self.layers, backend, self.notifications,
            self.config.sync_debounce_ms, self,
        )

        self.interaction.error_occurred.connect(self.notifications.notify_error)
        self.interaction.preview_changed.connect(self.annotations_changed)
        self.interaction.selection_changed.connect(lambda _: self.annotations_changed.emit())
        self.sync.marker_remapped.connect(self.interaction.remap_selection)
        self.sync.page_reconciled.connect(lambda _: self.annotations_changed.emit())
        self.sync.layers_reconciled.connect(self.layers_changed)
        self.store.add_listener(lambda _: self.annotations_changed.emit())
        self.layers.add_listener(lambda _: self.layers_changed.emit())

    @property
    def current_page(self) -> int:
        return self.view.current_page

    # ------------------------------------------------------------------
    # Document and page lifecycle
    # ------------------------------------------------------------------

    def load_document(self, total_pages: int) -> bool:
        """
        Pull layers and the first page from persistence.

        Returns:
            True if everything loaded
        """
        self.view.set_document_info(total_pages)
        self.interaction.set_page(1)
        try:
            self.sync.load_layers()
            self.sync.load_page(1)
            self._load_calibration(1)
        except PlanmarkError as e:
            self.notifications.notify_error(e)
            return False
        self.annotations_changed.emit()
        return True

    def set_page(self, page_number: int) -> bool:
        """
        Switch the active page, cancelling gestures and saving pending edits.

        Returns:
            True if the page changed
        """
        if page_number == self.current_page:
            return False
        try:
            self.sync.flush()
            if not self.view.set_page(page_number):
                return False
            self.interaction.set_page(page_number)
            self.sync.load_page(page_number)
            self._load_calibration(page_number)
        except PlanmarkError as e:
            self.notifications.notify_error(e)
        self.annotations_changed.emit()
        return True

    def close(self) -> None:
        """Save pending edits and stop syncing."""
        self.interaction.cancel()
        self.sync.flush()
        self.sync.detach()

    def draw_commands(self) -> List[DrawCommand]:
        """Paint list for the current page."""
        preview = self.interaction.preview
        if preview is not None and preview.page_number != self.current_page:
            preview = None
        return build_draw_commands(
            self.store.list_visible(self.current_page),
            self.layers,
            self.view.viewport,
            selected_id=self.interaction.selected_id,
            preview=preview,
            pin_radius=self.config.hit_radius_px,
            handle_radius=self.config.handle_radius_px,
        )

    # ------------------------------------------------------------------
    # Marker operations
    # ------------------------------------------------------------------

    def selected_marker(self) -> Optional[Marker]:
        marker_id = self.interaction.selected_id
        if marker_id is None or marker_id not in self.store:
            return None
        return self.store.get(marker_id)

    def delete_selected(self) -> bool:
        marker = self.selected_marker()
        if marker is None:
            return False
        if self._guard(self.store.remove, marker.id) is None:
            return False
        self.interaction.select(None)
        return True

    def duplicate_selected(self) -> Optional[Marker]:
        marker = self.selected_marker()
        if marker is None:
            return None
        offset = self.config.duplicate_offset
        clone = self._guard(self.store.duplicate, marker.id, offset, offset)
        if clone is not None:
            self.interaction.select(clone.id)
        return clone

    def update_selected(self, patch: Dict[str, Any]) -> Optional[Marker]:
        """Apply property edits (label, colors, text) to the selection."""
        marker = self.selected_marker()
        if marker is None:
            return None
        return self._guard(self.store.update, marker.id, patch)

    def undo(self) -> bool:
        """
        Undo the last annotation action.

        Returns:
            True if undo was successful
        """
        self.interaction.cancel()
        entry = self.store.undo()
        if entry is None:
            return False
        self._show_page(entry.page_number)
        return True

    def redo(self) -> bool:
        """
        Redo the last undone annotation action.

        Returns:
            True if redo was successful
        """
        self.interaction.cancel()
        entry = self.store.redo()
        if entry is None:
            return False
        self._show_page(entry.page_number)
        return True

    def can_undo(self) -> bool:
        return self.store.can_undo()

    def can_redo(self) -> bool:
        return self.store.can_redo()

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    def create_layer(self, name: str, color: str = "#3B82F6") -> Optional[Layer]:
        return self._guard(self.layers.create, name, color)

    def delete_layer(self, layer_id: str, policy: OrphanPolicy,
                     reassign_to: Optional[str] = None) -> bool:
        """
        Delete a layer, handling its markers per `policy`.

        Returns:
            True if the layer was deleted
        """
        deleted = self._guard(self.layers.delete, layer_id, policy, reassign_to)
        if deleted is None:
            return False
        if self.interaction.active_layer_id == layer_id:
            self.interaction.set_active_layer(None)
        return True

    def set_layer_visible(self, layer_id: str, visible: bool) -> bool:
        if self._guard(self.layers.set_visible, layer_id, visible) is None:
            return False
        selected = self.selected_marker()
        if not visible and selected is not None and selected.layer_id == layer_id:
            self.interaction.select(None)
        return True

    def set_layer_locked(self, layer_id: str, locked: bool) -> bool:
        return self._guard(self.layers.set_locked, layer_id, locked) is not None

    def set_layer_opacity(self, layer_id: str, opacity: float) -> bool:
        return self._guard(self.layers.set_opacity, layer_id, opacity) is not None

    def reorder_layer(self, layer_id: str, new_index: int) -> bool:
        return self._guard(self.layers.reorder, layer_id, new_index) is not None

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------

    def commit_calibration(self, real_world_distance: float, unit: str) -> Optional[CalibrationRecord]:
        """
        Finish the calibration started with the calibrate tool.

        A zero-length measurement restarts point capture; a bad distance or
        unit keeps the prompt open.
        """
        previous = self.calibration.record_for(self.calibration.page_number)
        try:
            record = self.calibration.commit(real_world_distance, unit)
        except PlanmarkError as e:
            self.notifications.notify_error(e)
            self.interaction.calibration_finished()
            return None
        except ValueError as e:
            self.notifications.post(NoticeLevel.WARNING, "Invalid Distance", str(e),
                                    NoticeType.INVALID_INPUT)
            return None

        saved = self.sync.save_calibration(record)
        if saved is not None:
            self.calibration.store(saved)
        elif previous is not None:
            self.calibration.store(previous)
        else:
            self.calibration.discard(record.page_number)
        self.interaction.calibration_finished()
        self.interaction.set_tool(Tool.SELECT)
        self.calibration_changed.emit(self.calibration.record_for(record.page_number))
        return saved

    def measure(self, start: Point, end: Point, unit: Optional[str] = None) -> Optional[float]:
        """Real-world distance between two document points on the current page."""
        record = self.calibration.record_for(self.current_page)
        if record is None:
            return None
        return record.measure(start, end, unit)

    # ------------------------------------------------------------------

    def _load_calibration(self, page_number: int) -> None:
        record = self.sync.load_calibration(self.calibration, page_number)
        self.calibration_changed.emit(record)

    def _show_page(self, page_number: int) -> None:
        """Navigate to a page whose markers are already in the store."""
        if page_number == self.current_page:
            return
        if self.view.set_page(page_number):
            self.interaction.set_page(page_number)
            self.annotations_changed.emit()

    def _guard(self, operation, *args):
        """Run an engine operation, turning recoverable errors into notices."""
        try:
            return operation(*args)
        except PlanmarkError as e:
            logger.info("%s rejected: %s", getattr(operation, "__name__", operation), e)
            self.notifications.notify_error(e)
            return None
