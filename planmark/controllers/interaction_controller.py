"""
Per-tool state machine turning pointer events into store mutations.

All pointer coordinates arrive in screen space and are converted through
the viewport. Gestures only touch the store on commit; while they are in
progress the controller exposes a preview marker for the canvas to paint.
"""
import math
from enum import Enum
from typing import List, Optional, Tuple

from PyQt5.QtCore import QObject, pyqtSignal

from planmark.config import EngineConfig
from planmark.core.calibration import CalibrationEngine, CalibrationState
from planmark.core.errors import DegenerateShapeError, PlanmarkError
from planmark.core.markers.geometry import (
    camera_handle_at,
    camera_view,
    hit_test,
    normalize_angle,
    resize_handle_at,
)
from planmark.core.markers.models import (
    DRAG_SIZED_KINDS,
    PLACEABLE_KINDS,
    RESIZABLE_KINDS,
    Marker,
    MarkerKind,
    changed_fields,
)
from planmark.core.markers.store import AnnotationStore, StoreMutation
from planmark.core.viewport import Viewport
from planmark.utils.logger import logger


class Tool(Enum):
    SELECT = "select"
    PAN = "pan"
    PLACE = "place"
    SHAPE = "shape"
    MULTI_POINT = "multi_point"
    TEXT = "text"
    CALIBRATE = "calibrate"


class Gesture(Enum):
    IDLE = "idle"
    DRAWING_SHAPE = "drawing_shape"
    COLLECTING_POINTS = "collecting_points"
    DRAGGING = "dragging"
    RESIZING = "resizing"
    ADJUSTING_CAMERA = "adjusting_camera"
    PANNING = "panning"


# Kinds each creation tool accepts, and the one it starts with
TOOL_KINDS = {
    Tool.PLACE: (PLACEABLE_KINDS, MarkerKind.ACCESS_POINT),
    Tool.SHAPE: (DRAG_SIZED_KINDS, MarkerKind.RECTANGLE),
    Tool.MULTI_POINT: (frozenset({MarkerKind.POLYLINE, MarkerKind.POLYGON}), MarkerKind.POLYLINE),
    Tool.TEXT: (frozenset({MarkerKind.TEXT}), MarkerKind.TEXT),
}

CALIBRATION_COLOR = "#10B981"


def tool_for_kind(kind: MarkerKind) -> Tool:
    for tool, (kinds, _) in TOOL_KINDS.items():
        if kind in kinds:
            return tool
    raise ValueError(f"No tool creates {kind.value} markers")


class InteractionController(QObject):
    """Routes pointer events to the active tool."""

    # Signals
    selection_changed = pyqtSignal(object)  # marker id or None
    preview_changed = pyqtSignal()
    tool_changed = pyqtSignal(object)  # Tool
    marker_committed = pyqtSignal(object)  # Marker
    text_requested = pyqtSignal(float, float)  # document position
    calibration_ready = pyqtSignal(float)  # document distance of the two points
    calibration_state_changed = pyqtSignal(object)  # CalibrationState
    view_panned = pyqtSignal()
    error_occurred = pyqtSignal(object)  # PlanmarkError

    def __init__(self, store: AnnotationStore, viewport: Viewport,
                 calibration: Optional[CalibrationEngine] = None,
                 config: Optional[EngineConfig] = None,
                 parent: Optional[QObject] = None):
        super().__init__(parent)
        self.store = store
        self.viewport = viewport
        self.calibration = calibration or CalibrationEngine()
        self.config = config or EngineConfig()

        self.tool = Tool.SELECT
        self.marker_kind: Optional[MarkerKind] = None
        self.page_number = 1
        self.active_layer_id: Optional[str] = None
        self.selected_id: Optional[str] = None

        # Style applied to new markers
        self.stroke_color = self.config.default_stroke_color
        self.stroke_width = self.config.default_stroke_width
        self.fill_color: Optional[str] = None
        self.font_size = self.config.default_font_size
        self.font_family = self.config.default_font_family

        # Gesture state
        self.gesture = Gesture.IDLE
        self._preview: Optional[Marker] = None
        self._origin: Optional[Marker] = None
        self._start: Optional[Tuple[float, float]] = None
        self._last_screen: Optional[Tuple[float, float]] = None
        self._points: List[Tuple[float, float]] = []
        self._handle: Optional[str] = None
        self._pending_text: Optional[Tuple[float, float]] = None

        store.add_listener(self._on_store_mutation)

    # ------------------------------------------------------------------
    # Tool and page state
    # ------------------------------------------------------------------

    @property
    def preview(self) -> Optional[Marker]:
        """Marker being drawn, dragged or resized, if any."""
        return self._preview

    def set_tool(self, tool: Tool, kind: Optional[MarkerKind] = None) -> None:
        """
        Activate a tool, abandoning any gesture in progress.

        Args:
            tool: Tool to activate
            kind: Marker kind for creation tools; defaults per tool

        Raises:
            ValueError: `kind` cannot be created with `tool`
        """
        if tool in TOOL_KINDS:
            kinds, default = TOOL_KINDS[tool]
            kind = kind or default
            if kind not in kinds:
                raise ValueError(f"The {tool.value} tool cannot create {kind.value} markers")
        elif kind is not None:
            raise ValueError(f"The {tool.value} tool does not create markers")

        self.cancel()
        self.tool = tool
        self.marker_kind = kind
        if tool == Tool.CALIBRATE:
            self._set_calibration_state(self.calibration.begin(self.page_number))
        logger.debug("Tool %s (%s)", tool.value, kind.value if kind else "-")
        self.tool_changed.emit(tool)

    def set_kind(self, kind: MarkerKind) -> None:
        """Activate whichever tool creates `kind`."""
        self.set_tool(tool_for_kind(kind), kind)

    def set_page(self, page_number: int) -> None:
        self.cancel()
        self.page_number = page_number
        self.select(None)
        if self.tool == Tool.CALIBRATE:
            self._set_calibration_state(self.calibration.begin(page_number))

    def set_active_layer(self, layer_id: Optional[str]) -> None:
        self.active_layer_id = layer_id

    def cancel(self) -> None:
        """Discard the in-progress gesture without touching the store."""
        had_preview = self._preview is not None
        self.gesture = Gesture.IDLE
        self._preview = None
        self._origin = None
        self._start = None
        self._last_screen = None
        self._points = []
        self._handle = None
        self._pending_text = None
        if self.calibration.is_active:
            self.calibration.cancel()
            self._set_calibration_state(self.calibration.state)
        if had_preview:
            self.preview_changed.emit()

    def calibration_finished(self) -> None:
        """Drop the measuring preview once the distance prompt is answered."""
        self._end_gesture()
        self._set_calibration_state(self.calibration.state)

    def select(self, marker_id: Optional[str]) -> None:
        if marker_id == self.selected_id:
            return
        self.selected_id = marker_id
        self.selection_changed.emit(marker_id)

    def remap_selection(self, old_id: str, new_id: str) -> None:
        if self.selected_id == old_id:
            self.selected_id = new_id
        if self._origin is not None and self._origin.id == old_id:
            self._origin.id = new_id
        if self._preview is not None and self._preview.id == old_id:
            self._preview.id = new_id

    def hit_test(self, screen_x: float, screen_y: float) -> Optional[Marker]:
        """Topmost visible marker under a screen point."""
        doc_x, doc_y = self.viewport.to_document_space(screen_x, screen_y)
        pin_radius = self.viewport.screen_to_document_length(self.config.hit_radius_px)
        tolerance = self.viewport.screen_to_document_length(self.config.line_hit_tolerance_px)
        for marker in reversed(self.store.list_visible(self.page_number)):
            if hit_test(marker, doc_x, doc_y, pin_radius, tolerance):
                return marker
        return None

    # ------------------------------------------------------------------
    # Pointer events
    # ------------------------------------------------------------------

    def press(self, screen_x: float, screen_y: float) -> None:
        doc = self.viewport.to_document_space(screen_x, screen_y)

        if self.tool == Tool.SELECT:
            self._press_select(screen_x, screen_y, doc)
        elif self.tool == Tool.PAN:
            self.gesture = Gesture.PANNING
            self._last_screen = (screen_x, screen_y)
        elif self.tool == Tool.PLACE:
            self._place(doc)
        elif self.tool == Tool.SHAPE:
            self.gesture = Gesture.DRAWING_SHAPE
            self._start = doc
            self._set_preview(self._shape_marker(doc, doc))
        elif self.tool == Tool.MULTI_POINT:
            self.gesture = Gesture.COLLECTING_POINTS
            self._points.append(doc)
            self._set_preview(self._path_preview(doc))
        elif self.tool == Tool.TEXT:
            self._pending_text = doc
            self.text_requested.emit(doc[0], doc[1])
        elif self.tool == Tool.CALIBRATE:
            self._press_calibrate(doc)

    def move(self, screen_x: float, screen_y: float) -> None:
        doc = self.viewport.to_document_space(screen_x, screen_y)

        if self.gesture == Gesture.PANNING:
            last_x, last_y = self._last_screen
            self.viewport.pan_by(screen_x - last_x, screen_y - last_y)
            self._last_screen = (screen_x, screen_y)
            self.view_panned.emit()
        elif self.gesture == Gesture.DRAGGING:
            dx, dy = doc[0] - self._start[0], doc[1] - self._start[1]
            self._set_preview(self._origin.apply_patch(self._origin.translation_patch(dx, dy)))
        elif self.gesture == Gesture.RESIZING:
            self._set_preview(self._resized(doc))
        elif self.gesture == Gesture.ADJUSTING_CAMERA:
            self._set_preview(self._adjusted_camera(doc))
        elif self.gesture == Gesture.DRAWING_SHAPE:
            self._set_preview(self._shape_marker(self._start, doc))
        elif self.gesture == Gesture.COLLECTING_POINTS:
            self._set_preview(self._path_preview(doc))
        elif (self.tool == Tool.CALIBRATE
              and self.calibration.state == CalibrationState.AWAITING_END):
            self._set_preview(self._calibration_preview(doc))

    def release(self, screen_x: float, screen_y: float) -> None:
        doc = self.viewport.to_document_space(screen_x, screen_y)
        gesture = self.gesture

        if gesture == Gesture.PANNING:
            self._end_gesture()
        elif gesture == Gesture.DRAGGING:
            self._finish_drag(doc)
        elif gesture == Gesture.RESIZING:
            self._finish_resize(doc)
        elif gesture == Gesture.ADJUSTING_CAMERA:
            self._finish_camera(doc)
        elif gesture == Gesture.DRAWING_SHAPE:
            self._finish_shape(doc)

    def double_click(self, screen_x: float, screen_y: float) -> None:
        if self.tool != Tool.MULTI_POINT or self.gesture != Gesture.COLLECTING_POINTS:
            return

        doc = self.viewport.to_document_space(screen_x, screen_y)
        if not self._points or self._points[-1] != doc:
            self._points.append(doc)

        points = list(self._points)
        kind = self.marker_kind
        self._end_gesture()

        if len(points) < kind.min_points:
            logger.debug("Discarded %s with %d points", kind.value, len(points))
            return
        self._commit(self._new_marker(kind, points[0], points=points))

    def commit_text(self, text: str, doc_x: Optional[float] = None,
                    doc_y: Optional[float] = None) -> Optional[Marker]:
        """Place a text marker at the last text-tool click, or at (doc_x, doc_y)."""
        position = (doc_x, doc_y) if doc_x is not None and doc_y is not None else self._pending_text
        self._pending_text = None
        if position is None or not (text or "").strip():
            return None
        return self._commit(self._new_marker(MarkerKind.TEXT, position, text_content=text))

    # ------------------------------------------------------------------
    # Tool handlers
    # ------------------------------------------------------------------

    def _press_select(self, screen_x: float, screen_y: float, doc: Tuple[float, float]) -> None:
        selected = self._selected_marker()
        if selected is not None and not self.store.layers.is_locked(selected.layer_id):
            radius = self.viewport.screen_to_document_length(self.config.handle_radius_px)
            if selected.kind in RESIZABLE_KINDS and resize_handle_at(selected, doc[0], doc[1], radius):
                self.gesture = Gesture.RESIZING
                self._origin = selected
                self._start = doc
                return
            handle = camera_handle_at(selected, doc[0], doc[1], radius)
            if handle is not None:
                self.gesture = Gesture.ADJUSTING_CAMERA
                self._handle = handle
                self._origin = selected
                self._start = doc
                return

        hit = self.hit_test(screen_x, screen_y)
        if hit is None:
            self.select(None)
            return

        self.select(hit.id)
        if self.store.layers.is_locked(hit.layer_id):
            # Locked markers can be inspected but not moved
            return
        self.gesture = Gesture.DRAGGING
        self._origin = hit
        self._start = doc

    def _finish_drag(self, doc: Tuple[float, float]) -> None:
        origin, start = self._origin, self._start
        self._end_gesture()
        dx, dy = doc[0] - start[0], doc[1] - start[1]
        if dx == 0 and dy == 0:
            return
        self._apply(self.store.translate, origin.id, dx, dy)

    def _resized(self, doc: Tuple[float, float]) -> Marker:
        origin = self._origin
        if origin.kind == MarkerKind.NOTE:
            min_width, min_height = self.config.note_min_width, self.config.note_min_height
        else:
            min_width = min_height = self.config.degenerate_epsilon
        width = max(min_width, doc[0] - origin.anchor_x)
        height = max(min_height, doc[1] - origin.anchor_y)
        return origin.apply_patch({"width": width, "height": height}).normalized()

    def _finish_resize(self, doc: Tuple[float, float]) -> None:
        origin = self._origin
        resized = self._resized(doc)
        self._end_gesture()
        if (resized.width, resized.height) == (origin.width, origin.height):
            return
        self._apply(self.store.update, origin.id,
                    {"width": resized.width, "height": resized.height}, "resize")

    def _adjusted_camera(self, doc: Tuple[float, float]) -> Marker:
        """Camera with the grabbed handle moved to a document point."""
        origin = self._origin
        _, _, heading = camera_view(origin)
        dx, dy = doc[0] - origin.anchor_x, doc[1] - origin.anchor_y
        bearing = math.degrees(math.atan2(dy, dx))

        if self._handle == "range":
            patch = {"fov_range": max(self.config.camera_min_range, math.hypot(dx, dy))}
        elif self._handle == "rotation":
            patch = {"rotation_degrees": bearing % 360.0}
        else:
            # Either arc end opens the cone symmetrically about the heading
            spread = 2 * abs(normalize_angle(bearing - heading))
            patch = {"fov_degrees": min(360.0, max(self.config.camera_min_fov, spread))}
        return origin.apply_patch(patch)

    def _finish_camera(self, doc: Tuple[float, float]) -> None:
        origin, start = self._origin, self._start
        patch = changed_fields(origin, self._adjusted_camera(doc)) if doc != start else {}
        self._end_gesture()
        if not patch:
            return
        self._apply(self.store.update, origin.id, patch, "adjust-camera")

    def _finish_shape(self, doc: Tuple[float, float]) -> None:
        start = self._start
        kind = self.marker_kind
        self._end_gesture()

        threshold = self.viewport.screen_to_document_length(self.config.shape_threshold_px)
        if abs(doc[0] - start[0]) <= threshold and abs(doc[1] - start[1]) <= threshold:
            logger.debug("Discarded %s below the drag threshold", kind.value)
            return
        self._commit(self._shape_marker(start, doc))

    def _place(self, doc: Tuple[float, float]) -> None:
        kind = self.marker_kind
        extra = {}
        if kind.is_equipment:
            extra["label"] = str(self.store.next_label_number(kind))
        elif kind == MarkerKind.NOTE:
            extra["width"] = self.config.note_min_width
            extra["height"] = self.config.note_min_height
            extra["text_content"] = ""
            extra["fill_color"] = "#FEF3C7"
        if kind == MarkerKind.CAMERA:
            extra["rotation_degrees"] = 0.0
            extra["fov_degrees"] = self.config.camera_default_fov
            extra["fov_range"] = self.config.camera_default_range
        self._commit(self._new_marker(kind, doc, **extra))

    def _press_calibrate(self, doc: Tuple[float, float]) -> None:
        state = self.calibration.state
        if state == CalibrationState.IDLE:
            self.calibration.begin(self.page_number)
        elif state == CalibrationState.AWAITING_DISTANCE:
            # Waiting on the distance prompt; extra clicks are ignored
            return

        state = self.calibration.capture(doc)
        self._set_calibration_state(state)
        if state == CalibrationState.AWAITING_END:
            self._set_preview(self._calibration_preview(doc))
        elif state == CalibrationState.AWAITING_DISTANCE:
            self._set_preview(self._calibration_preview(self.calibration.end_point))
            self.calibration_ready.emit(self.calibration.pending_distance())

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    def _new_marker(self, kind: MarkerKind, anchor: Tuple[float, float], **fields) -> Marker:
        values = dict(
            page_number=self.page_number,
            kind=kind,
            anchor_x=anchor[0],
            anchor_y=anchor[1],
            layer_id=self.active_layer_id,
            stroke_color=self.stroke_color,
            stroke_width=self.stroke_width,
            fill_color=self.fill_color,
        )
        if kind in (MarkerKind.TEXT, MarkerKind.NOTE, MarkerKind.STAMP):
            values["font_size"] = self.font_size
            values["font_family"] = self.font_family
        values.update(fields)
        return Marker(**values)

    def _shape_marker(self, start: Tuple[float, float], end: Tuple[float, float]) -> Marker:
        marker = self._new_marker(self.marker_kind, start, end_x=end[0], end_y=end[1])
        return marker.normalized()

    def _path_preview(self, cursor: Tuple[float, float]) -> Marker:
        points = list(self._points)
        if points[-1] != cursor:
            points.append(cursor)
        return self._new_marker(self.marker_kind, points[0], points=points)

    def _calibration_preview(self, cursor: Tuple[float, float]) -> Marker:
        start = self.calibration.start_point
        return Marker(
            page_number=self.page_number,
            kind=MarkerKind.LINE,
            anchor_x=start[0],
            anchor_y=start[1],
            end_x=cursor[0],
            end_y=cursor[1],
            stroke_color=CALIBRATION_COLOR,
        ).normalized()

    # ------------------------------------------------------------------

    def _commit(self, marker: Marker) -> Optional[Marker]:
        added = self._apply(self.store.add, marker)
        if added is not None:
            self.select(added.id)
            self.marker_committed.emit(added)
        return added

    def _apply(self, operation, *args):
        """Run a store mutation, reporting recoverable errors instead of raising."""
        try:
            return operation(*args)
        except DegenerateShapeError as e:
            logger.debug("Discarded degenerate shape: %s", e)
        except PlanmarkError as e:
            self.error_occurred.emit(e)
        return None

    def _selected_marker(self) -> Optional[Marker]:
        if self.selected_id is None or self.selected_id not in self.store:
            return None
        marker = self.store.get(self.selected_id)
        if (marker.page_number != self.page_number
                or not self.store.layers.is_visible(marker.layer_id)):
            return None
        return marker

    def _set_preview(self, marker: Optional[Marker]) -> None:
        self._preview = marker
        self.preview_changed.emit()

    def _end_gesture(self) -> None:
        had_preview = self._preview is not None
        self.gesture = Gesture.IDLE
        self._preview = None
        self._origin = None
        self._start = None
        self._last_screen = None
        self._points = []
        self._handle = None
        if had_preview:
            self.preview_changed.emit()

    def _set_calibration_state(self, state: CalibrationState) -> None:
        self.calibration_state_changed.emit(state)

    def _on_store_mutation(self, mutation: StoreMutation) -> None:
        if self.selected_id is not None and self.selected_id not in self.store:
            self.select(None)
