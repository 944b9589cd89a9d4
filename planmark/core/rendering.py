"""
Screen-space draw commands for the visible markers of a page.

Rendering is split in two: this module decides what to draw and where,
in paint order, and the canvas widget turns each command into QPainter
calls. Keeping the first half free of Qt lets it be tested headless.
"""
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from planmark.core.layers import LayerManager
from planmark.core.markers.geometry import (
    DEFAULT_STAMP_TEXT,
    DEFAULT_TEXT_SIZE,
    camera_handles,
    camera_view,
    resize_handle_position,
)
from planmark.core.markers.models import RESIZABLE_KINDS, ROTATABLE_KINDS, Marker, MarkerKind
from planmark.core.viewport import Viewport

ScreenPoint = Tuple[float, float]


class Primitive(Enum):
    PIN = "pin"
    RECT = "rect"
    ELLIPSE = "ellipse"
    LINE = "line"
    POLYLINE = "polyline"
    POLYGON = "polygon"
    NOTE = "note"
    STAMP = "stamp"
    TEXT = "text"
    FOV = "fov"
    HANDLE = "handle"


@dataclass(frozen=True)
class DrawStyle:
    stroke_color: str
    stroke_width: float
    opacity: float = 1.0
    fill_color: Optional[str] = None
    font_size: float = DEFAULT_TEXT_SIZE
    font_family: str = "Arial"
    dashed: bool = False


@dataclass(frozen=True)
class DrawCommand:
    """
    One shape to paint.

    `points` are screen coordinates. Pins carry their center, boxed
    primitives their top-left and bottom-right corners, paths every vertex.
    `radius` is only meaningful for pins, handles and FOV cones.
    Rotated shapes are turned clockwise by `rotation` degrees about
    `pivot`; a FOV cone is centered on its heading `rotation` and
    opens `sweep` degrees.
    """
    primitive: Primitive
    points: Tuple[ScreenPoint, ...]
    style: DrawStyle
    marker_id: Optional[str] = None
    label: Optional[str] = None
    selected: bool = False
    radius: float = 0.0
    preview: bool = False
    rotation: float = 0.0
    pivot: Optional[ScreenPoint] = None
    sweep: float = 0.0


HANDLE_STYLE = DrawStyle(stroke_color="#3B82F6", stroke_width=1.0, fill_color="#FFFFFF")
FOV_STROKE = "#2196F399"
FOV_FILL = "#2196F31A"


def _primitive_for(kind: MarkerKind) -> Primitive:
    if kind.is_equipment:
        return Primitive.PIN
    elif kind == MarkerKind.RECTANGLE:
        return Primitive.RECT
    elif kind == MarkerKind.ELLIPSE:
        return Primitive.ELLIPSE
    elif kind == MarkerKind.LINE:
        return Primitive.LINE
    elif kind == MarkerKind.POLYLINE:
        return Primitive.POLYLINE
    elif kind == MarkerKind.POLYGON:
        return Primitive.POLYGON
    elif kind == MarkerKind.NOTE:
        return Primitive.NOTE
    elif kind == MarkerKind.STAMP:
        return Primitive.STAMP
    elif kind == MarkerKind.TEXT:
        return Primitive.TEXT
    raise ValueError(f"Unhandled marker kind: {kind}")


def _document_points(marker: Marker) -> List[Tuple[float, float]]:
    kind = marker.kind
    if kind.is_path:
        return list(marker.points or [])
    if kind == MarkerKind.LINE:
        return [(marker.anchor_x, marker.anchor_y), (marker.end_x, marker.end_y)]
    bounds = marker.bounds()
    if bounds is not None and kind.is_sizable:
        return [(bounds[0], bounds[1]), (bounds[2], bounds[3])]
    return [(marker.anchor_x, marker.anchor_y)]


def marker_command(marker: Marker, layers: LayerManager, viewport: Viewport,
                   selected: bool = False, pin_radius: float = 12.0,
                   preview: bool = False) -> DrawCommand:
    """Describe a single marker in screen space."""
    primitive = _primitive_for(marker.kind)
    points = tuple(viewport.to_screen_space(x, y) for x, y in _document_points(marker))

    label = marker.label
    if marker.kind == MarkerKind.TEXT or marker.kind == MarkerKind.NOTE:
        label = marker.text_content or marker.label
    elif marker.kind == MarkerKind.STAMP:
        label = marker.label or marker.text_content or DEFAULT_STAMP_TEXT

    # Pins stay upright; a camera's heading is drawn by its cone
    rotation, pivot = 0.0, None
    if marker.kind in ROTATABLE_KINDS and not marker.kind.is_equipment and marker.rotation_degrees:
        rotation = marker.rotation_degrees
        pivot = viewport.to_screen_space(marker.anchor_x, marker.anchor_y)

    font_size = (marker.font_size or DEFAULT_TEXT_SIZE) * viewport.effective_scale
    style = DrawStyle(
        stroke_color=marker.stroke_color,
        stroke_width=marker.stroke_width,
        opacity=marker.opacity * layers.opacity_of(marker.layer_id),
        fill_color=marker.fill_color,
        font_size=font_size,
        font_family=marker.font_family or "Arial",
        dashed=preview,
    )
    return DrawCommand(
        primitive=primitive,
        points=points,
        style=style,
        marker_id=marker.id,
        label=label,
        selected=selected,
        radius=pin_radius if primitive == Primitive.PIN else 0.0,
        preview=preview,
        rotation=rotation,
        pivot=pivot,
    )


def fov_command(marker: Marker, layers: LayerManager, viewport: Viewport,
                preview: bool = False) -> DrawCommand:
    """Coverage cone of a camera, painted beneath its pin."""
    fov, reach, heading = camera_view(marker)
    return DrawCommand(
        primitive=Primitive.FOV,
        points=(viewport.to_screen_space(marker.anchor_x, marker.anchor_y),),
        style=DrawStyle(
            stroke_color=FOV_STROKE,
            stroke_width=1.0,
            opacity=marker.opacity * layers.opacity_of(marker.layer_id),
            fill_color=FOV_FILL,
            dashed=preview,
        ),
        marker_id=marker.id,
        radius=reach * viewport.effective_scale,
        preview=preview,
        rotation=heading,
        sweep=fov,
    )


def _handle_commands(marker: Marker, viewport: Viewport, radius: float) -> List[DrawCommand]:
    if marker.kind == MarkerKind.CAMERA:
        positions = list(camera_handles(marker).values())
    elif marker.kind in RESIZABLE_KINDS:
        corner = resize_handle_position(marker)
        positions = [corner] if corner is not None else []
    else:
        positions = []
    return [
        DrawCommand(
            primitive=Primitive.HANDLE,
            points=(viewport.to_screen_space(x, y),),
            style=HANDLE_STYLE,
            marker_id=marker.id,
            radius=radius,
        )
        for x, y in positions
    ]


def _commands_for(marker: Marker, layers: LayerManager, viewport: Viewport,
                  selected: bool, pin_radius: float, preview: bool) -> List[DrawCommand]:
    commands = []
    if marker.kind == MarkerKind.CAMERA:
        commands.append(fov_command(marker, layers, viewport, preview))
    commands.append(marker_command(marker, layers, viewport, selected=selected,
                                   pin_radius=pin_radius, preview=preview))
    return commands


def build_draw_commands(markers: Sequence[Marker], layers: LayerManager,
                        viewport: Viewport, selected_id: Optional[str] = None,
                        preview: Optional[Marker] = None,
                        pin_radius: float = 12.0,
                        handle_radius: float = 8.0) -> List[DrawCommand]:
    """
    Build the paint list for a page.

    Args:
        markers: Visible markers already in paint order (store.list_visible)
        layers: Supplies per-layer opacity
        viewport: Current transform
        selected_id: Marker to flag as selected
        preview: In-progress gesture; replaces the marker with the same id,
            or is painted on top when it has none
        pin_radius: Equipment pin radius in screen pixels
        handle_radius: Resize and camera handle radius in screen pixels

    Returns:
        Commands in paint order, later ones on top
    """
    commands = []
    handles = []
    replaced = False
    for marker in markers:
        is_preview = preview is not None and preview.id is not None and preview.id == marker.id
        if is_preview:
            marker = preview
            replaced = True
        selected = marker.id is not None and marker.id == selected_id
        commands.extend(_commands_for(marker, layers, viewport, selected, pin_radius, is_preview))
        if selected:
            handles = _handle_commands(marker, viewport, handle_radius)

    if preview is not None and not replaced:
        commands.extend(_commands_for(preview, layers, viewport, False, pin_radius, True))

    # Handles go above everything
    commands.extend(handles)
    return commands
