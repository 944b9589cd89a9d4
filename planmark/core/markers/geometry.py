"""
Hit-testing geometry in document space.
"""
import math
from typing import Dict, Optional, Sequence, Tuple

from .models import ROTATABLE_KINDS, Marker, MarkerKind, Point

# Rough glyph box used to size text and stamp markers
CHAR_WIDTH_FACTOR = 0.6
LINE_HEIGHT_FACTOR = 1.2
DEFAULT_TEXT_SIZE = 14.0
DEFAULT_STAMP_TEXT = "STAMP"

# Camera coverage when a marker does not set its own
DEFAULT_CAMERA_FOV = 90.0
DEFAULT_CAMERA_RANGE = 60.0


def point_near_segment(px: float, py: float, x1: float, y1: float,
                       x2: float, y2: float, tolerance: float) -> bool:
    """
    Check if a point is near a line segment.

    Args:
        px, py: Point coordinates
        x1, y1, x2, y2: Segment endpoints
        tolerance: Maximum distance to consider "near"

    Returns:
        True if point is within tolerance of the segment
    """
    length_sq = (x2 - x1) ** 2 + (y2 - y1) ** 2

    if length_sq == 0:
        return math.hypot(px - x1, py - y1) <= tolerance

    # Projection parameter clamped to the segment
    t = max(0.0, min(1.0, ((px - x1) * (x2 - x1) + (py - y1) * (y2 - y1)) / length_sq))

    nearest_x = x1 + t * (x2 - x1)
    nearest_y = y1 + t * (y2 - y1)
    return math.hypot(px - nearest_x, py - nearest_y) <= tolerance


def rotate_point(x: float, y: float, cx: float, cy: float, degrees: float) -> Point:
    """Turn (x, y) about (cx, cy); positive degrees are clockwise on screen."""
    if not degrees:
        return x, y
    theta = math.radians(degrees)
    cos_t, sin_t = math.cos(theta), math.sin(theta)
    dx, dy = x - cx, y - cy
    return cx + dx * cos_t - dy * sin_t, cy + dx * sin_t + dy * cos_t


def normalize_angle(degrees: float) -> float:
    """Wrap an angle into (-180, 180]."""
    wrapped = math.fmod(degrees, 360.0)
    if wrapped > 180:
        wrapped -= 360
    elif wrapped <= -180:
        wrapped += 360
    return wrapped


def _unrotated(marker: Marker, x: float, y: float) -> Point:
    """Map a point into the marker's own unrotated frame."""
    if marker.kind in ROTATABLE_KINDS and marker.rotation_degrees:
        return rotate_point(x, y, marker.anchor_x, marker.anchor_y, -marker.rotation_degrees)
    return x, y


def point_near_path(px: float, py: float, points: Sequence[Point],
                    tolerance: float, closed: bool = False) -> bool:
    segments = list(zip(points, points[1:]))
    if closed and len(points) > 2:
        segments.append((points[-1], points[0]))
    return any(
        point_near_segment(px, py, a[0], a[1], b[0], b[1], tolerance)
        for a, b in segments
    )


def point_in_polygon(px: float, py: float, points: Sequence[Point]) -> bool:
    """Even-odd ray casting test."""
    inside = False
    count = len(points)
    j = count - 1
    for i in range(count):
        xi, yi = points[i]
        xj, yj = points[j]
        if (yi > py) != (yj > py):
            x_cross = (xj - xi) * (py - yi) / (yj - yi) + xi
            if px < x_cross:
                inside = not inside
        j = i
    return inside


def point_in_rect(px: float, py: float, rect: Tuple[float, float, float, float],
                  tolerance: float = 0.0) -> bool:
    x0, y0, x1, y1 = rect
    return (x0 - tolerance <= px <= x1 + tolerance
            and y0 - tolerance <= py <= y1 + tolerance)


def point_in_ellipse(px: float, py: float, rect: Tuple[float, float, float, float],
                     tolerance: float = 0.0) -> bool:
    x0, y0, x1, y1 = rect
    rx = (x1 - x0) / 2 + tolerance
    ry = (y1 - y0) / 2 + tolerance
    if rx <= 0 or ry <= 0:
        return False
    cx = (x0 + x1) / 2
    cy = (y0 + y1) / 2
    return ((px - cx) / rx) ** 2 + ((py - cy) / ry) ** 2 <= 1.0


def text_box(marker: Marker) -> Tuple[float, float, float, float]:
    """Estimated document-space box of a text or stamp marker."""
    if marker.kind == MarkerKind.STAMP:
        text = marker.label or marker.text_content or DEFAULT_STAMP_TEXT
    else:
        text = marker.text_content or marker.label or ""
    size = marker.font_size or DEFAULT_TEXT_SIZE
    lines = text.splitlines() or [""]
    width = max(len(line) for line in lines) * size * CHAR_WIDTH_FACTOR
    height = len(lines) * size * LINE_HEIGHT_FACTOR
    return marker.anchor_x, marker.anchor_y, marker.anchor_x + width, marker.anchor_y + height


def hit_test(marker: Marker, x: float, y: float,
             pin_radius: float, tolerance: float) -> bool:
    """
    Check whether a document-space point falls on a marker.

    Args:
        marker: Marker to test
        x, y: Document-space point
        pin_radius: Radius of equipment pins, in document units
        tolerance: Slack around strokes, in document units
    """
    kind = marker.kind

    if kind.is_equipment:
        return math.hypot(x - marker.anchor_x, y - marker.anchor_y) <= pin_radius

    x, y = _unrotated(marker, x, y)

    if kind in (MarkerKind.NOTE, MarkerKind.RECTANGLE):
        bounds = marker.bounds()
        return bounds is not None and point_in_rect(x, y, bounds, tolerance)

    if kind == MarkerKind.ELLIPSE:
        bounds = marker.bounds()
        return bounds is not None and point_in_ellipse(x, y, bounds, tolerance)

    if kind == MarkerKind.LINE:
        if marker.end_x is None or marker.end_y is None:
            return False
        return point_near_segment(x, y, marker.anchor_x, marker.anchor_y,
                                  marker.end_x, marker.end_y,
                                  tolerance + marker.stroke_width / 2)

    if kind == MarkerKind.POLYLINE:
        return bool(marker.points) and point_near_path(
            x, y, marker.points, tolerance + marker.stroke_width / 2)

    if kind == MarkerKind.POLYGON:
        if not marker.points:
            return False
        return (point_in_polygon(x, y, marker.points)
                or point_near_path(x, y, marker.points, tolerance, closed=True))

    if kind in (MarkerKind.STAMP, MarkerKind.TEXT):
        return point_in_rect(x, y, text_box(marker), tolerance)

    raise ValueError(f"Unhandled marker kind: {kind}")


def resize_handle_at(marker: Marker, x: float, y: float, radius: float) -> bool:
    """True if the point grabs the bottom-right resize handle of a marker."""
    if not marker.kind.is_sizable or marker.kind == MarkerKind.LINE:
        return False
    corner = resize_handle_position(marker)
    return corner is not None and math.hypot(x - corner[0], y - corner[1]) <= radius


def resize_handle_position(marker: Marker) -> Optional[Point]:
    """Bottom-right corner of a sized marker, turned with the marker."""
    bounds = marker.bounds()
    if bounds is None:
        return None
    return rotate_point(bounds[2], bounds[3], marker.anchor_x, marker.anchor_y,
                        marker.rotation_degrees or 0.0)


def camera_view(marker: Marker) -> Tuple[float, float, float]:
    """(fov_degrees, range, heading_degrees) of a camera, defaults filled in."""
    fov = marker.fov_degrees if marker.fov_degrees is not None else DEFAULT_CAMERA_FOV
    reach = marker.fov_range if marker.fov_range is not None else DEFAULT_CAMERA_RANGE
    return fov, reach, marker.rotation_degrees or 0.0


def _polar(cx: float, cy: float, distance: float, degrees: float) -> Point:
    theta = math.radians(degrees)
    return cx + distance * math.cos(theta), cy + distance * math.sin(theta)


def camera_handles(marker: Marker) -> Dict[str, Point]:
    """
    Drag handles of a camera's coverage cone.

    The two FOV handles sit on the arc ends, the range handle on the arc
    middle and the rotation handle halfway along the heading.
    """
    fov, reach, heading = camera_view(marker)
    cx, cy = marker.anchor_x, marker.anchor_y
    return {
        "fov-left": _polar(cx, cy, reach, heading - fov / 2),
        "fov-right": _polar(cx, cy, reach, heading + fov / 2),
        "range": _polar(cx, cy, reach, heading),
        "rotation": _polar(cx, cy, reach / 2, heading),
    }


def camera_handle_at(marker: Marker, x: float, y: float, radius: float) -> Optional[str]:
    """Name of the closest camera handle within radius of the point."""
    if marker.kind != MarkerKind.CAMERA:
        return None
    found, best = None, radius
    for name, (hx, hy) in camera_handles(marker).items():
        distance = math.hypot(x - hx, y - hy)
        if distance <= best:
            found, best = name, distance
    return found


def clamp_point(x: float, y: float,
                bounds: Optional[Tuple[float, float, float, float]]) -> Point:
    if bounds is None:
        return x, y
    x0, y0, x1, y1 = bounds
    return max(x0, min(x1, x)), max(y0, min(y1, y))
