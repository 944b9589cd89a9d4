"""
Marker data model.

All geometry is stored in document space (PDF points); nothing here knows
about zoom, pan or pixels.
"""
import copy
import math
import re
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from planmark.core.errors import DegenerateShapeError, ValidationError

Point = Tuple[float, float]


class MarkerKind(Enum):
    """Closed set of marker variants."""
    ACCESS_POINT = "access_point"
    CAMERA = "camera"
    ELEVATOR = "elevator"
    INTERCOM = "intercom"
    NOTE = "note"
    RECTANGLE = "rectangle"
    ELLIPSE = "ellipse"
    LINE = "line"
    POLYLINE = "polyline"
    POLYGON = "polygon"
    STAMP = "stamp"
    TEXT = "text"

    @property
    def is_equipment(self) -> bool:
        return self in EQUIPMENT_KINDS

    @property
    def is_sizable(self) -> bool:
        return self in SIZABLE_KINDS

    @property
    def is_path(self) -> bool:
        return self in MIN_POINTS

    @property
    def min_points(self) -> int:
        return MIN_POINTS.get(self, 0)


EQUIPMENT_KINDS = frozenset({
    MarkerKind.ACCESS_POINT,
    MarkerKind.CAMERA,
    MarkerKind.ELEVATOR,
    MarkerKind.INTERCOM,
})

# Kinds placed by a single click
PLACEABLE_KINDS = EQUIPMENT_KINDS | {MarkerKind.NOTE, MarkerKind.STAMP}

# Kinds sized by a press-drag-release gesture
DRAG_SIZED_KINDS = frozenset({MarkerKind.RECTANGLE, MarkerKind.ELLIPSE, MarkerKind.LINE})

# Kinds that carry width/height
SIZABLE_KINDS = DRAG_SIZED_KINDS | {MarkerKind.NOTE}

# Kinds that can be resized with the corner handle
RESIZABLE_KINDS = frozenset({MarkerKind.NOTE, MarkerKind.RECTANGLE, MarkerKind.ELLIPSE})

# Kinds turned about their anchor by rotation_degrees
ROTATABLE_KINDS = RESIZABLE_KINDS | {MarkerKind.TEXT, MarkerKind.STAMP, MarkerKind.CAMERA}

MIN_POINTS = {
    MarkerKind.POLYLINE: 2,
    MarkerKind.POLYGON: 3,
}

# Fields a caller may never patch directly
PROTECTED_FIELDS = frozenset({"id", "kind", "version", "created_at", "updated_at"})

_COLOR_PATTERN = re.compile(r"^#(?:[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Marker:
    """A single vector annotation anchored in document space."""
    page_number: int
    kind: MarkerKind
    anchor_x: float
    anchor_y: float

    id: Optional[str] = None
    layer_id: Optional[str] = None

    # Sized shapes
    end_x: Optional[float] = None
    end_y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    rotation_degrees: Optional[float] = None

    # Camera coverage cone; rotation_degrees is its heading
    fov_degrees: Optional[float] = None
    fov_range: Optional[float] = None

    # Polyline / polygon vertices
    points: Optional[List[Point]] = None

    # Style
    stroke_color: str = "#FF0000"
    fill_color: Optional[str] = None
    opacity: float = 1.0
    stroke_width: float = 2.0

    # Text content
    label: Optional[str] = None
    text_content: Optional[str] = None
    font_size: Optional[float] = None
    font_family: Optional[str] = None

    # External equipment entity this pin represents
    equipment_ref: Optional[str] = None

    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def copy(self) -> "Marker":
        return copy.deepcopy(self)

    def bounds(self) -> Optional[Tuple[float, float, float, float]]:
        """
        Document-space bounding box (x0, y0, x1, y1).

        Returns None for markers drawn at a constant screen size (equipment
        pins, stamps and text without an explicit size), whose extent
        depends on the current zoom.
        """
        if self.kind.is_path and self.points:
            xs = [p[0] for p in self.points]
            ys = [p[1] for p in self.points]
            return min(xs), min(ys), max(xs), max(ys)

        if self.kind == MarkerKind.LINE and self.end_x is not None:
            return (min(self.anchor_x, self.end_x), min(self.anchor_y, self.end_y),
                    max(self.anchor_x, self.end_x), max(self.anchor_y, self.end_y))

        if self.width is not None and self.height is not None:
            return (self.anchor_x, self.anchor_y,
                    self.anchor_x + self.width, self.anchor_y + self.height)

        return None

    def translation_patch(self, dx: float, dy: float) -> Dict[str, Any]:
        """Geometry fields moved by (dx, dy), suitable for a store update."""
        patch: Dict[str, Any] = {
            "anchor_x": self.anchor_x + dx,
            "anchor_y": self.anchor_y + dy,
        }
        if self.end_x is not None and self.end_y is not None:
            patch["end_x"] = self.end_x + dx
            patch["end_y"] = self.end_y + dy
        if self.points is not None:
            patch["points"] = [(x + dx, y + dy) for x, y in self.points]
        return patch

    def apply_patch(self, patch: Dict[str, Any]) -> "Marker":
        """Return a copy with the patch merged in."""
        known = {f.name for f in fields(self)}
        unknown = set(patch) - known
        if unknown:
            raise ValidationError(f"Unknown marker fields: {', '.join(sorted(unknown))}")
        protected = set(patch) & PROTECTED_FIELDS
        if protected:
            raise ValidationError(f"Fields cannot be patched: {', '.join(sorted(protected))}")

        updated = self.copy()
        for key, value in patch.items():
            if key == "points" and value is not None:
                value = [(float(x), float(y)) for x, y in value]
            setattr(updated, key, value)
        return updated

    def normalized(self) -> "Marker":
        """
        Copy with derived geometry filled in.

        Rectangles and ellipses are re-anchored on their top-left corner,
        lines get width/height from their end point, and path kinds are
        anchored on their first vertex.
        """
        marker = self.copy()
        if marker.kind in (MarkerKind.RECTANGLE, MarkerKind.ELLIPSE):
            # An explicit size wins over a stale end point
            if marker.width is not None and marker.height is not None:
                marker.end_x = marker.anchor_x + marker.width
                marker.end_y = marker.anchor_y + marker.height
            elif marker.end_x is not None and marker.end_y is not None:
                x0, x1 = sorted((marker.anchor_x, marker.end_x))
                y0, y1 = sorted((marker.anchor_y, marker.end_y))
                marker.anchor_x, marker.anchor_y = x0, y0
                marker.end_x, marker.end_y = x1, y1
                marker.width, marker.height = x1 - x0, y1 - y0
        elif marker.kind == MarkerKind.LINE:
            if marker.end_x is not None and marker.end_y is not None:
                marker.width = abs(marker.end_x - marker.anchor_x)
                marker.height = abs(marker.end_y - marker.anchor_y)
        elif marker.kind.is_path and marker.points:
            marker.anchor_x, marker.anchor_y = marker.points[0]
        return marker

    def validate(self, epsilon: float = 1.0) -> None:
        """
        Check the kind-specific field rules.

        Raises:
            DegenerateShapeError: a sized shape is smaller than epsilon
            ValidationError: any other rule is violated
        """
        kind = self.kind
        if not isinstance(kind, MarkerKind):
            raise ValidationError(f"Unknown marker kind: {kind!r}")

        for name in ("anchor_x", "anchor_y"):
            value = getattr(self, name)
            if value is None or not math.isfinite(value):
                raise ValidationError(f"{name} must be a finite number")

        if not 0.0 <= self.opacity <= 1.0:
            raise ValidationError("opacity must be within [0, 1]")
        if self.stroke_width <= 0:
            raise ValidationError("stroke_width must be positive")
        for name in ("stroke_color", "fill_color"):
            value = getattr(self, name)
            if value is not None and not _COLOR_PATTERN.match(value):
                raise ValidationError(f"{name} must be a #RRGGBB or #RRGGBBAA color")

        if kind.is_path:
            if not self.points or len(self.points) < kind.min_points:
                raise ValidationError(
                    f"{kind.value} needs at least {kind.min_points} points"
                )
        elif self.points is not None:
            raise ValidationError(f"{kind.value} markers cannot carry points")

        if kind.is_sizable:
            if self.width is None or self.height is None:
                raise ValidationError(f"{kind.value} markers need a width and height")
            if self.width < 0 or self.height < 0:
                raise ValidationError("width and height must not be negative")
            if kind == MarkerKind.LINE:
                if self.end_x is None or self.end_y is None:
                    raise ValidationError("line markers need an end point")
                if math.hypot(self.end_x - self.anchor_x, self.end_y - self.anchor_y) < epsilon:
                    raise DegenerateShapeError("Line is shorter than the minimum length")
            elif self.width < epsilon or self.height < epsilon:
                raise DegenerateShapeError(
                    f"{kind.value} of {self.width:.2f}x{self.height:.2f} is below the minimum size"
                )
        elif self.width is not None or self.height is not None:
            raise ValidationError(f"{kind.value} markers cannot carry a width or height")

        if self.rotation_degrees is not None:
            if kind not in ROTATABLE_KINDS:
                raise ValidationError(f"{kind.value} markers cannot be rotated")
            if not math.isfinite(self.rotation_degrees):
                raise ValidationError("rotation_degrees must be a finite number")

        if kind == MarkerKind.CAMERA:
            if self.fov_degrees is not None and not 0 < self.fov_degrees <= 360:
                raise ValidationError("fov_degrees must be within (0, 360]")
            if self.fov_range is not None and not self.fov_range > 0:
                raise ValidationError("fov_range must be positive")
        elif self.fov_degrees is not None or self.fov_range is not None:
            raise ValidationError(f"{kind.value} markers have no field of view")

        if kind == MarkerKind.TEXT and not (self.text_content or "").strip():
            raise ValidationError("text markers need text content")

    def to_dict(self) -> Dict[str, Any]:
        """Convert marker to a dictionary for JSON serialization."""
        data = {
            'id': self.id,
            'page_number': self.page_number,
            'layer_id': self.layer_id,
            'kind': self.kind.value,
            'anchor_x': self.anchor_x,
            'anchor_y': self.anchor_y,
            'stroke_color': self.stroke_color,
            'opacity': self.opacity,
            'stroke_width': self.stroke_width,
            'version': self.version,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

        optional = ('end_x', 'end_y', 'width', 'height', 'rotation_degrees',
                    'fov_degrees', 'fov_range',
                    'fill_color', 'label', 'text_content', 'font_size',
                    'font_family', 'equipment_ref')
        for name in optional:
            value = getattr(self, name)
            if value is not None:
                data[name] = value

        if self.points is not None:
            data['points'] = [[x, y] for x, y in self.points]

        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Marker":
        """Create a marker from a dictionary."""
        points_data = data.get('points')
        points = [(float(p[0]), float(p[1])) for p in points_data] if points_data else None

        def _timestamp(value):
            return datetime.fromisoformat(value) if value else None

        return Marker(
            id=str(data['id']) if data.get('id') is not None else None,
            page_number=int(data['page_number']),
            layer_id=str(data['layer_id']) if data.get('layer_id') is not None else None,
            kind=MarkerKind(data['kind']),
            anchor_x=float(data['anchor_x']),
            anchor_y=float(data['anchor_y']),
            end_x=data.get('end_x'),
            end_y=data.get('end_y'),
            width=data.get('width'),
            height=data.get('height'),
            rotation_degrees=data.get('rotation_degrees'),
            fov_degrees=data.get('fov_degrees'),
            fov_range=data.get('fov_range'),
            points=points,
            stroke_color=data.get('stroke_color', "#FF0000"),
            fill_color=data.get('fill_color'),
            opacity=data.get('opacity', 1.0),
            stroke_width=data.get('stroke_width', 2.0),
            label=data.get('label'),
            text_content=data.get('text_content'),
            font_size=data.get('font_size'),
            font_family=data.get('font_family'),
            equipment_ref=data.get('equipment_ref'),
            version=data.get('version', 0),
            created_at=_timestamp(data.get('created_at')),
            updated_at=_timestamp(data.get('updated_at')),
        )


def changed_fields(old: Marker, new: Marker) -> Dict[str, Any]:
    """Fields of `new` that differ from `old`, excluding bookkeeping."""
    patch = {}
    for f in fields(new):
        if f.name in PROTECTED_FIELDS:
            continue
        value = getattr(new, f.name)
        if getattr(old, f.name) != value:
            patch[f.name] = copy.deepcopy(value)
    return patch
