"""
Real-world distance calibration.

The user picks two points on the page and types the physical distance
between them; the ratio is then used to label measurements and draw a
scale legend. It never rewrites stored marker coordinates.
"""
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

from planmark.core.errors import CalibrationStateError, DegenerateCalibrationError
from planmark.utils.logger import logger

Point = Tuple[float, float]

# Length of one unit in meters
UNIT_TO_METERS: Dict[str, float] = {
    "in": 0.0254,
    "ft": 0.3048,
    "m": 1.0,
    "cm": 0.01,
}


class CalibrationState(Enum):
    IDLE = "idle"
    AWAITING_START = "awaiting-start"
    AWAITING_END = "awaiting-end"
    AWAITING_DISTANCE = "awaiting-distance-input"


def document_distance(start: Point, end: Point) -> float:
    return math.hypot(end[0] - start[0], end[1] - start[1])


def convert_units(value: float, from_unit: str, to_unit: str) -> float:
    """Convert a distance between two supported units."""
    for unit in (from_unit, to_unit):
        if unit not in UNIT_TO_METERS:
            raise ValueError(f"Unsupported unit: {unit}")
    return value * UNIT_TO_METERS[from_unit] / UNIT_TO_METERS[to_unit]


def _is_positive(value) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value) and value > 0


@dataclass(frozen=True)
class CalibrationRecord:
    """A committed calibration for one page."""
    page_number: int
    start_point: Point
    end_point: Point
    real_world_distance: float
    unit: str
    id: Optional[str] = None

    @property
    def document_distance(self) -> float:
        return document_distance(self.start_point, self.end_point)

    @property
    def ratio(self) -> float:
        """Real-world units per document unit."""
        return self.real_world_distance / self.document_distance

    def measure(self, start: Point, end: Point, unit: Optional[str] = None) -> float:
        """Real-world length of the segment between two document points."""
        value = document_distance(start, end) * self.ratio
        if unit and unit != self.unit:
            value = convert_units(value, self.unit, unit)
        return value

    def to_real_world(self, length: float) -> float:
        return length * self.ratio

    def scale_legend(self) -> str:
        """Human-readable scale, e.g. '1 ft = 2.00 units'."""
        return f"1 {self.unit} = {1.0 / self.ratio:.2f} units"

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'page_number': self.page_number,
            'start_point': list(self.start_point),
            'end_point': list(self.end_point),
            'document_distance': self.document_distance,
            'real_world_distance': self.real_world_distance,
            'unit': self.unit,
        }

    @staticmethod
    def from_dict(data: dict) -> "CalibrationRecord":
        record = CalibrationRecord(
            id=str(data['id']) if data.get('id') is not None else None,
            page_number=int(data['page_number']),
            start_point=tuple(data['start_point']),
            end_point=tuple(data['end_point']),
            real_world_distance=float(data['real_world_distance']),
            unit=data['unit'],
        )
        if record.document_distance == 0:
            raise ValueError(f"Calibration on page {record.page_number} has identical points")
        if not _is_positive(record.real_world_distance):
            raise ValueError(f"Calibration on page {record.page_number} has no positive distance")
        if record.unit not in UNIT_TO_METERS:
            raise ValueError(f"Unsupported unit: {record.unit}")
        return record


class CalibrationEngine:
    """
    Linear state machine that captures two points and a distance.

    idle -> awaiting-start -> awaiting-end -> awaiting-distance-input,
    with cancel() allowed from every state.
    """

    def __init__(self):
        self.state = CalibrationState.IDLE
        self.page_number: Optional[int] = None
        self.start_point: Optional[Point] = None
        self.end_point: Optional[Point] = None

        # Latest committed record per page
        self._records: Dict[int, CalibrationRecord] = {}

    @property
    def is_active(self) -> bool:
        return self.state != CalibrationState.IDLE

    def begin(self, page_number: int = 1) -> CalibrationState:
        self._reset_points()
        self.page_number = page_number
        self.state = CalibrationState.AWAITING_START
        return self.state

    def capture(self, point: Point) -> CalibrationState:
        """Record the next document-space point."""
        if self.state == CalibrationState.AWAITING_START:
            self.start_point = (float(point[0]), float(point[1]))
            self.state = CalibrationState.AWAITING_END
        elif self.state == CalibrationState.AWAITING_END:
            self.end_point = (float(point[0]), float(point[1]))
            self.state = CalibrationState.AWAITING_DISTANCE
        else:
            raise CalibrationStateError(
                f"Cannot capture a point while {self.state.value}"
            )
        return self.state

    def pending_distance(self) -> Optional[float]:
        """Document distance of the captured points, once both exist."""
        if self.start_point is None or self.end_point is None:
            return None
        return document_distance(self.start_point, self.end_point)

    def commit(self, real_world_distance: float, unit: str) -> CalibrationRecord:
        """
        Finish the calibration.

        Raises:
            CalibrationStateError: both points have not been captured
            DegenerateCalibrationError: the points coincide (engine restarts)
            ValueError: distance not a positive finite number, or unknown unit
        """
        if self.state != CalibrationState.AWAITING_DISTANCE:
            raise CalibrationStateError(
                f"Cannot commit a calibration while {self.state.value}"
            )

        if self.pending_distance() == 0:
            logger.info("Rejected zero-length calibration on page %s", self.page_number)
            self._reset_points()
            self.state = CalibrationState.AWAITING_START
            raise DegenerateCalibrationError(
                "Calibration points are identical; pick two distinct points"
            )

        if not _is_positive(real_world_distance):
            raise ValueError("Real-world distance must be positive")
        if unit not in UNIT_TO_METERS:
            raise ValueError(f"Unsupported unit: {unit}")

        record = CalibrationRecord(
            page_number=self.page_number,
            start_point=self.start_point,
            end_point=self.end_point,
            real_world_distance=float(real_world_distance),
            unit=unit,
        )
        self._records[record.page_number] = record
        self._reset_points()
        self.state = CalibrationState.IDLE
        logger.info("Calibrated page %s: %s", record.page_number, record.scale_legend())
        return record

    def cancel(self) -> None:
        """Abandon the in-progress calibration. Stored records are untouched."""
        self._reset_points()
        self.state = CalibrationState.IDLE

    def record_for(self, page_number: int) -> Optional[CalibrationRecord]:
        return self._records.get(page_number)

    def store(self, record: CalibrationRecord) -> None:
        self._records[record.page_number] = record

    def discard(self, page_number: int) -> None:
        self._records.pop(page_number, None)

    def load(self, records: Iterable[CalibrationRecord]) -> None:
        """Adopt persisted records; the last one per page wins."""
        for record in records:
            self._records[record.page_number] = record

    def _reset_points(self) -> None:
        self.start_point = None
        self.end_point = None
