import pytest

from planmark.core.calibration import (
    CalibrationEngine,
    CalibrationRecord,
    CalibrationState,
    convert_units,
    document_distance,
)
from planmark.core.errors import CalibrationStateError, DegenerateCalibrationError


def _captured(start=(0.0, 0.0), end=(100.0, 0.0), page=1):
    engine = CalibrationEngine()
    engine.begin(page)
    engine.capture(start)
    engine.capture(end)
    return engine


def test_ratio_from_two_points_and_distance():
    engine = _captured()
    assert engine.state == CalibrationState.AWAITING_DISTANCE

    record = engine.commit(50, "ft")

    assert record.document_distance == pytest.approx(100.0)
    assert record.ratio == pytest.approx(0.5)
    assert engine.state == CalibrationState.IDLE
    assert engine.record_for(1) == record


def test_reversed_points_give_the_same_distance():
    assert document_distance((3, 4), (0, 0)) == document_distance((0, 0), (3, 4)) == 5.0
    forward = _captured((10, 10), (40, 50)).commit(5, "m")
    backward = _captured((40, 50), (10, 10)).commit(5, "m")
    assert forward.ratio == pytest.approx(backward.ratio)


def test_coincident_points_restart_capture():
    engine = _captured((7, 7), (7, 7))
    with pytest.raises(DegenerateCalibrationError):
        engine.commit(10, "ft")
    assert engine.state == CalibrationState.AWAITING_START
    assert engine.start_point is None
    assert engine.record_for(1) is None


def test_out_of_order_steps_are_rejected():
    engine = CalibrationEngine()
    with pytest.raises(CalibrationStateError):
        engine.capture((1, 1))
    with pytest.raises(CalibrationStateError):
        engine.commit(1, "ft")

    engine = _captured()
    with pytest.raises(CalibrationStateError):
        engine.capture((5, 5))


@pytest.mark.parametrize("distance,unit", [
    (0, "ft"), (-3, "m"), (10, "furlong"), (float("nan"), "ft"), (float("inf"), "m"),
])
def test_bad_distance_or_unit_keeps_waiting(distance, unit):
    engine = _captured()
    with pytest.raises(ValueError):
        engine.commit(distance, unit)
    assert engine.state == CalibrationState.AWAITING_DISTANCE
    assert engine.pending_distance() == pytest.approx(100.0)


def test_cancel_keeps_the_stored_record():
    engine = _captured()
    record = engine.commit(25, "m")

    engine.begin(1)
    engine.capture((1, 1))
    engine.cancel()

    assert engine.state == CalibrationState.IDLE
    assert engine.start_point is None
    assert engine.record_for(1) == record


def test_measure_and_legend():
    record = CalibrationRecord(1, (0, 0), (200, 0), 10.0, "ft")
    assert record.measure((0, 0), (0, 40)) == pytest.approx(2.0)
    assert record.measure((0, 0), (0, 40), "in") == pytest.approx(24.0)
    assert record.scale_legend() == "1 ft = 20.00 units"


def test_convert_units():
    assert convert_units(1, "m", "cm") == pytest.approx(100.0)
    assert convert_units(12, "in", "ft") == pytest.approx(1.0)
    with pytest.raises(ValueError):
        convert_units(1, "m", "parsec")


def test_record_dict_round_trip_keeps_identity_fields():
    record = CalibrationRecord(2, (1.0, 2.0), (4.0, 6.0), 3.0, "m", id="9")
    data = record.to_dict()
    assert data["document_distance"] == pytest.approx(5.0)
    assert CalibrationRecord.from_dict(data) == record


@pytest.mark.parametrize("changes", [
    {"end_point": [1.0, 2.0]},
    {"real_world_distance": 0},
    {"real_world_distance": float("nan")},
    {"unit": "cubit"},
])
def test_record_from_dict_rejects_unusable_scale(changes):
    data = CalibrationRecord(2, (1.0, 2.0), (4.0, 6.0), 3.0, "m", id="9").to_dict()
    data.update(changes)
    with pytest.raises(ValueError):
        CalibrationRecord.from_dict(data)
