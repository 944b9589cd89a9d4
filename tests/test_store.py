import pytest

from planmark.core.errors import (
    DegenerateShapeError,
    LayerLockedError,
    NotFoundError,
    ValidationError,
)
from planmark.core.layers import LayerManager, OrphanPolicy
from planmark.core.markers.models import Marker, MarkerKind
from planmark.core.markers.store import AnnotationStore


def _store():
    layers = LayerManager()
    return AnnotationStore(layers), layers


def _rect(x0, y0, x1, y1, page=1, layer_id=None):
    return Marker(page_number=page, kind=MarkerKind.RECTANGLE, anchor_x=x0, anchor_y=y0,
                  end_x=x1, end_y=y1, layer_id=layer_id)


def _pin(x, y, page=1, label=None, layer_id=None, kind=MarkerKind.ACCESS_POINT):
    return Marker(page_number=page, kind=kind, anchor_x=x, anchor_y=y,
                  label=label, layer_id=layer_id)


def test_add_assigns_local_id_and_normalizes_rectangles():
    store, _ = _store()
    marker = store.add(_rect(50, 40, 10, 10))

    assert marker.id == "local-1"
    assert marker.version == 1
    assert (marker.anchor_x, marker.anchor_y) == (10, 10)
    assert (marker.width, marker.height) == (40, 30)
    assert store.list_page(1) == [marker]


def test_rejected_add_leaves_no_trace():
    store, layers = _store()
    locked = layers.create("Locked")
    layers.set_locked(locked.id, True)

    with pytest.raises(DegenerateShapeError):
        store.add(_rect(10, 10, 10.5, 30))
    with pytest.raises(LayerLockedError):
        store.add(_pin(5, 5, layer_id=locked.id))
    with pytest.raises(ValidationError):
        store.add(Marker(page_number=1, kind=MarkerKind.POLYGON, anchor_x=0, anchor_y=0,
                         points=[(0, 0), (1, 1)]))
    with pytest.raises(ValidationError):
        store.add(Marker(page_number=1, kind=MarkerKind.TEXT, anchor_x=0, anchor_y=0,
                         text_content="  "))

    assert len(store) == 0
    assert not store.can_undo()


def test_camera_coverage_is_validated_and_persisted():
    store, _ = _store()
    camera = store.add(Marker(page_number=1, kind=MarkerKind.CAMERA, anchor_x=0, anchor_y=0,
                              rotation_degrees=45.0, fov_degrees=120.0, fov_range=80.0))

    data = camera.to_dict()
    assert (data["fov_degrees"], data["fov_range"]) == (120.0, 80.0)
    assert Marker.from_dict(data) == camera

    for patch in ({"fov_degrees": 0}, {"fov_degrees": 400}, {"fov_range": -1},
                  {"rotation_degrees": float("nan")}):
        with pytest.raises(ValidationError):
            store.update(camera.id, patch)
    with pytest.raises(ValidationError):
        store.add(_pin(5, 5).apply_patch({"fov_range": 50.0}))
    with pytest.raises(ValidationError):
        store.add(Marker(page_number=1, kind=MarkerKind.LINE, anchor_x=0, anchor_y=0,
                         end_x=10, end_y=0, rotation_degrees=30.0))
    assert store.get(camera.id).version == 1


def test_update_is_a_no_op_when_nothing_changes():
    store, _ = _store()
    marker = store.add(_pin(10, 10, label="1"))
    events = []
    store.add_listener(events.append)

    same = store.update(marker.id, {"label": "1"})

    assert same.version == 1
    assert events == []
    assert len(store.history.undo_stack) == 1


def test_update_bumps_version_and_refuses_page_moves():
    store, _ = _store()
    marker = store.add(_pin(10, 10))

    updated = store.update(marker.id, {"label": "Lobby"})
    assert updated.version == 2

    with pytest.raises(ValidationError):
        store.update(marker.id, {"page_number": 2})
    with pytest.raises(ValidationError):
        store.update(marker.id, {"id": "other"})
    with pytest.raises(NotFoundError):
        store.update("nope", {"label": "x"})


def test_locked_layer_blocks_every_mutation():
    store, layers = _store()
    layer = layers.create("Security")
    marker = store.add(_pin(10, 10, layer_id=layer.id))
    layers.set_locked(layer.id, True)

    with pytest.raises(LayerLockedError):
        store.translate(marker.id, 5, 5)
    with pytest.raises(LayerLockedError):
        store.remove(marker.id)
    assert store.get(marker.id) == marker


def test_translate_moves_every_vertex():
    store, _ = _store()
    polygon = store.add(Marker(page_number=1, kind=MarkerKind.POLYGON, anchor_x=0, anchor_y=0,
                               points=[(0, 0), (10, 0), (10, 10)]))
    moved = store.translate(polygon.id, 5, -5)
    assert moved.points == [(5, -5), (15, -5), (15, 5)]
    assert (moved.anchor_x, moved.anchor_y) == (5, -5)


def test_hidden_layers_are_listed_but_not_visible():
    store, layers = _store()
    top = layers.create("Top")
    bottom = layers.create("Bottom")
    layers.reorder(bottom.id, 0)

    a = store.add(_pin(1, 1, layer_id=top.id))
    b = store.add(_pin(2, 2, layer_id=bottom.id))
    base = store.add(_pin(3, 3))

    assert [m.id for m in store.list_visible(1)] == [base.id, b.id, a.id]

    layers.set_visible(top.id, False)
    assert [m.id for m in store.list_visible(1)] == [base.id, b.id]
    assert len(store.list_page(1)) == 3


def test_duplicate_equipment_gets_next_label_and_no_ref():
    store, _ = _store()
    original = store.add(Marker(page_number=1, kind=MarkerKind.CAMERA, anchor_x=100,
                                anchor_y=100, label="3", equipment_ref="cam-7"))

    clone = store.duplicate(original.id, 20, 20)

    assert clone.id != original.id
    assert (clone.anchor_x, clone.anchor_y) == (120, 120)
    assert clone.label == "4"
    assert clone.equipment_ref is None


def test_duplicate_is_unclamped_unless_bounds_given():
    store, _ = _store()
    rect = store.add(_rect(580, 780, 600, 790))

    free = store.duplicate(rect.id, 20, 20)
    assert (free.anchor_x, free.anchor_y) == (600, 800)

    clamped = store.duplicate(rect.id, 20, 20, bounds=(0, 0, 590, 785))
    assert (clamped.anchor_x, clamped.anchor_y) == (590, 785)
    assert (clamped.width, clamped.height) == (20, 10)


def test_delete_layer_reassigns_markers_to_base():
    store, layers = _store()
    layer = layers.create("Temp")
    a = store.add(_pin(1, 1, layer_id=layer.id))
    b = store.add(_pin(2, 2, layer_id=layer.id, page=2))
    events = []
    store.add_listener(events.append)

    layers.delete(layer.id, OrphanPolicy.REASSIGN)

    assert store.get(a.id).layer_id is None
    assert store.get(b.id).layer_id is None
    assert [e.operation for e in events] == ["update", "update"]


def test_delete_layer_removes_markers_and_undo_restores_them():
    store, layers = _store()
    layer = layers.create("Temp")
    kept = store.add(_pin(1, 1))
    doomed = store.add(_pin(2, 2, layer_id=layer.id))

    layers.delete(layer.id, OrphanPolicy.DELETE_MARKERS)
    assert [m.id for m in store.list_page(1)] == [kept.id]

    store.undo()
    assert [m.id for m in store.list_page(1)] == [kept.id, doomed.id]


def test_next_label_number_counts_per_kind():
    store, _ = _store()
    store.add(_pin(1, 1, label="1"))
    store.add(_pin(2, 2, label="7"))
    store.add(_pin(3, 3, label="Lobby"))
    store.add(_pin(4, 4, label="9", kind=MarkerKind.CAMERA))

    assert store.next_label_number(MarkerKind.ACCESS_POINT) == 8
    assert store.next_label_number(MarkerKind.ELEVATOR) == 1


def test_reconciliation_hooks_do_not_record_history():
    store, _ = _store()
    persisted = _pin(5, 5)
    persisted.id = "12"
    persisted.version = 3

    store.load_page(1, [persisted])
    store.remap_id("12", "13")
    removed = store.drop("13")
    store.put_back(removed, 0)

    assert [m.id for m in store.list_page(1)] == ["13"]
    assert not store.can_undo()

    unsaved = _pin(1, 1)
    with pytest.raises(ValidationError):
        store.load_page(2, [unsaved])
