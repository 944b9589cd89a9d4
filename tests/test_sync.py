import pytest

from planmark.core.errors import PersistenceError
from planmark.core.layers import LayerManager, OrphanPolicy
from planmark.core.markers.models import Marker, MarkerKind
from planmark.core.markers.store import AnnotationStore
from planmark.core.sync.adapter import CREATE, DELETE, SyncAdapter
from planmark.core.sync.backend import MemoryBackend
from planmark.utils.notifications import NoticeType, NotificationCenter


class _RecordingBackend(MemoryBackend):
    """In-memory backend that logs calls and can be told to fail some of them."""

    def __init__(self):
        super().__init__()
        self.calls = []
        self.failing = set()

    def _record(self, name):
        self.calls.append(name)
        if name in self.failing:
            raise PersistenceError(f"{name} is unavailable")

    def create_marker(self, marker):
        self._record("create_marker")
        return super().create_marker(marker)

    def update_marker(self, marker_id, patch):
        self._record("update_marker")
        return super().update_marker(marker_id, patch)

    def delete_marker(self, marker_id):
        self._record("delete_marker")
        return super().delete_marker(marker_id)

    def create_layer(self, layer):
        self._record("create_layer")
        return super().create_layer(layer)

    def update_layer(self, layer_id, changes):
        self._record("update_layer")
        return super().update_layer(layer_id, changes)

    def delete_layer(self, layer_id):
        self._record("delete_layer")
        return super().delete_layer(layer_id)


def _session():
    layers = LayerManager()
    store = AnnotationStore(layers)
    backend = _RecordingBackend()
    notifications = NotificationCenter()
    sync = SyncAdapter(store, layers, backend, notifications, debounce_ms=None)
    return sync, store, layers, backend, notifications


def _pin(x, y, page=1, layer_id=None):
    return Marker(page_number=page, kind=MarkerKind.ACCESS_POINT, anchor_x=x, anchor_y=y,
                  layer_id=layer_id)


def test_create_is_remapped_to_the_persisted_id():
    sync, store, _, backend, _ = _session()
    remaps = []
    sync.marker_remapped.connect(lambda old, new: remaps.append((old, new)))

    local = store.add(_pin(10, 10))
    assert sync.pending_count == 1
    assert sync.flush() == 1

    assert remaps == [(local.id, "1")]
    assert [m.id for m in store.list_page(1)] == ["1"]
    assert sync.resolve(local.id) == "1"
    assert backend.markers["1"].anchor_x == 10


def test_edits_before_flush_collapse_into_one_create():
    sync, store, _, backend, _ = _session()
    marker = store.add(_pin(10, 10))
    for _ in range(3):
        store.translate(marker.id, 5, 0)

    op = sync.pending_for(marker.id)
    assert op.action == CREATE
    sync.flush()

    assert backend.calls == ["create_marker"]
    assert backend.markers["1"].anchor_x == 25


def test_add_then_remove_never_reaches_the_backend():
    sync, store, _, backend, _ = _session()
    marker = store.add(_pin(10, 10))
    store.remove(marker.id)

    assert sync.pending_count == 0
    assert sync.flush() == 0
    assert backend.calls == []


def test_updates_to_a_persisted_marker_merge():
    sync, store, _, backend, _ = _session()
    store.add(_pin(10, 10))
    sync.flush()

    store.translate("1", 5, 5)
    store.update("1", {"label": "Lobby"})
    sync.flush()

    assert backend.calls == ["create_marker", "update_marker"]
    stored = backend.markers["1"]
    assert (stored.anchor_x, stored.anchor_y, stored.label) == (15, 15, "Lobby")


def test_update_then_remove_becomes_a_delete():
    sync, store, _, backend, _ = _session()
    store.add(_pin(10, 10))
    sync.flush()

    store.translate("1", 5, 5)
    store.remove("1")
    sync.flush()

    assert backend.calls == ["create_marker", "delete_marker"]
    assert backend.markers == {}


def test_failed_create_rolls_back_and_discards_history():
    sync, store, _, backend, notifications = _session()
    backend.failing.add("create_marker")
    reconciled = []
    sync.page_reconciled.connect(reconciled.append)

    store.add(_pin(10, 10))
    assert sync.flush() == 0

    assert len(store) == 0
    assert not store.can_undo()
    assert reconciled == [1]
    (notice,) = notifications.history
    assert notice.notice_type == NoticeType.SAVE_FAILED
    assert notice.retryable


def test_failed_update_restores_the_previous_version():
    sync, store, _, backend, _ = _session()
    store.add(_pin(10, 10))
    sync.flush()

    backend.failing.add("update_marker")
    store.translate("1", 40, 0)
    sync.flush()

    assert store.get("1").anchor_x == 10
    assert [e.operation for e in store.history.undo_stack] == ["add"]


def test_failed_delete_puts_the_marker_back_in_place():
    sync, store, _, backend, _ = _session()
    for x in (10, 20, 30):
        store.add(_pin(x, x))
    sync.flush()

    backend.failing.add("delete_marker")
    store.remove("2")
    sync.flush()

    assert [m.id for m in store.list_page(1)] == ["1", "2", "3"]


def test_refused_create_is_forgotten_by_later_snapshots(monkeypatch):
    sync, store, _, backend, _ = _session()
    create_marker = backend.create_marker

    def refuse_first_pin(marker):
        if marker.anchor_x == 10:
            raise PersistenceError("quota exceeded")
        return create_marker(marker)

    monkeypatch.setattr(backend, "create_marker", refuse_first_pin)
    store.add(_pin(10, 10))
    store.add(_pin(50, 50))
    assert sync.flush() == 1
    assert [m.id for m in store.list_page(1)] == ["1"]

    store.undo()

    assert store.list_page(1) == []
    assert sync.pending_for("1").action == DELETE
    assert not store.can_undo()


def test_refused_update_is_not_replayed_by_undo():
    sync, store, _, backend, _ = _session()
    store.add(_pin(10, 10))
    sync.flush()

    backend.failing.add("update_marker")
    store.translate("1", 5, 5)
    store.add(_pin(80, 80))
    sync.flush()
    assert store.get("1").anchor_x == 10

    store.undo()

    assert [m.id for m in store.list_page(1)] == ["1"]
    assert store.get("1").anchor_x == 10
    assert sync.pending_for("1") is None
    assert sync.pending_for("2").action == DELETE


def test_refused_delete_stays_in_later_snapshots():
    sync, store, _, backend, _ = _session()
    for x in (10, 20, 30):
        store.add(_pin(x, x))
    sync.flush()

    backend.failing.add("delete_marker")
    store.remove("2")
    store.add(_pin(90, 90))
    sync.flush()

    store.undo()

    assert [m.id for m in store.list_page(1)] == ["1", "2", "3"]
    assert sync.pending_for("2") is None
    assert sync.pending_for("4").action == DELETE


def test_marker_gone_from_backend_resyncs_the_page():
    sync, store, _, backend, notifications = _session()
    store.add(_pin(10, 10))
    store.add(_pin(50, 50))
    sync.flush()

    del backend.markers["1"]
    store.translate("1", 5, 5)
    sync.flush()

    assert [m.id for m in store.list_page(1)] == ["2"]
    assert notifications.history[-1].notice_type == NoticeType.NOT_FOUND


def test_undo_and_redo_are_persisted_by_diffing():
    sync, store, _, backend, _ = _session()
    store.add(_pin(10, 10))
    sync.flush()

    store.undo()
    sync.flush()
    assert backend.markers == {}

    store.redo()
    sync.flush()

    assert list(backend.markers) == ["2"]
    assert [m.id for m in store.list_page(1)] == ["2"]
    assert sync.resolve("local-1") == "2"
    assert backend.calls == ["create_marker", "delete_marker", "create_marker"]


def test_undo_before_flush_cancels_the_pending_update():
    sync, store, _, backend, _ = _session()
    store.add(_pin(10, 10))
    sync.flush()

    store.translate("1", 5, 5)
    store.undo()
    sync.flush()

    assert backend.calls == ["create_marker"]
    assert store.get("1").anchor_x == 10


def test_failed_restore_resyncs_instead_of_rolling_back():
    sync, store, _, backend, _ = _session()
    store.add(_pin(10, 10))
    sync.flush()

    backend.failing.add("delete_marker")
    store.undo()
    sync.flush()

    assert [m.id for m in store.list_page(1)] == ["1"]
    assert store.can_redo()


def test_layer_create_is_remapped():
    sync, store, layers, backend, _ = _session()
    remaps = []
    sync.layer_remapped.connect(lambda old, new: remaps.append((old, new)))

    layer = layers.create("WiFi")

    assert remaps == [("local-layer-1", "1")]
    assert layer.id == "1"
    assert "1" in backend.layers


def test_layer_failures_roll_back():
    sync, store, layers, backend, notifications = _session()
    backend.failing.add("create_layer")
    layers.create("Ghost")
    assert len(layers) == 0

    backend.failing.clear()
    layer = layers.create("Cameras")
    backend.failing.add("update_layer")
    layers.set_visible(layer.id, False)

    assert layers.get(layer.id).visible is True
    assert [n.notice_type for n in notifications.history] == [NoticeType.SAVE_FAILED] * 2


def test_layer_delete_flushes_orphaned_markers_first():
    sync, store, layers, backend, _ = _session()
    layer = layers.create("Temp")
    store.add(_pin(10, 10, layer_id=layer.id))
    sync.flush()

    layers.delete(layer.id, OrphanPolicy.DELETE_MARKERS)

    assert backend.calls[-2:] == ["delete_marker", "delete_layer"]
    assert backend.markers == {} and backend.layers == {}


def test_layer_delete_failure_restores_the_layer():
    sync, store, layers, backend, _ = _session()
    layer = layers.create("Temp")
    backend.failing.add("delete_layer")

    layers.delete(layer.id, OrphanPolicy.REASSIGN)

    assert layer.id in layers


def test_load_page_replaces_local_state():
    sync, store, _, backend, _ = _session()
    persisted = _pin(5, 5, page=2)
    persisted.id = "77"
    backend.markers["77"] = persisted

    loaded = sync.load_page(2)

    assert [m.id for m in loaded] == ["77"]
    assert not store.can_undo()


def test_detach_stops_queueing():
    sync, store, _, _, _ = _session()
    sync.detach()
    store.add(_pin(1, 1))
    assert sync.pending_count == 0


@pytest.mark.parametrize("debounce_ms", [0, 250])
def test_debounce_timer_is_armed_by_edits(debounce_ms):
    layers = LayerManager()
    store = AnnotationStore(layers)
    sync = SyncAdapter(store, layers, MemoryBackend(), debounce_ms=debounce_ms)

    store.add(_pin(1, 1))

    assert sync._timer.isActive()
    sync.flush()
    assert not sync._timer.isActive()
