from PyQt5.QtCore import QEvent, Qt
from PyQt5.QtGui import QKeyEvent

from planmark.config import EngineConfig
from planmark.controllers.annotation_controller import AnnotationController
from planmark.controllers.input_handler import UserInputHandler
from planmark.controllers.interaction_controller import Tool
from planmark.core.markers.models import Marker, MarkerKind
from planmark.core.sync.backend import MemoryBackend


def _handler():
    session = AnnotationController(MemoryBackend(), EngineConfig(sync_debounce_ms=None))
    session.load_document(1)
    return UserInputHandler(session), session


def _add_pin(session, x=10, y=10):
    return session.store.add(Marker(page_number=1, kind=MarkerKind.INTERCOM,
                                    anchor_x=x, anchor_y=y))


def test_letter_keys_switch_tools():
    handler, session = _handler()

    assert handler.handle_key(Qt.Key_G)
    assert (session.interaction.tool, session.interaction.marker_kind) == (
        Tool.MULTI_POINT, MarkerKind.POLYGON)

    assert handler.handle_key(Qt.Key_V)
    assert session.interaction.tool == Tool.SELECT


def test_undo_redo_shortcuts():
    handler, session = _handler()
    _add_pin(session)

    assert handler.handle_key(Qt.Key_Z, Qt.ControlModifier)
    assert len(session.store) == 0
    assert handler.handle_key(Qt.Key_Z, Qt.ControlModifier | Qt.ShiftModifier)
    assert len(session.store) == 1
    assert handler.handle_key(Qt.Key_Z, Qt.ControlModifier)
    assert handler.handle_key(Qt.Key_Y, Qt.ControlModifier)
    assert len(session.store) == 1


def test_delete_and_duplicate_act_on_the_selection():
    handler, session = _handler()
    marker = _add_pin(session)
    session.interaction.select(marker.id)

    assert handler.handle_key(Qt.Key_D, Qt.ControlModifier)
    assert len(session.store) == 2
    clone_id = session.interaction.selected_id
    assert clone_id != marker.id

    assert handler.handle_key(Qt.Key_Delete)
    assert clone_id not in session.store
    assert session.interaction.selected_id is None


def test_zoom_keys():
    handler, session = _handler()
    handler.handle_key(Qt.Key_Plus)
    assert session.view.viewport.zoom_scale == 1.1
    handler.handle_key(Qt.Key_0, Qt.ControlModifier)
    assert session.view.viewport.zoom_scale == 1.0


def test_key_events_are_accepted_or_ignored():
    handler, session = _handler()
    session.interaction.set_tool(Tool.SHAPE)
    session.interaction.press(10, 10)

    escape = QKeyEvent(QEvent.KeyPress, Qt.Key_Escape, Qt.NoModifier)
    handler.handle_key_press(escape)
    assert escape.isAccepted()
    assert session.interaction.preview is None

    unbound = QKeyEvent(QEvent.KeyPress, Qt.Key_F5, Qt.NoModifier)
    handler.handle_key_press(unbound)
    assert not unbound.isAccepted()
