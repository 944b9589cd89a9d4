from PyQt5.QtGui import QColor

from planmark.config import EngineConfig
from planmark.controllers.annotation_controller import AnnotationController
from planmark.controllers.interaction_controller import Tool
from planmark.core.markers.models import MarkerKind
from planmark.core.rendering import Primitive
from planmark.core.sync.backend import MemoryBackend
from planmark.ui.widgets.floorplan_canvas import FloorplanCanvas, to_qcolor


def test_to_qcolor_reads_trailing_alpha():
    color = to_qcolor("#11223380", opacity=0.5)
    assert (color.red(), color.green(), color.blue(), color.alpha()) == (0x11, 0x22, 0x33, 64)
    assert to_qcolor("#FF0000") == QColor(255, 0, 0)
    assert to_qcolor(None).alpha() == 0


def test_canvas_paints_every_primitive():
    session = AnnotationController(MemoryBackend(), EngineConfig(sync_debounce_ms=None))
    session.load_document(1)
    canvas = FloorplanCanvas(session)
    canvas.resize(400, 300)
    interaction = session.interaction

    for kind, (x, y) in [(MarkerKind.CAMERA, (20, 20)), (MarkerKind.NOTE, (60, 20)),
                         (MarkerKind.STAMP, (200, 20))]:
        interaction.set_tool(Tool.PLACE, kind)
        interaction.press(x, y)
    interaction.set_tool(Tool.SHAPE, MarkerKind.ELLIPSE)
    interaction.press(20, 100)
    interaction.release(120, 160)
    interaction.set_tool(Tool.MULTI_POINT, MarkerKind.POLYGON)
    for x, y in [(200, 100), (260, 100), (260, 160)]:
        interaction.press(x, y)
    interaction.double_click(200, 160)
    interaction.set_tool(Tool.TEXT)
    interaction.press(300, 250)
    interaction.commit_text("Riser")

    # the ellipse is selected so its handle is painted too
    interaction.set_tool(Tool.SELECT)
    interaction.press(70, 130)
    interaction.release(70, 130)

    assert len(session.store) == 6
    image = canvas.grab().toImage()
    assert image.width() == 400


def test_canvas_paints_rotated_shapes_and_camera_cones():
    session = AnnotationController(MemoryBackend(), EngineConfig(sync_debounce_ms=None))
    session.load_document(1)
    canvas = FloorplanCanvas(session)
    canvas.resize(400, 300)
    interaction = session.interaction

    interaction.set_tool(Tool.SHAPE, MarkerKind.RECTANGLE)
    interaction.press(150, 100)
    interaction.release(250, 150)
    assert session.update_selected({"rotation_degrees": 30.0}) is not None
    interaction.set_tool(Tool.PLACE, MarkerKind.CAMERA)
    interaction.press(60, 60)
    assert session.update_selected({"fov_degrees": 360.0}) is not None

    primitives = [c.primitive for c in session.draw_commands()]
    assert primitives[:3] == [Primitive.RECT, Primitive.FOV, Primitive.PIN]
    assert primitives.count(Primitive.HANDLE) == 4
    assert not canvas.grab().toImage().isNull()
