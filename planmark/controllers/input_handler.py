from PyQt5.QtCore import Qt

from planmark.controllers.interaction_controller import Tool
from planmark.core.markers.models import MarkerKind

# Unmodified letter keys -> (tool, kind)
TOOL_SHORTCUTS = {
    Qt.Key_V: (Tool.SELECT, None),
    Qt.Key_H: (Tool.PAN, None),
    Qt.Key_R: (Tool.SHAPE, MarkerKind.RECTANGLE),
    Qt.Key_C: (Tool.SHAPE, MarkerKind.ELLIPSE),
    Qt.Key_L: (Tool.SHAPE, MarkerKind.LINE),
    Qt.Key_P: (Tool.MULTI_POINT, MarkerKind.POLYLINE),
    Qt.Key_G: (Tool.MULTI_POINT, MarkerKind.POLYGON),
    Qt.Key_T: (Tool.TEXT, MarkerKind.TEXT),
    Qt.Key_N: (Tool.PLACE, MarkerKind.NOTE),
    Qt.Key_A: (Tool.PLACE, MarkerKind.ACCESS_POINT),
    Qt.Key_M: (Tool.CALIBRATE, None),
}


def _has(modifiers, flag) -> bool:
    return bool(int(modifiers) & int(flag))


class UserInputHandler:
    """
    Handles keyboard shortcuts for the annotation canvas.
    """
    def __init__(self, session):
        """
        Initializes the handler with the session it drives.

        Args:
            session (AnnotationController): Owner of the interaction and view controllers.
        """
        self.session = session

    def handle_key_press(self, event):
        """
        Handles key press events for the canvas.
        """
        if self.handle_key(event.key(), event.modifiers()):
            event.accept()
        else:
            event.ignore()

    def handle_key(self, key, modifiers=Qt.NoModifier) -> bool:
        """
        Runs the action bound to a key.

        Args:
            key (int): A Qt.Key value.
            modifiers (Qt.KeyboardModifiers): Active keyboard modifiers.

        Returns:
            bool: True if the key was handled.
        """
        session = self.session
        ctrl = _has(modifiers, Qt.ControlModifier)
        shift = _has(modifiers, Qt.ShiftModifier)

        if ctrl:
            if key == Qt.Key_Z and shift:
                session.redo()
            elif key == Qt.Key_Z:
                session.undo()
            elif key == Qt.Key_Y:
                session.redo()
            elif key == Qt.Key_D:
                session.duplicate_selected()
            elif key == Qt.Key_0:
                session.view.reset_view()
            else:
                return False
            return True

        if key in (Qt.Key_Delete, Qt.Key_Backspace):
            session.delete_selected()
        elif key == Qt.Key_Escape:
            session.interaction.cancel()
        elif key in (Qt.Key_Plus, Qt.Key_Equal):
            session.view.set_zoom(session.view.viewport.zoom_scale * session.config.wheel_zoom_in)
        elif key == Qt.Key_Minus:
            session.view.set_zoom(session.view.viewport.zoom_scale * session.config.wheel_zoom_out)
        elif key in TOOL_SHORTCUTS:
            tool, kind = TOOL_SHORTCUTS[key]
            session.interaction.set_tool(tool, kind)
        else:
            return False
        return True
