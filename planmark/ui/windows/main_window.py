import os

from PyQt5.QtWidgets import (
    QAction, QActionGroup, QFileDialog, QInputDialog, QLabel, QMainWindow,
    QMessageBox, QToolBar,
)

from planmark.config import EngineConfig
from planmark.controllers.annotation_controller import AnnotationController
from planmark.controllers.interaction_controller import Tool
from planmark.core.calibration import UNIT_TO_METERS
from planmark.core.document.page_renderer import PdfPageRenderer
from planmark.core.errors import PlanmarkError
from planmark.core.markers.models import MarkerKind
from planmark.core.sync.backend import JsonFileBackend
from planmark.ui.widgets.floorplan_canvas import FloorplanCanvas
from planmark.utils.logger import logger
from planmark.utils.notifications import NoticeLevel, NotificationCenter

TOOL_ACTIONS = [
    ("Select (V)", Tool.SELECT, None),
    ("Pan (H)", Tool.PAN, None),
    ("Access Point (A)", Tool.PLACE, MarkerKind.ACCESS_POINT),
    ("Camera", Tool.PLACE, MarkerKind.CAMERA),
    ("Elevator", Tool.PLACE, MarkerKind.ELEVATOR),
    ("Intercom", Tool.PLACE, MarkerKind.INTERCOM),
    ("Note (N)", Tool.PLACE, MarkerKind.NOTE),
    ("Stamp", Tool.PLACE, MarkerKind.STAMP),
    ("Rectangle (R)", Tool.SHAPE, MarkerKind.RECTANGLE),
    ("Ellipse (C)", Tool.SHAPE, MarkerKind.ELLIPSE),
    ("Line (L)", Tool.SHAPE, MarkerKind.LINE),
    ("Polyline (P)", Tool.MULTI_POINT, MarkerKind.POLYLINE),
    ("Polygon (G)", Tool.MULTI_POINT, MarkerKind.POLYGON),
    ("Text (T)", Tool.TEXT, MarkerKind.TEXT),
    ("Calibrate (M)", Tool.CALIBRATE, None),
]


class MainWindow(QMainWindow):
    def __init__(self, file_path=None, config: EngineConfig = None):
        super().__init__()
        self.setWindowTitle("Planmark")

        self.config = config or EngineConfig()
        self.renderer = PdfPageRenderer()
        self.notifications = NotificationCenter(self)
        self.notifications.notification_posted.connect(self._show_notification)

        self.session = None
        self.canvas = None
        self.page_label = QLabel("No floorplan loaded")

        self.setup_ui()

        if file_path:
            self.load_pdf(file_path)

    def setup_ui(self):
        toolbar = QToolBar("Tools", self)
        self.addToolBar(toolbar)

        open_action = QAction("Open", self)
        open_action.triggered.connect(self.open_pdf)
        toolbar.addAction(open_action)
        toolbar.addSeparator()

        self.tool_group = QActionGroup(self)
        self.tool_group.setExclusive(True)
        self.tool_actions = {}
        for label, tool, kind in TOOL_ACTIONS:
            action = QAction(label, self)
            action.setCheckable(True)
            action.triggered.connect(lambda _, t=tool, k=kind: self._select_tool(t, k))
            self.tool_group.addAction(action)
            toolbar.addAction(action)
            self.tool_actions[(tool, kind)] = action
        self.tool_actions[(Tool.SELECT, None)].setChecked(True)

        toolbar.addSeparator()
        for label, handler in (("Undo", self.undo_annotation), ("Redo", self.redo_annotation),
                               ("Previous", self.previous_page), ("Next", self.next_page)):
            action = QAction(label, self)
            action.triggered.connect(handler)
            toolbar.addAction(action)

        self.statusBar().addPermanentWidget(self.page_label)

    def closeEvent(self, event):
        """Flush pending edits before the window goes away."""
        if self.session is not None:
            self.session.close()
        self.renderer.close()
        event.accept()

    def open_pdf(self):
        file_path, _ = QFileDialog.getOpenFileName(self, "Open Floorplan", "", "PDF Files (*.pdf)")
        if file_path:
            self.load_pdf(file_path)

    def load_pdf(self, file_path):
        if self.session is not None:
            self.session.close()

        try:
            total_pages = self.renderer.open(file_path)
            backend = JsonFileBackend(file_path)
        except PlanmarkError as e:
            self.notifications.notify_error(e)
            return

        self.session = AnnotationController(backend, self.config, self.notifications,
                                            self.renderer, self)
        self.canvas = FloorplanCanvas(self.session, self.renderer, self)
        self.setCentralWidget(self.canvas)

        self.session.interaction.text_requested.connect(self._prompt_text)
        self.session.interaction.calibration_ready.connect(self._prompt_calibration)
        self.session.interaction.tool_changed.connect(self._sync_tool_actions)
        self.session.view.page_changed.connect(lambda _: self._update_page_label())
        self.session.calibration_changed.connect(lambda _: self._update_page_label())

        self.session.load_document(total_pages)
        self.canvas.refresh_page()
        self.canvas.setFocus()
        self.setWindowTitle(f"Planmark - {os.path.basename(file_path)}")
        self._update_page_label()

    def undo_annotation(self):
        if self.session is not None:
            self.session.undo()

    def redo_annotation(self):
        if self.session is not None:
            self.session.redo()

    def next_page(self):
        if self.session is not None:
            self.session.set_page(self.session.current_page + 1)

    def previous_page(self):
        if self.session is not None:
            self.session.set_page(self.session.current_page - 1)

    def _select_tool(self, tool, kind):
        if self.session is not None:
            self.session.interaction.set_tool(tool, kind)
            if self.canvas is not None:
                self.canvas.setFocus()

    def _sync_tool_actions(self, tool):
        kind = self.session.interaction.marker_kind
        action = self.tool_actions.get((tool, kind)) or self.tool_actions.get((tool, None))
        if action is not None:
            action.setChecked(True)

    def _prompt_text(self, doc_x, doc_y):
        text, ok = QInputDialog.getMultiLineText(self, "Add Text", "Text:")
        if ok:
            self.session.interaction.commit_text(text, doc_x, doc_y)

    def _prompt_calibration(self, document_distance):
        units = list(UNIT_TO_METERS)
        unit, ok = QInputDialog.getItem(self, "Calibrate", "Unit:", units, units.index("ft"), False)
        if not ok:
            self.session.interaction.cancel()
            return
        distance, ok = QInputDialog.getDouble(
            self, "Calibrate",
            f"Real-world length of the {document_distance:.1f}-unit line ({unit}):",
            1.0, 0.0001, 1e9, 2,
        )
        if not ok:
            self.session.interaction.cancel()
            return
        self.session.commit_calibration(distance, unit)

    def _update_page_label(self):
        session = self.session
        text = f"Page {session.current_page} / {session.view.total_pages}"
        record = session.calibration.record_for(session.current_page)
        if record is not None:
            text += f"  |  {record.scale_legend()}"
        self.page_label.setText(text)

    def _show_notification(self, notification):
        if notification.level == NoticeLevel.ERROR:
            logger.debug("Showing error dialog: %s", notification.title)
            QMessageBox.warning(self, notification.title, notification.message)
        else:
            self.statusBar().showMessage(f"{notification.title}: {notification.message}", 5000)

    def keyPressEvent(self, event):
        if self.canvas is not None:
            self.canvas.input_handler.handle_key_press(event)
            if event.isAccepted():
                return
        super().keyPressEvent(event)
